"""Stable public API for building tooling on top of aranetctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from aranetctl.core.errors import (
    AdapterError,
    AdapterUnauthorized,
    AdapterUnavailable,
    AdapterUnsupported,
    AranetError,
    ConfigError,
    ConnectionFailed,
    DeviceNotFound,
    InvalidData,
    OperationTimeout,
    PairingRequired,
    ReadFailed,
    UnsupportedDevice,
)
from aranetctl.core.decoder import decode_reading
from aranetctl.core.formatting import format_reading
from aranetctl.core.model import (
    Aranet2Reading,
    Aranet4Reading,
    DeviceIdentity,
    DeviceType,
    RadiationReading,
    Reading,
    Settings,
    StatusColor,
)
from aranetctl.core.monitor import Monitor
from aranetctl.core.service import AranetService
from aranetctl.transports.base import BLEAdapter
from aranetctl.transports.ble_gatt import BleakAdapter

__all__ = [
    "AranetError",
    "AdapterError",
    "AdapterUnavailable",
    "AdapterUnauthorized",
    "AdapterUnsupported",
    "ConfigError",
    "ConnectionFailed",
    "DeviceNotFound",
    "InvalidData",
    "OperationTimeout",
    "PairingRequired",
    "ReadFailed",
    "UnsupportedDevice",
    "Aranet2Reading",
    "Aranet4Reading",
    "DeviceIdentity",
    "DeviceType",
    "RadiationReading",
    "Reading",
    "Settings",
    "StatusColor",
    "BLEAdapter",
    "BleakAdapter",
    "Monitor",
    "decode_reading",
    "format_reading",
    "Client",
]


class Client:
    """Public client for reading Aranet sensors.

    A `Client` wraps settings loading, scanning, device matching and the
    session coordinator behind a stable async API intended for third-party
    tools (GUI/TUI/services/scripts). Calls on one client are serialized.
    """

    def __init__(
        self,
        *,
        adapter: BLEAdapter | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._service = AranetService(adapter=adapter, settings=settings)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def settings(self) -> Settings:
        return self._service.settings

    async def scan(self, timeout: float | None = None) -> list[DeviceIdentity]:
        return await self._service.scan(timeout)

    async def find_device(self, hint: str, timeout: float | None = None) -> DeviceIdentity:
        return await self._service.find_device(hint, timeout)

    async def read(self, hint: str) -> Reading:
        return await self._service.read(hint)

    async def read_device(self, device: DeviceIdentity) -> Reading:
        return await self._service.read_device(device)

    def monitor_device(self, device: DeviceIdentity) -> Monitor:
        return self._service.monitor_device(device)

    async def monitor(self, hint: str) -> AsyncIterator[Reading]:
        async for reading in self._service.monitor(hint):
            yield reading
