"""Service layer used by CLI and library frontends."""

from __future__ import annotations

from collections.abc import AsyncIterator

from aranetctl.core.catalog import CharacteristicCatalog
from aranetctl.core.device_match import best_device_for_hint
from aranetctl.core.errors import DeviceNotFound
from aranetctl.core.loader import LoadedSettings, default_catalog, load_settings
from aranetctl.core.model import DeviceIdentity, Reading, Settings
from aranetctl.core.monitor import Monitor
from aranetctl.core.session import SessionCoordinator
from aranetctl.transports.base import BLEAdapter
from aranetctl.transports.ble_gatt import BleakAdapter


class AranetService:
    def __init__(
        self,
        *,
        adapter: BLEAdapter | None = None,
        settings: Settings | None = None,
        catalog: CharacteristicCatalog | None = None,
    ) -> None:
        loaded = load_settings() if settings is None else LoadedSettings(settings=settings, warnings=())
        self.settings = loaded.settings
        self.load_warnings = loaded.warnings
        self.catalog = catalog or default_catalog()
        self.adapter = adapter or BleakAdapter()
        self.coordinator = SessionCoordinator(self.adapter, settings=self.settings, catalog=self.catalog)

    async def scan(self, timeout: float | None = None) -> list[DeviceIdentity]:
        return await self.coordinator.scan(timeout)

    async def find_device(self, hint: str, timeout: float | None = None) -> DeviceIdentity:
        devices = await self.scan(timeout)
        device = best_device_for_hint(devices, hint)
        if device is None:
            raise DeviceNotFound(f"No Aranet device matching '{hint}' found")
        return device

    async def read_device(self, device: DeviceIdentity) -> Reading:
        return await self.coordinator.read(device)

    async def read(self, hint: str) -> Reading:
        device = await self.find_device(hint)
        return await self.read_device(device)

    def monitor_device(self, device: DeviceIdentity) -> Monitor:
        return Monitor(self.coordinator, device)

    async def monitor(self, hint: str) -> AsyncIterator[Reading]:
        device = await self.find_device(hint)
        async for reading in self.monitor_device(device).readings():
            yield reading
