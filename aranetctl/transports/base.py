"""BLE adapter interface and the events it delivers."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol, Union

from aranetctl.core.model import AdapterState, DeviceIdentity


@dataclass(frozen=True)
class AdapterStateChanged:
    state: AdapterState


@dataclass(frozen=True)
class DeviceDiscovered:
    device: DeviceIdentity


@dataclass(frozen=True)
class Connected:
    device: DeviceIdentity


@dataclass(frozen=True)
class ConnectFailed:
    device: DeviceIdentity
    error: str | None = None


@dataclass(frozen=True)
class Disconnected:
    device: DeviceIdentity
    error: str | None = None


@dataclass(frozen=True)
class ServicesDiscovered:
    services: tuple[str, ...]


@dataclass(frozen=True)
class ServiceDiscoveryFailed:
    error: str | None = None


@dataclass(frozen=True)
class CharacteristicsDiscovered:
    service: str
    characteristics: tuple[str, ...]


@dataclass(frozen=True)
class CharacteristicDiscoveryFailed:
    service: str
    error: str | None = None


@dataclass(frozen=True)
class ValueRead:
    characteristic: str
    value: bytes


@dataclass(frozen=True)
class ReadError:
    characteristic: str
    error: str | None = None
    auth_failure: bool = False


AdapterEvent = Union[
    AdapterStateChanged,
    DeviceDiscovered,
    Connected,
    ConnectFailed,
    Disconnected,
    ServicesDiscovered,
    ServiceDiscoveryFailed,
    CharacteristicsDiscovered,
    CharacteristicDiscoveryFailed,
    ValueRead,
    ReadError,
]
EventSink = Callable[[AdapterEvent], None]


class BLEAdapter(Protocol):
    """Asynchronous BLE primitives.

    Every operation returns immediately; outcomes arrive later as events passed
    to the sink installed with ``set_event_sink``. Events emitted while no sink
    is installed are dropped.
    """

    @property
    def state(self) -> AdapterState:
        """Current radio state."""

    def set_event_sink(self, sink: EventSink | None) -> None:
        """Install (or clear) the single consumer of adapter events."""

    def start_scan(self, service_uuids: Sequence[str]) -> None:
        """Start scanning for peripherals advertising any of ``service_uuids``."""

    def stop_scan(self) -> None:
        """Stop a running scan."""

    def is_connected(self, device: DeviceIdentity) -> bool:
        """Return True if the peripheral already has a live connection."""

    def connect(self, device: DeviceIdentity) -> None:
        """Connect; answers with Connected or ConnectFailed."""

    def discover_services(self, device: DeviceIdentity) -> None:
        """Answers with ServicesDiscovered or ServiceDiscoveryFailed."""

    def discover_characteristics(self, device: DeviceIdentity, service: str) -> None:
        """Answers with CharacteristicsDiscovered or CharacteristicDiscoveryFailed."""

    def read_characteristic(self, device: DeviceIdentity, characteristic: str) -> None:
        """Answers with ValueRead or ReadError."""

    def disconnect(self, device: DeviceIdentity) -> None:
        """Drop the connection to the peripheral, if any."""
