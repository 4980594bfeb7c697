"""Core data models used across catalog, decoder, coordinator, and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class SessionState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    DISCOVERING_SERVICES = "discovering-services"
    DISCOVERING_CHARACTERISTICS = "discovering-characteristics"
    AWAITING_PAYLOAD = "awaiting-payload"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED)


class AdapterState(Enum):
    UNKNOWN = "unknown"
    RESETTING = "resetting"
    POWERED_ON = "powered-on"
    POWERED_OFF = "powered-off"
    UNAUTHORIZED = "unauthorized"
    UNSUPPORTED = "unsupported"


class CharacteristicRole(Enum):
    DEVICE_NAME = "device-name"
    FIRMWARE_REVISION = "firmware-revision"
    SERIAL_NUMBER = "serial-number"
    READING_BASIC = "reading-basic"
    READING_DETAILED = "reading-detailed"
    INTERVAL = "interval"
    SECONDS_SINCE_UPDATE = "seconds-since-update"
    TOTAL_READINGS = "total-readings"

    @property
    def is_reading(self) -> bool:
        return self in (CharacteristicRole.READING_BASIC, CharacteristicRole.READING_DETAILED)

    @property
    def is_informational(self) -> bool:
        return self in (CharacteristicRole.DEVICE_NAME, CharacteristicRole.FIRMWARE_REVISION)


class DeviceType(Enum):
    ARANET4 = "Aranet4"
    ARANET2 = "Aranet2"
    ARANET_RADIATION = "Aranet Radiation"
    ARANET_RADON = "Aranet Radon Plus"


class StatusColor(IntEnum):
    ERROR = 0
    GREEN = 1
    YELLOW = 2
    RED = 3


@dataclass(frozen=True)
class DeviceIdentity:
    id: str
    name: str | None = None


@dataclass(frozen=True)
class CatalogEntry:
    uuid: str
    role: CharacteristicRole
    family: str | None = None
    layout: str | None = None
    priority: int | None = None


@dataclass(frozen=True, kw_only=True)
class Reading:
    device_type: DeviceType
    battery: int
    name: str = ""
    version: str = ""
    interval: int | None = None
    ago: int | None = None


@dataclass(frozen=True, kw_only=True)
class Aranet4Reading(Reading):
    device_type: DeviceType = DeviceType.ARANET4
    co2: int
    temperature: float
    pressure: float
    humidity: int
    status: StatusColor | None = None


@dataclass(frozen=True, kw_only=True)
class Aranet2Reading(Reading):
    device_type: DeviceType = DeviceType.ARANET2
    temperature: float
    humidity: int


@dataclass(frozen=True, kw_only=True)
class RadiationReading(Reading):
    device_type: DeviceType = DeviceType.ARANET_RADIATION
    dose_rate: float
    dose_total: float
    duration: int


@dataclass(frozen=True)
class Settings:
    scan_timeout_s: float = 10.0
    grace_s: float = 5.0
    absolute_timeout_s: float = 30.0
    ready_timeout_s: float = 5.0
    monitor_margin_s: float = 3.0
