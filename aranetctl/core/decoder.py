"""Binary payload decoding for Aranet current-reading characteristics.

Payloads are little-endian and laid out at fixed offsets. Two dispatch shapes
exist: the Aranet4 characteristics always carry the Aranet4 layout, while the
Aranet2-family characteristics are shared by several products and start with a
device-type tag byte that selects the layout.
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Callable
from dataclasses import replace

from aranetctl.core.catalog import CharacteristicCatalog
from aranetctl.core.errors import InvalidData, UnsupportedDevice
from aranetctl.core.loader import default_catalog
from aranetctl.core.model import (
    Aranet2Reading,
    Aranet4Reading,
    RadiationReading,
    Reading,
    StatusColor,
)

LOGGER = logging.getLogger(__name__)

TAG_ARANET2 = 0x02
TAG_ARANET_RADON = 0x03
TAG_ARANET_RADIATION = 0x04

# co2, temperature, pressure, humidity, battery, status
_ARANET4 = struct.Struct("<HHHBBB")
# interval, ago
_ARANET4_TRAILER = struct.Struct("<HH")
# tag, interval, ago, battery, temperature, humidity, status
_ARANET2 = struct.Struct("<xHHBHBx")
# tag, interval, ago, battery, rate, total, duration, reserved
_RADIATION_LEGACY = struct.Struct("<xHHBIQQxx")
# tag + pad, interval, ago, battery, rate, total, duration, reserved
_RADIATION_DETAILED = struct.Struct("<xxHHBIQQx")


def _require(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise InvalidData(f"{what} payload too short: {len(data)} bytes, need {size}")


def _status(raw: int) -> StatusColor | None:
    try:
        return StatusColor(raw)
    except ValueError:
        return None


def decode_aranet4(data: bytes) -> Aranet4Reading:
    _require(data, _ARANET4.size, "Aranet4")
    co2, temp_raw, pressure_raw, humidity, battery, status = _ARANET4.unpack_from(data)

    interval: int | None = None
    ago: int | None = None
    if len(data) >= _ARANET4.size + _ARANET4_TRAILER.size:
        interval, ago = _ARANET4_TRAILER.unpack_from(data, _ARANET4.size)

    return Aranet4Reading(
        co2=co2,
        temperature=temp_raw / 20.0,
        pressure=pressure_raw / 10.0,
        humidity=humidity,
        battery=battery,
        status=_status(status),
        interval=interval,
        ago=ago,
    )


def decode_aranet2(data: bytes) -> Aranet2Reading:
    _require(data, _ARANET2.size, "Aranet2")
    interval, ago, battery, temp_raw, humidity = _ARANET2.unpack_from(data)
    return Aranet2Reading(
        temperature=temp_raw / 20.0,
        humidity=humidity,
        battery=battery,
        interval=interval,
        ago=ago,
    )


def _decode_radiation(data: bytes, layout: struct.Struct, rate_divisor: float) -> RadiationReading:
    _require(data, layout.size, "Aranet Radiation")
    interval, ago, battery, rate_raw, total, duration = layout.unpack_from(data)
    return RadiationReading(
        dose_rate=rate_raw / rate_divisor,
        dose_total=float(total),
        duration=duration,
        battery=battery,
        interval=interval,
        ago=ago,
    )


def decode_radiation_legacy(data: bytes) -> RadiationReading:
    # Legacy firmware stores the dose rate in tenths of nSv/h.
    return _decode_radiation(data, _RADIATION_LEGACY, 10.0)


def decode_radiation_detailed(data: bytes) -> RadiationReading:
    return _decode_radiation(data, _RADIATION_DETAILED, 1.0)


def _tagged(radiation: Callable[[bytes], RadiationReading]) -> Callable[[bytes], Reading]:
    def decode(data: bytes) -> Reading:
        _require(data, 1, "Tagged")
        tag = data[0]
        if tag == TAG_ARANET2:
            return decode_aranet2(data)
        if tag == TAG_ARANET_RADIATION:
            return radiation(data)
        if tag == TAG_ARANET_RADON:
            raise UnsupportedDevice("Aranet Radon Plus readings are not supported yet")
        raise InvalidData(f"Unknown device type tag 0x{tag:02x}")

    return decode


LAYOUTS: dict[str, Callable[[bytes], Reading]] = {
    "aranet4": decode_aranet4,
    "tagged-legacy": _tagged(decode_radiation_legacy),
    "tagged-detailed": _tagged(decode_radiation_detailed),
}


def decode_reading(
    data: bytes,
    uuid: str,
    *,
    name: str = "",
    version: str = "",
    catalog: CharacteristicCatalog | None = None,
) -> Reading:
    """Decode a current-readings payload read from characteristic ``uuid``."""
    catalog = catalog or default_catalog()
    entry = catalog.entry(uuid)
    if entry is None or not entry.role.is_reading or entry.layout is None:
        raise InvalidData(f"Characteristic {uuid} does not carry sensor readings")

    decoder = LAYOUTS.get(entry.layout)
    if decoder is None:
        raise InvalidData(f"No decoder for payload layout '{entry.layout}'")

    payload = bytes(data)
    LOGGER.debug("Decoding %d bytes from %s as %s: %s", len(payload), entry.uuid, entry.layout, payload.hex(" "))
    reading = decoder(payload)
    return replace(reading, name=name, version=version)
