"""Match a user-supplied hint against scanned devices."""

from __future__ import annotations

from collections.abc import Iterable

from aranetctl.core.model import DeviceIdentity


def match_score(device: DeviceIdentity, hint: str) -> int:
    needle = hint.strip().lower()
    if not needle:
        return 0
    device_id = device.id.lower()
    if device_id == needle:
        return 3
    if needle in device_id:
        return 2
    if device.name and needle in device.name.lower():
        return 1
    return 0


def best_device_for_hint(devices: Iterable[DeviceIdentity], hint: str) -> DeviceIdentity | None:
    best: DeviceIdentity | None = None
    best_score = 0
    for device in devices:
        score = match_score(device, hint)
        if score > best_score:
            best = device
            best_score = score
    return best
