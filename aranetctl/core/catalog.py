"""Characteristic catalog lookups and reading-source selection."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from aranetctl.core.model import CatalogEntry, CharacteristicRole

_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"
_SHORT_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$")
_FULL_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
LOGGER = logging.getLogger(__name__)


def normalize_uuid(value: str) -> str | None:
    """Return the lowercase 128-bit form of a 16, 32 or 128-bit UUID string."""
    normalized = value.strip().lower()
    if _FULL_UUID_RE.match(normalized):
        return normalized
    if _SHORT_UUID_RE.match(normalized):
        return normalized.rjust(8, "0") + _BASE_UUID_SUFFIX
    return None


@dataclass(frozen=True)
class CharacteristicCatalog:
    id: str
    name: str
    scan_services: tuple[str, ...]
    entries: tuple[CatalogEntry, ...]

    def entry(self, uuid: str) -> CatalogEntry | None:
        normalized = normalize_uuid(uuid)
        for entry in self.entries:
            if entry.uuid == normalized:
                return entry
        return None

    def role_of(self, uuid: str) -> CharacteristicRole | None:
        entry = self.entry(uuid)
        return entry.role if entry else None

    def reading_entries(self) -> list[CatalogEntry]:
        """Reading characteristics in descending preference."""
        readings = [e for e in self.entries if e.role.is_reading]
        return sorted(readings, key=lambda e: e.priority or 0)

    def informational(self, discovered: Iterable[str]) -> list[str]:
        picked: list[str] = []
        for uuid in discovered:
            entry = self.entry(uuid)
            if entry and entry.role.is_informational and entry.uuid not in picked:
                picked.append(entry.uuid)
        return picked


def select_reading_characteristic(
    discovered: Iterable[str],
    catalog: CharacteristicCatalog,
) -> CatalogEntry | None:
    available = {normalize_uuid(uuid) for uuid in discovered}
    for entry in catalog.reading_entries():
        if entry.uuid in available:
            LOGGER.debug("Selected %s characteristic %s (%s)", entry.role.value, entry.uuid, entry.family)
            return entry
    LOGGER.debug("No reading characteristic among %d discovered", len(available))
    return None
