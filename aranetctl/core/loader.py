"""Catalog and settings loading for YAML-based aranetctl configuration."""

from __future__ import annotations

import functools
import json
import logging
import os
from dataclasses import dataclass, fields
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from aranetctl.core.catalog import CharacteristicCatalog, normalize_uuid
from aranetctl.core.errors import ConfigError
from aranetctl.core.model import CatalogEntry, CharacteristicRole, Settings

LOGGER = logging.getLogger(__name__)
CATALOG_RESOURCE = "aranet.yaml"
SETTINGS_FILENAME = "config.yaml"


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    warnings: tuple[str, ...]


@functools.cache
def _load_schema_validator(name: str) -> Any:
    schema_text = resources.files("aranetctl.schemas").joinpath(name).read_text(encoding="utf-8")
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _validate(doc: Any, schema_name: str, source: Path | Traversable) -> None:
    validator = _load_schema_validator(schema_name)
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def settings_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "aranetctl" / SETTINGS_FILENAME


def _read_yaml(path: Path | Traversable) -> Any:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read {path}: {exc}") from exc

    try:
        return yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc


def _build_catalog(doc: dict[str, Any], source: Path | Traversable) -> CharacteristicCatalog:
    _validate(doc, "catalog.schema.json", source)

    entries: list[CatalogEntry] = []
    seen: set[str] = set()
    for item in doc["characteristics"]:
        uuid = normalize_uuid(item["uuid"])
        if uuid is None:
            raise ConfigError(f"Catalog {source} has malformed UUID '{item['uuid']}'")
        if uuid in seen:
            raise ConfigError(f"Catalog {source} lists characteristic {uuid} twice")
        seen.add(uuid)
        entries.append(
            CatalogEntry(
                uuid=uuid,
                role=CharacteristicRole(item["role"]),
                family=item.get("family"),
                layout=item.get("layout"),
                priority=item.get("priority"),
            )
        )

    priorities = [e.priority for e in entries if e.role.is_reading]
    if len(priorities) != len(set(priorities)):
        raise ConfigError(f"Catalog {source} has duplicate reading priorities")

    services: list[str] = []
    for value in doc["scan_services"]:
        uuid = normalize_uuid(value)
        if uuid is None:
            raise ConfigError(f"Catalog {source} has malformed service UUID '{value}'")
        services.append(uuid)

    return CharacteristicCatalog(
        id=doc["id"],
        name=doc["name"],
        scan_services=tuple(services),
        entries=tuple(entries),
    )


def load_catalog(path: Path | Traversable | None = None) -> CharacteristicCatalog:
    source = path or resources.files("aranetctl.catalog").joinpath(CATALOG_RESOURCE)
    doc = _read_yaml(source)
    if not isinstance(doc, dict):
        raise ConfigError(f"Catalog file {source} must contain a mapping at root")
    return _build_catalog(doc, source)


@functools.cache
def default_catalog() -> CharacteristicCatalog:
    return load_catalog()


def load_settings(path: Path | None = None) -> LoadedSettings:
    """Load user settings, falling back to defaults for anything not set.

    A missing file is not an error. Every value that overrides a default is
    reported as a warning so the CLI can surface it.
    """
    source = path or settings_path()
    if not source.exists():
        return LoadedSettings(settings=Settings(), warnings=())

    doc = _read_yaml(source)
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ConfigError(f"Settings file {source} must contain a mapping at root")
    _validate(doc, "settings.schema.json", source)

    defaults = Settings()
    values: dict[str, float] = {}
    warnings: list[str] = []
    for field in fields(Settings):
        if field.name not in doc:
            continue
        value = float(doc[field.name])
        values[field.name] = value
        if value != getattr(defaults, field.name):
            warning = f"Setting '{field.name}' overridden to {value:g} by {source}"
            LOGGER.info(warning)
            warnings.append(warning)

    settings = Settings(**values)
    if settings.grace_s >= settings.absolute_timeout_s:
        raise ConfigError(
            f"Settings file {source}: grace_s must be shorter than absolute_timeout_s"
        )
    return LoadedSettings(settings=settings, warnings=tuple(warnings))
