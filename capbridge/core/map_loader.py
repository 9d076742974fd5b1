"""Capability map loading and validation for YAML-based capbridge maps."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from capbridge.core.conversions import GETTERS, SETTERS
from capbridge.core.errors import CapbridgeError, MapLoadError, MapValidationError
from capbridge.core.model import CATEGORY_OTHER, Binding, CapabilityMap, Converter, Variants

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys.

    Implicit booleans are disabled so characteristic names such as `On` stay
    strings.
    """


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise MapValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedMaps:
    maps: tuple[CapabilityMap, ...]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("capbridge").joinpath("schemas/capability_map.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise MapLoadError(f"Could not read map file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise MapValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise MapValidationError(f"Map file {path} must contain a mapping at root")
    return loaded


def normalize_bool(value: Any, *, context: str, error: type[CapbridgeError] = MapValidationError) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise error(f"{context} must be boolean true/false")


def _as_tuple(value: str | list[str]) -> tuple[str, ...]:
    return (value,) if isinstance(value, str) else tuple(value)


def _resolve_variants(
    names: str | list[str] | None,
    registry: Mapping[str, Converter],
    *,
    context: str,
) -> Variants | None:
    if names is None:
        return None
    converters: list[Converter] = []
    for name in _as_tuple(names):
        converter = registry.get(name)
        if converter is None:
            available = ", ".join(sorted(registry))
            raise MapValidationError(f"{context} references unknown conversion '{name}'. Available: {available}")
        converters.append(converter)
    fallback = converters[1] if len(converters) > 1 else None
    return Variants(primary=converters[0], fallback=fallback)


def _build_bindings(doc: dict[str, Any], section: str) -> dict[str, tuple[Binding, ...]]:
    table: dict[str, tuple[Binding, ...]] = {}
    for capability, raw in doc.get(section, {}).items():
        entries = raw if isinstance(raw, list) else [raw]
        bindings: list[Binding] = []
        for index, entry in enumerate(entries):
            context = f"{doc['id']}.{section}.{capability}[{index}]"
            bindings.append(
                Binding(
                    characteristics=_as_tuple(entry["characteristics"]),
                    get=_resolve_variants(entry.get("get"), GETTERS, context=f"{context}.get"),
                    set=_resolve_variants(entry.get("set"), SETTERS, context=f"{context}.set"),
                    debounce_ms=int(entry.get("debounce", 0)),
                )
            )
        table[capability] = tuple(bindings)
    return table


def build_map(doc: dict[str, Any], source: Path | Traversable | str = "<memory>") -> CapabilityMap:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise MapValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    return CapabilityMap(
        id=doc["id"],
        name=doc["name"],
        service=doc["service"],
        classes=tuple(doc["class"]),
        group=normalize_bool(doc.get("group", False), context=f"{doc['id']}.group"),
        category=doc.get("category", CATEGORY_OTHER),
        adaptive_lighting=normalize_bool(
            doc.get("adaptive_lighting", False),
            context=f"{doc['id']}.adaptive_lighting",
        ),
        required=_build_bindings(doc, "required"),
        optional=_build_bindings(doc, "optional"),
        triggers=_build_bindings(doc, "triggers"),
    )


def _iter_packaged_map_paths() -> list[Traversable]:
    map_root = resources.files("capbridge").joinpath("maps")
    return [item for item in map_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_map_paths(maps_dir: Path | None) -> list[Path]:
    if maps_dir is None or not maps_dir.exists() or not maps_dir.is_dir():
        return []
    return sorted(p for p in maps_dir.iterdir() if p.suffix in {".yml", ".yaml"})


def load_maps(maps_dir: Path | None = None) -> LoadedMaps:
    """Load packaged maps, then user maps from `maps_dir`, in registration order."""
    maps: dict[str, CapabilityMap] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_map_paths(), key=lambda p: p.name):
        capability_map = build_map(_read_yaml(path), path)
        maps[capability_map.id] = capability_map

    for path in _iter_user_map_paths(maps_dir):
        capability_map = build_map(_read_yaml(path), path)
        if capability_map.id in maps:
            warning = f"User map '{capability_map.id}' overrides packaged map"
            LOGGER.warning(warning)
            warnings.append(warning)
        maps[capability_map.id] = capability_map

    return LoadedMaps(maps=tuple(maps.values()), warnings=tuple(warnings))
