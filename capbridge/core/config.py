"""Settings resolved from XDG directories and an optional config.yaml."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from capbridge.core.errors import ConfigError
from capbridge.core.map_loader import normalize_bool

DEFAULT_BRIDGE_IDENTIFIER = "capbridge"
DEFAULT_DEVICE_LIMIT = 149
LEDGER_FILENAME = "exposed.json"


@dataclass(frozen=True)
class Settings:
    config_dir: Path
    data_dir: Path
    new_device_exposed: bool = True
    bridge_identifier: str = DEFAULT_BRIDGE_IDENTIFIER
    device_limit: int = DEFAULT_DEVICE_LIMIT
    ignored_driver_prefixes: tuple[str, ...] = ()

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / LEDGER_FILENAME

    @property
    def maps_dir(self) -> Path:
        return self.config_dir / "maps"


def _app_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "capbridge", xdg_data / "capbridge"


def _load_schema_validator() -> Any:
    schema_text = resources.files("capbridge").joinpath("schemas/config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _read_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at root")
    try:
        _load_schema_validator().validate(loaded)
    except ValidationError as exc:
        path_desc = ".".join(str(p) for p in exc.path)
        where = f" ({path_desc})" if path_desc else ""
        raise ConfigError(f"Invalid config {path}{where}: {exc.message}") from exc
    return loaded


def load_settings() -> Settings:
    config_dir, data_dir = _app_dirs()
    doc = _read_config(config_dir / "config.yaml")
    return Settings(
        config_dir=config_dir,
        data_dir=data_dir,
        new_device_exposed=normalize_bool(
            doc.get("new_device_exposed", True),
            context="new_device_exposed",
            error=ConfigError,
        ),
        bridge_identifier=doc.get("bridge_identifier", DEFAULT_BRIDGE_IDENTIFIER),
        device_limit=int(doc.get("device_limit", DEFAULT_DEVICE_LIMIT)),
        ignored_driver_prefixes=tuple(doc.get("ignored_driver_prefixes", ())),
    )
