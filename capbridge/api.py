"""Stable public API for building host applications on top of capbridge.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from capbridge.core.binder import bind
from capbridge.core.config import Settings, load_settings
from capbridge.core.debounce import Debouncer, debounce
from capbridge.core.errors import (
    CapbridgeError,
    ConfigError,
    DeviceLimitReachedError,
    DeviceUnavailableError,
    ExposeError,
    LedgerLoadError,
    MapLoadError,
    MapValidationError,
    MissingValueError,
    ServiceCreationError,
    TargetError,
    UnexposeError,
)
from capbridge.core.grouping import flatten_groups, group_capabilities
from capbridge.core.handle import MappedDevice, accessory_uuid
from capbridge.core.ledger import ExposureLedger
from capbridge.core.map_loader import LoadedMaps, build_map, load_maps
from capbridge.core.mapper import DeviceMapper
from capbridge.core.model import (
    NO_VALUE,
    Binding,
    BindingContext,
    CapabilityMap,
    CharacteristicChange,
    DeviceState,
    Variants,
)
from capbridge.core.service import BridgeService
from capbridge.storage import JsonLedgerStore, load_ledger

__all__ = [
    "CapbridgeError",
    "ConfigError",
    "DeviceLimitReachedError",
    "DeviceUnavailableError",
    "ExposeError",
    "LedgerLoadError",
    "MapLoadError",
    "MapValidationError",
    "MissingValueError",
    "ServiceCreationError",
    "TargetError",
    "UnexposeError",
    "NO_VALUE",
    "Binding",
    "BindingContext",
    "CapabilityMap",
    "CharacteristicChange",
    "DeviceState",
    "Variants",
    "Debouncer",
    "debounce",
    "group_capabilities",
    "flatten_groups",
    "bind",
    "MappedDevice",
    "accessory_uuid",
    "DeviceMapper",
    "ExposureLedger",
    "JsonLedgerStore",
    "load_ledger",
    "LoadedMaps",
    "build_map",
    "load_maps",
    "Settings",
    "load_settings",
    "BridgeService",
]
