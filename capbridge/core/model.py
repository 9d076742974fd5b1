"""Core data models shared by the grouper, binder, loader, and service."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any


class _NoValue:
    """Sentinel a getter returns to leave a characteristic untouched."""

    _instance: _NoValue | None = None

    def __new__(cls) -> _NoValue:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_VALUE"

    def __bool__(self) -> bool:
        return False


NO_VALUE = _NoValue()

CATEGORY_OTHER = "other"

Converter = Callable[..., Any]


@dataclass(frozen=True)
class Variants:
    """Two-variant converter selected by capability-name membership.

    `primary` applies when the full capability name is one of the device's
    own capabilities; `fallback` applies to synonym names. A missing
    fallback reuses the primary.
    """

    primary: Converter
    fallback: Converter | None = None

    def select(self, verbatim: bool) -> Converter:
        if verbatim or self.fallback is None:
            return self.primary
        return self.fallback


@dataclass(frozen=True)
class Binding:
    characteristics: tuple[str, ...]
    get: Variants | None = None
    set: Variants | None = None
    debounce_ms: int = 0


@dataclass(frozen=True)
class BindingContext:
    device: Any
    service: Any
    characteristic: str
    capability: str


@dataclass(frozen=True)
class CharacteristicChange:
    characteristic: str
    old_value: Any
    new_value: Any
    service: Any
    device: Any
    capability: str


ServiceHook = Callable[..., None]
UpdateHook = Callable[[CharacteristicChange], None]


@dataclass(frozen=True)
class CapabilityMap:
    id: str
    name: str
    service: str
    classes: tuple[str, ...] = ()
    group: bool = False
    category: str = CATEGORY_OTHER
    adaptive_lighting: bool = False
    required: Mapping[str, tuple[Binding, ...]] = field(default_factory=dict)
    optional: Mapping[str, tuple[Binding, ...]] = field(default_factory=dict)
    triggers: Mapping[str, tuple[Binding, ...]] = field(default_factory=dict)
    on_service: ServiceHook | None = None
    on_update: UpdateHook | None = None

    def bindings_for(self, capability: str) -> tuple[tuple[Binding, ...], bool] | None:
        """Return the bindings for a base capability and whether they are triggers.

        Lookup order is required, optional, triggers; the first hit wins.
        """
        for table, is_trigger in ((self.required, False), (self.optional, False), (self.triggers, True)):
            bindings = table.get(capability)
            if bindings:
                return bindings, is_trigger
        return None

    def applies_to(self, device_class: str, capabilities: set[str]) -> bool:
        if device_class not in self.classes:
            return False
        return all(capability in capabilities for capability in self.required)


@dataclass(frozen=True)
class DeviceState:
    id: str
    name: str
    supported: bool
    exposed: bool
