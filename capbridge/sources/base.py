"""Source device interfaces."""

from __future__ import annotations

from collections.abc import Callable, MutableMapping, Sequence
from typing import Any, Protocol


class Subscription(Protocol):
    def destroy(self) -> None:
        """Stop delivering capability value updates."""


class Device(Protocol):
    id: str
    name: str
    device_class: str
    driver_id: str
    zone_name: str
    available: bool
    ready: bool
    capabilities: Sequence[str]
    capability_values: MutableMapping[str, Any]
    ui_capabilities: Sequence[str]

    async def request_capability_value(self, capability: str, value: Any) -> None:
        """Ask the device to accept a new capability value."""

    def on_capability_value(self, capability: str, callback: Callable[[Any], None]) -> Subscription:
        """Subscribe to raw value changes of one capability."""
