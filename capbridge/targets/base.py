"""Target accessory-protocol interfaces."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol

ReadHandler = Callable[[], Awaitable[Any]]
WriteHandler = Callable[[Any], Any]
ChangeHandler = Callable[[Any, Any], None]


class Characteristic(Protocol):
    type: str
    value: Any

    def on_read(self, handler: ReadHandler) -> None:
        """Install the handler answering read requests."""

    def on_write(self, handler: WriteHandler) -> None:
        """Install the handler receiving write requests."""

    def on_change(self, handler: ChangeHandler) -> None:
        """Register a listener for value transitions (old, new)."""

    def update_value(self, value: Any) -> None:
        """Push a value without going through the write handler."""

    def validate(self, value: Any) -> Any:
        """Clamp/coerce a value to the protocol-legal range."""


class Service(Protocol):
    type: str
    subtype: str | None

    def get_characteristic(self, characteristic_type: str) -> Characteristic:
        """Fetch or create a characteristic of the given type."""

    def has_characteristic(self, characteristic_type: str) -> bool:
        """Whether a characteristic of the given type exists."""


class Accessory(Protocol):
    uuid: str
    display_name: str
    category: str

    def get_service(self, service_type: str, subtype: str | None = None) -> Service | None:
        """Look up a service by type and optional instance discriminator."""

    def add_service(self, service_type: str, name: str, subtype: str) -> Service:
        """Create a service instance."""

    def configure_controller(self, controller: Any) -> None:
        """Attach a controller (e.g. adaptive lighting)."""


class Bridge(Protocol):
    device_limit: int

    @property
    def bridged_accessories(self) -> Sequence[Accessory]:
        """Accessories currently attached to the bridge."""

    def add_bridged_accessory(self, accessory: Accessory) -> None:
        """Attach an accessory."""

    def remove_bridged_accessory(self, accessory: Accessory) -> None:
        """Detach an accessory."""


AccessoryFactory = Callable[..., Accessory]
AdaptiveLightingFactory = Callable[..., Any]
