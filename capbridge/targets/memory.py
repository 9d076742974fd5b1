"""In-memory accessory model implementing the target-protocol interfaces."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from capbridge.core.config import DEFAULT_DEVICE_LIMIT, Settings
from capbridge.core.errors import DeviceLimitReachedError, ServiceCreationError, TargetError
from capbridge.targets.base import ChangeHandler, ReadHandler, WriteHandler

LOGGER = logging.getLogger(__name__)

ACCESSORY_INFORMATION = "AccessoryInformation"


@dataclass(frozen=True)
class CharacteristicProps:
    format: str
    min_value: float | None = None
    max_value: float | None = None


CHARACTERISTIC_PROPS: dict[str, CharacteristicProps] = {
    "On": CharacteristicProps(format="bool"),
    "Brightness": CharacteristicProps(format="int", min_value=0, max_value=100),
    "Hue": CharacteristicProps(format="float", min_value=0, max_value=360),
    "Saturation": CharacteristicProps(format="float", min_value=0, max_value=100),
    "ColorTemperature": CharacteristicProps(format="int", min_value=140, max_value=500),
    "OutletInUse": CharacteristicProps(format="bool"),
    "ProgrammableSwitchEvent": CharacteristicProps(format="int", min_value=0, max_value=2),
    "Name": CharacteristicProps(format="string"),
    "Manufacturer": CharacteristicProps(format="string"),
    "Model": CharacteristicProps(format="string"),
    "SerialNumber": CharacteristicProps(format="string"),
    "FirmwareRevision": CharacteristicProps(format="string"),
}

_DEFAULTS = {"bool": False, "int": 0, "float": 0.0, "string": ""}


class MemoryCharacteristic:
    def __init__(self, characteristic_type: str, props: CharacteristicProps | None = None) -> None:
        self.type = characteristic_type
        self.props = props or CHARACTERISTIC_PROPS.get(characteristic_type, CharacteristicProps(format="any"))
        self.value: Any = _DEFAULTS.get(self.props.format)
        if self.props.min_value is not None and self.props.format in {"int", "float"}:
            self.value = self.validate(self.props.min_value)
        self._read_handler: ReadHandler | None = None
        self._write_handler: WriteHandler | None = None
        self._change_handlers: list[ChangeHandler] = []

    def on_read(self, handler: ReadHandler) -> None:
        self._read_handler = handler

    def on_write(self, handler: WriteHandler) -> None:
        self._write_handler = handler

    def on_change(self, handler: ChangeHandler) -> None:
        self._change_handlers.append(handler)

    def validate(self, value: Any) -> Any:
        fmt = self.props.format
        if value is None or fmt == "any":
            return value
        if fmt == "bool":
            return bool(value)
        if fmt == "string":
            return str(value)
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise TargetError(f"{self.type} expects a number, got {value!r}") from exc
        if self.props.min_value is not None:
            number = max(number, self.props.min_value)
        if self.props.max_value is not None:
            number = min(number, self.props.max_value)
        if fmt == "int":
            return int(round(number))
        return number

    async def read(self) -> Any:
        """Serve a read request through the installed handler."""
        if self._read_handler is None:
            return self.value
        value = await self._read_handler()
        self._set(value)
        return value

    async def write(self, value: Any) -> None:
        """Serve a write request through the installed handler."""
        value = self.validate(value)
        if self._write_handler is not None:
            result = self._write_handler(value)
            if inspect.isawaitable(result):
                await result
        self._set(value)

    def update_value(self, value: Any) -> None:
        self._set(value)

    def _set(self, value: Any) -> None:
        old_value, self.value = self.value, value
        if old_value == value:
            return
        for handler in list(self._change_handlers):
            handler(old_value, value)


class MemoryService:
    def __init__(self, service_type: str, name: str, subtype: str | None = None) -> None:
        self.type = service_type
        self.name = name
        self.subtype = subtype
        self.characteristics: dict[str, MemoryCharacteristic] = {}
        self.get_characteristic("Name").update_value(name)

    def get_characteristic(self, characteristic_type: str) -> MemoryCharacteristic:
        characteristic = self.characteristics.get(characteristic_type)
        if characteristic is None:
            characteristic = MemoryCharacteristic(characteristic_type)
            self.characteristics[characteristic_type] = characteristic
        return characteristic

    def has_characteristic(self, characteristic_type: str) -> bool:
        return characteristic_type in self.characteristics

    def set_characteristic(self, characteristic_type: str, value: Any) -> MemoryService:
        characteristic = self.get_characteristic(characteristic_type)
        characteristic.update_value(characteristic.validate(value))
        return self


@dataclass
class AdaptiveLightingController:
    service: MemoryService
    controller_name: str
    manufacturer: str
    model: str
    serial_number: str

    def __post_init__(self) -> None:
        for required in ("Brightness", "ColorTemperature"):
            if not self.service.has_characteristic(required):
                raise TargetError(f"adaptive lighting requires {required} on {self.service.type}")


class MemoryAccessory:
    def __init__(self, display_name: str, uuid: str, category: str = "other") -> None:
        self.display_name = display_name
        self.uuid = uuid
        self.category = category
        self.services: list[MemoryService] = [MemoryService(ACCESSORY_INFORMATION, display_name)]
        self.controllers: list[Any] = []

    def get_service(self, service_type: str, subtype: str | None = None) -> MemoryService | None:
        for service in self.services:
            if service.type != service_type:
                continue
            if subtype is None or service.subtype == subtype:
                return service
        return None

    def services_of(self, service_type: str) -> list[MemoryService]:
        return [s for s in self.services if s.type == service_type]

    def add_service(self, service_type: str, name: str, subtype: str) -> MemoryService:
        if any(s.type == service_type and s.subtype == subtype for s in self.services):
            raise ServiceCreationError(
                f"Accessory '{self.display_name}' already has a {service_type} service with subtype '{subtype}'"
            )
        service = MemoryService(service_type, name, subtype)
        self.services.append(service)
        return service

    def configure_controller(self, controller: Any) -> None:
        self.controllers.append(controller)


class MemoryBridge:
    def __init__(self, identifier: str, *, device_limit: int = DEFAULT_DEVICE_LIMIT) -> None:
        self.identifier = identifier
        self.device_limit = device_limit
        self._accessories: list[MemoryAccessory] = []

    @property
    def bridged_accessories(self) -> Sequence[MemoryAccessory]:
        return tuple(self._accessories)

    def add_bridged_accessory(self, accessory: MemoryAccessory) -> None:
        if any(a.uuid == accessory.uuid for a in self._accessories):
            raise TargetError(f"Accessory '{accessory.display_name}' is already bridged")
        if len(self._accessories) >= self.device_limit:
            raise DeviceLimitReachedError(
                f"Bridge '{self.identifier}' already holds {self.device_limit} accessories"
            )
        self._accessories.append(accessory)
        LOGGER.debug("bridged accessory %s (%s)", accessory.display_name, accessory.uuid)

    def remove_bridged_accessory(self, accessory: MemoryAccessory) -> None:
        try:
            self._accessories.remove(accessory)
        except ValueError as exc:
            raise TargetError(f"Accessory '{accessory.display_name}' is not bridged") from exc


def create_accessory(display_name: str, uuid: str, category: str = "other") -> MemoryAccessory:
    return MemoryAccessory(display_name, uuid, category)


def create_bridge(settings: Settings) -> MemoryBridge:
    return MemoryBridge(settings.bridge_identifier, device_limit=settings.device_limit)
