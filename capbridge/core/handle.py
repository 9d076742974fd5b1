"""Per-device aggregate owning the constructed accessory and its subscriptions."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from capbridge.core.binder import Cancellable, bind
from capbridge.core.model import CATEGORY_OTHER, CapabilityMap
from capbridge.sources.base import Device
from capbridge.targets.base import Accessory, AccessoryFactory, AdaptiveLightingFactory

LOGGER = logging.getLogger(__name__)

ACCESSORY_INFORMATION = "AccessoryInformation"
_DRIVER_PREFIX = "homey:app:"


def accessory_uuid(device_id: str) -> str:
    """Stable accessory identifier derived from the device id."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, device_id))


class MappedDevice:
    def __init__(self, device: Device, capability_map: CapabilityMap) -> None:
        self._device = device
        self._class = device.device_class
        self._capabilities = tuple(device.capabilities)
        self._name = device.name or f"{device.device_class[:1].upper()}{device.device_class[1:]} Device"
        self._category = capability_map.category
        self._maps: list[CapabilityMap] = [capability_map]
        self._accessory: Accessory | None = None
        self._subscriptions: list[Cancellable] = []

    @property
    def device(self) -> Device:
        return self._device

    @property
    def name(self) -> str:
        return self._name

    @property
    def device_class(self) -> str:
        return self._class

    @property
    def capabilities(self) -> tuple[str, ...]:
        return self._capabilities

    @property
    def category(self) -> str:
        return self._category

    @property
    def maps(self) -> tuple[CapabilityMap, ...]:
        return tuple(self._maps)

    @property
    def accessory(self) -> Accessory | None:
        return self._accessory

    @property
    def subscriptions(self) -> tuple[Cancellable, ...]:
        return tuple(self._subscriptions)

    def add_map(self, capability_map: CapabilityMap) -> None:
        if self._category == CATEGORY_OTHER:
            self._category = capability_map.category or CATEGORY_OTHER
        self._maps.append(capability_map)

    def attach(self, accessory: Accessory) -> None:
        if self._accessory is not None:
            raise RuntimeError(f"{self} already holds an accessory")
        self._accessory = accessory

    def track(self, subscription: Cancellable) -> None:
        self._subscriptions.append(subscription)

    def update_capability(self, capability: str, value: Any) -> None:
        self._device.capability_values[capability] = value

    def has_drifted(self, device: Device) -> bool:
        """Whether a live device no longer matches the snapshot taken at construction."""
        before = ",".join(sorted(self._capabilities))
        after = ",".join(sorted(device.capabilities))
        if before != after:
            LOGGER.info("[%s] capabilities have changed (before=%s after=%s)", self, before, after)
            return True
        if device.device_class != self._class:
            LOGGER.info("[%s] device class has changed (before=%s after=%s)", self, self._class, device.device_class)
            return True
        return False

    def create_accessory(self, factory: AccessoryFactory) -> Accessory:
        device = self._device
        accessory = factory(self._name, accessory_uuid(device.id), self._category)
        information = accessory.get_service(ACCESSORY_INFORMATION)
        if information is None:
            information = accessory.add_service(ACCESSORY_INFORMATION, self._name, "default")
        manufacturer = str(getattr(device, "driver_id", "") or "")
        if manufacturer.startswith(_DRIVER_PREFIX):
            manufacturer = manufacturer[len(_DRIVER_PREFIX):]
        zone = getattr(device, "zone_name", "") or "unknown zone"
        information.get_characteristic("Manufacturer").update_value(manufacturer)
        information.get_characteristic("Model").update_value(f"{self._name} ({zone})")
        information.get_characteristic("SerialNumber").update_value(device.id)
        return accessory

    def accessorize(
        self,
        factory: AccessoryFactory,
        *,
        adaptive_lighting: AdaptiveLightingFactory | None = None,
    ) -> Accessory:
        """Build and bind the accessory once; later calls return the cached one."""
        if self._accessory is not None:
            return self._accessory
        return bind(self.create_accessory(factory), self, adaptive_lighting=adaptive_lighting)

    def cleanup(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.cancel()

    def __str__(self) -> str:
        return self._name
