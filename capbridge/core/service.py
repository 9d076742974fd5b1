"""Service layer used by the CLI and host applications."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from capbridge.core.config import Settings, load_settings
from capbridge.core.errors import (
    DeviceLimitReachedError,
    DeviceUnavailableError,
    ExposeError,
    TargetError,
    UnexposeError,
)
from capbridge.core.handle import accessory_uuid
from capbridge.core.ledger import ExposureLedger
from capbridge.core.map_loader import load_maps
from capbridge.core.mapper import DeviceMapper
from capbridge.core.model import DeviceState
from capbridge.sources.base import Device
from capbridge.targets.base import Accessory, AccessoryFactory, AdaptiveLightingFactory, Bridge
from capbridge.targets.memory import AdaptiveLightingController, create_accessory, create_bridge

LOGGER = logging.getLogger(__name__)


class BridgeService:
    def __init__(
        self,
        *,
        ledger: ExposureLedger,
        bridge: Bridge | None = None,
        mapper: DeviceMapper | None = None,
        settings: Settings | None = None,
        accessory_factory: AccessoryFactory = create_accessory,
        adaptive_lighting: AdaptiveLightingFactory | None = AdaptiveLightingController,
    ) -> None:
        self.settings = settings or load_settings()
        self.load_warnings: tuple[str, ...] = ()
        if mapper is None:
            loaded = load_maps(self.settings.maps_dir)
            mapper = DeviceMapper(loaded.maps)
            self.load_warnings = loaded.warnings
        self.mapper = mapper
        self.bridge = bridge if bridge is not None else create_bridge(self.settings)
        self.ledger = ledger
        self._accessory_factory = accessory_factory
        self._adaptive_lighting = adaptive_lighting

    def get_accessory(self, device_id: str) -> Accessory | None:
        wanted = accessory_uuid(device_id)
        for accessory in self.bridge.bridged_accessories:
            if accessory.uuid == wanted:
                return accessory
        return None

    def is_ignored(self, device: Device) -> bool:
        """Whether the device belongs to a driver the bridge must never map."""
        return str(device.driver_id or "").startswith(self.settings.ignored_driver_prefixes)

    def map_devices(self, devices: Iterable[Device]) -> int:
        """Add every device, then persist the ledger once."""
        added = sum(1 for device in devices if self.add_device(device))
        self.ledger.save()
        return added

    def add_device(self, device: Device) -> bool:
        if self.is_ignored(device):
            return False
        prefix = f"[{device.name or 'NO NAME'}:{device.id}]"
        if not device.ready or device.capability_values is None:
            LOGGER.error("%s device not ready or doesn't have capability values", prefix)
            return False

        if not self.ledger.has(device.id):
            LOGGER.info(
                "%s device not in exposure ledger, setting exposure state to %s",
                prefix,
                self.settings.new_device_exposed,
            )
            self.ledger.set(device.id, self.settings.new_device_exposed)

        handle = self.mapper.map_device(device)
        if handle is None:
            self.ledger.set(device.id, False)
            LOGGER.info(
                "%s unable to map (class=%s capabilities=%s)",
                prefix,
                device.device_class,
                ",".join(device.capabilities),
            )
            return False

        if self.ledger.get(device.id) is False:
            LOGGER.info("%s device not exposed", prefix)
            return True
        if self.get_accessory(device.id) is not None:
            LOGGER.debug("%s device already exposed", prefix)
            return True

        try:
            accessory = handle.accessorize(self._accessory_factory, adaptive_lighting=self._adaptive_lighting)
            self.bridge.add_bridged_accessory(accessory)
        except TargetError as exc:
            LOGGER.warning("%s unable to expose device: %s", prefix, exc)
            self.mapper.forget_device(device.id)
            return False
        LOGGER.info("%s device exposed", prefix)
        return True

    def remove_from_bridge(self, device_id: str) -> bool:
        accessory = self.get_accessory(device_id)
        if accessory is None:
            return False
        try:
            self.bridge.remove_bridged_accessory(accessory)
        except TargetError as exc:
            LOGGER.warning("[%s] unable to remove device from bridge: %s", device_id, exc)
            return False
        self.mapper.forget_device(device_id)
        LOGGER.info("[%s] removed device from bridge", device_id)
        return True

    def delete_device(self, device_id: str) -> None:
        self.remove_from_bridge(device_id)
        self.mapper.forget_device(device_id)
        self.ledger.delete(device_id)
        self.ledger.save()

    def device_updated(self, device: Device) -> bool:
        """Rebuild the accessory when a device's capabilities or class drifted.

        Returns whether the device was (re-)added.
        """
        if self.is_ignored(device):
            return False
        if not device.ready or device.capability_values is None:
            LOGGER.info("[%s] device incomplete, skipping further handling for now", device.id)
            return False
        handle = self.mapper.get_device(device.id)
        if self.get_accessory(device.id) is not None:
            if handle is not None and not handle.has_drifted(device):
                return False
            LOGGER.info("[%s] will have to add device again as new", device.id)
            self.remove_from_bridge(device.id)
        elif handle is not None and handle.has_drifted(device):
            self.mapper.forget_device(device.id)

        if self.add_device(device):
            self.ledger.save()
            return True
        return False

    def expose_device(self, device: Device) -> None:
        if not device.available:
            self.ledger.set(device.id, True)
            self.ledger.save()
            raise DeviceUnavailableError(f"Device '{device.id}' is unavailable; it will be exposed once available.")

        previous = self.ledger.get(device.id)
        self.ledger.set(device.id, True)
        self.ledger.save()

        if not self.add_device(device):
            if previous is None:
                self.ledger.delete(device.id)
            else:
                self.ledger.set(device.id, previous)
            self.ledger.save()
            if len(self.bridge.bridged_accessories) >= self.bridge.device_limit:
                raise DeviceLimitReachedError(
                    f"Bridge already holds {self.bridge.device_limit} accessories"
                )
            raise ExposeError(f"Unable to expose device '{device.id}'")

    def unexpose_device(self, device_id: str) -> None:
        if self.get_accessory(device_id) is not None and not self.remove_from_bridge(device_id):
            raise UnexposeError(f"Unable to remove device '{device_id}' from the bridge")
        self.ledger.set(device_id, False)
        self.ledger.save()

    def set_exposure_all(self, exposed: bool) -> None:
        LOGGER.info("setting exposure state for all devices to %s", exposed)
        self.ledger.set_all(exposed)

    def device_states(self, devices: Iterable[Device]) -> list[DeviceState]:
        return [
            DeviceState(
                id=device.id,
                name=device.name,
                supported=self.mapper.can_map_device(device),
                exposed=self.ledger.get(device.id) is not False,
            )
            for device in devices
        ]

    def shutdown(self) -> None:
        LOGGER.info("saving exposure ledger")
        self.ledger.save()
        self.mapper.forget_all()
