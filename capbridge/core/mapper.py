"""Device-to-capability-map matching and mapped device bookkeeping."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from capbridge.core.grouping import split_capability
from capbridge.core.handle import MappedDevice
from capbridge.core.model import CapabilityMap
from capbridge.sources.base import Device

LOGGER = logging.getLogger(__name__)


def capability_bases(capabilities: Iterable[str]) -> set[str]:
    return {split_capability(capability)[0] for capability in capabilities}


def applicable_maps(device: Device, maps: Sequence[CapabilityMap]) -> list[CapabilityMap]:
    bases = capability_bases(device.capabilities)
    return [m for m in maps if m.applies_to(device.device_class, bases)]


class DeviceMapper:
    def __init__(self, maps: Sequence[CapabilityMap] = ()) -> None:
        self._maps: list[CapabilityMap] = list(maps)
        self._devices: dict[str, MappedDevice] = {}

    @property
    def maps(self) -> tuple[CapabilityMap, ...]:
        return tuple(self._maps)

    def register(self, capability_map: CapabilityMap) -> None:
        self._maps.append(capability_map)

    def can_map_device(self, device: Device) -> bool:
        return bool(applicable_maps(device, self._maps))

    def map_device(self, device: Device) -> MappedDevice | None:
        """Return the handle for `device`, or None when no map applies."""
        existing = self._devices.get(device.id)
        if existing is not None:
            return existing

        maps = applicable_maps(device, self._maps)
        if not maps:
            return None

        handle = MappedDevice(device, maps[0])
        for capability_map in maps[1:]:
            handle.add_map(capability_map)
        LOGGER.debug("[%s] mapped with %s", handle, ", ".join(m.id for m in maps))
        self._devices[device.id] = handle
        return handle

    def get_device(self, device_id: str) -> MappedDevice | None:
        return self._devices.get(device_id)

    def forget_device(self, device_id: str) -> bool:
        handle = self._devices.pop(device_id, None)
        if handle is None:
            return False
        handle.cleanup()
        return True

    def forget_all(self) -> None:
        for device_id in list(self._devices):
            self.forget_device(device_id)
