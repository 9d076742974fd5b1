"""Binding of device capabilities to target services and characteristics.

For every capability map registered on a device handle, in registration
order, the binder walks the device's visible capability groups, resolves (or
lazily creates) one target service per group and installs:

- a read handler answering from the device's current capability value,
- a debounced write handler forwarding converted values to the device,
- a debounced subscription pushing device value changes into the target,
- an optional change listener feeding the map's `on_update` hook.

Failures local to one capability or sub-feature are logged and skipped; the
rest of the device keeps binding.
"""

from __future__ import annotations

import inspect
import logging
from functools import partial
from typing import TYPE_CHECKING, Any, Protocol

from capbridge.core.debounce import Debouncer
from capbridge.core.errors import MissingValueError, TargetError
from capbridge.core.grouping import flatten_groups, full_capability, group_capabilities
from capbridge.core.model import NO_VALUE, Binding, BindingContext, CapabilityMap, CharacteristicChange, Converter
from capbridge.sources.base import Subscription
from capbridge.targets.base import Accessory, AdaptiveLightingFactory, Characteristic, Service

if TYPE_CHECKING:
    from capbridge.core.handle import MappedDevice

LOGGER = logging.getLogger(__name__)

DEFAULT_SUBTYPE = "default"
BRIGHTNESS = "Brightness"
COLOR_TEMPERATURE = "ColorTemperature"


class Cancellable(Protocol):
    def cancel(self) -> None:
        """Stop all further callbacks."""


class CapabilitySubscription:
    """A device value subscription paired with the debouncer it feeds."""

    def __init__(self, subscription: Subscription, debouncer: Debouncer) -> None:
        self._subscription = subscription
        self._debouncer = debouncer

    def cancel(self) -> None:
        self._debouncer.cancel()
        self._subscription.destroy()


def _log(handle: MappedDevice, indent: int, message: str, *args: Any) -> None:
    LOGGER.debug("[%s]%s " + message, handle.name, " " * indent, *args)


async def _convert(converter: Converter, value: Any, context: BindingContext) -> Any:
    result = converter(value, context)
    if inspect.isawaitable(result):
        result = await result
    return result


def bind(
    accessory: Accessory,
    handle: MappedDevice,
    *,
    adaptive_lighting: AdaptiveLightingFactory | None = None,
) -> Accessory:
    """Bind every map of `handle` onto `accessory`.

    Idempotent per handle: once the handle holds an accessory, that accessory
    is returned and nothing new is created.
    """
    if handle.accessory is not None:
        return handle.accessory
    handle.attach(accessory)

    groups = group_capabilities(handle.device.ui_capabilities)
    for capability_map in handle.maps:
        _log(handle, 0, "map '%s':", capability_map.name)
        services = _bind_map(accessory, handle, capability_map, groups)
        if capability_map.adaptive_lighting:
            for service in services:
                _attach_adaptive_lighting(accessory, handle, service, adaptive_lighting)
    return accessory


def _bind_map(
    accessory: Accessory,
    handle: MappedDevice,
    capability_map: CapabilityMap,
    groups: dict[str, list[str]],
) -> list[Service]:
    services: list[Service] = []
    selected = groups if capability_map.group else flatten_groups(groups)
    for group, capabilities in selected.items():
        _log(handle, 2, "- group '%s' [%s]", group or "DEFAULT", ",".join(capabilities))
        service: Service | None = None
        for base in capabilities:
            found = capability_map.bindings_for(base)
            if found is None:
                continue
            bindings, is_trigger = found
            capability = full_capability(base, group)

            if service is None:
                try:
                    service = _resolve_service(accessory, handle, capability_map, group)
                except TargetError as exc:
                    LOGGER.warning("[%s] unable to create %s service for group '%s': %s",
                                   handle.name, capability_map.service, group or "DEFAULT", exc)
                    break
                if service not in services:
                    services.append(service)

            for binding in bindings:
                try:
                    _bind_capability(handle, capability_map, service, capability, binding, is_trigger)
                except Exception:
                    LOGGER.exception("[%s] unable to bind capability %s", handle.name, capability)
    return services


def _resolve_service(
    accessory: Accessory,
    handle: MappedDevice,
    capability_map: CapabilityMap,
    group: str,
) -> Service:
    subtype = group or DEFAULT_SUBTYPE
    if capability_map.group:
        service = accessory.get_service(capability_map.service, subtype)
    else:
        service = accessory.get_service(capability_map.service)
    if service is not None:
        _log(handle, 4, "- existing service %s", capability_map.service)
        return service

    _log(handle, 4, "- new service %s", capability_map.service)
    service = accessory.add_service(capability_map.service, handle.name, subtype)
    if capability_map.on_service is not None:
        try:
            capability_map.on_service(service, device=handle.device)
        except Exception:
            LOGGER.exception("[%s] on_service hook of map '%s' failed", handle.name, capability_map.id)
    return service


def _bind_capability(
    handle: MappedDevice,
    capability_map: CapabilityMap,
    service: Service,
    capability: str,
    binding: Binding,
    is_trigger: bool,
) -> None:
    device = handle.device
    verbatim = capability in device.capabilities
    getter = binding.get.select(verbatim) if binding.get is not None else None
    setter = binding.set.select(verbatim) if binding.set is not None else None

    characteristics: list[Characteristic] = []
    for characteristic_type in binding.characteristics:
        characteristic = service.get_characteristic(characteristic_type)
        _log(handle, 6, "- [%s] %s [%s] (debounce %sms)",
             capability, "triggers" if is_trigger else "->", characteristic_type, binding.debounce_ms)
        context = BindingContext(device=device, service=service, characteristic=characteristic_type,
                                 capability=capability)

        if capability_map.on_update is not None:
            characteristic.on_change(partial(_notify_update, capability_map, context))

        if not is_trigger:
            if getter is not None:
                characteristic.on_read(partial(_read, handle, characteristic, getter, context))
            if setter is not None:
                writer = Debouncer(
                    partial(_write, handle, setter, context),
                    binding.debounce_ms,
                    name=f"{handle.name}:{capability}->{characteristic_type}",
                )
                handle.track(writer)
                characteristic.on_write(writer)

        characteristics.append(characteristic)

    updater = Debouncer(
        partial(_push, handle, service, capability, characteristics, getter),
        binding.debounce_ms,
        name=f"{handle.name}:{capability}",
    )
    subscription = device.on_capability_value(capability, updater)
    handle.track(CapabilitySubscription(subscription, updater))


def _notify_update(capability_map: CapabilityMap, context: BindingContext, old_value: Any, new_value: Any) -> None:
    change = CharacteristicChange(
        characteristic=context.characteristic,
        old_value=old_value,
        new_value=new_value,
        service=context.service,
        device=context.device,
        capability=context.capability,
    )
    try:
        capability_map.on_update(change)
    except Exception:
        LOGGER.exception("on_update hook of map '%s' failed for %s", capability_map.id, context.capability)


async def _read(
    handle: MappedDevice,
    characteristic: Characteristic,
    getter: Converter,
    context: BindingContext,
) -> Any:
    raw_value = handle.device.capability_values.get(context.capability)
    if raw_value is None:
        raise MissingValueError(context.capability)
    value = await _convert(getter, raw_value, context)
    if value is NO_VALUE:
        return characteristic.value
    return characteristic.validate(value)


async def _write(handle: MappedDevice, setter: Converter, context: BindingContext, raw_value: Any) -> None:
    value = await _convert(setter, raw_value, context)
    try:
        await handle.device.request_capability_value(context.capability, value)
    except Exception as exc:
        LOGGER.warning("[%s] device rejected %s=%r: %s", handle.name, context.capability, value, exc)
    handle.update_capability(context.capability, value)


async def _push(
    handle: MappedDevice,
    service: Service,
    capability: str,
    characteristics: list[Characteristic],
    getter: Converter | None,
    raw_value: Any,
) -> None:
    _log(handle, 0, "capability update - capability=%s raw=%r", capability, raw_value)
    if getter is not None:
        for characteristic in characteristics:
            context = BindingContext(device=handle.device, service=service, characteristic=characteristic.type,
                                     capability=capability)
            value = await _convert(getter, raw_value, context)
            if value is NO_VALUE:
                continue
            characteristic.update_value(characteristic.validate(value))
    handle.update_capability(capability, raw_value)


def _attach_adaptive_lighting(
    accessory: Accessory,
    handle: MappedDevice,
    service: Service,
    factory: AdaptiveLightingFactory | None,
) -> None:
    if factory is None:
        _log(handle, 4, "- Adaptive Lighting skipped: no controller available")
        return
    if not (service.has_characteristic(BRIGHTNESS) and service.has_characteristic(COLOR_TEMPERATURE)):
        _log(handle, 4, "- Adaptive Lighting skipped: missing %s or %s", BRIGHTNESS, COLOR_TEMPERATURE)
        return
    device = handle.device
    try:
        controller = factory(
            service,
            controller_name=f"{handle.name} Adaptive Lighting",
            manufacturer=str(getattr(device, "driver_id", "") or ""),
            model=handle.device_class,
            serial_number=device.id,
        )
        accessory.configure_controller(controller)
    except Exception:
        LOGGER.exception("[%s] error enabling Adaptive Lighting", handle.name)
        return
    _log(handle, 4, "- Adaptive Lighting enabled")
