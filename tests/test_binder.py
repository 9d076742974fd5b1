from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any

import pytest

from capbridge.core.conversions import fraction_to_mireds, to_bool
from capbridge.core.errors import MissingValueError
from capbridge.core.handle import MappedDevice, accessory_uuid
from capbridge.core.model import NO_VALUE, Binding, CapabilityMap, CharacteristicChange, Variants
from capbridge.targets.memory import AdaptiveLightingController, create_accessory


class FakeSubscription:
    def __init__(self, capability: str, callback) -> None:
        self.capability = capability
        self.callback = callback
        self.destroyed = False

    def destroy(self) -> None:
        self.destroyed = True


class FakeDevice:
    def __init__(
        self,
        *,
        values: dict[str, Any],
        ui: list[str] | None = None,
        capabilities: list[str] | None = None,
        device_class: str = "light",
        fail_writes: bool = False,
    ) -> None:
        self.id = "dev-1"
        self.name = "Desk Lamp"
        self.device_class = device_class
        self.driver_id = "homey:app:com.example.lights"
        self.zone_name = "Office"
        self.available = True
        self.ready = True
        self.capability_values = dict(values)
        self.capabilities = list(capabilities if capabilities is not None else values)
        self.ui_capabilities = list(ui if ui is not None else self.capabilities)
        self.fail_writes = fail_writes
        self.writes: list[tuple[str, Any]] = []
        self.subscriptions: list[FakeSubscription] = []

    async def request_capability_value(self, capability: str, value: Any) -> None:
        self.writes.append((capability, value))
        if self.fail_writes:
            raise RuntimeError("device offline")

    def on_capability_value(self, capability: str, callback) -> FakeSubscription:
        subscription = FakeSubscription(capability, callback)
        self.subscriptions.append(subscription)
        return subscription

    def emit(self, capability: str, value: Any) -> None:
        for subscription in self.subscriptions:
            if subscription.capability == capability and not subscription.destroyed:
                subscription.callback(value)


def _dim_binding(debounce_ms: int = 0) -> Binding:
    return Binding(
        characteristics=("Brightness",),
        get=Variants(lambda value, ctx: round(value * 100)),
        set=Variants(lambda value, ctx: value / 100),
        debounce_ms=debounce_ms,
    )


def _dimmer_map(**overrides: Any) -> CapabilityMap:
    base = CapabilityMap(
        id="dimmer",
        name="Dimmer",
        service="Lightbulb",
        classes=("light",),
        group=False,
        required={"dim": (_dim_binding(),)},
    )
    return replace(base, **overrides)


def _brightness(accessory):
    return accessory.get_service("Lightbulb").get_characteristic("Brightness")


def test_read_applies_getter_to_device_value() -> None:
    device = FakeDevice(values={"dim": 0.4}, ui=["dim"])
    accessory = MappedDevice(device, _dimmer_map()).accessorize(create_accessory)

    assert asyncio.run(_brightness(accessory).read()) == 40


def test_read_without_device_value_fails() -> None:
    device = FakeDevice(values={}, ui=["dim"], capabilities=["dim"])
    accessory = MappedDevice(device, _dimmer_map()).accessorize(create_accessory)

    with pytest.raises(MissingValueError):
        asyncio.run(_brightness(accessory).read())


def test_read_result_is_clamped() -> None:
    device = FakeDevice(values={"dim": 1.7}, ui=["dim"])
    accessory = MappedDevice(device, _dimmer_map()).accessorize(create_accessory)

    assert asyncio.run(_brightness(accessory).read()) == 100


def test_write_converts_sends_and_caches() -> None:
    device = FakeDevice(values={"dim": 0.4}, ui=["dim"])
    accessory = MappedDevice(device, _dimmer_map()).accessorize(create_accessory)

    async def scenario() -> None:
        await _brightness(accessory).write(75)
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert device.writes == [("dim", 0.75)]
    assert device.capability_values["dim"] == 0.75


def test_rejected_write_still_updates_cache() -> None:
    device = FakeDevice(values={"dim": 0.4}, ui=["dim"], fail_writes=True)
    accessory = MappedDevice(device, _dimmer_map()).accessorize(create_accessory)

    async def scenario() -> None:
        await _brightness(accessory).write(20)
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert device.writes == [("dim", 0.2)]
    assert device.capability_values["dim"] == 0.2


def test_device_update_pushes_into_characteristic() -> None:
    device = FakeDevice(values={"dim": 0.4}, ui=["dim"])
    accessory = MappedDevice(device, _dimmer_map()).accessorize(create_accessory)

    async def scenario() -> None:
        device.emit("dim", 0.55)
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert _brightness(accessory).value == 55
    assert device.capability_values["dim"] == 0.55


def test_debounced_updates_only_deliver_latest_value() -> None:
    changes: list[CharacteristicChange] = []
    capability_map = _dimmer_map(required={"dim": (_dim_binding(debounce_ms=300),)}, on_update=changes.append)
    device = FakeDevice(values={"dim": 0.0}, ui=["dim"])
    accessory = MappedDevice(device, capability_map).accessorize(create_accessory)

    async def scenario() -> None:
        device.emit("dim", 0.2)
        device.emit("dim", 0.9)
        await asyncio.sleep(0.05)
        assert changes == []
        await asyncio.sleep(0.4)

    asyncio.run(scenario())
    assert [(c.old_value, c.new_value) for c in changes] == [(0, 90)]
    assert changes[0].capability == "dim"
    assert changes[0].characteristic == "Brightness"
    assert _brightness(accessory).value == 90


def test_no_value_sentinel_skips_characteristic_update() -> None:
    binding = Binding(
        characteristics=("Brightness",),
        get=Variants(lambda value, ctx: NO_VALUE if value is None else round(value * 100)),
    )
    device = FakeDevice(values={"dim": 0.4}, ui=["dim"])
    accessory = MappedDevice(device, _dimmer_map(required={"dim": (binding,)})).accessorize(create_accessory)

    async def scenario() -> None:
        device.emit("dim", 0.3)
        await asyncio.sleep(0.01)
        device.emit("dim", None)
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert _brightness(accessory).value == 30
    assert device.capability_values["dim"] is None


def test_accessorize_is_idempotent() -> None:
    device = FakeDevice(values={"dim": 0.4}, ui=["dim"])
    handle = MappedDevice(device, _dimmer_map())

    first = handle.accessorize(create_accessory)
    second = handle.accessorize(create_accessory)

    assert first is second
    assert len(first.services_of("Lightbulb")) == 1
    assert len(device.subscriptions) == 1


def test_accessory_information_and_identity() -> None:
    device = FakeDevice(values={"dim": 0.4}, ui=["dim"])
    accessory = MappedDevice(device, _dimmer_map()).accessorize(create_accessory)

    information = accessory.get_service("AccessoryInformation")
    assert accessory.uuid == accessory_uuid("dev-1")
    assert information.get_characteristic("Manufacturer").value == "com.example.lights"
    assert information.get_characteristic("Model").value == "Desk Lamp (Office)"
    assert information.get_characteristic("SerialNumber").value == "dev-1"


def test_unbound_capabilities_are_skipped() -> None:
    device = FakeDevice(values={"dim": 0.4, "measure_power": 12}, ui=["measure_power", "dim"])
    accessory = MappedDevice(device, _dimmer_map()).accessorize(create_accessory)

    assert [s.type for s in accessory.services] == ["AccessoryInformation", "Lightbulb"]
    assert [s.capability for s in device.subscriptions] == ["dim"]


def test_grouped_map_creates_service_per_group() -> None:
    device = FakeDevice(
        values={"dim": 0.1, "dim.2": 0.2},
        ui=["dim", "dim.2"],
    )
    accessory = MappedDevice(device, _dimmer_map(group=True)).accessorize(create_accessory)

    services = accessory.services_of("Lightbulb")
    assert [s.subtype for s in services] == ["default", "2"]
    assert asyncio.run(services[1].get_characteristic("Brightness").read()) == 20


def test_flattened_map_uses_one_service() -> None:
    device = FakeDevice(
        values={"dim": 0.1, "dim.2": 0.2, "onoff.2": True},
        ui=["dim", "dim.2", "onoff.2"],
    )
    capability_map = _dimmer_map(
        optional={"onoff": (Binding(characteristics=("On",), get=Variants(to_bool), set=Variants(to_bool)),)},
    )
    accessory = MappedDevice(device, capability_map).accessorize(create_accessory)

    services = accessory.services_of("Lightbulb")
    assert len(services) == 1
    assert sorted(s.capability for s in device.subscriptions) == ["dim", "onoff.2"]
    assert asyncio.run(services[0].get_characteristic("On").read()) is True


def test_fallback_converter_used_for_synonym_capability() -> None:
    binding = Binding(
        characteristics=("Brightness",),
        get=Variants(lambda value, ctx: round(value * 100), lambda value, ctx: value),
    )
    device = FakeDevice(values={"dim": 40}, ui=["dim"], capabilities=["onoff"])
    accessory = MappedDevice(device, _dimmer_map(required={}, optional={"dim": (binding,)})).accessorize(
        create_accessory
    )

    assert asyncio.run(_brightness(accessory).read()) == 40


def test_single_converter_also_serves_synonyms() -> None:
    device = FakeDevice(values={"dim": 0.4}, ui=["dim"], capabilities=["onoff"])
    accessory = MappedDevice(device, _dimmer_map(required={}, optional={"dim": (_dim_binding(),)})).accessorize(
        create_accessory
    )

    assert asyncio.run(_brightness(accessory).read()) == 40


def test_trigger_binding_has_no_read_or_write_handlers() -> None:
    binding = Binding(characteristics=("On",), get=Variants(to_bool), set=Variants(to_bool))
    capability_map = CapabilityMap(
        id="button",
        name="Button",
        service="Switch",
        classes=("button",),
        triggers={"button": (binding,)},
    )
    device = FakeDevice(values={}, ui=["button"], capabilities=["button"], device_class="button")
    accessory = MappedDevice(device, capability_map).accessorize(create_accessory)
    characteristic = accessory.get_service("Switch").get_characteristic("On")

    async def scenario() -> None:
        assert await characteristic.read() is False
        await characteristic.write(True)
        await asyncio.sleep(0.01)
        device.emit("button", 1)
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert device.writes == []
    assert characteristic.value is True
    assert device.capability_values["button"] == 1


def test_required_binding_wins_over_trigger() -> None:
    capability_map = _dimmer_map(triggers={"dim": (Binding(characteristics=("Hue",)),)})
    device = FakeDevice(values={"dim": 0.4}, ui=["dim"])
    accessory = MappedDevice(device, capability_map).accessorize(create_accessory)

    service = accessory.get_service("Lightbulb")
    assert service.has_characteristic("Brightness")
    assert not service.has_characteristic("Hue")


def test_on_service_hook_runs_once_per_created_service() -> None:
    created: list[tuple[str, str]] = []

    def on_service(service, *, device) -> None:
        created.append((service.subtype, device.id))

    device = FakeDevice(values={"dim": 0.1, "dim.2": 0.2}, ui=["dim", "dim.2"])
    handle = MappedDevice(device, _dimmer_map(group=True, on_service=on_service))
    handle.accessorize(create_accessory)
    handle.accessorize(create_accessory)

    assert created == [("default", "dev-1"), ("2", "dev-1")]


def test_multiple_maps_bind_in_registration_order() -> None:
    switch_map = CapabilityMap(
        id="switch",
        name="Switch",
        service="Switch",
        classes=("light",),
        required={"onoff": (Binding(characteristics=("On",), get=Variants(to_bool), set=Variants(to_bool)),)},
    )
    device = FakeDevice(values={"dim": 0.4, "onoff": False}, ui=["dim", "onoff"])
    handle = MappedDevice(device, _dimmer_map())
    handle.add_map(switch_map)
    accessory = handle.accessorize(create_accessory)

    assert [s.type for s in accessory.services] == ["AccessoryInformation", "Lightbulb", "Switch"]
    assert [s.capability for s in device.subscriptions] == ["dim", "onoff"]


def _temperature_map(**overrides: Any) -> CapabilityMap:
    temperature = Binding(
        characteristics=("ColorTemperature",),
        get=Variants(fraction_to_mireds),
    )
    return _dimmer_map(
        adaptive_lighting=True,
        optional={"light_temperature": (temperature,)},
        **overrides,
    )


def test_adaptive_lighting_attached_when_characteristics_present() -> None:
    device = FakeDevice(values={"dim": 0.4, "light_temperature": 0.5}, ui=["dim", "light_temperature"])
    handle = MappedDevice(device, _temperature_map())
    accessory = handle.accessorize(create_accessory, adaptive_lighting=AdaptiveLightingController)

    assert len(accessory.controllers) == 1
    controller = accessory.controllers[0]
    assert controller.service is accessory.get_service("Lightbulb")
    assert controller.controller_name == "Desk Lamp Adaptive Lighting"
    assert controller.serial_number == "dev-1"


def test_adaptive_lighting_skipped_without_color_temperature() -> None:
    device = FakeDevice(values={"dim": 0.4}, ui=["dim"])
    handle = MappedDevice(device, _temperature_map())
    accessory = handle.accessorize(create_accessory, adaptive_lighting=AdaptiveLightingController)

    assert accessory.controllers == []


def test_adaptive_lighting_failure_does_not_abort_binding() -> None:
    def broken(service, **kwargs):
        raise RuntimeError("controller unavailable")

    switch_map = CapabilityMap(
        id="switch",
        name="Switch",
        service="Switch",
        classes=("light",),
        required={"onoff": (Binding(characteristics=("On",), get=Variants(to_bool)),)},
    )
    device = FakeDevice(
        values={"dim": 0.4, "light_temperature": 0.5, "onoff": True},
        ui=["dim", "light_temperature", "onoff"],
    )
    handle = MappedDevice(device, _temperature_map())
    handle.add_map(switch_map)
    accessory = handle.accessorize(create_accessory, adaptive_lighting=broken)

    assert accessory.controllers == []
    assert accessory.get_service("Switch") is not None
    assert asyncio.run(_brightness(accessory).read()) == 40


class RefusingDevice(FakeDevice):
    def __init__(self, *, refuse: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.refuse = refuse

    def on_capability_value(self, capability: str, callback) -> FakeSubscription:
        if capability == self.refuse:
            raise RuntimeError("subscription refused")
        return super().on_capability_value(capability, callback)


def test_failing_capability_does_not_abort_remaining_bindings() -> None:
    capability_map = _dimmer_map(
        required={
            "onoff": (Binding(characteristics=("On",), get=Variants(to_bool)),),
            "dim": (_dim_binding(),),
        }
    )
    device = RefusingDevice(refuse="onoff", values={"onoff": True, "dim": 0.4}, ui=["onoff", "dim"])
    handle = MappedDevice(device, capability_map)

    accessory = handle.accessorize(create_accessory)

    assert asyncio.run(_brightness(accessory).read()) == 40
    assert [s.capability for s in device.subscriptions] == ["dim"]
    assert handle.accessorize(create_accessory) is accessory


def test_failing_on_update_hook_does_not_block_sync() -> None:
    def broken(change: CharacteristicChange) -> None:
        raise ValueError("hook failed")

    device = FakeDevice(values={"dim": 0.4}, ui=["dim"])
    accessory = MappedDevice(device, _dimmer_map(on_update=broken)).accessorize(create_accessory)

    async def scenario() -> None:
        device.emit("dim", 0.9)
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert _brightness(accessory).value == 90
    assert device.capability_values["dim"] == 0.9


def test_cleanup_cancels_subscriptions_and_pending_updates() -> None:
    capability_map = _dimmer_map(required={"dim": (_dim_binding(debounce_ms=50),)})
    device = FakeDevice(values={"dim": 0.4}, ui=["dim"])
    handle = MappedDevice(device, capability_map)
    accessory = handle.accessorize(create_accessory)

    async def scenario() -> None:
        device.emit("dim", 0.9)
        await _brightness(accessory).write(10)
        handle.cleanup()
        await asyncio.sleep(0.15)

    asyncio.run(scenario())
    assert all(s.destroyed for s in device.subscriptions)
    assert handle.subscriptions == ()
    assert device.writes == []
    assert device.capability_values["dim"] == 0.4


def test_drift_detection_compares_capabilities_and_class() -> None:
    device = FakeDevice(values={"dim": 0.4, "onoff": True}, ui=["dim"])
    handle = MappedDevice(device, _dimmer_map())

    same = FakeDevice(values={"onoff": True, "dim": 0.1})
    assert not handle.has_drifted(same)
    extra = FakeDevice(values={"onoff": True, "dim": 0.1, "light_hue": 0.2})
    assert handle.has_drifted(extra)
    reclassed = FakeDevice(values={"onoff": True, "dim": 0.1}, device_class="socket")
    assert handle.has_drifted(reclassed)
