from __future__ import annotations

from capbridge.core.grouping import flatten_groups, full_capability, group_capabilities, split_capability


def test_split_capability_on_first_dot() -> None:
    assert split_capability("dim") == ("dim", "")
    assert split_capability("dim.left") == ("dim", "left")
    assert split_capability("measure_power.a.b") == ("measure_power", "a.b")


def test_full_capability_round_trips_default_group() -> None:
    assert full_capability("dim", "") == "dim"
    assert full_capability("dim", "2") == "dim.2"


def test_group_capabilities_preserves_insertion_order() -> None:
    groups = group_capabilities(["onoff.right", "onoff", "dim", "dim.right", "onoff.left"])
    assert list(groups) == ["right", "", "left"]
    assert groups["right"] == ["onoff", "dim"]
    assert groups[""] == ["onoff", "dim"]
    assert groups["left"] == ["onoff"]


def test_single_dim_capability_lands_in_default_group() -> None:
    groups = flatten_groups(group_capabilities(["dim"]))
    assert groups == {"": ["dim"]}


def test_flatten_prefers_shortest_group() -> None:
    groups = {
        "long": ["onoff", "dim", "light_hue"],
        "": ["onoff"],
        "ab": ["dim", "measure_power"],
    }
    flattened = flatten_groups(groups)
    assert list(flattened) == ["", "ab", "long"]
    assert flattened[""] == ["onoff"]
    assert flattened["ab"] == ["dim", "measure_power"]
    assert flattened["long"] == ["light_hue"]


def test_flatten_keeps_input_order_for_equal_length_groups() -> None:
    groups = {"b": ["onoff", "dim"], "a": ["onoff", "light_hue"]}
    flattened = flatten_groups(groups)
    assert list(flattened) == ["b", "a"]
    assert flattened["b"] == ["onoff", "dim"]
    assert flattened["a"] == ["light_hue"]


def test_flatten_assigns_each_capability_once() -> None:
    groups = group_capabilities(["onoff", "onoff.1", "onoff.12", "dim.12", "dim.1", "alarm.12"])
    flattened = flatten_groups(groups)
    seen = [capability for capabilities in flattened.values() for capability in capabilities]
    assert sorted(seen) == sorted(set(seen))
    assert set(seen) == {"onoff", "dim", "alarm"}
    assert flattened[""] == ["onoff"]
    assert flattened["1"] == ["dim"]
    assert flattened["12"] == ["alarm"]


def test_flatten_is_idempotent() -> None:
    groups = group_capabilities(["onoff.x", "dim", "onoff", "dim.yy", "light_hue.yy"])
    once = flatten_groups(groups)
    assert flatten_groups(once) == once
