"""Named value conversions referenced by declarative capability maps.

Getters turn a raw device value into a target value; setters go the other
way. Both receive `(value, context)` where context is a `BindingContext`.
"""

from __future__ import annotations

from typing import Any

from capbridge.core.model import NO_VALUE, Converter

MIREDS_MIN = 140
MIREDS_MAX = 500
SINGLE_PRESS = 0


def identity(value: Any, context: Any = None) -> Any:
    return value


def to_bool(value: Any, context: Any = None) -> bool:
    return bool(value)


def inverse_bool(value: Any, context: Any = None) -> bool:
    return not value


def fraction_to_percent(value: Any, context: Any = None) -> int:
    return round(float(value) * 100)


def percent_to_fraction(value: Any, context: Any = None) -> float:
    return float(value) / 100


def fraction_to_degrees(value: Any, context: Any = None) -> float:
    return float(value) * 360


def degrees_to_fraction(value: Any, context: Any = None) -> float:
    return float(value) / 360


def fraction_to_mireds(value: Any, context: Any = None) -> int:
    return round(MIREDS_MIN + float(value) * (MIREDS_MAX - MIREDS_MIN))


def mireds_to_fraction(value: Any, context: Any = None) -> float:
    return (float(value) - MIREDS_MIN) / (MIREDS_MAX - MIREDS_MIN)


def single_press(value: Any, context: Any = None) -> Any:
    return SINGLE_PRESS if value else NO_VALUE


GETTERS: dict[str, Converter] = {
    "identity": identity,
    "bool": to_bool,
    "boolean_inverse": inverse_bool,
    "percent": fraction_to_percent,
    "saturation": fraction_to_percent,
    "hue": fraction_to_degrees,
    "mireds": fraction_to_mireds,
    "single_press": single_press,
}

SETTERS: dict[str, Converter] = {
    "identity": identity,
    "bool": to_bool,
    "boolean_inverse": inverse_bool,
    "percent": percent_to_fraction,
    "saturation": percent_to_fraction,
    "hue": degrees_to_fraction,
    "mireds": mireds_to_fraction,
}
