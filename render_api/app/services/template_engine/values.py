"""Formatting, truthiness and type naming for template data values."""

from __future__ import annotations

import math
from typing import Any

from render_api.app.services.safe_values import SafeValue


def type_name(value: Any) -> str:
    if value is None:
        return "nil"
    if isinstance(value, SafeValue):
        return f"{value.kind.value}-safe string"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float64"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "slice"
    if isinstance(value, dict):
        return "map"
    return type(value).__name__


def format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def stringify(value: Any) -> str:
    """
    Render a value the way the template prints it.

    Missing values print as the empty string. JSON numbers that happen
    to be integral print without a fractional part.
    """
    if value is None:
        return ""
    if isinstance(value, SafeValue):
        return value.text
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(stringify(item) for item in value) + "]"
    if isinstance(value, dict):
        pairs = sorted(value.items(), key=lambda item: str(item[0]))
        return "map[" + " ".join(f"{k}:{stringify(v)}" for k, v in pairs) + "]"
    return str(value)


def truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, SafeValue):
        return bool(value.text)
    if isinstance(value, (bool, int, float, str, list, tuple, dict)):
        return bool(value)
    return True
