"""Helpers for the dynamically typed values that flow through templates and
conditions.

Workflow data comes from YAML and step outputs, so lookups have to tolerate
arbitrary shapes. A missing path resolves to ``UNDEFINED`` rather than
raising, and ``UNDEFINED`` is kept distinct from ``None`` so that conditions
can tell an absent variable from an explicit ``null``.
"""

from __future__ import annotations

import json
import math
from typing import Any


class _Undefined:
    _instance: "_Undefined | None" = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "undefined"

    def __reduce__(self) -> str:
        return "UNDEFINED"


UNDEFINED: Any = _Undefined()


def is_nullish(value: Any) -> bool:
    return value is None or value is UNDEFINED


def _child(current: Any, key: str) -> Any:
    if isinstance(current, dict):
        return current.get(key, UNDEFINED)
    if isinstance(current, (list, tuple)) and key == "length":
        return len(current)
    if isinstance(current, (list, tuple)) and key.isdigit():
        index = int(key)
        return current[index] if index < len(current) else UNDEFINED
    return UNDEFINED


def resolve_path(path: str, data: Any) -> Any:
    """Walk ``data`` along the dotted ``path``.

    ``"."`` returns ``data`` itself. Any missing segment, or a segment that
    lands on a scalar, yields ``UNDEFINED``.
    """
    if path == ".":
        return data

    current = data
    for key in path.split("."):
        if is_nullish(current):
            return UNDEFINED
        current = _child(current, key)
    return current


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def js_truthy(value: Any) -> bool:
    """Truthiness used by condition expressions.

    ``False``, ``0``, ``NaN``, ``''``, ``None`` and ``UNDEFINED`` are falsy;
    every container, empty or not, is truthy.
    """
    if is_nullish(value) or value is False:
        return False
    if is_number(value):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def template_truthy(value: Any) -> bool:
    """Truthiness used by template ``if`` blocks: empty lists are falsy too."""
    if isinstance(value, list) and not value:
        return False
    return js_truthy(value)


def stringify(value: Any) -> str:
    """Convert ``value`` to text the way workflow authors expect to see it."""
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if is_nullish(item) else stringify(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return str(value)


__all__ = [
    "UNDEFINED",
    "is_nullish",
    "is_number",
    "js_truthy",
    "resolve_path",
    "stringify",
    "template_truthy",
]
