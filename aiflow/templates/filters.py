"""Built-in template filters.

Each filter receives the current value plus the string arguments written in
the template (``truncate(20)`` passes ``"20"``) and returns text.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

from ..utils.values import is_nullish, stringify

TemplateFilter = Callable[..., str]


def uppercase(value: Any) -> str:
    return stringify(value).upper()


def lowercase(value: Any) -> str:
    return stringify(value).lower()


def capitalize(value: Any) -> str:
    text = stringify(value)
    return text[:1].upper() + text[1:].lower()


def trim(value: Any) -> str:
    return stringify(value).strip()


def truncate(value: Any, length: str = "50") -> str:
    text = stringify(value)
    limit = int(length)
    return text[:limit] + "..." if len(text) > limit else text


def default(value: Any, fallback: str = "") -> str:
    if is_nullish(value) or value == "":
        return fallback
    return stringify(value)


FILTERS: Dict[str, TemplateFilter] = {
    "uppercase": uppercase,
    "lowercase": lowercase,
    "capitalize": capitalize,
    "trim": trim,
    "truncate": truncate,
    "default": default,
}
