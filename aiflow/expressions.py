"""Safe evaluator for step ``condition`` strings.

Supports comparisons (``==``, ``===``, ``!=``, ``!==``, ``<``, ``<=``, ``>``,
``>=``), ``&&``, ``||``, ``!``, parentheses, literals and dotted variable
paths. Nothing is ever handed to ``eval``.

Logical operators are handled by splitting the raw string on ``&&`` and then
``||`` before any parenthesis-aware step. ``a || b && c`` therefore reads as
``(a || b) && c``, and parentheses around a mixed ``&&``/``||`` group leave
unbalanced fragments that fail to resolve. Existing workflow definitions
depend on this behaviour.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from .errors import ValidationError
from .utils.values import (
    UNDEFINED,
    is_nullish,
    is_number,
    js_truthy,
    resolve_path,
    stringify,
)

_COMPARISON = re.compile(r"^(.+?)\s*(===|==|!==|!=|<=|>=|<|>)\s*(.+)$", re.DOTALL)
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")
_IDENTIFIER_PATH = re.compile(
    r"^[A-Za-z_$][A-Za-z0-9_$]*(\.[A-Za-z_$][A-Za-z0-9_$]*)*$"
)


class ExpressionError(Exception):
    """Raised internally when an expression cannot be resolved."""


def evaluate(expression: str, variables: Mapping[str, Any]) -> bool:
    """Evaluate ``expression`` against ``variables``.

    Raises:
        ValidationError: If the expression cannot be parsed or resolved.
    """
    try:
        return _evaluate(expression, variables)
    except ExpressionError as exc:
        raise ValidationError(f"Invalid condition: {expression} ({exc})") from exc


def _evaluate(expression: str, variables: Mapping[str, Any]) -> bool:
    expr = expression.strip()

    if "&&" in expr:
        results = [_evaluate(part, variables) for part in expr.split("&&")]
        return all(results)

    if "||" in expr:
        results = [_evaluate(part, variables) for part in expr.split("||")]
        return any(results)

    if expr.startswith("!"):
        return not _evaluate(expr[1:], variables)

    if _is_wrapped(expr):
        return _evaluate(expr[1:-1], variables)

    match = _COMPARISON.match(expr)
    if match:
        left, operator, right = match.groups()
        left_value = resolve_expression_value(left, variables)
        right_value = resolve_expression_value(right, variables)
        return _compare(operator, left_value, right_value)

    return js_truthy(resolve_expression_value(expr, variables))


def _is_wrapped(expr: str) -> bool:
    """Return ``True`` if the opening parenthesis closes at the last char."""
    if len(expr) < 3 or not (expr.startswith("(") and expr.endswith(")")):
        return False
    depth = 0
    for index, char in enumerate(expr):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index == len(expr) - 1
    return False


def _compare(operator: str, left: Any, right: Any) -> bool:
    if operator in ("==", "==="):
        return strict_equals(left, right)
    if operator in ("!=", "!=="):
        return not strict_equals(left, right)
    order = compare_values(left, right)
    if operator == "<":
        return order < 0
    if operator == "<=":
        return order <= 0
    if operator == ">":
        return order > 0
    return order >= 0


def resolve_expression_value(expr: str, variables: Mapping[str, Any]) -> Any:
    """Resolve a literal or a dotted variable path to its value."""
    token = expr.strip()

    if token == "true":
        return True
    if token == "false":
        return False
    if token == "null":
        return None
    if token == "undefined":
        return UNDEFINED

    if _NUMBER.match(token):
        return float(token) if "." in token else int(token)

    if len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"'):
        return token[1:-1]

    if _IDENTIFIER_PATH.match(token):
        return resolve_path(token, variables)

    raise ExpressionError(f"Cannot resolve expression value: {expr}")


def strict_equals(left: Any, right: Any) -> bool:
    """Identity-style equality: no coercion between types."""
    if left is UNDEFINED or right is UNDEFINED:
        return left is right
    if left is None or right is None:
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) and is_number(right):
        return left == right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return left is right
    return type(left) is type(right) and left == right


def compare_values(left: Any, right: Any) -> float:
    """Order two values; negative, zero or positive like ``cmp``."""
    if is_nullish(left) and is_nullish(right):
        return 0
    if is_nullish(left):
        return -1
    if is_nullish(right):
        return 1

    if is_number(left) and is_number(right):
        return left - right

    if isinstance(left, str) and isinstance(right, str):
        return _collate(left, right)

    return _collate(stringify(left), stringify(right))


def _collation_key(text: str) -> tuple[str, str]:
    # Letters compare case-insensitively first; on a tie lowercase sorts first.
    return text.casefold(), text.swapcase()


def _collate(left: str, right: str) -> int:
    left_key, right_key = _collation_key(left), _collation_key(right)
    return (left_key > right_key) - (left_key < right_key)


__all__ = [
    "compare_values",
    "evaluate",
    "resolve_expression_value",
    "strict_equals",
]
