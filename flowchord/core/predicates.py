"""Comparison operators for filter steps and condition nodes."""

from __future__ import annotations

import math
import operator
from typing import Any, Callable, Literal

FilterOperator = Literal[
    "equals",
    "notEquals",
    "greaterThan",
    "lessThan",
    "contains",
    "startsWith",
    "endsWith",
]

ConditionOperator = Literal[
    "equals",
    "notEquals",
    "greaterThan",
    "lessThan",
    "contains",
]


def _as_number(value: Any) -> float | None:
    """Numeric value of a number or numeric string, else ``None``."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
    return None if math.isnan(number) else number


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    """Strings compare as text with each other, anything else as numbers.

    Operands that do not parse as numbers never satisfy an ordering.
    """

    def check(left: Any, right: Any) -> bool:
        if isinstance(left, str) and isinstance(right, str):
            return compare(left, right)
        left_number, right_number = _as_number(left), _as_number(right)
        if left_number is None or right_number is None:
            return False
        return compare(left_number, right_number)

    return check


def _equals(left: Any, right: Any) -> bool:
    # Booleans only equal booleans, so True does not match 1
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equals": _equals,
    "notEquals": lambda left, right: not _equals(left, right),
    "greaterThan": _ordered(operator.gt),
    "lessThan": _ordered(operator.lt),
    "contains": lambda left, right: _as_text(right) in _as_text(left),
    "startsWith": lambda left, right: _as_text(left).startswith(_as_text(right)),
    "endsWith": lambda left, right: _as_text(left).endswith(_as_text(right)),
}


def compare(left: Any, op: str, right: Any) -> bool:
    """Apply a named operator.

    Raises:
        ValueError: If the operator is unknown.
    """
    try:
        check = OPERATORS[op]
    except KeyError:
        raise ValueError(f"Unknown operator: {op}") from None
    return check(left, right)
