"""Predicate evaluation shared by the if, filter and switch nodes."""

from __future__ import annotations

import re
from typing import Any

from .base import get_field


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def loose_equals(left: Any, right: Any) -> bool:
    """Numeric comparison when both sides are numeric-like, otherwise string comparison."""
    if left == right:
        return True
    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is not None and right_num is not None:
        return left_num == right_num
    if left is None or right is None:
        return False
    return str(left) == str(right)


def _compare(left: Any, right: Any) -> int | None:
    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is not None and right_num is not None:
        return (left_num > right_num) - (left_num < right_num)
    if left is None or right is None:
        return None
    left_str, right_str = str(left), str(right)
    return (left_str > right_str) - (left_str < right_str)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, dict)) and not value)


def evaluate_operator(operator: str, left: Any, right: Any) -> bool:
    """Apply one comparison operator. Unknown operators are false."""
    if operator in ("equals", "==", "equal"):
        return loose_equals(left, right)
    if operator in ("notEquals", "!=", "notEqual"):
        return not loose_equals(left, right)
    if operator == "contains":
        if isinstance(left, (list, tuple)):
            return any(loose_equals(item, right) for item in left)
        if isinstance(left, dict):
            return str(right) in left
        return left is not None and str(right) in str(left)
    if operator == "notContains":
        return not evaluate_operator("contains", left, right)
    if operator == "startsWith":
        return left is not None and str(left).startswith(str(right))
    if operator == "endsWith":
        return left is not None and str(left).endswith(str(right))
    if operator == "isEmpty":
        return _is_empty(left)
    if operator == "isNotEmpty":
        return not _is_empty(left)
    if operator == "regex":
        if left is None:
            return False
        try:
            return re.search(str(right), str(left)) is not None
        except re.error:
            return False

    ordering = {
        "greaterThan": lambda c: c > 0,
        ">": lambda c: c > 0,
        "lessThan": lambda c: c < 0,
        "<": lambda c: c < 0,
        "greaterThanOrEqual": lambda c: c >= 0,
        ">=": lambda c: c >= 0,
        "lessThanOrEqual": lambda c: c <= 0,
        "<=": lambda c: c <= 0,
    }
    if operator in ordering:
        comparison = _compare(left, right)
        return comparison is not None and ordering[operator](comparison)

    return False


def evaluate_condition(condition: dict[str, Any], subject: Any) -> bool:
    """
    Evaluate a `{field, operator, value}` predicate against a subject.

    `field` is a dot/index path into the subject; an empty field compares
    the subject itself.
    """
    field_path = condition.get("field") or ""
    operator = condition.get("operator") or "equals"
    left = get_field(subject, str(field_path)) if field_path else subject
    return evaluate_operator(operator, left, condition.get("value"))


def evaluate_conditions(
    conditions: list[dict[str, Any]],
    subject: Any,
    combine: str = "AND",
) -> bool:
    """AND/OR-combine a list of predicates. An empty list is true."""
    if not conditions:
        return True
    results = (evaluate_condition(c, subject) for c in conditions)
    if str(combine).upper() == "OR":
        return any(results)
    return all(results)
