"""Condition evaluation for automation triggers.

A rule's ``trigger_conditions`` is a flat map of event field to
expectation. Entries are AND-ed. An expectation is either a literal
(equality) or an operator object::

    {
        "new_status": "off_track",                  # equality
        "priority": {"$gt": 1, "$lt": 5},          # numeric range
        "rock_level": {"$in": ["company", "pillar"]},
        "owner_id": {"$exists": True},
        "title": {"$ne": "Draft"},
    }

Semantics:

- An empty or missing map always matches.
- ``$gt`` / ``$lt`` are false when the field is missing or not a number
  (booleans are not numbers), and when the operand is not a number.
- ``$exists`` treats a missing field and an explicit null alike.
- A missing field never equals a literal; ``$ne`` against a missing
  field holds.
- Unknown operator keys are ignored.

Pure functions only: no I/O, no logging.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

_MISSING = object()

OPERATORS = frozenset({"$eq", "$ne", "$in", "$gt", "$lt", "$exists"})


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _same(actual: Any, expected: Any) -> bool:
    """Strict equality: ``True`` does not equal ``1`` and missing equals nothing."""
    if actual is _MISSING:
        return False
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def _check_operators(actual: Any, predicate: Mapping[str, Any]) -> bool:
    if "$eq" in predicate and not _same(actual, predicate["$eq"]):
        return False
    if "$ne" in predicate and _same(actual, predicate["$ne"]):
        return False
    if "$in" in predicate and isinstance(predicate["$in"], (list, tuple, set, frozenset)):
        if not any(_same(actual, candidate) for candidate in predicate["$in"]):
            return False
    if "$gt" in predicate:
        bound = predicate["$gt"]
        if not (_is_number(actual) and _is_number(bound) and actual > bound):
            return False
    if "$lt" in predicate:
        bound = predicate["$lt"]
        if not (_is_number(actual) and _is_number(bound) and actual < bound):
            return False
    if "$exists" in predicate:
        exists = actual is not _MISSING and actual is not None
        if bool(predicate["$exists"]) != exists:
            return False
    return True


def evaluate(
    conditions: Mapping[str, Any] | None, event: Mapping[str, Any]
) -> bool:
    """Return True when every condition holds for ``event``."""
    if not conditions:
        return True

    for key, expected in conditions.items():
        actual = event.get(key, _MISSING)
        if isinstance(expected, Mapping):
            if not _check_operators(actual, expected):
                return False
        elif not _same(actual, expected):
            return False

    return True


def unmet_conditions(
    conditions: Mapping[str, Any] | None, event: Mapping[str, Any]
) -> list[str]:
    """Keys of ``conditions`` that do not hold, for diagnostics."""
    if not conditions:
        return []
    return [
        key
        for key, expected in conditions.items()
        if not evaluate({key: expected}, event)
    ]


__all__ = ["evaluate", "unmet_conditions", "OPERATORS"]
