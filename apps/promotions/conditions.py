"""
Condition interpreter for automatic discount rules.

A rule's ``conditions`` is a JSON object mapping a field name to a predicate:

    {"age": {"min": 6, "max": 12}, "belt_rank": {"in": ["yellow", "orange"]}}

Predicate forms:
- scalar             -> equality
- {"eq": x}          -> equality
- {"min": a, "max": b} -> inclusive numeric range (either bound optional)
- {"in": [...]}      -> membership; for set-valued fields, non-empty overlap

Legacy shorthand keys (min_age, max_age, belt_rank, min_family_size,
attendance_count) are rewritten to the forms above before evaluation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from apps.common.types import ConfigurationError

logger = logging.getLogger(__name__)

OPERATORS = frozenset({"eq", "min", "max", "in"})

# shorthand key -> (field, operator)
SHORTHAND_KEYS: dict[str, tuple[str, str]] = {
    "min_age": ("age", "min"),
    "max_age": ("age", "max"),
    "min_family_size": ("family_size", "min"),
    "attendance_count": ("attendance_count", "min"),
}

_MISSING = object()


class ConditionError(ConfigurationError):
    """Rule conditions are not a well-formed predicate"""


def normalize_conditions(conditions: Any) -> dict[str, Any]:
    """Validate the conditions object and expand shorthand keys."""
    if conditions is None:
        return {}
    if not isinstance(conditions, Mapping):
        raise ConditionError(f"Conditions must be a JSON object, got {type(conditions).__name__}")

    normalized: dict[str, Any] = {}
    for key, predicate in conditions.items():
        if key in SHORTHAND_KEYS:
            field_name, operator = SHORTHAND_KEYS[key]
            existing = normalized.setdefault(field_name, {})
            if not isinstance(existing, dict):
                raise ConditionError(f"Conflicting predicates for '{field_name}'")
            existing[operator] = predicate
        elif key in normalized and isinstance(normalized[key], dict) and isinstance(predicate, Mapping):
            normalized[key].update(predicate)
        else:
            normalized[key] = dict(predicate) if isinstance(predicate, Mapping) else predicate

    for field_name, predicate in normalized.items():
        _check_predicate(field_name, predicate)
    return normalized


def _check_predicate(field_name: str, predicate: Any) -> None:
    if not isinstance(predicate, dict):
        return
    if not predicate:
        raise ConditionError(f"Empty predicate for '{field_name}'")
    unknown = set(predicate) - OPERATORS
    if unknown:
        raise ConditionError(f"Unknown operator(s) {sorted(unknown)} for '{field_name}'")
    for bound in ("min", "max"):
        if bound in predicate and _to_number(predicate[bound]) is None:
            raise ConditionError(f"Non-numeric '{bound}' bound for '{field_name}': {predicate[bound]!r}")
    if "in" in predicate and not isinstance(predicate["in"], (list, tuple, set)):
        raise ConditionError(f"'in' for '{field_name}' must be a list")


def _to_number(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _resolve(field_name: str, attributes: Mapping[str, Any], payload: Mapping[str, Any]) -> Any:
    value = attributes.get(field_name, _MISSING)
    if value is _MISSING or value is None:
        value = payload.get(field_name, _MISSING)
    return _MISSING if value is None else value


def _matches(value: Any, predicate: Any) -> bool:  # noqa: PLR0911
    if not isinstance(predicate, dict):
        if isinstance(value, (set, frozenset, list, tuple)):
            return predicate in value
        return value == predicate

    if "eq" in predicate and value != predicate["eq"]:
        return False

    if "min" in predicate or "max" in predicate:
        number = _to_number(value)
        if number is None:
            return False
        if "min" in predicate and number < _to_number(predicate["min"]):  # type: ignore[operator]
            return False
        if "max" in predicate and number > _to_number(predicate["max"]):  # type: ignore[operator]
            return False

    if "in" in predicate:
        allowed = {str(item) for item in predicate["in"]}
        if isinstance(value, (set, frozenset, list, tuple)):
            return bool(allowed & {str(item) for item in value})
        return str(value) in allowed

    return True


def evaluate(conditions: Any, attributes: Mapping[str, Any], payload: Mapping[str, Any] | None = None) -> bool:
    """
    Evaluate rule conditions against a subject.

    Fields resolve from ``attributes`` first, then from the event ``payload``.
    A field that resolves to nothing makes its predicate false. Empty
    conditions always match.

    Raises:
        ConditionError: malformed conditions (unknown operator, bad bounds, non-object)
    """
    normalized = normalize_conditions(conditions)
    payload = payload or {}

    for field_name, predicate in normalized.items():
        value = _resolve(field_name, attributes, payload)
        if value is _MISSING:
            logger.debug("🔍 [Conditions] '%s' unavailable, predicate is false", field_name)
            return False
        if not _matches(value, predicate):
            return False
    return True
