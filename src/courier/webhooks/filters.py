"""Subscriber filter evaluation.

A filter is a list of conditions over event fields, addressed by dot-path
into the event's wire payload (``type``, ``source``, ``userId``,
``data.document.fileName``, ``metadata.tier``...). Conditions compare
case-insensitively and are combined with AND or OR. Evaluation never
raises: a missing field or a malformed regex makes that condition false.
"""

from __future__ import annotations

import json
import logging
import re
from functools import lru_cache
from typing import Any

from courier.exceptions import FilterEvaluationError
from courier.models import Event, FilterCondition, FilterSpec

logger = logging.getLogger(__name__)

_MISSING = object()


def resolve_path(source: Any, path: str) -> Any:
    """Walk ``path`` (``a.b.c``) through nested dicts and lists.

    Numeric segments index into lists.

    Raises:
        FilterEvaluationError: If any segment cannot be resolved.
    """
    current = source
    for segment in path.split("."):
        if isinstance(current, dict):
            current = current.get(segment, _MISSING)
        elif isinstance(current, list) and segment.lstrip("-").isdigit():
            index = int(segment)
            current = current[index] if -len(current) <= index < len(current) else _MISSING
        else:
            current = _MISSING
        if current is _MISSING or current is None:
            raise FilterEvaluationError(f"Field not found: {path}")
    return current


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise FilterEvaluationError(f"Invalid regex {pattern!r}: {e}") from e


def evaluate_condition(payload: dict[str, Any], condition: FilterCondition) -> bool:
    """Evaluate one condition against an event payload.

    Raises:
        FilterEvaluationError: If the field is missing or the regex is malformed.
    """
    raw = _stringify(resolve_path(payload, condition.field))
    value = raw.lower()
    expected = condition.value.lower()

    if condition.operator == "equals":
        return value == expected
    if condition.operator == "contains":
        return expected in value
    if condition.operator == "startsWith":
        return value.startswith(expected)
    if condition.operator == "endsWith":
        return value.endswith(expected)
    if condition.operator == "regex":
        return _compile(condition.value).search(raw) is not None
    return False


def matches_filter(event: Event, filter_spec: FilterSpec | None) -> bool:
    """Check whether an event passes a subscription's filter.

    Args:
        event: Event being dispatched.
        filter_spec: Subscription filter; None or no conditions matches everything.

    Returns:
        True if the event should be delivered.
    """
    if filter_spec is None or not filter_spec.conditions:
        return True

    payload = event.to_payload()
    results: list[bool] = []
    for condition in filter_spec.conditions:
        try:
            results.append(evaluate_condition(payload, condition))
        except FilterEvaluationError as e:
            logger.debug("Filter condition on %s treated as non-match: %s", condition.field, e)
            results.append(False)

    if filter_spec.logic == "OR":
        return any(results)
    return all(results)


__all__ = ["evaluate_condition", "matches_filter", "resolve_path"]
