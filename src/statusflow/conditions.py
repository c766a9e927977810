"""Named condition predicates referenced by auto-transition rules.

Workflow data refers to a predicate by name (``{"name": "validated_days_ago",
"days": 3}``); the extra keys are passed to the predicate as keyword
arguments. Keeping predicates out of the data keeps every workflow
JSON-serializable and lets each predicate be tested on its own.

A predicate receives the entity and the evaluation time and returns a bool.
A missing attribute means "not satisfied"; a malformed one raises, which
``evaluate_condition`` wraps in ``ConditionEvaluationError``.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from statusflow.exceptions import ConditionEvaluationError, ConfigurationError
from statusflow.timeutil import elapsed_days, parse_timestamp

if TYPE_CHECKING:
    from statusflow.core import Entity

logger = logging.getLogger(__name__)

Predicate = Callable[..., bool]

CONDITIONS: dict[str, Predicate] = {}


def condition(name: str) -> Callable[[Predicate], Predicate]:
    """Register *fn* under *name* in ``CONDITIONS``."""

    def decorator(fn: Predicate) -> Predicate:
        if name in CONDITIONS:
            msg = f"Condition '{name}' is already registered"
            raise ConfigurationError(msg)
        CONDITIONS[name] = fn
        return fn

    return decorator


def evaluate_condition(name: str, entity: Entity, now: datetime, params: Mapping[str, Any] | None = None) -> bool:
    """Evaluate the predicate registered as *name*.

    Raises:
        ConfigurationError: If no predicate is registered under *name*.
        ConditionEvaluationError: If the predicate itself raised.
    """
    fn = CONDITIONS.get(name)
    if fn is None:
        msg = f"Unknown condition '{name}'. Registered: {', '.join(sorted(CONDITIONS))}"
        raise ConfigurationError(msg)
    try:
        result = bool(fn(entity, now, **dict(params or {})))
    except Exception as exc:
        raise ConditionEvaluationError(name, entity.id, exc) from exc
    logger.debug("Condition %s on %s -> %s", name, entity.id, result)
    return result


def checklist_ratio(entity: Entity) -> float | None:
    """Fraction of checklist items marked done, or None without a checklist."""
    checklist = entity.attributes.get("checklist")
    if not checklist:
        return None
    if not isinstance(checklist, list):
        msg = f"checklist must be a list, got {type(checklist).__name__}"
        raise ValueError(msg)
    done = sum(1 for item in checklist if isinstance(item, dict) and item.get("done"))
    return done / len(checklist)


def _date_reached(entity: Entity, now: datetime, attribute: str) -> bool:
    value = entity.attributes.get(attribute)
    if not value:
        return False
    return parse_timestamp(value) <= now


def _days_since_attribute(entity: Entity, now: datetime, attribute: str, days: float) -> bool:
    value = entity.attributes.get(attribute)
    if not value:
        return False
    return elapsed_days(value, now) >= days


# ---------------------------------------------------------------------------
# Built-in predicates
# ---------------------------------------------------------------------------


@condition("always")
def always(entity: Entity, now: datetime) -> bool:
    return True


@condition("start_date_reached")
def start_date_reached(entity: Entity, now: datetime) -> bool:
    return _date_reached(entity, now, "start_date")


@condition("end_date_reached")
def end_date_reached(entity: Entity, now: datetime) -> bool:
    return _date_reached(entity, now, "end_date")


@condition("checklist_ratio_at_least")
def checklist_ratio_at_least(entity: Entity, now: datetime, *, min_ratio: float = 0.8) -> bool:
    ratio = checklist_ratio(entity)
    return ratio is not None and ratio >= min_ratio


@condition("validated_days_ago")
def validated_days_ago(entity: Entity, now: datetime, *, days: float = 3) -> bool:
    return _days_since_attribute(entity, now, "validated_at", days)


@condition("submitted_days_ago")
def submitted_days_ago(entity: Entity, now: datetime, *, days: float = 14) -> bool:
    return _days_since_attribute(entity, now, "submitted_at", days)


@condition("month_end_within")
def month_end_within(entity: Entity, now: datetime, *, days: int = 5) -> bool:
    """True during the last *days* days of the calendar month of *now*."""
    last_day = calendar.monthrange(now.year, now.month)[1]
    return last_day - now.day <= days


@condition("all_work_complete")
def all_work_complete(entity: Entity, now: datetime) -> bool:
    """True when every tracked work item and iteration of an initiative is done."""
    stats = entity.attributes.get("stats")
    if not stats:
        return False
    total = int(stats.get("work_items", 0)) + int(stats.get("iterations", 0))
    completed = int(stats.get("work_items_done", 0)) + int(stats.get("iterations_done", 0))
    return total > 0 and completed == total
