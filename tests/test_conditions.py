"""Tests for the named condition predicates."""

from __future__ import annotations

from typing import Any

import pytest

from statusflow.conditions import CONDITIONS, checklist_ratio, condition, evaluate_condition
from statusflow.core import Entity
from statusflow.exceptions import ConditionEvaluationError, ConfigurationError
from tests._db_factory import FROZEN_NOW, days_ago


def _entity(**attributes: Any) -> Entity:
    return Entity(id="e-1", kind="work_item", status="todo", attributes=attributes)


class TestEvaluateCondition:
    def test_unknown_condition(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown condition 'nope'"):
            evaluate_condition("nope", _entity(), FROZEN_NOW)

    def test_predicate_failure_is_wrapped(self) -> None:
        with pytest.raises(ConditionEvaluationError) as exc_info:
            evaluate_condition("start_date_reached", _entity(start_date="tomorrow-ish"), FROZEN_NOW)
        assert exc_info.value.condition == "start_date_reached"
        assert exc_info.value.entity_id == "e-1"
        assert isinstance(exc_info.value.cause, ValueError)

    def test_params_are_passed_through(self) -> None:
        entity = _entity(validated_at=days_ago(2))
        assert evaluate_condition("validated_days_ago", entity, FROZEN_NOW, {"days": 2})
        assert not evaluate_condition("validated_days_ago", entity, FROZEN_NOW, {"days": 3})

    def test_duplicate_registration_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="already registered"):
            condition("always")(lambda entity, now: True)
        assert "always" in CONDITIONS


class TestDatePredicates:
    def test_start_date(self) -> None:
        assert evaluate_condition("start_date_reached", _entity(start_date=days_ago(1)), FROZEN_NOW)
        assert evaluate_condition("start_date_reached", _entity(start_date="2025-03-12"), FROZEN_NOW)
        assert not evaluate_condition("start_date_reached", _entity(start_date="2025-03-13"), FROZEN_NOW)
        assert not evaluate_condition("start_date_reached", _entity(), FROZEN_NOW)

    def test_end_date(self) -> None:
        assert evaluate_condition("end_date_reached", _entity(end_date=days_ago(0)), FROZEN_NOW)
        assert not evaluate_condition("end_date_reached", _entity(end_date=days_ago(-1)), FROZEN_NOW)

    def test_submitted_days_ago(self) -> None:
        assert evaluate_condition("submitted_days_ago", _entity(submitted_at=days_ago(14)), FROZEN_NOW, {"days": 14})
        assert not evaluate_condition(
            "submitted_days_ago", _entity(submitted_at=days_ago(13)), FROZEN_NOW, {"days": 14}
        )

    @pytest.mark.parametrize(
        ("day", "expected"),
        [(12, False), (25, False), (26, True), (31, True)],
    )
    def test_month_end_within(self, day: int, expected: bool) -> None:
        now = FROZEN_NOW.replace(day=day)
        assert evaluate_condition("month_end_within", _entity(), now, {"days": 5}) is expected


class TestChecklist:
    def test_ratio(self) -> None:
        checklist = [{"done": True}, {"done": True}, {"done": False}, {"done": True}]
        assert checklist_ratio(_entity(checklist=checklist)) == 0.75

    def test_no_checklist(self) -> None:
        assert checklist_ratio(_entity()) is None
        assert not evaluate_condition("checklist_ratio_at_least", _entity(), FROZEN_NOW)

    def test_threshold_inclusive(self) -> None:
        checklist = [{"done": True}] * 4 + [{"done": False}]
        entity = _entity(checklist=checklist)
        assert evaluate_condition("checklist_ratio_at_least", entity, FROZEN_NOW, {"min_ratio": 0.8})
        assert not evaluate_condition("checklist_ratio_at_least", entity, FROZEN_NOW, {"min_ratio": 0.9})

    def test_malformed_checklist(self) -> None:
        with pytest.raises(ConditionEvaluationError):
            evaluate_condition("checklist_ratio_at_least", _entity(checklist="all done"), FROZEN_NOW)


class TestAllWorkComplete:
    def test_everything_done(self) -> None:
        stats = {"work_items": 3, "work_items_done": 3, "iterations": 1, "iterations_done": 1}
        assert evaluate_condition("all_work_complete", _entity(stats=stats), FROZEN_NOW)

    def test_work_outstanding(self) -> None:
        stats = {"work_items": 3, "work_items_done": 2}
        assert not evaluate_condition("all_work_complete", _entity(stats=stats), FROZEN_NOW)

    def test_empty_initiative_is_not_complete(self) -> None:
        assert not evaluate_condition("all_work_complete", _entity(stats={"work_items": 0}), FROZEN_NOW)
        assert not evaluate_condition("all_work_complete", _entity(), FROZEN_NOW)
