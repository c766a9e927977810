"""Tests for escalation evaluation, handling, de-duplication and the overdue check."""

from __future__ import annotations

from collections.abc import Generator, Mapping
from pathlib import Path
from typing import Any

import pytest

from statusflow.core import StatusDB
from statusflow.db_base import NotificationPriority
from statusflow.escalation import EscalationEvaluator, escalation_dedup_key
from statusflow.exceptions import PersistenceError
from statusflow.executor import TransitionExecutor
from statusflow.workflows import WorkflowRegistry
from tests._db_factory import FrozenClock, days_ago, make_db, make_registry


def _evaluator(registry: WorkflowRegistry, db: StatusDB, clock: FrozenClock) -> EscalationEvaluator:
    executor = TransitionExecutor(registry, db, db, clock=clock)
    return EscalationEvaluator(registry, db, executor, db, audit=db, clock=clock)


@pytest.fixture
def evaluator(registry: WorkflowRegistry, db: StatusDB, clock: FrozenClock) -> EscalationEvaluator:
    return _evaluator(registry, db, clock)


@pytest.fixture
def no_auto_pay_db(tmp_path: Path, clock: FrozenClock) -> Generator[StatusDB, None, None]:
    """Store whose expense workflow has no auto-payment rule, leaving only the escalation."""
    root = tmp_path / "no_auto_pay"
    root.mkdir()
    d = make_db(root, registry=make_registry(expense={"auto_transitions": []}), clock=clock)
    yield d
    d.close()


class TestEvaluate:
    def test_within_timeout(self, evaluator: EscalationEvaluator, db: StatusDB) -> None:
        item = db.create_entity("work_item", "PR", status="review", status_changed_at=days_ago(4))
        assert evaluator.evaluate("work_item", item) is None

    def test_at_timeout(self, evaluator: EscalationEvaluator, db: StatusDB) -> None:
        item = db.create_entity("work_item", "PR", status="review", status_changed_at=days_ago(5))
        action = evaluator.evaluate("work_item", item)
        assert action is not None
        assert action.action == "notify"
        assert action.days_since == 5
        assert action.reason == "Review pending for more than 5 days"
        assert action.to_dict() == {
            "action": "notify",
            "reason": "Review pending for more than 5 days",
            "days_since": 5,
        }

    def test_status_without_rule(self, evaluator: EscalationEvaluator, db: StatusDB) -> None:
        item = db.create_entity("work_item", "Idea", status_changed_at=days_ago(90))
        assert evaluator.evaluate("work_item", item) is None

    def test_evaluate_has_no_side_effects(self, evaluator: EscalationEvaluator, db: StatusDB) -> None:
        item = db.create_entity("work_item", "PR", status="review", status_changed_at=days_ago(9))
        evaluator.evaluate("work_item", item)
        assert db.list_notifications() == []
        assert db.list_audit() == []


class TestHandle:
    def test_notify_queues_for_assignee(self, evaluator: EscalationEvaluator, db: StatusDB) -> None:
        item = db.create_entity(
            "work_item", "PR", status="review", owner_id="olga", assignee_id="ade", status_changed_at=days_ago(6)
        )
        action = evaluator.evaluate("work_item", item)
        assert action is not None
        record = evaluator.handle("work_item", item, action)

        assert record["outcome"] == "queued"
        notes = db.list_notifications(entity_id=item.id)
        assert len(notes) == 1
        assert notes[0]["recipient_id"] == "ade"
        assert notes[0]["priority"] == "warning"
        assert notes[0]["message"] == 'Review pending for more than 5 days (6 days in "Review")'
        assert notes[0]["dedup_key"] == escalation_dedup_key("work_item", item, "notify")

        audit = db.list_audit(entity_id=item.id)
        assert [a["action"] for a in audit] == ["escalation"]

    def test_notify_manager_uses_manager_attribute(self, evaluator: EscalationEvaluator, db: StatusDB) -> None:
        entry = db.create_entity(
            "time_entry",
            "Week 8",
            status="submitted",
            owner_id="carol",
            status_changed_at=days_ago(15),
            attributes={"manager_id": "maria"},
        )
        action = evaluator.evaluate("time_entry", entry)
        assert action is not None and action.action == "notify_manager"
        evaluator.handle("time_entry", entry, action)

        notes = db.list_notifications(entity_id=entry.id)
        assert notes[0]["recipient_id"] == "maria"
        assert notes[0]["message"].startswith("Manager attention needed:")

    def test_reassign_goes_to_owner(self, evaluator: EscalationEvaluator, db: StatusDB) -> None:
        item = db.create_entity(
            "work_item", "Stuck", status="todo", owner_id="olga", assignee_id="ade", status_changed_at=days_ago(8)
        )
        action = evaluator.evaluate("work_item", item)
        assert action is not None and action.action == "reassign"
        evaluator.handle("work_item", item, action)

        notes = db.list_notifications(entity_id=item.id)
        assert notes[0]["recipient_id"] == "olga"
        assert db.get_entity(item.id).status == "todo"

    def test_process_payment_applies_transition(self, no_auto_pay_db: StatusDB, clock: FrozenClock) -> None:
        db = no_auto_pay_db
        evaluator = _evaluator(db.registry, db, clock)
        expense = db.create_entity("expense", "Conference", status="approved", status_changed_at=days_ago(8))
        action = evaluator.evaluate("expense", expense)
        assert action is not None and action.action == "process_payment"

        record = evaluator.handle("expense", expense, action)
        assert record["outcome"] == "applied"
        assert record["to_status"] == "paid"
        stored = db.get_entity(expense.id)
        assert stored.status == "paid"
        assert "paid_at" in stored.attributes

        audit = db.list_audit(entity_id=expense.id)
        assert [a["action"] for a in audit] == ["status_change"]
        assert audit[0]["actor"] == "system"
        notes = db.list_notifications(entity_id=expense.id)
        assert notes[0]["message"].startswith("Payment processed automatically:")

    def test_process_payment_on_stale_entity_conflicts(self, no_auto_pay_db: StatusDB, clock: FrozenClock) -> None:
        db = no_auto_pay_db
        evaluator = _evaluator(db.registry, db, clock)
        expense = db.create_entity("expense", "Conference", status="approved", status_changed_at=days_ago(8))
        action = evaluator.evaluate("expense", expense)
        assert action is not None
        db.update_status("expense", expense.id, {"status": "rejected"}, "approved")

        record = evaluator.handle("expense", expense, action)
        assert record["outcome"] == "conflict"
        assert db.get_entity(expense.id).status == "rejected"
        assert db.list_notifications() == []


class TestRunPass:
    def test_repeated_passes_notify_once_per_stay(
        self, evaluator: EscalationEvaluator, db: StatusDB, clock: FrozenClock
    ) -> None:
        item = db.create_entity("work_item", "PR", status="review", status_changed_at=days_ago(5))

        first = evaluator.run_pass("work_item")
        assert [e["id"] for e in first.escalations] == [item.id]
        clock.advance(hours=1)
        second = evaluator.run_pass("work_item")
        assert second.escalations == []
        assert second.processed == 1
        assert len(db.list_notifications(entity_id=item.id)) == 1
        assert len(db.list_audit(entity_id=item.id)) == 1

    def test_new_stay_escalates_again(self, evaluator: EscalationEvaluator, db: StatusDB, clock: FrozenClock) -> None:
        item = db.create_entity("work_item", "PR", status="review", status_changed_at=days_ago(5))
        evaluator.run_pass("work_item")

        # Back to work and into review again: a fresh stay with a new entry timestamp.
        db.update_status("work_item", item.id, {"status": "in_progress", "status_changed_at": days_ago(1)}, "review")
        db.update_status("work_item", item.id, {"status": "review", "status_changed_at": days_ago(0)}, "in_progress")
        clock.advance(days=5)
        again = evaluator.run_pass("work_item")
        assert [e["id"] for e in again.escalations] == [item.id]
        assert len(db.list_notifications(entity_id=item.id)) == 2

    def test_payment_escalation_reported_as_transition(self, no_auto_pay_db: StatusDB, clock: FrozenClock) -> None:
        db = no_auto_pay_db
        evaluator = _evaluator(db.registry, db, clock)
        expense = db.create_entity("expense", "Laptop", status="approved", status_changed_at=days_ago(7))
        result = evaluator.run_pass("expense")

        assert result.transitioned == [
            {
                "id": expense.id,
                "from_status": "approved",
                "to_status": "paid",
                "reason": "Auto-process payment if not done within 7 days",
                "origin": "escalation",
            }
        ]
        assert result.escalations[0]["outcome"] == "applied"

    def test_kind_without_escalations(self, evaluator: EscalationEvaluator) -> None:
        result = evaluator.run_pass("iteration")
        assert result.processed == 0


class TestOverdue:
    def test_overdue_once_per_day(self, evaluator: EscalationEvaluator, db: StatusDB, clock: FrozenClock) -> None:
        item = db.create_entity("work_item", "Late", status="in_progress", attributes={"due_date": days_ago(2)})

        assert evaluator.check_overdue("work_item") == 1
        clock.advance(hours=2)
        assert evaluator.check_overdue("work_item") == 0
        clock.advance(days=1)
        assert evaluator.check_overdue("work_item") == 1

        notes = db.list_notifications(entity_id=item.id)
        assert len(notes) == 2
        assert notes[0]["priority"] == "critical"
        assert '"Late" is overdue' in notes[0]["message"]

    def test_not_yet_a_day_late(self, evaluator: EscalationEvaluator, db: StatusDB) -> None:
        db.create_entity("work_item", "Nearly", attributes={"due_date": days_ago(0.5)})
        assert evaluator.check_overdue("work_item") == 0

    def test_terminal_items_are_ignored(self, evaluator: EscalationEvaluator, db: StatusDB) -> None:
        db.create_entity("work_item", "Shipped", status="done", attributes={"due_date": days_ago(10)})
        assert evaluator.check_overdue("work_item") == 0

    def test_unparseable_due_date_is_skipped(self, evaluator: EscalationEvaluator, db: StatusDB) -> None:
        db.create_entity("work_item", "Vague", attributes={"due_date": "next sprint"})
        ok = db.create_entity("work_item", "Late", attributes={"due_date": days_ago(3)})
        assert evaluator.check_overdue("work_item") == 1
        assert [n["entity_id"] for n in db.list_notifications()] == [ok.id]

    def test_kind_without_overdue_rule(self, evaluator: EscalationEvaluator, db: StatusDB) -> None:
        db.create_entity("expense", "Old", attributes={"due_date": days_ago(30)})
        assert evaluator.check_overdue("expense") == 0


class _FailingNotifier:
    """Notifier that cannot queue anything for one entity."""

    def __init__(self, db: StatusDB, failing_id: str) -> None:
        self._db = db
        self._failing_id = failing_id

    def enqueue(
        self,
        kind: str,
        entity_id: str,
        message: str,
        priority: NotificationPriority,
        recipient_id: str | None = None,
        *,
        dedup_key: str | None = None,
    ) -> bool:
        if entity_id == self._failing_id:
            raise PersistenceError("notification queue unavailable")
        return self._db.enqueue(kind, entity_id, message, priority, recipient_id, dedup_key=dedup_key)


class _FailingWrites:
    """Store wrapper whose status writes fail for one entity."""

    def __init__(self, db: StatusDB, failing_id: str) -> None:
        self._db = db
        self._failing_id = failing_id

    def __getattr__(self, name: str) -> Any:
        return getattr(self._db, name)

    def update_status(self, kind: str, entity_id: str, fields: Mapping[str, Any], expected_current_status: str) -> str:
        if entity_id == self._failing_id:
            raise PersistenceError("database is locked")
        return self._db.update_status(kind, entity_id, fields, expected_current_status)


class TestStoreFailures:
    def test_notifier_failure_is_isolated(self, registry: WorkflowRegistry, db: StatusDB, clock: FrozenClock) -> None:
        doomed = db.create_entity("work_item", "PR 1", status="review", status_changed_at=days_ago(5))
        fine = db.create_entity("work_item", "PR 2", status="review", status_changed_at=days_ago(5))
        executor = TransitionExecutor(registry, db, db, clock=clock)
        evaluator = EscalationEvaluator(
            registry, db, executor, _FailingNotifier(db, doomed.id), audit=db, clock=clock
        )

        result = evaluator.run_pass("work_item")

        assert result.processed == 2
        assert [e["id"] for e in result.escalations] == [fine.id]
        assert result.errors == [
            {"id": doomed.id, "error": "notification queue unavailable", "code": "persistence_error"}
        ]
        assert db.list_notifications(entity_id=doomed.id) == []
        assert len(db.list_notifications(entity_id=fine.id)) == 1

    def test_payment_write_failure_is_isolated(self, no_auto_pay_db: StatusDB, clock: FrozenClock) -> None:
        db = no_auto_pay_db
        doomed = db.create_entity("expense", "Laptop", status="approved", status_changed_at=days_ago(7))
        fine = db.create_entity("expense", "Monitor", status="approved", status_changed_at=days_ago(7))
        store = _FailingWrites(db, doomed.id)
        executor = TransitionExecutor(db.registry, store, db, clock=clock)
        evaluator = EscalationEvaluator(db.registry, store, executor, db, audit=db, clock=clock)

        result = evaluator.run_pass("expense")

        assert [t["id"] for t in result.transitioned] == [fine.id]
        assert [(e["id"], e["code"]) for e in result.errors] == [(doomed.id, "persistence_error")]
        assert db.get_entity(doomed.id).status == "approved"
        assert db.get_entity(fine.id).status == "paid"
