"""Escalation evaluator and the daily overdue check.

``evaluate`` is pure: it says whether an entity has lingered past its
status timeout. ``handle`` acts on the answer. ``notify``,
``notify_manager`` and ``reassign`` only queue a notification;
``process_payment`` pushes the entity through the executor to the rule's
target status, a safety net for a missed auto-transition.

Escalation notifications carry a de-duplication key bound to the status
stay (entity, status, entry timestamp, action), so an hourly pass queues each
signal once per stay rather than once per pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from statusflow.exceptions import ConfigurationError, PersistenceError
from statusflow.executor import SYSTEM_ACTOR, TransitionExecutor
from statusflow.timeutil import Clock, elapsed_days, now_utc
from statusflow.transitions import PersistenceConflict, TransitionApplied
from statusflow.types.workflow import EscalationInfo, ItemError, TransitionedItem
from statusflow.workflows import ALL_CAPABILITIES, EscalationActionName, Kind, WorkflowRegistry, coerce_kind

if TYPE_CHECKING:
    from statusflow.core import Entity
    from statusflow.db_base import AuditLog, Notifier, Persistence

logger = logging.getLogger(__name__)

_MESSAGES: dict[str, str] = {
    "notify": "{description} ({days} days in \"{label}\")",
    "notify_manager": "Manager attention needed: {description} ({days} days in \"{label}\")",
    "reassign": "Reassignment required: {description} ({days} days in \"{label}\")",
    "process_payment": "Payment processed automatically: {description}",
}


@dataclass(frozen=True)
class EscalationAction:
    action: EscalationActionName
    reason: str
    days_since: int
    status: str
    target_status: str | None = None

    def to_dict(self) -> EscalationInfo:
        return EscalationInfo(action=self.action, reason=self.reason, days_since=self.days_since)


@dataclass
class EscalationPassResult:
    kind: str
    processed: int = 0
    escalations: list[dict[str, Any]] = field(default_factory=list)
    transitioned: list[TransitionedItem] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)


def escalation_dedup_key(kind: str, entity: Entity, action: str) -> str:
    return f"escalation:{kind}:{entity.id}:{entity.status}:{entity.status_changed_at}:{action}"


class EscalationEvaluator:
    def __init__(
        self,
        registry: WorkflowRegistry,
        persistence: Persistence,
        executor: TransitionExecutor,
        notifier: Notifier,
        *,
        audit: AuditLog | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._persistence = persistence
        self._executor = executor
        self._notifier = notifier
        self._audit = audit
        self._clock: Clock = clock or now_utc

    def evaluate(self, kind: Kind | str, entity: Entity, now: datetime | None = None) -> EscalationAction | None:
        """Escalation due for *entity*, or None while it is within its status timeout."""
        rule = self._registry.escalation_for(kind, entity.status)
        if rule is None:
            return None
        days = elapsed_days(entity.status_changed_at, now or self._clock())
        if days < rule.timeout_days:
            return None
        return EscalationAction(
            action=rule.action,
            reason=rule.description,
            days_since=days,
            status=entity.status,
            target_status=rule.target_status,
        )

    def handle(self, kind: Kind | str, entity: Entity, escalation: EscalationAction) -> dict[str, Any]:
        """Carry out *escalation* for *entity*; returns a JSON-safe outcome record.

        Raises:
            PersistenceError: The store failed outright.
        """
        kind = coerce_kind(kind)
        record: dict[str, Any] = {
            "id": entity.id,
            **escalation.to_dict(),
            "outcome": "queued",
        }

        if escalation.action == "process_payment":
            if escalation.target_status is None:
                msg = f"process_payment escalation on {kind}/{entity.status} has no target status"
                raise ConfigurationError(msg)
            outcome = self._executor.apply(
                entity,
                kind,
                escalation.target_status,
                SYSTEM_ACTOR,
                ALL_CAPABILITIES,
                origin="escalation",
                note=escalation.reason,
            )
            if isinstance(outcome, PersistenceConflict):
                record["outcome"] = "conflict"
                return record
            if not isinstance(outcome, TransitionApplied):
                record.update(outcome="denied", code=outcome.code, error=outcome.reason)
                return record
            record["outcome"] = "applied"
            record["to_status"] = outcome.new_status

        label = self._registry.status(kind, entity.status).label
        message = _MESSAGES[escalation.action].format(
            description=escalation.reason,
            days=escalation.days_since,
            label=label,
        )
        recipient: str | None
        if escalation.action == "notify_manager":
            recipient = entity.attributes.get("manager_id") or None
        elif escalation.action == "reassign":
            recipient = entity.owner_id or None
        else:
            recipient = entity.assignee_id or entity.owner_id or None

        try:
            queued = self._notifier.enqueue(
                kind.value,
                entity.id,
                message,
                "warning",
                recipient,
                dedup_key=escalation_dedup_key(kind.value, entity, escalation.action),
            )
        except PersistenceError as exc:
            if record["outcome"] != "applied":
                raise
            # Payment is committed; only the notice is lost.
            logger.error(
                "Payment notification lost for %s",
                entity.id,
                exc_info=True,
                extra={"kind": kind.value, "entity_id": entity.id, "action": escalation.action, "error": str(exc)},
            )
            return record
        if not queued and record["outcome"] == "queued":
            record["outcome"] = "suppressed"
        if queued and self._audit is not None and escalation.action != "process_payment":
            self._audit.record(
                SYSTEM_ACTOR,
                kind.value,
                entity.id,
                f"Escalation '{escalation.action}' after {escalation.days_since} days in '{entity.status}'",
                action="escalation",
            )
        return record

    def run_pass(self, kind: Kind | str) -> EscalationPassResult:
        """Evaluate and handle escalations for every entity of *kind* in an escalating status."""
        kind = coerce_kind(kind)
        result = EscalationPassResult(kind=kind.value)
        statuses = self._registry.escalation_statuses(kind)
        if not statuses:
            return result

        now = self._clock()
        for entity in self._persistence.find_candidates(kind.value, statuses):
            result.processed += 1
            try:
                escalation = self.evaluate(kind, entity, now)
                if escalation is None:
                    continue
                record = self.handle(kind, entity, escalation)
            except ConfigurationError:
                raise
            except (PersistenceError, KeyError, ValueError) as exc:
                logger.warning(
                    "Escalation failed for %s: %s",
                    entity.id,
                    exc,
                    exc_info=True,
                    extra={"kind": kind.value, "entity_id": entity.id, "error": str(exc)},
                )
                code = "persistence_error" if isinstance(exc, PersistenceError) else "invalid_record"
                result.errors.append(ItemError(id=entity.id, error=str(exc), code=code))
                continue

            if record["outcome"] == "suppressed":
                continue
            result.escalations.append(record)
            if record["outcome"] == "applied":
                result.transitioned.append(
                    TransitionedItem(
                        id=entity.id,
                        from_status=escalation.status,
                        to_status=record["to_status"],
                        reason=escalation.reason,
                        origin="escalation",
                    )
                )
            logger.info(
                "Escalation %s on %s (%d days)",
                escalation.action,
                entity.id,
                escalation.days_since,
                extra={"kind": kind.value, "entity_id": entity.id, "action": escalation.action},
            )
        return result

    def check_overdue(self, kind: Kind | str) -> int:
        """Queue a daily notification for every non-terminal entity past its due date.

        Returns the number of notifications newly queued.
        """
        kind = coerce_kind(kind)
        rule = self._registry.workflow(kind).overdue
        if rule is None:
            return 0

        now = self._clock()
        queued = 0
        for entity in self._persistence.find_candidates(kind.value, self._registry.non_terminal_statuses(kind)):
            due = entity.attributes.get(rule.attribute)
            if not due:
                continue
            try:
                days_late = elapsed_days(due, now)
            except ValueError:
                logger.warning("Unparseable %s on %s: %r", rule.attribute, entity.id, due)
                continue
            if days_late < 1:
                continue
            try:
                inserted = self._notifier.enqueue(
                    kind.value,
                    entity.id,
                    f"\"{entity.title}\" is overdue (due {due})",
                    rule.priority,
                    entity.assignee_id or entity.owner_id or None,
                    dedup_key=f"overdue:{kind.value}:{entity.id}:{now.date().isoformat()}",
                )
            except PersistenceError as exc:
                logger.warning(
                    "Overdue notification failed for %s: %s",
                    entity.id,
                    exc,
                    extra={"kind": kind.value, "entity_id": entity.id, "error": str(exc)},
                )
                continue
            if inserted:
                queued += 1
        if queued:
            logger.info("Overdue check for %s: %d notifications", kind, queued, extra={"kind": kind.value})
        return queued
