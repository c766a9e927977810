"""Auto-transition scanner.

For one kind: fetch every entity sitting in a status that has an
auto-transition rule (a single query), evaluate the rule's named condition
and its variation-adjusted day threshold, and hand each qualifying entity to
the executor as the system actor. Per-item failures are collected, never
allowed to stop the pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from statusflow.conditions import checklist_ratio, evaluate_condition
from statusflow.exceptions import ConditionEvaluationError, ConfigurationError, PersistenceError
from statusflow.executor import SYSTEM_ACTOR, TransitionExecutor
from statusflow.timeutil import Clock, elapsed_days, now_utc
from statusflow.transitions import PersistenceConflict, TransitionApplied
from statusflow.types.workflow import AutoTransitionInfo, ItemError, TransitionedItem
from statusflow.workflows import ALL_CAPABILITIES, AutoTransitionRule, Kind, WorkflowRegistry, coerce_kind

if TYPE_CHECKING:
    from statusflow.core import Entity
    from statusflow.db_base import Notifier, Persistence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutoTransitionProjection:
    """When the pending auto-transition for an entity's status becomes due."""

    target_status: str
    reason: str
    required_days: int
    elapsed_days: int

    @property
    def ready_in_days(self) -> int:
        return max(0, self.required_days - self.elapsed_days)

    def to_dict(self) -> AutoTransitionInfo:
        return AutoTransitionInfo(
            target_status=self.target_status,
            reason=self.reason,
            required_days=self.required_days,
            elapsed_days=self.elapsed_days,
            ready_in_days=self.ready_in_days,
        )


@dataclass
class KindScanResult:
    kind: str
    processed: int = 0
    transitioned: list[TransitionedItem] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)


def effective_days(rule: AutoTransitionRule, entity: Entity) -> int:
    """Day threshold for *rule* after applying its variation factors, floored at 0.

    A satisfied ``completion_ratio`` factor short-circuits to 0.
    """
    days = rule.base_days
    for factor in rule.variation_factors:
        if factor.factor == "priority":
            days += factor.adjustments.get(entity.priority or "", 0)
        elif factor.factor == "amount":
            if entity.amount is None:
                continue
            for tier in factor.tiers:
                if tier.below is None or entity.amount < tier.below:
                    days += tier.adjust
                    break
        elif factor.factor == "completion_ratio":
            ratio = checklist_ratio(entity)
            if ratio is not None and factor.min_ratio is not None and ratio >= factor.min_ratio:
                return 0
    return max(0, days)


class AutoTransitionScanner:
    def __init__(
        self,
        registry: WorkflowRegistry,
        persistence: Persistence,
        executor: TransitionExecutor,
        *,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._persistence = persistence
        self._executor = executor
        self._notifier = notifier
        self._clock: Clock = clock or now_utc

    def project(self, kind: Kind | str, entity: Entity, now: datetime | None = None) -> AutoTransitionProjection | None:
        """Timing of the auto-transition pending for *entity*, or None if its status has none.

        The rule's condition is not evaluated; this is a read-only projection.
        A record too malformed to time (e.g. a non-list checklist) yields None.
        """
        rule = self._registry.auto_transition_for(kind, entity.status)
        if rule is None:
            return None
        now = now or self._clock()
        try:
            required = effective_days(rule, entity)
            elapsed = elapsed_days(entity.status_changed_at, now)
        except ValueError as exc:
            logger.warning(
                "Cannot project auto-transition for %s: %s",
                entity.id,
                exc,
                extra={"kind": entity.kind, "entity_id": entity.id, "error": str(exc)},
            )
            return None
        return AutoTransitionProjection(
            target_status=rule.target_status,
            reason=rule.description,
            required_days=required,
            elapsed_days=elapsed,
        )

    def run_pass(self, kind: Kind | str) -> KindScanResult:
        """Apply every due auto-transition of *kind*.

        Raises:
            ConfigurationError: The rule set references something undeclared.
        """
        kind = coerce_kind(kind)
        result = KindScanResult(kind=kind.value)
        sources = self._registry.auto_transition_sources(kind)
        if not sources:
            return result

        now = self._clock()
        for entity in self._persistence.find_candidates(kind.value, sources):
            result.processed += 1
            rule = self._registry.auto_transition_for(kind, entity.status)
            if rule is None:
                continue
            try:
                self._process(kind, entity, rule, now, result)
            except ConfigurationError:
                raise
            except ConditionEvaluationError as exc:
                logger.warning(
                    "Condition fault on %s, treated as not satisfied: %s",
                    entity.id,
                    exc,
                    extra={"kind": kind.value, "entity_id": entity.id, "error": str(exc.cause)},
                )
                result.errors.append(ItemError(id=entity.id, error=str(exc), code="condition_error"))
            except (PersistenceError, KeyError, ValueError) as exc:
                logger.warning(
                    "Auto-transition failed for %s: %s",
                    entity.id,
                    exc,
                    exc_info=True,
                    extra={"kind": kind.value, "entity_id": entity.id, "error": str(exc)},
                )
                code = "persistence_error" if isinstance(exc, PersistenceError) else "invalid_record"
                result.errors.append(ItemError(id=entity.id, error=str(exc), code=code))

        logger.info(
            "Auto-transition scan for %s: %d processed, %d transitioned, %d errors",
            kind,
            result.processed,
            len(result.transitioned),
            len(result.errors),
            extra={"kind": kind.value, "action": "scan"},
        )
        return result

    def _process(
        self,
        kind: Kind,
        entity: Entity,
        rule: AutoTransitionRule,
        now: datetime,
        result: KindScanResult,
    ) -> None:
        if not evaluate_condition(rule.condition.name, entity, now, rule.condition.params):
            return
        required = effective_days(rule, entity)
        elapsed = elapsed_days(entity.status_changed_at, now)
        if elapsed < required:
            logger.debug("%s: %d of %d days elapsed", entity.id, elapsed, required)
            return

        outcome = self._executor.apply(
            entity,
            kind,
            rule.target_status,
            SYSTEM_ACTOR,
            ALL_CAPABILITIES,
            origin="auto",
            note=rule.description,
        )
        if isinstance(outcome, TransitionApplied):
            result.transitioned.append(
                TransitionedItem(
                    id=entity.id,
                    from_status=outcome.previous_status,
                    to_status=outcome.new_status,
                    reason=rule.description,
                    origin="auto",
                )
            )
            self._notify(kind, outcome)
        elif isinstance(outcome, PersistenceConflict):
            # Someone else moved it first; the next pass re-reads it.
            return
        elif outcome.code != "dwell_time":
            result.errors.append(ItemError(id=entity.id, error=outcome.reason, code=outcome.code))

    def _notify(self, kind: Kind, applied: TransitionApplied) -> None:
        notice = self._registry.workflow(kind).auto_notification
        if notice is None or self._notifier is None:
            return
        entity = applied.entity
        message = notice.message.format(
            title=entity.title,
            from_label=self._registry.status(kind, applied.previous_status).label,
            to_label=self._registry.status(kind, applied.new_status).label,
        )
        try:
            self._notifier.enqueue(
                kind.value,
                entity.id,
                message,
                notice.priority,
                entity.assignee_id or entity.owner_id or None,
            )
        except PersistenceError as exc:
            logger.error(
                "Auto-transition notification lost for %s",
                entity.id,
                exc_info=True,
                extra={"kind": kind.value, "entity_id": entity.id, "action": "auto", "error": str(exc)},
            )
