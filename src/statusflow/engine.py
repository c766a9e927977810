"""StatusEngine -- the public entry point composing all engine components.

Synchronous callers use ``request_transition`` / ``transition_by_id``; an
external scheduler calls ``run_scheduled_pass``. Both paths reach the store
only through the same ``TransitionExecutor``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from statusflow.escalation import EscalationEvaluator
from statusflow.executor import CustomValidation, Listener, TransitionExecutor
from statusflow.scanner import AutoTransitionScanner
from statusflow.status_info import StatusInfo, StatusInfoFormatter
from statusflow.timeutil import Clock, now_utc, to_iso
from statusflow.types.core import ISOTimestamp
from statusflow.types.workflow import ItemError, KindPassDict, PassSummaryDict, TransitionedItem, WorkflowExport
from statusflow.workflows import Capability, Kind, WorkflowRegistry, coerce_kind

if TYPE_CHECKING:
    from statusflow.core import Entity, StatusDB
    from statusflow.db_base import AuditLog, Notifier, Persistence
    from statusflow.transitions import TransitionCheck, TransitionResult

logger = logging.getLogger(__name__)


@dataclass
class KindPassResult:
    kind: str
    processed: int = 0
    transitioned: list[TransitionedItem] = field(default_factory=list)
    escalations: list[dict[str, Any]] = field(default_factory=list)
    overdue: int = 0
    errors: list[ItemError] = field(default_factory=list)

    def to_dict(self) -> KindPassDict:
        return KindPassDict(
            kind=self.kind,
            processed=self.processed,
            transitioned=list(self.transitioned),
            escalations=list(self.escalations),
            overdue=self.overdue,
            errors=list(self.errors),
        )


@dataclass
class PassSummary:
    timestamp: str
    per_kind: list[KindPassResult] = field(default_factory=list)
    aborted: bool = False

    @property
    def total_transitioned(self) -> int:
        return sum(len(k.transitioned) for k in self.per_kind)

    @property
    def total_errors(self) -> int:
        return sum(len(k.errors) for k in self.per_kind)

    def to_dict(self) -> PassSummaryDict:
        return PassSummaryDict(
            timestamp=ISOTimestamp(self.timestamp),
            per_kind=[k.to_dict() for k in self.per_kind],
            total_transitioned=self.total_transitioned,
            aborted=self.aborted,
        )


class StatusEngine:
    """Facade over the registry, validator, executor, scanner and evaluator."""

    def __init__(
        self,
        registry: WorkflowRegistry,
        persistence: Persistence,
        audit: AuditLog,
        notifier: Notifier,
        *,
        clock: Clock | None = None,
        listeners: Iterable[Listener] = (),
    ) -> None:
        self.registry = registry
        self._persistence = persistence
        self._clock: Clock = clock or now_utc
        self.executor = TransitionExecutor(registry, persistence, audit, clock=self._clock, listeners=listeners)
        self.validator = self.executor.validator
        self.scanner = AutoTransitionScanner(registry, persistence, self.executor, notifier=notifier, clock=self._clock)
        self.evaluator = EscalationEvaluator(
            registry, persistence, self.executor, notifier, audit=audit, clock=self._clock
        )
        self.formatter = StatusInfoFormatter(registry, self.validator, self.scanner, self.evaluator, clock=self._clock)

    @classmethod
    def from_db(
        cls,
        db: StatusDB,
        registry: WorkflowRegistry | None = None,
        *,
        clock: Clock | None = None,
    ) -> StatusEngine:
        """Wire *db* in as persistence, audit log and notifier at once."""
        return cls(registry or db.registry, db, db, db, clock=clock)

    # -- Synchronous requests -------------------------------------------------

    def request_transition(
        self,
        entity: Entity,
        kind: Kind | str,
        target: str,
        actor: str,
        capabilities: Iterable[Capability],
        *,
        custom_validation: CustomValidation | None = None,
    ) -> TransitionResult:
        return self.executor.apply(entity, kind, target, actor, capabilities, custom_validation=custom_validation)

    def transition_by_id(
        self,
        entity_id: str,
        target: str,
        actor: str,
        capabilities: Iterable[Capability],
        *,
        custom_validation: CustomValidation | None = None,
    ) -> TransitionResult:
        """Load the entity fresh from the store, then request the transition.

        Raises:
            KeyError: No such entity.
        """
        entity = self._persistence.get_entity(entity_id)
        return self.request_transition(
            entity, entity.kind, target, actor, capabilities, custom_validation=custom_validation
        )

    def validate(
        self,
        kind: Kind | str,
        from_status: str,
        to_status: str,
        capabilities: Iterable[Capability],
    ) -> TransitionCheck:
        return self.validator.validate(kind, from_status, to_status, capabilities)

    def get_available_transitions(
        self,
        entity: Entity,
        kind: Kind | str,
        capabilities: Iterable[Capability],
    ) -> list[str]:
        return self.validator.available_transitions(kind, entity.status, capabilities)

    def describe_status(self, entity: Entity, kind: Kind | str, capabilities: Iterable[Capability]) -> StatusInfo:
        return self.formatter.describe(entity, kind, capabilities)

    def requirements(self, kind: Kind | str, from_status: str, to_status: str) -> dict[str, Any]:
        return self.registry.requirements(kind, from_status, to_status)

    def export_workflows(self) -> list[WorkflowExport]:
        return self.registry.export()

    def add_listener(self, listener: Listener) -> None:
        self.executor.add_listener(listener)

    # -- Scheduled pass -------------------------------------------------------

    def run_scheduled_pass(
        self,
        kinds: Sequence[Kind | str] | None = None,
        *,
        should_stop: Callable[[], bool] | None = None,
    ) -> PassSummary:
        """Run auto-transitions, escalations and the overdue check for each kind in turn.

        *should_stop* is consulted between kinds; when it returns True the
        partial summary comes back with ``aborted`` set. Transitions already
        applied stay applied.

        Raises:
            ConfigurationError: A kind or rule set is invalid. Per-item
                failures never raise; they land in each kind's ``errors``.
        """
        selected = [coerce_kind(k) for k in kinds] if kinds is not None else self.registry.kinds()
        summary = PassSummary(timestamp=to_iso(self._clock()))
        t0 = time.monotonic()

        for kind in selected:
            if should_stop is not None and should_stop():
                summary.aborted = True
                logger.warning("Scheduled pass aborted before %s", kind, extra={"kind": kind.value, "action": "abort"})
                break
            summary.per_kind.append(self._run_kind(kind))

        logger.info(
            "Scheduled pass complete: %d kinds, %d transitioned, %d errors%s",
            len(summary.per_kind),
            summary.total_transitioned,
            summary.total_errors,
            " (aborted)" if summary.aborted else "",
            extra={"action": "scheduled_pass", "duration_ms": round((time.monotonic() - t0) * 1000, 2)},
        )
        return summary

    def _run_kind(self, kind: Kind) -> KindPassResult:
        scan = self.scanner.run_pass(kind)
        # Escalations read candidates fresh, so an entity the scanner just
        # moved is never escalated in the same pass.
        escalated = self.evaluator.run_pass(kind)
        overdue = self.evaluator.check_overdue(kind)
        return KindPassResult(
            kind=kind.value,
            processed=scan.processed,
            transitioned=[*scan.transitioned, *escalated.transitioned],
            escalations=escalated.escalations,
            overdue=overdue,
            errors=[*scan.errors, *escalated.errors],
        )
