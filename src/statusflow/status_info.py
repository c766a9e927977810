"""Read-only status summary composed from the validator, scanner and evaluator."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from statusflow.escalation import EscalationAction, EscalationEvaluator
from statusflow.scanner import AutoTransitionProjection, AutoTransitionScanner
from statusflow.timeutil import Clock, now_utc
from statusflow.transitions import TransitionValidator
from statusflow.types.workflow import StatusInfoDict
from statusflow.workflows import Capability, Kind, WorkflowRegistry

if TYPE_CHECKING:
    from statusflow.core import Entity


@dataclass(frozen=True)
class StatusInfo:
    current: str
    label: str
    available: list[str] = field(default_factory=list)
    auto_transition: AutoTransitionProjection | None = None
    escalation: EscalationAction | None = None

    def to_dict(self) -> StatusInfoDict:
        return StatusInfoDict(
            current=self.current,
            label=self.label,
            available=list(self.available),
            auto_transition=self.auto_transition.to_dict() if self.auto_transition else None,
            escalation=self.escalation.to_dict() if self.escalation else None,
        )


class StatusInfoFormatter:
    def __init__(
        self,
        registry: WorkflowRegistry,
        validator: TransitionValidator,
        scanner: AutoTransitionScanner,
        evaluator: EscalationEvaluator,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._validator = validator
        self._scanner = scanner
        self._evaluator = evaluator
        self._clock: Clock = clock or now_utc

    def describe(self, entity: Entity, kind: Kind | str, capabilities: Iterable[Capability]) -> StatusInfo:
        now = self._clock()
        return StatusInfo(
            current=entity.status,
            label=self._registry.status(kind, entity.status).label,
            available=self._validator.available_transitions(kind, entity.status, capabilities),
            auto_transition=self._scanner.project(kind, entity, now),
            escalation=self._evaluator.evaluate(kind, entity, now),
        )
