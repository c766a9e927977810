"""Transition validation -- the pure ``(kind, from, to, capabilities)`` decision.

Also defines the result types every transition attempt returns. A denied
transition is an expected outcome and is reported as a value, never raised.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from statusflow.workflows import Capability, Kind, WorkflowRegistry

if TYPE_CHECKING:
    from statusflow.core import Entity

logger = logging.getLogger(__name__)

DenialCode = Literal[
    "no_such_transition",
    "disallowed",
    "permission_denied",
    "dwell_time",
    "custom_validation",
    "conflict",
]


@dataclass(frozen=True, kw_only=True)
class TransitionCheck:
    """Outcome of validating one ``from -> to`` move.

    ``min_dwell_days`` is informational: the validator never reads the
    clock, the executor enforces it.
    """

    allowed: bool
    reason: str
    min_dwell_days: float | None = None


@dataclass(frozen=True, kw_only=True)
class TransitionDenied(TransitionCheck):
    allowed: bool = False
    code: DenialCode = "disallowed"

    def to_dict(self) -> dict[str, object]:
        return {"allowed": False, "reason": self.reason, "code": self.code}


@dataclass(frozen=True, kw_only=True)
class PermissionDenied(TransitionDenied):
    """Denied for lack of capability; names the capabilities that would have sufficed."""

    code: DenialCode = "permission_denied"
    required_capabilities: frozenset[Capability] = frozenset()

    def to_dict(self) -> dict[str, object]:
        return {**super().to_dict(), "required_capabilities": sorted(c.value for c in self.required_capabilities)}


@dataclass(frozen=True, kw_only=True)
class PersistenceConflict(TransitionDenied):
    """The stored status changed between read and write. Safe to retry."""

    code: DenialCode = "conflict"
    transient: bool = True

    def to_dict(self) -> dict[str, object]:
        return {**super().to_dict(), "transient": self.transient}


@dataclass(frozen=True, kw_only=True)
class TransitionApplied:
    previous_status: str
    new_status: str
    reason: str
    entity: Entity
    derived_fields: dict[str, object] = field(default_factory=dict)
    allowed: bool = True

    def to_dict(self) -> dict[str, object]:
        return {
            "allowed": True,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "reason": self.reason,
            "entity": self.entity.to_dict(),
        }


TransitionResult = TransitionApplied | TransitionDenied


class TransitionValidator:
    """Pure decision over the registry's transition table."""

    def __init__(self, registry: WorkflowRegistry) -> None:
        self._registry = registry

    def validate(
        self,
        kind: Kind | str,
        from_status: str,
        to_status: str,
        capabilities: Iterable[Capability],
    ) -> TransitionCheck:
        """Decide whether *capabilities* may move a *kind* entity from *from_status* to *to_status*.

        Raises:
            ConfigurationError: Unknown kind or undeclared status.
        """
        rule = self._registry.transition(kind, from_status, to_status)
        if rule is None:
            return TransitionDenied(
                reason=f"No transition from '{from_status}' to '{to_status}'",
                code="no_such_transition",
            )
        if not rule.allowed:
            return TransitionDenied(reason=rule.reason, code="disallowed")
        if rule.required_capabilities and not (rule.required_capabilities & frozenset(capabilities)):
            needed = ", ".join(sorted(c.value for c in rule.required_capabilities))
            return PermissionDenied(
                reason=f"{rule.reason} (requires one of: {needed})",
                required_capabilities=rule.required_capabilities,
                min_dwell_days=rule.min_dwell_days,
            )
        logger.debug("Transition %s: %s -> %s allowed", kind, from_status, to_status)
        return TransitionCheck(allowed=True, reason=rule.reason, min_dwell_days=rule.min_dwell_days)

    def available_transitions(
        self,
        kind: Kind | str,
        status: str,
        capabilities: Iterable[Capability],
    ) -> list[str]:
        """Targets ``validate`` allows from *status*, in declaration order."""
        caps = frozenset(capabilities)
        return [
            rule.to_status
            for rule in self._registry.transitions_from(kind, status)
            if self.validate(kind, status, rule.to_status, caps).allowed
        ]
