"""Transition executor -- the single code path for every status mutation.

User requests, auto-transitions and escalation shortcuts all flow through
``TransitionExecutor.apply``:

1. validate against the transition table (deny: no side effects)
2. enforce the rule's minimum dwell time
3. compute derived fields for the target status
4. run the caller's custom validation hook, if any
5. persist with the optimistic precondition "status is still ``from``"
6. record an audit entry (a failure here is logged; the change stands)
7. emit a ``StatusChangedEvent`` to registered listeners
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from statusflow.exceptions import ConfigurationError, PersistenceError
from statusflow.timeutil import Clock, elapsed_days, now_utc, to_iso
from statusflow.transitions import (
    PersistenceConflict,
    TransitionApplied,
    TransitionDenied,
    TransitionResult,
    TransitionValidator,
)
from statusflow.workflows import Capability, Kind, WorkflowRegistry, coerce_kind

if TYPE_CHECKING:
    from statusflow.core import Entity
    from statusflow.db_base import AuditLog, Persistence

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

TransitionOrigin = Literal["user", "auto", "escalation"]

# Returns an error message to deny the transition, or None to let it through.
CustomValidation = Callable[["Entity", str, Mapping[str, Any]], str | None]


@dataclass(frozen=True)
class StatusChangedEvent:
    kind: str
    entity_id: str
    previous_status: str
    new_status: str
    actor: str
    origin: TransitionOrigin
    reason: str
    occurred_at: str


Listener = Callable[[StatusChangedEvent], None]


class TransitionExecutor:
    def __init__(
        self,
        registry: WorkflowRegistry,
        persistence: Persistence,
        audit: AuditLog,
        *,
        clock: Clock | None = None,
        listeners: Iterable[Listener] = (),
    ) -> None:
        self._registry = registry
        self._validator = TransitionValidator(registry)
        self._persistence = persistence
        self._audit = audit
        self._clock: Clock = clock or now_utc
        self._listeners: list[Listener] = list(listeners)

    @property
    def validator(self) -> TransitionValidator:
        return self._validator

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def derived_fields(self, kind: Kind | str, to_status: str, actor: str, now_iso: str) -> dict[str, Any]:
        """Attribute values written on entering *to_status* (``now`` -> timestamp, ``actor`` -> actor)."""
        values = {"now": now_iso, "actor": actor}
        return {attr: values[source] for attr, source in self._registry.derived_fields_for(kind, to_status).items()}

    def apply(
        self,
        entity: Entity,
        kind: Kind | str,
        to_status: str,
        actor: str,
        capabilities: Iterable[Capability],
        *,
        custom_validation: CustomValidation | None = None,
        origin: TransitionOrigin = "user",
        note: str | None = None,
    ) -> TransitionResult:
        """Attempt to move *entity* to *to_status*.

        Returns ``TransitionApplied`` or a ``TransitionDenied`` subtype; denials
        never have side effects.

        Raises:
            ConfigurationError: Unknown kind or status, or *entity* is not of *kind*.
            PersistenceError: The store failed outright.
        """
        kind = coerce_kind(kind)
        if entity.kind != kind.value:
            msg = f"Entity {entity.id} is a {entity.kind}, not a {kind}"
            raise ConfigurationError(msg)
        from_status = entity.status

        check = self._validator.validate(kind, from_status, to_status, capabilities)
        if isinstance(check, TransitionDenied):
            logger.info(
                "Transition denied: %s %s -> %s (%s)",
                entity.id,
                from_status,
                to_status,
                check.code,
                extra={"kind": kind.value, "entity_id": entity.id, "action": "denied"},
            )
            return check

        now = self._clock()
        if check.min_dwell_days:
            elapsed = elapsed_days(entity.status_changed_at, now)
            if elapsed < check.min_dwell_days:
                return TransitionDenied(
                    reason=(
                        f"{check.reason}: must remain in '{from_status}' at least "
                        f"{check.min_dwell_days:g} days ({elapsed} elapsed)"
                    ),
                    code="dwell_time",
                    min_dwell_days=check.min_dwell_days,
                )

        now_iso = to_iso(now)
        derived = self.derived_fields(kind, to_status, actor, now_iso)

        if custom_validation is not None:
            problem = custom_validation(entity, to_status, derived)
            if problem:
                return TransitionDenied(reason=problem, code="custom_validation")

        t0 = time.monotonic()
        fields: dict[str, Any] = {"status": to_status, "status_changed_at": now_iso, **derived}
        outcome = self._persistence.update_status(kind.value, entity.id, fields, from_status)
        if outcome == "conflict":
            logger.warning(
                "Optimistic conflict on %s: status is no longer '%s'",
                entity.id,
                from_status,
                extra={"kind": kind.value, "entity_id": entity.id, "action": "conflict"},
            )
            return PersistenceConflict(reason=f"Status of {entity.id} changed concurrently; expected '{from_status}'")

        description = f"Status changed from '{from_status}' to '{to_status}'"
        if note:
            description = f"{description}: {note}"
        try:
            self._audit.record(actor, kind.value, entity.id, description)
        except PersistenceError as exc:
            # The status write is committed; report the change as applied.
            logger.error(
                "Audit entry lost for applied transition %s %s -> %s",
                entity.id,
                from_status,
                to_status,
                exc_info=True,
                extra={"kind": kind.value, "entity_id": entity.id, "action": "audit_failed", "error": str(exc)},
            )

        updated = self._persistence.get_entity(entity.id)
        logger.info(
            "Transition applied: %s %s -> %s by %s",
            entity.id,
            from_status,
            to_status,
            actor,
            extra={
                "kind": kind.value,
                "entity_id": entity.id,
                "action": origin,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        self._emit(
            StatusChangedEvent(
                kind=kind.value,
                entity_id=entity.id,
                previous_status=from_status,
                new_status=to_status,
                actor=actor,
                origin=origin,
                reason=check.reason,
                occurred_at=now_iso,
            )
        )
        return TransitionApplied(
            previous_status=from_status,
            new_status=to_status,
            reason=check.reason,
            entity=updated,
            derived_fields=derived,
        )

    def _emit(self, event: StatusChangedEvent) -> None:
        # The change is already committed; a failing listener must not mask it.
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as exc:
                logger.error(
                    "Status listener %r failed for %s",
                    listener,
                    event.entity_id,
                    exc_info=True,
                    extra={"kind": event.kind, "entity_id": event.entity_id, "error": str(exc)},
                )
