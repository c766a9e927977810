"""Shared Protocols for the store mixins and the engine's collaborators."""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, Protocol

if TYPE_CHECKING:
    from statusflow.core import Entity

UpdateOutcome = Literal["success", "conflict"]
NotificationPriority = Literal["info", "warning", "critical"]


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn and
    self._now() without ``type: ignore`` on every call. Actual
    implementations are provided by StatusDB at composition time.
    """

    db_path: Path
    _conn: sqlite3.Connection | None

    @property
    def conn(self) -> sqlite3.Connection: ...

    def _now(self) -> str: ...


# ---------------------------------------------------------------------------
# Engine collaborators
# ---------------------------------------------------------------------------
# StatusDB satisfies all three; the engine only ever sees these seams, so a
# host application can plug in its own record store or notification queue.
# ---------------------------------------------------------------------------


class Persistence(Protocol):
    def get_entity(self, entity_id: str) -> Entity: ...

    def find_candidates(self, kind: str, statuses: Sequence[str]) -> list[Entity]: ...

    def update_status(
        self,
        kind: str,
        entity_id: str,
        fields: Mapping[str, Any],
        expected_current_status: str,
    ) -> UpdateOutcome: ...


class AuditLog(Protocol):
    def record(
        self,
        actor: str,
        kind: str,
        entity_id: str,
        description: str,
        *,
        action: str = "status_change",
    ) -> None: ...


class Notifier(Protocol):
    def enqueue(
        self,
        kind: str,
        entity_id: str,
        message: str,
        priority: NotificationPriority,
        recipient_id: str | None = None,
        *,
        dedup_key: str | None = None,
    ) -> bool: ...
