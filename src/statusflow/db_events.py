"""AuditMixin and NotificationMixin -- the audit trail and the outbound notification queue.

Composed into ``StatusDB``; all methods access ``self.conn`` via the MRO.
Delivery of queued notifications belongs to the host application.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import cast

from statusflow.db_base import DBMixinProtocol, NotificationPriority
from statusflow.exceptions import PersistenceError
from statusflow.types.events import AuditRecord, NotificationRecord

logger = logging.getLogger(__name__)


class AuditMixin(DBMixinProtocol):
    """Append-only audit log of status changes and escalation actions."""

    def record(
        self,
        actor: str,
        kind: str,
        entity_id: str,
        description: str,
        *,
        action: str = "status_change",
    ) -> None:
        try:
            self.conn.execute(
                "INSERT INTO audit_log (actor, action, kind, entity_id, description, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                (actor, action, kind, entity_id, description, self._now()),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            self.conn.rollback()
            msg = f"Failed to record audit entry for {entity_id}: {exc}"
            raise PersistenceError(msg) from exc

    def list_audit(
        self,
        *,
        entity_id: str | None = None,
        kind: str | None = None,
        limit: int = 50,
    ) -> list[AuditRecord]:
        """Audit entries, newest first."""
        conditions: list[str] = []
        params: list[object] = []
        if entity_id is not None:
            conditions.append("entity_id = ?")
            params.append(entity_id)
        if kind is not None:
            conditions.append("kind = ?")
            params.append(kind)
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)
        rows = self.conn.execute(
            f"SELECT * FROM audit_log{where} ORDER BY created_at DESC, id DESC LIMIT ?",
            params,
        ).fetchall()
        return cast(list[AuditRecord], [dict(r) for r in rows])


class NotificationMixin(DBMixinProtocol):
    """Outbound notification queue with optional de-duplication keys."""

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
        """Queue a notification.

        Returns False when *dedup_key* was already used, in which case
        nothing is inserted.
        """
        try:
            cursor = self.conn.execute(
                "INSERT OR IGNORE INTO notifications (kind, entity_id, message, priority, recipient_id, dedup_key, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (kind, entity_id, message, priority, recipient_id, dedup_key, self._now()),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            self.conn.rollback()
            msg = f"Failed to enqueue notification for {entity_id}: {exc}"
            raise PersistenceError(msg) from exc
        if cursor.rowcount == 0:
            logger.debug("Notification for %s suppressed (dedup_key=%s)", entity_id, dedup_key)
            return False
        return True

    def list_notifications(
        self,
        *,
        entity_id: str | None = None,
        kind: str | None = None,
        limit: int = 100,
    ) -> list[NotificationRecord]:
        """Queued notifications, oldest first."""
        conditions: list[str] = []
        params: list[object] = []
        if entity_id is not None:
            conditions.append("entity_id = ?")
            params.append(entity_id)
        if kind is not None:
            conditions.append("kind = ?")
            params.append(kind)
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)
        rows = self.conn.execute(
            f"SELECT * FROM notifications{where} ORDER BY created_at, id LIMIT ?",
            params,
        ).fetchall()
        return cast(list[NotificationRecord], [dict(r) for r in rows])
