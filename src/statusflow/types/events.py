"""TypedDicts for db_events.py return types."""

from __future__ import annotations

from typing import TypedDict

from statusflow.types.core import ISOTimestamp


class AuditRecord(TypedDict):
    """Row from the audit_log table, returned by ``list_audit()``."""

    id: int
    actor: str
    action: str
    kind: str
    entity_id: str
    description: str
    created_at: ISOTimestamp


class NotificationRecord(TypedDict):
    """Row from the notifications table, returned by ``list_notifications()``.

    ``dedup_key`` is NULL for notifications that may repeat (auto-transition
    notices); escalation and overdue notices carry one so a periodic pass
    never enqueues the same signal twice.
    """

    id: int
    kind: str
    entity_id: str
    message: str
    priority: str
    recipient_id: str | None
    dedup_key: str | None
    created_at: ISOTimestamp
