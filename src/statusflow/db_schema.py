"""Database schema for the statusflow store."""

from __future__ import annotations

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS entities (
    id                TEXT PRIMARY KEY,
    kind              TEXT NOT NULL,
    title             TEXT NOT NULL DEFAULT '',
    status            TEXT NOT NULL,
    status_changed_at TEXT NOT NULL,
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL,
    owner_id          TEXT DEFAULT '',
    assignee_id       TEXT DEFAULT '',
    priority          TEXT,
    amount            REAL,
    attributes        TEXT DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_entities_kind_status ON entities(kind, status);
CREATE INDEX IF NOT EXISTS idx_entities_status_changed ON entities(kind, status, status_changed_at);

CREATE TABLE IF NOT EXISTS audit_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    actor       TEXT NOT NULL DEFAULT '',
    action      TEXT NOT NULL,
    kind        TEXT NOT NULL,
    entity_id   TEXT NOT NULL,
    description TEXT DEFAULT '',
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_audit_entity ON audit_log(entity_id, created_at);
CREATE INDEX IF NOT EXISTS idx_audit_created ON audit_log(created_at);

CREATE TABLE IF NOT EXISTS notifications (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    kind         TEXT NOT NULL,
    entity_id    TEXT NOT NULL,
    message      TEXT NOT NULL,
    priority     TEXT NOT NULL DEFAULT 'info',
    recipient_id TEXT,
    dedup_key    TEXT UNIQUE,
    created_at   TEXT NOT NULL,

    CHECK (priority IN ('info', 'warning', 'critical'))
);

CREATE INDEX IF NOT EXISTS idx_notifications_entity ON notifications(entity_id, created_at);
"""

CURRENT_SCHEMA_VERSION = 1
