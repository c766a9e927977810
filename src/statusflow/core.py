"""Core store operations for the status engine.

``StatusDB`` is the SQLite implementation of the engine's three
collaborators (Persistence, AuditLog, Notifier). Both the CLI and the HTTP
API import from this module. Direct SQLite with WAL mode, no daemon.

Convention-based discovery: each project has a `.statusflow/` directory
containing `statusflow.db` (SQLite), `config.json` (version, enabled kinds,
log level) and optional `workflows/<kind>.json` overrides.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from statusflow.db_base import UpdateOutcome
from statusflow.db_events import AuditMixin, NotificationMixin
from statusflow.db_schema import CURRENT_SCHEMA_VERSION, SCHEMA_SQL
from statusflow.exceptions import PersistenceError
from statusflow.timeutil import Clock, now_utc, to_iso
from statusflow.types.core import EntityDict, ISOTimestamp, ProjectConfig

if TYPE_CHECKING:
    from statusflow.workflows import WorkflowRegistry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

STATUSFLOW_DIR_NAME = ".statusflow"
DB_FILENAME = "statusflow.db"
CONFIG_FILENAME = "config.json"

DEFAULT_LOG_LEVEL = "INFO"


def find_statusflow_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .statusflow/ directory.

    Returns the .statusflow/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / STATUSFLOW_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {STATUSFLOW_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def default_config() -> ProjectConfig:
    from statusflow.workflows import Kind

    return ProjectConfig(version=1, enabled_kinds=[k.value for k in Kind], log_level=DEFAULT_LOG_LEVEL)


def read_config(statusflow_dir: Path) -> ProjectConfig:
    """Read .statusflow/config.json. Returns defaults if missing or corrupt."""
    defaults = default_config()
    config_path = statusflow_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        raw = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(raw, dict):
        logger.warning("Ignoring %s: expected a JSON object", config_path)
        return defaults
    result: ProjectConfig = {**defaults, **raw}  # type: ignore[typeddict-item]
    return result


def write_config(statusflow_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .statusflow/config.json."""
    config_path = statusflow_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


# ---------------------------------------------------------------------------
# Entity record
# ---------------------------------------------------------------------------

# Columns update_status may write directly; every other field key lands in
# the attributes JSON blob.
_UPDATABLE_COLUMNS = frozenset({"status", "status_changed_at", "owner_id", "assignee_id", "priority", "amount"})


@dataclass
class Entity:
    """One externally owned record whose status the engine governs.

    ``attributes`` holds the kind-specific values condition predicates read
    (``start_date``, ``due_date``, ``checklist``, ``validated_at``,
    ``stats``...) along with derived fields written on status entry.
    """

    id: str
    kind: str
    status: str
    title: str = ""
    status_changed_at: str = ""
    created_at: str = ""
    updated_at: str = ""
    owner_id: str = ""
    assignee_id: str = ""
    priority: str | None = None
    amount: float | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> EntityDict:
        return EntityDict(
            id=self.id,
            kind=self.kind,
            title=self.title,
            status=self.status,
            status_changed_at=ISOTimestamp(self.status_changed_at),
            created_at=ISOTimestamp(self.created_at),
            updated_at=ISOTimestamp(self.updated_at),
            owner_id=self.owner_id,
            assignee_id=self.assignee_id,
            priority=self.priority,
            amount=self.amount,
            attributes=self.attributes,
        )


def _entity_from_row(row: sqlite3.Row) -> Entity:
    try:
        attributes = json.loads(row["attributes"] or "{}")
    except json.JSONDecodeError:
        logger.warning("Corrupt attributes JSON on entity %s; treating as empty", row["id"])
        attributes = {}
    return Entity(
        id=row["id"],
        kind=row["kind"],
        title=row["title"],
        status=row["status"],
        status_changed_at=row["status_changed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        owner_id=row["owner_id"] or "",
        assignee_id=row["assignee_id"] or "",
        priority=row["priority"],
        amount=row["amount"],
        attributes=attributes if isinstance(attributes, dict) else {},
    )


# ---------------------------------------------------------------------------
# StatusDB -- the store
# ---------------------------------------------------------------------------


class StatusDB(AuditMixin, NotificationMixin):
    """Direct SQLite operations. Implements Persistence, AuditLog and Notifier."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        registry: WorkflowRegistry | None = None,
        clock: Clock | None = None,
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread
        self._registry = registry
        self._clock: Clock = clock or now_utc

    @classmethod
    def from_project(
        cls,
        project_path: Path | None = None,
        *,
        registry: WorkflowRegistry | None = None,
    ) -> StatusDB:
        """Create a StatusDB by discovering .statusflow/ from project_path (or cwd)."""
        statusflow_dir = find_statusflow_root(project_path)
        db = cls(statusflow_dir / DB_FILENAME, registry=registry)
        db.initialize()
        return db

    def __enter__(self) -> StatusDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    @property
    def registry(self) -> WorkflowRegistry:
        """Workflow registry used for initial statuses (built-ins unless injected)."""
        if self._registry is None:
            from statusflow.workflows import WorkflowRegistry

            self._registry = WorkflowRegistry.builtin()
        return self._registry

    def _now(self) -> str:
        return to_iso(self._clock())

    def initialize(self) -> None:
        """Create tables for a fresh database and stamp the schema version."""
        if self.get_schema_version() == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        self.conn.commit()

    def get_schema_version(self) -> int:
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _generate_unique_id(self, kind: str) -> str:
        prefix = kind.replace("_", "")[:8]
        for _ in range(10):
            candidate = f"{prefix}-{uuid.uuid4().hex[:10]}"
            if self.conn.execute("SELECT 1 FROM entities WHERE id = ?", (candidate,)).fetchone() is None:
                return candidate
        return f"{prefix}-{uuid.uuid4().hex[:16]}"

    # -- Entity CRUD ---------------------------------------------------------

    def create_entity(
        self,
        kind: str,
        title: str,
        *,
        status: str | None = None,
        entity_id: str | None = None,
        owner_id: str = "",
        assignee_id: str = "",
        priority: str | None = None,
        amount: float | None = None,
        attributes: dict[str, Any] | None = None,
        status_changed_at: str | None = None,
    ) -> Entity:
        """Insert a new entity in the kind's initial status (or *status*, if given).

        Raises:
            ConfigurationError: Unknown kind, or *status* not declared for it.
            ValueError: Empty title or duplicate *entity_id*.
        """
        if not title or not title.strip():
            msg = "Title cannot be empty"
            raise ValueError(msg)
        kind = self.registry.workflow(kind).kind.value
        if status is None:
            status = self.registry.initial_status(kind)
        else:
            self.registry.status(kind, status)
        if entity_id is not None:
            if self.conn.execute("SELECT 1 FROM entities WHERE id = ?", (entity_id,)).fetchone() is not None:
                msg = f"Entity already exists: {entity_id}"
                raise ValueError(msg)
        else:
            entity_id = self._generate_unique_id(kind)

        now = self._now()
        try:
            self.conn.execute(
                "INSERT INTO entities (id, kind, title, status, status_changed_at, created_at, updated_at, "
                "owner_id, assignee_id, priority, amount, attributes) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    entity_id,
                    kind,
                    title.strip(),
                    status,
                    status_changed_at or now,
                    now,
                    now,
                    owner_id,
                    assignee_id,
                    priority,
                    amount,
                    json.dumps(attributes or {}),
                ),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            self.conn.rollback()
            msg = f"Failed to create {kind} entity: {exc}"
            raise PersistenceError(msg) from exc
        logger.info("Created %s %s in status %s", kind, entity_id, status)
        return self.get_entity(entity_id)

    def get_entity(self, entity_id: str) -> Entity:
        row = self.conn.execute("SELECT * FROM entities WHERE id = ?", (entity_id,)).fetchone()
        if row is None:
            msg = f"Entity not found: {entity_id}"
            raise KeyError(msg)
        return _entity_from_row(row)

    def list_entities(
        self,
        *,
        kind: str | None = None,
        status: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Entity]:
        if limit < 0:
            limit = 100
        if offset < 0:
            offset = 0
        conditions: list[str] = []
        params: list[Any] = []
        if kind is not None:
            conditions.append("kind = ?")
            params.append(kind)
        if status is not None:
            conditions.append("status = ?")
            params.append(status)
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        params.extend([limit, offset])
        rows = self.conn.execute(
            f"SELECT * FROM entities{where} ORDER BY created_at, id LIMIT ? OFFSET ?",
            params,
        ).fetchall()
        return [_entity_from_row(r) for r in rows]

    # -- Persistence protocol ------------------------------------------------

    def find_candidates(self, kind: str, statuses: Sequence[str]) -> list[Entity]:
        """All entities of *kind* currently in one of *statuses* (one query)."""
        if not statuses:
            return []
        status_ph = ",".join("?" * len(statuses))
        rows = self.conn.execute(
            f"SELECT * FROM entities WHERE kind = ? AND status IN ({status_ph}) ORDER BY status_changed_at, id",
            [kind, *statuses],
        ).fetchall()
        return [_entity_from_row(r) for r in rows]

    def update_status(
        self,
        kind: str,
        entity_id: str,
        fields: Mapping[str, Any],
        expected_current_status: str,
    ) -> UpdateOutcome:
        """Write *fields* only if the stored status still equals *expected_current_status*.

        Keys naming a column (``status``, ``status_changed_at``...) update
        that column; every other key is merged into ``attributes``.
        A failed precondition returns ``"conflict"`` and writes nothing.

        Raises:
            KeyError: No entity *entity_id* of *kind*.
            PersistenceError: The database itself failed.
        """
        try:
            row = self.conn.execute(
                "SELECT status, attributes FROM entities WHERE id = ? AND kind = ?",
                (entity_id, kind),
            ).fetchone()
            if row is None:
                msg = f"Entity not found: {entity_id}"
                raise KeyError(msg)
            if row["status"] != expected_current_status:
                return "conflict"

            attributes = json.loads(row["attributes"] or "{}")
            columns: dict[str, Any] = {}
            for key, value in fields.items():
                if key in _UPDATABLE_COLUMNS:
                    columns[key] = value
                else:
                    attributes[key] = value
            columns["attributes"] = json.dumps(attributes)
            columns["updated_at"] = self._now()

            assignments = ", ".join(f"{col} = ?" for col in columns)
            # Optimistic guard: re-check the status inside the UPDATE itself.
            cursor = self.conn.execute(
                f"UPDATE entities SET {assignments} WHERE id = ? AND kind = ? AND status = ?",
                [*columns.values(), entity_id, kind, expected_current_status],
            )
            if cursor.rowcount == 0:
                self.conn.rollback()
                return "conflict"
            self.conn.commit()
        except sqlite3.Error as exc:
            self.conn.rollback()
            msg = f"Failed to update status of {entity_id}: {exc}"
            raise PersistenceError(msg) from exc
        return "success"
