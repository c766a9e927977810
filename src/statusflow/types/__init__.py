# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or the engine modules; circular imports otherwise.
"""Typed return-value contracts for the statusflow store, engine, and API layers."""

from __future__ import annotations

from statusflow.types.core import EntityDict, ISOTimestamp, ProjectConfig
from statusflow.types.events import AuditRecord, NotificationRecord
from statusflow.types.workflow import (
    AutoTransitionInfo,
    EscalationInfo,
    ItemError,
    KindPassDict,
    PassSummaryDict,
    StatusInfoDict,
    TransitionedItem,
    WorkflowExport,
)

__all__ = [
    "AuditRecord",
    "AutoTransitionInfo",
    "EntityDict",
    "EscalationInfo",
    "ISOTimestamp",
    "ItemError",
    "KindPassDict",
    "NotificationRecord",
    "PassSummaryDict",
    "ProjectConfig",
    "StatusInfoDict",
    "TransitionedItem",
    "WorkflowExport",
]
