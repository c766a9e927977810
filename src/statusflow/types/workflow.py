"""TypedDicts for engine and registry return shapes (to_dict() and exports)."""

from __future__ import annotations

from typing import Any, TypedDict

from statusflow.types.core import ISOTimestamp


class AutoTransitionInfo(TypedDict):
    target_status: str
    reason: str
    required_days: int
    elapsed_days: int
    ready_in_days: int


class EscalationInfo(TypedDict):
    action: str
    reason: str
    days_since: int


class StatusInfoDict(TypedDict):
    """Presentation read-model returned by ``StatusInfo.to_dict()``."""

    current: str
    label: str
    available: list[str]
    auto_transition: AutoTransitionInfo | None
    escalation: EscalationInfo | None


class TransitionedItem(TypedDict):
    id: str
    from_status: str
    to_status: str
    reason: str
    origin: str


class ItemError(TypedDict):
    id: str
    error: str
    code: str


class KindPassDict(TypedDict):
    kind: str
    processed: int
    transitioned: list[TransitionedItem]
    escalations: list[dict[str, Any]]
    overdue: int
    errors: list[ItemError]


class PassSummaryDict(TypedDict):
    timestamp: ISOTimestamp
    per_kind: list[KindPassDict]
    total_transitioned: int
    aborted: bool


# TransitionExport uses "from" as a key at runtime (a Python keyword).
# TypedDict cannot express this with class syntax; we use functional form.
TransitionExport = TypedDict(
    "TransitionExport",
    {
        "from": str,
        "to": str,
        "allowed": bool,
        "capabilities": list[str],
        "min_dwell_days": float | None,
        "reason": str,
    },
)


class WorkflowExport(TypedDict):
    """JSON-safe view of one kind's workflow, returned by ``export_workflows()``."""

    kind: str
    display_name: str
    initial_status: str
    statuses: list[dict[str, str]]
    transitions: list[TransitionExport]
    auto_transitions: list[dict[str, Any]]
    escalations: list[dict[str, Any]]
