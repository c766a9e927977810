# src/statusflow/workflows_data.py
"""Built-in workflow definitions, one per entity kind.

This module is pure data. Logic lives in workflows.py (parsing, validation,
lookups) and conditions.py (the named predicates referenced below).

Each workflow is a JSON-compatible dict. The same shape is accepted from
project-local overrides in ``.statusflow/workflows/<kind>.json``:

  - ``statuses``: ordered list of ``{name, label, description}``
  - ``transitions``: ``{from, to, reason}`` plus optional ``allowed`` (default
    true), ``capabilities`` (OR semantics) and ``min_dwell_days``
  - ``auto_transitions``: ``{from, to, base_days, condition, description}``
    plus optional ``variation_factors``
  - ``escalations``: ``{status, timeout_days, action, description}``;
    ``process_payment`` also names its ``target``
  - ``derived_fields``: ``{status: {attribute: "now" | "actor"}}`` applied on entry
  - ``auto_notification``: message template and priority for auto-transitions
  - ``overdue``: optional ``{attribute, priority}`` for the overdue check
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Work items
# ---------------------------------------------------------------------------

_WORK_ITEM: dict[str, Any] = {
    "kind": "work_item",
    "display_name": "Work item",
    "initial_status": "backlog",
    "statuses": [
        {"name": "backlog", "label": "Backlog", "description": "Not yet started"},
        {"name": "todo", "label": "To do", "description": "Ready to start"},
        {"name": "in_progress", "label": "In progress", "description": "Work in progress"},
        {"name": "review", "label": "Review", "description": "Awaiting review"},
        {"name": "done", "label": "Done", "description": "Completed"},
    ],
    "transitions": [
        {"from": "backlog", "to": "todo", "reason": "Can move to ready state"},
        {"from": "todo", "to": "in_progress", "reason": "Can start work"},
        {"from": "todo", "to": "backlog", "reason": "Can move back to backlog"},
        {"from": "in_progress", "to": "review", "reason": "Can request review"},
        {"from": "in_progress", "to": "todo", "reason": "Can return to ready state"},
        {"from": "in_progress", "to": "done", "allowed": False, "reason": "Must go through review first"},
        {"from": "review", "to": "in_progress", "reason": "Can return to work"},
        {"from": "review", "to": "done", "reason": "Can complete after review"},
    ],
    "auto_transitions": [
        {
            "from": "todo",
            "to": "in_progress",
            "base_days": 3,
            "variation_factors": [
                {"factor": "priority", "adjustments": {"urgent": -2, "high": -1, "medium": 0, "low": 1}},
            ],
            "condition": {"name": "start_date_reached"},
            "description": "Auto-start work item after X days once its start date is reached",
        },
        {
            "from": "in_progress",
            "to": "review",
            "base_days": 5,
            "variation_factors": [
                {"factor": "completion_ratio", "min_ratio": 0.8},
            ],
            "condition": {"name": "checklist_ratio_at_least", "min_ratio": 0.8},
            "description": "Auto-move to review when 80% of the checklist is done",
        },
    ],
    "escalations": [
        {
            "status": "todo",
            "timeout_days": 7,
            "action": "reassign",
            "description": "Work item not started after 7 days - reassignment required",
        },
        {
            "status": "review",
            "timeout_days": 5,
            "action": "notify",
            "description": "Review pending for more than 5 days",
        },
    ],
    "derived_fields": {
        "done": {"completed_at": "now"},
    },
    "auto_notification": {"message": "Work item automatically moved to \"{to_label}\"", "priority": "info"},
    "overdue": {"attribute": "due_date", "priority": "critical"},
}

# ---------------------------------------------------------------------------
# Time entries
# ---------------------------------------------------------------------------

_TIME_ENTRY: dict[str, Any] = {
    "kind": "time_entry",
    "display_name": "Time entry",
    "initial_status": "draft",
    "statuses": [
        {"name": "draft", "label": "Draft", "description": "Draft - not submitted"},
        {"name": "submitted", "label": "Submitted", "description": "Submitted for approval"},
        {"name": "approved", "label": "Approved", "description": "Approved"},
        {"name": "rejected", "label": "Rejected", "description": "Rejected"},
    ],
    "transitions": [
        {"from": "draft", "to": "submitted", "reason": "Owner can submit for approval"},
        {"from": "submitted", "to": "draft", "reason": "Owner can return to draft"},
        {
            "from": "submitted",
            "to": "approved",
            "capabilities": ["view_time_entries", "admin_config"],
            "reason": "Approver can validate",
        },
        {
            "from": "submitted",
            "to": "rejected",
            "capabilities": ["view_time_entries", "admin_config"],
            "reason": "Approver can reject",
        },
        {"from": "rejected", "to": "draft", "reason": "Owner can rework after rejection"},
    ],
    "auto_transitions": [
        {
            "from": "draft",
            "to": "submitted",
            "base_days": 7,
            "condition": {"name": "month_end_within", "days": 5},
            "description": "Auto-submit time entry near month end",
        },
    ],
    "escalations": [
        {
            "status": "submitted",
            "timeout_days": 14,
            "action": "notify_manager",
            "description": "Notify manager if time entry pending approval > 14 days",
        },
    ],
    "derived_fields": {
        "submitted": {"submitted_at": "now"},
        "approved": {"validated_at": "now", "validated_by": "actor"},
    },
    "auto_notification": {"message": "Time entry automatically submitted for approval", "priority": "warning"},
}

# ---------------------------------------------------------------------------
# Expense claims
# ---------------------------------------------------------------------------

_EXPENSE: dict[str, Any] = {
    "kind": "expense",
    "display_name": "Expense",
    "initial_status": "pending",
    "statuses": [
        {"name": "pending", "label": "Pending", "description": "Awaiting validation"},
        {"name": "approved", "label": "Approved", "description": "Approved"},
        {"name": "rejected", "label": "Rejected", "description": "Rejected"},
        {"name": "paid", "label": "Paid", "description": "Payment processed"},
    ],
    "transitions": [
        {
            "from": "pending",
            "to": "approved",
            "capabilities": ["manage_budget", "admin_config"],
            "reason": "Approver can validate",
        },
        {
            "from": "pending",
            "to": "rejected",
            "capabilities": ["manage_budget", "admin_config"],
            "reason": "Approver can reject",
        },
        {"from": "approved", "to": "paid", "min_dwell_days": 3, "reason": "Can process payment after validation"},
        {"from": "approved", "to": "rejected", "reason": "Can reject even after approval"},
        {"from": "rejected", "to": "pending", "reason": "Creator can resubmit"},
    ],
    "auto_transitions": [
        {
            "from": "approved",
            "to": "paid",
            "base_days": 3,
            "variation_factors": [
                {
                    "factor": "amount",
                    "tiers": [
                        {"below": 100, "adjust": 1},
                        {"below": 1000, "adjust": 2},
                        {"adjust": 3},
                    ],
                },
            ],
            "condition": {"name": "validated_days_ago", "days": 3},
            "description": "Auto-process payment 3 days after approval",
        },
    ],
    "escalations": [
        {
            "status": "approved",
            "timeout_days": 7,
            "action": "process_payment",
            "target": "paid",
            "description": "Auto-process payment if not done within 7 days",
        },
    ],
    "derived_fields": {
        "approved": {"validated_at": "now", "validated_by": "actor"},
        "paid": {"paid_at": "now"},
    },
    "auto_notification": {"message": "Expense automatically processed", "priority": "info"},
}

# ---------------------------------------------------------------------------
# Iterations (sprints)
# ---------------------------------------------------------------------------

_ITERATION: dict[str, Any] = {
    "kind": "iteration",
    "display_name": "Iteration",
    "initial_status": "planned",
    "statuses": [
        {"name": "planned", "label": "Planned", "description": "Planned but not started"},
        {"name": "active", "label": "Active", "description": "Currently running"},
        {"name": "closed", "label": "Closed", "description": "Completed"},
    ],
    "transitions": [
        {"from": "planned", "to": "active", "reason": "Can start when the start date is reached"},
        {"from": "active", "to": "closed", "reason": "Can complete when the end date is reached"},
    ],
    "auto_transitions": [
        {
            "from": "planned",
            "to": "active",
            "base_days": 0,
            "condition": {"name": "start_date_reached"},
            "description": "Auto-start iteration when its start date is reached",
        },
        {
            "from": "active",
            "to": "closed",
            "base_days": 0,
            "condition": {"name": "end_date_reached"},
            "description": "Auto-complete iteration when its end date is reached",
        },
    ],
    "escalations": [],
    "derived_fields": {
        "active": {"actual_start": "now"},
        "closed": {"actual_end": "now"},
    },
    "auto_notification": {"message": "Iteration automatically moved to \"{to_label}\"", "priority": "warning"},
}

# ---------------------------------------------------------------------------
# Initiatives (projects)
# ---------------------------------------------------------------------------

_INITIATIVE: dict[str, Any] = {
    "kind": "initiative",
    "display_name": "Initiative",
    "initial_status": "planning",
    "statuses": [
        {"name": "planning", "label": "Planning", "description": "In planning phase"},
        {"name": "in_progress", "label": "In progress", "description": "Active"},
        {"name": "paused", "label": "Paused", "description": "Paused"},
        {"name": "completed", "label": "Completed", "description": "Completed"},
        {"name": "cancelled", "label": "Cancelled", "description": "Cancelled"},
    ],
    "transitions": [
        {"from": "planning", "to": "in_progress", "reason": "Can start initiative"},
        {"from": "in_progress", "to": "paused", "reason": "Can pause initiative"},
        {"from": "in_progress", "to": "completed", "reason": "Can complete initiative"},
        {"from": "in_progress", "to": "cancelled", "reason": "Can cancel initiative"},
        {"from": "paused", "to": "in_progress", "reason": "Can resume initiative"},
        {"from": "paused", "to": "cancelled", "reason": "Can cancel paused initiative"},
    ],
    "auto_transitions": [
        {
            "from": "in_progress",
            "to": "completed",
            "base_days": 0,
            "condition": {"name": "all_work_complete"},
            "description": "Auto-complete when all work items and iterations are done",
        },
    ],
    "escalations": [],
    "derived_fields": {
        "completed": {"completed_at": "now"},
    },
    "auto_notification": {"message": "Initiative automatically completed", "priority": "info"},
}

# ---------------------------------------------------------------------------
# Deliverables
# ---------------------------------------------------------------------------

_DELIVERABLE: dict[str, Any] = {
    "kind": "deliverable",
    "display_name": "Deliverable",
    "initial_status": "to_produce",
    "statuses": [
        {"name": "to_produce", "label": "To produce", "description": "Not yet created"},
        {"name": "in_validation", "label": "In validation", "description": "Under review"},
        {"name": "approved", "label": "Approved", "description": "Approved"},
        {"name": "rejected", "label": "Rejected", "description": "Rejected"},
        {"name": "archived", "label": "Archived", "description": "Archived"},
    ],
    "transitions": [
        {"from": "to_produce", "to": "in_validation", "reason": "Can submit for validation"},
        {
            "from": "in_validation",
            "to": "approved",
            "capabilities": ["validate_deliverables", "admin_config"],
            "reason": "Can approve deliverable",
        },
        {
            "from": "in_validation",
            "to": "rejected",
            "capabilities": ["validate_deliverables", "admin_config"],
            "reason": "Can reject deliverable",
        },
        {"from": "approved", "to": "archived", "reason": "Can archive"},
        {"from": "rejected", "to": "to_produce", "reason": "Can rework"},
    ],
    "auto_transitions": [
        {
            "from": "in_validation",
            "to": "approved",
            "base_days": 14,
            "condition": {"name": "submitted_days_ago", "days": 14},
            "description": "Auto-approve if no review after 14 days",
        },
    ],
    "escalations": [],
    "derived_fields": {
        "in_validation": {"submitted_at": "now"},
        "approved": {"validated_at": "now", "validated_by": "actor"},
    },
    "auto_notification": {"message": "Deliverable automatically approved", "priority": "info"},
}


BUILT_IN_WORKFLOWS: dict[str, dict[str, Any]] = {
    "work_item": _WORK_ITEM,
    "time_entry": _TIME_ENTRY,
    "expense": _EXPENSE,
    "iteration": _ITERATION,
    "initiative": _INITIATIVE,
    "deliverable": _DELIVERABLE,
}
