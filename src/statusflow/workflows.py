# src/statusflow/workflows.py
"""Workflow registry -- loading, validation, and read-only lookups.

Provides WorkflowRegistry, the immutable per-kind table of statuses,
transition rules, auto-transition rules, and escalation rules that every
other engine component reads. A registry is assembled once at startup and
passed by reference; there is no mutation API. Tests build an alternate
registry from their own data instead of patching the shared one.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Literal

from statusflow.conditions import CONDITIONS
from statusflow.exceptions import ConfigurationError
from statusflow.types.workflow import TransitionExport, WorkflowExport

logger = logging.getLogger(__name__)

# Status names double as SQL parameters and JSON keys; keep them boring.
_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,63}$")

WORKFLOWS_DIRNAME = "workflows"

# ---------------------------------------------------------------------------
# Closed enumerations
# ---------------------------------------------------------------------------


class Kind(StrEnum):
    """The entity kinds governed by the engine."""

    WORK_ITEM = "work_item"
    TIME_ENTRY = "time_entry"
    EXPENSE = "expense"
    ITERATION = "iteration"
    INITIATIVE = "initiative"
    DELIVERABLE = "deliverable"


class Capability(StrEnum):
    """Atomic permissions an actor may hold."""

    VIEW_ALL_PROJECTS = "view_all_projects"
    VIEW_OWN_PROJECTS = "view_own_projects"
    CREATE_PROJECT = "create_project"
    DELETE_PROJECT = "delete_project"
    EDIT_PROJECT_CHARTER = "edit_project_charter"
    MANAGE_PROJECT_MEMBERS = "manage_project_members"
    CHANGE_MEMBER_ROLE = "change_member_role"
    MANAGE_TASKS = "manage_tasks"
    MOVE_TASKS = "move_tasks"
    PRIORITIZE_BACKLOG = "prioritize_backlog"
    MANAGE_SPRINTS = "manage_sprints"
    MANAGE_BUDGET = "manage_budget"
    VIEW_BUDGET = "view_budget"
    VIEW_TIME_ENTRIES = "view_time_entries"
    ENTER_TIME = "enter_time"
    VALIDATE_DELIVERABLES = "validate_deliverables"
    MANAGE_FILES = "manage_files"
    COMMENT = "comment"
    RECEIVE_NOTIFICATIONS = "receive_notifications"
    GENERATE_REPORTS = "generate_reports"
    VIEW_AUDIT = "view_audit"
    MANAGE_USERS = "manage_users"
    ADMIN_CONFIG = "admin_config"


ALL_CAPABILITIES: frozenset[Capability] = frozenset(Capability)

EscalationActionName = Literal["notify", "notify_manager", "process_payment", "reassign"]
FactorName = Literal["priority", "amount", "completion_ratio"]
DerivedValue = Literal["now", "actor"]
NotificationPriority = Literal["info", "warning", "critical"]

_VALID_ACTIONS: frozenset[str] = frozenset({"notify", "notify_manager", "process_payment", "reassign"})
_VALID_FACTORS: frozenset[str] = frozenset({"priority", "amount", "completion_ratio"})
_VALID_DERIVED: frozenset[str] = frozenset({"now", "actor"})
_VALID_PRIORITIES: frozenset[str] = frozenset({"info", "warning", "critical"})


def coerce_kind(value: Kind | str) -> Kind:
    """Return *value* as a Kind, raising ConfigurationError for unknown names."""
    if isinstance(value, Kind):
        return value
    try:
        return Kind(value)
    except ValueError:
        valid = ", ".join(k.value for k in Kind)
        msg = f"Unknown kind '{value}'. Valid kinds: {valid}"
        raise ConfigurationError(msg) from None


def parse_capabilities(names: Iterable[str]) -> frozenset[Capability]:
    """Parse capability names from configuration data."""
    caps: set[Capability] = set()
    for name in names:
        try:
            caps.add(Capability(name))
        except ValueError:
            msg = f"Unknown capability '{name}'"
            raise ConfigurationError(msg) from None
    return frozenset(caps)


# ---------------------------------------------------------------------------
# Frozen dataclasses
# ---------------------------------------------------------------------------
# Workflow definitions are configuration data: frozen so nothing downstream
# can mutate a rule after the registry is built. Entity records (core.Entity)
# stay mutable dataclasses.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatusDefinition:
    """A named status of one kind. Label and description are presentation only."""

    name: str
    label: str
    description: str = ""


@dataclass(frozen=True)
class TransitionRule:
    """A declared ``from -> to`` move, possibly explicitly disallowed."""

    from_status: str
    to_status: str
    reason: str
    allowed: bool = True
    required_capabilities: frozenset[Capability] = frozenset()
    min_dwell_days: float | None = None


@dataclass(frozen=True)
class AmountTier:
    """Adjustment applied when an amount is below ``below`` (None = open-ended)."""

    below: float | None
    adjust: int


@dataclass(frozen=True)
class VariationFactor:
    """Stretches or shrinks an auto-transition's base day threshold.

    - ``priority``: ``adjustments`` keyed by the entity's priority.
    - ``amount``: first matching entry of ``tiers`` by the entity's amount.
    - ``completion_ratio``: a checklist ratio of at least ``min_ratio``
      satisfies the rule immediately.
    """

    factor: FactorName
    adjustments: Mapping[str, int] = field(default_factory=dict)
    tiers: tuple[AmountTier, ...] = ()
    min_ratio: float | None = None


@dataclass(frozen=True)
class ConditionRef:
    """Reference to a named predicate in ``statusflow.conditions``."""

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AutoTransitionRule:
    from_status: str
    target_status: str
    base_days: int
    condition: ConditionRef
    description: str
    variation_factors: tuple[VariationFactor, ...] = ()


@dataclass(frozen=True)
class EscalationRule:
    status: str
    timeout_days: int
    action: EscalationActionName
    description: str
    target_status: str | None = None


@dataclass(frozen=True)
class AutoNotification:
    message: str
    priority: NotificationPriority = "info"


@dataclass(frozen=True)
class OverdueRule:
    attribute: str
    priority: NotificationPriority = "critical"


@dataclass(frozen=True)
class KindWorkflow:
    """Complete workflow definition for one entity kind."""

    kind: Kind
    display_name: str
    initial_status: str
    statuses: tuple[StatusDefinition, ...]
    transitions: tuple[TransitionRule, ...]
    auto_transitions: tuple[AutoTransitionRule, ...] = ()
    escalations: tuple[EscalationRule, ...] = ()
    derived_fields: Mapping[str, Mapping[str, DerivedValue]] = field(default_factory=dict)
    auto_notification: AutoNotification | None = None
    overdue: OverdueRule | None = None


# ---------------------------------------------------------------------------
# Parsing (from dict/JSON)
# ---------------------------------------------------------------------------


def _require_list(raw: Mapping[str, Any], key: str, kind: str) -> list[Any]:
    value = raw.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list):
        msg = f"Workflow '{kind}': '{key}' must be a list, got {type(value).__name__}"
        raise ConfigurationError(msg)
    for i, item in enumerate(value):
        if not isinstance(item, dict):
            msg = f"Workflow '{kind}': {key} entry at index {i} must be a dict, got {type(item).__name__}"
            raise ConfigurationError(msg)
    return value


def _optional_float(value: Any) -> float | None:
    """Numeric config value as float; TypeError/ValueError on junk (bools included)."""
    if value is None:
        return None
    if isinstance(value, bool):
        msg = f"expected a number, got {value!r}"
        raise TypeError(msg)
    return float(value)


def _parse_factor(raw: dict[str, Any], kind: str) -> VariationFactor:
    name = raw.get("factor")
    if name not in _VALID_FACTORS:
        msg = f"Workflow '{kind}': unknown variation factor '{name}' (must be one of: {', '.join(sorted(_VALID_FACTORS))})"
        raise ConfigurationError(msg)
    tiers = tuple(
        AmountTier(below=_optional_float(t.get("below")), adjust=int(t.get("adjust", 0)))
        for t in raw.get("tiers", [])
    )
    min_ratio = raw.get("min_ratio")
    return VariationFactor(
        factor=name,
        adjustments={str(k): int(v) for k, v in raw.get("adjustments", {}).items()},
        tiers=tiers,
        min_ratio=float(min_ratio) if min_ratio is not None else None,
    )


def _export_factor(factor: VariationFactor) -> dict[str, Any]:
    """Inverse of ``_parse_factor``: only the keys the factor uses."""
    out: dict[str, Any] = {"factor": factor.factor}
    if factor.adjustments:
        out["adjustments"] = dict(factor.adjustments)
    if factor.tiers:
        out["tiers"] = [{"below": t.below, "adjust": t.adjust} for t in factor.tiers]
    if factor.min_ratio is not None:
        out["min_ratio"] = factor.min_ratio
    return out


def _parse_condition(raw: Any, kind: str) -> ConditionRef:
    if isinstance(raw, str):
        return ConditionRef(name=raw)
    if not isinstance(raw, dict) or "name" not in raw:
        msg = f"Workflow '{kind}': condition must be a name or a dict with 'name'"
        raise ConfigurationError(msg)
    params = {k: v for k, v in raw.items() if k != "name"}
    return ConditionRef(name=raw["name"], params=params)


class WorkflowRegistry:
    """Immutable per-kind lookup tables built from validated workflows.

    Every lookup validates its kind and status arguments: an unknown kind or
    status is a ConfigurationError, never a silent negative result.
    """

    # Size limits for project-local overrides
    MAX_STATUSES = 50
    MAX_TRANSITIONS = 200

    def __init__(self, workflows: Iterable[KindWorkflow]) -> None:
        self._workflows: dict[Kind, KindWorkflow] = {}
        self._statuses: dict[Kind, dict[str, StatusDefinition]] = {}
        self._transitions: dict[Kind, dict[tuple[str, str], TransitionRule]] = {}
        self._outgoing: dict[Kind, dict[str, tuple[TransitionRule, ...]]] = {}
        self._auto: dict[Kind, dict[str, AutoTransitionRule]] = {}
        self._escalations: dict[Kind, dict[str, EscalationRule]] = {}

        for wf in workflows:
            if wf.kind in self._workflows:
                msg = f"Duplicate workflow for kind '{wf.kind}'"
                raise ConfigurationError(msg)
            errors = self.validate_workflow(wf)
            if errors:
                msg = f"Invalid workflow for kind '{wf.kind}': " + "; ".join(errors)
                raise ConfigurationError(msg)
            self._index(wf)

    def _index(self, wf: KindWorkflow) -> None:
        """Build O(1) lookup caches for one workflow."""
        logger.debug("Indexing workflow: %s (%d statuses, %d transitions)", wf.kind, len(wf.statuses), len(wf.transitions))
        self._workflows[wf.kind] = wf
        self._statuses[wf.kind] = {s.name: s for s in wf.statuses}
        self._transitions[wf.kind] = {(t.from_status, t.to_status): t for t in wf.transitions}
        self._outgoing[wf.kind] = {
            s.name: tuple(t for t in wf.transitions if t.from_status == s.name) for s in wf.statuses
        }
        self._auto[wf.kind] = {a.from_status: a for a in wf.auto_transitions}
        self._escalations[wf.kind] = {e.status: e for e in wf.escalations}

    # -- Construction ---------------------------------------------------------

    @classmethod
    def from_data(cls, raw_workflows: Iterable[dict[str, Any]]) -> WorkflowRegistry:
        """Parse and validate JSON-compatible workflow dicts."""
        return cls(cls.parse_workflow(raw) for raw in raw_workflows)

    @classmethod
    def builtin(cls) -> WorkflowRegistry:
        """Registry of the built-in workflows for every kind."""
        from statusflow.workflows_data import BUILT_IN_WORKFLOWS

        registry = cls.from_data(BUILT_IN_WORKFLOWS.values())
        registry.require_complete()
        return registry

    @classmethod
    def load(cls, statusflow_dir: Path | None = None) -> WorkflowRegistry:
        """Load built-in workflows, then apply project-local overrides.

        Layer 1: built-in data from workflows_data.BUILT_IN_WORKFLOWS
        Layer 2: ``<statusflow_dir>/workflows/<kind>.json``, each replacing
        the built-in workflow of the kind it declares.

        Unlike a missing file, an unreadable or invalid override is fatal.

        Raises:
            ConfigurationError: On any invalid override or missing kind.
        """
        from statusflow.workflows_data import BUILT_IN_WORKFLOWS

        layered: dict[str, dict[str, Any]] = dict(BUILT_IN_WORKFLOWS)
        overrides_dir = statusflow_dir / WORKFLOWS_DIRNAME if statusflow_dir is not None else None
        if overrides_dir is not None and overrides_dir.is_dir():
            for wf_file in sorted(overrides_dir.glob("*.json")):
                try:
                    raw = json.loads(wf_file.read_text())
                except (OSError, json.JSONDecodeError) as exc:
                    msg = f"Cannot read workflow override {wf_file.name}: {exc}"
                    raise ConfigurationError(msg) from exc
                if not isinstance(raw, dict):
                    msg = f"Workflow override {wf_file.name} must contain a JSON object"
                    raise ConfigurationError(msg)
                kind = coerce_kind(raw.get("kind", wf_file.stem))
                layered[kind.value] = raw
                logger.info("Loaded workflow override: %s from %s", kind, wf_file.name)

        registry = cls.from_data(layered.values())
        registry.require_complete()
        logger.info("Workflow registry loaded: %d kinds", len(registry._workflows))
        return registry

    @staticmethod
    def parse_workflow(raw: dict[str, Any]) -> KindWorkflow:
        """Parse one workflow from a JSON-compatible dict.

        Raises:
            ConfigurationError: If required keys are missing or malformed.
        """
        if not isinstance(raw, dict):
            msg = f"Workflow must be a dict, got {type(raw).__name__}"
            raise ConfigurationError(msg)
        kind = coerce_kind(raw.get("kind", ""))
        try:
            statuses = _require_list(raw, "statuses", kind)
            transitions = _require_list(raw, "transitions", kind)
            autos = _require_list(raw, "auto_transitions", kind)
            escalations = _require_list(raw, "escalations", kind)

            if len(statuses) > WorkflowRegistry.MAX_STATUSES:
                msg = f"Workflow '{kind}' has {len(statuses)} statuses (max {WorkflowRegistry.MAX_STATUSES})"
                raise ConfigurationError(msg)
            if len(transitions) > WorkflowRegistry.MAX_TRANSITIONS:
                msg = f"Workflow '{kind}' has {len(transitions)} transitions (max {WorkflowRegistry.MAX_TRANSITIONS})"
                raise ConfigurationError(msg)

            logger.debug("Parsing workflow for kind: %s", kind)

            notification = raw.get("auto_notification")
            overdue = raw.get("overdue")
            return KindWorkflow(
                kind=kind,
                display_name=raw.get("display_name", kind.value),
                initial_status=raw["initial_status"],
                statuses=tuple(
                    StatusDefinition(name=s["name"], label=s.get("label", s["name"]), description=s.get("description", ""))
                    for s in statuses
                ),
                transitions=tuple(
                    TransitionRule(
                        from_status=t["from"],
                        to_status=t["to"],
                        reason=t.get("reason", ""),
                        allowed=bool(t.get("allowed", True)),
                        required_capabilities=parse_capabilities(t.get("capabilities", [])),
                        min_dwell_days=_optional_float(t.get("min_dwell_days")),
                    )
                    for t in transitions
                ),
                auto_transitions=tuple(
                    AutoTransitionRule(
                        from_status=a["from"],
                        target_status=a["to"],
                        base_days=int(a.get("base_days", 0)),
                        condition=_parse_condition(a.get("condition", "always"), kind),
                        description=a.get("description", ""),
                        variation_factors=tuple(_parse_factor(f, kind) for f in a.get("variation_factors", [])),
                    )
                    for a in autos
                ),
                escalations=tuple(
                    EscalationRule(
                        status=e["status"],
                        timeout_days=int(e["timeout_days"]),
                        action=e["action"],
                        description=e.get("description", ""),
                        target_status=e.get("target"),
                    )
                    for e in escalations
                ),
                derived_fields={str(s): dict(v) for s, v in (raw.get("derived_fields") or {}).items()},
                auto_notification=(
                    AutoNotification(message=notification["message"], priority=notification.get("priority", "info"))
                    if notification
                    else None
                ),
                overdue=(
                    OverdueRule(attribute=overdue["attribute"], priority=overdue.get("priority", "critical"))
                    if overdue
                    else None
                ),
            )
        except KeyError as exc:
            msg = f"Workflow '{kind}': missing required key {exc}"
            raise ConfigurationError(msg) from exc
        except (TypeError, ValueError, AttributeError) as exc:
            if isinstance(exc, ConfigurationError):
                raise
            msg = f"Workflow '{kind}': malformed definition: {exc}"
            raise ConfigurationError(msg) from exc

    @staticmethod
    def validate_workflow(wf: KindWorkflow) -> list[str]:
        """Validate a workflow for internal consistency.

        Returns:
            List of error messages. Empty list means valid.
        """
        errors: list[str] = []
        names = [s.name for s in wf.statuses]
        declared = set(names)

        if not names:
            errors.append("no statuses declared")
        for n in names:
            if not _NAME_PATTERN.match(n):
                errors.append(f"invalid status name '{n}': must match ^[a-z][a-z0-9_]{{0,63}}$")
        if len(declared) != len(names):
            seen: set[str] = set()
            for n in names:
                if n in seen:
                    errors.append(f"duplicate status '{n}'")
                seen.add(n)

        if wf.initial_status not in declared:
            errors.append(f"initial_status '{wf.initial_status}' is not a declared status")

        pairs: set[tuple[str, str]] = set()
        for t in wf.transitions:
            if t.from_status not in declared:
                errors.append(f"transition from '{t.from_status}' is not a declared status")
            if t.to_status not in declared:
                errors.append(f"transition {t.from_status}->{t.to_status}: target is not a declared status")
            if (t.from_status, t.to_status) in pairs:
                errors.append(f"duplicate transition {t.from_status}->{t.to_status}")
            pairs.add((t.from_status, t.to_status))
            if t.min_dwell_days is not None and t.min_dwell_days < 0:
                errors.append(f"transition {t.from_status}->{t.to_status}: min_dwell_days must be >= 0")

        sources = {t.from_status for t in wf.transitions}
        allowed_pairs = {(t.from_status, t.to_status) for t in wf.transitions if t.allowed}

        auto_seen: set[str] = set()
        for a in wf.auto_transitions:
            label = f"auto-transition {a.from_status}->{a.target_status}"
            if a.from_status in auto_seen:
                errors.append(f"more than one auto-transition from '{a.from_status}'")
            auto_seen.add(a.from_status)
            if a.from_status not in declared:
                errors.append(f"{label}: source is not a declared status")
            elif a.from_status not in sources:
                errors.append(f"{label}: source '{a.from_status}' is terminal")
            if (a.from_status, a.target_status) not in allowed_pairs:
                errors.append(f"{label}: not an allowed transition")
            if a.base_days < 0:
                errors.append(f"{label}: base_days must be >= 0")
            if a.condition.name not in CONDITIONS:
                errors.append(f"{label}: unknown condition '{a.condition.name}'")
            for f in a.variation_factors:
                if f.factor == "priority" and not f.adjustments:
                    errors.append(f"{label}: priority factor needs adjustments")
                if f.factor == "amount" and (not f.tiers or f.tiers[-1].below is not None):
                    errors.append(f"{label}: amount factor needs tiers ending with an open-ended tier")
                if f.factor == "completion_ratio" and not (f.min_ratio is not None and 0 < f.min_ratio <= 1):
                    errors.append(f"{label}: completion_ratio factor needs 0 < min_ratio <= 1")

        esc_seen: set[str] = set()
        for e in wf.escalations:
            label = f"escalation on '{e.status}'"
            if e.status in esc_seen:
                errors.append(f"more than one escalation on '{e.status}'")
            esc_seen.add(e.status)
            if e.status not in declared:
                errors.append(f"{label}: not a declared status")
            elif e.status not in sources:
                errors.append(f"{label}: status is terminal")
            if e.action not in _VALID_ACTIONS:
                errors.append(f"{label}: invalid action '{e.action}'")
            if e.timeout_days < 0:
                errors.append(f"{label}: timeout_days must be >= 0")
            if e.action == "process_payment":
                if e.target_status is None:
                    errors.append(f"{label}: process_payment needs a target status")
                elif (e.status, e.target_status) not in allowed_pairs:
                    errors.append(f"{label}: {e.status}->{e.target_status} is not an allowed transition")
            elif e.target_status is not None:
                errors.append(f"{label}: only process_payment takes a target status")

        for status, derived in wf.derived_fields.items():
            if status not in declared:
                errors.append(f"derived_fields for '{status}': not a declared status")
            for attr, value in derived.items():
                if value not in _VALID_DERIVED:
                    errors.append(f"derived field '{attr}' on '{status}': value must be 'now' or 'actor'")

        if wf.auto_notification is not None and wf.auto_notification.priority not in _VALID_PRIORITIES:
            errors.append(f"auto_notification priority '{wf.auto_notification.priority}' is invalid")
        if wf.overdue is not None and wf.overdue.priority not in _VALID_PRIORITIES:
            errors.append(f"overdue priority '{wf.overdue.priority}' is invalid")

        # Reachability: every status should be reachable from initial_status
        if wf.initial_status in declared:
            reachable: set[str] = set()
            queue = [wf.initial_status]
            while queue:
                current = queue.pop(0)
                if current in reachable:
                    continue
                reachable.add(current)
                queue.extend(t.to_status for t in wf.transitions if t.from_status == current and t.allowed)
            for s in sorted(declared - reachable):
                errors.append(f"status '{s}' is unreachable from initial_status '{wf.initial_status}'")

        return errors

    def require_complete(self) -> None:
        """Raise ConfigurationError unless every Kind has a workflow."""
        missing = [k.value for k in Kind if k not in self._workflows]
        if missing:
            msg = f"No workflow configured for kind(s): {', '.join(missing)}"
            raise ConfigurationError(msg)

    # -- Lookups --------------------------------------------------------------

    def kinds(self) -> list[Kind]:
        return list(self._workflows)

    def workflow(self, kind: Kind | str) -> KindWorkflow:
        k = coerce_kind(kind)
        wf = self._workflows.get(k)
        if wf is None:
            msg = f"No workflow configured for kind '{k}'"
            raise ConfigurationError(msg)
        return wf

    def statuses_of(self, kind: Kind | str) -> tuple[StatusDefinition, ...]:
        return self.workflow(kind).statuses

    def status(self, kind: Kind | str, status: str) -> StatusDefinition:
        """Status definition, raising ConfigurationError if undeclared for *kind*."""
        wf = self.workflow(kind)
        definition = self._statuses[wf.kind].get(status)
        if definition is None:
            valid = ", ".join(s.name for s in wf.statuses)
            msg = f"Unknown status '{status}' for kind '{wf.kind}'. Valid statuses: {valid}"
            raise ConfigurationError(msg)
        return definition

    def initial_status(self, kind: Kind | str) -> str:
        return self.workflow(kind).initial_status

    def transitions_from(self, kind: Kind | str, status: str) -> tuple[TransitionRule, ...]:
        """All declared rules leaving *status*, including disallowed ones, in declaration order."""
        self.status(kind, status)
        return self._outgoing[coerce_kind(kind)][status]

    def transition(self, kind: Kind | str, from_status: str, to_status: str) -> TransitionRule | None:
        self.status(kind, from_status)
        self.status(kind, to_status)
        return self._transitions[coerce_kind(kind)].get((from_status, to_status))

    def is_terminal(self, kind: Kind | str, status: str) -> bool:
        return not self.transitions_from(kind, status)

    def auto_transition_for(self, kind: Kind | str, status: str) -> AutoTransitionRule | None:
        self.status(kind, status)
        return self._auto[coerce_kind(kind)].get(status)

    def auto_transition_sources(self, kind: Kind | str) -> list[str]:
        return [a.from_status for a in self.workflow(kind).auto_transitions]

    def escalation_for(self, kind: Kind | str, status: str) -> EscalationRule | None:
        self.status(kind, status)
        return self._escalations[coerce_kind(kind)].get(status)

    def escalation_statuses(self, kind: Kind | str) -> list[str]:
        return [e.status for e in self.workflow(kind).escalations]

    def derived_fields_for(self, kind: Kind | str, status: str) -> Mapping[str, DerivedValue]:
        self.status(kind, status)
        return self.workflow(kind).derived_fields.get(status, {})

    def non_terminal_statuses(self, kind: Kind | str) -> list[str]:
        return [s.name for s in self.statuses_of(kind) if not self.is_terminal(kind, s.name)]

    def requirements(self, kind: Kind | str, from_status: str, to_status: str) -> dict[str, Any]:
        """Whether ``from -> to`` needs approval, and by which capabilities."""
        rule = self.transition(kind, from_status, to_status)
        caps = sorted(c.value for c in rule.required_capabilities) if rule is not None else []
        return {"requires_approval": bool(caps), "capabilities": caps}

    # -- Export ---------------------------------------------------------------

    def export(self) -> list[WorkflowExport]:
        """JSON-safe view of every workflow (conditions by name)."""
        result: list[WorkflowExport] = []
        for wf in self._workflows.values():
            result.append(
                WorkflowExport(
                    kind=wf.kind.value,
                    display_name=wf.display_name,
                    initial_status=wf.initial_status,
                    statuses=[{"name": s.name, "label": s.label, "description": s.description} for s in wf.statuses],
                    transitions=[
                        TransitionExport(**{
                            "from": t.from_status, "to": t.to_status, "allowed": t.allowed,
                            "capabilities": sorted(c.value for c in t.required_capabilities),
                            "min_dwell_days": t.min_dwell_days, "reason": t.reason,
                        })
                        for t in wf.transitions
                    ],
                    auto_transitions=[
                        {
                            "from": a.from_status,
                            "to": a.target_status,
                            "base_days": a.base_days,
                            "condition": a.condition.name,
                            "condition_params": dict(a.condition.params),
                            "variation_factors": [_export_factor(f) for f in a.variation_factors],
                            "description": a.description,
                        }
                        for a in wf.auto_transitions
                    ],
                    escalations=[
                        {
                            "status": e.status,
                            "timeout_days": e.timeout_days,
                            "action": e.action,
                            "target": e.target_status,
                            "description": e.description,
                        }
                        for e in wf.escalations
                    ],
                )
            )
        return result
