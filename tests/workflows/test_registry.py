"""Tests for WorkflowRegistry loading, validation and lookups."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from statusflow.exceptions import ConfigurationError
from statusflow.workflows import Capability, Kind, WorkflowRegistry
from tests._db_factory import make_registry, workflow_data


class TestBuiltinWorkflows:
    def test_every_kind_has_a_workflow(self, registry: WorkflowRegistry) -> None:
        assert set(registry.kinds()) == set(Kind)

    def test_no_dangling_transition_targets(self, registry: WorkflowRegistry) -> None:
        for kind in registry.kinds():
            declared = {s.name for s in registry.statuses_of(kind)}
            for rule in registry.workflow(kind).transitions:
                assert rule.from_status in declared
                assert rule.to_status in declared

    def test_initial_status_is_declared(self, registry: WorkflowRegistry) -> None:
        for kind in registry.kinds():
            registry.status(kind, registry.initial_status(kind))

    def test_terminal_statuses(self, registry: WorkflowRegistry) -> None:
        assert registry.is_terminal(Kind.WORK_ITEM, "done")
        assert registry.is_terminal(Kind.EXPENSE, "paid")
        assert registry.is_terminal(Kind.ITERATION, "closed")
        assert not registry.is_terminal(Kind.WORK_ITEM, "review")

    def test_terminal_statuses_never_source_automation(self, registry: WorkflowRegistry) -> None:
        for kind in registry.kinds():
            for status in registry.auto_transition_sources(kind):
                assert not registry.is_terminal(kind, status)
            for status in registry.escalation_statuses(kind):
                assert not registry.is_terminal(kind, status)

    def test_work_item_review_bypass_is_disallowed(self, registry: WorkflowRegistry) -> None:
        rule = registry.transition("work_item", "in_progress", "done")
        assert rule is not None
        assert rule.allowed is False
        assert rule.reason == "Must go through review first"

    def test_expense_payment_safety_net(self, registry: WorkflowRegistry) -> None:
        auto = registry.auto_transition_for("expense", "approved")
        esc = registry.escalation_for("expense", "approved")
        assert auto is not None and auto.target_status == "paid" and auto.base_days == 3
        assert esc is not None and esc.action == "process_payment" and esc.timeout_days == 7
        assert esc.target_status == "paid"

    def test_capabilities_parsed_as_enum(self, registry: WorkflowRegistry) -> None:
        rule = registry.transition("expense", "pending", "approved")
        assert rule is not None
        assert rule.required_capabilities == frozenset({Capability.MANAGE_BUDGET, Capability.ADMIN_CONFIG})


class TestLookupErrors:
    def test_unknown_kind(self, registry: WorkflowRegistry) -> None:
        with pytest.raises(ConfigurationError, match="Unknown kind 'invoice'"):
            registry.statuses_of("invoice")

    def test_unknown_status(self, registry: WorkflowRegistry) -> None:
        with pytest.raises(ConfigurationError, match="Unknown status 'archived'"):
            registry.transitions_from("work_item", "archived")

    def test_unknown_target_status(self, registry: WorkflowRegistry) -> None:
        with pytest.raises(ConfigurationError):
            registry.transition("expense", "pending", "refunded")

    def test_escalation_lookup_on_unknown_status(self, registry: WorkflowRegistry) -> None:
        with pytest.raises(ConfigurationError):
            registry.escalation_for("expense", "void")

    def test_missing_rule_is_none_not_error(self, registry: WorkflowRegistry) -> None:
        assert registry.transition("work_item", "backlog", "done") is None
        assert registry.auto_transition_for("work_item", "backlog") is None
        assert registry.escalation_for("work_item", "backlog") is None


class TestValidation:
    def test_missing_kind_fails_completeness(self) -> None:
        data = workflow_data()
        registry = WorkflowRegistry.from_data([data["work_item"]])
        with pytest.raises(ConfigurationError, match="expense"):
            registry.require_complete()

    def test_dangling_target_rejected(self) -> None:
        data = workflow_data()
        data["work_item"]["transitions"].append({"from": "review", "to": "shipped", "reason": "x"})
        with pytest.raises(ConfigurationError, match="shipped"):
            WorkflowRegistry.from_data(data.values())

    def test_two_auto_rules_for_one_status_rejected(self) -> None:
        data = workflow_data()
        autos = data["work_item"]["auto_transitions"]
        autos.append({**autos[0], "to": "backlog"})
        with pytest.raises(ConfigurationError, match="more than one auto-transition"):
            WorkflowRegistry.from_data(data.values())

    def test_auto_rule_from_terminal_status_rejected(self) -> None:
        data = workflow_data()
        data["work_item"]["auto_transitions"].append(
            {"from": "done", "to": "review", "base_days": 1, "condition": "always"}
        )
        errors = WorkflowRegistry.validate_workflow(WorkflowRegistry.parse_workflow(data["work_item"]))
        assert any("terminal" in e for e in errors)

    def test_auto_rule_must_follow_allowed_transition(self) -> None:
        data = workflow_data()
        data["work_item"]["auto_transitions"][1]["to"] = "done"
        errors = WorkflowRegistry.validate_workflow(WorkflowRegistry.parse_workflow(data["work_item"]))
        assert any("not an allowed transition" in e for e in errors)

    def test_unknown_condition_rejected(self) -> None:
        data = workflow_data()
        data["expense"]["auto_transitions"][0]["condition"] = {"name": "moon_is_full"}
        with pytest.raises(ConfigurationError, match="moon_is_full"):
            WorkflowRegistry.from_data(data.values())

    def test_escalation_on_terminal_status_rejected(self) -> None:
        data = workflow_data()
        data["expense"]["escalations"].append(
            {"status": "paid", "timeout_days": 1, "action": "notify", "description": "x"}
        )
        with pytest.raises(ConfigurationError, match="terminal"):
            WorkflowRegistry.from_data(data.values())

    def test_process_payment_needs_target(self) -> None:
        data = workflow_data()
        del data["expense"]["escalations"][0]["target"]
        with pytest.raises(ConfigurationError, match="target"):
            WorkflowRegistry.from_data(data.values())

    def test_unknown_capability_rejected(self) -> None:
        data = workflow_data()
        data["expense"]["transitions"][0]["capabilities"] = ["sign_cheques"]
        with pytest.raises(ConfigurationError, match="sign_cheques"):
            WorkflowRegistry.from_data(data.values())

    def test_unreachable_status_reported(self) -> None:
        data = workflow_data()
        data["iteration"]["statuses"].append({"name": "orphan", "label": "Orphan"})
        errors = WorkflowRegistry.validate_workflow(WorkflowRegistry.parse_workflow(data["iteration"]))
        assert any("orphan" in e and "unreachable" in e for e in errors)

    def test_invalid_derived_value_rejected(self) -> None:
        data = workflow_data()
        data["work_item"]["derived_fields"]["done"] = {"completed_at": "yesterday"}
        with pytest.raises(ConfigurationError, match="'now' or 'actor'"):
            WorkflowRegistry.from_data(data.values())

    def test_numeric_strings_are_coerced(self) -> None:
        data = workflow_data()
        data["expense"]["transitions"][2]["min_dwell_days"] = "3"
        data["expense"]["auto_transitions"][0]["variation_factors"][0]["tiers"][0]["below"] = "100"
        registry = WorkflowRegistry.from_data(data.values())
        rule = registry.transition("expense", "approved", "paid")
        assert rule is not None and rule.min_dwell_days == 3.0
        auto = registry.auto_transition_for("expense", "approved")
        assert auto is not None
        assert auto.variation_factors[0].tiers[0].below == 100.0

    @pytest.mark.parametrize("value", ["three", [3], {"days": 3}, True])
    def test_non_numeric_dwell_rejected(self, value: object) -> None:
        data = workflow_data()
        data["expense"]["transitions"][2]["min_dwell_days"] = value
        with pytest.raises(ConfigurationError, match="malformed definition"):
            WorkflowRegistry.from_data(data.values())

    @pytest.mark.parametrize("value", ["a hundred", [100], False])
    def test_non_numeric_tier_bound_rejected(self, value: object) -> None:
        data = workflow_data()
        data["expense"]["auto_transitions"][0]["variation_factors"][0]["tiers"][0]["below"] = value
        with pytest.raises(ConfigurationError, match="malformed definition"):
            WorkflowRegistry.from_data(data.values())

    def test_non_numeric_override_is_fatal_on_load(self, tmp_path: Path) -> None:
        data = workflow_data()["expense"]
        data["transitions"][2]["min_dwell_days"] = "soon"
        overrides = tmp_path / "workflows"
        overrides.mkdir()
        (overrides / "expense.json").write_text(json.dumps(data))
        with pytest.raises(ConfigurationError):
            WorkflowRegistry.load(tmp_path)

    def test_missing_required_key(self) -> None:
        data = workflow_data()
        del data["iteration"]["initial_status"]
        with pytest.raises(ConfigurationError, match="initial_status"):
            WorkflowRegistry.parse_workflow(data["iteration"])


class TestLayeredLoading:
    def test_load_without_project_dir_is_builtin(self) -> None:
        registry = WorkflowRegistry.load(None)
        assert set(registry.kinds()) == set(Kind)

    def test_override_replaces_kind(self, tmp_path: Path) -> None:
        data = workflow_data()["iteration"]
        data["display_name"] = "Sprint"
        overrides = tmp_path / "workflows"
        overrides.mkdir()
        (overrides / "iteration.json").write_text(json.dumps(data))

        registry = WorkflowRegistry.load(tmp_path)
        assert registry.workflow("iteration").display_name == "Sprint"
        assert registry.workflow("expense").display_name == "Expense"

    def test_invalid_override_is_fatal(self, tmp_path: Path) -> None:
        overrides = tmp_path / "workflows"
        overrides.mkdir()
        (overrides / "expense.json").write_text("{not json")
        with pytest.raises(ConfigurationError, match="expense.json"):
            WorkflowRegistry.load(tmp_path)

    def test_inconsistent_override_is_fatal(self, tmp_path: Path) -> None:
        data = workflow_data()["expense"]
        data["initial_status"] = "draft"
        overrides = tmp_path / "workflows"
        overrides.mkdir()
        (overrides / "expense.json").write_text(json.dumps(data))
        with pytest.raises(ConfigurationError, match="initial_status"):
            WorkflowRegistry.load(tmp_path)


class TestExportAndRequirements:
    def test_export_is_json_safe(self, registry: WorkflowRegistry) -> None:
        exported = registry.export()
        decoded = json.loads(json.dumps(exported))
        assert {w["kind"] for w in decoded} == {k.value for k in Kind}
        expense = next(w for w in decoded if w["kind"] == "expense")
        assert expense["auto_transitions"][0]["condition"] == "validated_days_ago"

    def test_export_carries_threshold_inputs(self, registry: WorkflowRegistry) -> None:
        decoded = json.loads(json.dumps(registry.export()))
        expense = next(w for w in decoded if w["kind"] == "expense")
        auto = expense["auto_transitions"][0]
        assert auto["condition_params"] == {"days": 3}
        assert auto["variation_factors"] == [
            {
                "factor": "amount",
                "tiers": [
                    {"below": 100.0, "adjust": 1},
                    {"below": 1000.0, "adjust": 2},
                    {"below": None, "adjust": 3},
                ],
            }
        ]
        assert expense["escalations"][0]["target"] == "paid"

        work_item = next(w for w in decoded if w["kind"] == "work_item")
        assert work_item["auto_transitions"][0]["variation_factors"][0]["adjustments"]["urgent"] == -2
        completion = work_item["auto_transitions"][1]["variation_factors"]
        assert completion == [{"factor": "completion_ratio", "min_ratio": 0.8}]
        assert work_item["escalations"][0]["target"] is None

    def test_requirements_for_approval(self, registry: WorkflowRegistry) -> None:
        req = registry.requirements("expense", "pending", "approved")
        assert req == {"requires_approval": True, "capabilities": ["admin_config", "manage_budget"]}

    def test_requirements_without_capabilities(self, registry: WorkflowRegistry) -> None:
        assert registry.requirements("work_item", "backlog", "todo") == {"requires_approval": False, "capabilities": []}

    def test_make_registry_overrides_single_kind(self) -> None:
        registry = make_registry(expense={"auto_transitions": []})
        assert registry.auto_transition_for("expense", "approved") is None
        assert registry.auto_transition_for("work_item", "todo") is not None
