"""CLI commands for workflow inspection: kinds, kind-info, check, validate-config."""

from __future__ import annotations

import json as json_mod
import sys
from pathlib import Path

import click

from statusflow.cli_common import echo_json, load_registry, parse_caps_option
from statusflow.exceptions import ConfigurationError
from statusflow.transitions import PermissionDenied, TransitionDenied, TransitionValidator
from statusflow.workflows import WORKFLOWS_DIRNAME, WorkflowRegistry, coerce_kind


@click.command("kinds")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def kinds_cmd(as_json: bool) -> None:
    """List entity kinds and their statuses."""
    registry = load_registry()
    rows = [
        {
            "kind": wf.kind.value,
            "display_name": wf.display_name,
            "initial_status": wf.initial_status,
            "statuses": [s.name for s in wf.statuses],
        }
        for wf in (registry.workflow(k) for k in registry.kinds())
    ]
    if as_json:
        echo_json(rows)
        return
    for row in rows:
        click.echo(f"  {row['kind']:<13} {' -> '.join(row['statuses'])}")


@click.command("kind-info")
@click.argument("kind")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def kind_info(kind: str, as_json: bool) -> None:
    """Show the full workflow of one kind."""
    registry = load_registry()
    try:
        wf = registry.workflow(kind)
    except ConfigurationError as e:
        click.echo(str(e), err=True)
        sys.exit(1)

    if as_json:
        echo_json(next(w for w in registry.export() if w["kind"] == wf.kind.value))
        return

    click.echo(f"{wf.display_name} ({wf.kind})")
    click.echo(f"  Initial status: {wf.initial_status}")
    click.echo("\n  Statuses:")
    for s in wf.statuses:
        terminal = " [terminal]" if registry.is_terminal(wf.kind, s.name) else ""
        click.echo(f"    {s.name:<14} {s.label}{terminal}")
    click.echo("\n  Transitions:")
    for t in wf.transitions:
        notes: list[str] = []
        if not t.allowed:
            notes.append("disallowed")
        if t.required_capabilities:
            notes.append("needs " + " | ".join(sorted(c.value for c in t.required_capabilities)))
        if t.min_dwell_days:
            notes.append(f"min {t.min_dwell_days:g}d")
        suffix = f" [{', '.join(notes)}]" if notes else ""
        click.echo(f"    {t.from_status} -> {t.to_status}{suffix}")
    if wf.auto_transitions:
        click.echo("\n  Auto-transitions:")
        for a in wf.auto_transitions:
            click.echo(f"    {a.from_status} -> {a.target_status} after {a.base_days}d when {a.condition.name}")
    if wf.escalations:
        click.echo("\n  Escalations:")
        for e in wf.escalations:
            click.echo(f"    {e.status}: {e.action} after {e.timeout_days}d")


@click.command("check")
@click.argument("kind")
@click.argument("from_status")
@click.argument("to_status")
@click.option("--cap", "caps", multiple=True, help="Capability held by the caller (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def check(kind: str, from_status: str, to_status: str, caps: tuple[str, ...], as_json: bool) -> None:
    """Check whether a transition is allowed for a capability set."""
    registry = load_registry()
    capabilities = parse_caps_option(caps)
    try:
        result = TransitionValidator(registry).validate(kind, from_status, to_status, capabilities)
        requirements = registry.requirements(kind, from_status, to_status)
    except ConfigurationError as e:
        click.echo(str(e), err=True)
        sys.exit(1)

    if as_json:
        data: dict[str, object] = {
            "kind": coerce_kind(kind).value,
            "from": from_status,
            "to": to_status,
            "allowed": result.allowed,
            "reason": result.reason,
            "min_dwell_days": result.min_dwell_days,
            **requirements,
        }
        if isinstance(result, TransitionDenied):
            data["code"] = result.code
        echo_json(data)
        return

    verdict = "allowed" if result.allowed else "denied"
    click.echo(f"{from_status} -> {to_status}: {verdict} ({result.reason})")
    if isinstance(result, PermissionDenied):
        click.echo(f"  Requires one of: {', '.join(sorted(c.value for c in result.required_capabilities))}")
    if result.min_dwell_days:
        click.echo(f"  Minimum dwell: {result.min_dwell_days:g} days")


@click.command("validate-config")
@click.argument("path", required=False, type=click.Path(exists=True, dir_okay=False))
def validate_config(path: str | None) -> None:
    """Validate workflow overrides (one JSON file, or the project's workflows/ dir)."""
    if path is not None:
        try:
            raw = json_mod.loads(Path(path).read_text())
            wf = WorkflowRegistry.parse_workflow(raw)
        except (json_mod.JSONDecodeError, ConfigurationError) as e:
            click.echo(f"Invalid: {e}", err=True)
            sys.exit(1)
        errors = WorkflowRegistry.validate_workflow(wf)
        if errors:
            for err in errors:
                click.echo(f"  - {err}", err=True)
            sys.exit(1)
        click.echo(f"OK: {wf.kind} workflow is valid")
        return

    registry = load_registry()
    click.echo(f"OK: {len(registry.kinds())} workflows valid (overrides in {WORKFLOWS_DIRNAME}/)")


def register(cli: click.Group) -> None:
    """Register workflow commands with the CLI."""
    cli.add_command(kinds_cmd)
    cli.add_command(kind_info)
    cli.add_command(check)
    cli.add_command(validate_config)
