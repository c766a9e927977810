"""CLI commands for entities: create, show, transition, audit, notifications."""

from __future__ import annotations

import json as json_mod
import sys
from typing import Any

import click

from statusflow.cli_common import echo_json, get_db, get_engine, parse_caps_option
from statusflow.exceptions import ConfigurationError, PersistenceError
from statusflow.transitions import PermissionDenied, TransitionApplied
from statusflow.validation import sanitize_actor


def _parse_attrs(pairs: tuple[str, ...]) -> dict[str, Any]:
    """``key=value`` pairs; values that parse as JSON (lists, numbers) are decoded."""
    attrs: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            click.echo(f"Invalid attribute '{pair}': expected key=value", err=True)
            sys.exit(1)
        key, value = pair.split("=", 1)
        if not key.strip():
            click.echo("Attribute key cannot be empty", err=True)
            sys.exit(1)
        try:
            attrs[key.strip()] = json_mod.loads(value)
        except json_mod.JSONDecodeError:
            attrs[key.strip()] = value
    return attrs


@click.command()
@click.argument("kind")
@click.argument("title")
@click.option("--status", default=None, help="Starting status (default: the kind's initial status)")
@click.option("--priority", default=None, help="Priority (urgent, high, medium, low)")
@click.option("--amount", default=None, type=float, help="Amount, for expenses")
@click.option("--owner", default="", help="Owner ID")
@click.option("--assignee", default="", help="Assignee ID")
@click.option("--attr", "-a", multiple=True, help="Attribute as key=value (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def create(
    kind: str,
    title: str,
    status: str | None,
    priority: str | None,
    amount: float | None,
    owner: str,
    assignee: str,
    attr: tuple[str, ...],
    as_json: bool,
) -> None:
    """Create an entity of KIND."""
    attributes = _parse_attrs(attr)
    with get_db() as db:
        try:
            entity = db.create_entity(
                kind,
                title,
                status=status,
                owner_id=owner,
                assignee_id=assignee,
                priority=priority,
                amount=amount,
                attributes=attributes,
            )
        except (ConfigurationError, ValueError, PersistenceError) as e:
            click.echo(str(e), err=True)
            sys.exit(1)
        if as_json:
            echo_json(entity.to_dict())
            return
        click.echo(f"Created {entity.id}: {entity.title} [{entity.status}]")


@click.command()
@click.argument("entity_id")
@click.option("--cap", "caps", multiple=True, help="Capability held by the viewer (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(entity_id: str, caps: tuple[str, ...], as_json: bool) -> None:
    """Show an entity with its status summary."""
    capabilities = parse_caps_option(caps)
    with get_db() as db:
        try:
            entity = db.get_entity(entity_id)
        except KeyError:
            click.echo(f"Not found: {entity_id}", err=True)
            sys.exit(1)
        info = get_engine(db).describe_status(entity, entity.kind, capabilities)

        if as_json:
            echo_json({"entity": entity.to_dict(), "status": info.to_dict()})
            return

        click.echo(f"{entity.id}: {entity.title}")
        click.echo(f"  Kind:      {entity.kind}")
        click.echo(f"  Status:    {info.current} ({info.label}) since {entity.status_changed_at}")
        if entity.priority:
            click.echo(f"  Priority:  {entity.priority}")
        if entity.amount is not None:
            click.echo(f"  Amount:    {entity.amount:g}")
        click.echo(f"  Available: {', '.join(info.available) if info.available else '(none)'}")
        if info.auto_transition is not None:
            auto = info.auto_transition
            click.echo(f"  Auto:      -> {auto.target_status} in {auto.ready_in_days}d ({auto.reason})")
        if info.escalation is not None:
            esc = info.escalation
            click.echo(f"  Escalation: {esc.action} after {esc.days_since}d ({esc.reason})")
        for key, value in sorted(entity.attributes.items()):
            click.echo(f"  {key}: {value}")


@click.command()
@click.argument("entity_id")
@click.argument("target")
@click.option("--cap", "caps", multiple=True, help="Capability held by the actor (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def transition(ctx: click.Context, entity_id: str, target: str, caps: tuple[str, ...], as_json: bool) -> None:
    """Move an entity to TARGET status."""
    actor, err = sanitize_actor(ctx.obj["actor"])
    if err:
        click.echo(f"Invalid actor: {err}", err=True)
        sys.exit(1)
    capabilities = parse_caps_option(caps)
    with get_db() as db:
        try:
            result = get_engine(db).transition_by_id(entity_id, target, actor, capabilities)
        except KeyError:
            click.echo(f"Not found: {entity_id}", err=True)
            sys.exit(1)
        except (ConfigurationError, PersistenceError) as e:
            click.echo(str(e), err=True)
            sys.exit(1)

        if as_json:
            echo_json(result.to_dict())
            if not isinstance(result, TransitionApplied):
                sys.exit(1)
            return
        if isinstance(result, TransitionApplied):
            click.echo(f"{entity_id}: {result.previous_status} -> {result.new_status}")
            return
        click.echo(f"Denied ({result.code}): {result.reason}", err=True)
        if isinstance(result, PermissionDenied):
            click.echo(f"  Requires one of: {', '.join(sorted(c.value for c in result.required_capabilities))}", err=True)
        sys.exit(1)


@click.command()
@click.argument("entity_id", required=False)
@click.option("--kind", default=None, help="Filter by kind")
@click.option("--limit", default=50, type=int, help="Max entries")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def audit(entity_id: str | None, kind: str | None, limit: int, as_json: bool) -> None:
    """Show the audit trail (newest first)."""
    with get_db() as db:
        entries = db.list_audit(entity_id=entity_id, kind=kind, limit=limit)
        if as_json:
            echo_json(entries)
            return
        if not entries:
            click.echo("No audit entries")
            return
        for e in entries:
            click.echo(f"  {e['created_at'][:19]}  {e['entity_id']:<20} {e['actor']:<10} {e['description']}")


@click.command()
@click.option("--entity", "entity_id", default=None, help="Filter by entity ID")
@click.option("--kind", default=None, help="Filter by kind")
@click.option("--limit", default=100, type=int, help="Max entries")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def notifications(entity_id: str | None, kind: str | None, limit: int, as_json: bool) -> None:
    """Show queued notifications (oldest first)."""
    with get_db() as db:
        entries = db.list_notifications(entity_id=entity_id, kind=kind, limit=limit)
        if as_json:
            echo_json(entries)
            return
        if not entries:
            click.echo("No notifications")
            return
        for n in entries:
            recipient = f" -> {n['recipient_id']}" if n["recipient_id"] else ""
            click.echo(f"  [{n['priority']}] {n['entity_id']}{recipient}: {n['message']}")


def register(cli: click.Group) -> None:
    """Register entity commands with the CLI."""
    cli.add_command(create)
    cli.add_command(show)
    cli.add_command(transition)
    cli.add_command(audit)
    cli.add_command(notifications)
