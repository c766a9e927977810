"""CLI for the statusflow status-transition engine.

Convention-based: discovers .statusflow/ by walking up from cwd.

Usage:
    statusflow init                                   # Initialize .statusflow/ in cwd
    statusflow kinds                                  # List kinds and statuses
    statusflow kind-info expense                      # Full workflow of one kind
    statusflow check work_item in_progress done       # Dry-run a transition
    statusflow create expense "Taxi" --amount 42      # Create an entity
    statusflow show <id>                              # Entity + status summary
    statusflow --actor alice transition <id> approved --cap manage_budget
    statusflow run-pass                               # Scheduled automation pass (cron)
    statusflow audit [<id>]                           # Audit trail
    statusflow notifications                          # Queued notifications
    statusflow validate-config [file.json]            # Validate workflow overrides
    statusflow serve --port 8390                      # HTTP API
"""

from __future__ import annotations

from pathlib import Path

import click

from statusflow import __version__
from statusflow.cli_commands import automation, entities, server, workflow
from statusflow.core import (
    CONFIG_FILENAME,
    DB_FILENAME,
    STATUSFLOW_DIR_NAME,
    StatusDB,
    default_config,
    write_config,
)
from statusflow.workflows import WORKFLOWS_DIRNAME

# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="statusflow")
@click.option("--actor", default="cli", help="Actor identity for audit trail (default: cli)")
@click.pass_context
def cli(ctx: click.Context, actor: str) -> None:
    """statusflow -- configuration-driven status-transition engine."""
    ctx.ensure_object(dict)
    ctx.obj["actor"] = actor


@cli.command()
def init() -> None:
    """Initialize .statusflow/ in the current directory."""
    cwd = Path.cwd()
    statusflow_dir = cwd / STATUSFLOW_DIR_NAME

    if statusflow_dir.exists():
        click.echo(f"{STATUSFLOW_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        with StatusDB(statusflow_dir / DB_FILENAME) as db:
            db.initialize()
        return

    statusflow_dir.mkdir()
    (statusflow_dir / WORKFLOWS_DIRNAME).mkdir()
    write_config(statusflow_dir, default_config())

    with StatusDB(statusflow_dir / DB_FILENAME) as db:
        db.initialize()

    click.echo(f"Initialized {STATUSFLOW_DIR_NAME}/ in {cwd}")
    click.echo(f"  Config: {statusflow_dir / CONFIG_FILENAME}")
    click.echo(f"  Database: {statusflow_dir / DB_FILENAME}")
    click.echo(f"  Workflow overrides: {statusflow_dir / WORKFLOWS_DIRNAME}/<kind>.json")


workflow.register(cli)
entities.register(cli)
automation.register(cli)
server.register(cli)


if __name__ == "__main__":
    cli()
