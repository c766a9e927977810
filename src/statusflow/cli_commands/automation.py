"""CLI command for the scheduled automation pass.

Meant to be invoked by cron. Exit code 0 whenever the pass ran, even if
individual entities failed (those are logged and reported); 1 only on a
fatal configuration problem.
"""

from __future__ import annotations

import sys

import click

from statusflow.cli_common import echo_json, get_db, get_engine
from statusflow.core import find_statusflow_root, read_config
from statusflow.exceptions import ConfigurationError


@click.command("run-pass")
@click.option("--kind", "kinds", multiple=True, help="Kind to process (repeatable; default: enabled_kinds from config)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def run_pass(kinds: tuple[str, ...], as_json: bool) -> None:
    """Run auto-transitions, escalations and overdue checks once."""
    with get_db() as db:
        selected = list(kinds) or read_config(find_statusflow_root()).get("enabled_kinds")
        try:
            summary = get_engine(db).run_scheduled_pass(selected)
        except ConfigurationError as e:
            click.echo(f"Configuration error: {e}", err=True)
            sys.exit(1)

        if as_json:
            echo_json(summary.to_dict())
            return

        click.echo(f"Scheduled pass at {summary.timestamp}")
        for k in summary.per_kind:
            click.echo(
                f"  {k.kind:<13} processed={k.processed} transitioned={len(k.transitioned)} "
                f"escalations={len(k.escalations)} overdue={k.overdue} errors={len(k.errors)}"
            )
            for err in k.errors:
                click.echo(f"    ! {err['id']}: [{err['code']}] {err['error']}", err=True)
        click.echo(f"Total transitioned: {summary.total_transitioned}")


def register(cli: click.Group) -> None:
    """Register automation commands with the CLI."""
    cli.add_command(run_pass)
