"""CLI command for serving the HTTP API."""

from __future__ import annotations

import sys

import click

from statusflow.exceptions import ConfigurationError


@click.command()
@click.option("--port", default=None, type=int, help="Port (default: 8390)")
@click.option("--host", default="127.0.0.1", help="Bind address")
def serve(port: int | None, host: str) -> None:
    """Serve the project's status API over HTTP."""
    from statusflow.api import DEFAULT_PORT, main

    try:
        main(port or DEFAULT_PORT, host=host)
    except FileNotFoundError as e:
        click.echo(f"{e}. Run 'statusflow init' first.", err=True)
        sys.exit(1)
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


def register(cli: click.Group) -> None:
    """Register the serve command with the CLI."""
    cli.add_command(serve)
