"""Shared CLI helpers used by ``cli.py`` and the ``cli_commands/*.py`` modules."""

from __future__ import annotations

import json as json_mod
import sys
from typing import Any

import click

from statusflow.core import (
    DB_FILENAME,
    STATUSFLOW_DIR_NAME,
    StatusDB,
    find_statusflow_root,
    read_config,
)
from statusflow.engine import StatusEngine
from statusflow.exceptions import ConfigurationError
from statusflow.logging import setup_logging
from statusflow.validation import parse_capability_list
from statusflow.workflows import Capability, WorkflowRegistry


def load_registry() -> WorkflowRegistry:
    """Workflows for the enclosing project, or the built-ins outside one.

    Exits 1 on invalid workflow overrides.
    """
    try:
        statusflow_dir = find_statusflow_root()
    except FileNotFoundError:
        statusflow_dir = None
    try:
        return WorkflowRegistry.load(statusflow_dir)
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


def get_db() -> StatusDB:
    """Discover .statusflow/ and return an initialized StatusDB with the project's workflows."""
    try:
        statusflow_dir = find_statusflow_root()
    except FileNotFoundError:
        click.echo(f"No {STATUSFLOW_DIR_NAME}/ found. Run 'statusflow init' first.", err=True)
        sys.exit(1)
    config = read_config(statusflow_dir)
    setup_logging(statusflow_dir, config.get("log_level", "INFO"))
    try:
        registry = WorkflowRegistry.load(statusflow_dir)
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    db = StatusDB(statusflow_dir / DB_FILENAME, registry=registry)
    db.initialize()
    return db


def get_engine(db: StatusDB) -> StatusEngine:
    return StatusEngine.from_db(db)


def parse_caps_option(values: tuple[str, ...]) -> frozenset[Capability]:
    """Parse repeatable ``--cap`` values (each may be comma-separated); exit 1 on unknown names."""
    caps, err = parse_capability_list(",".join(values))
    if err:
        click.echo(err, err=True)
        sys.exit(1)
    return caps


def echo_json(data: Any) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))
