"""Shared pytest fixtures for statusflow tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from statusflow.core import DB_FILENAME, STATUSFLOW_DIR_NAME, StatusDB, default_config, write_config
from statusflow.engine import StatusEngine
from statusflow.workflows import WorkflowRegistry
from tests._db_factory import FrozenClock, make_db


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def registry() -> WorkflowRegistry:
    return WorkflowRegistry.builtin()


@pytest.fixture
def db(tmp_path: Path, registry: WorkflowRegistry, clock: FrozenClock) -> Generator[StatusDB, None, None]:
    """Fresh StatusDB on the frozen clock for each test."""
    d = make_db(tmp_path, registry=registry, clock=clock)
    yield d
    d.close()


@pytest.fixture
def engine(db: StatusDB, registry: WorkflowRegistry, clock: FrozenClock) -> StatusEngine:
    return StatusEngine.from_db(db, registry, clock=clock)


@pytest.fixture
def statusflow_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a statusflow project (.statusflow/ with config + db).

    Returns the project root (parent of .statusflow/).
    """
    statusflow_dir = tmp_path / STATUSFLOW_DIR_NAME
    statusflow_dir.mkdir()
    (statusflow_dir / "workflows").mkdir()
    write_config(statusflow_dir, default_config())
    with StatusDB(statusflow_dir / DB_FILENAME) as d:
        d.initialize()
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
