"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator, Generator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

import statusflow.api as api_module
from statusflow.api import create_app
from statusflow.core import StatusDB
from statusflow.engine import StatusEngine
from tests._db_factory import FrozenClock, make_db


@pytest.fixture
def api_db(tmp_path: Path, clock: FrozenClock) -> Generator[StatusDB, None, None]:
    """StatusDB opened with check_same_thread=False, as ``main()`` does."""
    d = make_db(tmp_path, clock=clock, check_same_thread=False)
    yield d
    d.close()


@pytest.fixture
async def client(api_db: StatusDB, clock: FrozenClock) -> AsyncIterator[AsyncClient]:
    """Test client over the ASGI app, wired to *api_db* on the frozen clock."""
    api_module._db = api_db
    api_module._engine = StatusEngine.from_db(api_db, clock=clock)
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    api_module._db = None
    api_module._engine = None
