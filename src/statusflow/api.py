"""HTTP API for statusflow -- a thin adapter over StatusEngine.

A module-level ``_db`` / ``_engine`` pair is set at startup (by ``main()``
or a test fixture) and injected into handlers via ``Depends(_get_engine)``.

Usage:
    statusflow serve                 # http://127.0.0.1:8390
    statusflow serve --port 9000
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import FastAPI
    from fastapi.responses import JSONResponse
    from starlette.requests import Request

from statusflow.api_routes.common import _error_response
from statusflow.core import DB_FILENAME, StatusDB, find_statusflow_root, read_config
from statusflow.engine import StatusEngine
from statusflow.exceptions import ConfigurationError, PersistenceError
from statusflow.logging import setup_logging
from statusflow.workflows import WorkflowRegistry

DEFAULT_PORT = 8390

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level state -- set by main() or test fixtures
# ---------------------------------------------------------------------------

_db: StatusDB | None = None
_engine: StatusEngine | None = None


def _get_db() -> StatusDB:
    from fastapi import HTTPException

    if _db is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return _db


def _get_engine() -> StatusEngine:
    from fastapi import HTTPException

    if _engine is None:
        raise HTTPException(status_code=500, detail="Engine not initialized")
    return _engine


def create_app() -> FastAPI:
    from fastapi import FastAPI, Request
    from fastapi.responses import JSONResponse

    from statusflow.api_routes import status

    # Expose Request in module globals so PEP 563 deferred annotations resolve
    globals()["Request"] = Request

    app = FastAPI(title="statusflow", docs_url=None, redoc_url=None)
    app.include_router(status.create_router(), prefix="/api")

    @app.exception_handler(ConfigurationError)
    async def _configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("Configuration error on %s: %s", request.url.path, exc)
        return _error_response(str(exc), "CONFIGURATION_ERROR", 500)

    @app.exception_handler(PersistenceError)
    async def _persistence_error(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("Store failure on %s: %s", request.url.path, exc, exc_info=exc)
        return _error_response(str(exc), "PERSISTENCE_ERROR", 500)

    @app.get("/api/health")
    async def api_health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    return app


def main(port: int = DEFAULT_PORT, *, host: str = "127.0.0.1") -> None:
    """Serve the local project's store over HTTP.

    Raises:
        FileNotFoundError: No .statusflow/ directory above cwd.
        ConfigurationError: Invalid workflow overrides.
    """
    import uvicorn

    global _db, _engine

    statusflow_dir = find_statusflow_root()
    config = read_config(statusflow_dir)
    setup_logging(statusflow_dir, config.get("log_level", "INFO"))
    registry = WorkflowRegistry.load(statusflow_dir)
    _db = StatusDB(statusflow_dir / DB_FILENAME, registry=registry, check_same_thread=False)
    _db.initialize()
    _engine = StatusEngine.from_db(_db, registry)

    app = create_app()
    print(f"statusflow API: http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="warning")
