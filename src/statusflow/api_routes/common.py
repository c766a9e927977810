"""Shared helpers for API route modules."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fastapi.responses import JSONResponse
    from starlette.requests import Request

from statusflow.validation import parse_capability_list
from statusflow.workflows import Capability

logger = logging.getLogger(__name__)


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    from fastapi.responses import JSONResponse

    logger.warning("API error [%s] %s: %s", status_code, code, message)
    return JSONResponse(
        {"error": {"message": message, "code": code, "details": details or {}}},
        status_code=status_code,
    )


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON object body, returning 400 on failure."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _error_response("Invalid JSON body", "VALIDATION_ERROR", 400)
    if not isinstance(body, dict):
        return _error_response("Request body must be a JSON object", "VALIDATION_ERROR", 400)
    return body


def _parse_capabilities(raw: Any) -> frozenset[Capability] | JSONResponse:
    """Capabilities from a comma-separated query value or a JSON list; 400 on unknown names."""
    if raw is not None and not isinstance(raw, str | list):
        return _error_response("capabilities must be a list of strings", "VALIDATION_ERROR", 400)
    caps, err = parse_capability_list(raw)
    if err:
        return _error_response(err, "VALIDATION_ERROR", 400, {"param": "capabilities"})
    return caps
