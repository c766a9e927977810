"""Workflow and entity-status route handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import APIRouter

from fastapi.responses import JSONResponse
from starlette.requests import Request

from statusflow.api_routes.common import _error_response, _parse_capabilities, _parse_json_body
from statusflow.engine import StatusEngine
from statusflow.exceptions import ConfigurationError
from statusflow.transitions import PermissionDenied, PersistenceConflict, TransitionApplied, TransitionDenied
from statusflow.validation import sanitize_actor
from statusflow.workflows import Kind, coerce_kind

logger = logging.getLogger(__name__)

_DENIAL_STATUS = {"permission_denied": 403, "conflict": 409}


def create_router() -> APIRouter:
    """Build the APIRouter for workflow and status endpoints.

    NOTE: All handlers are intentionally async despite doing synchronous
    SQLite I/O. This serializes DB access on the event loop thread,
    avoiding concurrent multi-thread access to the shared DB connection.
    """
    from fastapi import APIRouter, Depends

    from statusflow.api import _get_engine

    router = APIRouter()

    def _resolve_kind(kind: str) -> Kind | JSONResponse:
        try:
            return coerce_kind(kind)
        except ConfigurationError as e:
            return _error_response(str(e), "UNKNOWN_KIND", 404, {"kind": kind})

    def _check_status(engine: StatusEngine, kind: Kind | str, status: str, param: str) -> JSONResponse | None:
        try:
            engine.registry.status(kind, status)
        except ConfigurationError as e:
            return _error_response(str(e), "INVALID_STATUS", 400, {"param": param, "value": status})
        return None

    @router.get("/workflows")
    async def api_workflows(engine: StatusEngine = Depends(_get_engine)) -> JSONResponse:
        """Every kind's workflow, conditions by name."""
        return JSONResponse(engine.export_workflows())

    @router.get("/workflows/{kind}/check")
    async def api_check_transition(
        kind: str,
        request: Request,
        engine: StatusEngine = Depends(_get_engine),
    ) -> JSONResponse:
        """Dry-run validation of one ``from -> to`` move for a capability set."""
        resolved = _resolve_kind(kind)
        if isinstance(resolved, JSONResponse):
            return resolved
        params = request.query_params
        from_status = params.get("from")
        to_status = params.get("to")
        if not from_status or not to_status:
            return _error_response("Both 'from' and 'to' query params are required", "VALIDATION_ERROR", 400)
        for name, value in (("from", from_status), ("to", to_status)):
            bad = _check_status(engine, resolved, value, name)
            if bad is not None:
                return bad
        caps = _parse_capabilities(params.get("capabilities"))
        if isinstance(caps, JSONResponse):
            return caps

        check = engine.validate(resolved, from_status, to_status, caps)
        payload: dict[str, object] = {
            "kind": resolved.value,
            "from": from_status,
            "to": to_status,
            "allowed": check.allowed,
            "reason": check.reason,
            "min_dwell_days": check.min_dwell_days,
            **engine.requirements(resolved, from_status, to_status),
        }
        if isinstance(check, TransitionDenied):
            payload["code"] = check.code
        return JSONResponse(payload)

    @router.get("/entities/{entity_id}/status")
    async def api_entity_status(
        entity_id: str,
        request: Request,
        engine: StatusEngine = Depends(_get_engine),
    ) -> JSONResponse:
        """Current status, available targets, pending auto-transition and escalation."""
        caps = _parse_capabilities(request.query_params.get("capabilities"))
        if isinstance(caps, JSONResponse):
            return caps
        from statusflow.api import _get_db

        try:
            entity = _get_db().get_entity(entity_id)
        except KeyError:
            return _error_response(f"Entity not found: {entity_id}", "ENTITY_NOT_FOUND", 404)
        info = engine.describe_status(entity, entity.kind, caps)
        return JSONResponse({"entity": entity.to_dict(), "status": info.to_dict()})

    @router.post("/entities/{entity_id}/status")
    async def api_change_status(
        entity_id: str,
        request: Request,
        engine: StatusEngine = Depends(_get_engine),
    ) -> JSONResponse:
        """Request a status change. Body: ``{"status", "actor"?, "capabilities"?}``."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        target = body.get("status")
        if not isinstance(target, str) or not target:
            return _error_response("'status' is required", "VALIDATION_ERROR", 400)
        actor, err = sanitize_actor(body.get("actor", "api"))
        if err:
            return _error_response(err, "VALIDATION_ERROR", 400, {"param": "actor"})
        caps = _parse_capabilities(body.get("capabilities"))
        if isinstance(caps, JSONResponse):
            return caps

        from statusflow.api import _get_db

        try:
            entity = _get_db().get_entity(entity_id)
        except KeyError:
            return _error_response(f"Entity not found: {entity_id}", "ENTITY_NOT_FOUND", 404)
        bad = _check_status(engine, entity.kind, target, "status")
        if bad is not None:
            return bad

        result = engine.request_transition(entity, entity.kind, target, actor, caps)
        if isinstance(result, TransitionApplied):
            return JSONResponse(result.to_dict())

        details: dict[str, object] = {"from": entity.status, "to": target}
        if isinstance(result, PermissionDenied):
            details["required_capabilities"] = sorted(c.value for c in result.required_capabilities)
        if isinstance(result, PersistenceConflict):
            details["transient"] = result.transient
        return _error_response(
            result.reason,
            result.code.upper(),
            _DENIAL_STATUS.get(result.code, 400),
            details,
        )

    return router
