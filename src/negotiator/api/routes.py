"""HTTP glue over the orchestrator, event stream and call-history store.

Routes read shared services from ``request.app.state.services``.  Domain
errors are mapped to status codes by ``register_error_handlers``.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from fastapi import APIRouter, Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from negotiator.collaborators.call_history import CallHistory
from negotiator.domain.errors import (
    CallRecordNotFoundError,
    InvalidActionError,
    SessionNotFoundError,
)
from negotiator.domain.models import CallRecord, CallRecordUpdate
from negotiator.orchestrator import Orchestrator, SessionSnapshot, StatusSummary
from negotiator.streaming.gateway import EventStreamGateway

logger = structlog.get_logger()

router = APIRouter()

MAX_CALL_HISTORY_LIMIT = 500


def _orchestrator(request: Request) -> Orchestrator:
    return request.app.state.services["orchestrator"]


def _call_history(request: Request) -> CallHistory:
    return request.app.state.services["call_history"]


@router.post("/sessions/{session_id}/actions")
async def submit_action(
    session_id: str,
    request: Request,
    payload: dict[str, Any] = Body(...),
) -> StatusSummary:
    """Submit one action (tagged by its ``action`` field) to a session."""
    return await _orchestrator(request).submit(session_id, payload)


@router.get("/sessions/{session_id}/events")
async def stream_events(session_id: str, request: Request) -> StreamingResponse:
    """Server-Sent Events stream: snapshot, recent replay, then live events."""
    gateway: EventStreamGateway = request.app.state.services["gateway"]
    return StreamingResponse(
        gateway.stream(session_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, request: Request) -> SessionSnapshot:
    """Full state snapshot with the most recent events."""
    return _orchestrator(request).snapshot(session_id)


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, request: Request) -> dict[str, Any]:
    """Delete a session and close its event streams."""
    deleted = _orchestrator(request).delete(session_id)
    return {"session_id": session_id, "deleted": deleted}


@router.get("/call-history")
async def list_call_history(
    request: Request,
    limit: int = Query(50, ge=1, le=MAX_CALL_HISTORY_LIMIT),
) -> list[CallRecord]:
    """Most recent call records first."""
    return await asyncio.to_thread(_call_history(request).list_recent, limit)


@router.get("/call-history/{call_id}")
async def get_call_record(call_id: str, request: Request) -> CallRecord:
    return await asyncio.to_thread(_call_history(request).get, call_id)


@router.patch("/call-history/{call_id}")
async def update_call_record(
    call_id: str, changes: CallRecordUpdate, request: Request
) -> CallRecord:
    """Attach transcript, price or notes to an existing record."""
    return await asyncio.to_thread(_call_history(request).update, call_id, changes)


@router.delete("/call-history/{call_id}")
async def delete_call_record(call_id: str, request: Request) -> dict[str, Any]:
    deleted = await asyncio.to_thread(_call_history(request).delete, call_id)
    if not deleted:
        raise CallRecordNotFoundError(call_id)
    return {"call_id": call_id, "deleted": True}


def register_error_handlers(app: FastAPI) -> None:
    """Map domain errors onto HTTP status codes.

    - ``InvalidActionError`` and request validation errors -> 400
    - ``SessionNotFoundError`` / ``CallRecordNotFoundError`` -> 404
    - anything else -> 500

    Args:
        app: The FastAPI application instance.
    """

    @app.exception_handler(InvalidActionError)
    async def invalid_action(request: Request, exc: InvalidActionError) -> JSONResponse:
        logger.info("invalid_action", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "invalid request", "details": jsonable_errors(exc)},
        )

    @app.exception_handler(SessionNotFoundError)
    async def session_not_found(request: Request, exc: SessionNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(CallRecordNotFoundError)
    async def record_not_found(request: Request, exc: CallRecordNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_request_error", path=request.url.path)
        return JSONResponse(status_code=500, content={"error": str(exc)})


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Validation errors reduced to JSON-safe location/message pairs."""
    return [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": str(err.get("msg", ""))}
        for err in exc.errors()
    ]
