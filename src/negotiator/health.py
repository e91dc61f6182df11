"""Liveness and readiness probes.

- ``GET /health``: 200 while the process is up.
- ``GET /ready``: 200 when the call-history DB answers, the session store
  exists and the shared HTTP client used by the directory and telephony
  adapters is open; 503 with per-check detail otherwise.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


async def _db_reachable(conn: sqlite3.Connection | None) -> bool:
    if conn is None:
        return False
    try:
        await asyncio.to_thread(conn.execute, "SELECT 1")
    except sqlite3.Error:
        return False
    return True


def readiness_checks(services: dict[str, Any]) -> dict[str, bool]:
    """Synchronous checks; the DB check is awaited separately."""
    http_client = services.get("http_client")
    return {
        "session_store": services.get("session_store") is not None,
        "http_client": http_client is not None and not http_client.is_closed,
    }


def register_health_routes(app: FastAPI) -> None:
    """Register ``/health`` and ``/ready`` on *app*."""

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        services: dict[str, Any] = request.app.state.services
        results = {"call_history_db": await _db_reachable(services.get("call_history_conn"))}
        results.update(readiness_checks(services))
        checks = {name: "ok" if ok else "fail" for name, ok in results.items()}

        all_ok = all(results.values())
        return JSONResponse(
            content={"status": "ready" if all_ok else "not_ready", "checks": checks},
            status_code=200 if all_ok else 503,
        )
