"""Request tracing middleware.

Every response carries an ``X-Request-ID`` (echoed from the client or
generated).  The ID, and the session id for ``/sessions/{id}`` routes, are
bound into structlog contextvars so all log lines of the request share them.
"""

from __future__ import annotations

import re
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

SERVICE_NAME = "vendor-negotiator"

_SESSION_PATH = re.compile(r"^/sessions/(?P<session_id>[^/]+)")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind request and session identifiers to each HTTP request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        context = {"request_id": request_id, "service": SERVICE_NAME}
        match = _SESSION_PATH.match(request.url.path)
        if match:
            context["session_id"] = match["session_id"]
        structlog.contextvars.bind_contextvars(**context)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
