"""Application entry point: the FastAPI service around the negotiation engine.

Configures:
- **structlog** with JSON rendering (production) or colored console (development)
- **Sentry** error reporting through structlog-sentry when a DSN is set
- **Collaborators**: Google Maps directory, Vapi telephony, Anthropic reasoning,
  SQLite call history
- **Sessions**: the session store, workflow engine, orchestrator and event stream
- **HTTP**: session/action routes, SSE stream, call history, health and metrics
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from negotiator.api.routes import register_error_handlers, router
from negotiator.collaborators.call_history import (
    CallHistoryStore,
    close_call_history_db,
    init_call_history_db,
)
from negotiator.collaborators.directory import GoogleMapsDirectory
from negotiator.collaborators.telephony import VapiCaller
from negotiator.config import Settings, get_settings, validate_credentials
from negotiator.health import register_health_routes
from negotiator.llm.client import AnthropicReasoningService, get_anthropic_client
from negotiator.observability.metrics import setup_metrics
from negotiator.observability.middleware import SERVICE_NAME, RequestIdMiddleware
from negotiator.observability.sentry import get_sentry_processor, init_sentry
from negotiator.orchestrator import Orchestrator
from negotiator.research.price_intel import load_service_rates
from negotiator.sessions.store import SessionStore
from negotiator.streaming.gateway import EventStreamGateway
from negotiator.workflow.engine import NegotiationWorkflow, WorkflowServices

logger = structlog.get_logger()

HTTP_TIMEOUT_SECONDS = 30.0


def configure_logging(production: bool = False, *, sentry_enabled: bool = False) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        sentry_enabled: Forward ERROR events to Sentry.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
    ]
    if sentry_enabled:
        shared_processors.append(get_sentry_processor())
    shared_processors += [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def initialize_services(settings: Settings | None = None) -> dict[str, Any]:
    """Set up all shared services for the application.

    Creates the call-history database and store, one shared httpx client for
    the directory and telephony adapters, the Anthropic reasoning service,
    the session store, workflow engine, orchestrator and event stream gateway.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    services: dict[str, Any] = {"_settings": settings}

    # a. Call-history database
    db_path = settings.call_history_db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = init_call_history_db(db_path)
    services["call_history_conn"] = conn
    call_history = CallHistoryStore(conn)
    services["call_history"] = call_history

    # b. External collaborators
    http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
    services["http_client"] = http_client
    directory = GoogleMapsDirectory(settings.google_maps_api_key.get_secret_value(), http_client)
    caller = VapiCaller(
        settings.vapi_api_key.get_secret_value(), settings.vapi_phone_number_id, http_client
    )
    reasoning = AnthropicReasoningService(
        get_anthropic_client(settings.anthropic_api_key.get_secret_value() or None)
    )

    # c. Workflow, sessions and streaming
    workflow = NegotiationWorkflow(
        WorkflowServices(
            directory=directory,
            caller=caller,
            reasoning=reasoning,
            call_history=call_history,
            rates=load_service_rates(),
            settings=settings,
        )
    )
    session_store = SessionStore()
    services["session_store"] = session_store
    services["orchestrator"] = Orchestrator(
        session_store, workflow, snapshot_event_limit=settings.snapshot_event_limit
    )
    services["gateway"] = EventStreamGateway(
        session_store,
        replay_count=settings.stream_replay_count,
        keepalive_seconds=settings.stream_keepalive_seconds,
    )

    logger.info("services_initialized", db_path=str(db_path))
    return services


async def close_services(services: dict[str, Any]) -> None:
    """Release the HTTP client and the call-history connection."""
    http_client = services.pop("http_client", None)
    if http_client is not None:
        await http_client.aclose()
    conn = services.pop("call_history_conn", None)
    if conn is not None:
        close_call_history_db(conn)
        logger.info("call_history_db_closed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Lifespan context manager for FastAPI startup and shutdown.

    On shutdown: closes the HTTP client and the call-history database.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application.
    """
    logger.info("lifespan_started")
    yield
    await close_services(app.state.services)


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with routes, error mapping, health and metrics.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    fastapi_app = FastAPI(title="Vendor Negotiator", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.state.settings = services.get("_settings", get_settings())
    fastapi_app.add_middleware(RequestIdMiddleware)
    fastapi_app.include_router(router)
    register_error_handlers(fastapi_app)
    register_health_routes(fastapi_app)
    setup_metrics(fastapi_app)
    return fastapi_app


async def main() -> None:
    """Main entry point.

    1. Configure logging (and Sentry when a DSN is set)
    2. Validate credentials
    3. Initialize services and create the FastAPI app
    4. Serve with uvicorn until shutdown
    """
    settings = get_settings()
    sentry_enabled = init_sentry(
        settings.sentry_dsn, environment="production" if settings.production else "development"
    )
    configure_logging(production=settings.production, sentry_enabled=sentry_enabled)
    logger.info("application_starting", port=settings.http_port)

    validate_credentials(settings)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    config = uvicorn.Config(
        fastapi_app,
        host="0.0.0.0",
        port=settings.http_port,
        log_level="info",
    )
    server = uvicorn.Server(config)

    try:
        await server.serve()
    finally:
        await close_services(services)


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
