"""Prometheus metrics instrumentation for the vendor negotiator.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI app,
  exposing ``/metrics`` with HTTP request duration/count plus custom business metrics.
- ``ACTIVE_SESSIONS``: Gauge tracking sessions held in the session store.
- ``CALLS_PLACED``: Counter of vendor calls, labelled by outcome.
- ``DEALS_FOUND``: Counter of sessions that selected a best deal.

Business metrics are updated where the event happens (not by polling state).
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

ACTIVE_SESSIONS: Gauge = Gauge(
    "negotiator_active_sessions",
    "Number of sessions currently held in the session store",
)

CALLS_PLACED: Counter = Counter(
    "negotiator_calls_placed_total",
    "Total number of outbound vendor calls by outcome",
    ["outcome"],
)

DEALS_FOUND: Counter = Counter(
    "negotiator_deals_found_total",
    "Total number of sessions that selected a best deal",
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Excludes health/ready/metrics endpoints and the long-lived event stream
    from instrumentation.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics", "/sessions/.*/events"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
