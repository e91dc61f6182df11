"""Sentry error reporting for the vendor negotiator.

Provides:
- ``init_sentry(dsn, environment=...)``: Initialize the SDK; returns whether it
  is active.  Client-input errors are dropped before sending.
- ``get_sentry_processor()``: structlog processor that turns ERROR-level log
  events into Sentry events.
"""

from __future__ import annotations

import logging
from typing import Any

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration
from structlog_sentry import SentryProcessor

from negotiator.domain.errors import (
    CallRecordNotFoundError,
    InvalidActionError,
    SessionNotFoundError,
)
from negotiator.observability.middleware import SERVICE_NAME

# Rejected requests are answered with 4xx and are not service faults
CLIENT_ERRORS: tuple[type[Exception], ...] = (
    InvalidActionError,
    SessionNotFoundError,
    CallRecordNotFoundError,
)


def drop_client_errors(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """``before_send`` hook: discard events raised by bad client input."""
    exc_info = hint.get("exc_info")
    if exc_info and isinstance(exc_info[1], CLIENT_ERRORS):
        return None
    return event


def init_sentry(dsn: str, *, environment: str = "development") -> bool:
    """Initialize the Sentry SDK when *dsn* is set.

    Args:
        dsn: Sentry DSN string.  Empty string disables Sentry.
        environment: Reported environment name.

    Returns:
        True when the SDK was initialized.
    """
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        server_name=SERVICE_NAME,
        traces_sample_rate=0.1,
        send_default_pii=False,
        before_send=drop_client_errors,
        integrations=[
            # structlog-sentry reports errors; stdlib capture would double them
            LoggingIntegration(event_level=None, level=None),
        ],
    )
    return True


def get_sentry_processor() -> structlog.types.Processor:
    """SentryProcessor at ERROR level, placed after ``add_log_level``."""
    return SentryProcessor(event_level=logging.ERROR)
