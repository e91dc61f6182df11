"""Resilient API call decorator with tenacity retry.

Collaborator calls are retried 3 times with exponential backoff and jitter.
On final failure the exhaustion is logged at ERROR level (forwarded to Sentry
when configured) and the original exception is re-raised for the stage
boundary to convert into a recoverable error.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import httpx
import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])

# Only transport-level and HTTP status failures are worth retrying
RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (httpx.HTTPError,)


def _api_name(retry_state: RetryCallState) -> str:
    return getattr(retry_state.fn, "_api_name", "unknown") if retry_state.fn else "unknown"


def log_final_failure(retry_state: RetryCallState) -> Any:
    """Log retry exhaustion, then re-raise the last exception.

    Args:
        retry_state: Tenacity retry state with attempt info and outcome.

    Returns:
        Never returns normally when the last attempt failed.
    """
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.error(
        "api_call_failed_after_retries",
        api_name=_api_name(retry_state),
        attempts=retry_state.attempt_number,
        exception=str(exception),
    )
    if retry_state.outcome is None:  # pragma: no cover - tenacity always sets an outcome
        return None
    return retry_state.outcome.result()


def _before_sleep_log(retry_state: RetryCallState) -> None:
    """Log a warning before each retry attempt.

    Args:
        retry_state: Tenacity retry state with attempt info.
    """
    logger.warning(
        "retrying_api_call",
        api_name=_api_name(retry_state),
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
    )


def resilient_api_call(api_name: str) -> Callable[[F], F]:
    """Create a retry decorator for a collaborator API call.

    Returns a tenacity retry decorator configured with:
    - 3 attempts maximum, retrying only ``httpx.HTTPError``
    - Exponential backoff with jitter (1s initial, 30s max, 5s jitter)
    - Warning log before each retry
    - Error log on final failure, original exception re-raised

    Works for both sync and ``async def`` functions.

    Args:
        api_name: Human-readable name for the API (used in logs).

    Returns:
        A decorator that wraps the function with retry logic.
    """

    def decorator(func: F) -> F:
        func._api_name = api_name  # type: ignore[attr-defined]

        wrapped = retry(
            retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
            stop=stop_after_attempt(3),
            wait=wait_exponential_jitter(initial=1, max=30, jitter=5),
            before_sleep=_before_sleep_log,
            retry_error_callback=log_final_failure,
            reraise=True,
        )(func)

        return wrapped  # type: ignore[return-value]

    return decorator
