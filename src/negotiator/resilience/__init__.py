"""Retry helpers for external collaborator calls."""

from negotiator.resilience.retry import RETRYABLE_EXCEPTIONS, resilient_api_call

__all__ = ["RETRYABLE_EXCEPTIONS", "resilient_api_call"]
