"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables, a cached ``get_settings()`` accessor, and a ``validate_credentials()``
startup gate that enforces credential presence in production mode.

This module imports nothing from the ``negotiator`` package so every other
module can depend on it.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file.

    ``SecretStr`` fields prevent accidental leaks in logs or error output.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    http_port: int = 8000

    # -- Reasoning / Anthropic -------------------------------------------------
    anthropic_api_key: SecretStr = SecretStr("")

    # -- Business directory (Google Maps) --------------------------------------
    google_maps_api_key: SecretStr = SecretStr("")
    search_radius_km: float = 5.0

    # -- Telephony (Vapi) ------------------------------------------------------
    vapi_api_key: SecretStr = SecretStr("")
    vapi_phone_number_id: str = ""
    call_poll_interval_seconds: float = 5.0
    call_poll_max_attempts: int = 60
    max_vendors_to_call: int = 5

    # -- Call history ----------------------------------------------------------
    call_history_db_path: Path = Path("data/call_history.db")

    # -- Sessions & streaming --------------------------------------------------
    stream_replay_count: int = 20
    stream_keepalive_seconds: float = 15.0
    snapshot_event_limit: int = 50

    # -- Observability ---------------------------------------------------------
    sentry_dsn: str = ""


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    Call ``get_settings.cache_clear()`` in tests to reset.

    Returns:
        The application ``Settings``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # Only the structured errors list; the exception text may carry secrets.
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)


def validate_credentials(settings: Settings) -> None:
    """Enforce credential presence at startup.

    In **production** mode the application exits with a clear error block if
    any required credential is missing.  In **development** mode each missing
    credential is logged as a warning and the collaborator falls back to its
    offline behaviour.

    Args:
        settings: The loaded application settings.
    """
    errors: list[str] = []

    if not settings.anthropic_api_key.get_secret_value():
        errors.append("ANTHROPIC_API_KEY is empty or not set")

    if not settings.google_maps_api_key.get_secret_value():
        errors.append("GOOGLE_MAPS_API_KEY is empty or not set")

    if not settings.vapi_api_key.get_secret_value():
        errors.append("VAPI_API_KEY is empty or not set")

    if not settings.vapi_phone_number_id:
        errors.append("VAPI_PHONE_NUMBER_ID is empty or not set")

    if not errors:
        logger.info("credential_validation_passed")
        return

    if settings.production:
        for err in errors:
            logger.error("credential_missing", detail=err)
        print("\n=== STARTUP FAILED ===", file=sys.stderr)
        print("Missing required credentials for production mode:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        print("======================\n", file=sys.stderr)
        sys.exit(1)
    else:
        for err in errors:
            logger.warning("credential_missing_dev", detail=err)
