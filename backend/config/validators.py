"""Startup configuration validation guardrails."""

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


logger = logging.getLogger(__name__)


def _require_jwt_secret(settings) -> None:
    """Fail closed if JWT secret is not explicitly configured."""
    if not settings.JWT_SECRET or not settings.JWT_SECRET.strip():
        raise RuntimeError(
            "STARTUP FAILED: JWT_SECRET is required and cannot be empty. "
            "Set JWT_SECRET in backend/.env or container environment and restart the server."
        )


def validate_startup_config(settings) -> None:
    """Centralized startup guardrails for required and warning-level config."""
    _require_jwt_secret(settings)

    if settings.ENV == "prod" and settings.MOCK_STORE:
        raise RuntimeError(
            "STARTUP FAILED: MOCK_STORE must be False in production."
        )

    if settings.HEARTBEAT_SEND_TIMEOUT_S >= settings.HEARTBEAT_INTERVAL_S:
        raise RuntimeError(
            "STARTUP FAILED: HEARTBEAT_SEND_TIMEOUT_S "
            f"({settings.HEARTBEAT_SEND_TIMEOUT_S}s) must be shorter than "
            f"HEARTBEAT_INTERVAL_S ({settings.HEARTBEAT_INTERVAL_S}s)."
        )

    try:
        ZoneInfo(settings.DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        raise RuntimeError(
            f"STARTUP FAILED: DEFAULT_TIMEZONE '{settings.DEFAULT_TIMEZONE}' is not a known IANA zone."
        )

    if not settings.MOCK_STORE and not settings.MONGO_URL:
        raise RuntimeError(
            "STARTUP FAILED: missing required env vars: MONGO_URL\n"
            "Set them in .env or container environment and restart the server."
        )

    if settings.DRIFT_THRESHOLD_MS < 1000:
        logger.warning(
            "CONFIG WARNING: DRIFT_THRESHOLD_MS=%d is below network jitter: most sessions will be flagged",
            settings.DRIFT_THRESHOLD_MS,
        )
