"""Centralized settings module: single source of truth for all config.

All secrets loaded exclusively from env vars. Never committed, never logged.
Redaction enforced everywhere via observability.redaction.
"""
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    # ── Environment ──────────────────────────────────────────────
    ENV: Literal["dev", "staging", "prod"] = Field(default="dev")

    # ── MongoDB ──────────────────────────────────────────────────
    MONGO_URL: str = Field(default="mongodb://localhost:27017")
    DB_NAME: str = Field(default="focus_timer_dev")

    # ── Auth / Signing ───────────────────────────────────────────
    JWT_SECRET: str = Field(default="")
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_EXPIRY_SECONDS: int = Field(default=3600)  # 1 hour

    # ── Heartbeat protocol ───────────────────────────────────────
    HEARTBEAT_INTERVAL_S: int = Field(default=30)
    HEARTBEAT_SEND_TIMEOUT_S: int = Field(default=10)  # must stay < interval
    DRIFT_THRESHOLD_MS: int = Field(default=5000)  # >5s → SUSPICIOUS
    SUSPICIOUS_CLEAR_HEARTBEATS: int = Field(default=1, ge=1)
    SESSION_UPDATE_MAX_ATTEMPTS: int = Field(default=3, ge=1)

    # ── Streaks ──────────────────────────────────────────────────
    DEFAULT_TIMEZONE: str = Field(default="UTC")
    STREAK_RECONCILE_MAX_ATTEMPTS: int = Field(default=5, ge=1)
    MAINTENANCE_INTERVAL_S: int = Field(default=60)

    # ── Offline agent (client side) ──────────────────────────────
    API_BASE_URL: str = Field(default="http://localhost:8001")
    AGENT_STATE_PATH: str = Field(default=str(_ROOT / ".agent" / "active_session.json"))
    SYNC_BACKOFF_BASE_S: float = Field(default=2.0)
    SYNC_BACKOFF_MAX_S: float = Field(default=300.0)

    # ── Observability ────────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")
    LOG_REDACTION_ENABLED: bool = Field(default=True)

    # ── Feature Flags ────────────────────────────────────────────
    MOCK_STORE: bool = Field(default=False)  # in-memory stores, dev/test only

    model_config = {
        "env_file": str(_ROOT / ".env"),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
