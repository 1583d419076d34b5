"""Heartbeat rules: centralized timing policy shared with clients."""
from config.settings import get_settings
from schemas.heartbeat import TimerConfig


def get_heartbeat_interval_ms() -> int:
    """Get heartbeat interval in milliseconds (for client config)."""
    return get_settings().HEARTBEAT_INTERVAL_S * 1000


def get_heartbeat_send_timeout_ms() -> int:
    """A send still in flight after this long is abandoned for the next tick."""
    return get_settings().HEARTBEAT_SEND_TIMEOUT_S * 1000


def get_timer_config() -> TimerConfig:
    settings = get_settings()
    return TimerConfig(
        heartbeat_interval_ms=get_heartbeat_interval_ms(),
        heartbeat_send_timeout_ms=get_heartbeat_send_timeout_ms(),
        drift_threshold_ms=settings.DRIFT_THRESHOLD_MS,
        suspicious_clear_heartbeats=settings.SUSPICIOUS_CLEAR_HEARTBEATS,
    )
