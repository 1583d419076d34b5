"""Clock Authority: the single source of truth for "now".

Every elapsed-time computation on the server is ``clock.now() - start_time``.
Client-supplied deltas are never used for timing decisions.
"""
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.exceptions import InvalidTimezoneError

logger = logging.getLogger(__name__)


class Clock(ABC):
    """Abstract clock. Implementations return timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock(Clock):
    """Deterministic clock for tests and simulations. Only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        if self._now.tzinfo is None:
            self._now = self._now.replace(tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0, ms: int = 0) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, milliseconds=ms)
        return self._now

    def set(self, when: datetime) -> None:
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        self._now = when


_clock: Clock = SystemClock()


def get_clock() -> Clock:
    return _clock


def set_clock(clock: Clock) -> None:
    global _clock
    _clock = clock
    logger.info("Clock authority set: %s", type(clock).__name__)


def to_epoch_ms(when: datetime) -> int:
    return int(when.timestamp() * 1000)


def elapsed_ms(start: datetime, now: datetime) -> int:
    """Whole milliseconds between two aware datetimes (may be negative)."""
    return (now - start) // timedelta(milliseconds=1)


def resolve_timezone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidTimezoneError(tz_name)


def calendar_date(when: datetime, tz_name: str) -> date:
    """Calendar day of ``when`` in the user's timezone (not the server UTC date)."""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(resolve_timezone(tz_name)).date()
