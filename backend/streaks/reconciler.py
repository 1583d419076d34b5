"""Streak Reconciler: day-level streak continuation on session completion.

Rule (evaluated once per completed session, on the user's calendar date):
  - no record                      → create current=1, longest=1
  - last == completion day         → no-op (one extension per day)
  - last == completion day - 1     → current += 1, longest = max(longest, current)
  - anything else (gap ≥ 2 days,
    or last is after completion)   → reset current=1, longest untouched

last_completed_date never moves backwards, and a session id that has
already been applied is ignored, so replays and late retries of an old
completion cannot corrupt the record.

Writes are serialized per user and version-checked in the store.
"""
import logging
from datetime import date, timedelta
from enum import Enum
from typing import Optional, Tuple

from config.settings import get_settings
from core.clock import calendar_date, get_clock
from core.exceptions import ConcurrentModificationError
from observability.audit_log import log_audit_event
from schemas.audit import AuditEventType
from schemas.heartbeat import StreakSummary
from schemas.streak import MAX_APPLIED_SESSION_IDS, StreakRecord
from store.orchestrator import get_session_store, get_streak_store
from timer.locks import streak_lock

logger = logging.getLogger(__name__)


class StreakOutcome(str, Enum):
    CREATED = "created"
    CONTINUED = "continued"
    SAME_DAY = "same_day"
    RESET = "reset"
    DUPLICATE = "duplicate"


def _remember(applied: list, session_id: Optional[str]) -> list:
    if not session_id:
        return list(applied)
    return (list(applied) + [session_id])[-MAX_APPLIED_SESSION_IDS:]


def apply_completion(
    record: Optional[StreakRecord],
    user_id: str,
    completion_date: date,
    tz_name: str,
    session_id: Optional[str] = None,
) -> Tuple[StreakRecord, StreakOutcome]:
    """Pure streak rule. Returns the record to store and what happened."""
    if record is None:
        return StreakRecord(
            user_id=user_id,
            current_streak=1,
            longest_streak=1,
            last_completed_date=completion_date,
            timezone=tz_name,
            applied_session_ids=_remember([], session_id),
        ), StreakOutcome.CREATED

    if session_id and session_id in record.applied_session_ids:
        return record, StreakOutcome.DUPLICATE

    applied = _remember(record.applied_session_ids, session_id)
    last = record.last_completed_date

    if last == completion_date:
        return record.model_copy(update={
            "timezone": tz_name,
            "applied_session_ids": applied,
        }), StreakOutcome.SAME_DAY

    if last is not None and last == completion_date - timedelta(days=1):
        current = record.current_streak + 1
        return record.model_copy(update={
            "current_streak": current,
            "longest_streak": max(record.longest_streak, current),
            "last_completed_date": completion_date,
            "timezone": tz_name,
            "applied_session_ids": applied,
        }), StreakOutcome.CONTINUED

    # Gap, or an out-of-order completion (last is in the future relative to it)
    new_last = completion_date if last is None or completion_date > last else last
    return record.model_copy(update={
        "current_streak": 1,
        "longest_streak": max(record.longest_streak, 1),
        "last_completed_date": new_last,
        "timezone": tz_name,
        "applied_session_ids": applied,
    }), StreakOutcome.RESET


async def reconcile(
    user_id: str,
    completion_date: date,
    tz_name: str,
    session_id: Optional[str] = None,
) -> StreakRecord:
    """Apply one completion to the user's streak atomically. Returns the stored record."""
    settings = get_settings()
    store = get_streak_store()
    attempts = settings.STREAK_RECONCILE_MAX_ATTEMPTS

    async with streak_lock(user_id):
        for attempt in range(1, attempts + 1):
            current = await store.get(user_id)
            updated, outcome = apply_completion(current, user_id, completion_date, tz_name, session_id)

            if outcome == StreakOutcome.DUPLICATE:
                logger.info(
                    "Streak replay ignored: user=%s session=%s", user_id, session_id,
                )
                return current

            try:
                stored = await store.upsert(
                    updated, expected_version=current.version if current else None,
                )
            except ConcurrentModificationError:
                logger.warning(
                    "Streak write conflict: user=%s attempt=%d/%d", user_id, attempt, attempts,
                )
                continue

            logger.info(
                "Streak %s: user=%s session=%s current=%d longest=%d date=%s",
                outcome.value, user_id, session_id,
                stored.current_streak, stored.longest_streak, completion_date.isoformat(),
            )
            await log_audit_event(
                AuditEventType.STREAK_UPDATED,
                session_id=session_id,
                user_id=user_id,
                details={
                    "outcome": outcome.value,
                    "completion_date": completion_date.isoformat(),
                    "current_streak": stored.current_streak,
                    "longest_streak": stored.longest_streak,
                },
            )
            return stored

    raise ConcurrentModificationError(
        f"Streak reconcile gave up after {attempts} conflicting writes: user={user_id}"
    )


async def get_streak_summary(user_id: str) -> StreakSummary:
    """Streak read model: record fields plus session totals and day status."""
    settings = get_settings()
    record = await get_streak_store().get(user_id)
    total = await get_session_store().count_completed(user_id)

    tz_name = record.timezone if record else settings.DEFAULT_TIMEZONE
    today = calendar_date(get_clock().now(), tz_name)
    last = record.last_completed_date if record else None

    return StreakSummary(
        user_id=user_id,
        current_streak=record.current_streak if record else 0,
        longest_streak=record.longest_streak if record else 0,
        last_completed_date=last,
        timezone=tz_name,
        total_sessions=total,
        completed_today=last == today,
        at_risk=last == today - timedelta(days=1),
    )
