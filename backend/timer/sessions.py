"""Timer session lifecycle: durable server-side state machine.

States:
  ACTIVE ⇄ SUSPICIOUS → COMPLETED
         ↘            ↘ CANCELLED

Rules:
  - Persisted through the session store (not in-memory only)
  - At most one open (ACTIVE/SUSPICIOUS) session per user
  - COMPLETED and CANCELLED are terminal; stopping never un-completes
  - Every transition is a version-checked write and is logged
"""
import logging
from typing import Any, Dict, Optional

from config.settings import get_settings
from core.clock import elapsed_ms, get_clock, resolve_timezone, to_epoch_ms
from core.exceptions import (
    ActiveSessionExistsError,
    AuthError,
    NoActiveSessionError,
    SessionAlreadyCompletedError,
)
from observability.audit_log import log_audit_event
from schemas.audit import AuditEventType
from schemas.heartbeat import SessionView
from schemas.timer import SessionStatus, TimerSession
from store.orchestrator import get_session_store, get_streak_store
from timer.locks import user_lock

logger = logging.getLogger(__name__)


# Valid transitions
_VALID_TRANSITIONS = {
    SessionStatus.ACTIVE: {SessionStatus.ACTIVE, SessionStatus.SUSPICIOUS, SessionStatus.COMPLETED, SessionStatus.CANCELLED},
    SessionStatus.SUSPICIOUS: {SessionStatus.SUSPICIOUS, SessionStatus.ACTIVE, SessionStatus.COMPLETED, SessionStatus.CANCELLED},
    SessionStatus.COMPLETED: set(),  # terminal
    SessionStatus.CANCELLED: set(),  # terminal
}


def check_transition(session: TimerSession, to_state: SessionStatus) -> None:
    """Raise the client-facing error for a transition out of a terminal state."""
    if to_state in _VALID_TRANSITIONS[session.status]:
        return
    if session.status == SessionStatus.COMPLETED:
        raise SessionAlreadyCompletedError(session.session_id, session.elapsed_ms)
    raise NoActiveSessionError(f"Timer session is {session.status.value.lower()}: {session.session_id}")


async def transition(
    session: TimerSession,
    to_state: SessionStatus,
    patch: Optional[Dict[str, Any]] = None,
    reason: str = "",
) -> TimerSession:
    """Version-checked transition. Raises ConcurrentModificationError if the row moved."""
    check_transition(session, to_state)
    updated = await get_session_store().update(
        session.session_id,
        {**(patch or {}), "status": to_state},
        expected_version=session.version,
    )
    if to_state != session.status:
        logger.info(
            "Session transition: session=%s %s -> %s reason=%s",
            session.session_id, session.status.value, to_state.value, reason,
        )
    return updated


async def load_session(user_id: str, session_id: Optional[str]) -> TimerSession:
    """Fetch the target session for a pre-verified user.

    By id when given, otherwise the user's open session.
    """
    store = get_session_store()
    if session_id:
        session = await store.get(session_id)
        if session is None:
            raise NoActiveSessionError(f"Timer session not found: {session_id}")
        if session.user_id != user_id:
            logger.warning("Session owner mismatch: session=%s user=%s", session_id, user_id)
            raise AuthError("Session does not belong to caller")
        return session

    session = await store.get_open(user_id)
    if session is None:
        raise NoActiveSessionError(f"No active timer session for user {user_id}")
    return session


async def _resolve_session_timezone(user_id: str, tz_name: Optional[str]) -> str:
    if not tz_name:
        record = await get_streak_store().get(user_id)
        tz_name = record.timezone if record else get_settings().DEFAULT_TIMEZONE
    resolve_timezone(tz_name)
    return tz_name


async def _supersede(existing: TimerSession) -> TimerSession:
    """Close the open session a new start replaces. Caller holds the user lock.

    An ACTIVE session whose server elapsed already reached its duration is
    completed (with its streak), not cancelled.
    """
    # timer.validator imports this module
    from timer.validator import apply_streak_for

    now = get_clock().now()
    server_elapsed = elapsed_ms(existing.start_time, now)
    if existing.status == SessionStatus.ACTIVE and server_elapsed >= existing.duration_ms:
        completed = await transition(
            existing,
            SessionStatus.COMPLETED,
            {"end_time": now, "elapsed_ms": server_elapsed},
            reason="finished_before_new_start",
        )
        await log_audit_event(
            AuditEventType.SESSION_COMPLETED,
            session_id=existing.session_id,
            user_id=existing.user_id,
            details={
                "elapsed_ms": server_elapsed,
                "heartbeat_count": completed.heartbeat_count,
                "via": "new_start",
            },
        )
        await apply_streak_for(completed)
        return completed

    cancelled = await transition(existing, SessionStatus.CANCELLED, reason="superseded")
    await log_audit_event(
        AuditEventType.SESSION_CANCELLED,
        session_id=existing.session_id,
        user_id=existing.user_id,
        details={"reason": "superseded"},
    )
    return cancelled


async def start_session(
    user_id: str,
    duration_seconds: int,
    tz_name: Optional[str] = None,
    replace: bool = False,
) -> TimerSession:
    """Create a new ACTIVE session with a server-assigned start time.

    With replace=True an existing open session is closed first; otherwise
    a second open session is refused.
    """
    tz_name = await _resolve_session_timezone(user_id, tz_name)

    async with user_lock(user_id):
        existing = await get_session_store().get_open(user_id)
        if existing is not None:
            if not replace:
                raise ActiveSessionExistsError(
                    f"User {user_id} already has an open session: {existing.session_id}"
                )
            await _supersede(existing)

        session = TimerSession(
            user_id=user_id,
            start_time=get_clock().now(),
            duration_seconds=duration_seconds,
            timezone=tz_name,
        )
        session = await get_session_store().create(session)

    logger.info(
        "Session started: session=%s user=%s duration=%ds tz=%s",
        session.session_id, user_id, duration_seconds, tz_name,
    )
    await log_audit_event(
        AuditEventType.SESSION_STARTED,
        session_id=session.session_id,
        user_id=user_id,
        details={"duration_seconds": duration_seconds, "timezone": tz_name},
    )
    return session


async def stop_session(user_id: str, session_id: str) -> TimerSession:
    """User-initiated pause/reset. Terminal sessions are returned unchanged."""
    async with user_lock(user_id):
        session = await load_session(user_id, session_id)
        if not session.is_open:
            logger.info(
                "Stop ignored: session=%s already %s", session_id, session.status.value,
            )
            return session
        stopped = await transition(session, SessionStatus.CANCELLED, reason="user_stop")

    await log_audit_event(
        AuditEventType.SESSION_CANCELLED,
        session_id=session_id,
        user_id=user_id,
        details={"reason": "user_stop", "heartbeat_count": stopped.heartbeat_count},
    )
    return stopped


def session_view(session: TimerSession) -> SessionView:
    return SessionView(
        session_id=session.session_id,
        user_id=session.user_id,
        status=session.status.value,
        start_time=session.start_time,
        start_time_ms=to_epoch_ms(session.start_time),
        duration_seconds=session.duration_seconds,
        timezone=session.timezone,
        heartbeat_count=session.heartbeat_count,
        drift_amount_ms=session.drift_amount_ms,
        end_time=session.end_time,
        elapsed_ms=session.elapsed_ms,
        server_time=to_epoch_ms(get_clock().now()),
    )
