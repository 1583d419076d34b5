"""Heartbeat Validator: reconciles client-claimed elapsed time with the server clock.

Client agent sends a heartbeat every HEARTBEAT_INTERVAL_S.
server_elapsed = clock.now() - session.start_time is the only basis for
completion; the client's value only feeds drift detection.

drift > DRIFT_THRESHOLD_MS  → session SUSPICIOUS, DriftWarning, never completes on that call
drift within tolerance      → heartbeat bookkeeping; a SUSPICIOUS session returns to
                              ACTIVE after SUSPICIOUS_CLEAR_HEARTBEATS clean heartbeats
ACTIVE and elapsed ≥ target → COMPLETED, then streak reconciliation (exactly once)
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Union

from config.settings import Settings, get_settings
from core.clock import calendar_date, elapsed_ms, get_clock, to_epoch_ms
from core.exceptions import (
    ConcurrentModificationError,
    FocusTimerError,
    SessionAlreadyCompletedError,
    StoreUnavailableError,
)
from observability.audit_log import log_audit_event
from schemas.audit import AuditEventType
from schemas.heartbeat import ActiveResult, CompletedResult, DriftWarningResult
from schemas.timer import SessionStatus, TimerSession
from store.orchestrator import get_session_store
from streaks.reconciler import reconcile
from timer.locks import user_lock
from timer.sessions import check_transition, load_session

logger = logging.getLogger(__name__)

ValidatorResult = Union[ActiveResult, DriftWarningResult, CompletedResult]


@dataclass
class HeartbeatDecision:
    """Outcome of evaluating one heartbeat against a session snapshot."""
    to_state: SessionStatus
    result: ValidatorResult
    server_elapsed_ms: int
    drift_ms: int
    patch: Dict[str, Any] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.to_state == SessionStatus.COMPLETED

    @property
    def drift_detected(self) -> bool:
        return isinstance(self.result, DriftWarningResult)


def evaluate_heartbeat(
    session: TimerSession,
    now: datetime,
    client_elapsed_ms: int,
    settings: Optional[Settings] = None,
) -> HeartbeatDecision:
    """Pure decision for one heartbeat. Does not touch the store."""
    settings = settings or get_settings()
    server_elapsed = elapsed_ms(session.start_time, now)
    drift = abs(server_elapsed - client_elapsed_ms)
    server_time = to_epoch_ms(now)

    if drift > settings.DRIFT_THRESHOLD_MS:
        return HeartbeatDecision(
            to_state=SessionStatus.SUSPICIOUS,
            result=DriftWarningResult(server_time=server_time, drift_ms=drift),
            server_elapsed_ms=server_elapsed,
            drift_ms=drift,
            patch={"drift_amount_ms": drift, "clean_heartbeats": 0},
        )

    patch: Dict[str, Any] = {
        "heartbeat_count": session.heartbeat_count + 1,
        "last_heartbeat_at": now,
    }
    to_state = session.status
    if to_state == SessionStatus.SUSPICIOUS:
        clean = session.clean_heartbeats + 1
        if clean >= settings.SUSPICIOUS_CLEAR_HEARTBEATS:
            to_state = SessionStatus.ACTIVE
            clean = 0
        patch["clean_heartbeats"] = clean

    if to_state == SessionStatus.ACTIVE and server_elapsed >= session.duration_ms:
        patch.update({"end_time": now, "elapsed_ms": server_elapsed})
        return HeartbeatDecision(
            to_state=SessionStatus.COMPLETED,
            result=CompletedResult(session_id=session.session_id, elapsed_ms=server_elapsed),
            server_elapsed_ms=server_elapsed,
            drift_ms=drift,
            patch=patch,
        )

    return HeartbeatDecision(
        to_state=to_state,
        result=ActiveResult(
            server_time=server_time,
            elapsed_ms=max(0, server_elapsed),
            remaining_ms=max(0, session.duration_ms - server_elapsed),
            suspicious=to_state == SessionStatus.SUSPICIOUS,
        ),
        server_elapsed_ms=server_elapsed,
        drift_ms=drift,
        patch=patch,
    )


async def apply_streak_for(session: TimerSession) -> bool:
    """Run streak reconciliation for a COMPLETED session and mark it applied.

    Failures never roll back the completion; the session keeps
    streak_applied=False and the maintenance loop retries it later.
    """
    try:
        completion_date = calendar_date(session.end_time, session.timezone)
        await reconcile(session.user_id, completion_date, session.timezone, session.session_id)
    except FocusTimerError as e:
        logger.error(
            "Streak reconcile failed: session=%s user=%s code=%s error=%s",
            session.session_id, session.user_id, e.code, e.message,
        )
        await log_audit_event(
            AuditEventType.STREAK_RECONCILE_FAILED,
            session_id=session.session_id,
            user_id=session.user_id,
            details={"code": e.code},
        )
        return False

    try:
        await get_session_store().update(
            session.session_id, {"streak_applied": True}, expected_version=session.version,
        )
    except FocusTimerError as e:
        # Streak already holds this session id, so a later retry is a no-op
        logger.warning(
            "Streak applied but flag not saved: session=%s code=%s", session.session_id, e.code,
        )
    return True


async def _process(
    user_id: str,
    session_id: Optional[str],
    client_elapsed_ms: int,
    replay_completed: bool,
) -> ValidatorResult:
    settings = get_settings()
    store = get_session_store()

    async with user_lock(user_id):
        decision: Optional[HeartbeatDecision] = None
        for attempt in range(1, settings.SESSION_UPDATE_MAX_ATTEMPTS + 1):
            session = await load_session(user_id, session_id)
            if session.status == SessionStatus.COMPLETED and replay_completed:
                logger.info("Completion replay: session=%s elapsed=%s", session.session_id, session.elapsed_ms)
                return CompletedResult(session_id=session.session_id, elapsed_ms=session.elapsed_ms or 0)

            decision = evaluate_heartbeat(session, get_clock().now(), client_elapsed_ms, settings)
            check_transition(session, decision.to_state)
            try:
                updated = await store.update(
                    session.session_id,
                    {**decision.patch, "status": decision.to_state},
                    expected_version=session.version,
                )
                break
            except ConcurrentModificationError:
                logger.warning(
                    "Heartbeat write conflict: session=%s attempt=%d", session.session_id, attempt,
                )
        else:
            raise StoreUnavailableError(
                f"Session busy after {settings.SESSION_UPDATE_MAX_ATTEMPTS} attempts; retry"
            )

        if session.status != decision.to_state:
            logger.info(
                "Session transition: session=%s %s -> %s drift=%dms elapsed=%dms",
                session.session_id, session.status.value, decision.to_state.value,
                decision.drift_ms, decision.server_elapsed_ms,
            )

        if decision.drift_detected:
            logger.warning(
                "Drift detected: session=%s user=%s drift=%dms server_elapsed=%dms client_elapsed=%dms",
                session.session_id, user_id, decision.drift_ms,
                decision.server_elapsed_ms, client_elapsed_ms,
            )
            await log_audit_event(
                AuditEventType.DRIFT_DETECTED,
                session_id=session.session_id,
                user_id=user_id,
                details={
                    "drift_ms": decision.drift_ms,
                    "server_elapsed_ms": decision.server_elapsed_ms,
                    "client_elapsed_ms": client_elapsed_ms,
                },
            )
        elif decision.completed:
            await log_audit_event(
                AuditEventType.SESSION_COMPLETED,
                session_id=session.session_id,
                user_id=user_id,
                details={
                    "elapsed_ms": decision.server_elapsed_ms,
                    "heartbeat_count": updated.heartbeat_count,
                    "via": "completion_sync" if replay_completed else "heartbeat",
                },
            )
            await apply_streak_for(updated)
        else:
            logger.debug(
                "Heartbeat ok: session=%s count=%d remaining=%dms",
                session.session_id, updated.heartbeat_count, decision.result.remaining_ms,
            )

    return decision.result


async def validate_heartbeat(
    user_id: str,
    session_id: Optional[str],
    client_elapsed_ms: int,
    client_reported_at_ms: Optional[int] = None,
) -> ValidatorResult:
    """Validate one heartbeat for a pre-verified user.

    Raises NoActiveSessionError, AuthError, SessionAlreadyCompletedError
    (with the recorded elapsed time) or StoreUnavailableError.
    """
    logger.debug(
        "Heartbeat: session=%s user=%s client_elapsed=%d client_at=%s",
        session_id, user_id, client_elapsed_ms, client_reported_at_ms,
    )
    return await _process(user_id, session_id, client_elapsed_ms, replay_completed=False)


async def sync_completion(
    user_id: str,
    session_id: str,
    client_elapsed_ms: int,
    client_reported_at_ms: Optional[int] = None,
) -> ValidatorResult:
    """Completion-sync for the offline agent. Idempotent: safe to retry with the same payload.

    Runs the same validation path as a heartbeat; an already-COMPLETED
    session returns its stored Completed result instead of an error.
    """
    try:
        result = await _process(user_id, session_id, client_elapsed_ms, replay_completed=True)
    except SessionAlreadyCompletedError as e:
        result = CompletedResult(session_id=e.session_id, elapsed_ms=e.elapsed_ms or 0)

    if isinstance(result, CompletedResult):
        await log_audit_event(
            AuditEventType.COMPLETION_SYNCED,
            session_id=session_id,
            user_id=user_id,
            details={"elapsed_ms": result.elapsed_ms, "client_reported_at_ms": client_reported_at_ms},
        )
    return result
