"""Timer session lifecycle: start, supersede, stop and the terminal-state rules."""
import pytest

from core.exceptions import (
    ActiveSessionExistsError,
    AuthError,
    InvalidTimezoneError,
    NoActiveSessionError,
    SessionAlreadyCompletedError,
)
from schemas.streak import StreakRecord
from schemas.timer import SessionStatus
from timer.sessions import check_transition, load_session, session_view, start_session, stop_session
from timer.validator import sync_completion, validate_heartbeat


@pytest.mark.asyncio
async def test_start_assigns_server_time(clock, stores):
    session = await start_session("u1", 1500)
    assert session.start_time == clock.now()
    assert session.status == SessionStatus.ACTIVE
    assert session.timezone == "UTC"
    assert [e.event_type.value for e in stores.audit.events] == ["session_started"]


@pytest.mark.asyncio
async def test_second_open_session_is_refused(clock, stores):
    await start_session("u1", 1500)
    with pytest.raises(ActiveSessionExistsError):
        await start_session("u1", 600)


@pytest.mark.asyncio
async def test_replace_cancels_previous_session(clock, stores):
    first = await start_session("u1", 1500)
    second = await start_session("u1", 600, replace=True)
    old = await stores.sessions.get(first.session_id)
    assert old.status == SessionStatus.CANCELLED
    current = await load_session("u1", None)
    assert current.session_id == second.session_id


@pytest.mark.asyncio
async def test_timezone_defaults_to_streak_record(clock, stores):
    await stores.streaks.upsert(
        StreakRecord(user_id="u1", timezone="Europe/Berlin"), expected_version=None,
    )
    session = await start_session("u1", 1500)
    assert session.timezone == "Europe/Berlin"


@pytest.mark.asyncio
async def test_unknown_timezone_is_rejected(clock, stores):
    with pytest.raises(InvalidTimezoneError):
        await start_session("u1", 1500, tz_name="Mars/Olympus_Mons")
    assert await stores.sessions.get_open("u1") is None


@pytest.mark.asyncio
async def test_stop_cancels_open_session(clock, stores):
    session = await start_session("u1", 1500)
    stopped = await stop_session("u1", session.session_id)
    assert stopped.status == SessionStatus.CANCELLED
    with pytest.raises(NoActiveSessionError):
        await validate_heartbeat("u1", session.session_id, 0)


@pytest.mark.asyncio
async def test_stop_never_uncompletes(clock, stores):
    session = await start_session("u1", 60)
    clock.advance(seconds=60)
    await validate_heartbeat("u1", session.session_id, 60_000)
    stopped = await stop_session("u1", session.session_id)
    assert stopped.status == SessionStatus.COMPLETED
    assert stopped.elapsed_ms == 60_000


@pytest.mark.asyncio
async def test_stop_requires_owner(clock, stores):
    session = await start_session("owner", 1500)
    with pytest.raises(AuthError):
        await stop_session("other", session.session_id)


@pytest.mark.asyncio
async def test_check_transition_errors(clock, stores):
    session = await start_session("u1", 60)
    clock.advance(seconds=60)
    await validate_heartbeat("u1", session.session_id, 60_000)
    completed = await stores.sessions.get(session.session_id)
    with pytest.raises(SessionAlreadyCompletedError):
        check_transition(completed, SessionStatus.ACTIVE)

    other = await start_session("u1", 60)
    cancelled = await stop_session("u1", other.session_id)
    with pytest.raises(NoActiveSessionError):
        check_transition(cancelled, SessionStatus.COMPLETED)


@pytest.mark.asyncio
async def test_session_view_carries_epoch_start(clock, stores):
    session = await start_session("u1", 1500)
    view = session_view(session)
    assert view.start_time_ms == int(clock.now().timestamp() * 1000)
    assert view.status == "ACTIVE"
    dumped = view.model_dump(by_alias=True)
    assert "startTimeMs" in dumped and "durationSeconds" in dumped


@pytest.mark.asyncio
async def test_replace_completes_session_that_already_ran_out(clock, stores):
    first = await start_session("u1", 60)
    clock.advance(seconds=75)
    await start_session("u1", 600, replace=True)

    old = await stores.sessions.get(first.session_id)
    assert old.status == SessionStatus.COMPLETED
    assert old.elapsed_ms == 75_000
    assert old.end_time == clock.now()
    assert old.streak_applied is True
    streak = await stores.streaks.get("u1")
    assert streak.current_streak == 1
    assert streak.applied_session_ids == [first.session_id]
    assert [e.event_type.value for e in stores.audit.events].count("session_completed") == 1

    # The late completion sync from the device replays the stored result
    result = await sync_completion("u1", first.session_id, 60_000)
    assert result.elapsed_ms == 75_000
    assert (await stores.streaks.get("u1")).version == streak.version


@pytest.mark.asyncio
async def test_replace_cancels_suspicious_session_past_duration(clock, stores):
    first = await start_session("u1", 60)
    await stores.sessions.update(first.session_id, {"status": SessionStatus.SUSPICIOUS}, expected_version=0)
    clock.advance(seconds=90)
    await start_session("u1", 600, replace=True)

    old = await stores.sessions.get(first.session_id)
    assert old.status == SessionStatus.CANCELLED
    assert await stores.streaks.get("u1") is None
