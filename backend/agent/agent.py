"""Offline Persistence Agent: client-side countdown, heartbeat and completion sync.

One agent per device. All work for the tracked session runs in a single
asyncio.Task owned by the instance, so heartbeats and completion syncs are
strictly sequential: at most one request is in flight per session.

Lifecycle:
  start()   → server assigns start time → mirror saved → heartbeat loop
  heartbeat loop → local elapsed ≥ duration → completion queued in mirror
  sync loop → retry with exponential backoff + jitter until the server
              answers Completed, or a new start() supersedes it
  resume()  → after a restart, continue from the mirror
  stop()    → cancel immediately and clear the mirror

The completed state stays provisional until the server confirms it.
"""
import asyncio
import logging
import random
from enum import Enum
from typing import Optional

from agent.client import TimerApiClient
from agent.local_store import LocalSessionMirror, MirrorRecord
from config.settings import get_settings
from core.clock import Clock, SystemClock, to_epoch_ms
from core.exceptions import SyncRejectedError, TransientSyncError
from schemas.heartbeat import ActiveResult, CompletedResult, DriftWarningResult

logger = logging.getLogger(__name__)

_JITTER = 0.2


class AgentState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SYNC_PENDING = "sync_pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class OfflineAgent:
    def __init__(
        self,
        client: TimerApiClient,
        mirror: LocalSessionMirror,
        user_id: str,
        clock: Optional[Clock] = None,
        heartbeat_interval_s: Optional[float] = None,
        send_timeout_s: Optional[float] = None,
        backoff_base_s: Optional[float] = None,
        backoff_max_s: Optional[float] = None,
    ):
        settings = get_settings()
        self.client = client
        self.mirror = mirror
        self.user_id = user_id
        self._clock = clock or SystemClock()
        self.heartbeat_interval_s = heartbeat_interval_s or settings.HEARTBEAT_INTERVAL_S
        self.send_timeout_s = send_timeout_s or settings.HEARTBEAT_SEND_TIMEOUT_S
        self.backoff_base_s = backoff_base_s or settings.SYNC_BACKOFF_BASE_S
        self.backoff_max_s = backoff_max_s or settings.SYNC_BACKOFF_MAX_S

        self.record: Optional[MirrorRecord] = None
        self.state = AgentState.IDLE
        self.last_result = None
        self.completed_result: Optional[CompletedResult] = None
        self.rejection: Optional[SyncRejectedError] = None
        self._task: Optional[asyncio.Task] = None

    # ---- Public API ----

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def provisional_completed(self) -> bool:
        return self.record is not None and self.record.provisional_completed

    async def start(self, duration_seconds: int, tz_name: Optional[str] = None) -> MirrorRecord:
        """Start a new session. Supersedes any tracked session or queued completion.

        If the server cannot be reached the current work keeps running and the
        error propagates.
        """
        view = await self.client.start_session(self.user_id, duration_seconds, tz_name, replace=True)
        await self._cancel_task()
        record = MirrorRecord(
            session_id=view.session_id,
            user_id=self.user_id,
            start_time_ms=view.start_time_ms,
            duration_seconds=view.duration_seconds,
        )
        self.mirror.save(record)
        logger.info(
            "Agent started: session=%s user=%s duration=%ds",
            record.session_id, self.user_id, duration_seconds,
        )
        self._begin(record)
        return record

    async def resume(self) -> Optional[MirrorRecord]:
        """Pick up the mirrored session after a restart. Replaces any running work."""
        await self._cancel_task()
        record = self.mirror.load()
        if record is None:
            return None
        if record.user_id != self.user_id:
            logger.warning("Mirror belongs to another user: session=%s", record.session_id)
            return None
        logger.info(
            "Agent resumed: session=%s pending_completion=%s attempts=%d",
            record.session_id, record.pending_completion, record.sync_attempts,
        )
        self._begin(record)
        return record

    async def stop(self, notify_server: bool = True) -> None:
        """User stop. Cancels all work now and clears the mirror."""
        record = self.record or self.mirror.load()
        await self._cancel_task()
        if record is not None and notify_server and self.state != AgentState.CONFIRMED:
            try:
                await asyncio.wait_for(
                    self.client.stop_session(record.user_id, record.session_id),
                    timeout=self.send_timeout_s,
                )
            except (TransientSyncError, SyncRejectedError, asyncio.TimeoutError) as e:
                logger.warning("Stop not delivered: session=%s error=%s", record.session_id, e)
        self.mirror.clear()
        self.record = None
        self.state = AgentState.IDLE
        logger.info("Agent stopped: session=%s", record.session_id if record else None)

    async def suspend(self) -> None:
        """Cancel work but keep the mirror, as if the process were killed."""
        await self._cancel_task()

    async def wait(self) -> None:
        """Wait for the current session's work to finish (confirmed or rejected)."""
        if self._task is not None:
            await self._task

    # ---- Internals ----

    def _now_ms(self) -> int:
        return to_epoch_ms(self._clock.now())

    def _begin(self, record: MirrorRecord) -> None:
        self.record = record
        self.last_result = None
        self.completed_result = None
        self.rejection = None
        self.state = AgentState.SYNC_PENDING if record.pending_completion else AgentState.RUNNING
        self._task = asyncio.create_task(self._run(record), name=f"focus-agent:{record.session_id}")

    async def _cancel_task(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self, record: MirrorRecord) -> None:
        try:
            if not record.pending_completion:
                finished = await self._heartbeat_loop(record)
                if finished:
                    return
            await self._sync_loop(record)
        except asyncio.CancelledError:
            logger.debug("Agent task cancelled: session=%s", record.session_id)
            raise

    async def _send(self, send, record: MirrorRecord):
        """One bounded request. client_elapsed_ms is recomputed from the local clock every time."""
        now_ms = self._now_ms()
        try:
            return await asyncio.wait_for(
                send(record.user_id, record.session_id, record.local_elapsed_ms(now_ms), now_ms),
                timeout=self.send_timeout_s,
            )
        except asyncio.TimeoutError:
            raise TransientSyncError(f"send abandoned after {self.send_timeout_s}s")

    async def _heartbeat_loop(self, record: MirrorRecord) -> bool:
        """Returns True when the session is settled, False when local time ran out."""
        while True:
            if record.local_elapsed_ms(self._now_ms()) >= record.duration_ms:
                return False
            try:
                result = await self._send(self.client.heartbeat, record)
            except TransientSyncError as e:
                logger.info("Heartbeat offline: session=%s error=%s", record.session_id, e.message)
                result = None
            except SyncRejectedError as e:
                self._reject(record, e)
                return True

            self.last_result = result
            if isinstance(result, CompletedResult):
                self._confirm(record, result)
                return True
            if isinstance(result, DriftWarningResult):
                logger.warning("Server flagged drift: session=%s drift=%dms", record.session_id, result.drift_ms)

            if isinstance(result, ActiveResult):
                remaining_ms = result.remaining_ms
            else:
                remaining_ms = record.duration_ms - record.local_elapsed_ms(self._now_ms())
            await asyncio.sleep(min(self.heartbeat_interval_s, max(0, remaining_ms) / 1000))

    async def _sync_loop(self, record: MirrorRecord) -> None:
        if not record.pending_completion:
            record.pending_completion = True
            record.provisional_completed = True
            self.mirror.save(record)
            logger.info("Completion queued: session=%s", record.session_id)
        self.state = AgentState.SYNC_PENDING

        while True:
            try:
                result = await self._send(self.client.complete, record)
            except TransientSyncError as e:
                logger.info(
                    "Completion sync deferred: session=%s attempt=%d error=%s",
                    record.session_id, record.sync_attempts + 1, e.message,
                )
                result = None
            except SyncRejectedError as e:
                self._reject(record, e)
                return

            self.last_result = result
            if isinstance(result, CompletedResult):
                self._confirm(record, result)
                return

            record.sync_attempts += 1
            self.mirror.save(record)
            delay = self._backoff_delay(record.sync_attempts)
            if isinstance(result, ActiveResult):
                delay = max(delay, result.remaining_ms / 1000)
            await asyncio.sleep(delay)

    def _backoff_delay(self, attempt: int) -> float:
        delay = min(self.backoff_base_s * (2 ** (attempt - 1)), self.backoff_max_s)
        jitter = random.uniform(-_JITTER, _JITTER) * delay
        return max(0.0, delay + jitter)

    def _confirm(self, record: MirrorRecord, result: CompletedResult) -> None:
        record.provisional_completed = True
        record.pending_completion = False
        self.completed_result = result
        self.state = AgentState.CONFIRMED
        self.mirror.clear()
        logger.info(
            "Completion confirmed: session=%s elapsed=%dms attempts=%d",
            record.session_id, result.elapsed_ms, record.sync_attempts,
        )

    def _reject(self, record: MirrorRecord, error: SyncRejectedError) -> None:
        self.rejection = error
        self.state = AgentState.REJECTED
        self.mirror.clear()
        logger.error(
            "Session rejected by server: session=%s status=%d code=%s",
            record.session_id, error.status_code, error.code,
        )
