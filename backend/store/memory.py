"""In-memory stores: deterministic, process-local persistence for tests and dev.

Same semantics as the MongoDB stores: version-checked updates, one open
session per user, copies in and out so callers never share mutable rows.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from core.exceptions import ActiveSessionExistsError, ConcurrentModificationError
from schemas.audit import AuditEvent
from schemas.streak import StreakRecord
from schemas.timer import SessionStatus, TimerSession
from store.interface import AuditStore, SessionStore, StreakStore

logger = logging.getLogger(__name__)


class MemorySessionStore(SessionStore):

    def __init__(self):
        self._sessions: Dict[str, TimerSession] = {}
        self._lock = asyncio.Lock()

    async def get(self, session_id: str) -> Optional[TimerSession]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def get_open(self, user_id: str) -> Optional[TimerSession]:
        for session in self._sessions.values():
            if session.user_id == user_id and session.is_open:
                return session.model_copy(deep=True)
        return None

    async def create(self, session: TimerSession) -> TimerSession:
        async with self._lock:
            if session.is_open and any(
                s.user_id == session.user_id and s.is_open for s in self._sessions.values()
            ):
                raise ActiveSessionExistsError(f"User {session.user_id} already has an open session")
            self._sessions[session.session_id] = session.model_copy(deep=True)
        logger.debug("[MemoryStore] Session created: session=%s", session.session_id)
        return session.model_copy(deep=True)

    async def update(self, session_id: str, patch: Dict[str, Any], expected_version: int) -> TimerSession:
        async with self._lock:
            current = self._sessions.get(session_id)
            if current is None or current.version != expected_version:
                raise ConcurrentModificationError(
                    f"Concurrent modification on session {session_id} (expected v{expected_version})"
                )
            updated = current.model_copy(update={**patch, "version": current.version + 1}, deep=True)
            self._sessions[session_id] = updated
        return updated.model_copy(deep=True)

    async def list_unapplied_completions(self, limit: int = 100) -> List[TimerSession]:
        pending = [
            s.model_copy(deep=True) for s in self._sessions.values()
            if s.status == SessionStatus.COMPLETED and not s.streak_applied
        ]
        pending.sort(key=lambda s: s.end_time or s.start_time)
        return pending[:limit]

    async def count_completed(self, user_id: str) -> int:
        return sum(
            1 for s in self._sessions.values()
            if s.user_id == user_id and s.status == SessionStatus.COMPLETED
        )

    async def is_healthy(self) -> bool:
        return True


class MemoryStreakStore(StreakStore):

    def __init__(self):
        self._records: Dict[str, StreakRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, user_id: str) -> Optional[StreakRecord]:
        record = self._records.get(user_id)
        return record.model_copy(deep=True) if record else None

    async def upsert(self, record: StreakRecord, expected_version: Optional[int]) -> StreakRecord:
        async with self._lock:
            current = self._records.get(record.user_id)
            if expected_version is None:
                if current is not None:
                    raise ConcurrentModificationError(f"Streak already exists for user={record.user_id}")
                new_version = 1
            else:
                if current is None or current.version != expected_version:
                    raise ConcurrentModificationError(
                        f"Concurrent modification on streak user={record.user_id} (expected v{expected_version})"
                    )
                new_version = current.version + 1
            stored = record.model_copy(update={"version": new_version}, deep=True)
            self._records[record.user_id] = stored
        return stored.model_copy(deep=True)


class MemoryAuditStore(AuditStore):

    def __init__(self):
        self.events: List[AuditEvent] = []

    async def insert_event(self, event: AuditEvent) -> None:
        self.events.append(event)
