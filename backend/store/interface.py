"""Store interfaces: persistence-agnostic contract for the timer core.

The validator and reconciler only ever talk to these. Every update is a
conditional write against the row's ``version``; a stale version raises
ConcurrentModificationError. I/O failures raise StoreUnavailableError.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from schemas.audit import AuditEvent
from schemas.streak import StreakRecord
from schemas.timer import TimerSession


class SessionStore(ABC):
    """Durable timer session records."""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[TimerSession]:
        ...

    @abstractmethod
    async def get_open(self, user_id: str) -> Optional[TimerSession]:
        """The user's ACTIVE or SUSPICIOUS session, if any."""
        ...

    @abstractmethod
    async def create(self, session: TimerSession) -> TimerSession:
        """Insert a new session. Raises ActiveSessionExistsError if the user already has an open one."""
        ...

    @abstractmethod
    async def update(self, session_id: str, patch: Dict[str, Any], expected_version: int) -> TimerSession:
        """Apply ``patch`` iff the stored version equals ``expected_version``. Returns the new row."""
        ...

    @abstractmethod
    async def list_unapplied_completions(self, limit: int = 100) -> List[TimerSession]:
        """COMPLETED sessions whose streak update has not been applied yet."""
        ...

    @abstractmethod
    async def count_completed(self, user_id: str) -> int:
        ...

    @abstractmethod
    async def is_healthy(self) -> bool:
        ...


class StreakStore(ABC):
    """One streak record per user."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[StreakRecord]:
        ...

    @abstractmethod
    async def upsert(self, record: StreakRecord, expected_version: Optional[int]) -> StreakRecord:
        """Create (expected_version=None) or conditionally replace the record.

        Raises ConcurrentModificationError when the record was created or
        changed by someone else in the meantime.
        """
        ...


class AuditStore(ABC):

    @abstractmethod
    async def insert_event(self, event: AuditEvent) -> None:
        ...
