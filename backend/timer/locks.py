"""Per-user serialization for heartbeat, completion and streak writes.

Within one process, calls for the same user run one at a time. Across
processes the store's version-checked writes provide the same guarantee.
Session writes and streak writes use separate registries, so a streak
update can run while the caller still holds the user's session lock.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class LockRegistry:
    """Keyed asyncio locks, dropped once nobody holds or waits on them."""

    def __init__(self, name: str):
        self.name = name
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                self._waiters.pop(key, None)
                self._locks.pop(key, None)

    def is_held(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


_session_locks = LockRegistry("session")
_streak_locks = LockRegistry("streak")


def user_lock(user_id: str):
    return _session_locks.hold(user_id)


def streak_lock(user_id: str):
    return _streak_locks.hold(user_id)


def active_lock_count() -> int:
    return len(_session_locks) + len(_streak_locks)
