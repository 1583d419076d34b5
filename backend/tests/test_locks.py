"""Per-user lock registries."""
import asyncio

import pytest

from timer import locks
from timer.locks import active_lock_count, streak_lock, user_lock


@pytest.mark.asyncio
async def test_streak_lock_never_shares_a_user_lock():
    # A user id shaped like a streak key must not block that user's streak writes
    async with user_lock("streak:u1"):
        await asyncio.wait_for(_enter(streak_lock("u1")), timeout=1)
        assert locks._session_locks.is_held("streak:u1")
        assert not locks._streak_locks.is_held("u1")


@pytest.mark.asyncio
async def test_streak_lock_inside_user_lock():
    async with user_lock("u1"):
        async with streak_lock("u1"):
            assert locks._session_locks.is_held("u1")
            assert locks._streak_locks.is_held("u1")


@pytest.mark.asyncio
async def test_same_user_runs_one_at_a_time():
    order = []

    async def worker(tag):
        async with user_lock("u1"):
            order.append(f"{tag}-in")
            await asyncio.sleep(0.01)
            order.append(f"{tag}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert order == ["a-in", "a-out", "b-in", "b-out"]


@pytest.mark.asyncio
async def test_registry_drops_idle_locks():
    async with user_lock("u1"), streak_lock("u1"):
        assert active_lock_count() == 2
    assert active_lock_count() == 0


async def _enter(cm):
    async with cm:
        return True
