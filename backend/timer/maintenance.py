"""Maintenance loop: re-applies streak updates that failed after completion.

Runs as a background task inside the backend process. A completed session
whose streak update did not land keeps streak_applied=False until this loop
gets it through.
"""
import asyncio
import logging

from config.settings import get_settings
from core.exceptions import FocusTimerError
from store.orchestrator import get_session_store
from timer.locks import user_lock
from timer.validator import apply_streak_for

logger = logging.getLogger(__name__)


async def reapply_pending_streaks(limit: int = 100) -> int:
    """One sweep. Returns how many sessions had their streak applied."""
    store = get_session_store()
    pending = await store.list_unapplied_completions(limit=limit)
    applied = 0
    for stale in pending:
        async with user_lock(stale.user_id):
            session = await store.get(stale.session_id)
            if session is None or session.streak_applied:
                continue
            if await apply_streak_for(session):
                applied += 1
    if pending:
        logger.info("[MAINTENANCE] Streak sweep: pending=%d applied=%d", len(pending), applied)
    return applied


async def maintenance_loop():
    """Main maintenance loop: runs every MAINTENANCE_INTERVAL_S with backoff on repeated failure."""
    interval = get_settings().MAINTENANCE_INTERVAL_S
    logger.info("[MAINTENANCE] Streak maintenance started interval=%ds", interval)
    consecutive_failures = 0
    while True:
        try:
            await reapply_pending_streaks()
            consecutive_failures = 0
        except FocusTimerError as e:
            consecutive_failures += 1
            logger.error(
                "[MAINTENANCE] sweep error (%d consecutive): %s", consecutive_failures, e.message[:80],
            )
            if consecutive_failures >= 5:
                logger.critical("[MAINTENANCE] 5 consecutive failures: backing off to 5min interval")
                await asyncio.sleep(300)
                consecutive_failures = 0
                continue
        await asyncio.sleep(interval)
