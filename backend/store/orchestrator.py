"""Store orchestrator: selects the configured persistence backend.

MOCK_STORE=true → in-memory stores (dev/test), otherwise MongoDB.
"""
import logging
from typing import Optional

from config.feature_flags import is_mock_store
from store.interface import AuditStore, SessionStore, StreakStore

logger = logging.getLogger(__name__)

_session_store: Optional[SessionStore] = None
_streak_store: Optional[StreakStore] = None
_audit_store: Optional[AuditStore] = None


def _build_stores() -> None:
    global _session_store, _streak_store, _audit_store
    if is_mock_store():
        from store.memory import MemoryAuditStore, MemorySessionStore, MemoryStreakStore
        logger.info("[STORE:ORCHESTRATOR] Backend=memory (MOCK_STORE=true)")
        _session_store = MemorySessionStore()
        _streak_store = MemoryStreakStore()
        _audit_store = MemoryAuditStore()
    else:
        from store.mongo import MongoAuditStore, MongoSessionStore, MongoStreakStore
        logger.info("[STORE:ORCHESTRATOR] Backend=mongo (MOCK_STORE=false)")
        _session_store = MongoSessionStore()
        _streak_store = MongoStreakStore()
        _audit_store = MongoAuditStore()


def get_session_store() -> SessionStore:
    if _session_store is None:
        _build_stores()
    return _session_store


def get_streak_store() -> StreakStore:
    if _streak_store is None:
        _build_stores()
    return _streak_store


def get_audit_store() -> AuditStore:
    if _audit_store is None:
        _build_stores()
    return _audit_store


def set_stores(
    session_store: SessionStore,
    streak_store: StreakStore,
    audit_store: AuditStore,
) -> None:
    """Install explicit store instances (tests, embedded runs)."""
    global _session_store, _streak_store, _audit_store
    _session_store = session_store
    _streak_store = streak_store
    _audit_store = audit_store


def reset_stores() -> None:
    global _session_store, _streak_store, _audit_store
    _session_store = None
    _streak_store = None
    _audit_store = None
