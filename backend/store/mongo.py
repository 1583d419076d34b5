"""MongoDB stores: durable timer sessions, streaks and audit events via motor.

Conditional writes filter on ``version`` (optimistic lock); a zero match
count means someone else got there first.
"""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from core.database import get_db
from core.exceptions import (
    ActiveSessionExistsError,
    ConcurrentModificationError,
    StoreUnavailableError,
)
from schemas.audit import AuditEvent
from schemas.streak import StreakRecord
from schemas.timer import OPEN_STATUSES, SessionStatus, TimerSession
from store.interface import AuditStore, SessionStore, StreakStore

logger = logging.getLogger(__name__)


def _to_mongo_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: (v.value if isinstance(v, Enum) else v) for k, v in patch.items()}
    if "status" in patch:
        out["open"] = SessionStatus(patch["status"]) in OPEN_STATUSES
    return out


class MongoSessionStore(SessionStore):

    async def get(self, session_id: str) -> Optional[TimerSession]:
        try:
            doc = await get_db().timer_sessions.find_one({"session_id": session_id}, {"_id": 0})
        except PyMongoError as e:
            raise StoreUnavailableError(f"Session read failed: {e}")
        return TimerSession.from_doc(doc) if doc else None

    async def get_open(self, user_id: str) -> Optional[TimerSession]:
        try:
            doc = await get_db().timer_sessions.find_one({"user_id": user_id, "open": True}, {"_id": 0})
        except PyMongoError as e:
            raise StoreUnavailableError(f"Session read failed: {e}")
        return TimerSession.from_doc(doc) if doc else None

    async def create(self, session: TimerSession) -> TimerSession:
        try:
            await get_db().timer_sessions.insert_one(session.to_doc())
        except DuplicateKeyError:
            raise ActiveSessionExistsError(f"User {session.user_id} already has an open session")
        except PyMongoError as e:
            raise StoreUnavailableError(f"Session insert failed: {e}")
        logger.info("Session stored: session=%s user=%s", session.session_id, session.user_id)
        return session

    async def update(self, session_id: str, patch: Dict[str, Any], expected_version: int) -> TimerSession:
        try:
            doc = await get_db().timer_sessions.find_one_and_update(
                {"session_id": session_id, "version": expected_version},  # optimistic lock
                {"$set": _to_mongo_patch(patch), "$inc": {"version": 1}},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise ActiveSessionExistsError("Another open session exists for this user")
        except PyMongoError as e:
            raise StoreUnavailableError(f"Session update failed: {e}")
        if doc is None:
            raise ConcurrentModificationError(
                f"Concurrent modification on session {session_id} (expected v{expected_version})"
            )
        return TimerSession.from_doc(doc)

    async def list_unapplied_completions(self, limit: int = 100) -> List[TimerSession]:
        try:
            cursor = get_db().timer_sessions.find(
                {"status": SessionStatus.COMPLETED.value, "streak_applied": False},
                {"_id": 0},
            ).sort("end_time", 1).limit(limit)
            return [TimerSession.from_doc(doc) async for doc in cursor]
        except PyMongoError as e:
            raise StoreUnavailableError(f"Session scan failed: {e}")

    async def count_completed(self, user_id: str) -> int:
        try:
            return await get_db().timer_sessions.count_documents(
                {"user_id": user_id, "status": SessionStatus.COMPLETED.value}
            )
        except PyMongoError as e:
            raise StoreUnavailableError(f"Session count failed: {e}")

    async def is_healthy(self) -> bool:
        try:
            await get_db().command("ping")
            return True
        except PyMongoError as e:
            logger.warning("MongoDB ping failed: %s", str(e)[:120])
            return False


class MongoStreakStore(StreakStore):

    async def get(self, user_id: str) -> Optional[StreakRecord]:
        try:
            doc = await get_db().streaks.find_one({"user_id": user_id}, {"_id": 0})
        except PyMongoError as e:
            raise StoreUnavailableError(f"Streak read failed: {e}")
        return StreakRecord.from_doc(doc) if doc else None

    async def upsert(self, record: StreakRecord, expected_version: Optional[int]) -> StreakRecord:
        db = get_db()
        try:
            if expected_version is None:
                stored = record.model_copy(update={"version": 1})
                await db.streaks.insert_one(stored.to_doc())
                return stored

            stored = record.model_copy(update={"version": expected_version + 1})
            result = await db.streaks.replace_one(
                {"user_id": record.user_id, "version": expected_version},
                stored.to_doc(),
            )
        except DuplicateKeyError:
            raise ConcurrentModificationError(f"Streak already exists for user={record.user_id}")
        except PyMongoError as e:
            raise StoreUnavailableError(f"Streak write failed: {e}")

        if result.matched_count == 0:
            raise ConcurrentModificationError(
                f"Concurrent modification on streak user={record.user_id} (expected v{expected_version})"
            )
        return stored


class MongoAuditStore(AuditStore):

    async def insert_event(self, event: AuditEvent) -> None:
        try:
            await get_db().audit_events.insert_one(event.to_doc())
        except PyMongoError as e:
            raise StoreUnavailableError(f"Audit write failed: {e}")
