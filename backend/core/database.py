"""MongoDB async connection manager.

Provides singleton client and database references.
Creates indexes on startup for timer sessions, streaks and audit collections.
"""
import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from config.settings import get_settings

logger = logging.getLogger(__name__)

_client: AsyncIOMotorClient | None = None
_db: AsyncIOMotorDatabase | None = None


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        settings = get_settings()
        # tz_aware so start_time/end_time come back comparable to Clock.now()
        _client = AsyncIOMotorClient(settings.MONGO_URL, tz_aware=True)
    return _client


def get_db() -> AsyncIOMotorDatabase:
    global _db
    if _db is None:
        settings = get_settings()
        _db = get_client()[settings.DB_NAME]
    return _db


async def init_indexes() -> None:
    """Create required indexes. Idempotent."""
    db = get_db()

    # Timer sessions: unique session_id, at most one open session per user
    await db.timer_sessions.create_index("session_id", unique=True)
    await db.timer_sessions.create_index(
        "user_id",
        unique=True,
        partialFilterExpression={"open": True},
        name="one_open_session_per_user",
    )
    await db.timer_sessions.create_index([("user_id", 1), ("start_time", -1)])
    await db.timer_sessions.create_index([("status", 1), ("streak_applied", 1)])

    # Streaks: one record per user
    await db.streaks.create_index("user_id", unique=True)

    # Audit events: time-series queries
    await db.audit_events.create_index([("session_id", 1), ("timestamp", -1)])
    await db.audit_events.create_index([("user_id", 1), ("timestamp", -1)])
    await db.audit_events.create_index("event_type")

    logger.info("MongoDB indexes initialized")


async def close_db() -> None:
    global _client, _db
    if _client:
        _client.close()
        _client = None
        _db = None
        logger.info("MongoDB connection closed")
