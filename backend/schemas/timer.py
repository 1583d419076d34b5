"""Timer session schemas: the durable record of one focus session."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator
import uuid


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPICIOUS = "SUSPICIOUS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


OPEN_STATUSES = frozenset({SessionStatus.ACTIVE, SessionStatus.SUSPICIOUS})


class TimerSession(BaseModel):
    """One timed focus session.

    start_time and duration_seconds are fixed at creation. Everything else is
    written only by the heartbeat validator and the completion transition.
    """
    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    start_time: datetime
    duration_seconds: int = Field(gt=0)
    timezone: str = "UTC"
    status: SessionStatus = SessionStatus.ACTIVE
    last_heartbeat_at: Optional[datetime] = None
    heartbeat_count: int = 0
    drift_amount_ms: int = 0
    clean_heartbeats: int = 0
    end_time: Optional[datetime] = None
    elapsed_ms: Optional[int] = None
    streak_applied: bool = False
    version: int = 0

    @field_validator("start_time", "last_heartbeat_at", "end_time")
    @classmethod
    def _ensure_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def duration_ms(self) -> int:
        return self.duration_seconds * 1000

    def to_doc(self) -> dict:
        """Convert to MongoDB document."""
        doc = self.model_dump()
        doc["status"] = self.status.value
        doc["open"] = self.is_open
        return doc

    @classmethod
    def from_doc(cls, doc: dict) -> "TimerSession":
        doc = dict(doc)
        doc.pop("_id", None)
        doc.pop("open", None)
        return cls(**doc)

