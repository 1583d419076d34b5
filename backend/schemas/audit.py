"""Audit event schemas."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field
import uuid


class AuditEventType(str, Enum):
    SESSION_STARTED = "session_started"
    SESSION_CANCELLED = "session_cancelled"
    DRIFT_DETECTED = "drift_detected"
    SESSION_COMPLETED = "session_completed"
    COMPLETION_SYNCED = "completion_synced"
    STREAK_UPDATED = "streak_updated"
    STREAK_RECONCILE_FAILED = "streak_reconcile_failed"
    AUTH_FAILURE = "auth_failure"


class AuditEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: AuditEventType
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = Field(default_factory=dict)
    env: str = "dev"

    def to_doc(self) -> dict:
        d = self.model_dump()
        d["event_type"] = d["event_type"].value if hasattr(d["event_type"], "value") else d["event_type"]
        return d
