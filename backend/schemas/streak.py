"""Streak schemas: day-level habit record, one per user."""
from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field

# Replays of any of these session ids are no-ops
MAX_APPLIED_SESSION_IDS = 50


class StreakRecord(BaseModel):
    user_id: str
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_completed_date: Optional[date] = None
    timezone: str = "UTC"
    applied_session_ids: List[str] = Field(default_factory=list)
    version: int = 0

    def to_doc(self) -> dict:
        """Convert to MongoDB document. BSON has no date type, so the day is stored as ISO text."""
        doc = self.model_dump()
        if self.last_completed_date is not None:
            doc["last_completed_date"] = self.last_completed_date.isoformat()
        return doc

    @classmethod
    def from_doc(cls, doc: dict) -> "StreakRecord":
        doc = dict(doc)
        doc.pop("_id", None)
        return cls(**doc)

