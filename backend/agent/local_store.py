"""Local session mirror: the agent's only durable state.

One JSON record per device describing the session being counted down and
any completion still waiting for server acceptance. Writes go through a
temp file and os.replace so a killed process leaves either the old or the
new record, never a torn one.
"""
import json
import logging
import os
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class MirrorRecord(BaseModel):
    session_id: str
    user_id: str
    start_time_ms: int  # server-assigned start, epoch ms
    duration_seconds: int = Field(gt=0)
    pending_completion: bool = False
    provisional_completed: bool = False
    sync_attempts: int = 0

    @property
    def duration_ms(self) -> int:
        return self.duration_seconds * 1000

    def local_elapsed_ms(self, now_ms: int) -> int:
        return now_ms - self.start_time_ms


class LocalSessionMirror:
    """File-backed mirror of the active session."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[MirrorRecord]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return MirrorRecord.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error("Mirror unreadable, discarding: path=%s error=%s", self.path, e)
            self.clear()
            return None

    def save(self, record: MirrorRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(record.model_dump(), indent=2), encoding="utf-8")
        os.replace(tmp, self.path)
        logger.debug(
            "Mirror saved: session=%s pending=%s attempts=%d",
            record.session_id, record.pending_completion, record.sync_attempts,
        )

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        logger.debug("Mirror cleared: path=%s", self.path)
