"""Heartbeat wire schemas: canonical contract between the client agent and BE.

Version: v1
JSON on the wire is camelCase; Python attributes stay snake_case.
Every heartbeat outcome is one of the tagged results below, discriminated
by ``status``.
"""
from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =====================================================
#  Client → Server Payloads
# =====================================================

class HeartbeatRequest(CamelModel):
    """Heartbeat and completion-sync payload.

    client_elapsed_ms is recomputed from the client clock on every send and is
    only ever used for drift detection.
    """
    user_id: str
    session_id: Optional[str] = None
    client_elapsed_ms: int = Field(ge=0)
    client_reported_at_ms: Optional[int] = None


class CompletionSyncRequest(HeartbeatRequest):
    """Queued offline completion; always targets a specific session."""
    session_id: str


class StartSessionRequest(CamelModel):
    user_id: str
    duration_seconds: int = Field(gt=0, le=24 * 60 * 60)
    timezone: Optional[str] = None
    replace: bool = False


class StopSessionRequest(CamelModel):
    user_id: str
    session_id: str


class PairRequest(CamelModel):
    user_id: str
    device_id: str


# =====================================================
#  Server → Client Results
# =====================================================

class ActiveResult(CamelModel):
    status: Literal["active"] = "active"
    server_time: int  # epoch ms
    elapsed_ms: int
    remaining_ms: int
    suspicious: bool = False


class DriftWarningResult(CamelModel):
    status: Literal["driftWarning"] = "driftWarning"
    code: Literal["DRIFT_DETECTED"] = "DRIFT_DETECTED"
    server_time: int  # epoch ms
    drift_ms: int


class CompletedResult(CamelModel):
    status: Literal["completed"] = "completed"
    session_id: str
    elapsed_ms: int


class ErrorResult(CamelModel):
    status: Literal["error"] = "error"
    code: str
    message: str
    elapsed_ms: Optional[int] = None


HeartbeatResult = Annotated[
    Union[ActiveResult, DriftWarningResult, CompletedResult, ErrorResult],
    Field(discriminator="status"),
]

heartbeat_result_adapter: TypeAdapter = TypeAdapter(HeartbeatResult)


def parse_heartbeat_result(data: dict):
    """Parse a wire payload into the matching tagged result model."""
    return heartbeat_result_adapter.validate_python(data)


# =====================================================
#  Read Views
# =====================================================

class SessionView(CamelModel):
    session_id: str
    user_id: str
    status: str
    start_time: datetime
    start_time_ms: int
    duration_seconds: int
    timezone: str
    heartbeat_count: int
    drift_amount_ms: int
    end_time: Optional[datetime] = None
    elapsed_ms: Optional[int] = None
    server_time: int


class StreakSummary(CamelModel):
    user_id: str
    current_streak: int
    longest_streak: int
    last_completed_date: Optional[date] = None
    timezone: str
    total_sessions: int
    completed_today: bool
    at_risk: bool


class TimerConfig(CamelModel):
    heartbeat_interval_ms: int
    heartbeat_send_timeout_ms: int
    drift_threshold_ms: int
    suspicious_clear_heartbeats: int


class PairResponse(CamelModel):
    token: str
    user_id: str
    device_id: str
    env: str
