"""Focus Timer Backend: heartbeat validation and streak entry point.

Server-authoritative focus sessions: start, heartbeat, offline completion
sync, stop, and day-level streaks.
"""
from contextlib import asynccontextmanager
from pathlib import Path
import asyncio
import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

# Load env before anything else
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / ".env")

from config.settings import get_settings
from config.feature_flags import is_dev_pairing_enabled, is_mock_store
from config.validators import validate_startup_config
from core.logging_config import setup_logging
from core.database import init_indexes, close_db
from core.exceptions import AuthError, FocusTimerError, SessionAlreadyCompletedError
from auth.tokens import TokenClaims, claims_from_header, ensure_caller, generate_token
from observability.audit_log import log_audit_event
from schemas.audit import AuditEventType
from schemas.heartbeat import (
    CompletionSyncRequest,
    ErrorResult,
    HeartbeatRequest,
    HeartbeatResult,
    PairRequest,
    PairResponse,
    SessionView,
    StartSessionRequest,
    StopSessionRequest,
    StreakSummary,
    TimerConfig,
)
from store.orchestrator import get_session_store
from streaks.reconciler import get_streak_summary
from timer.maintenance import maintenance_loop
from timer.rules import get_timer_config
from timer.sessions import load_session, session_view, start_session, stop_session
from timer.validator import sync_completion, validate_heartbeat

# ---- Setup logging ----
setup_logging()
logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    "UNAUTHORIZED": 401,
    "NO_ACTIVE_SESSION": 404,
    "SESSION_ALREADY_COMPLETED": 409,
    "ACTIVE_SESSION_EXISTS": 409,
    "INVALID_TIMEZONE": 400,
    "STORE_UNAVAILABLE": 503,
    "CONCURRENT_MODIFICATION": 503,
}


# ---- Lifespan ----
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("Focus timer BE starting: env=%s", settings.ENV)
    validate_startup_config(settings)
    if not is_mock_store():
        await init_indexes()
    maintenance = asyncio.create_task(maintenance_loop())
    logger.info("Focus timer BE ready")
    yield
    maintenance.cancel()
    try:
        await maintenance
    except asyncio.CancelledError:
        pass
    if not is_mock_store():
        await close_db()
    logger.info("Focus timer BE shutdown complete")


# ---- App ----
app = FastAPI(
    title="Focus Timer",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

api_router = APIRouter(prefix="/api")


@app.exception_handler(FocusTimerError)
async def focus_timer_error_handler(request: Request, exc: FocusTimerError):
    status_code = _ERROR_STATUS.get(exc.code, 400)
    body = ErrorResult(code=exc.code, message=exc.message)
    if isinstance(exc, SessionAlreadyCompletedError):
        body.elapsed_ms = exc.elapsed_ms
    if isinstance(exc, AuthError):
        await log_audit_event(
            AuditEventType.AUTH_FAILURE,
            details={"path": request.url.path, "reason": exc.message},
        )
    if status_code >= 500:
        logger.warning("Request failed: path=%s code=%s error=%s", request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, mode="json"))


async def current_claims(authorization: Optional[str] = Header(None)) -> TokenClaims:
    return claims_from_header(authorization)


# =====================================================
#  REST Endpoints
# =====================================================

# ---- Health ----
@api_router.get("/health")
async def health():
    settings = get_settings()
    store_healthy = await get_session_store().is_healthy()
    return {
        "status": "ok" if store_healthy else "degraded",
        "env": settings.ENV,
        "version": "0.1.0",
        "mock_store": settings.MOCK_STORE,
        "store_healthy": store_healthy,
    }


# ---- Device Pairing / Auth ----
@api_router.post("/auth/pair", response_model=PairResponse)
async def pair_device(req: PairRequest):
    """DEV ONLY: Pair a device with a simple JWT.

    Production identity comes from the external auth provider.
    """
    if not is_dev_pairing_enabled():
        raise HTTPException(status_code=404, detail="Not found")

    token = generate_token(user_id=req.user_id, device_id=req.device_id)
    logger.info("DEV pair: user=%s device=%s", req.user_id, req.device_id)
    return PairResponse(
        token=token,
        user_id=req.user_id,
        device_id=req.device_id,
        env=get_settings().ENV,
    )


# ---- Timer Config ----
@api_router.get("/timer/config", response_model=TimerConfig)
async def timer_config():
    return get_timer_config()


# ---- Timer Sessions ----
@api_router.post("/timer/start", response_model=SessionView, status_code=201)
async def api_start_session(req: StartSessionRequest, claims: TokenClaims = Depends(current_claims)):
    """Start a focus session. The server assigns the start time."""
    ensure_caller(claims, req.user_id)
    session = await start_session(
        req.user_id, req.duration_seconds, tz_name=req.timezone, replace=req.replace,
    )
    return session_view(session)


@api_router.post("/timer/heartbeat", response_model=HeartbeatResult)
async def api_heartbeat(req: HeartbeatRequest, claims: TokenClaims = Depends(current_claims)):
    """Validate a heartbeat against the server clock."""
    ensure_caller(claims, req.user_id)
    return await validate_heartbeat(
        req.user_id, req.session_id, req.client_elapsed_ms, req.client_reported_at_ms,
    )


@api_router.post("/timer/complete", response_model=HeartbeatResult)
async def api_complete(req: CompletionSyncRequest, claims: TokenClaims = Depends(current_claims)):
    """Flush a queued offline completion. Idempotent; safe to retry."""
    ensure_caller(claims, req.user_id)
    return await sync_completion(
        req.user_id, req.session_id, req.client_elapsed_ms, req.client_reported_at_ms,
    )


@api_router.post("/timer/stop", response_model=SessionView)
async def api_stop_session(req: StopSessionRequest, claims: TokenClaims = Depends(current_claims)):
    """Cancel an open session. Completed sessions stay completed."""
    ensure_caller(claims, req.user_id)
    return session_view(await stop_session(req.user_id, req.session_id))


@api_router.get("/timer/session/{session_id}", response_model=SessionView)
async def api_get_session(session_id: str, claims: TokenClaims = Depends(current_claims)):
    return session_view(await load_session(claims.user_id, session_id))


# ---- Streaks ----
@api_router.get("/streaks/{user_id}", response_model=StreakSummary)
async def api_get_streak(user_id: str, claims: TokenClaims = Depends(current_claims)):
    ensure_caller(claims, user_id)
    return await get_streak_summary(user_id)


# Include REST router
app.include_router(api_router)
