"""Timer API client: the agent's only outbound path to the backend.

Endpoints: POST {API_BASE_URL}/api/timer/{start,heartbeat,complete,stop}
Auth: Authorization: Bearer <jwt>

Network errors and 5xx  → TransientSyncError (retry later with fresh input)
4xx                     → SyncRejectedError (do not retry)
409 SESSION_ALREADY_COMPLETED → CompletedResult (the server already has it)
"""
import logging
import time
from typing import Any, Dict, Optional

import httpx

from config.settings import get_settings
from core.exceptions import SyncRejectedError, TransientSyncError
from schemas.heartbeat import CompletedResult, SessionView, parse_heartbeat_result

logger = logging.getLogger(__name__)


class TimerApiClient:
    """Thin async wrapper over httpx.AsyncClient. One instance per agent."""

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            transport=transport,
            timeout=timeout or float(settings.HEARTBEAT_SEND_TIMEOUT_S),
            headers={"Authorization": f"Bearer {token}"},
        )

    async def __aenter__(self) -> "TimerApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        start = time.monotonic()
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as e:
            logger.warning("[AgentClient] Unreachable: path=%s error=%s", path, type(e).__name__)
            raise TransientSyncError(f"{path}: {type(e).__name__}")
        latency_ms = (time.monotonic() - start) * 1000
        logger.debug("[AgentClient] path=%s status=%d latency=%.0fms", path, response.status_code, latency_ms)
        if response.status_code >= 500:
            raise TransientSyncError(f"{path}: HTTP {response.status_code}")
        return response

    @staticmethod
    def _rejected(path: str, response: httpx.Response) -> SyncRejectedError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        code = body.get("code", "SYNC_REJECTED") if isinstance(body, dict) else "SYNC_REJECTED"
        message = body.get("message") if isinstance(body, dict) else None
        logger.warning(
            "[AgentClient] Rejected: path=%s status=%d code=%s", path, response.status_code, code,
        )
        return SyncRejectedError(
            message or f"{path}: HTTP {response.status_code}",
            code=code,
            status_code=response.status_code,
        )

    async def _post_result(self, path: str, payload: Dict[str, Any]):
        response = await self._post(path, payload)
        if response.status_code == 409:
            body = response.json()
            if body.get("code") == "SESSION_ALREADY_COMPLETED":
                return CompletedResult(
                    session_id=payload["sessionId"], elapsed_ms=body.get("elapsedMs") or 0,
                )
        if response.status_code >= 400:
            raise self._rejected(path, response)
        return parse_heartbeat_result(response.json())

    async def start_session(
        self,
        user_id: str,
        duration_seconds: int,
        tz_name: Optional[str] = None,
        replace: bool = True,
    ) -> SessionView:
        payload = {"userId": user_id, "durationSeconds": duration_seconds, "replace": replace}
        if tz_name:
            payload["timezone"] = tz_name
        response = await self._post("/api/timer/start", payload)
        if response.status_code >= 400:
            raise self._rejected("/api/timer/start", response)
        return SessionView.model_validate(response.json())

    async def stop_session(self, user_id: str, session_id: str) -> SessionView:
        response = await self._post("/api/timer/stop", {"userId": user_id, "sessionId": session_id})
        if response.status_code >= 400:
            raise self._rejected("/api/timer/stop", response)
        return SessionView.model_validate(response.json())

    async def heartbeat(
        self,
        user_id: str,
        session_id: str,
        client_elapsed_ms: int,
        client_reported_at_ms: Optional[int] = None,
    ):
        return await self._post_result("/api/timer/heartbeat", {
            "userId": user_id,
            "sessionId": session_id,
            "clientElapsedMs": max(0, client_elapsed_ms),
            "clientReportedAtMs": client_reported_at_ms,
        })

    async def complete(
        self,
        user_id: str,
        session_id: str,
        client_elapsed_ms: int,
        client_reported_at_ms: Optional[int] = None,
    ):
        return await self._post_result("/api/timer/complete", {
            "userId": user_id,
            "sessionId": session_id,
            "clientElapsedMs": max(0, client_elapsed_ms),
            "clientReportedAtMs": client_reported_at_ms,
        })
