"""HTTP surface: camelCase wire contract, tagged results and error mapping."""
import pytest
from fastapi.testclient import TestClient

from auth.tokens import generate_token
from core.exceptions import StoreUnavailableError
from server import app

DURATION_S = 1500


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def headers():
    return {"Authorization": f"Bearer {generate_token('u1', 'device-1')}"}


def _start(client, headers, **extra):
    payload = {"userId": "u1", "durationSeconds": DURATION_S, **extra}
    return client.post("/api/timer/start", json=payload, headers=headers)


def _heartbeat(client, headers, session_id, elapsed_ms, path="/api/timer/heartbeat"):
    return client.post(
        path,
        json={"userId": "u1", "sessionId": session_id, "clientElapsedMs": elapsed_ms},
        headers=headers,
    )


class TestPublicEndpoints:

    def test_health(self, client):
        r = client.get("/api/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"
        assert r.json()["mock_store"] is True

    def test_timer_config(self, client):
        r = client.get("/api/timer/config")
        assert r.status_code == 200
        assert r.json() == {
            "heartbeatIntervalMs": 30_000,
            "heartbeatSendTimeoutMs": 10_000,
            "driftThresholdMs": 5000,
            "suspiciousClearHeartbeats": 1,
        }

    def test_dev_pairing_issues_usable_token(self, client):
        r = client.post("/api/auth/pair", json={"userId": "u1", "deviceId": "d1"})
        assert r.status_code == 200
        token = r.json()["token"]
        started = _start(client, {"Authorization": f"Bearer {token}"})
        assert started.status_code == 201


class TestAuth:

    def test_missing_token_is_401(self, client, stores):
        r = client.post("/api/timer/start", json={"userId": "u1", "durationSeconds": 60})
        assert r.status_code == 401
        assert r.json()["status"] == "error"
        assert r.json()["code"] == "UNAUTHORIZED"
        assert [e.event_type.value for e in stores.audit.events] == ["auth_failure"]

    def test_payload_user_must_match_token(self, client, headers):
        r = client.post(
            "/api/timer/start", json={"userId": "someone-else", "durationSeconds": 60}, headers=headers,
        )
        assert r.status_code == 401

    def test_garbage_token(self, client):
        r = client.get("/api/streaks/u1", headers={"Authorization": "Bearer not-a-jwt"})
        assert r.status_code == 401


class TestTimerFlow:

    def test_start_returns_camel_case_view(self, client, headers, clock):
        r = _start(client, headers)
        assert r.status_code == 201
        body = r.json()
        assert body["status"] == "ACTIVE"
        assert body["durationSeconds"] == DURATION_S
        assert body["startTimeMs"] == int(clock.now().timestamp() * 1000)
        assert "sessionId" in body

    def test_second_start_conflicts(self, client, headers):
        _start(client, headers)
        r = _start(client, headers)
        assert r.status_code == 409
        assert r.json()["code"] == "ACTIVE_SESSION_EXISTS"
        assert _start(client, headers, replace=True).status_code == 201

    def test_invalid_timezone(self, client, headers):
        r = _start(client, headers, timezone="Nowhere/Special")
        assert r.status_code == 400
        assert r.json()["code"] == "INVALID_TIMEZONE"

    def test_heartbeat_without_session_is_404(self, client, headers):
        r = client.post("/api/timer/heartbeat", json={"userId": "u1", "clientElapsedMs": 0}, headers=headers)
        assert r.status_code == 404
        assert r.json()["code"] == "NO_ACTIVE_SESSION"

    def test_negative_client_elapsed_is_422(self, client, headers):
        sid = _start(client, headers).json()["sessionId"]
        assert _heartbeat(client, headers, sid, -1).status_code == 422

    def test_active_then_drift(self, client, headers, clock):
        sid = _start(client, headers).json()["sessionId"]
        clock.advance(seconds=100)
        active = _heartbeat(client, headers, sid, 100_000).json()
        assert active["status"] == "active"
        assert active["remainingMs"] == 1_400_000
        assert active["elapsedMs"] == 100_000

        clock.advance(seconds=30)
        drift = _heartbeat(client, headers, sid, 100_000).json()
        assert drift["status"] == "driftWarning"
        assert drift["code"] == "DRIFT_DETECTED"
        assert drift["driftMs"] == 30_000

    def test_completion_and_replay(self, client, headers, clock):
        sid = _start(client, headers).json()["sessionId"]
        clock.advance(seconds=DURATION_S + 1)
        done = _heartbeat(client, headers, sid, (DURATION_S + 1) * 1000)
        assert done.status_code == 200
        assert done.json() == {"status": "completed", "sessionId": sid, "elapsedMs": 1_501_000}

        replays = [_heartbeat(client, headers, sid, 0) for _ in range(2)]
        assert [r.status_code for r in replays] == [409, 409]
        assert replays[0].json() == replays[1].json()
        assert replays[0].json()["elapsedMs"] == 1_501_000

        synced = [_heartbeat(client, headers, sid, 0, path="/api/timer/complete") for _ in range(2)]
        assert [r.status_code for r in synced] == [200, 200]
        assert synced[0].json() == synced[1].json() == done.json()

        streak = client.get("/api/streaks/u1", headers=headers).json()
        assert streak["currentStreak"] == 1
        assert streak["totalSessions"] == 1
        assert streak["completedToday"] is True

    def test_stop_and_read_session(self, client, headers):
        sid = _start(client, headers).json()["sessionId"]
        r = client.post("/api/timer/stop", json={"userId": "u1", "sessionId": sid}, headers=headers)
        assert r.status_code == 200
        assert r.json()["status"] == "CANCELLED"
        view = client.get(f"/api/timer/session/{sid}", headers=headers).json()
        assert view["status"] == "CANCELLED"

    def test_complete_requires_session_id(self, client, headers):
        r = client.post("/api/timer/complete", json={"userId": "u1", "clientElapsedMs": 0}, headers=headers)
        assert r.status_code == 422

    def test_store_outage_is_503(self, client, headers, stores, monkeypatch):
        async def down(*args, **kwargs):
            raise StoreUnavailableError("mongo down")

        sid = _start(client, headers).json()["sessionId"]
        monkeypatch.setattr(stores.sessions, "get", down)
        r = _heartbeat(client, headers, sid, 0)
        assert r.status_code == 503
        assert r.json()["code"] == "STORE_UNAVAILABLE"
