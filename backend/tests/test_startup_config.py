from types import SimpleNamespace

import pytest

from config.validators import _require_jwt_secret, validate_startup_config


def _settings(**overrides):
    base = {
        "ENV": "dev",
        "JWT_SECRET": "test-secret",
        "MOCK_STORE": False,
        "MONGO_URL": "mongodb://localhost:27017",
        "HEARTBEAT_INTERVAL_S": 30,
        "HEARTBEAT_SEND_TIMEOUT_S": 10,
        "DEFAULT_TIMEZONE": "UTC",
        "DRIFT_THRESHOLD_MS": 5000,
    }
    base.update(overrides)
    return SimpleNamespace(**base)


@pytest.mark.parametrize("jwt_secret", ["", "   "])
def test_require_jwt_secret_fails_when_empty(jwt_secret):
    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        _require_jwt_secret(_settings(JWT_SECRET=jwt_secret))


def test_mock_store_forbidden_in_prod():
    with pytest.raises(RuntimeError, match="MOCK_STORE"):
        validate_startup_config(_settings(ENV="prod", MOCK_STORE=True))


@pytest.mark.parametrize("timeout_s", [30, 45])
def test_send_timeout_must_be_shorter_than_interval(timeout_s):
    with pytest.raises(RuntimeError, match="HEARTBEAT_SEND_TIMEOUT_S"):
        validate_startup_config(_settings(HEARTBEAT_SEND_TIMEOUT_S=timeout_s))


def test_default_timezone_must_resolve():
    with pytest.raises(RuntimeError, match="DEFAULT_TIMEZONE"):
        validate_startup_config(_settings(DEFAULT_TIMEZONE="Not/AZone"))


def test_mongo_url_required_without_mock_store():
    with pytest.raises(RuntimeError, match="MONGO_URL"):
        validate_startup_config(_settings(MONGO_URL=""))
    validate_startup_config(_settings(MONGO_URL="", MOCK_STORE=True))


def test_low_drift_threshold_logs_warning(caplog):
    caplog.set_level("WARNING")

    validate_startup_config(_settings(DRIFT_THRESHOLD_MS=200))

    assert "DRIFT_THRESHOLD_MS" in caplog.text


def test_validate_startup_config_passes_with_valid_required_config():
    validate_startup_config(_settings())
