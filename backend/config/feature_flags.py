"""Feature flags: controls dev-only functionality."""
from config.settings import get_settings


def is_mock_store() -> bool:
    return get_settings().MOCK_STORE


def is_dev_pairing_enabled() -> bool:
    return get_settings().ENV != "prod"
