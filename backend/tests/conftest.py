"""Shared fixtures: in-memory stores, a manual clock and a dev token.

Environment is pinned before any settings are read so every test runs
against MOCK_STORE=true in the dev environment.
"""
from pathlib import Path
import os
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

os.environ["ENV"] = "dev"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["MOCK_STORE"] = "true"
os.environ["DEFAULT_TIMEZONE"] = "UTC"

from types import SimpleNamespace

import pytest

from config.settings import get_settings
from core.clock import ManualClock, SystemClock, set_clock
from store.memory import MemoryAuditStore, MemorySessionStore, MemoryStreakStore
from store.orchestrator import reset_stores, set_stores

get_settings.cache_clear()


@pytest.fixture
def clock():
    manual = ManualClock()
    set_clock(manual)
    yield manual
    set_clock(SystemClock())


@pytest.fixture
def stores():
    ns = SimpleNamespace(
        sessions=MemorySessionStore(),
        streaks=MemoryStreakStore(),
        audit=MemoryAuditStore(),
    )
    set_stores(ns.sessions, ns.streaks, ns.audit)
    yield ns
    reset_stores()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture(autouse=True)
def _isolated(clock, stores):
    """Every test gets fresh stores and a clock that only moves when told to."""
    yield