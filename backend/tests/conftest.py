"""
Shared pytest fixtures for the rounding API and rounding logic tests.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from main import app
from rounding import format_check_time
from seed import DEMO_PASSWORD, seed_data
from store import IdentityProvider, RoundingStore, get_clock, get_identity_provider, get_store

# Fixed "now" for every API test: 2025-11-20 14:37:12 UTC
NOW = datetime(2025, 11, 20, 14, 37, 12, tzinfo=timezone.utc)


def stamp(delta: timedelta, tz=timezone.utc) -> str:
    """Check-in time string `delta` before NOW, in the store's text format."""
    return format_check_time(NOW - delta, tz)


@pytest.fixture
def store():
    return RoundingStore()


@pytest.fixture
def identity():
    return IdentityProvider()


@pytest.fixture
def seeded(store, identity, monkeypatch):
    """
    Fresh seeded store and identity provider wired into the app, clock frozen at NOW.

    Seed: p1 on time, p2 overdue (mapping checkIns), p3 never checked,
    p4 on time with one unparseable entry.
    """
    monkeypatch.delenv("DISPLAY_UTC_OFFSET_MINUTES", raising=False)
    monkeypatch.delenv("DEBUG", raising=False)
    seed_data(store, identity, NOW)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_identity_provider] = lambda: identity
    app.dependency_overrides[get_clock] = lambda: NOW
    yield store
    app.dependency_overrides.clear()


@pytest.fixture
def client(seeded):
    """FastAPI TestClient against the seeded store (not signed in)."""
    return TestClient(app)


def _signed_in(email: str) -> TestClient:
    test_client = TestClient(app)
    resp = test_client.post("/auth/login", json={"email": email, "password": DEMO_PASSWORD})
    assert resp.status_code == 200, resp.text
    test_client.headers["Authorization"] = f"Bearer {resp.json()['token']}"
    return test_client


@pytest.fixture
def staff_client(seeded):
    return _signed_in("staff@mediround.test")


@pytest.fixture
def manager_client(seeded):
    return _signed_in("manager@mediround.test")


@pytest.fixture
def admin_client(seeded):
    return _signed_in("admin@mediround.test")
