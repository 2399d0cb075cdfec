"""
tests/conftest.py -- Shared test fixtures for Elewa tests.

This module provides:
  - make_settings(): Settings pointing at a throwaway SQLite file, bcrypt cost 4
  - FakeClock: injectable clock for TokenIssuer expiry tests
  - settings / issuer / hasher / service: unit-level building blocks
  - api_client: TestClient around create_app(settings)
  - register_user(): POST /auth/register helper

Design: a file-backed SQLite DB under tmp_path (not :memory:) is used for
anything that goes through AuthService or TestClient, because those run store
calls in worker threads and a plain :memory: DB is per-connection. Store unit
tests that stay on one thread use sqlite:///:memory: directly.

Rate limits are switched off so tests can register freely.
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings

TEST_SECRET = "elewa-test-secret-0123456789abcdef0123456789"

DEFAULT_USER = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "phone": "+254700000001",
    "password": "correct-horse",
}


def make_settings(db_dir: Path, **overrides) -> Settings:
    values = {
        "secret_key": TEST_SECRET,
        "database_url": f"sqlite:///{db_dir / 'users.db'}",
        "bcrypt_rounds": 4,
        "storage_timeout_seconds": 5.0,
        "allowed_hosts": ["testserver"],
        "rate_limit_enabled": False,
    }
    values.update(overrides)
    return Settings(**values)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def issuer(settings: Settings, clock: FakeClock) -> TokenIssuer:
    return TokenIssuer(settings, clock=clock)


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def memory_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def service(settings: Settings, hasher: PasswordHasher) -> Generator[AuthService, None, None]:
    store = UserStore(settings)
    yield AuthService(store, hasher, TokenIssuer(settings), storage_timeout=settings.storage_timeout_seconds)
    store.close()


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def api_client(settings: Settings) -> Generator[TestClient, None, None]:
    """Yield a TestClient whose lifespan has built the store and service."""
    with TestClient(create_app(settings)) as client:
        yield client


def register_user(client: TestClient, **overrides) -> dict:
    body = {**DEFAULT_USER, **overrides}
    resp = client.post("/api/v1/auth/register", json=body)
    assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
    return resp.json()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
