"""
tests/conftest.py -- Shared test fixtures for phonegate.

This module provides:
  - FakeClock: a settable clock injected into every time-dependent component
  - make_settings(): Settings with cheap argon2 parameters for fast tests
  - store / service: in-memory AccountStore and AuthService for unit tests
  - api_client: TestClient wired to an isolated AuthService via a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the api_client fixture because TestClient runs sync route handlers in a
thread pool. Plain :memory: DBs are per-connection and would present a blank
schema to each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

DEBUG is set before any app import so Settings() does not warn about
insecure cookies on every instantiation.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import AuthService
from auth.store import AccountStore
from core.config import Settings

START_TIME = 1_760_000_000.0

# Valid numbers from libphonenumber's own example metadata.
UK_MOBILE = "+447400123456"
US_NUMBER = "+12015550123"

PASSWORD = "correct-horse-battery"


class FakeClock:
    """Callable clock returning a controllable epoch-seconds value."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    """Settings with argon2 cost parameters small enough for a test suite."""
    values = {
        "debug": True,
        "argon2_memory_mb": 1,
        "argon2_iterations": 1,
        "argon2_parallelism": 1,
    }
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def service(store: AccountStore, settings: Settings, clock: FakeClock) -> AuthService:
    return AuthService.from_settings(settings, store=store, clock=clock)


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


def _shared_memory_url() -> str:
    return f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test service into app.state so routes use the
    isolated store and fake clock. No sweep task is started; tests call
    limiter.sweep() directly when they need it.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = service
        yield

    return test_lifespan


def make_client(settings: Settings, clock: FakeClock) -> tuple[TestClient, AuthService]:
    store = AccountStore(_shared_memory_url())
    service = AuthService.from_settings(settings, store=store, clock=clock)
    app.router.lifespan_context = _patch_lifespan(service)
    return TestClient(app, raise_server_exceptions=True), service


@pytest.fixture
def api_client(clock: FakeClock) -> Generator[tuple[TestClient, AuthService, FakeClock], None, None]:
    """Yield (client, service, clock) backed by a fresh database and limiter.

    Function-scoped: rate-limit counters and lockout state must not leak
    between tests.
    """
    client, service = make_client(make_settings(), clock)
    with client:
        yield client, service, clock
    service.store.close()
