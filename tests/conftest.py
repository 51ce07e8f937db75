"""
tests/conftest.py -- Shared fixtures for the static-admin auth tests.

This module provides:
  - clock:          controllable UTC clock injected into AuthManager
  - manager:        AuthManager on a fresh file-backed SQLite DB per test
  - api_client:     (client, manager) -- TestClient over the real app with a
                    patched lifespan wiring the test manager into app.state
  - admin_client:   api_client after first-run setup; the client carries the
                    admin's session cookie

Design: each test gets its own SQLite file under tmp_path, so state never
leaks between tests and no test depends on execution order. Mail and GitHub
OAuth are off by default; tests that need them set app.state.mail or
app.state.github_config on the running app.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.manager import AuthManager
from core.config import AuthConfig

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"


class FakeClock:
    """Callable clock for AuthManager(now=...).

    Starts at the real current time: session cookies carry an Expires
    attribute and the client's cookie jar drops ones already in the past.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manager(tmp_path, clock) -> Generator[AuthManager, None, None]:
    m = AuthManager(AuthConfig(database=str(tmp_path / "auth.db")), now=clock)
    m.initialize()
    yield m
    m.close()


def _patch_lifespan(manager: AuthManager):
    """Return an async context manager that replaces the real lifespan.

    Wires the test manager into app.state so routes hit an isolated DB, and
    disables mail and GitHub OAuth so nothing reaches the network.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth = manager
        app.state.mail = None
        app.state.github_config = None
        yield

    return test_lifespan


@pytest.fixture
def api_client(manager) -> Generator[tuple[TestClient, AuthManager], None, None]:
    app.router.lifespan_context = _patch_lifespan(manager)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, manager


@pytest.fixture
def admin_client(api_client) -> tuple[TestClient, AuthManager]:
    """api_client after POST /install/setup; the session cookie is on the client."""
    client, manager = api_client
    resp = client.post(
        "/api/v1/install/setup",
        json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD, "name": "Admin"},
    )
    assert resp.status_code == 201
    return client, manager
