"""
tests/conftest.py -- Shared test fixtures.

This module provides:
  - make_store(): an isolated shared-memory SQLite UserStore
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - store: function-scoped store for unit tests of the auth core
  - api_client: TestClient for the token API with the demo user seeded
  - web_client / web: TestClient with follow_redirects=False for browser routes

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import wire_state
from asgi import app
from auth.seed import seed_users
from auth.store import UserStore

DEMO_EMAIL = "john.doe@example.com"
DEMO_PASSWORD = "password"

# Login tests would trip the per-IP limit long before the suite finishes.
limiter.enabled = False


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_store(db_suffix: str | None = None) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules don't
                   share state. A random one is used when omitted.
    """
    suffix = db_suffix or uuid.uuid4().hex
    return UserStore(f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")


def make_oauth_registry() -> MagicMock:
    """A stand-in for the Authlib registry whose GitHub client never hits the network."""
    client = MagicMock()
    client.authorize_redirect = AsyncMock()
    client.authorize_access_token = AsyncMock()
    client.get = AsyncMock()
    registry = MagicMock()
    registry.create_client.return_value = client
    return registry


def _patch_lifespan(user_store: UserStore, oauth_registry: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown has a real
    asyncio.Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_state(app, user_store)
        app.state.oauth = oauth_registry
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    user_store = make_store()
    seed_users(user_store)
    yield user_store
    user_store.close()


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, UserStore], None, None]:
    """Yield (client, store) for token API integration tests.

    The demo user (john.doe@example.com / password) is seeded before the
    client starts.
    """
    user_store = make_store("api")
    seed_users(user_store)

    app.router.lifespan_context = _patch_lifespan(user_store, make_oauth_registry())

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store

    user_store.close()


@pytest.fixture(scope="module")
def web_client() -> Generator[tuple[TestClient, UserStore, MagicMock], None, None]:
    """Yield (client, store, oauth_registry) for browser route tests.

    follow_redirects=False is essential: we assert on redirect locations,
    which are invisible once the client follows the redirect.
    """
    user_store = make_store("web")
    seed_users(user_store)
    oauth_registry = make_oauth_registry()

    app.router.lifespan_context = _patch_lifespan(user_store, oauth_registry)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client, user_store, oauth_registry

    user_store.close()


@pytest.fixture
def web(web_client) -> tuple[TestClient, UserStore, MagicMock]:
    """web_client with a clean cookie jar and fresh GitHub client mocks for each test."""
    client, user_store, oauth_registry = web_client
    client.cookies.clear()
    fresh = make_oauth_registry()
    oauth_registry.create_client.return_value = fresh.create_client.return_value
    return client, user_store, oauth_registry


@pytest.fixture
def login_rate_limit() -> Generator[None, None, None]:
    """Turn the shared limiter on with empty counters for one test."""
    limiter.reset()
    limiter.enabled = True
    yield
    limiter.enabled = False
    limiter.reset()
