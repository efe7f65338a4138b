"""
tests/conftest.py -- Shared test fixtures for Jesusgram unit and integration tests.

This module provides:
  - store / service: an isolated in-memory SocialStore and a SocialService on top
  - file_store: a SocialStore on a temporary SQLite file, for multi-threaded tests
  - make_user: factory that registers a user through the service
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - api_client: TestClient plus one pre-registered user and its token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the TestClient because it runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

ALLOWED_HOSTS must be set before api.main is imported: TrustedHostMiddleware
reads it once, and the TestClient sends Host: testserver.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any api/core import so get_settings() sees them.
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import SingletonThreadPool

from api.limiter import limiter
from api.main import app
from social.services import SocialService
from social.store import SocialStore

DEFAULT_PASSWORD = "Passw0rd"


# ---------------------------------------------------------------------------
# Store / service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[SocialStore, None, None]:
    s = SocialStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def file_store(tmp_path) -> Generator[SocialStore, None, None]:
    """A store on a SQLite file, so each thread gets its own pooled connection."""
    s = SocialStore(f"sqlite:///{tmp_path / 'social.db'}")
    yield s
    s.close()


@pytest.fixture
def service(store: SocialStore) -> SocialService:
    return SocialService(store)


@pytest.fixture
def make_user(service: SocialService):
    """Return a factory: make_user("alice01") -> (User, token)."""

    def _make(user_id: str, user_name: str = "Someone", password: str = DEFAULT_PASSWORD):
        return service.create_user(user_id, user_name, password)

    return _make


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: SocialStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test store into app.state so TestClient routes see
    an isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.social_store = store
        app.state.social_service = SocialService(store)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    One TestClient per test module; the DB name includes the module name so
    modules never share state. The user "apiuser01" (password Passw0rd) is
    registered before the client starts.
    """
    db_name = request.module.__name__.replace(".", "_")
    store = SocialStore(
        f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true",
        poolclass=SingletonThreadPool,
    )
    user, token = SocialService(store).create_user("apiuser01", "ApiUser", DEFAULT_PASSWORD)

    app.router.lifespan_context = _patch_lifespan(store)
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, user.user_id

    store.close()
