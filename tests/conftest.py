"""
tests/conftest.py -- Shared test fixtures for the portfolio API integration tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory DBs for users + content
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - stores: (UserStore, ContentStore) for the module, RBAC already seeded
  - api_client: TestClient plus an ADMIN user's JWT and id
  - user_factory: creates a user with the given roles and returns (id, token)
  - reset_limiter (autouse): clears slowapi counters before every test

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("APP_ENV", "test")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import User
from auth.rbac import ADMIN_ROLE, USER_ROLE, seed_rbac
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from content.store import ContentStore

ADMIN_PASSWORD = "adminpass123"
USER_PASSWORD = "userpass123"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, ContentStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. the module name).
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    content_url = f"sqlite:///file:test_content_{db_suffix}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url=auth_url)
    content_store = ContentStore(db_url=content_url)
    seed_rbac(user_store)
    return user_store, content_store


def _patch_lifespan(user_store: UserStore, content_store: ContentStore):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.content_store = content_store
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


def make_user(
    user_store: UserStore,
    username: str,
    password: str = USER_PASSWORD,
    roles: tuple[str, ...] = (USER_ROLE,),
) -> tuple[int, str]:
    """Create a user holding `roles` and return (user_id, access_token)."""
    email = f"{username}@example.com"
    uid = user_store.create_user(
        User(email=email, username=username, password_hash=hash_password(password)),
        roles=list(roles),
    )
    return uid, create_access_token(uid, username, email)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def stores(request: pytest.FixtureRequest) -> Generator[tuple[UserStore, ContentStore], None, None]:
    """Yield (user_store, content_store) private to the requesting test module."""
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, content_store = _make_test_stores(suffix)
    yield user_store, content_store
    content_store.close()
    user_store.close()


@pytest.fixture(scope="module")
def api_client(stores: tuple[UserStore, ContentStore]) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use isolated in-memory stores. The admin
    (username "testadmin", password ADMIN_PASSWORD) holds USER and ADMIN.
    """
    user_store, content_store = stores
    uid, token = make_user(user_store, "testadmin", ADMIN_PASSWORD, roles=(USER_ROLE, ADMIN_ROLE))

    app.router.lifespan_context = _patch_lifespan(user_store, content_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid


@pytest.fixture(autouse=True)
def reset_limiter() -> Generator[None, None, None]:
    """Rate-limit counters are process-global; start every test from zero."""
    limiter.reset()
    yield


@pytest.fixture
def user_factory(stores: tuple[UserStore, ContentStore]):
    """Return a callable(username, password=USER_PASSWORD, roles=(USER,)) -> (user_id, token)."""
    user_store, _content_store = stores

    def _create(username: str, password: str = USER_PASSWORD, roles: tuple[str, ...] = (USER_ROLE,)) -> tuple[int, str]:
        return make_user(user_store, username, password, roles)

    return _create
