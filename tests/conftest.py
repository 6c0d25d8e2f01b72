"""
tests/conftest.py -- Shared test fixtures for the auth service.

This module provides:
  - build_service(): async context manager yielding an AuthService wired to
    isolated stores (temp-file SQLite via aiosqlite, or fakeredis)
  - run_with_service: fixture running an async scenario against both variants
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient for HTTP integration tests, once per datastore

Design: every Redis handle is a fakeredis FakeAsyncRedis bound to a private
FakeServer, so no test ever shares keys with another or needs a real server.
SQLite databases live in pytest temp dirs rather than :memory: because the
async engine pools connections and each :memory: connection is a blank DB.

Environment must be set before any api/ or core/ import: api/main.py reads
Settings at import time and refuses to load without JWT_SECRET and DATASTORE.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import AsyncIterator, Callable, Generator
from contextlib import asynccontextmanager
from pathlib import Path

# CRITICAL: Set required config before any api/core import.
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-long-enough-0123456789")
os.environ.setdefault("DATASTORE", "relational")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("GLOBAL_RATE_LIMIT", "1000/minute")

import fakeredis
import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.hashing import PasswordHasher
from auth.kv_store import RedisUserStore
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import SqlUserStore, UserStore
from auth.tokens import TokenIssuer

TEST_SECRET = os.environ["JWT_SECRET"]

# Lowest cost bcrypt accepts; production uses 10.
TEST_BCRYPT_ROUNDS = 4

DATASTORES = ["relational", "keyvalue"]

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(datastore: str, db_path: Path) -> tuple[UserStore, SessionStore, fakeredis.FakeAsyncRedis]:
    """Create an isolated user store + session store pair.

    Both variants share one fake Redis for sessions; the keyvalue variant
    keeps its users there too, exactly as the real wiring does.
    """
    redis = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    hasher = PasswordHasher(rounds=TEST_BCRYPT_ROUNDS)
    if datastore == "relational":
        user_store: UserStore = SqlUserStore(f"sqlite+aiosqlite:///{db_path}", hasher)
    else:
        user_store = RedisUserStore(redis, hasher)
    return user_store, SessionStore(redis), redis


@asynccontextmanager
async def build_service(datastore: str, db_path: Path) -> AsyncIterator[AuthService]:
    """Yield an AuthService over fresh stores; close them afterwards."""
    user_store, session_store, redis = _make_test_stores(datastore, db_path)
    await user_store.init()
    hasher = PasswordHasher(rounds=TEST_BCRYPT_ROUNDS)
    service = AuthService(user_store, session_store, TokenIssuer(TEST_SECRET), hasher)
    try:
        yield service
    finally:
        await user_store.close()
        await redis.aclose()


@pytest.fixture(params=DATASTORES)
def run_with_service(request, tmp_path: Path) -> Callable:
    """Return run(scenario) that executes `async def scenario(service)` on a fresh service.

    Parametrized so every test using it runs once per datastore variant.
    """

    def run(scenario):
        async def _main():
            async with build_service(request.param, tmp_path / "auth.db") as service:
                return await scenario(service)

        return asyncio.run(_main())

    run.datastore = request.param
    return run


def _patch_lifespan(user_store: UserStore, session_store: SessionStore, redis):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test backends rather than localhost Postgres/Redis.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        await user_store.init()
        hasher = PasswordHasher(rounds=TEST_BCRYPT_ROUNDS)
        app.state.redis = redis
        app.state.user_store = user_store
        app.state.session_store = session_store
        app.state.auth_service = AuthService(user_store, session_store, TokenIssuer(TEST_SECRET), hasher)
        yield
        await user_store.close()
        await redis.aclose()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module per datastore
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module", params=DATASTORES)
def api_client(request, tmp_path_factory) -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app with isolated stores.

    Tests share the client within a module, so each test should use its own
    usernames (see unique_username).
    """
    db_path = tmp_path_factory.mktemp(f"api_{request.param}") / "auth.db"
    user_store, session_store, redis = _make_test_stores(request.param, db_path)

    app.router.lifespan_context = _patch_lifespan(user_store, session_store, redis)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture
def unique_username() -> str:
    """A username no other test in the session uses."""
    return f"user_{uuid.uuid4().hex[:12]}"
