"""
tests/conftest.py -- Shared test fixtures for TokenGate unit and integration tests.

This module provides:
  - FakeClock / FakeRedis: an in-process stand-in for the Redis commands the
    session store uses (GET/SET EX/DEL/SADD/SREM/SMEMBERS/EXPIRE/PING, pipelines),
    with TTLs judged by the same controllable clock the token codec uses, so a
    test can "advance time" past a session lifetime.
  - Unit fixtures: clock, fake_redis, sessions, codec, issuer, authenticator, revoker
  - api: module-scoped TestClient harness with a patched lifespan that wires
    isolated in-memory SQLite stores and the fake Redis into app.state
  - signup: helper fixture that registers a user through the API and returns its token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API harness because TestClient runs sync route handlers in a thread pool.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares one
in-memory instance across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import so
get_settings() auto-generates SECRET_KEY and hashing runs at minimum cost.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
import redis
from fastapi.testclient import TestClient

from api.main import app, install_auth
from auth.authenticator import RequestAuthenticator
from auth.issuer import TokenIssuer
from auth.revoker import SessionRevoker
from auth.sessions import RedisSessionStore
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import get_settings
from posts.store import PostStore

TEST_SECRET = "test-secret-key-that-is-definitely-32-chars"
LIFETIME = 24 * 60 * 60

# ---------------------------------------------------------------------------
# Clock and Redis stand-ins
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock returning epoch seconds; advance() moves it forward."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Single-process stand-in for the subset of redis.Redis used by RedisSessionStore.

    Values are stored as str (decode_responses=True semantics). Keys with a TTL
    disappear once the clock reaches their expiry. Setting `failure` to an
    exception instance makes every command raise it, simulating an outage.
    """

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self._data: dict[str, object] = {}
        self._expires: dict[str, float] = {}
        self.failure: Exception | None = None
        self.closed = False

    # -- internals --------------------------------------------------------

    def _check(self) -> None:
        if self.failure is not None:
            raise self.failure

    def _purge(self, key: str) -> None:
        exp = self._expires.get(key)
        if exp is not None and self._clock() >= exp:
            self._data.pop(key, None)
            self._expires.pop(key, None)

    def ttl(self, key: str) -> int:
        self._purge(key)
        if key not in self._data:
            return -2
        if key not in self._expires:
            return -1
        return int(self._expires[key] - self._clock())

    # -- commands ---------------------------------------------------------

    def get(self, key: str) -> str | None:
        self._check()
        self._purge(key)
        value = self._data.get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value, ex: int | None = None) -> bool:
        self._check()
        self._data[key] = str(value)
        self._expires.pop(key, None)
        if ex is not None:
            self._expires[key] = self._clock() + ex
        return True

    def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            self._purge(key)
            if key in self._data:
                del self._data[key]
                self._expires.pop(key, None)
                removed += 1
        return removed

    def sadd(self, key: str, *members: str) -> int:
        self._check()
        self._purge(key)
        current = self._data.setdefault(key, set())
        before = len(current)
        current.update(members)
        return len(current) - before

    def srem(self, key: str, *members: str) -> int:
        self._check()
        self._purge(key)
        current = self._data.get(key)
        if not isinstance(current, set):
            return 0
        removed = len(current & set(members))
        current.difference_update(members)
        if not current:
            del self._data[key]
            self._expires.pop(key, None)
        return removed

    def smembers(self, key: str) -> set[str]:
        self._check()
        self._purge(key)
        value = self._data.get(key)
        return set(value) if isinstance(value, set) else set()

    def expire(self, key: str, seconds: int) -> bool:
        self._check()
        self._purge(key)
        if key not in self._data:
            return False
        self._expires[key] = self._clock() + seconds
        return True

    def ping(self) -> bool:
        self._check()
        return True

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)

    def close(self) -> None:
        self.closed = True


class FakePipeline:
    """Queues commands and applies them on execute(), like a MULTI/EXEC pipeline."""

    def __init__(self, client: FakeRedis) -> None:
        self._client = client
        self._queued: list[tuple[str, tuple, dict]] = []

    def __enter__(self) -> FakePipeline:
        return self

    def __exit__(self, *exc_info) -> None:
        self._queued.clear()

    def __getattr__(self, name: str) -> Callable:
        def queue(*args, **kwargs) -> FakePipeline:
            self._queued.append((name, args, kwargs))
            return self

        return queue

    def execute(self) -> list:
        self._client._check()
        results = [getattr(self._client, name)(*args, **kwargs) for name, args, kwargs in self._queued]
        self._queued.clear()
        return results


# ---------------------------------------------------------------------------
# Unit fixtures -- fresh per test
# ---------------------------------------------------------------------------


@pytest.fixture
def secret() -> str:
    return TEST_SECRET


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def sessions(fake_redis: FakeRedis) -> RedisSessionStore:
    return RedisSessionStore(fake_redis, key_prefix="session:")


@pytest.fixture
def codec(clock: FakeClock) -> TokenCodec:
    return TokenCodec(TEST_SECRET, lifetime_seconds=LIFETIME, clock=clock)


@pytest.fixture
def issuer(codec: TokenCodec, sessions: RedisSessionStore) -> TokenIssuer:
    return TokenIssuer(codec, sessions)


@pytest.fixture
def authenticator(codec: TokenCodec, sessions: RedisSessionStore) -> RequestAuthenticator:
    return RequestAuthenticator(codec, sessions)


@pytest.fixture
def revoker(sessions: RedisSessionStore) -> SessionRevoker:
    return SessionRevoker(sessions)


@pytest.fixture
def redis_down() -> Exception:
    """The exception FakeRedis raises while simulating an outage."""
    return redis.exceptions.ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")


# ---------------------------------------------------------------------------
# API harness -- one TestClient per test module
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    redis: FakeRedis
    clock: FakeClock
    user_store: UserStore
    post_store: PostStore


def _patch_lifespan(user_store: UserStore, post_store: PostStore, codec: TokenCodec, sessions: RedisSessionStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the test stores and the fake-Redis session store into app.state so
    TestClient routes never touch a real database or Redis server.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = get_settings()
        app.state.user_store = user_store
        app.state.post_store = post_store
        install_auth(app, codec, sessions)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api(request) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness backed by isolated stores for the calling test module."""
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    db_url = f"sqlite:///file:tokengate_{suffix}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url)
    post_store = PostStore(db_url)
    clock = FakeClock()
    fake = FakeRedis(clock)
    codec = TokenCodec(TEST_SECRET, lifetime_seconds=LIFETIME, clock=clock)
    sessions = RedisSessionStore(fake, key_prefix="session:")

    app.router.lifespan_context = _patch_lifespan(user_store, post_store, codec, sessions)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, redis=fake, clock=clock, user_store=user_store, post_store=post_store)

    post_store.close()
    user_store.close()


@pytest.fixture
def signup(api: ApiHarness) -> Callable[..., str]:
    """Return a function that registers a user through the API and returns the issued token."""

    def _signup(email: str, password: str = "Pass123", **fields) -> str:
        body = {"first_name": "John", "last_name": "Doe", "age": 30, "email": email, "password": password}
        body.update(fields)
        resp = api.client.post("/api/v1/user/signup", json=body)
        assert resp.status_code == 201, resp.text
        api.client.cookies.clear()
        return resp.json()["token"]

    return _signup


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    return bearer
