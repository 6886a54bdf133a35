"""Unit tests for auth/sessions.py -- the Redis session store.

Covers:
- set/get/delete of one entry; delete is idempotent
- entries carry the session TTL and vanish when it runs out
- per-user index: tokens_for_user() and delete_user_sessions()
- every RedisError is surfaced as StoreUnavailableError; ping() reports False
- from_url() bounds every round-trip with the configured timeout
"""

from unittest.mock import MagicMock, patch

import pytest
import redis

from auth.errors import StoreUnavailableError
from auth.sessions import RedisSessionStore


def test_set_then_get(sessions, fake_redis):
    sessions.set("tok-a", 7, ttl=60)
    assert sessions.get("tok-a") == "7"
    assert fake_redis.ttl("session:tok-a") == 60


def test_get_unknown_token(sessions):
    assert sessions.get("never-issued") is None


def test_delete_is_idempotent(sessions):
    sessions.set("tok-a", 7, ttl=60)
    sessions.delete("tok-a")
    sessions.delete("tok-a")
    assert sessions.get("tok-a") is None


def test_entry_expires_with_ttl(sessions, clock):
    sessions.set("tok-a", 7, ttl=60)
    clock.advance(59)
    assert sessions.get("tok-a") == "7"
    clock.advance(1)
    assert sessions.get("tok-a") is None


def test_key_prefix_is_applied(fake_redis):
    store = RedisSessionStore(fake_redis, key_prefix="tg:")
    store.set("tok-a", 3, ttl=60)
    assert fake_redis.get("tg:tok-a") == "3"
    assert fake_redis.smembers("tg:user:3") == {"tok-a"}


class TestUserIndex:
    def test_tokens_for_user(self, sessions):
        sessions.set("tok-a", 7, ttl=60)
        sessions.set("tok-b", 7, ttl=60)
        sessions.set("tok-c", 8, ttl=60)
        assert sessions.tokens_for_user(7) == {"tok-a", "tok-b"}
        assert sessions.tokens_for_user(8) == {"tok-c"}

    def test_delete_user_sessions_leaves_other_users(self, sessions):
        sessions.set("tok-a", 7, ttl=60)
        sessions.set("tok-b", 7, ttl=60)
        sessions.set("tok-c", 8, ttl=60)

        removed = sessions.delete_user_sessions(7)

        assert removed == 3  # two entries plus the index
        assert sessions.get("tok-a") is None
        assert sessions.get("tok-b") is None
        assert sessions.get("tok-c") == "8"
        assert sessions.tokens_for_user(7) == set()

    def test_delete_drops_token_from_index(self, sessions, fake_redis):
        sessions.set("tok-a", 7, ttl=60)
        sessions.set("tok-b", 7, ttl=60)

        sessions.delete("tok-a")
        assert sessions.tokens_for_user(7) == {"tok-b"}

        sessions.delete("tok-b")
        assert sessions.tokens_for_user(7) == set()
        assert fake_redis.ttl("session:user:7") == -2

    def test_delete_user_sessions_without_any(self, sessions):
        assert sessions.delete_user_sessions(99) == 0


class TestStoreFailure:
    @pytest.mark.parametrize(
        "error",
        [
            redis.exceptions.ConnectionError("connection refused"),
            redis.exceptions.TimeoutError("timed out"),
            redis.exceptions.ResponseError("WRONGTYPE"),
        ],
    )
    def test_read_failure_maps_to_store_unavailable(self, error):
        client = MagicMock()
        client.get.side_effect = error
        store = RedisSessionStore(client)
        with pytest.raises(StoreUnavailableError) as exc_info:
            store.get("tok-a")
        assert exc_info.value.__cause__ is error

    def test_write_failure(self, sessions, fake_redis, redis_down):
        fake_redis.failure = redis_down
        with pytest.raises(StoreUnavailableError):
            sessions.set("tok-a", 7, ttl=60)

    def test_delete_failure(self, sessions, fake_redis, redis_down):
        fake_redis.failure = redis_down
        with pytest.raises(StoreUnavailableError):
            sessions.delete("tok-a")

    def test_bulk_delete_failure(self, sessions, fake_redis, redis_down):
        fake_redis.failure = redis_down
        with pytest.raises(StoreUnavailableError):
            sessions.delete_user_sessions(7)

    def test_ping_reports_false(self, sessions, fake_redis, redis_down):
        assert sessions.ping() is True
        fake_redis.failure = redis_down
        assert sessions.ping() is False


def test_from_url_bounds_round_trips():
    with patch("auth.sessions.redis.Redis.from_url") as from_url:
        store = RedisSessionStore.from_url("redis://cache:6379/2", timeout=1.5, key_prefix="tg:")

    from_url.assert_called_once_with(
        "redis://cache:6379/2",
        decode_responses=True,
        socket_timeout=1.5,
        socket_connect_timeout=1.5,
    )
    store.close()
    from_url.return_value.close.assert_called_once()
