"""
auth/sessions.py -- Redis-backed session store.

One entry per live token:

    <prefix><token>          -> "<user_id>"            (TTL = session lifetime)
    <prefix>user:<user_id>   -> {token, token, ...}    (index for bulk revocation)

The entry, not the signature, is what makes a token currently honourable:
deleting it revokes the token immediately, and Redis expires it on its own when
the lifetime runs out.

The redis.Redis client is thread safe; connections come from its pool at
command time, so one RedisSessionStore is shared by every request handler.
Every command is bounded by the client's socket timeout. Any RedisError
(connection refused, timeout, protocol error) is re-raised as
StoreUnavailableError so callers can fail closed without knowing about redis.

Layer rule: no imports from api/, core/, or posts/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import redis

from auth.errors import StoreUnavailableError

logger = logging.getLogger("tokengate.sessions")


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except redis.exceptions.RedisError as exc:
        logger.warning("Session store %s failed: %s", operation, type(exc).__name__)
        raise StoreUnavailableError(f"session store {operation} failed") from exc


class RedisSessionStore:
    """Key-value session registry with TTL.

    Usage:
        sessions = RedisSessionStore.from_url("redis://localhost:6379/0", timeout=2.0)
        sessions.set(token, user_id=7, ttl=86400)
        sessions.get(token)       # "7" or None
        sessions.delete(token)    # idempotent
        sessions.close()
    """

    def __init__(self, client: redis.Redis, key_prefix: str = "session:") -> None:
        self._client = client
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, timeout: float = 2.0, key_prefix: str = "session:") -> RedisSessionStore:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        logger.debug("Session store client created (timeout=%.1fs)", timeout)
        return cls(client, key_prefix=key_prefix)

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def _token_key(self, token: str) -> str:
        return f"{self._prefix}{token}"

    def _user_key(self, user_id: int | str) -> str:
        return f"{self._prefix}user:{user_id}"

    # ------------------------------------------------------------------
    # Single-token operations
    # ------------------------------------------------------------------

    def set(self, token: str, user_id: int, ttl: int) -> None:
        """Register token as a live session for user_id, expiring after ttl seconds.

        The entry and its index membership are written in one MULTI/EXEC.
        The index TTL is refreshed to the same lifetime, so it always outlives
        the newest member.
        """
        user_key = self._user_key(user_id)
        with _store_errors("write"):
            with self._client.pipeline() as pipe:
                pipe.set(self._token_key(token), str(user_id), ex=ttl)
                pipe.sadd(user_key, token)
                pipe.expire(user_key, ttl)
                pipe.execute()

    def get(self, token: str) -> str | None:
        """Return the owning user id (as stored) or None if no live entry exists."""
        with _store_errors("read"):
            return self._client.get(self._token_key(token))

    def delete(self, token: str) -> None:
        """Remove the entry for token and drop it from its owner's index.

        Deleting a missing key is not an error.
        """
        token_key = self._token_key(token)
        with _store_errors("delete"):
            owner = self._client.get(token_key)
            with self._client.pipeline() as pipe:
                pipe.delete(token_key)
                if owner is not None:
                    pipe.srem(self._user_key(owner), token)
                pipe.execute()

    # ------------------------------------------------------------------
    # Per-user operations
    # ------------------------------------------------------------------

    def tokens_for_user(self, user_id: int) -> set[str]:
        """Return every token ever indexed for user_id that has not aged out of the index.

        Revoked tokens are removed from the index; members whose entry expired
        on its own may still be listed until the index itself expires.
        """
        with _store_errors("read"):
            return set(self._client.smembers(self._user_key(user_id)))

    def delete_user_sessions(self, user_id: int) -> int:
        """Delete every indexed session for user_id plus the index itself.

        Returns the number of keys Redis removed.
        """
        user_key = self._user_key(user_id)
        tokens = self.tokens_for_user(user_id)
        keys = [self._token_key(t) for t in tokens]
        with _store_errors("delete"):
            return int(self._client.delete(*keys, user_key))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if Redis answers, False otherwise. Used by /health."""
        try:
            return bool(self._client.ping())
        except redis.exceptions.RedisError:
            return False

    def close(self) -> None:
        self._client.close()
