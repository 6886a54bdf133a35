"""
auth/issuer.py -- Token issuance for signup and login.

A token is only meaningful together with its session entry. issue() signs the
claims first and then writes the entry; if either step fails the caller gets
IssuanceError and no token, so the user is never treated as logged in with a
token that the authenticator would refuse.

Layer rule: no imports from api/, core/, or posts/.
"""

from __future__ import annotations

import logging

from auth.errors import IssuanceError, StoreUnavailableError
from auth.sessions import RedisSessionStore
from auth.tokens import TokenCodec

logger = logging.getLogger("tokengate.auth")


class TokenIssuer:
    def __init__(self, codec: TokenCodec, sessions: RedisSessionStore) -> None:
        self._codec = codec
        self._sessions = sessions

    @property
    def lifetime_seconds(self) -> int:
        return self._codec.lifetime_seconds

    def issue(self, user_id: int) -> str:
        """Sign a token for user_id and register its session entry.

        Raises IssuanceError if signing fails or the session store write fails.
        """
        token = self._codec.encode(user_id)
        try:
            self._sessions.set(token, user_id, ttl=self._codec.lifetime_seconds)
        except StoreUnavailableError as exc:
            logger.error("Session registration failed for user_id=%s", user_id)
            raise IssuanceError("could not register session") from exc
        logger.info("Session issued for user_id=%s", user_id)
        return token
