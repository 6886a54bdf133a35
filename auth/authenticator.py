"""
auth/authenticator.py -- Per-request bearer token validation.

Each request ends in exactly one of two states:

    ACCEPT(user_id)   signature ok, exp in the future, live session entry found
    REJECT(reason)    "missing token" | "invalid token" |
                      "expired or revoked session" | "session store unavailable"

The signature check runs first because it is local and rejects forged or
malformed tokens without a Redis round-trip. The store lookup is still
mandatory for every token that passes it: a valid signature alone never
authenticates. If Redis cannot be reached the request is rejected (fail
closed); AuthResult.unavailable tells the HTTP layer to answer 503 rather
than 401.

The authenticator keeps no per-request state, so concurrent requests carrying
the same token need no coordination.

Layer rule: no imports from api/, core/, or posts/. auth/dependencies.py is
the FastAPI adapter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.errors import SessionAbsentError, StoreUnavailableError, ValidationError
from auth.sessions import RedisSessionStore
from auth.tokens import TokenCodec

logger = logging.getLogger("tokengate.auth")

REASON_MISSING = "missing token"
REASON_INVALID = "invalid token"
REASON_ABSENT = "expired or revoked session"
REASON_UNAVAILABLE = "session store unavailable"


@dataclass(frozen=True)
class AuthResult:
    """Terminal state of one authentication attempt."""

    accepted: bool
    user_id: int | None = None
    token: str | None = None
    reason: str | None = None
    unavailable: bool = False

    @classmethod
    def accept(cls, user_id: int, token: str) -> AuthResult:
        return cls(accepted=True, user_id=user_id, token=token)

    @classmethod
    def reject(cls, reason: str, unavailable: bool = False) -> AuthResult:
        return cls(accepted=False, reason=reason, unavailable=unavailable)


def extract_bearer_token(header: str | None) -> str:
    """Return the token from an "Authorization: Bearer <token>" header value.

    Raises ValidationError("missing token") if the header is absent or not
    exactly two space-separated parts with the Bearer scheme.
    """
    if not header:
        raise ValidationError(REASON_MISSING)
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise ValidationError(REASON_MISSING)
    return parts[1]


class RequestAuthenticator:
    """Combines the token codec and the session store into one gate.

    Built once at startup with its dependencies and shared by all requests.
    """

    def __init__(self, codec: TokenCodec, sessions: RedisSessionStore) -> None:
        self._codec = codec
        self._sessions = sessions

    def verify(self, token: str) -> int:
        """Return the user id a token authenticates as.

        Raises:
            ValidationError: bad signature, malformed claims, or expired.
            SessionAbsentError: no live session entry for this exact token,
                or the entry belongs to a different user.
            StoreUnavailableError: the session store could not be queried.
        """
        claims = self._codec.decode(token)
        user_id: int = claims["user_id"]
        owner = self._sessions.get(token)
        if owner is None:
            raise SessionAbsentError(REASON_ABSENT)
        if owner != str(user_id):
            logger.warning("Session entry owner mismatch for user_id=%s", user_id)
            raise SessionAbsentError(REASON_ABSENT)
        return user_id

    def authenticate(self, authorization: str | None) -> AuthResult:
        """Run the full ACCEPT/REJECT state machine for one request header."""
        try:
            token = extract_bearer_token(authorization)
            user_id = self.verify(token)
        except ValidationError as exc:
            logger.debug("Rejected request: %s", exc)
            return AuthResult.reject(str(exc))
        except SessionAbsentError:
            logger.debug("Rejected request: %s", REASON_ABSENT)
            return AuthResult.reject(REASON_ABSENT)
        except StoreUnavailableError:
            logger.error("Rejected request: %s", REASON_UNAVAILABLE)
            return AuthResult.reject(REASON_UNAVAILABLE, unavailable=True)
        return AuthResult.accept(user_id, token)
