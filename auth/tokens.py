"""
auth/tokens.py -- Signed session token codec (JWT, HS256).

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with the process-wide
       SECRET_KEY and carry user_id, exp, iat, and a random jti. The jti makes
       every issued token a distinct string, so two logins by the same user in
       the same second still get independent session entries.

  Expiry is checked here against the codec's clock rather than by jose, so
  the same clock that stamps exp also judges it. Production uses time.time;
  tests inject a controllable clock.

  A token that decodes cleanly is only half of the story -- the caller must
  still find its live entry in the session store (see auth/authenticator.py).

Layer rule: no imports from api/, core/, or posts/. The secret is passed in by
whoever builds the codec; this module never reads Settings.
"""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable

from jose import JWTError, jwt

from auth.errors import IssuanceError, ValidationError

ALGORITHM = "HS256"


class TokenCodec:
    """Builds, signs, and verifies session token claims.

    Usage:
        codec = TokenCodec(secret, lifetime_seconds=86400)
        token = codec.encode(42)
        claims = codec.decode(token)   # {"user_id": 42, "exp": ..., ...}
    """

    def __init__(
        self,
        secret: str,
        lifetime_seconds: int = 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("TokenCodec requires a non-empty signing secret")
        if lifetime_seconds <= 0:
            raise ValueError("lifetime_seconds must be positive")
        self._secret = secret
        self.lifetime_seconds = lifetime_seconds
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def encode(self, user_id: int) -> str:
        """Sign a fresh claims payload for user_id expiring one lifetime from now.

        Raises IssuanceError if signing fails.
        """
        issued_at = self.now()
        claims = {
            "user_id": user_id,
            "iat": issued_at,
            "exp": issued_at + self.lifetime_seconds,
            "jti": secrets.token_urlsafe(12),
        }
        try:
            return jwt.encode(claims, self._secret, algorithm=ALGORITHM)
        except JWTError as exc:
            raise IssuanceError("could not sign session token") from exc

    def decode(self, token: str) -> dict:
        """Verify signature and expiry and return the claims.

        Raises ValidationError for a bad signature, malformed payload, missing
        claims, or an exp that is not in the future.
        """
        if not token:
            raise ValidationError("missing token")
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise ValidationError("invalid token") from exc

        user_id = claims.get("user_id")
        exp = claims.get("exp")
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise ValidationError("invalid token")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise ValidationError("invalid token")
        if exp <= self.now():
            raise ValidationError("invalid token")
        return claims
