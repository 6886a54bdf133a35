"""
auth/revoker.py -- Session revocation for logout, password change, and account deletion.

Revocation deletes the session entry; the signed token itself is left alone
and simply stops being honoured. Every operation is best effort: if Redis is
down the failure is logged and swallowed, because the entry still expires via
its TTL and the caller's logout must not fail on infrastructure trouble.

Layer rule: no imports from api/, core/, or posts/.
"""

from __future__ import annotations

import logging

from auth.errors import StoreUnavailableError
from auth.sessions import RedisSessionStore

logger = logging.getLogger("tokengate.auth")


class SessionRevoker:
    def __init__(self, sessions: RedisSessionStore) -> None:
        self._sessions = sessions

    def revoke(self, token: str) -> None:
        """Delete the session entry for token. Idempotent; never raises on store failure."""
        if not token:
            return
        try:
            self._sessions.delete(token)
        except StoreUnavailableError:
            logger.warning("Session revoke failed; entry will expire via TTL")

    def revoke_all(self, user_id: int) -> None:
        """Delete every indexed session for user_id. Never raises on store failure."""
        try:
            removed = self._sessions.delete_user_sessions(user_id)
        except StoreUnavailableError:
            logger.warning("Bulk session revoke failed for user_id=%s; entries will expire via TTL", user_id)
            return
        logger.info("Revoked all sessions for user_id=%s (%d keys)", user_id, removed)
