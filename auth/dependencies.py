"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The Authorization: Bearer <token> header is the only credential read here.
The authenticator itself lives on app.state (built once in the lifespan), so
these helpers hold no state of their own.

require_session() is the gate. It raises HTTP 401 on any REJECT and HTTP 503
when the session store is unreachable, then publishes the verified user id on
request.state.user_id for the rest of the request.
get_current_user_id() / get_current_user() build on it.

Layer rule: no imports from core/ or posts/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from auth.authenticator import RequestAuthenticator
from auth.models import AuthenticatedSession, User
from auth.store import UserStore


def require_session(request: Request) -> AuthenticatedSession:
    """Require a live session. Raises HTTP 401 or 503 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(session: AuthenticatedSession = Depends(require_session)): ...

    The 401 body is identical for every rejection reason; which check failed
    is only visible in the logs.
    """
    authenticator: RequestAuthenticator = request.app.state.authenticator
    result = authenticator.authenticate(request.headers.get("Authorization"))
    if result.unavailable:
        raise HTTPException(
            status_code=503,
            detail={"code": "service_unavailable", "message": "Session store unavailable. Try again later."},
        )
    if not result.accepted:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    request.state.user_id = result.user_id
    return AuthenticatedSession(user_id=result.user_id, token=result.token)


def get_current_user_id(session: AuthenticatedSession = Depends(require_session)) -> int:
    """Return only the authenticated user id."""
    return session.user_id


def get_current_user(request: Request, session: AuthenticatedSession = Depends(require_session)) -> User:
    """Load the authenticated user's record. Raises HTTP 404 if it no longer exists.

    A live session for a deleted account can only exist if revocation at
    delete time failed; the record lookup catches that case.
    """
    user_store: UserStore = request.app.state.user_store
    user = user_store.find_by_id(session.user_id)
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "user_not_found", "message": "User not found."},
        )
    return user
