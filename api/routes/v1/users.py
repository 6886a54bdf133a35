"""
api/routes/v1/users.py -- Account and session REST endpoints.

Routes:
  POST   /api/v1/user/signup           -- create account; issue session token (201)
  POST   /api/v1/user/login            -- password login; issue session token
  POST   /api/v1/user/logout           -- revoke header/cookie session; always 200
  GET    /api/v1/session               -- current user profile (requires auth)
  PATCH  /api/v1/user                  -- update name/age (requires auth)
  PATCH  /api/v1/user/update_password  -- change password; revoke all sessions (requires auth)
  DELETE /api/v1/user                  -- delete account; revoke sessions first (requires auth)

Security:
  authenticate_user() provides timing equalization -- use it, never inline.
  Login and signup responses carry Cache-Control: no-store.
  Issuance failures surface through the IssuanceError handler in api/main.py;
  no token is returned unless its session entry was written.
  Revocation is best effort: logout reports success even if Redis is down.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import (
    LoginRequest,
    MessageResponse,
    PasswordUpdateRequest,
    SignupRequest,
    TokenResponse,
    UserPatch,
    UserResponse,
    UserUpdatedResponse,
)
from auth.authenticator import extract_bearer_token
from auth.dependencies import get_current_user, require_session
from auth.errors import DuplicateCredentialError, ValidationError
from auth.issuer import TokenIssuer
from auth.models import AuthenticatedSession, User
from auth.passwords import authenticate_user, hash_password, verify_password
from auth.revoker import SessionRevoker
from auth.store import UserStore
from posts.store import PostStore

SESSION_COOKIE = "session"

# Auth policy:
# - POST   /api/v1/user/signup:           public
# - POST   /api/v1/user/login:            public
# - POST   /api/v1/user/logout:           public -- revoking an unknown token is a no-op
# - GET    /api/v1/session:               requires auth (require_session)
# - PATCH  /api/v1/user:                  requires auth
# - PATCH  /api/v1/user/update_password:  requires auth
# - DELETE /api/v1/user:                  requires auth
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/user/signup", response_model=TokenResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Create an account and log it in.

    Duplicate emails get a 400 distinct from generic failures so the client
    can tell the user to log in instead.
    """
    user_store: UserStore = request.app.state.user_store
    issuer: TokenIssuer = request.app.state.issuer

    try:
        user = user_store.create(
            User(
                email=body.email,
                first_name=body.first_name,
                last_name=body.last_name,
                age=body.age,
                password=hash_password(body.password),
            )
        )
    except DuplicateCredentialError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "email_taken", "message": "Email already registered."},
        ) from exc

    token = issuer.issue(user.id)
    return _token_response(request, token, issuer.lifetime_seconds, status_code=201)


@router.post("/user/login", response_model=TokenResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password and issue a new session.

    Returns the same generic error for unknown email and wrong password to
    avoid leaking which emails are registered. Each login creates an
    independent session; existing sessions on other devices stay valid.
    """
    user_store: UserStore = request.app.state.user_store
    issuer: TokenIssuer = request.app.state.issuer

    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid credentials."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = issuer.issue(user.id)
    return _token_response(request, token, issuer.lifetime_seconds)


@router.post("/user/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke the session named by the Authorization header and/or the session cookie.

    The token is not verified first: deleting an entry that does not exist is
    a no-op, and a forged token cannot match anyone else's entry.
    """
    revoker: SessionRevoker = request.app.state.revoker

    header_token = _bearer_or_none(request.headers.get("Authorization"))
    cookie_token = request.cookies.get(SESSION_COOKIE)
    for token in {header_token, cookie_token}:
        if token:
            revoker.revoke(token)

    resp = JSONResponse(content={"message": "Successfully logged out"})
    resp.delete_cookie(SESSION_COOKIE)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/session", response_model=UserResponse)
def get_session(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the profile of the user owning the presented session."""
    return UserResponse.from_user(current_user)


@router.patch("/user", response_model=UserUpdatedResponse)
def update_user(
    request: Request,
    body: UserPatch,
    current_user: User = Depends(get_current_user),
) -> UserUpdatedResponse:
    """Update profile fields. The stored password hash is written back unchanged."""
    user_store: UserStore = request.app.state.user_store

    if body.first_name is not None:
        current_user.first_name = body.first_name
    if body.last_name is not None:
        current_user.last_name = body.last_name
    if body.age is not None:
        current_user.age = body.age

    if not user_store.save(current_user):
        raise HTTPException(
            status_code=404,
            detail={"code": "user_not_found", "message": "User not found."},
        )
    updated = user_store.find_by_id(current_user.id)
    return UserUpdatedResponse(message="User updated successfully", user=UserResponse.from_user(updated))


@router.patch("/user/update_password", response_model=MessageResponse)
def update_password(
    request: Request,
    body: PasswordUpdateRequest,
    session: AuthenticatedSession = Depends(require_session),
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    """Change the password and end every session of this user, including the current one.

    The client must log in again with the new password.
    """
    user_store: UserStore = request.app.state.user_store
    revoker: SessionRevoker = request.app.state.revoker

    if not verify_password(body.current_password, current_user.password):
        raise HTTPException(
            status_code=401,
            detail={"code": "invalid_password", "message": "Invalid current password."},
        )

    current_user.password = hash_password(body.new_password)
    if not user_store.save(current_user):
        raise HTTPException(
            status_code=404,
            detail={"code": "user_not_found", "message": "User not found."},
        )

    revoker.revoke(session.token)
    revoker.revoke_all(current_user.id)

    resp = JSONResponse(content={"message": "Password updated successfully"})
    resp.delete_cookie(SESSION_COOKIE)
    return resp


@router.delete("/user", response_model=MessageResponse)
def delete_user(
    request: Request,
    session: AuthenticatedSession = Depends(require_session),
) -> JSONResponse:
    """Delete the account and its posts.

    Sessions are revoked before the credential record is removed, so no
    request can authenticate as a user that no longer exists.
    """
    user_store: UserStore = request.app.state.user_store
    post_store: PostStore = request.app.state.post_store
    revoker: SessionRevoker = request.app.state.revoker

    revoker.revoke(session.token)
    revoker.revoke_all(session.user_id)

    post_store.delete_all_for_user(session.user_id)
    if not user_store.delete(session.user_id):
        raise HTTPException(
            status_code=404,
            detail={"code": "user_not_found", "message": "User not found."},
        )

    resp = JSONResponse(content={"message": "User deleted successfully"})
    resp.delete_cookie(SESSION_COOKIE)
    return resp


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _bearer_or_none(header: str | None) -> str | None:
    try:
        return extract_bearer_token(header)
    except ValidationError:
        return None


def _token_response(request: Request, token: str, lifetime: int, status_code: int = 200) -> JSONResponse:
    """Build the signup/login response and set the session cookie.

    The cookie max_age matches the token lifetime so both expire together.
    httponly keeps it away from scripts; samesite=lax blocks cross-site POSTs.
    """
    resp = JSONResponse(
        status_code=status_code,
        content=TokenResponse(token=token, expires_in=lifetime).model_dump(),
    )
    resp.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=request.app.state.settings.secure_cookies,
        max_age=lifetime,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
