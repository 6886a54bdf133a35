"""
api/main.py -- FastAPI application entry point for TokenGate.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. log_requests          -- one access log line per request

Lifespan builds every stateful collaborator exactly once and hangs it on
app.state: the credential and post stores, the Redis session store, and the
token codec / issuer / authenticator / revoker that share them. Handlers and
dependencies read from app.state; nothing in auth/ holds module-level state.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.posts import router as posts_router
from api.routes.v1.users import router as users_router
from auth.authenticator import RequestAuthenticator
from auth.errors import IssuanceError, StoreUnavailableError
from auth.issuer import TokenIssuer
from auth.revoker import SessionRevoker
from auth.sessions import RedisSessionStore
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import Settings, get_settings
from posts.store import PostStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tokengate.api")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def install_auth(app: FastAPI, codec: TokenCodec, sessions: RedisSessionStore) -> None:
    """Build the issuer, authenticator, and revoker around one codec and one session store.

    All three share the same instances, so the secret and lifetime used to
    sign a token are the ones used to check it.
    """
    app.state.sessions = sessions
    app.state.codec = codec
    app.state.issuer = TokenIssuer(codec, sessions)
    app.state.authenticator = RequestAuthenticator(codec, sessions)
    app.state.revoker = SessionRevoker(sessions)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. An unreachable Redis does not block startup: authenticated
    requests fail closed with 503 until it comes back.
    """
    settings: Settings = get_settings()
    logger.info("TokenGate API starting up")
    app.state.settings = settings
    app.state.user_store = UserStore(settings.database_url)
    app.state.post_store = PostStore(settings.database_url)
    logger.info("Credential and post stores initialized")

    sessions = RedisSessionStore.from_url(
        settings.redis_url,
        timeout=settings.redis_timeout_seconds,
        key_prefix=settings.session_key_prefix,
    )
    if sessions.ping():
        logger.info("Session store reachable")
    else:
        logger.warning("Session store unreachable -- authenticated requests will fail until it recovers")
    codec = TokenCodec(settings.secret_key, lifetime_seconds=settings.session_expire_seconds)
    install_auth(app, codec, sessions)
    logger.info("Auth initialized (session lifetime %ds)", settings.session_expire_seconds)

    yield

    app.state.sessions.close()
    app.state.post_store.close()
    app.state.user_store.close()
    logger.info("TokenGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TokenGate API",
    description="Account signup/login with Redis-backed bearer sessions, plus per-user posts.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

_settings = get_settings()

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allow_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Logs method, path, status, latency, and client host. Headers and bodies are
# never logged: they carry bearer tokens and passwords.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(posts_router, prefix="/api/v1", tags=["Posts"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly. Internal failure details go to the log, never the body.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with a structured error when the body or query params fail validation."""
    return _error(400, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {"code", "message"} dict as
    detail. When detail is already a dict, use it directly as the error field.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(IssuanceError)
async def issuance_error_handler(request: Request, exc: IssuanceError) -> JSONResponse:
    """A token could not be issued. 503 when the session store caused it, 500 otherwise."""
    logger.error("Token issuance failed on %s %s: %s", request.method, request.url.path, exc)
    if isinstance(exc.__cause__, StoreUnavailableError):
        return _error(503, "service_unavailable", "Could not create session. Try again later.")
    return _error(500, "internal_error", "Could not create session.")


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return _error(503, "service_unavailable", "A backing store is unavailable. Try again later.")


@app.exception_handler(OperationalError)
async def database_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """The credential or post database could not be reached."""
    logger.error("Database unavailable on %s %s", request.method, request.url.path)
    return _error(503, "service_unavailable", "A backing store is unavailable. Try again later.")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness plus database and session store reachability."""
    components = {
        "app": "ok",
        "database": "ok" if request.app.state.user_store.ping() else "error",
        "session_store": "ok" if request.app.state.sessions.ping() else "error",
    }
    status = "healthy" if all(v == "ok" for v in components.values()) else "degraded"
    return HealthResponse(status=status, version=VERSION, components=components)
