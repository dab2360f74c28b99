"""
api/main.py -- FastAPI application entry point.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. log_requests          -- one log line per request with latency
  2. attach_session        -- loads the server-side Session into request.state
                              and keeps the session cookie in sync afterwards
  3. SessionMiddleware     -- signed cookie Authlib uses for OAuth state
  4. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  5. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan handles startup (store, managers, OAuth registry, optional seeding,
purge task) and shutdown (cancel purge task, close DB connection)
symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from auth.access_tokens import AccessTokenManager
from auth.errors import AuthError, InvalidCredentials
from auth.oauth import oauth as oauth_client
from auth.seed import seed_users
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import SESSION_COOKIE, clear_session_cookie, set_session_cookie
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authdemo.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired sessions and access tokens every hour.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(60 * 60)
        try:
            sessions = app.state.sessions.purge_expired()
            tokens = app.state.tokens.purge_expired()
        except SQLAlchemyError:
            logger.exception("Purge of expired sessions/tokens failed")
            continue
        if sessions or tokens:
            logger.info("Purged %d expired session(s) and %d expired token(s)", sessions, tokens)


def wire_state(app: FastAPI, user_store: UserStore) -> None:
    """Attach the store and the managers built on it to app.state."""
    app.state.user_store = user_store
    app.state.sessions = SessionManager(
        user_store, settings.session_expire_seconds, settings.anonymous_session_expire_seconds
    )
    app.state.tokens = AccessTokenManager(user_store, settings.access_token_expire_seconds)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime."""
    logger.info("Auth demo starting up")
    wire_state(app, UserStore(settings.database_url))
    app.state.oauth = oauth_client
    if settings.seed_demo_user:
        seed_users(app.state.user_store)
    logger.info("Auth initialized (github_enabled=%s)", settings.github_enabled)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.user_store.close()
    logger.info("Auth demo shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Auth Demo",
    description="Session, GitHub OAuth and opaque access token login.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() puts each new middleware outside the ones registered
# before it, so registration runs innermost first.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(SlowAPIMiddleware)

# Authlib keeps the OAuth state in request.session between the authorization
# redirect and the callback. Starlette's signed-cookie session provides it.
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.secret_key,
    session_cookie="oauth_state",
    same_site="lax",
    https_only=settings.secure_cookies,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def attach_session(request: Request, call_next):
    """Load the server-side session for this request and sync its cookie.

    Route handlers and dependencies mutate request.state.session in place
    (login regenerates the id, logout clears it, flash() may create it). After
    the response is produced the final id is compared with the incoming
    cookie: a new id is written, a vanished one is deleted.
    """
    incoming = request.cookies.get(SESSION_COOKIE)
    session = request.app.state.sessions.load(incoming)
    request.state.session = session

    response = await call_next(request)

    if session.id != incoming:
        if session.id is not None:
            set_session_cookie(response, session.id)
        else:
            clear_session_cookie(response)
    return response


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

app.include_router(auth_router, prefix="/api", tags=["Auth"])
# Web UI router is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render auth failures that a route let escape.

    Only InvalidCredentials is expected here (POST /api/login); other auth
    errors are handled at their route. Everything maps to 400 except an
    invalid token, which is an authentication failure (401).
    """
    status_code = 401 if exc.code == "invalid_token" else 400
    if isinstance(exc, InvalidCredentials):
        logger.info("Rejected credentials on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
        headers={"Cache-Control": "no-store"},
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and database reachability."""
    try:
        request.app.state.user_store.ping()
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        database = "error"
    return HealthResponse(version=VERSION, database=database)
