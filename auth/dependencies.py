"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two independent mechanisms:
  1. Server-side session -- the browser flows. The session middleware has
     already put the request's Session on request.state.session.
  2. Authorization: Bearer <token> header -- the API flow, resolved against
     the access token store on every request.

Nothing here is process-global: the current user is always derived from the
request being handled.

try_* variants are soft (return None on failure); the others raise HTTP 401.

Layer rule: no imports from web/ or api/.
  auth/dependencies.py may import from fastapi because this module is part of
  the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.access_tokens import AccessTokenManager, TokenContext
from auth.errors import InvalidToken
from auth.models import Session, User
from auth.sessions import SessionManager
from auth.tokens import bearer_from_header


def get_session(request: Request) -> Session:
    """Return the request-scoped session loaded by the session middleware."""
    session = getattr(request.state, "session", None)
    if session is None:
        session = Session()
        request.state.session = session
    return session


def try_get_current_user(request: Request) -> User | None:
    """Resolve the user bound to this request's session. Never raises."""
    sessions: SessionManager = request.app.state.sessions
    return sessions.current_user(get_session(request))


def try_get_token_context(request: Request) -> TokenContext | None:
    """Resolve the bearer token on this request. Returns None on any failure."""
    tokens: AccessTokenManager = request.app.state.tokens
    raw = bearer_from_header(request.headers.get("Authorization"))
    try:
        return tokens.resolve(raw)
    except InvalidToken:
        return None


def get_token_context(request: Request) -> TokenContext:
    """Require a valid bearer token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(ctx: TokenContext = Depends(get_token_context)): ...
    """
    ctx = try_get_token_context(request)
    if ctx is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return ctx
