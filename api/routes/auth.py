"""
api/routes/auth.py -- Token-based login for API clients.

Routes:
  POST   /api/login   -- verify email/password; issue an opaque access token
  DELETE /api/logout  -- revoke the token used for this request
  GET    /api/me      -- current user (requires bearer token)
  GET    /api/tokens  -- the caller's live tokens (requires bearer token)

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] verify_credentials() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on responses that carry a token.
  Revocation never takes a token or token id from the request: it always
  targets the token that authenticated the request.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import AccessTokenInfo, AccessTokenResponse, LoginRequest, MessageResponse, UserResponse
from auth.access_tokens import AccessTokenManager, TokenContext
from auth.dependencies import get_token_context, try_get_token_context
from auth.errors import TokenNotFound
from auth.identity import verify_credentials
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("authdemo.api.auth")

# Auth policy:
# - POST   /api/login:   public -- login endpoint must be unauthenticated
# - DELETE /api/logout:  bearer token; a token that does not resolve is a 400, not a 401
# - GET    /api/me:      bearer token (get_token_context)
# - GET    /api/tokens:  bearer token (get_token_context)
router = APIRouter()


@router.post("/login", response_model=AccessTokenResponse)
@limiter.limit(get_settings().login_rate_limit)  # [H2] brute-force mitigation
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Exchange email and password for a new access token.

    InvalidCredentials is not caught here: the app-level handler renders it
    as a 400 error envelope with the same message for unknown email and wrong
    password.
    """
    user_store: UserStore = request.app.state.user_store
    tokens: AccessTokenManager = request.app.state.tokens

    user = verify_credentials(user_store, body.email, body.password)
    issued = tokens.issue(user, name=body.name or "api")

    resp = JSONResponse(
        status_code=200,
        content=AccessTokenResponse.from_issued(issued).model_dump(by_alias=True),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.delete("/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke the bearer token presented with this request.

    Token resolution happens first; a missing, revoked or otherwise invalid
    token never reaches the revoke step.
    """
    tokens: AccessTokenManager = request.app.state.tokens
    ctx = try_get_token_context(request)
    if ctx is None:
        return JSONResponse(status_code=400, content={"message": TokenNotFound.message})

    try:
        tokens.revoke(ctx.user, ctx.token.id)
    except TokenNotFound as exc:
        return JSONResponse(status_code=400, content={"message": exc.message})
    return JSONResponse(status_code=200, content={"message": "Logged out"})


@router.get("/me", response_model=UserResponse)
def me(ctx: TokenContext = Depends(get_token_context)) -> UserResponse:
    """Return identity information for the token's owner."""
    return UserResponse.from_user(ctx.user)


@router.get("/tokens", response_model=list[AccessTokenInfo])
def list_tokens(request: Request, ctx: TokenContext = Depends(get_token_context)) -> list[AccessTokenInfo]:
    """List the caller's live tokens. Raw token values are never returned."""
    tokens: AccessTokenManager = request.app.state.tokens
    return [
        AccessTokenInfo(
            id=t.id,
            name=t.name,
            hint=t.hint,
            created_at=t.created_at,
            last_used_at=t.last_used_at,
            expires_at=t.expires_at,
            current=t.id == ctx.token.id,
        )
        for t in tokens.list_for(ctx.user)
    ]
