"""
web/routes.py -- Jinja2 template routes for the browser login flows.

These routes serve server-rendered HTML and redirects. They share app.state
with the API routes (same store and managers) but authenticate through the
server-side session instead of bearer tokens.

Routes:
  GET         /                 -- home page (auth required)
  GET         /login            -- login form (guest only)
  POST        /login            -- handle password login
  DELETE/POST /logout           -- end the session, redirect /login (auth required)
  GET         /github/redirect  -- OAuth redirect to GitHub
  GET         /github/callback  -- OAuth callback handler

Every terminal transition leaves exactly one flash message behind; the next
rendered page consumes it.
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from api.limiter import limiter
from api.models import UserResponse
from auth.dependencies import get_session, try_get_current_user
from auth.errors import AccessDenied, InvalidCredentials, ProviderError, StateMismatch
from auth.identity import verify_credentials
from auth.oauth import GITHUB, complete_callback, initiate
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("authdemo.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

LOGIN_SUCCESS = "Logged in successfully"
LOGIN_FAILED = "Incorrect email or password"
LOGOUT_SUCCESS = "Logged out successfully"

# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def _require_auth(request: Request, status_code: int = 302) -> Optional[RedirectResponse]:
    """Redirect Anonymous requests to /login. Returns None when the request may proceed.

    Call at the top of protected route handlers:
        if redirect := _require_auth(request):
            return redirect
    """
    if try_get_current_user(request) is None:
        return RedirectResponse("/login", status_code=status_code)
    return None


def _require_guest(request: Request) -> Optional[RedirectResponse]:
    """Redirect Authenticated requests to /. Used by guest-only pages."""
    if try_get_current_user(request) is not None:
        return RedirectResponse("/", status_code=302)
    return None


def _page_context(request: Request, **extra) -> dict:
    """Shared data for every rendered page: current user plus one-shot flash messages.

    Popping the flashes here is what makes them read-once.
    """
    sessions: SessionManager = request.app.state.sessions
    user = try_get_current_user(request)
    flashes = sessions.pop_flashes(get_session(request))
    context = {
        "user": UserResponse.from_user(user).model_dump(by_alias=True) if user else None,
        "error": flashes.get("error"),
        "success": flashes.get("success"),
    }
    context.update(extra)
    return context


def _flash_redirect(request: Request, key: str, message: str, location: str) -> RedirectResponse:
    sessions: SessionManager = request.app.state.sessions
    sessions.flash(get_session(request), key, message)
    return RedirectResponse(location, status_code=302)


# ---------------------------------------------------------------------------
# GET / -- home page
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    if redirect := _require_auth(request):
        return redirect
    return templates.TemplateResponse(request, "home.html", _page_context(request))


# ---------------------------------------------------------------------------
# Session login / logout
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login page with the email/password form and the GitHub button."""
    if redirect := _require_guest(request):
        return redirect
    return templates.TemplateResponse(
        request,
        "login.html",
        _page_context(request, github_enabled=get_settings().github_enabled),
    )


@router.post("/login", response_class=HTMLResponse)
@limiter.limit(get_settings().login_rate_limit)  # [H2]
def login_post(
    request: Request,
    email: str = Form(default=""),
    password: str = Form(default=""),
) -> RedirectResponse:
    """Handle the login form. Unknown email and wrong password get the same message."""
    user_store: UserStore = request.app.state.user_store
    sessions: SessionManager = request.app.state.sessions
    try:
        user = verify_credentials(user_store, email, password)  # [C1] timing equalization
    except InvalidCredentials:
        logger.info("Form login rejected")
        return _flash_redirect(request, "error", LOGIN_FAILED, "/login")

    sessions.login(get_session(request), user)
    resp = _flash_redirect(request, "success", LOGIN_SUCCESS, "/")
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.api_route("/logout", methods=["DELETE", "POST"])
def logout(request: Request) -> RedirectResponse:
    """End the session and send the browser to /login.

    303 in both outcomes so that a DELETE issued by script is followed with a GET.
    """
    if redirect := _require_auth(request, status_code=303):
        return redirect
    sessions: SessionManager = request.app.state.sessions
    session = get_session(request)
    sessions.logout(session)
    sessions.flash(session, "success", LOGOUT_SUCCESS)
    return RedirectResponse("/login", status_code=303)


# ---------------------------------------------------------------------------
# GitHub OAuth
# ---------------------------------------------------------------------------


@router.get("/github/redirect")
async def github_redirect(request: Request) -> RedirectResponse:
    """Redirect the browser to GitHub's authorization page."""
    client = request.app.state.oauth.create_client(GITHUB)
    if client is None:
        logger.warning("GitHub login requested but the provider is not configured")
        return _flash_redirect(request, "error", ProviderError.message, "/login")
    redirect_uri = str(request.url_for("github_callback"))
    return await initiate(request, client, redirect_uri)


@router.get("/github/callback", name="github_callback")
async def github_callback(request: Request) -> RedirectResponse:
    """Handle GitHub's callback and establish a session.

    Flow:
      1. Ordered checks: access denied, state, provider error (auth.oauth.check_callback).
      2. Exchange the code, fetch profile and primary verified email.
      3. Find or create the local user by email.
      4. Log the session in and redirect to /.
    Every failure lands on /login with its own flash message.
    """
    client = request.app.state.oauth.create_client(GITHUB)
    if client is None:
        return _flash_redirect(request, "error", ProviderError.message, "/login")

    user_store: UserStore = request.app.state.user_store
    sessions: SessionManager = request.app.state.sessions
    try:
        user = await complete_callback(request, client, user_store)
    except (AccessDenied, StateMismatch, ProviderError) as exc:
        logger.info("GitHub login failed: %s", exc.code)
        return _flash_redirect(request, "error", exc.message, "/login")

    sessions.login(get_session(request), user)
    resp = _flash_redirect(request, "success", LOGIN_SUCCESS, "/")
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
