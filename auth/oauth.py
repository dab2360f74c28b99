"""
auth/oauth.py -- GitHub login through Authlib, with an explicit callback check order.

Reads configuration from core.config.get_settings() at module load. GitHub is
only registered when both client ID and secret are configured; the login page
hides the button otherwise.

Callback checks (check_callback) run in a fixed order and the first failure
wins:
  1. error=access_denied            -> AccessDenied   "Access was denied"
  2. state missing / expired / wrong -> StateMismatch  "Request expired. Retry again"
  3. any other error, or no code     -> ProviderError  "Unable to authenticate. Retry again"
A request the user declined must never be reported as a state mismatch, so
the order is part of the contract and is tested directly.

State handling: initiate() generates the state value itself, keeps a copy with
its issue time in the signed Starlette session, and hands it to Authlib.
Authlib stores its own copy as well and re-checks it during the code exchange;
a failure there is also mapped to StateMismatch.

Security notes:
  [H1] Only the GitHub email flagged both primary and verified is accepted.
       An unverified address could belong to someone else, and the local
       account is resolved by email.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import time
from collections.abc import Mapping
from dataclasses import dataclass

import httpx
from authlib.integrations.base_client.errors import MismatchingStateError
from authlib.integrations.starlette_client import OAuth, OAuthError

from auth.errors import AccessDenied, ProviderError, StateMismatch
from auth.identity import find_or_create_by_email
from auth.models import User
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("authdemo.auth.oauth")

GITHUB = "github"
_STATE_KEY = "github_oauth_state"

# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

# GitHub -- static endpoints (no OIDC discovery document)
if _cfg.github_enabled:
    oauth.register(
        name=GITHUB,
        client_id=_cfg.github_client_id,
        client_secret=_cfg.github_client_secret,
        access_token_url="https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
        authorize_url="https://github.com/login/oauth/authorize",
        api_base_url="https://api.github.com/",
        client_kwargs={"scope": _cfg.github_scopes},
    )
    logger.info("GitHub OAuth provider registered")


@dataclass
class GithubProfile:
    email: str
    name: str | None
    subject: str


# ---------------------------------------------------------------------------
# Redirect
# ---------------------------------------------------------------------------


async def initiate(request, client, redirect_uri: str):
    """Remember a fresh state value and redirect the browser to GitHub."""
    state = secrets.token_urlsafe(24)
    request.session[_STATE_KEY] = {"value": state, "issued_at": time.time()}
    return await client.authorize_redirect(request, redirect_uri, state=state)


# ---------------------------------------------------------------------------
# Callback
# ---------------------------------------------------------------------------


def check_callback(
    params: Mapping[str, str],
    expected_state: str | None,
    issued_at: float | None,
    max_age: int,
    now: float | None = None,
) -> None:
    """Validate the provider's callback parameters. Raises on the first failed check."""
    error = params.get("error")
    if error == "access_denied":
        raise AccessDenied()

    state = params.get("state")
    if not state or not expected_state or not hmac.compare_digest(state.encode(), expected_state.encode()):
        raise StateMismatch()
    now = time.time() if now is None else now
    if issued_at is None or now - issued_at > max_age:
        raise StateMismatch()

    if error or not params.get("code"):
        raise ProviderError()


async def complete_callback(request, client, store: UserStore) -> User:
    """Turn a GitHub callback into a local user.

    The pending state is popped before anything else so it can be used once
    only. Raises AccessDenied, StateMismatch or ProviderError.
    """
    pending = request.session.pop(_STATE_KEY, None) or {}
    check_callback(
        request.query_params,
        pending.get("value"),
        pending.get("issued_at"),
        get_settings().oauth_state_max_age_seconds,
    )

    try:
        token = await client.authorize_access_token(request)
    except MismatchingStateError as exc:
        raise StateMismatch() from exc
    except (OAuthError, httpx.HTTPError) as exc:
        logger.warning("GitHub code exchange failed: %s", exc)
        raise ProviderError() from exc

    profile = await fetch_github_profile(client, token)
    user = find_or_create_by_email(store, profile.email, {"full_name": profile.name})
    logger.info("GitHub account %s resolved to user %d", profile.subject, user.id)
    return user


async def fetch_github_profile(client, token: dict) -> GithubProfile:
    """Fetch the GitHub user and its primary verified email.

    GitHub does not include the email in the access token. Two API calls are
    required:
      1. GET /user -- numeric id and display name.
      2. GET /user/emails -- the primary verified address [H1].
    """
    try:
        resp = await client.get("user", token=token)
        resp.raise_for_status()
        profile = resp.json()

        emails_resp = await client.get("user/emails", token=token)
        emails_resp.raise_for_status()
        emails = emails_resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("GitHub profile fetch failed: %s", exc)
        raise ProviderError() from exc

    email: str | None = None
    for entry in emails:
        if entry.get("primary") and entry.get("verified"):
            email = entry.get("email")
            break

    if not email:
        logger.warning("GitHub login rejected: no primary verified email")
        raise ProviderError()

    return GithubProfile(
        email=email,
        name=profile.get("name") or profile.get("login"),
        subject=str(profile.get("id", "")),
    )
