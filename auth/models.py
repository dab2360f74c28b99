"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, no I/O). Stores and managers do the
work; these only own the domain shape.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """An identity that can log in through any of the three flows.

    email is the natural key: the OAuth callback resolves accounts by it, and
    both password flows look users up by it. It is always stored normalised
    (stripped, lower-cased).

    hashed_password is None for accounts created by the OAuth callback -- they
    have no local password and can never pass verify_credentials().
    """

    email: str
    full_name: str | None = None
    id: int | None = None
    hashed_password: str | None = None  # None = OAuth-only user
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Session:
    """Server-held authentication state for one browser.

    user_id None means the session is Anonymous. An anonymous session only
    exists when something has to be remembered for the client (usually a
    flash message after a failed login). id is None until the session has been
    persisted.

    flash holds pending one-shot messages keyed "error" / "success". They are
    consumed by SessionManager.pop_flashes() exactly once.
    """

    id: str | None = None
    user_id: int | None = None
    created_at: str | None = None
    expires_at: str | None = None
    flash: dict[str, str] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


@dataclass
class AccessToken:
    """A persisted opaque bearer token.

    The raw token ("oat_<base64url(id)>.<secret>") is returned once by
    AccessTokenManager.issue() and never stored. token_hash is
    HMAC-SHA256(SECRET_KEY, secret); hint is the first characters of the
    secret, kept so a user can tell tokens apart.
    """

    user_id: int
    name: str
    token_hash: str
    hint: str
    id: int | None = None
    created_at: str | None = None
    last_used_at: str | None = None
    expires_at: str | None = None


@dataclass
class IssuedToken:
    """Return value of AccessTokenManager.issue(): the raw value plus its record."""

    value: str
    token: AccessToken
