"""
auth/tokens.py -- Password hashing, opaque token material, and cookie helpers.

Security design decisions:
  Passwords: bcrypt directly. Bcrypt is the right choice for low-entropy
       secrets because its cost factor makes brute force expensive. The
       _DUMMY_HASH constant enables timing equalization in
       verify_credentials() so response time does not reveal whether an email
       is registered [C1].

  Access tokens: "oat_<base64url(id)>.<secret>". The id part lets the store do
       an O(1) primary-key lookup; the secret (secrets.token_urlsafe(32), 256
       bits) is the part an attacker would have to guess. Only
       HMAC-SHA256(SECRET_KEY, secret) is stored, and the comparison uses
       hmac.compare_digest so it does not leak how many characters matched.

  Session ids: secrets.token_urlsafe(32), carried in an httpOnly cookie.

Layer rule: no imports from api/ or web/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets

import bcrypt

from core.config import get_settings

TOKEN_PREFIX = "oat_"
SESSION_COOKIE = "session_id"
# Largest id a SQLite INTEGER column can hold.
_MAX_TOKEN_ID = 2**63 - 1

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes; longer input is truncated here
    rather than rejected by bcrypt 4.x.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than later ones.
DUMMY_HASH: str = hash_password("authdemo_timing_dummy")


# ---------------------------------------------------------------------------
# Opaque access tokens
# ---------------------------------------------------------------------------


def generate_token_secret() -> str:
    return secrets.token_urlsafe(32)


def hash_token_secret(secret: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, secret) as a hex string.

    An attacker holding a copy of the database cannot use the stored hashes as
    bearer tokens without also knowing SECRET_KEY.
    """
    return hmac.new(
        get_settings().secret_key.encode(),
        secret.encode(),
        hashlib.sha256,
    ).hexdigest()


def secrets_match(secret: str, token_hash: str) -> bool:
    return hmac.compare_digest(hash_token_secret(secret), token_hash)


def encode_token(token_id: int, secret: str) -> str:
    encoded_id = base64.urlsafe_b64encode(str(token_id).encode()).decode().rstrip("=")
    return f"{TOKEN_PREFIX}{encoded_id}.{secret}"


def decode_token(raw: str) -> tuple[int, str] | None:
    """Split a raw bearer token into (token_id, secret).

    Returns None for anything that is not a well-formed token; callers treat
    that exactly like an unknown token.
    """
    if not raw or not raw.startswith(TOKEN_PREFIX):
        return None
    encoded_id, sep, secret = raw[len(TOKEN_PREFIX) :].partition(".")
    if not sep or not encoded_id or not secret:
        return None
    padding = "=" * (-len(encoded_id) % 4)
    try:
        decoded = base64.urlsafe_b64decode(encoded_id + padding).decode("ascii")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    if not decoded.isdigit() or len(decoded) > len(str(_MAX_TOKEN_ID)):
        return None
    token_id = int(decoded)
    if token_id <= 0 or token_id > _MAX_TOKEN_ID:
        return None
    return token_id, secret


def bearer_from_header(value: str | None) -> str | None:
    """Extract the token from an "Authorization: Bearer <token>" header value."""
    if not value:
        return None
    scheme, _, token = value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# ---------------------------------------------------------------------------
# Session ids and cookie helpers
# ---------------------------------------------------------------------------


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)


def set_session_cookie(response, session_id: str) -> None:
    """Write the session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST/DELETE -- CSRF mitigation.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the server-side session expiry.
    """
    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        value=session_id,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_expire_seconds,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE, httponly=True, samesite="lax")
