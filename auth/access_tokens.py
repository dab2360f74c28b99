"""
auth/access_tokens.py -- Opaque bearer token issuance, resolution and revocation.

Policy:
  - A user may hold any number of live tokens (one per device or script).
  - resolve() fails closed: malformed input, unknown id, hash mismatch,
    expiry and a missing owner all raise the same InvalidToken.
  - revoke() only ever targets the identifier of the token that authenticated
    the current request. Routes never accept a token id or token string from
    the request body for revocation.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from auth.errors import InvalidToken, TokenNotFound
from auth.models import AccessToken, IssuedToken, User
from auth.store import UserStore, to_iso
from auth.tokens import decode_token, encode_token, generate_token_secret, hash_token_secret, secrets_match

logger = logging.getLogger("authdemo.auth.tokens")


@dataclass
class TokenContext:
    """The caller of an API request: who they are and which token they used."""

    user: User
    token: AccessToken


class AccessTokenManager:
    def __init__(self, store: UserStore, expire_seconds: int = 0) -> None:
        self.store = store
        self.expire_seconds = expire_seconds

    def issue(self, user: User, name: str = "api") -> IssuedToken:
        """Mint a new token for user. The raw value is only available here."""
        secret = generate_token_secret()
        now = datetime.now(timezone.utc)
        expires_at = None
        if self.expire_seconds > 0:
            expires_at = to_iso(now + timedelta(seconds=self.expire_seconds))
        token = AccessToken(
            user_id=user.id,
            name=name,
            token_hash=hash_token_secret(secret),
            hint=secret[:8],
            created_at=to_iso(now),
            expires_at=expires_at,
        )
        token.id = self.store.create_access_token(token)
        logger.info("Issued access token %d for user %d", token.id, user.id)
        return IssuedToken(value=encode_token(token.id, secret), token=token)

    def resolve(self, raw: str | None) -> TokenContext:
        """Return the owner and record of a raw bearer token, or raise InvalidToken."""
        parsed = decode_token(raw or "")
        if parsed is None:
            raise InvalidToken()
        token_id, secret = parsed

        token = self.store.get_access_token(token_id)
        if token is None or not secrets_match(secret, token.token_hash):
            raise InvalidToken()
        if token.expires_at and datetime.fromisoformat(token.expires_at) <= datetime.now(timezone.utc):
            raise InvalidToken()

        user = self.store.get_by_id(token.user_id)
        if user is None:
            raise InvalidToken()

        self.store.update_access_token_last_used(token.id)
        return TokenContext(user=user, token=token)

    def revoke(self, user: User, token_id: int | None) -> None:
        """Delete one of user's tokens by identifier, or raise TokenNotFound."""
        if token_id is None or not self.store.delete_access_token(token_id, user.id):
            raise TokenNotFound()
        logger.info("Revoked access token %d for user %d", token_id, user.id)

    def list_for(self, user: User) -> list[AccessToken]:
        return self.store.list_access_tokens(user.id)

    def purge_expired(self) -> int:
        return self.store.purge_expired_access_tokens()
