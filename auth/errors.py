"""
auth/errors.py -- Typed failures of the authentication core.

Every error carries a stable machine code and a human-readable message. Route
handlers recover from all of them locally: web routes turn them into a
redirect plus a flash message, API routes into a JSON error body. None of them
is fatal to the process.

Layer rule: stdlib only.
"""


class AuthError(Exception):
    """Base class for authentication failures."""

    code = "auth_error"
    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    """Unknown email, OAuth-only account, or wrong password.

    The message is the same in every case so callers cannot learn which one
    occurred.
    """

    code = "invalid_credentials"
    message = "Invalid user credentials"


class AccessDenied(AuthError):
    """The user declined the authorization request at the provider."""

    code = "access_denied"
    message = "Access was denied"


class StateMismatch(AuthError):
    """The OAuth state is missing, expired, or does not match the one we issued."""

    code = "state_mismatch"
    message = "Request expired. Retry again"


class ProviderError(AuthError):
    """Any other provider-side failure: error callback, code exchange, profile fetch."""

    code = "provider_error"
    message = "Unable to authenticate. Retry again"


class TokenNotFound(AuthError):
    """No token with the given identifier is owned by the caller."""

    code = "token_not_found"
    message = "Token not found"


class InvalidToken(AuthError):
    """The presented bearer token is malformed, unknown, expired, or orphaned."""

    code = "invalid_token"
    message = "Invalid access token"
