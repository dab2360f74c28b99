"""
auth/identity.py -- Identity resolution: credential checks and find-or-create.

Both password flows (session form login and API token login) go through
verify_credentials(); only the OAuth callback uses find_or_create_by_email(),
because a provider gives us a verified email but no local password.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import InvalidCredentials
from auth.models import User
from auth.store import UserStore
from auth.tokens import DUMMY_HASH, verify_password

logger = logging.getLogger("authdemo.auth")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def verify_credentials(store: UserStore, email: str, password: str) -> User:
    """Return the user owning (email, password) or raise InvalidCredentials.

    Always runs bcrypt whether or not the user exists [C1]:
    - Unknown email or OAuth-only account: bcrypt runs against DUMMY_HASH.
    - Wrong password: bcrypt runs against the real hash.
    The raised error is identical in every branch.
    """
    user = store.get_by_email(normalize_email(email or ""))
    if user is None or user.hashed_password is None:
        # Equalize timing -- do NOT raise before running bcrypt [C1]
        verify_password(password or "", DUMMY_HASH)
        raise InvalidCredentials()
    if not verify_password(password or "", user.hashed_password):
        raise InvalidCredentials()
    return user


def find_or_create_by_email(store: UserStore, email: str, defaults: dict | None = None) -> User:
    """Return the user with this email, creating it from defaults if absent.

    defaults may carry full_name. Accounts created here never get a password.

    Concurrency: two callers racing on a new email both miss the first lookup
    and both try to insert. UNIQUE(email) lets exactly one insert succeed; the
    loser catches IntegrityError and re-reads the winner's row, so both return
    the same id.
    """
    defaults = defaults or {}
    normalized = normalize_email(email)
    user = store.get_by_email(normalized)
    if user is not None:
        full_name = defaults.get("full_name")
        if full_name and not user.full_name:
            store.update_user(user.id, full_name=full_name)
            user = store.get_by_id(user.id)
        return user

    try:
        user_id = store.create_user(User(email=normalized, full_name=defaults.get("full_name")))
    except IntegrityError:
        logger.info("Concurrent create for %s resolved to the existing record", normalized)
        user = store.get_by_email(normalized)
        if user is None:
            raise
        return user

    logger.info("Created user %d for %s", user_id, normalized)
    return store.get_by_id(user_id)
