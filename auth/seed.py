"""
auth/seed.py -- Demo account seeding.

Used by `python main.py seed` and, when SEED_DEMO_USER=true, by the app
lifespan. Seeding is idempotent: an existing email is left untouched.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.identity import normalize_email
from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password

logger = logging.getLogger("authdemo.auth.seed")

DEMO_USERS: list[dict] = [
    {"email": "john.doe@example.com", "full_name": "John Doe", "password": "password"},
]


def create_user(store: UserStore, email: str, full_name: str | None, password: str | None) -> User | None:
    """Create one local account. Returns None if the email is already taken."""
    user = User(
        email=normalize_email(email),
        full_name=full_name,
        hashed_password=hash_password(password) if password else None,
    )
    try:
        user_id = store.create_user(user)
    except IntegrityError:
        logger.info("User %s already exists, skipping", user.email)
        return None
    return store.get_by_id(user_id)


def seed_users(store: UserStore, users: list[dict] | None = None) -> int:
    """Insert the demo accounts that do not exist yet. Returns how many were created."""
    created = 0
    for entry in users if users is not None else DEMO_USERS:
        if create_user(store, entry["email"], entry.get("full_name"), entry.get("password")) is not None:
            created += 1
    if created:
        logger.info("Seeded %d user(s)", created)
    return created
