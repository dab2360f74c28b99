"""
auth/sessions.py -- Server-side session lifecycle and one-shot flash messages.

State machine (per browser):

    Anonymous --login()--> Authenticated --logout() / expiry--> Anonymous

The session object is request-scoped: the session middleware calls load()
once per request, stores the result on request.state.session, and after the
response compares the final session id with the cookie it received to decide
whether to set or clear the cookie. Managers and routes mutate that one
object in place.

Expiry policy: absolute, SESSION_EXPIRE_SECONDS after login. Anonymous rows
that only carry a flash message expire after ANONYMOUS_SESSION_EXPIRE_SECONDS.
Expired rows are treated as absent on load and purged periodically.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from auth.models import Session, User
from auth.store import UserStore, to_iso
from auth.tokens import generate_session_id

logger = logging.getLogger("authdemo.auth.sessions")


class SessionManager:
    def __init__(self, store: UserStore, expire_seconds: int, anonymous_expire_seconds: int = 300) -> None:
        self.store = store
        self.expire_seconds = expire_seconds
        self.anonymous_expire_seconds = anonymous_expire_seconds

    def load(self, session_id: str | None) -> Session:
        """Return the live session for a cookie value, or a fresh anonymous one.

        Unknown and expired ids both yield an unsaved anonymous Session (id None);
        expired rows are deleted on the way.
        """
        if not session_id:
            return Session()
        session = self.store.get_session(session_id)
        if session is None:
            return Session()
        if _is_expired(session):
            self.store.delete_session(session_id)
            logger.info("Session expired (user_id=%s)", session.user_id)
            return Session()
        return session

    def login(self, session: Session, user: User) -> Session:
        """Bind the session to user under a brand-new id.

        The previous id is destroyed so a session id planted before login
        (fixation) is worthless afterwards. Pending flash messages survive.
        """
        if session.id is not None:
            self.store.delete_session(session.id)
        now = datetime.now(timezone.utc)
        session.id = generate_session_id()
        session.user_id = user.id
        session.created_at = to_iso(now)
        session.expires_at = to_iso(now + timedelta(seconds=self.expire_seconds))
        self.store.create_session(session)
        logger.info("User %d logged in", user.id)
        return session

    def logout(self, session: Session) -> None:
        """Destroy the session. The same object is Anonymous and unsaved afterwards."""
        if session.id is not None:
            self.store.delete_session(session.id)
        if session.user_id is not None:
            logger.info("User %d logged out", session.user_id)
        session.id = None
        session.user_id = None
        session.created_at = None
        session.expires_at = None
        session.flash = {}

    def current_user(self, session: Session) -> User | None:
        """Resolve the bound identity. None when Anonymous or the user row is gone."""
        if not session.is_authenticated:
            return None
        return self.store.get_by_id(session.user_id)

    def flash(self, session: Session, key: str, message: str) -> None:
        """Queue a one-shot message for the next rendered page.

        An anonymous client without a session row gets one here, since the
        message must survive the redirect. That row only lives
        anonymous_expire_seconds; logging in replaces it with a full session.
        """
        session.flash[key] = message
        if session.id is None:
            now = datetime.now(timezone.utc)
            session.id = generate_session_id()
            session.created_at = to_iso(now)
            session.expires_at = to_iso(now + timedelta(seconds=self.anonymous_expire_seconds))
            self.store.create_session(session)
        else:
            self.store.update_session_flash(session.id, session.flash)

    def pop_flashes(self, session: Session) -> dict[str, str]:
        """Return pending flash messages and clear them. A second call returns {}."""
        if not session.flash:
            return {}
        messages = dict(session.flash)
        session.flash = {}
        if session.id is not None:
            self.store.update_session_flash(session.id, {})
        return messages

    def purge_expired(self) -> int:
        return self.store.purge_expired_sessions()


def _is_expired(session: Session) -> bool:
    if not session.expires_at:
        return True
    return datetime.fromisoformat(session.expires_at) <= datetime.now(timezone.utc)
