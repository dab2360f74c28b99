"""
tests/test_sessions.py -- SessionManager state machine and flash messages.

Coverage:
  - Anonymous -> Authenticated -> Anonymous, resolved through load()
  - Login regenerates the session id and drops the old row
  - Flash messages survive login and are read exactly once
  - Expired and unknown ids load as anonymous
"""

from __future__ import annotations

from datetime import datetime, timedelta

from auth.models import Session
from auth.sessions import SessionManager
from auth.store import UserStore

from conftest import DEMO_EMAIL


def _manager(store: UserStore, expire_seconds: int = 3600) -> SessionManager:
    return SessionManager(store, expire_seconds)


class TestLifecycle:
    def test_login_binds_user(self, store: UserStore) -> None:
        sessions = _manager(store)
        user = store.get_by_email(DEMO_EMAIL)
        session = sessions.login(Session(), user)

        reloaded = sessions.load(session.id)
        assert reloaded.is_authenticated
        assert sessions.current_user(reloaded).id == user.id

    def test_logout_invalidates_session_id(self, store: UserStore) -> None:
        sessions = _manager(store)
        user = store.get_by_email(DEMO_EMAIL)
        session = sessions.login(Session(), user)
        old_id = session.id

        sessions.logout(session)

        assert session.id is None
        assert sessions.current_user(session) is None
        assert sessions.current_user(sessions.load(old_id)) is None
        assert store.get_session(old_id) is None

    def test_login_regenerates_id(self, store: UserStore) -> None:
        sessions = _manager(store)
        session = Session()
        sessions.flash(session, "error", "Incorrect email or password")
        planted_id = session.id
        assert planted_id is not None

        sessions.login(session, store.get_by_email(DEMO_EMAIL))

        assert session.id != planted_id
        assert store.get_session(planted_id) is None
        assert sessions.current_user(sessions.load(planted_id)) is None

    def test_anonymous_session_has_no_user(self, store: UserStore) -> None:
        sessions = _manager(store)
        assert sessions.current_user(Session()) is None

    def test_unknown_id_loads_anonymous(self, store: UserStore) -> None:
        session = _manager(store).load("does-not-exist")
        assert session.id is None
        assert not session.is_authenticated

    def test_expired_session_loads_anonymous_and_is_deleted(self, store: UserStore) -> None:
        sessions = _manager(store, expire_seconds=0)
        session = sessions.login(Session(), store.get_by_email(DEMO_EMAIL))

        reloaded = sessions.load(session.id)

        assert not reloaded.is_authenticated
        assert store.get_session(session.id) is None

    def test_purge_expired(self, store: UserStore) -> None:
        user = store.get_by_email(DEMO_EMAIL)
        _manager(store, expire_seconds=0).login(Session(), user)
        live = _manager(store).login(Session(), user)

        assert _manager(store).purge_expired() == 1
        assert store.get_session(live.id) is not None


class TestFlash:
    def test_flash_is_read_once(self, store: UserStore) -> None:
        sessions = _manager(store)
        session = Session()
        sessions.flash(session, "success", "Logged in successfully")

        reloaded = sessions.load(session.id)
        assert sessions.pop_flashes(reloaded) == {"success": "Logged in successfully"}
        assert sessions.pop_flashes(reloaded) == {}
        assert sessions.pop_flashes(sessions.load(session.id)) == {}

    def test_flash_survives_login(self, store: UserStore) -> None:
        sessions = _manager(store)
        session = Session()
        sessions.flash(session, "error", "first attempt failed")
        sessions.login(session, store.get_by_email(DEMO_EMAIL))
        sessions.flash(session, "success", "Logged in successfully")

        flashes = sessions.pop_flashes(sessions.load(session.id))
        assert flashes == {"error": "first attempt failed", "success": "Logged in successfully"}

    def test_flash_creates_anonymous_session(self, store: UserStore) -> None:
        sessions = _manager(store)
        session = Session()
        sessions.flash(session, "error", "Access was denied")

        stored = store.get_session(session.id)
        assert stored is not None
        assert stored.user_id is None
        assert stored.flash == {"error": "Access was denied"}

    def test_logout_clears_pending_flashes(self, store: UserStore) -> None:
        sessions = _manager(store)
        session = sessions.login(Session(), store.get_by_email(DEMO_EMAIL))
        sessions.flash(session, "success", "Logged in successfully")
        sessions.logout(session)
        assert sessions.pop_flashes(session) == {}

    def test_anonymous_flash_row_is_short_lived(self, store: UserStore) -> None:
        sessions = SessionManager(store, expire_seconds=3600, anonymous_expire_seconds=300)
        anonymous = Session()
        sessions.flash(anonymous, "error", "Incorrect email or password")
        authenticated = sessions.login(Session(), store.get_by_email(DEMO_EMAIL))

        anonymous_ttl = datetime.fromisoformat(anonymous.expires_at) - datetime.fromisoformat(anonymous.created_at)
        login_ttl = datetime.fromisoformat(authenticated.expires_at) - datetime.fromisoformat(authenticated.created_at)
        assert anonymous_ttl == timedelta(seconds=300)
        assert login_ttl == timedelta(seconds=3600)

    def test_expired_anonymous_flash_is_dropped_and_purged(self, store: UserStore) -> None:
        sessions = SessionManager(store, expire_seconds=3600, anonymous_expire_seconds=0)
        anonymous = Session()
        sessions.flash(anonymous, "error", "Incorrect email or password")
        live = sessions.login(Session(), store.get_by_email(DEMO_EMAIL))

        assert sessions.purge_expired() == 1
        assert store.get_session(anonymous.id) is None
        assert sessions.pop_flashes(sessions.load(anonymous.id)) == {}
        assert sessions.load(live.id).is_authenticated
