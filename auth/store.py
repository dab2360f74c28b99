"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore is the repository for users, sessions and access tokens;
_row_to_user / _row_to_session / _row_to_access_token are the mappers.
Managers, dependencies and routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(email) is the only concurrency primitive the auth core relies on.
  create_user() lets IntegrityError escape so find_or_create_by_email() can
  treat it as "a concurrent request won the insert" and re-read the row.

  access_tokens.token_hash holds HMAC-SHA256 of the token secret, never the
  raw token.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import AccessToken, Session, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("full_name", String(255)),
    Column("hashed_password", Text),  # NULL for OAuth-only users
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", Integer),  # NULL = anonymous session
    Column("flash", Text, nullable=False, server_default="{}"),  # JSON object
    Column("created_at", String(40), nullable=False),
    Column("expires_at", String(40), nullable=False, index=True),
)

_access_tokens = Table(
    "access_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("name", String(100), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("hint", String(12), nullable=False),  # display only
    Column("created_at", String(40), nullable=False),
    Column("last_used_at", String(40)),
    Column("expires_at", String(40)),  # NULL = never expires
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    """Format a UTC datetime with a fixed width so ISO strings sort chronologically."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User, Session and AccessToken entities.

    Usage:
        store = UserStore("sqlite:///authdemo.db")
        store.create_user(User(email="jane@example.com", hashed_password=hash_password("secret")))
        user = store.get_by_email("jane@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    full_name=user.full_name,
                    hashed_password=user.hashed_password,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact (already normalised) email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields (full_name, hashed_password) on an existing user.

        Returns True if a row was updated, False if user_id was not found.
        """
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session: Session) -> None:
        """Persist a session whose id, created_at and expires_at are already set."""
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session.id,
                    user_id=session.user_id,
                    flash=json.dumps(session.flash),
                    created_at=session.created_at,
                    expires_at=session.expires_at,
                )
            )
            conn.commit()

    def get_session(self, session_id: str) -> Session | None:
        """Look up a session by id. Expiry is the caller's decision."""
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def update_session_flash(self, session_id: str, flash: dict[str, str]) -> None:
        with self.engine.connect() as conn:
            conn.execute(_sessions.update().where(_sessions.c.id == session_id).values(flash=json.dumps(flash)))
            conn.commit()

    def delete_session(self, session_id: str) -> bool:
        """Delete one session row. Returns True if it existed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0

    def purge_expired_sessions(self) -> int:
        """Delete every session whose expires_at is in the past. Returns the row count."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at < _now_iso()))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    def create_access_token(self, token: AccessToken) -> int:
        """Insert a new access token record and return its ID (the token identifier)."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _access_tokens.insert().values(
                    user_id=token.user_id,
                    name=token.name,
                    token_hash=token.token_hash,
                    hint=token.hint,
                    created_at=token.created_at or _now_iso(),
                    expires_at=token.expires_at,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_access_token(self, token_id: int) -> AccessToken | None:
        """Look up a token by identifier. The hash comparison is the caller's job."""
        with self.engine.connect() as conn:
            row = conn.execute(_access_tokens.select().where(_access_tokens.c.id == token_id)).fetchone()
        return _row_to_access_token(row) if row is not None else None

    def list_access_tokens(self, user_id: int) -> list[AccessToken]:
        """Return all tokens owned by a user (newest first)."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _access_tokens.select()
                .where(_access_tokens.c.user_id == user_id)
                .order_by(_access_tokens.c.id.desc())
            ).fetchall()
        return [_row_to_access_token(r) for r in rows]

    def update_access_token_last_used(self, token_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _access_tokens.update().where(_access_tokens.c.id == token_id).values(last_used_at=_now_iso())
            )
            conn.commit()

    def delete_access_token(self, token_id: int, user_id: int) -> bool:
        """Delete a token. user_id is checked so nobody can delete another user's token.

        Returns True if a token was deleted, False if not found or wrong owner.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _access_tokens.delete().where(
                    (_access_tokens.c.id == token_id) & (_access_tokens.c.user_id == user_id)
                )
            )
            conn.commit()
        return result.rowcount > 0

    def purge_expired_access_tokens(self) -> int:
        """Delete tokens whose expires_at is in the past. Tokens without expiry are kept."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _access_tokens.delete().where(
                    _access_tokens.c.expires_at.is_not(None) & (_access_tokens.c.expires_at < _now_iso())
                )
            )
            conn.commit()
        return result.rowcount

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        full_name=row.full_name,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        flash=json.loads(row.flash or "{}"),
        created_at=row.created_at,
        expires_at=row.expires_at,
    )


def _row_to_access_token(row) -> AccessToken:
    return AccessToken(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        token_hash=row.token_hash,
        hint=row.hint,
        created_at=row.created_at,
        last_used_at=row.last_used_at,
        expires_at=row.expires_at,
    )
