"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Repository + Data Mapper.
CredentialStore is the repository; _row_to_user / _row_to_session are the
mappers. The workflow and route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Sessions are stored by HMAC hash only (see auth/tokens.py).

Email uniqueness:
  users.email keeps the address exactly as entered. users.email_key holds the
  lower-cased form and carries the UNIQUE constraint, so duplicate detection
  is case-insensitive while display keeps the user's casing.

Atomicity:
  Credential changes and the session revocation that must accompany them run
  inside a single engine.begin() transaction (set_password, delete_user).
  SQLite takes a write lock for the duration, so two concurrent resets of the
  same user are serialized and the last one wins. No caller can observe a new
  hash with the old sessions still alive.

Errors:
  An IntegrityError on user insert becomes DuplicateEmail. Any other
  SQLAlchemyError is logged here with its traceback and re-raised as a bare
  StoreFailure, which carries no query text or driver detail.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import functools
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import Pool

from auth.errors import DuplicateEmail, StoreFailure
from auth.models import ROLE_ADMIN, Session, User
from core.config import get_settings

logger = logging.getLogger("pagekeeper.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False),
    Column("email_key", String(255), nullable=False, unique=True),  # lower(email)
    Column("name", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("requires_password_change", Integer, nullable=False, server_default="0"),
    Column("temp_password_expires_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("user_id", String(32), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
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


def _now_iso() -> str:
    # Fixed precision keeps ISO strings comparable as plain text in SQL.
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def email_key(email: str) -> str:
    return email.strip().lower()


def _ensure_sqlite_dir(db_url: str) -> None:
    url = make_url(db_url)
    database = url.database or ""
    if database and database != ":memory:" and not database.startswith("file:"):
        Path(database).parent.mkdir(parents=True, exist_ok=True)


def _guarded(method):
    """Turn unexpected SQLAlchemy errors into StoreFailure after logging them."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.exception("Credential store failure in %s", method.__name__)
            raise StoreFailure() from exc

    return wrapper


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User and Session records.

    Usage:
        store = CredentialStore("sqlite:///data/pagekeeper.db")
        user_id = store.create_user(User(email="a@x.com", name="Ann", password_hash=hash_password("...")))
        user = store.get_by_email("A@X.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None, poolclass: type[Pool] | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            _ensure_sqlite_dir(db_url)
        engine_kwargs: dict = {"connect_args": connect_args}
        if poolclass is not None:
            engine_kwargs["poolclass"] = poolclass
        self.engine: Engine = create_engine(db_url, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Credential store ping failed")
            return False
        return True

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    @_guarded
    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises DuplicateEmail if the lower-cased email is already taken,
        including when a concurrent request inserted it a moment earlier.
        """
        now = _now_iso()
        user_id = uuid.uuid4().hex
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        email=user.email,
                        email_key=email_key(user.email),
                        name=user.name,
                        password_hash=user.password_hash,
                        role=user.role,
                        requires_password_change=1 if user.requires_password_change else 0,
                        temp_password_expires_at=user.temp_password_expires_at,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            raise DuplicateEmail(field="email") from exc
        return user_id

    @_guarded
    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email, ignoring case. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email_key == email_key(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    @_guarded
    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    @_guarded
    def list_users(self) -> list[User]:
        """Return all users ordered by email. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email_key)).fetchall()
        return [_row_to_user(r) for r in rows]

    @_guarded
    def count_admins(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_users).where(_users.c.role == ROLE_ADMIN)
            ).scalar()
        return result or 0

    @_guarded
    def set_password(
        self,
        user_id: str,
        password_hash: str,
        *,
        requires_password_change: bool,
        temp_password_expires_at: str | None = None,
        revoke_sessions: bool = True,
        keep_session_hash: str | None = None,
    ) -> bool:
        """Replace a user's password and revoke sessions in one transaction.

        revoke_sessions=True deletes every session of the user except the one
        whose hash is keep_session_hash (pass None to revoke them all).

        Returns True if the user existed, False otherwise. Nothing is written
        when the user does not exist.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(
                    password_hash=password_hash,
                    requires_password_change=1 if requires_password_change else 0,
                    temp_password_expires_at=temp_password_expires_at,
                    updated_at=_now_iso(),
                )
            )
            if result.rowcount == 0:
                return False
            if revoke_sessions:
                condition = _sessions.c.user_id == user_id
                if keep_session_hash is not None:
                    condition = condition & (_sessions.c.token_hash != keep_session_hash)
                revoked = conn.execute(_sessions.delete().where(condition)).rowcount
                logger.info("Revoked %d session(s) for user %s after password change", revoked, user_id)
        return True

    @_guarded
    def delete_user(self, user_id: str) -> bool:
        """Hard-delete a user and all of their sessions.

        Returns True if deleted, False if not found. Last-admin and
        self-deletion checks are the caller's responsibility.
        """
        with self.engine.begin() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            if result.rowcount == 0:
                return False
            conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
        return True

    # ------------------------------------------------------------------
    # Session queries
    # ------------------------------------------------------------------

    @_guarded
    def create_session(self, session: Session) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    token_hash=session.token_hash,
                    user_id=session.user_id,
                    created_at=session.created_at or _now_iso(),
                    expires_at=session.expires_at,
                )
            )
            return result.inserted_primary_key[0]

    @_guarded
    def get_session(self, token_hash: str) -> Session | None:
        """Look up a session by token hash. Expiry is not checked here."""
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token_hash == token_hash)).fetchone()
        return _row_to_session(row) if row is not None else None

    @_guarded
    def list_sessions(self, user_id: str) -> list[Session]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select().where(_sessions.c.user_id == user_id).order_by(_sessions.c.created_at)
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    @_guarded
    def delete_session(self, token_hash: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.token_hash == token_hash))
        return result.rowcount > 0

    @_guarded
    def revoke_sessions(self, user_id: str, keep_session_hash: str | None = None) -> int:
        """Delete all sessions of a user, optionally sparing one. Returns the count."""
        condition = _sessions.c.user_id == user_id
        if keep_session_hash is not None:
            condition = condition & (_sessions.c.token_hash != keep_session_hash)
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(condition))
        return result.rowcount

    @_guarded
    def purge_expired_sessions(self) -> int:
        """Delete every session whose expiry is in the past. Returns rows removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= _now_iso()))
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        role=row.role,
        requires_password_change=bool(row.requires_password_change),
        temp_password_expires_at=row.temp_password_expires_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
