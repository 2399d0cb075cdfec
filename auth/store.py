"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE indexes on email and phone are the real uniqueness guarantee. The
  service pre-checks with email_exists() / phone_exists(), but two concurrent
  registrations can both pass that check; the loser's INSERT fails with
  IntegrityError, which _connect() turns into DuplicateCredential.

Errors:
  Every public method runs inside _connect(), which maps
    IntegrityError  -> DuplicateCredential (field parsed from the DB message)
    SQLAlchemyError -> StorageError
  so callers only ever see auth.errors types.

Timeouts:
  SQLite busy timeout and the pool checkout timeout both come from
  Settings.storage_timeout_seconds, so a locked database fails instead of
  blocking forever. The service adds an outer asyncio timeout per call.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateCredential, StorageError, SupersededToken, UserNotFound
from auth.models import User

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("elewa.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("user_id", String(36), primary_key=True),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("phone", String(32), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),  # bcrypt digest only
    Column("token", Text),
    Column("refresh_token", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns a profile update may touch. Everything else is owned by
# registration (identity, digest) or update_tokens().
PROFILE_FIELDS: frozenset[str] = frozenset({"first_name", "last_name", "phone"})

_UNIQUE_FIELDS = ("email", "phone")


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _conflicting_fields(exc: IntegrityError) -> list[str]:
    """Pick the unique column named in the driver's message.

    SQLite: "UNIQUE constraint failed: users.email"
    PostgreSQL: 'duplicate key value violates unique constraint "users_phone_key"'
    Falls back to email when the message names neither.
    """
    message = str(exc.orig).lower()
    fields = [name for name in _UNIQUE_FIELDS if name in message]
    return fields or ["email"]


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore(settings)
        store.create_user(User(user_id=uid, first_name="Ada", ...))
        user = store.get_by_email("ada@example.com")
        store.close()

    A plain URL string is accepted too, for unit tests:
        store = UserStore("sqlite:///:memory:")
    """

    def __init__(self, settings: Settings | str) -> None:
        if isinstance(settings, str):
            db_url, timeout = settings, 10.0
        else:
            db_url, timeout = settings.database_url, settings.storage_timeout_seconds
        connect_args: dict = {}
        engine_kwargs: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout
        else:
            engine_kwargs["pool_timeout"] = timeout
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite") and ":memory:" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        """Yield a connection and translate driver errors into auth.errors types."""
        try:
            with self.engine.connect() as conn:
                yield conn
        except IntegrityError as exc:
            raise DuplicateCredential(_conflicting_fields(exc)) from exc
        except SQLAlchemyError as exc:
            logger.exception("Storage operation failed")
            raise StorageError(detail=type(exc).__name__) from exc

    # ------------------------------------------------------------------
    # Existence checks
    # ------------------------------------------------------------------

    def email_exists(self, email: str) -> bool:
        return self._count(_users.c.email == email) > 0

    def phone_exists(self, phone: str) -> bool:
        return self._count(_users.c.phone == phone) > 0

    def _count(self, clause) -> int:
        with self._connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users).where(clause)).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a full user record (tokens included) in one statement.

        Raises DuplicateCredential if email or phone collides at the unique
        index, which is how concurrent registrations are settled.
        """
        now = _now_iso()
        with self._connect() as conn:
            conn.execute(
                _users.insert().values(
                    user_id=user.user_id,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    email=user.email,
                    phone=user.phone,
                    hashed_password=user.hashed_password,
                    token=user.token,
                    refresh_token=user.refresh_token,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        user.created_at = user.updated_at = now
        return user.user_id

    def update_profile(self, user_id: str, **fields) -> bool:
        """Update whitelisted profile fields on an existing user.

        Accepted fields: first_name, last_name, phone. Unknown keys raise
        ValueError rather than being silently ignored.

        Returns True if a row matched, False if user_id was not found.
        """
        unknown = set(fields) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)!r}")
        with self._connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.user_id == user_id).values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def update_tokens(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expected_refresh: str | None = None,
    ) -> None:
        """Overwrite the stored token pair and stamp updated_at.

        Single-row UPDATE, so it either fully applies or not at all. With
        expected_refresh set, the row only changes while it still holds that
        refresh token (compare-and-swap), so one refresh token redeems once.

        Raises UserNotFound when no row matches user_id and SupersededToken
        when the row exists but its refresh token has already moved on.
        """
        stmt = _users.update().where(_users.c.user_id == user_id)
        if expected_refresh is not None:
            stmt = stmt.where(_users.c.refresh_token == expected_refresh)
        with self._connect() as conn:
            result = conn.execute(
                stmt.values(token=access_token, refresh_token=refresh_token, updated_at=_now_iso())
            )
            conn.commit()
            if result.rowcount == 0:
                exists = conn.execute(select(_users.c.user_id).where(_users.c.user_id == user_id)).first()
                if expected_refresh is not None and exists is not None:
                    raise SupersededToken()
                raise UserNotFound()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> User | None:
        with self._connect() as conn:
            row = conn.execute(_users.select().where(_users.c.user_id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact (already normalized) email. Returns None if not found."""
        with self._connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.created_at, _users.c.user_id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        user_id=row.user_id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        phone=row.phone,
        hashed_password=row.hashed_password,
        token=row.token,
        refresh_token=row.refresh_token,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
