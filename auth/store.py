"""
auth/store.py -- SQLAlchemy Core persistence layer for user credentials.

Pattern: Repository + Data Mapper (same as posts/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Every insert and update passes the password through ensure_hashed(). A
  plaintext set on User.password (signup, password change) is hashed on the
  way in; an existing bcrypt hash (profile edits) is written back untouched.

  Emails are stored lowercased and stripped so lookups are case-insensitive
  and the UNIQUE constraint catches "Bob@x.io" vs "bob@x.io".

Layer rule: no imports from api/ or posts/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateCredentialError
from auth.models import User
from auth.passwords import ensure_hashed

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("age", Integer, nullable=False),
    Column("password", Text, nullable=False),  # bcrypt hash, never plaintext
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
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
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records (the credential store).

    Usage:
        store = UserStore("sqlite:///tokengate.db")
        user = store.create(User(email="a@b.io", first_name="Ann", last_name="Lee", age=30, password="secret1"))
        store.find_by_email("a@b.io")
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
    # Queries
    # ------------------------------------------------------------------

    def find_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, user: User) -> User:
        """Insert a new user and return the stored record (with id and timestamps).

        Raises DuplicateCredentialError if the email is already registered. The
        UNIQUE constraint decides, so two concurrent signups for one email
        cannot both succeed.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            try:
                result = conn.execute(
                    _users.insert().values(
                        email=normalize_email(user.email),
                        first_name=user.first_name,
                        last_name=user.last_name,
                        age=user.age,
                        password=ensure_hashed(user.password),
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise DuplicateCredentialError("email already registered") from exc
            user_id = result.inserted_primary_key[0]
        return self.find_by_id(user_id)

    def save(self, user: User) -> bool:
        """Write every mutable field of an existing user back to the store.

        Returns True if a row was updated, False if user.id was not found.
        Raises DuplicateCredentialError if the new email collides.
        """
        with self.engine.connect() as conn:
            try:
                result = conn.execute(
                    _users.update()
                    .where(_users.c.id == user.id)
                    .values(
                        email=normalize_email(user.email),
                        first_name=user.first_name,
                        last_name=user.last_name,
                        age=user.age,
                        password=ensure_hashed(user.password),
                        updated_at=_now_iso(),
                    )
                )
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise DuplicateCredentialError("email already registered") from exc
        return result.rowcount > 0

    def delete(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Callers revoke the user's sessions and remove owned posts first.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query, False otherwise."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        age=row.age,
        password=row.password,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
