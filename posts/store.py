"""
posts/store.py -- SQLAlchemy-backed persistence layer for user posts.

Uses SQLAlchemy Core (not ORM) so the dataclass in posts/models.py remains the
authoritative domain representation.

Pattern: Repository + Data Mapper. PostStore is the repository; _row_to_post
is the mapper. Route handlers never touch SQL directly.

Ownership: every read, update, and delete is scoped by (id, user_id). A caller
asking for another user's post gets the same "not found" as for a missing one,
so post ids cannot be probed across accounts.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = PostStore("sqlite:///tokengate.db")
    post = store.create(Post(user_id=1, title="Hello", body="First post body"))
    items, total = store.list_for_user(1, page=1, limit=10)
    store.delete_for_user(post.id, 1)
    store.close()
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from posts.models import Post

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_posts = Table(
    "posts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("title", String(100), nullable=False),
    Column("body", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class PostStore:
    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a thread pool, so a pooled SQLite
            # connection may be used from a thread other than its creator.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def create(self, post: Post) -> Post:
        """Insert a new post and return the stored record."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _posts.insert().values(
                    user_id=post.user_id,
                    title=post.title,
                    body=post.body,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            post_id = result.inserted_primary_key[0]
        return self.get_for_user(post_id, post.user_id)

    def get_for_user(self, post_id: int, user_id: int) -> Optional[Post]:
        """Return the post if it exists and belongs to user_id, else None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _posts.select().where((_posts.c.id == post_id) & (_posts.c.user_id == user_id))
            ).fetchone()
        return _row_to_post(row) if row is not None else None

    def list_for_user(self, user_id: int, page: int = 1, limit: int = 10) -> tuple[list[Post], int]:
        """Return one page of a user's posts (oldest first) and the user's total post count.

        page is 1-based. Out-of-range pages return an empty list with the real total.
        """
        offset = (page - 1) * limit
        with self.engine.connect() as conn:
            total = conn.execute(
                select(func.count()).select_from(_posts).where(_posts.c.user_id == user_id)
            ).scalar()
            rows = conn.execute(
                _posts.select()
                .where(_posts.c.user_id == user_id)
                .order_by(_posts.c.id)
                .offset(offset)
                .limit(limit)
            ).fetchall()
        return [_row_to_post(r) for r in rows], int(total or 0)

    def count_for_user(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            total = conn.execute(
                select(func.count()).select_from(_posts).where(_posts.c.user_id == user_id)
            ).scalar()
        return int(total or 0)

    def update(self, post: Post) -> bool:
        """Write title and body back. Returns False if the post is missing or not owned by post.user_id."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _posts.update()
                .where((_posts.c.id == post.id) & (_posts.c.user_id == post.user_id))
                .values(title=post.title, body=post.body, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def delete_for_user(self, post_id: int, user_id: int) -> bool:
        """Delete one owned post. Returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _posts.delete().where((_posts.c.id == post_id) & (_posts.c.user_id == user_id))
            )
            conn.commit()
        return result.rowcount > 0

    def delete_all_for_user(self, user_id: int) -> int:
        """Delete every post owned by user_id (account deletion). Returns the number removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_posts.delete().where(_posts.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_post(row) -> Post:
    return Post(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        body=row.body,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
