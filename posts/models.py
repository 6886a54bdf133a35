"""
posts/models.py -- Domain dataclass for user posts.

Pure data container with zero logic. Ownership checks and pagination live in
posts/store.py.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Post:
    """A short text post owned by exactly one user.

    id is None before the record is written to the database.
    """

    user_id: int
    title: str
    body: str
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""  # ISO 8601, refreshed by store on update
