"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in posts/models.py -- dataclasses own domain shape; stores and routes do the
work.

Layer rule: no imports from api/, core/, or posts/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """An account in the credential store.

    password holds the bcrypt hash. Callers hash new passwords with
    hash_password() before building or mutating a User; UserStore still runs
    ensure_hashed() on every write, so a plaintext that slips through is hashed
    and an existing hash (e.g. a profile edit) is never hashed twice.

    id is None before the record is written to the database.
    """

    email: str
    first_name: str
    last_name: str
    age: int
    password: str
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class AuthenticatedSession:
    """The principal attached to a request that passed the authenticator.

    token is kept so handlers can revoke the exact session that made the
    request (logout, account deletion).
    """

    user_id: int
    token: str
