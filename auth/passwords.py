"""
auth/passwords.py -- Password hashing, verification, and credential checks.

Security design decisions:
  bcrypt used directly (no passlib wrapper). Work factor comes from
  Settings.bcrypt_rounds so tests can run at the minimum cost while production
  keeps the default of 12. gensalt() draws a fresh salt per call, so hashing
  the same plaintext twice yields two different strings that both verify.

  Idempotence guard: ensure_hashed() returns values that already look like a
  bcrypt hash unchanged. UserStore runs every write through it, so saving a
  profile edit never hashes the stored hash a second time.

  Timing equalization: authenticate_user() always runs one bcrypt check, even
  for unknown emails, so response time does not reveal which emails exist.

Layer rule: no imports from api/ or posts/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import bcrypt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("tokengate.auth")

# $2a$ / $2b$ / $2y$, two-digit cost, 53 chars of bcrypt base64 (salt + digest).
_BCRYPT_RE = re.compile(r"^\$2[aby]\$\d{2}\$[./A-Za-z0-9]{53}$")

# bcrypt's input limit. Counted in UTF-8 bytes, not characters.
MAX_PASSWORD_BYTES = 72


def password_fits(plain: str) -> bool:
    """Return True if plain encodes to at most MAX_PASSWORD_BYTES bytes."""
    return len(plain.encode("utf-8")) <= MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises ValueError for passwords longer than MAX_PASSWORD_BYTES. Request
    models reject those with a 400 before they get here.
    """
    if not password_fits(plain):
        raise ValueError(f"password exceeds {MAX_PASSWORD_BYTES} bytes")
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext matches the hash.

    Fails closed: a malformed or empty hash, or an over-long password, returns
    False instead of raising.
    """
    if not hashed or not password_fits(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        logger.warning("Stored password hash is malformed; rejecting credential check")
        return False


def is_password_hash(value: str) -> bool:
    """Return True if value is already in bcrypt's modular crypt format."""
    return bool(_BCRYPT_RE.match(value or ""))


def ensure_hashed(value: str) -> str:
    """Hash value unless it is already a bcrypt hash."""
    if is_password_hash(value):
        return value
    return hash_password(value)


# Computed once at module load so the first failed login is not measurably
# faster than later ones.
_DUMMY_HASH: str = hash_password("tokengate_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair against the credential store.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as a real check)
    - Wrong password: bcrypt runs against the real hash

    Returns the User on success, None on any failure.
    """
    user = store.find_by_email(email)
    if user is None:
        # Equalize timing -- do NOT return before running bcrypt
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password):
        return None
    return user
