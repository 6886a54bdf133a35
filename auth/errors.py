"""
auth/errors.py -- Exception taxonomy for token issuance and session validation.

Only the class of an error is observable outside the auth boundary:
ValidationError and SessionAbsentError both become 401 "unauthorized";
StoreUnavailableError becomes 503. Messages carry the internal reason for
logs and are never copied into response bodies.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error raised by the auth package."""


class ValidationError(AuthError):
    """Token missing, malformed, badly signed, or past its exp claim."""


class SessionAbsentError(AuthError):
    """Token signature is valid but no live session entry backs it."""


class StoreUnavailableError(AuthError):
    """Session or credential store unreachable or timed out."""


class DuplicateCredentialError(AuthError):
    """A user with the same email already exists."""


class IssuanceError(AuthError):
    """A token could not be signed or its session entry could not be written.

    The original cause is chained as __cause__.
    """
