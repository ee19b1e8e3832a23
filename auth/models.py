"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only carry shape.

Timestamps are ISO 8601 UTC strings, matching what auth/store.py persists.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Identity:
    """A registered account.

    email is the unique, case-sensitive key. username is a display name and
    may repeat across accounts.

    otp / otp_expires_at hold the outstanding password-reset code. Both are
    None when no reset is pending; a non-None otp always has an expiry.
    """

    email: str
    username: str
    hashed_password: str
    id: int | None = None
    otp: str | None = None
    otp_expires_at: str | None = None
    created_at: str | None = None


@dataclass
class SignupOtp:
    """A pending registration: the code emailed to an address before the account exists."""

    email: str
    code: str
    expires_at: str
    created_at: str | None = None


@dataclass
class ResetGrant:
    """Single-use permission to set a new password, minted by a verified reset OTP.

    grant_id is the random value embedded as the jti claim of the signed reset
    token. The store consumes the grant by (email, grant_id).
    """

    email: str
    grant_id: str
    expires_at: str


@dataclass
class ArchivedIdentity:
    """Retained copy of a deleted Identity. One row per email, latest deletion wins."""

    email: str
    username: str
    hashed_password: str
    deleted_at: str
