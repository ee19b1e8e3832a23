"""
auth/errors.py -- Failure taxonomy for the identity lifecycle.

Every service in auth/ signals failure by raising one of these. Each class
carries a stable machine-readable code, the HTTP status the API layer should
use, and a default human-readable message. api/main.py renders them into the
standard error envelope; auth/ itself never imports FastAPI.

The OTP mismatch states share the InvalidOTP base so callers that only care
about "invalid or expired" can catch one class, while logs and tests can still
tell NoOutstandingCode and Expired apart.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("memberdesk.auth")


class IdentityError(Exception):
    code = "identity_error"
    status_code = 400
    default_message = "Request could not be completed."

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(IdentityError):
    code = "validation_error"
    status_code = 400
    default_message = "Required fields are missing."


class NotFound(IdentityError):
    code = "not_found"
    status_code = 404
    default_message = "User not found."


class InvalidOTP(IdentityError):
    code = "invalid_otp"
    status_code = 400
    default_message = "Invalid OTP."


class NoOutstandingCode(InvalidOTP):
    code = "no_outstanding_code"
    default_message = "No OTP found for this email. Please request a new OTP."


class Expired(InvalidOTP):
    code = "otp_expired"
    default_message = "OTP has expired. Please request a new OTP."


class InvalidResetGrant(IdentityError):
    code = "invalid_reset_grant"
    status_code = 400
    default_message = "Password reset is not authorized. Verify your OTP again."


class IncorrectPassword(IdentityError):
    code = "incorrect_password"
    status_code = 401
    default_message = "Invalid credentials: Incorrect password."


class DuplicateEmail(IdentityError):
    code = "duplicate_email"
    status_code = 400
    default_message = "Email already registered."


class DeliveryError(IdentityError):
    """The notifier could not deliver a message. Persisted state is left in place."""

    code = "delivery_failed"
    status_code = 500
    default_message = "Failed to send email."


class StorageError(IdentityError):
    code = "storage_error"
    status_code = 500
    default_message = "Internal server error."


@contextmanager
def storage_guard(operation: str, email: str | None = None) -> Iterator[None]:
    """Translate SQLAlchemy failures inside the block into StorageError.

    Domain errors raised inside the block pass through untouched.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Storage failure during %s (email=%s): %s", operation, email, exc)
        raise StorageError() from exc
