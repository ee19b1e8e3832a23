"""
auth/otp.py -- One-time password issuance and verification.

SignupOtpService owns the signup ledger (signup_otps): issue() writes a fresh
code and emails it; verify() checks and consumes it exactly once.

match_code() is the comparison rule shared with the password-reset flow in
auth/lifecycle.py, which keeps its code inline on the identity row:

  1. no stored code          -> NoOutstandingCode
  2. string mismatch         -> InvalidOTP
  3. match, but now > expiry -> Expired

Expiry is checked only after a match, so a wrong guess against an expired
code reports InvalidOTP rather than revealing the code's age.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from auth.errors import DeliveryError, Expired, InvalidOTP, NoOutstandingCode, ValidationError, storage_guard
from auth.models import SignupOtp
from auth.store import IdentityStore, from_iso, to_iso, utcnow
from auth.tokens import generate_otp, normalize_code
from core.notifier import NotifierError

logger = logging.getLogger("memberdesk.auth")

Clock = Callable[[], datetime]


@dataclass
class OutstandingOtp:
    """A code that has been persisted and handed to the notifier."""

    email: str
    code: str
    expires_at: datetime


# Passwords are taken verbatim, so only an empty string counts as missing.
_VERBATIM_FIELDS = frozenset({"password", "newPassword"})


def _is_missing(name: str, value) -> bool:
    if value is None:
        return True
    if name in _VERBATIM_FIELDS:
        return value == ""
    return not str(value).strip()


def require(**fields) -> None:
    """Raise ValidationError naming every field that is missing or blank."""
    missing = [name for name, value in fields.items() if _is_missing(name, value)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}.")


def match_code(stored_code: str | None, expires_at: str | None, presented: str | int, now: datetime) -> None:
    if not stored_code:
        raise NoOutstandingCode()
    if normalize_code(stored_code) != normalize_code(presented):
        raise InvalidOTP()
    if expires_at is None or now > from_iso(expires_at):
        raise Expired()


class SignupOtpService:
    """Issue and verify signup codes.

    No existence check is made on issue: the account does not exist yet, and
    the response must not reveal whether the address is already registered.
    """

    def __init__(self, store: IdentityStore, notifier, ttl_seconds: int = 600, clock: Clock = utcnow) -> None:
        self.store = store
        self.notifier = notifier
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def issue(self, email: str) -> OutstandingOtp:
        """Write a fresh code for email (replacing any prior one) and send it.

        StorageError: nothing was sent. DeliveryError: the code is stored and
        stays valid until it expires or is replaced.
        """
        require(email=email)
        now = self.clock()
        otp = OutstandingOtp(email=email, code=generate_otp(), expires_at=now + timedelta(seconds=self.ttl_seconds))

        with storage_guard("signup_otp_issue", email):
            self.store.upsert_signup_otp(
                SignupOtp(email=email, code=otp.code, created_at=to_iso(now), expires_at=to_iso(otp.expires_at))
            )

        minutes = max(1, self.ttl_seconds // 60)
        try:
            self.notifier.send(
                email,
                "Your OTP Code",
                f"Your OTP code is {otp.code}. It is valid for {minutes} minutes.",
            )
        except NotifierError as exc:
            logger.error("Signup OTP stored but delivery failed for %s: %s", email, exc)
            raise DeliveryError("Error sending OTP.") from exc

        logger.info("Signup OTP issued for %s", email)
        return otp

    def check(self, email: str, code: str | int) -> SignupOtp:
        """Validate code against the ledger without consuming it."""
        require(email=email, otp=code)
        with storage_guard("signup_otp_lookup", email):
            record = self.store.get_signup_otp(email)
        if record is None:
            raise NoOutstandingCode()
        match_code(record.code, record.expires_at, code, self.clock())
        return record

    def verify(self, email: str, code: str | int) -> SignupOtp:
        """Validate and consume code. A second call with the same code fails NoOutstandingCode."""
        record = self.check(email, code)
        with storage_guard("signup_otp_consume", email):
            consumed = self.store.consume_signup_otp(email, record.code)
        if not consumed:
            # Lost the race to a concurrent verification or a re-issue.
            raise NoOutstandingCode()
        return record
