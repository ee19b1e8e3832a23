"""
auth/lifecycle.py -- Signup, login, and forgot/reset password flows.

IdentityLifecycle composes the OTP services, the IdentityStore and the
notifier. Each flow is a sequence of independent HTTP calls; nothing is held
in memory between them -- every intermediate state lives in the store.

Signup:  request_signup_otp -> complete_signup
Login:   attempt_login
Reset:   forgot_password -> verify_reset_otp -> reset_password

The reset flow is a three-step handshake. verify_reset_otp consumes the
emailed code and mints a single-use Reset Grant (a signed token whose id is
also recorded server-side). reset_password only writes a new password when
it is handed an unexpired, unused grant for the same email.

Existence leaks are deliberate where the original UX relies on them:
forgot_password and attempt_login report NotFound for unknown accounts.
request_signup_otp never looks at existing accounts.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    DeliveryError,
    DuplicateEmail,
    IncorrectPassword,
    InvalidResetGrant,
    NoOutstandingCode,
    NotFound,
    storage_guard,
)
from auth.models import Identity, ResetGrant
from auth.otp import Clock, OutstandingOtp, SignupOtpService, match_code, require
from auth.store import IdentityStore, to_iso, utcnow
from auth.tokens import (
    burn_password_check,
    create_reset_token,
    decode_reset_token,
    generate_otp,
    generate_placeholder_token,
    hash_password,
    new_grant_id,
    verify_password,
)
from core.notifier import NotifierError

logger = logging.getLogger("memberdesk.auth")


@dataclass
class LoginResult:
    identity: Identity
    token: str  # opaque placeholder, no session behind it


@dataclass
class IssuedResetGrant:
    email: str
    token: str
    expires_at: datetime


class IdentityLifecycle:
    def __init__(
        self,
        store: IdentityStore,
        notifier,
        secret_key: str,
        otp_ttl_seconds: int = 600,
        reset_grant_ttl_seconds: int = 600,
        clock: Clock = utcnow,
        signup_otps: SignupOtpService | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.secret_key = secret_key
        self.otp_ttl_seconds = otp_ttl_seconds
        self.reset_grant_ttl_seconds = reset_grant_ttl_seconds
        self.clock = clock
        self.signup_otps = signup_otps or SignupOtpService(store, notifier, ttl_seconds=otp_ttl_seconds, clock=clock)

    # ------------------------------------------------------------------
    # Signup
    # ------------------------------------------------------------------

    def request_signup_otp(self, email: str) -> OutstandingOtp:
        return self.signup_otps.issue(email)

    def complete_signup(self, username: str, email: str, password: str, code: str | int) -> Identity:
        """Create the account if code matches the outstanding signup OTP.

        The code is consumed and the identity inserted in one transaction. On
        DuplicateEmail that transaction rolls back, so the code stays usable.
        """
        require(username=username, email=email, password=password, otp=code)
        record = self.signup_otps.check(email, code)

        identity = Identity(email=email, username=username, hashed_password=hash_password(password))
        with storage_guard("signup_complete", email):
            try:
                new_id = self.store.create_identity_from_signup(identity, record.code)
            except IntegrityError as exc:
                logger.warning("Signup rejected, email already registered: %s", email)
                raise DuplicateEmail() from exc
        if new_id is None:
            raise NoOutstandingCode()

        identity.id = new_id
        logger.info("New identity %d created for %s", new_id, email)
        return identity

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def attempt_login(self, username_or_email: str, password: str) -> LoginResult:
        require(usernameOrEmail=username_or_email, password=password)
        with storage_guard("login", username_or_email):
            identity = self.store.get_by_username_or_email(username_or_email)

        if identity is None:
            burn_password_check(password)
            logger.warning("Login failed: user not found (%s)", username_or_email)
            raise NotFound("Invalid credentials: User not found.")
        if not verify_password(password, identity.hashed_password):
            logger.warning("Login failed: incorrect password for %s", identity.email)
            raise IncorrectPassword()

        logger.info("Login successful for %s", identity.username)
        return LoginResult(identity=identity, token=generate_placeholder_token())

    # ------------------------------------------------------------------
    # Forgot / reset password
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> OutstandingOtp:
        """Store a fresh reset code on the identity and email it.

        NotFound is raised before anything is written or sent. If delivery
        fails the stored code remains valid.
        """
        require(email=email)
        with storage_guard("forgot_password_lookup", email):
            identity = self.store.get_by_email(email)
        if identity is None:
            raise NotFound()

        now = self.clock()
        otp = OutstandingOtp(email=email, code=generate_otp(), expires_at=now + timedelta(seconds=self.otp_ttl_seconds))
        with storage_guard("forgot_password_store", email):
            stored = self.store.set_reset_otp(email, otp.code, to_iso(otp.expires_at))
        if not stored:
            raise NotFound()

        minutes = max(1, self.otp_ttl_seconds // 60)
        try:
            self.notifier.send(
                email,
                "Your Password Reset OTP",
                f"Your One-Time Password (OTP) is {otp.code}. This OTP will expire in {minutes} minutes.",
                html=(
                    "<h1>Password Reset OTP</h1>"
                    "<p>Your One-Time Password (OTP) is:</p>"
                    f"<h2>{otp.code}</h2>"
                    f"<p>This OTP will expire in {minutes} minutes.</p>"
                ),
            )
        except NotifierError as exc:
            logger.error("Reset OTP stored but delivery failed for %s: %s", email, exc)
            raise DeliveryError("Failed to send OTP.") from exc

        logger.info("Reset OTP issued for %s", email)
        return otp

    def verify_reset_otp(self, email: str, code: str | int) -> IssuedResetGrant:
        """Consume the identity's reset code and mint a single-use reset grant."""
        require(email=email, otp=code)
        with storage_guard("verify_otp_lookup", email):
            identity = self.store.get_by_email(email)
        if identity is None:
            raise NotFound()

        now = self.clock()
        match_code(identity.otp, identity.otp_expires_at, code, now)

        expires_at = now + timedelta(seconds=self.reset_grant_ttl_seconds)
        grant = ResetGrant(email=email, grant_id=new_grant_id(), expires_at=to_iso(expires_at))
        with storage_guard("verify_otp_consume", email):
            redeemed = self.store.redeem_reset_otp(email, identity.otp, grant)
        if not redeemed:
            # Lost the race to a concurrent verification or a re-issue.
            raise NoOutstandingCode()

        logger.info("Reset OTP verified for %s", email)
        token = create_reset_token(email, grant.grant_id, expires_at, self.secret_key)
        return IssuedResetGrant(email=email, token=token, expires_at=expires_at)

    def reset_password(self, email: str, new_password: str, reset_token: str) -> Identity:
        """Set a new password, consuming the reset grant minted by verify_reset_otp."""
        require(email=email, newPassword=new_password, resetToken=reset_token)
        payload = decode_reset_token(reset_token, self.secret_key)
        if payload is None or payload["sub"] != email:
            raise InvalidResetGrant()

        with storage_guard("reset_password_lookup", email):
            identity = self.store.get_by_email(email)
        if identity is None:
            raise NotFound()

        hashed = hash_password(new_password)
        with storage_guard("reset_password_write", email):
            applied = self.store.reset_password_with_grant(email, payload["jti"], hashed, to_iso(self.clock()))
        if not applied:
            raise InvalidResetGrant()

        identity.hashed_password = hashed
        logger.info("Password reset for %s", email)
        return identity
