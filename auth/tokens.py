"""
auth/tokens.py -- Password hashing, OTP codes, and password-reset grant tokens.

Security design decisions:
  Passwords: bcrypt, used directly. Every write path (signup, reset) stores a
       bcrypt hash; login verifies against it. The _DUMMY_HASH constant enables
       timing equalization so a lookup miss costs the same as a bad password.

  OTP codes: secrets.randbelow() over 100000-999999. Always six digits, so
       string comparison and integer comparison agree.

  Reset grants: python-jose HS256 JWT carrying sub (email), jti (grant id),
       purpose and exp. The signature stops forged grants; the jti is also
       stored server-side by IdentityStore so each grant is usable once.

  The signing key is passed in by the caller (from Settings, built once at
  startup). Nothing here reads configuration.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime

import bcrypt
from jose import JWTError, jwt

logger = logging.getLogger("memberdesk.auth")

_ALGORITHM = "HS256"
_RESET_PURPOSE = "password_reset"

OTP_DIGITS = 6

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes; the API layer caps passwords
    at 72 characters so nothing is silently dropped for ASCII input.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash (e.g. a legacy plaintext value) never matches.
        return False


# Computed once at module load so the first login is not measurably slower.
_DUMMY_HASH: str = hash_password("memberdesk_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a bcrypt comparison whose result is discarded, to equalize timing."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# OTP codes
# ---------------------------------------------------------------------------


def generate_otp() -> str:
    """Return a cryptographically random 6-digit code with no leading zero."""
    low = 10 ** (OTP_DIGITS - 1)
    return str(low + secrets.randbelow(9 * low))


def normalize_code(code: str | int) -> str:
    """Canonical form of a presented code: digit strings compare by integer value."""
    text = str(code).strip()
    if text.isascii() and text.isdigit():
        return str(int(text))
    return text


def generate_placeholder_token() -> str:
    """Opaque login success token. Not persisted and not verifiable."""
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Reset grant tokens
# ---------------------------------------------------------------------------


def new_grant_id() -> str:
    return secrets.token_hex(16)


def create_reset_token(email: str, grant_id: str, expires_at: datetime, secret_key: str) -> str:
    """Encode a signed reset grant for email, valid until expires_at."""
    payload = {
        "sub": email,
        "jti": grant_id,
        "purpose": _RESET_PURPOSE,
        "exp": expires_at,
    }
    return jwt.encode(payload, secret_key, algorithm=_ALGORITHM)


def decode_reset_token(token: str, secret_key: str) -> dict | None:
    """Verify a reset grant token. Returns the payload, or None on any failure.

    Signature, expiry and purpose are all checked here; whether the grant is
    still unused is the store's concern.
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[_ALGORITHM])
    except JWTError as exc:
        logger.info("Rejected reset token: %s", exc)
        return None
    if payload.get("purpose") != _RESET_PURPOSE or "sub" not in payload or "jti" not in payload:
        return None
    return payload
