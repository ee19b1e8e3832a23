"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - bcrypt hash/verify, malformed hash handling
  - OTP generation: always six digits, no leading zero
  - Reset grant tokens: round trip, wrong key, expired, wrong purpose
"""

from __future__ import annotations

from datetime import timedelta

from jose import jwt

from auth.store import utcnow
from auth.tokens import (
    create_reset_token,
    decode_reset_token,
    generate_otp,
    hash_password,
    normalize_code,
    verify_password,
)

KEY = "unit-test-secret-key-0123456789abcdef"


class TestPasswords:
    def test_hash_is_not_plaintext(self) -> None:
        hashed = hash_password("hunter2")
        assert hashed != "hunter2"
        assert hashed.startswith("$2")

    def test_verify(self) -> None:
        hashed = hash_password("hunter2")
        assert verify_password("hunter2", hashed) is True
        assert verify_password("hunter3", hashed) is False

    def test_malformed_hash(self) -> None:
        assert verify_password("hunter2", "hunter2") is False


class TestOtpCodes:
    def test_six_digits(self) -> None:
        for _ in range(200):
            code = generate_otp()
            assert len(code) == 6
            assert code.isdigit()
            assert code[0] != "0"

    def test_normalize(self) -> None:
        assert normalize_code(123456) == "123456"
        assert normalize_code(" 123456\n") == "123456"


class TestResetTokens:
    def test_round_trip(self) -> None:
        token = create_reset_token("a@x.com", "grant-1", utcnow() + timedelta(minutes=10), KEY)
        payload = decode_reset_token(token, KEY)
        assert payload["sub"] == "a@x.com"
        assert payload["jti"] == "grant-1"

    def test_wrong_key(self) -> None:
        token = create_reset_token("a@x.com", "grant-1", utcnow() + timedelta(minutes=10), KEY)
        assert decode_reset_token(token, "some-other-key-0123456789abcdefgh") is None

    def test_expired(self) -> None:
        token = create_reset_token("a@x.com", "grant-1", utcnow() - timedelta(seconds=5), KEY)
        assert decode_reset_token(token, KEY) is None

    def test_wrong_purpose(self) -> None:
        token = jwt.encode(
            {"sub": "a@x.com", "jti": "grant-1", "purpose": "login", "exp": utcnow() + timedelta(minutes=10)},
            KEY,
            algorithm="HS256",
        )
        assert decode_reset_token(token, KEY) is None

    def test_garbage(self) -> None:
        assert decode_reset_token("not.a.jwt", KEY) is None
