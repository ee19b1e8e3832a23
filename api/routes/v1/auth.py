"""
api/routes/v1/auth.py -- Signup, login, and password reset REST endpoints.

Routes:
  POST /api/v1/signup/request-otp   -- email a signup code (never reveals existing accounts)
  POST /api/v1/signup/complete      -- create the account with the emailed code
  POST /api/v1/login                -- username-or-email + password
  POST /api/v1/forgot-password      -- email a reset code to an existing account
  POST /api/v1/verify-otp           -- consume the reset code, return a reset grant
  POST /api/v1/reset-password       -- set a new password with the reset grant

Handlers are thin: they pull IdentityLifecycle off app.state, call one
method, and shape the response. Every failure is an auth.errors.IdentityError
raised by the lifecycle; api/main.py renders those into the error envelope.

Handlers are plain `def` so bcrypt, SMTP and database calls run in the
threadpool instead of blocking the event loop.

Security:
  Cache-Control: no-store on login and verify-otp responses, which carry tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.models import (
    EmailRequest,
    IdentityOut,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ResetPasswordRequest,
    SignupCompleteRequest,
    SignupResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from auth.lifecycle import IdentityLifecycle

router = APIRouter()


def _lifecycle(request: Request) -> IdentityLifecycle:
    return request.app.state.lifecycle


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------


@router.post("/signup/request-otp", response_model=MessageResponse)
def request_signup_otp(request: Request, body: EmailRequest) -> MessageResponse:
    """Send a signup code to the address. Replaces any code sent earlier."""
    _lifecycle(request).request_signup_otp(body.email)
    return MessageResponse(message="OTP sent successfully")


@router.post("/signup/complete", response_model=SignupResponse, status_code=201)
def complete_signup(request: Request, body: SignupCompleteRequest) -> SignupResponse:
    identity = _lifecycle(request).complete_signup(body.username, body.email, body.password, body.otp)
    return SignupResponse(
        message="Signup successful",
        user=IdentityOut(id=identity.id, username=identity.username, email=identity.email),
    )


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate by username or email.

    Unknown account -> 404 not_found, wrong password -> 401
    incorrect_password. The token is an opaque placeholder; no session is
    created.
    """
    result = _lifecycle(request).attempt_login(body.username_or_email, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            message="Login successful",
            token=result.token,
            username=result.identity.username,
            email=result.identity.email,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Forgot / reset password
# ---------------------------------------------------------------------------


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(request: Request, body: EmailRequest) -> MessageResponse:
    _lifecycle(request).forgot_password(body.email)
    return MessageResponse(message="OTP sent to your email")


@router.post("/verify-otp", response_model=VerifyOtpResponse)
def verify_otp(request: Request, body: VerifyOtpRequest) -> JSONResponse:
    """Consume the reset code. The returned resetToken is required by /reset-password."""
    lifecycle = _lifecycle(request)
    grant = lifecycle.verify_reset_otp(body.email, body.otp)
    resp = JSONResponse(
        status_code=200,
        content=VerifyOtpResponse(
            message="OTP verified successfully.",
            reset_token=grant.token,
            expires_in=lifecycle.reset_grant_ttl_seconds,
        ).model_dump(by_alias=True),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    _lifecycle(request).reset_password(body.email, body.new_password, body.reset_token)
    return MessageResponse(message="Password reset successfully")
