"""
API request and response models for MemberDesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
media/models.py, which own the internal domain representation. Route
handlers map between the two.

Wire field names are camelCase (usernameOrEmail, newPassword, resetToken,
imageUrl) to match existing web clients; Python attributes stay snake_case.
Request models accept either form (populate_by_name).
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# bcrypt ignores everything past 72 bytes.
_PASSWORD_MAX = 72


def _strip(value):
    return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class EmailRequest(BaseModel):
    """Body for POST /signup/request-otp and POST /forgot-password."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)


class SignupCompleteRequest(BaseModel):
    # Identifiers are stripped per field; a model-wide strip would alter the password.
    username: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    # Clients send the code either as a JSON number or a string.
    otp: Union[str, int]

    @field_validator("username", "email", mode="before")
    @classmethod
    def strip_identifiers(cls, value):
        return _strip(value)


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username_or_email: str = Field(alias="usernameOrEmail", min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)

    @field_validator("username_or_email", mode="before")
    @classmethod
    def strip_identifier(cls, value):
        return _strip(value)


class VerifyOtpRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    otp: Union[str, int]


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=1, max_length=255)
    new_password: str = Field(alias="newPassword", min_length=1, max_length=_PASSWORD_MAX)
    reset_token: str = Field(alias="resetToken", min_length=1)

    @field_validator("email", "reset_token", mode="before")
    @classmethod
    def strip_identifiers(cls, value):
        return _strip(value)


class ContactRequest(BaseModel):
    """Body for POST /contact -- a visitor message relayed by email."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1, max_length=5000)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class IdentityOut(BaseModel):
    """Public view of an identity. Never carries password or OTP fields."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str


class SignupResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: IdentityOut


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    token: str
    username: str
    email: str


class VerifyOtpResponse(BaseModel):
    """Carries the single-use grant that POST /reset-password requires."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str
    reset_token: str = Field(serialization_alias="resetToken")
    expires_in: int = Field(serialization_alias="expiresIn")


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    users: list[IdentityOut]


class ArchivedIdentityOut(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    username: str
    email: str
    deleted_at: str = Field(serialization_alias="deletedAt")


class DeleteUserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    archived: ArchivedIdentityOut


class ImageUploadResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str
    image_url: str = Field(serialization_alias="imageUrl")


class ImageListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    images: list[str]


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses.

    message duplicates error.message so every response body, success or
    failure, has a top-level human-readable message.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
