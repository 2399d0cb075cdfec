"""
API request and response models for Elewa REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

All input is validated here, before any handler logic runs. A failure becomes
a 422 validation_error envelope listing the offending fields.
"""

import re
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from auth.models import Claims, User
from auth.passwords import MAX_PASSWORD_BYTES

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$"
PHONE_PATTERN = r"^\+?[0-9]{7,15}$"

_PHONE_SEPARATORS = re.compile(r"[\s\-().]")

_Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]
_Email = Annotated[str, Field(max_length=255, pattern=EMAIL_PATTERN)]
_Phone = Annotated[str, Field(pattern=PHONE_PATTERN)]


def _normalize_email(value):
    return value.strip().lower() if isinstance(value, str) else value


def _normalize_phone(value):
    """Drop spaces, dashes, dots and parentheses so "+254 700-000 000" matches "+254700000000"."""
    return _PHONE_SEPARATORS.sub("", value) if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Email is lowercased and phone separators are stripped before the pattern
    checks run (mode='before'), so the unique indexes see one canonical form.
    Names are trimmed. The password is taken byte for byte.
    """

    first_name: _Name
    last_name: _Name
    email: _Email
    phone: _Phone
    password: str = Field(min_length=6, max_length=MAX_PASSWORD_BYTES)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)

    @field_validator("phone", mode="before")
    @classmethod
    def normalize_phone(cls, value):
        return _normalize_phone(value)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=1024)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/users/{user_id}.

    Only first_name, last_name and phone are mutable. Other keys in the body
    are ignored.
    """

    first_name: Optional[_Name] = None
    last_name: Optional[_Name] = None
    phone: Optional[_Phone] = None

    @field_validator("phone", mode="before")
    @classmethod
    def normalize_phone(cls, value):
        return _normalize_phone(value)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user record. Never carries the password digest or tokens."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            user_id=user.user_id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            phone=user.phone,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class UserSummary(BaseModel):
    """One row of GET /api/v1/users."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    first_name: str
    last_name: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(user_id=user.user_id, first_name=user.first_name, last_name=user.last_name, email=user.email)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class RegisterResponse(TokenResponse):
    user_id: str


class LoginResponse(TokenResponse):
    user: UserResponse


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    expires_at: int

    @classmethod
    def from_claims(cls, claims: Claims) -> "MeResponse":
        return cls(
            user_id=claims.user_id,
            email=claims.email,
            first_name=claims.first_name,
            last_name=claims.last_name,
            expires_at=claims.expires_at,
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    fields: Optional[list[str]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
