"""Pydantic schemas for authentication and user administration."""

import re
from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import EmailStr, Field, StringConstraints, field_validator

from blogapi.auth.permissions import UserRole
from blogapi.core.schemas import CamelModel


MIN_PASSWORD_LENGTH = 6

_PASSWORD_RULES = (
    (re.compile(r"[a-z]"), "one lowercase letter"),
    (re.compile(r"[A-Z]"), "one uppercase letter"),
    (re.compile(r"\d"), "one number"),
)


def validate_password_strength(password: str) -> str:
    """Require at least one lowercase letter, one uppercase letter and a digit."""
    missing = [label for pattern, label in _PASSWORD_RULES if not pattern.search(password)]
    if missing:
        msg = "Password must contain at least " + ", ".join(missing)
        raise ValueError(msg)
    return password


# Names are trimmed before length checks, passwords are taken verbatim
DisplayName = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=2, max_length=50)
]


# ==============================================================================
# Request Schemas
# ==============================================================================


class RegisterRequest(CamelModel):
    """Public registration. The role is always ``user``."""

    name: DisplayName
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)


class LoginRequest(CamelModel):
    """User login request."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(CamelModel):
    """Password change request."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return validate_password_strength(v)


class UpdateProfileRequest(CamelModel):
    """Self-service profile update."""

    name: DisplayName | None = None
    avatar: str | None = Field(None, max_length=500)
    bio: str | None = Field(None, max_length=500)


class AdminCreateUserRequest(RegisterRequest):
    """Admin user creation; any role may be assigned."""

    role: UserRole = UserRole.USER


class AdminUpdateUserRequest(CamelModel):
    """Admin user update. The password is never changed here."""

    name: DisplayName | None = None
    email: EmailStr | None = None
    role: UserRole | None = None
    is_active: bool | None = None
    avatar: str | None = Field(None, max_length=500)
    bio: str | None = Field(None, max_length=500)


# ==============================================================================
# Response Schemas
# ==============================================================================


class UserResponse(CamelModel):
    """Public user representation (no password hash)."""

    id: UUID
    name: str
    email: str
    role: UserRole
    avatar: str = ""
    bio: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AuthorSummary(CamelModel):
    """Embedded author reference on posts and comments."""

    id: UUID
    name: str
    avatar: str = ""


class AuthPayload(CamelModel):
    """Register/login result."""

    user: UserResponse
    token: str
