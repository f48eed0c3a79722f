"""
M-Hike API: User & Auth Schemas
=================================

Request forms and response models for /api/auth.

Register and profile-update arrive as multipart forms (they can carry an
avatar), so they are validated with `parse_form()` inside the service rather
than by FastAPI's body parsing. Login and change-password are JSON bodies.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from mhike.schemas.common import CamelModel

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8


def _normalize_email(value: str) -> str:
    email = (value or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Valid email is required")
    return email


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


# ── Requests ──────────────────────────────────────────────────────────────

class RegisterForm(CamelModel):
    username: str = Field(default="", validate_default=True)
    email: str = Field(default="", validate_default=True)
    password: str = Field(default="", validate_default=True)
    phone: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = (v or "").strip()
        if not 3 <= len(v) <= 50:
            raise ValueError("Username must be between 3 and 50 characters")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v or "") < MIN_PASSWORD_LENGTH:
            raise ValueError("Password must be at least 8 characters")
        return v

    @field_validator("phone")
    @classmethod
    def strip_phone(cls, v: Optional[str]) -> Optional[str]:
        return _optional_text(v)


class ProfileUpdateForm(CamelModel):
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return _normalize_email(v)

    @field_validator("phone")
    @classmethod
    def strip_phone(cls, v: Optional[str]) -> Optional[str]:
        return _optional_text(v)


class LoginRequest(CamelModel):
    """Either email or username identifies the account."""

    email: Optional[str] = None
    username: Optional[str] = None
    password: str = Field(min_length=1)


class ChangePasswordRequest(CamelModel):
    old_password: str = Field(min_length=1)
    new_password: str
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError("New password must be at least 8 characters")
        return v


# ── Responses ─────────────────────────────────────────────────────────────

class UserResponse(CamelModel):
    user_id: int
    username: str
    email: str
    phone: Optional[str] = None
    avatar: Optional[str] = None


class ProfileResponse(UserResponse):
    created_at: Optional[datetime] = None


class PublicUserResponse(CamelModel):
    """What other hikers may see about a user."""

    user_id: int
    username: str
    avatar: Optional[str] = None
    created_at: Optional[datetime] = None


class AuthResponse(CamelModel):
    message: str
    user: UserResponse
    token: str


class ProfileUpdateResponse(CamelModel):
    message: str
    user: UserResponse


class AvatarResponse(CamelModel):
    message: str
    avatar_url: str
