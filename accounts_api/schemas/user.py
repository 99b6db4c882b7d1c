"""User schemas."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

from accounts_api.models.user import UserRole, UserStatus

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Za-z])(?=.*\d)[A-Za-z\d@$!%*#?&]{6,}$")
FULL_NAME_MAX_LENGTH = 100
# bcrypt only reads the first 72 bytes and newer releases reject longer input
PASSWORD_MAX_BYTES = 72


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def check_username(value: str) -> str:
    if not 3 <= len(value) <= 50:
        raise ValueError("Username must be between 3 and 50 characters")
    if not USERNAME_PATTERN.match(value):
        raise ValueError("Username can only contain letters, numbers, and underscores")
    return value


def check_full_name(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value) > FULL_NAME_MAX_LENGTH:
        raise ValueError(f"Full name must not exceed {FULL_NAME_MAX_LENGTH} characters")
    return value


def check_phone(value: Optional[str]) -> Optional[str]:
    if value and not PHONE_PATTERN.match(value):
        raise ValueError("Please provide a valid phone number")
    return value


def check_password_size(value: str, label: str = "Password") -> str:
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"{label} must not exceed {PASSWORD_MAX_BYTES} bytes")
    return value


def check_password_strength(value: str, label: str = "Password") -> str:
    if len(value) < 6:
        raise ValueError(f"{label} must be at least 6 characters long")
    check_password_size(value, label)
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(f"{label} must contain at least one letter and one number")
    return value


class UserCreate(BaseModel):
    """Registration body. Role and status are never taken from the client."""

    username: str
    email: EmailStr
    password: str
    full_name: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("username", "email", "full_name", "phone", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        return check_username(v)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: Optional[str]) -> Optional[str]:
        return check_full_name(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return check_phone(v)


class ProfileUpdate(BaseModel):
    """Self-service partial update.

    Only keys the client actually sent are applied; role/status are not
    part of this schema and are ignored if present.
    """

    model_config = ConfigDict(extra="ignore")

    username: Optional[str] = None
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("username", "email", "full_name", "phone", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: Optional[str]) -> Optional[str]:
        return check_username(v) if v is not None else v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v is not None else v

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: Optional[str]) -> Optional[str]:
        return check_full_name(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return check_phone(v)


class AdminUserUpdate(ProfileUpdate):
    """Admin partial update; may additionally change role and status."""

    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, v):
        if v is not None and v not in [r.value for r in UserRole]:
            raise ValueError("Role must be either user or admin")
        return v

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in [s.value for s in UserStatus]:
            raise ValueError("Status must be either active or inactive")
        return v


class UserResponse(BaseModel):
    """User response schema. Deliberately has no password field."""

    id: int
    username: str
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole
    status: UserStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
