"""Authentication schemas."""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator

from accounts_api.schemas.user import UserResponse, check_password_size, check_password_strength


class LoginRequest(BaseModel):
    """Login request body."""

    email: EmailStr
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("password")
    @classmethod
    def require_password(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return check_password_size(v)


class PasswordChangeRequest(BaseModel):
    """Change-password body (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(..., alias="newPassword")
    confirm_password: str = Field(..., alias="confirmPassword")

    @field_validator("current_password")
    @classmethod
    def require_current(cls, v: str) -> str:
        if not v:
            raise ValueError("Current password is required")
        return check_password_size(v, label="Current password")

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return check_password_strength(v, label="New password")

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        new_password = info.data.get("new_password")
        if new_password is not None and v != new_password:
            raise ValueError("Password confirmation does not match new password")
        return v


class AuthResponse(BaseModel):
    """Body returned by register and login."""

    user: UserResponse
    token: str
