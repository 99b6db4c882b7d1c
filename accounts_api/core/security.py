"""Security utilities: password hashing and JWT access tokens."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import bcrypt
import jwt
from jwt.exceptions import ExpiredSignatureError, PyJWTError

from accounts_api.core.config import settings
from accounts_api.core.exceptions import InternalError, TokenExpiredError, TokenInvalidError

if TYPE_CHECKING:
    from accounts_api.models.user import User

logger = logging.getLogger(__name__)


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt with the configured cost factor."""
    try:
        return bcrypt.hashpw(
            password.encode("utf-8"),
            bcrypt.gensalt(rounds=settings.bcrypt_rounds),
        ).decode("utf-8")
    except (ValueError, TypeError) as e:
        logger.error(f"Password hashing error: {e}")
        raise InternalError("Password hashing failed") from e


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hash.

    Uses bcrypt's built-in timing-safe comparison. A hash bcrypt cannot parse
    is a server fault, not a wrong password.
    """
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8"),
        )
    except (ValueError, TypeError) as e:
        logger.error(f"Password verification error: {e}")
        raise InternalError("Password verification failed") from e


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Create a signed JWT access token."""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)

    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire, "iat": now})
    try:
        return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    except PyJWTError as e:
        logger.error(f"Token signing error: {e}")
        raise InternalError("Token generation failed") from e


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT token.

    Raises TokenExpiredError past expiry and TokenInvalidError for anything
    else that fails verification.
    """
    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            options={"require": ["exp", "sub"]},
        )
    except ExpiredSignatureError as e:
        logger.debug(f"JWT expired: {e}")
        raise TokenExpiredError() from e
    except PyJWTError as e:
        logger.debug(f"JWT decode error: {e}")
        raise TokenInvalidError() from e


def token_claims_for(user: User) -> dict[str, Any]:
    """Identity claims embedded in a user's access token."""
    return {
        "sub": str(user.id),
        "username": user.username,
        "email": user.email,
        "role": user.role.value,
    }


def issue_token_for(user: User) -> str:
    return create_access_token(token_claims_for(user))
