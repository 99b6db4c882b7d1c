"""Role-Based Access Control (RBAC) utilities.

Authentication is a fixed chain of stages, each of which either hands its
result to the next or raises:

    extract_bearer_token -> decode_access_token -> load_principal -> active check

Role and ownership gates are separate dependencies layered on top of
``get_current_user``, so a route opts into exactly the guards it declares.
"""

import json
import logging
from typing import Annotated, Any, Optional

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from accounts_api.core.exceptions import (
    AppError,
    ForbiddenError,
    TokenInvalidError,
    UnauthorizedError,
)
from accounts_api.core.security import decode_access_token
from accounts_api.db.executor import QueryExecutor
from accounts_api.db.session import DbSession
from accounts_api.models.user import User, UserRole

logger = logging.getLogger("auth")


def extract_bearer_token(request: Request) -> str:
    """Pull the token out of ``Authorization: Bearer <token>``."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise UnauthorizedError("Access token required")
    return token


def load_principal(db: Session, payload: dict[str, Any]) -> Optional[User]:
    """Fetch the live user row named by the token's subject."""
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise TokenInvalidError("Invalid token payload")
    return QueryExecutor(db).fetch_one(select(User).where(User.id == user_id))


def get_current_user(request: Request, db: DbSession) -> User:
    """Authenticate the request and return the acting user.

    Role and status come from the database, not the token, so changes
    apply on the very next request.
    """
    token = extract_bearer_token(request)
    payload = decode_access_token(token)
    user = load_principal(db, payload)

    # 401 rather than 404: a token for a vanished id must not reveal
    # whether that id ever existed.
    if user is None:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        raise ForbiddenError("User account is inactive")

    request.state.user = user
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_role(role: UserRole):
    """Dependency to require an exact role."""

    def role_checker(current_user: CurrentUser) -> User:
        if current_user.role != role:
            logger.warning(
                f"Role {role.value} required, user {current_user.id} has {current_user.role.value}"
            )
            raise ForbiddenError(f"{role.value.capitalize()} access required")
        return current_user

    return role_checker


require_admin = require_role(UserRole.ADMIN)

RequireAdmin = Annotated[User, Depends(require_admin)]


async def _json_body_field(request: Request, field: str) -> Any:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(body, dict):
        return body.get(field)
    return None


def require_ownership_or_admin(field: str = "user_id"):
    """Dependency allowing admins, or the user whose id is in *field*.

    The owner id is looked up in the path, then the query string, then the
    JSON body.
    """

    async def ownership_checker(request: Request, current_user: CurrentUser) -> User:
        if current_user.is_admin:
            return current_user

        owner_id = request.path_params.get(field)
        if owner_id is None:
            owner_id = request.query_params.get(field)
        if owner_id is None:
            owner_id = await _json_body_field(request, field)

        if owner_id is None or str(owner_id) != str(current_user.id):
            raise ForbiddenError("Access denied")
        return current_user

    return ownership_checker


def get_optional_current_user(request: Request, db: DbSession) -> Optional[User]:
    """Get the current user if a valid token is provided, otherwise return None.

    Any failure in the chain leaves the request anonymous instead of
    rejecting it.
    """
    if not request.headers.get("Authorization"):
        return None
    try:
        return get_current_user(request, db)
    except AppError as e:
        logger.debug(f"Optional auth ignored: {e.message}")
        return None


OptionalCurrentUser = Annotated[Optional[User], Depends(get_optional_current_user)]
