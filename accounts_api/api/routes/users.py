"""User routes: registration, login, profile self-service and admin CRUD."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request, status

from accounts_api.core.config import settings
from accounts_api.core.pagination import search_pagination
from accounts_api.core.rate_limit import limiter
from accounts_api.core.rbac import CurrentUser, RequireAdmin
from accounts_api.core.responses import success_response
from accounts_api.db.executor import QueryExecutor
from accounts_api.db.session import DbSession
from accounts_api.schemas.auth import AuthResponse, LoginRequest, PasswordChangeRequest
from accounts_api.schemas.pagination import PaginationSpec
from accounts_api.schemas.user import AdminUserUpdate, ProfileUpdate, UserCreate, UserResponse
from accounts_api.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter()

# Positive integer ID validator for path parameters
PositiveIntId = Annotated[int, Path(gt=0, description="User ID (must be positive)")]

ADMIN_LIST_DEFAULT_LIMIT = 10
ADMIN_LIST_MAX_LIMIT = 50


def get_user_service(db: DbSession) -> UserService:
    return UserService(QueryExecutor(db))


Users = Annotated[UserService, Depends(get_user_service)]
AdminListPage = Annotated[
    PaginationSpec,
    Depends(search_pagination(ADMIN_LIST_DEFAULT_LIMIT, ADMIN_LIST_MAX_LIMIT)),
]


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


# ==================== PUBLIC ====================

@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.auth_rate_limit)
def register(request: Request, user_create: UserCreate, users: Users):
    """Register a new account and return it with an access token."""
    user, token = users.register(user_create)
    body = AuthResponse(user=UserResponse.model_validate(user), token=token)
    return success_response("User registered successfully", body, status.HTTP_201_CREATED)


@router.post("/login")
@limiter.limit(settings.auth_rate_limit)
def login(request: Request, login_request: LoginRequest, users: Users):
    """Authenticate by email and password."""
    user, token = users.login(login_request, client_ip=_client_ip(request))
    body = AuthResponse(user=UserResponse.model_validate(user), token=token)
    return success_response("Login successful", body)


# ==================== SELF-SERVICE ====================

@router.get("/profile")
@limiter.limit(settings.rate_limit)
def get_profile(request: Request, current_user: CurrentUser, users: Users):
    user = users.get_profile(current_user)
    return success_response("Profile retrieved successfully", UserResponse.model_validate(user))


@router.put("/profile")
@limiter.limit(settings.rate_limit)
def update_profile(request: Request, current_user: CurrentUser, users: Users, data: ProfileUpdate):
    """Partially update the caller's own profile (role/status are ignored)."""
    user = users.update_profile(current_user, data)
    return success_response("Profile updated successfully", UserResponse.model_validate(user))


@router.put("/change-password")
@limiter.limit(settings.rate_limit)
def change_password(request: Request, current_user: CurrentUser, users: Users, data: PasswordChangeRequest):
    users.change_password(current_user, data)
    return success_response("Password changed successfully")


# ==================== ADMIN ====================

@router.get("/")
@limiter.limit(settings.rate_limit)
def list_users(request: Request, current_user: RequireAdmin, users: Users, page: AdminListPage):
    """List all users, inactive ones included. Supports ``q`` search."""
    result = users.list_users(page)
    return success_response("Users retrieved successfully", result.as_payload())


@router.get("/{user_id}")
@limiter.limit(settings.rate_limit)
def get_user(request: Request, user_id: PositiveIntId, current_user: RequireAdmin, users: Users):
    user = users.get_user(user_id)
    return success_response("User retrieved successfully", UserResponse.model_validate(user))


@router.put("/{user_id}")
@limiter.limit(settings.rate_limit)
def update_user(
    request: Request,
    user_id: PositiveIntId,
    current_user: RequireAdmin,
    users: Users,
    data: AdminUserUpdate,
):
    """Partially update any user, including role and status."""
    user = users.update_user(user_id, data)
    return success_response("User updated successfully", UserResponse.model_validate(user))


@router.delete("/{user_id}")
@limiter.limit(settings.rate_limit)
def delete_user(request: Request, user_id: PositiveIntId, current_user: RequireAdmin, users: Users):
    """Deactivate a user. Admins cannot deactivate themselves."""
    users.delete_user(user_id, current_user)
    return success_response("User deleted successfully")
