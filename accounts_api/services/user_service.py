"""User service - registration, login, profile self-service and admin CRUD.

All persistence goes through ``QueryExecutor``; all HTTP concerns stay in
the route layer. Methods raise ``AppError`` subclasses for every business
rule violation.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.sql import Select

from accounts_api.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from accounts_api.core.sanitize import strip_script_tags
from accounts_api.core.security import get_password_hash, issue_token_for, verify_password
from accounts_api.db.executor import QueryExecutor
from accounts_api.models.user import User, UserRole, UserStatus
from accounts_api.schemas.auth import LoginRequest, PasswordChangeRequest
from accounts_api.schemas.pagination import PaginatedResponse, PaginationSpec
from accounts_api.schemas.user import ProfileUpdate, UserCreate, UserResponse

logger = logging.getLogger(__name__)
auth_logger = logging.getLogger("auth")

# (field, may be cleared to NULL) in the order they are applied
SELF_UPDATE_FIELDS: tuple[tuple[str, bool], ...] = (
    ("username", False),
    ("email", False),
    ("full_name", True),
    ("phone", True),
)
ADMIN_UPDATE_FIELDS: tuple[tuple[str, bool], ...] = SELF_UPDATE_FIELDS + (
    ("role", False),
    ("status", False),
)
SANITIZED_FIELDS = frozenset({"username", "full_name", "phone"})

SEARCH_COLUMNS = (User.username, User.email, User.full_name)
SORTABLE_COLUMNS = {
    "id": User.id,
    "username": User.username,
    "email": User.email,
    "created_at": User.created_at,
    "updated_at": User.updated_at,
}
FILTERABLE_COLUMNS = {"role": User.role, "status": User.status}

DUPLICATE_MESSAGE = "Username or email already exists"
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


class UserUpdateBuilder:
    """Accumulates ``(field, value)`` pairs for a partial UPDATE.

    Walks a fixed checklist and only picks up fields the client actually
    sent. ``build`` refuses to produce a statement with nothing to set.
    """

    def __init__(self) -> None:
        self.assignments: list[tuple[str, Any]] = []

    @classmethod
    def from_payload(
        cls,
        payload: ProfileUpdate,
        checklist: Sequence[tuple[str, bool]] = SELF_UPDATE_FIELDS,
    ) -> "UserUpdateBuilder":
        builder = cls()
        present = payload.model_fields_set
        for field, nullable in checklist:
            if field not in present:
                continue
            value = getattr(payload, field)
            if field in SANITIZED_FIELDS:
                value = strip_script_tags(value)
            if nullable:
                builder.add(field, value or None)
            elif value:
                builder.add(field, value)
        return builder

    def add(self, field: str, value: Any) -> None:
        self.assignments.append((field, value))

    @property
    def changes(self) -> dict[str, Any]:
        return dict(self.assignments)

    def build(self, user_id: int):
        if not self.assignments:
            raise ValidationError("No fields to update")
        values = self.changes
        values["updated_at"] = func.now()
        return (
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )


class UserService:
    """Business logic for user accounts."""

    def __init__(self, executor: QueryExecutor) -> None:
        self.executor = executor

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_by_id(self, user_id: int) -> Optional[User]:
        return self.executor.fetch_one(select(User).where(User.id == user_id))

    def _get_or_404(self, user_id: int) -> User:
        user = self._find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def _assert_unique(
        self,
        username: Optional[str],
        email: Optional[str],
        exclude_id: Optional[int] = None,
    ) -> None:
        """One combined existence query over username OR email."""
        conditions = []
        if username:
            conditions.append(User.username == username)
        if email:
            conditions.append(User.email == email)
        if not conditions:
            return

        stmt = select(User.id).where(or_(*conditions))
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        if self.executor.fetch_one(stmt.limit(1)) is not None:
            raise ConflictError(DUPLICATE_MESSAGE)

    def _apply_update(self, user_id: int, builder: UserUpdateBuilder) -> User:
        changes = builder.changes
        self._assert_unique(changes.get("username"), changes.get("email"), exclude_id=user_id)
        self.executor.execute(builder.build(user_id))
        return self._get_or_404(user_id)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def register(self, data: UserCreate) -> tuple[User, str]:
        """Create an active ``user``-role account and issue its first token."""
        self._assert_unique(data.username, data.email)

        user = User(
            username=strip_script_tags(data.username),
            email=data.email,
            password_hash=get_password_hash(data.password),
            full_name=strip_script_tags(data.full_name) or None,
            phone=data.phone or None,
            role=UserRole.USER,
            status=UserStatus.ACTIVE,
        )
        self.executor.add(user)
        auth_logger.info(f"New user registered: {user.username} (ID: {user.id})")
        return user, issue_token_for(user)

    def login(self, data: LoginRequest, client_ip: str = "unknown") -> tuple[User, str]:
        """Authenticate by email and password.

        Unknown email and wrong password share one message so the response
        does not reveal which accounts exist.
        """
        user = self.executor.fetch_one(select(User).where(User.email == data.email))
        if user is None:
            auth_logger.warning(f"Failed login attempt for unknown email from IP: {client_ip}")
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)

        if not user.is_active:
            auth_logger.warning(f"Login attempt for inactive user ID {user.id} from IP: {client_ip}")
            raise ForbiddenError("Account is inactive")

        if not verify_password(data.password, user.password_hash):
            auth_logger.warning(f"Failed login attempt for user ID {user.id} from IP: {client_ip}")
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)

        auth_logger.info(f"Successful login: {user.username} (ID: {user.id}, role: {user.role.value}) from IP: {client_ip}")
        return user, issue_token_for(user)

    # ------------------------------------------------------------------
    # Self-service
    # ------------------------------------------------------------------

    def get_profile(self, principal: User) -> User:
        return self._get_or_404(principal.id)

    def update_profile(self, principal: User, data: ProfileUpdate) -> User:
        builder = UserUpdateBuilder.from_payload(data, SELF_UPDATE_FIELDS)
        user = self._apply_update(principal.id, builder)
        logger.info(f"Profile updated for user ID {user.id}: {sorted(builder.changes)}")
        return user

    def change_password(self, principal: User, data: PasswordChangeRequest) -> None:
        user = self._get_or_404(principal.id)
        if not verify_password(data.current_password, user.password_hash):
            raise ValidationError("Current password is incorrect")

        self.executor.execute(
            update(User)
            .where(User.id == user.id)
            .values(password_hash=get_password_hash(data.new_password), updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        auth_logger.info(f"Password changed for user ID {user.id}")

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def _filtered(self, stmt: Select, spec: PaginationSpec) -> Select:
        if spec.search:
            stmt = stmt.where(
                or_(*(column.contains(spec.search, autoescape=True) for column in SEARCH_COLUMNS))
            )
        for key, value in spec.filters.items():
            column = FILTERABLE_COLUMNS.get(key)
            if column is None:
                continue
            if isinstance(value, list):
                stmt = stmt.where(column.in_(value))
            else:
                stmt = stmt.where(column == value)
        return stmt

    def list_users(self, spec: PaginationSpec) -> PaginatedResponse:
        """One page of users (inactive included), newest first by default."""
        total = self.executor.scalar(self._filtered(select(func.count(User.id)), spec)) or 0

        stmt = self._filtered(select(User), spec)
        if spec.sort_by in SORTABLE_COLUMNS:
            column = SORTABLE_COLUMNS[spec.sort_by]
            stmt = stmt.order_by(column.asc() if spec.order == "asc" else column.desc())
        else:
            stmt = stmt.order_by(User.created_at.desc(), User.id.desc())

        users = self.executor.fetch_all(stmt.limit(spec.limit).offset(spec.offset))
        return spec.envelope([UserResponse.model_validate(user) for user in users], total)

    def get_user(self, user_id: int) -> User:
        return self._get_or_404(user_id)

    def update_user(self, user_id: int, data: ProfileUpdate) -> User:
        self._get_or_404(user_id)
        builder = UserUpdateBuilder.from_payload(data, ADMIN_UPDATE_FIELDS)
        user = self._apply_update(user_id, builder)
        logger.info(f"User ID {user_id} updated by admin: {sorted(builder.changes)}")
        return user

    def delete_user(self, user_id: int, acting_user: User) -> None:
        """Logical delete: the row stays, its status becomes inactive."""
        if user_id == acting_user.id:
            raise ValidationError("Cannot delete your own account")
        self._get_or_404(user_id)

        self.executor.execute(
            update(User)
            .where(User.id == user_id)
            .values(status=UserStatus.INACTIVE, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        logger.info(f"User ID {user_id} deactivated by admin ID {acting_user.id}")
