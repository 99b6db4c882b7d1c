"""Pytest configuration and fixtures."""

import os

# Must be set before accounts_api is imported: settings are read once.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "development"
os.environ["SECRET_KEY"] = "test-secret-key-0123456789-abcdefghijklmnop"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from accounts_api.core.rate_limit import limiter
from accounts_api.core.security import get_password_hash, issue_token_for
from accounts_api.db.base import Base
from accounts_api.db.session import get_db
from accounts_api.main import app
from accounts_api.models.user import User, UserRole, UserStatus

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"
DEFAULT_PASSWORD = "secret123"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiting during tests to avoid flaky failures
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    """Factory inserting a user row directly."""
    counter = {"n": 0}

    def _make_user(
        username: str | None = None,
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
        role: UserRole = UserRole.USER,
        status: UserStatus = UserStatus.ACTIVE,
        **extra,
    ) -> User:
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=get_password_hash(password),
            role=role,
            status=status,
            **extra,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def test_user(make_user) -> User:
    """Create a regular active user."""
    return make_user(username="alice", email="alice@example.com", full_name="Alice Example")


@pytest.fixture
def admin_user(make_user) -> User:
    """Create an admin user."""
    return make_user(username="admin", email="admin@example.com", role=UserRole.ADMIN)


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {issue_token_for(user)}"}


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    """Authentication headers for the regular user."""
    return bearer(test_user)


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    """Authentication headers for the admin user."""
    return bearer(admin_user)
