"""Database session management."""

import logging
from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from accounts_api.core.config import settings

logger = logging.getLogger(__name__)

database_url = settings.sqlalchemy_database_url

# Create engine - handle SQLite specially for check_same_thread
connect_args = {}
pool_config = {}

if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
    pool_config = {"pool_pre_ping": True}
else:
    # Bounded pool: once pool_size + max_overflow connections are checked out,
    # callers wait up to pool_timeout seconds and then get a TimeoutError.
    pool_config = {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }

engine = create_engine(
    database_url,
    connect_args=connect_args,
    echo=settings.log_level == "DEBUG",
    **pool_config,
)

# Enable foreign key enforcement for SQLite
if database_url.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_database_connection() -> bool:
    """Return True if a pooled connection can be checked out and used."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        logger.info("Database connected successfully")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        return False


# Type alias for dependency injection
DbSession = Annotated[Session, Depends(get_db)]
