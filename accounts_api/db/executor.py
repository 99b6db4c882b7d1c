"""Query executor: the single choke point between services and the store.

Statements are built with SQLAlchemy (parameterized, never string-formatted)
and run on the request's pooled session. Driver and pool failures are
translated into application errors here so services never see them.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence, TypeVar

from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.sql.expression import Executable

from accounts_api.core.exceptions import (
    ConflictError,
    InternalError,
    ServiceUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _translate_integrity_error(exc: IntegrityError) -> Exception:
    detail = str(exc.orig).lower()
    if "foreign key" in detail:
        return ValidationError("Referenced record not found")
    if "unique" in detail or "duplicate" in detail:
        return ConflictError("Duplicate entry found")
    return InternalError("Database constraint violation")


class QueryExecutor:
    """Run statements and transactions against a pooled session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def _guard(self) -> Iterator[None]:
        try:
            yield
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error: {e.orig}")
            raise _translate_integrity_error(e) from e
        except PoolTimeoutError as e:
            logger.error(f"Connection pool exhausted: {e}")
            raise ServiceUnavailableError("Database connection pool exhausted") from e
        except OperationalError as e:
            self.db.rollback()
            logger.error(f"Database operational error: {e}")
            raise ServiceUnavailableError("Database unavailable") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database query error: {e}")
            raise InternalError("Database query failed") from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_one(self, statement: Executable) -> Optional[Any]:
        """First ORM entity (or scalar) of *statement*, or None."""
        with self._guard():
            return self.db.scalars(statement).first()

    def fetch_all(self, statement: Executable) -> list[Any]:
        with self._guard():
            return list(self.db.scalars(statement).all())

    def scalar(self, statement: Executable) -> Any:
        with self._guard():
            return self.db.scalar(statement)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, instance: T) -> T:
        """Insert an ORM instance, commit, and reload its server defaults."""
        with self._guard():
            self.db.add(instance)
            self.db.commit()
            self.db.refresh(instance)
            return instance

    def execute(self, statement: Executable) -> CursorResult:
        """Run a single write statement and commit it."""
        with self._guard():
            result = self.db.execute(statement)
            self.db.commit()
            return result

    def transaction(self, statements: Sequence[Executable]) -> list[CursorResult]:
        """Run *statements* atomically: all commit or none do."""
        with self._guard():
            try:
                results = [self.db.execute(statement) for statement in statements]
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            return results
