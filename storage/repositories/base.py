"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Provides common functionality for all repositories including:
- Error handling wrappers
- Natural-key existence checks
- Dialect-aware insert-or-update and insert-if-absent
- Logging setup

============================================================
WRITE STRATEGIES
============================================================
(a) insert-or-update: INSERT ... ON CONFLICT (key) DO UPDATE
    -> WriteOutcome.INSERTED or WriteOutcome.REFRESHED
(b) insert-if-absent: existence check, then
    INSERT ... ON CONFLICT (key) DO NOTHING
    -> WriteOutcome.INSERTED or WriteOutcome.UNCHANGED

The unique constraint on the key decides every race; the
existence check only labels the outcome. On SQLite two writers
racing on a new key may both report INSERTED, but only one row
exists. On PostgreSQL the upsert label comes from the write.

A value the driver cannot bind (e.g. an integer too large for
the column) is rolled back and raised as QueryError.

============================================================
USAGE
============================================================
All domain repositories inherit from BaseRepository.
Session is injected via constructor.

============================================================
"""

import logging
from abc import ABC
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, literal_column, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import (
    IntegrityError as SQLAlchemyIntegrityError,
    DisconnectionError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session

from storage.models.base import Base
from storage.repositories.exceptions import (
    ConnectionError,
    IntegrityError,
    QueryError,
    TransactionError,
)


# Type variable for ORM model
T = TypeVar("T", bound=Base)

# Driver errors raised while binding a value the column cannot hold
_WRITE_ERRORS = (SQLAlchemyError, OverflowError, TypeError, ValueError)


class WriteOutcome(str, Enum):
    """What a keyed write did."""

    INSERTED = "inserted"
    REFRESHED = "refreshed"
    UNCHANGED = "unchanged"


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base class for all repositories.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    - Provides keyed write patterns
    - Wraps database errors in repository exceptions
    - Manages logging for all operations
    - Commits each write on its own

    ============================================================
    USAGE
    ============================================================
    class MyRepository(BaseRepository[MyModel]):
        def __init__(self, session: Session):
            super().__init__(session, MyModel, "MyRepository")

    ============================================================
    """

    def __init__(
        self,
        session: Session,
        model_class: Type[T],
        repository_name: str
    ) -> None:
        """
        Initialize the repository.

        Args:
            session: SQLAlchemy session (injected)
            model_class: The ORM model class this repository manages
            repository_name: Name for logging and error messages
        """
        self._session = session
        self._model_class = model_class
        self._repository_name = repository_name
        self._logger = logging.getLogger(f"repository.{repository_name}")

    @property
    def session(self) -> Session:
        """Get the current session."""
        return self._session

    @property
    def model_class(self) -> Type[T]:
        """Get the managed model class."""
        return self._model_class

    @property
    def repository_name(self) -> str:
        """Get the repository name."""
        return self._repository_name

    # =========================================================
    # PROTECTED HELPER METHODS
    # =========================================================

    def _handle_db_error(
        self,
        error: Exception,
        operation: str,
        context: Optional[dict] = None
    ) -> None:
        """
        Handle database errors by wrapping in repository exceptions.

        Args:
            error: The original exception
            operation: Name of the operation that failed
            context: Additional context for logging

        Raises:
            RepositoryException: Always raises appropriate exception
        """
        context = context or {}
        self._logger.error(
            f"Database error in {operation}: {error} {context}",
        )

        if isinstance(error, (OperationalError, DisconnectionError)):
            raise ConnectionError(
                repository_name=self._repository_name,
                operation=operation,
                original_error=str(error)
            ) from error

        if isinstance(error, SQLAlchemyIntegrityError):
            raise IntegrityError(
                repository_name=self._repository_name,
                operation=operation,
                constraint_name="unknown",
                message=str(error)
            ) from error

        raise QueryError(
            repository_name=self._repository_name,
            operation=operation,
            query_description=operation,
            original_error=str(error)
        ) from error

    def _dialect_name(self) -> str:
        return self._session.get_bind().dialect.name

    def _insert(self):
        """INSERT construct for the bound dialect (PostgreSQL or SQLite)."""
        dialect = self._dialect_name()
        if dialect == "postgresql":
            return pg_insert(self._model_class)
        if dialect == "sqlite":
            return sqlite_insert(self._model_class)
        raise QueryError(
            repository_name=self._repository_name,
            operation="upsert",
            query_description="insert construct",
            original_error=f"Unsupported dialect: {dialect}"
        )

    def _exists(self, key: Mapping[str, Any]) -> bool:
        """Check whether a row with this natural key exists."""
        try:
            stmt = select(self._model_class.id).filter_by(**key).limit(1)
            return self._session.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            self._handle_db_error(e, "exists", dict(key))
            raise

    def _upsert(
        self,
        values: Dict[str, Any],
        key_columns: Sequence[str],
        update_columns: Sequence[str],
    ) -> WriteOutcome:
        """
        Strategy (a): insert, or update update_columns on key conflict.

        On PostgreSQL the outcome comes from the write itself
        (xmax is 0 only for a freshly inserted row). On SQLite it
        comes from an existence check taken just before the write.

        Commits on success, rolls back on failure.
        """
        key = {column: values[column] for column in key_columns}
        try:
            stmt = self._insert().values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(key_columns),
                set_={column: stmt.excluded[column] for column in update_columns},
            )
            if self._dialect_name() == "postgresql":
                stmt = stmt.returning(literal_column("xmax = 0"))
                inserted = bool(self._session.execute(stmt).scalar())
            else:
                inserted = not self._exists(key)
                self._session.execute(stmt)
        except _WRITE_ERRORS as e:
            self._rollback()
            self._handle_db_error(e, "upsert", key)
            raise
        self._commit()
        return WriteOutcome.INSERTED if inserted else WriteOutcome.REFRESHED

    def _insert_if_absent(
        self,
        values: Dict[str, Any],
        key_columns: Sequence[str],
    ) -> WriteOutcome:
        """
        Strategy (b): insert only if no row has this key.

        Never modifies an existing row.
        """
        key = {column: values[column] for column in key_columns}
        try:
            if self._exists(key):
                return WriteOutcome.UNCHANGED
            stmt = self._insert().values(**values)
            stmt = stmt.on_conflict_do_nothing(index_elements=list(key_columns))
            result = self._session.execute(stmt)
        except _WRITE_ERRORS as e:
            self._rollback()
            self._handle_db_error(e, "insert_if_absent", key)
            raise
        self._commit()
        return WriteOutcome.INSERTED if result.rowcount == 1 else WriteOutcome.UNCHANGED

    def _count(self) -> int:
        """
        Count all entities.

        Returns:
            Total count of entities
        """
        try:
            stmt = select(func.count()).select_from(self._model_class)
            result = self._session.execute(stmt)
            return result.scalar() or 0
        except SQLAlchemyError as e:
            self._handle_db_error(e, "count")
            raise

    def _execute_query(self, stmt: Any) -> List[T]:
        """
        Execute a select statement and return results.

        Args:
            stmt: SQLAlchemy select statement

        Returns:
            List of entities
        """
        try:
            result = self._session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query")
            raise

    def _execute_scalar(self, stmt: Any) -> Optional[Any]:
        """
        Execute a select statement and return single result.

        Args:
            stmt: SQLAlchemy select statement

        Returns:
            Single value or None
        """
        try:
            result = self._session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query_scalar")
            raise

    def _commit(self) -> None:
        """
        Commit the current transaction.

        Raises:
            TransactionError: If commit fails
        """
        try:
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            raise TransactionError(
                repository_name=self._repository_name,
                operation="commit",
                phase="commit",
                original_error=str(e)
            ) from e

    def _rollback(self) -> None:
        """
        Rollback the current transaction.
        """
        try:
            self._session.rollback()
        except SQLAlchemyError as e:
            self._logger.error(f"Rollback failed: {e}")
            raise TransactionError(
                repository_name=self._repository_name,
                operation="rollback",
                phase="rollback",
                original_error=str(e)
            ) from e
