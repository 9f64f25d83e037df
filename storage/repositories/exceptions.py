"""
Repository Layer Exceptions.

============================================================
PURPOSE
============================================================
Repository-specific exceptions. All SQLAlchemy errors are caught
in the repositories and re-raised as one of these, with context.

============================================================
TRANSIENT VS. RECORD ERRORS
============================================================
- ConnectionError, TransactionError: the store itself failed;
  is_transient is True and the caller should retry later
  (the processor leaves the stream entry unacknowledged)
- IntegrityError, QueryError: the record
  or statement is at fault; retrying will not help, the caller
  logs and skips

============================================================
"""

from typing import Any, Optional


class RepositoryException(Exception):
    """
    Base exception for all repository operations.

    Callers can catch this for generic error handling.
    """

    is_transient: bool = False

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[dict] = None
    ) -> None:
        self.message = message
        self.repository_name = repository_name
        self.operation = operation
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        return f"[{self.repository_name}] {self.operation}: {self.message}"


class IntegrityError(RepositoryException):
    """A unique, NOT NULL, check or length constraint rejected the record."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        constraint_name: str,
        message: str
    ) -> None:
        super().__init__(
            message=f"Integrity constraint violated ({constraint_name}): {message}",
            repository_name=repository_name,
            operation=operation,
            details={"constraint": constraint_name}
        )
        self.constraint_name = constraint_name


class ConnectionError(RepositoryException):
    """
    The store is unreachable or unavailable.

    Connection refused, timeouts, pool exhaustion, locked database.
    """

    is_transient = True

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Database connection failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error}
        )


class QueryError(RepositoryException):
    """A statement failed for a reason other than the above."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        query_description: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Query failed ({query_description}): {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={
                "query_description": query_description,
                "original_error": original_error
            }
        )


class TransactionError(RepositoryException):
    """Commit or rollback failed."""

    is_transient = True

    def __init__(
        self,
        repository_name: str,
        operation: str,
        phase: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Transaction {phase} failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"phase": phase, "original_error": original_error}
        )
        self.phase = phase
