"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the exception hierarchy shared by every pipeline stage.

- Provides clear exception hierarchy
- Classifies errors by recoverability
- Carries context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
PipelineError (base)
├── ConfigurationError
├── StartupError
├── MalformedRecord
└── StreamError

Ingestion-layer errors (FetchError, PublishError) live in
data_ingestion.types; repository errors live in
storage.repositories.exceptions.

============================================================
ERROR CLASSES
============================================================
1. Transient I/O       -> logged, loop continues
2. Malformed input     -> record skipped, batch continues
3. Write conflict      -> resolved by unique constraint
4. Startup failure     -> fatal, process exits

============================================================
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    TRANSIENT = "transient"
    """Temporary error, the next cycle may succeed."""

    SKIPPABLE = "skippable"
    """Affects one record only; skip it and continue."""

    FATAL = "fatal"
    """Process cannot continue."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    All exceptions carry:
    - context: for debugging
    - classification: for error handling decisions
    - timestamp: when the error occurred
    """

    default_classification: ErrorClassification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_fatal(self) -> bool:
        """Check if error must terminate the process."""
        return self.classification == ErrorClassification.FATAL

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION / STARTUP
# ============================================================

class ConfigurationError(PipelineError):
    """Error in configuration."""

    default_classification = ErrorClassification.FATAL

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


class StartupError(PipelineError):
    """A dependency (store, stream) is unreachable at boot."""

    default_classification = ErrorClassification.FATAL

    def __init__(self, message: str, component: str, **kwargs):
        context = kwargs.pop("context", {})
        context["component"] = component
        super().__init__(message, context=context, **kwargs)
        self.component = component


# ============================================================
# DATA ERRORS
# ============================================================

class MalformedRecord(PipelineError):
    """
    An external record cannot be mapped to a canonical record.

    Raised by normalizers. Callers log it and skip the record;
    it never aborts the surrounding batch.
    """

    default_classification = ErrorClassification.SKIPPABLE

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        if value is not None:
            context["value"] = str(value)[:100]
        super().__init__(message, context=context, **kwargs)
        self.field = field
        self.value = value


# ============================================================
# STREAM ERRORS
# ============================================================

class StreamError(PipelineError):
    """Stream transport operation failed."""

    def __init__(self, message: str, operation: str, **kwargs):
        context = kwargs.pop("context", {})
        context["operation"] = operation
        super().__init__(message, context=context, **kwargs)
        self.operation = operation


__all__ = [
    "ErrorClassification",
    "PipelineError",
    "ConfigurationError",
    "StartupError",
    "MalformedRecord",
    "StreamError",
]
