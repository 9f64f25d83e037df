"""
Core Module Package.

This package contains the infrastructure pieces every pipeline
stage depends on.

Components:
- clock: Testable time abstraction
- config: Environment-driven settings
- constants: Pipeline-wide constants
- exceptions: Exception hierarchy
- logging_setup: Root logger configuration
"""

from core.clock import ClockProtocol, MockClock, SystemClock
from core.exceptions import (
    ConfigurationError,
    MalformedRecord,
    PipelineError,
    StartupError,
    StreamError,
)


__all__ = [
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "ConfigurationError",
    "MalformedRecord",
    "PipelineError",
    "StartupError",
    "StreamError",
]
