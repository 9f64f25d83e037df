"""
Core Module - System Clock.

============================================================
RESPONSIBILITY
============================================================
Provides a testable clock abstraction for the pipeline.

- Timestamps written to the store come from this clock
- Scheduler delays are computed from this clock
- Enables deterministic tests of time-triggered jobs

============================================================
DESIGN PRINCIPLES
============================================================
- Timezone-aware datetimes only
- UTC internally, local time only where a calendar boundary
  (midnight) matters
- Mockable for testing

============================================================
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional
import threading
import time


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for system clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    @abstractmethod
    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        pass

    def epoch_seconds(self) -> int:
        """Get current Unix timestamp truncated to whole seconds."""
        return int(self.timestamp())

    def local_now(self, tz: tzinfo) -> datetime:
        """Get current time converted to the given timezone."""
        return self.now().astimezone(tz)

    def today(self, tz: Optional[tzinfo] = None) -> date:
        """Get current date, in UTC unless a timezone is given."""
        if tz is None:
            return self.now().date()
        return self.local_now(tz).date()


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """Production clock using actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        return time.time()


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Allows time manipulation for deterministic tests.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        """
        Initialize mock clock.

        Args:
            initial_time: Starting time (defaults to current UTC)
        """
        initial_time = initial_time or datetime.now(timezone.utc)
        if initial_time.tzinfo is None:
            initial_time = initial_time.replace(tzinfo=timezone.utc)
        self._time = initial_time
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def timestamp(self) -> float:
        with self._lock:
            return self._time.timestamp()

    def set_time(self, new_time: datetime) -> None:
        """Set the current time."""
        with self._lock:
            if new_time.tzinfo is None:
                new_time = new_time.replace(tzinfo=timezone.utc)
            self._time = new_time

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (hours, minutes, days, etc.)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
]
