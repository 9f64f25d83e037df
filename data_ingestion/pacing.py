"""
Data Ingestion - Emission Pacing.

============================================================
RESPONSIBILITY
============================================================
Decides how many replayed incidents to emit on each poll so a
demo run produces a realistic rate (2-7 incidents per 5 minutes,
mostly 2-4).

============================================================
DESIGN PRINCIPLES
============================================================
- Window state is an immutable value object
- plan_emission is pure given (window, now, rng); it returns the
  count and the updated window instead of mutating anything
- Randomness comes from an injected random.Random

============================================================
"""

import random
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Sequence, Tuple


# Weighted towards 2-4 per window
DEFAULT_TARGET_WEIGHTS: Tuple[int, ...] = (2, 2, 2, 3, 3, 3, 3, 4, 4, 4, 5, 5, 6, 7)


@dataclass(frozen=True)
class EmissionWindow:
    """One pacing window: how many to emit and how many already were."""

    started_at: datetime
    target: int
    emitted: int = 0
    window_seconds: float = 300.0
    call_interval_seconds: float = 30.0

    @property
    def remaining(self) -> int:
        return max(self.target - self.emitted, 0)

    @property
    def total_calls(self) -> int:
        return max(int(self.window_seconds // self.call_interval_seconds), 1)

    def elapsed_seconds(self, now: datetime) -> float:
        return (now - self.started_at).total_seconds()

    def is_expired(self, now: datetime) -> bool:
        return self.elapsed_seconds(now) >= self.window_seconds


def new_window(
    now: datetime,
    rng: random.Random,
    window_seconds: float = 300.0,
    call_interval_seconds: float = 30.0,
    weights: Sequence[int] = DEFAULT_TARGET_WEIGHTS,
) -> EmissionWindow:
    """Open a new window with a target drawn from weights."""
    return EmissionWindow(
        started_at=now,
        target=rng.choice(list(weights)),
        window_seconds=window_seconds,
        call_interval_seconds=call_interval_seconds,
    )


def plan_emission(
    window: Optional[EmissionWindow],
    now: datetime,
    rng: random.Random,
    window_seconds: float = 300.0,
    call_interval_seconds: float = 30.0,
) -> Tuple[int, EmissionWindow]:
    """
    Decide how many records to emit on this call.

    The remaining target is spread evenly over the remaining calls
    in the window (rounded up), with a random -1/0/+1 jitter, and
    clamped to [0, remaining]. On the last call of the window the
    whole remainder is emitted.

    Args:
        window: Current window, or None before the first call
        now: Current time
        rng: Random source

    Returns:
        (count, updated window)
    """
    if window is None or window.is_expired(now):
        window = new_window(now, rng, window_seconds, call_interval_seconds)

    remaining = window.remaining
    if remaining == 0:
        return 0, window

    calls_elapsed = int(window.elapsed_seconds(now) // window.call_interval_seconds)
    calls_remaining = window.total_calls - calls_elapsed

    if calls_remaining <= 0:
        count = remaining
    else:
        avg_per_call = -(-remaining // calls_remaining)
        count = avg_per_call + rng.randint(-1, 1)
        count = min(max(count, 0), remaining)

    return count, replace(window, emitted=window.emitted + count)
