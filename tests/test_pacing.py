"""
Tests for replay emission pacing.
"""

import random
from datetime import datetime, timedelta, timezone

from data_ingestion.pacing import (
    DEFAULT_TARGET_WEIGHTS,
    EmissionWindow,
    new_window,
    plan_emission,
)


T0 = datetime(2025, 1, 10, 0, 0, tzinfo=timezone.utc)


class FixedRandom(random.Random):
    """Random source with a fixed target and jitter."""

    def __init__(self, target: int = 4, jitter: int = 0) -> None:
        super().__init__(0)
        self.target = target
        self.jitter = jitter

    def choice(self, seq):
        return self.target

    def randint(self, a, b):
        return self.jitter


class TestEmissionWindow:

    def test_remaining_and_calls(self):
        window = EmissionWindow(started_at=T0, target=5, emitted=2)

        assert window.remaining == 3
        assert window.total_calls == 10
        assert not window.is_expired(T0 + timedelta(seconds=299))
        assert window.is_expired(T0 + timedelta(seconds=300))

    def test_new_window_draws_from_weights(self):
        window = new_window(T0, random.Random(7))
        assert window.target in DEFAULT_TARGET_WEIGHTS
        assert window.emitted == 0


class TestPlanEmission:

    def test_first_call_opens_window(self):
        count, window = plan_emission(None, T0, FixedRandom(target=4))

        # ceil(4 / 10) = 1, no jitter
        assert count == 1
        assert window.target == 4
        assert window.emitted == 1
        assert window.started_at == T0

    def test_window_is_not_mutated(self):
        window = EmissionWindow(started_at=T0, target=4)
        _, updated = plan_emission(window, T0 + timedelta(seconds=30), FixedRandom())

        assert window.emitted == 0
        assert updated is not window

    def test_count_never_exceeds_remaining(self):
        window = EmissionWindow(started_at=T0, target=2, emitted=1)
        count, updated = plan_emission(window, T0 + timedelta(seconds=30), FixedRandom(jitter=1))

        assert count == 1
        assert updated.emitted == 2

    def test_count_never_negative(self):
        window = EmissionWindow(started_at=T0, target=2)
        count, _ = plan_emission(window, T0, FixedRandom(jitter=-1))

        assert count == 0

    def test_nothing_left_in_window(self):
        window = EmissionWindow(started_at=T0, target=3, emitted=3)
        count, updated = plan_emission(window, T0 + timedelta(seconds=60), FixedRandom(jitter=1))

        assert count == 0
        assert updated == window

    def test_last_call_emits_remainder(self):
        window = EmissionWindow(
            started_at=T0, target=6, emitted=1, window_seconds=100, call_interval_seconds=30
        )
        count, updated = plan_emission(
            window, T0 + timedelta(seconds=95), FixedRandom(jitter=-1),
            window_seconds=100, call_interval_seconds=30,
        )

        assert count == 5
        assert updated.remaining == 0

    def test_expired_window_is_replaced(self):
        window = EmissionWindow(started_at=T0, target=3, emitted=3)
        later = T0 + timedelta(minutes=5)
        count, updated = plan_emission(window, later, FixedRandom(target=7))

        assert updated.started_at == later
        assert updated.target == 7
        assert count == 1

    def test_window_total_stays_within_target(self):
        rng = random.Random(42)
        window = None
        total = 0
        for call in range(10):
            count, window = plan_emission(window, T0 + timedelta(seconds=30 * call), rng)
            total += count

        assert window.started_at == T0
        assert 0 <= total <= window.target
        assert window.emitted == total
