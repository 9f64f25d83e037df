"""
Tests for the rollup jobs and their scheduler.

Tests cover:
- Latest-snapshot route summaries (grade/speed filtering, rounding)
- Daily incident counts per type
- Idempotent re-runs
- Midnight scheduling in the local timezone
- Failure isolation between jobs
"""

import asyncio
import threading
from datetime import date, datetime, timedelta, timezone
from unittest.mock import Mock
from zoneinfo import ZoneInfo

import pytest

from aggregation import (
    AggregationScheduler,
    DailyRollup,
    RollupResult,
    RollupStatus,
    SnapshotRollup,
    next_fire_at,
    previous_day,
)
from core.clock import MockClock
from data_ingestion.types import IncidentRecord, RoadStatusRecord
from storage.repositories import (
    DailyAccidentStatRepository,
    IncidentRepository,
    RouteStatusRepository,
    RouteSummaryRepository,
    round_half_up,
)


SEOUL = ZoneInfo("Asia/Seoul")
SNAPSHOT_AT = datetime(2025, 1, 11, 9, 0, tzinfo=SEOUL)


def _status(
    route_no, zone_id, grade, speed, volume=100.0, collected_at=SNAPSHOT_AT, route_name=None
) -> RoadStatusRecord:
    return RoadStatusRecord(
        route_no=route_no,
        route_name=route_name or f"Route {route_no}",
        zone_id=zone_id,
        zone_name=zone_id,
        direction="S",
        traffic_volume=volume,
        speed=speed,
        share_ratio=0.0,
        time_avg=0.0,
        grade=grade,
        collected_at=collected_at,
    )


def _incident(n: int, incident_type: str, occurred_date: str = "20250110") -> IncidentRecord:
    return IncidentRecord(
        occurred_date=occurred_date,
        occurred_time="1200",
        location=f"Point {n}",
        description="Collision",
        incident_type=incident_type,
    )


# =============================================================
# TEST: Snapshot rollup
# =============================================================

class TestSnapshotRollup:

    def _seed(self, session, clock):
        repo = RouteStatusRepository(session)
        for record in [
            _status("R1", "Z1", grade=1, speed=80.0),
            _status("R1", "Z2", grade=0, speed=50.0),
            _status("R1", "Z3", grade=2, speed=-1.0),
            _status("R1", "Z4", grade=3, speed=40.0, volume=-5.0),
            _status("R2", "Z1", grade=2, speed=55.55, volume=10.0),
            # Older snapshot, never summarized
            _status("R3", "Z1", grade=1, speed=90.0, collected_at=SNAPSHOT_AT - timedelta(minutes=5)),
        ]:
            repo.upsert(record, clock.now())

    def test_summarizes_latest_snapshot(self, session_factory, session, clock):
        self._seed(session, clock)

        result = SnapshotRollup(session_factory, clock).run_once()

        assert result.status == RollupStatus.SUCCESS
        assert result.rows_written == 2
        assert result.groups == {"R1": 2, "R2": 1}

        rows = RouteSummaryRepository(session).list_at(SNAPSHOT_AT)
        r1, r2 = rows
        assert r1.route_no == "R1"
        assert r1.total_sections == 2
        assert r1.smooth_sections == 1
        assert r1.slow_sections == 0
        assert r1.congested_sections == 1
        assert r1.avg_speed == 60.0
        assert r1.avg_traffic_volume == 100.0
        assert r2.slow_sections == 1
        assert r2.avg_speed == 55.6

    def test_rerun_is_idempotent(self, session_factory, session, clock):
        self._seed(session, clock)
        rollup = SnapshotRollup(session_factory, clock)

        rollup.run_once()
        clock.advance(minutes=5)
        rollup.run_once()

        rows = RouteSummaryRepository(session).list_at(SNAPSHOT_AT)
        assert [row.route_no for row in rows] == ["R1", "R2"]
        assert rows[0].total_sections == 2

    def test_route_with_renamed_sections_is_one_row(self, session_factory, session, clock):
        repo = RouteStatusRepository(session)
        repo.upsert(_status("R1", "Z1", grade=1, speed=80.0, route_name="Gyeongbu"), clock.now())
        repo.upsert(_status("R1", "Z2", grade=3, speed=20.0, route_name="Gyeongbu Expy"), clock.now())

        result = SnapshotRollup(session_factory, clock).run_once()

        assert result.rows_written == 1
        rows = RouteSummaryRepository(session).list_at(SNAPSHOT_AT)
        assert len(rows) == 1
        assert rows[0].total_sections == 2
        assert rows[0].route_name == "Gyeongbu Expy"

    def test_no_samples(self, session_factory, clock):
        result = SnapshotRollup(session_factory, clock).run_once()

        assert result.status == RollupStatus.EMPTY
        assert result.rows_written == 0


class TestRoundHalfUp:

    @pytest.mark.parametrize("value,expected", [
        (55.55, 55.6),
        (0.05, 0.1),
        (60.0, 60.0),
        (-1.25, -1.3),
        (None, None),
    ])
    def test_rounds(self, value, expected):
        assert round_half_up(value) == expected


# =============================================================
# TEST: Daily rollup
# =============================================================

class TestDailyRollup:

    def _seed(self, session, clock):
        repo = IncidentRepository(session)
        for n, incident_type in enumerate(["A", "A", "A", "B", "B"]):
            repo.upsert(_incident(n, incident_type), clock.now())
        # Next day, excluded
        repo.upsert(_incident(99, "A", occurred_date="20250111"), clock.now())

    def test_counts_previous_local_day(self, session_factory, session, clock):
        self._seed(session, clock)

        # 2025-01-11 09:30 in Seoul: yesterday is 2025-01-10
        result = DailyRollup(session_factory, clock, SEOUL).run_once()

        assert result.target == "2025-01-10"
        assert result.groups == {"A": 3, "B": 2}
        assert result.rows_written == 2
        assert DailyAccidentStatRepository(session).get_for_date(date(2025, 1, 10)) == {"A": 3, "B": 2}

    def test_rerun_overwrites_counts(self, session_factory, session, clock):
        self._seed(session, clock)
        rollup = DailyRollup(session_factory, clock, SEOUL)

        rollup.run_once(date(2025, 1, 10))
        IncidentRepository(session).upsert(_incident(50, "A"), clock.now())
        rollup.run_once(date(2025, 1, 10))
        rollup.run_once(date(2025, 1, 10))

        assert DailyAccidentStatRepository(session).get_for_date(date(2025, 1, 10)) == {"A": 4, "B": 2}

    def test_empty_day(self, session_factory, clock):
        result = DailyRollup(session_factory, clock, SEOUL).run_once(date(2024, 12, 25))

        assert result.status == RollupStatus.EMPTY
        assert result.rows_written == 0


class TestMidnightScheduling:

    def test_next_midnight_in_local_time(self):
        now = datetime(2025, 1, 10, 23, 59, tzinfo=SEOUL)
        assert next_fire_at(now, SEOUL) == datetime(2025, 1, 11, 0, 0, tzinfo=SEOUL)

    def test_exact_midnight_waits_a_full_day(self):
        now = datetime(2025, 1, 11, 0, 0, tzinfo=SEOUL)
        assert next_fire_at(now, SEOUL) == datetime(2025, 1, 12, 0, 0, tzinfo=SEOUL)

    def test_utc_input(self):
        # 15:30 UTC is 00:30 the next day in Seoul
        now = datetime(2025, 1, 10, 15, 30, tzinfo=timezone.utc)
        assert next_fire_at(now, SEOUL) == datetime(2025, 1, 12, 0, 0, tzinfo=SEOUL)

    def test_previous_day(self):
        assert previous_day(datetime(2025, 1, 11, 0, 0, tzinfo=SEOUL)) == date(2025, 1, 10)


# =============================================================
# TEST: Scheduler
# =============================================================

def _result(job: str) -> RollupResult:
    return RollupResult(job=job, started_at=datetime(2025, 1, 11, tzinfo=timezone.utc))


class TestAggregationScheduler:

    def test_failed_job_does_not_stop_the_other(self, clock):
        snapshot = Mock()
        snapshot.run_once.side_effect = RuntimeError("store down")
        daily = Mock()
        daily.run_once.return_value = _result("daily")

        scheduler = AggregationScheduler(snapshot, daily, clock=clock)
        snapshot_result, daily_result = scheduler.run_once()

        assert snapshot_result.status == RollupStatus.FAILED
        assert snapshot_result.error == "store down"
        assert daily_result.status == RollupStatus.SUCCESS

        health = scheduler.get_health_status()
        assert health["failures"] == {"snapshot": 1, "daily": 0}
        assert health["healthy"] is False

    @pytest.mark.asyncio
    async def test_daily_loop_fires_at_local_midnight(self):
        # 23:59:59.95 in Seoul
        clock = MockClock(datetime(2025, 1, 10, 14, 59, 59, 950000, tzinfo=timezone.utc))
        shutdown = asyncio.Event()

        loop = asyncio.get_running_loop()

        snapshot = Mock()
        snapshot.run_once.return_value = _result("snapshot")
        daily = Mock()
        daily.tz = SEOUL

        def fire(stat_date):
            loop.call_soon_threadsafe(shutdown.set)
            return _result("daily")

        daily.run_once.side_effect = fire

        scheduler = AggregationScheduler(snapshot, daily, snapshot_interval_seconds=60, clock=clock)
        await asyncio.wait_for(scheduler.start(shutdown), timeout=5)

        daily.run_once.assert_called_once_with(date(2025, 1, 10))
        snapshot.run_once.assert_called_once()

    @pytest.mark.asyncio
    async def test_stop_ends_both_loops(self, clock):
        snapshot = Mock()
        snapshot.run_once.return_value = _result("snapshot")
        daily = Mock()
        daily.tz = SEOUL

        scheduler = AggregationScheduler(snapshot, daily, snapshot_interval_seconds=60, clock=clock)
        task = asyncio.ensure_future(scheduler.start())
        await asyncio.sleep(0.01)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=5)

        daily.run_once.assert_not_called()
        assert scheduler.get_health_status()["running"] is False

    @pytest.mark.asyncio
    async def test_jobs_run_off_the_event_loop(self, clock):
        loop = asyncio.get_running_loop()
        shutdown = asyncio.Event()
        job_threads = []

        def snapshot_job():
            job_threads.append(threading.get_ident())
            loop.call_soon_threadsafe(shutdown.set)
            return _result("snapshot")

        snapshot = Mock()
        snapshot.run_once.side_effect = snapshot_job
        daily = Mock()
        daily.tz = SEOUL

        scheduler = AggregationScheduler(snapshot, daily, snapshot_interval_seconds=60, clock=clock)
        await asyncio.wait_for(scheduler.start(shutdown), timeout=5)

        assert job_threads and job_threads[0] != threading.get_ident()
