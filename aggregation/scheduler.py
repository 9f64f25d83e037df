"""
Aggregation - Scheduler.

============================================================
RESPONSIBILITY
============================================================
Runs the two rollup jobs as independent loops.

- Snapshot loop: runs now, then every snapshot interval
- Daily loop: sleeps until the next local midnight, rolls up
  the day that just ended, repeats

A failed run is logged and the loop carries on; the next
natural cycle is the retry. Jobs run in a worker thread so the
store calls never block the event loop. Both loops exit once the shared
shutdown event is set.

============================================================
"""

import asyncio
import logging
from datetime import tzinfo
from typing import Any, Callable, Dict, List, Optional

from aggregation.daily import DailyRollup, next_fire_at, previous_day
from aggregation.snapshot import SnapshotRollup
from aggregation.types import RollupResult, RollupStatus
from core.clock import ClockProtocol, SystemClock


class AggregationScheduler:
    """
    Drives SnapshotRollup and DailyRollup.

    ============================================================
    USAGE
    ============================================================
    ```python
    scheduler = AggregationScheduler(snapshot, daily, interval_seconds=300)

    # One run of each job
    results = scheduler.run_once()

    # Or run until shutdown is set
    await scheduler.start(shutdown)
    ```

    ============================================================
    """

    def __init__(
        self,
        snapshot: SnapshotRollup,
        daily: DailyRollup,
        snapshot_interval_seconds: float = 300.0,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._snapshot = snapshot
        self._daily = daily
        self._snapshot_interval = snapshot_interval_seconds
        self._clock = clock or SystemClock()
        self._shutdown = asyncio.Event()
        self._logger = logging.getLogger("aggregation.scheduler")

        self._results: List[RollupResult] = []
        self._failures: Dict[str, int] = {"snapshot": 0, "daily": 0}

    @property
    def tz(self) -> tzinfo:
        return self._daily.tz

    # =========================================================
    # EXECUTION
    # =========================================================

    def _run_job(self, name: str, job: Callable[[], RollupResult]) -> RollupResult:
        """Run one job; a failure is logged and returned, never raised."""
        started_at = self._clock.now()
        try:
            result = job()
        except Exception as e:
            self._failures[name] += 1
            self._logger.exception(f"Rollup {name} failed, will retry next cycle")
            result = RollupResult(job=name, started_at=started_at)
            result.mark_failed(str(e), self._clock.now())

        self._results.append(result)
        del self._results[:-50]
        return result

    def run_snapshot(self) -> RollupResult:
        return self._run_job("snapshot", self._snapshot.run_once)

    def run_daily(self, stat_date=None) -> RollupResult:
        return self._run_job("daily", lambda: self._daily.run_once(stat_date))

    def run_once(self) -> List[RollupResult]:
        """Run each job once (the daily job for yesterday)."""
        return [self.run_snapshot(), self.run_daily()]

    async def _wait(self, timeout: float) -> bool:
        """Wait up to timeout; True if shutdown was signalled."""
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=max(timeout, 0.0))
            return True
        except asyncio.TimeoutError:
            return False

    async def _snapshot_loop(self) -> None:
        self._logger.info(f"Snapshot loop started (every {self._snapshot_interval}s)")
        while not self._shutdown.is_set():
            await asyncio.to_thread(self.run_snapshot)
            if await self._wait(self._snapshot_interval):
                break
        self._logger.info("Snapshot loop stopped")

    async def _daily_loop(self) -> None:
        self._logger.info("Daily loop started")
        while not self._shutdown.is_set():
            now = self._clock.now()
            fire_at = next_fire_at(now, self.tz)
            delay = (fire_at - now).total_seconds()
            self._logger.info(f"Next daily rollup at {fire_at.isoformat()} (in {delay:.0f}s)")
            if await self._wait(delay):
                break
            await asyncio.to_thread(self.run_daily, previous_day(fire_at))
        self._logger.info("Daily loop stopped")

    # =========================================================
    # CONTINUOUS OPERATION
    # =========================================================

    async def start(self, shutdown: Optional[asyncio.Event] = None) -> None:
        """Run both loops until shutdown."""
        if shutdown is not None:
            self._shutdown = shutdown

        self._logger.info("Aggregation scheduler started")
        await asyncio.gather(self._snapshot_loop(), self._daily_loop())
        self._logger.info("Aggregation scheduler stopped")

    def stop(self) -> None:
        self._shutdown.set()

    # =========================================================
    # HEALTH
    # =========================================================

    def get_recent_results(self, limit: int = 10) -> List[RollupResult]:
        return self._results[-limit:]

    def get_health_status(self) -> Dict[str, Any]:
        last = {}
        for result in self._results:
            last[result.job] = result
        return {
            "running": not self._shutdown.is_set(),
            "failures": dict(self._failures),
            "last_runs": {
                job: {
                    "status": result.status.value,
                    "target": result.target,
                    "completed_at": (
                        result.completed_at.isoformat() if result.completed_at else None
                    ),
                }
                for job, result in last.items()
            },
            "healthy": not any(
                result.status == RollupStatus.FAILED for result in last.values()
            ),
        }
