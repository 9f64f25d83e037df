"""
Aggregation - Latest Snapshot Rollup.

============================================================
PURPOSE
============================================================
Recomputes RouteSummary for the most recent road status
collection timestamp.

- Samples with grade 0 or a negative speed are left out of
  every figure, including total_sections
- Volume averages ignore negative volumes
- Rows are overwritten by (route, timestamp), never appended

============================================================
"""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from aggregation.types import RollupResult, RollupStatus
from core.clock import ClockProtocol, SystemClock
from storage.repositories import RouteSummaryRepository


class SnapshotRollup:
    """Per-route rollup of the latest road status snapshot."""

    job_name = "snapshot"

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._logger = logging.getLogger("aggregation.snapshot")

    def run_once(self) -> RollupResult:
        """
        Roll up the latest snapshot.

        Returns:
            RollupResult; EMPTY when there are no samples yet

        Raises:
            RepositoryException: On store failure
        """
        result = RollupResult(job=self.job_name, started_at=self._clock.now())

        with self._session_factory() as session:
            repo = RouteSummaryRepository(session)
            latest = repo.latest_status_timestamp()
            if latest is None:
                result.status = RollupStatus.EMPTY
                result.mark_complete(self._clock.now())
                self._logger.info("No road status samples yet, nothing to roll up")
                return result

            result.target = latest.isoformat()
            now = self._clock.now()
            for row in repo.summarize_snapshot(latest):
                repo.upsert(row, latest, now)
                result.rows_written += 1
                result.groups[row.route_no] = row.total_sections

        result.mark_complete(self._clock.now())
        self._logger.info(f"Snapshot rollup completed: {result.to_dict()}")
        return result
