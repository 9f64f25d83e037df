"""
Aggregation - Daily Accident Rollup.

Counts the previous local day's incidents per incident type into
DailyAccidentStat. Incidents are attributed to the day they
occurred on; rows are upserted by (date, type), so a re-run for
the same day rewrites the same counts.
"""

import logging
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import sessionmaker

from aggregation.types import RollupResult, RollupStatus
from core.clock import ClockProtocol, SystemClock
from core.constants import DEFAULT_LOCAL_TIMEZONE
from storage.repositories import DailyAccidentStatRepository


def next_fire_at(now: datetime, tz: tzinfo) -> datetime:
    """
    The next local midnight strictly after now.

    Pure; a restarted process recomputes its delay from this.
    """
    local = now.astimezone(tz)
    return datetime.combine(local.date() + timedelta(days=1), time.min, tzinfo=tz)


def previous_day(fire_at: datetime) -> date:
    """The calendar day a fire at fire_at summarizes."""
    return fire_at.date() - timedelta(days=1)


class DailyRollup:
    """Incidents per type for one calendar day."""

    job_name = "daily"

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Optional[ClockProtocol] = None,
        local_timezone: Optional[tzinfo] = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._tz = local_timezone or ZoneInfo(DEFAULT_LOCAL_TIMEZONE)
        self._logger = logging.getLogger("aggregation.daily")

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def run_once(self, stat_date: Optional[date] = None) -> RollupResult:
        """
        Roll up stat_date (default: yesterday in local time).

        Raises:
            RepositoryException: On store failure
        """
        if stat_date is None:
            stat_date = self._clock.today(self._tz) - timedelta(days=1)

        result = RollupResult(
            job=self.job_name,
            started_at=self._clock.now(),
            target=stat_date.isoformat(),
        )

        with self._session_factory() as session:
            repo = DailyAccidentStatRepository(session)
            counts = repo.count_incidents_by_type(stat_date)
            now = self._clock.now()
            for incident_type, count in sorted(counts.items()):
                repo.upsert(stat_date, incident_type, count, now)
                result.rows_written += 1

        result.groups = counts
        if not counts:
            result.status = RollupStatus.EMPTY
        result.mark_complete(self._clock.now())
        self._logger.info(f"Daily rollup completed: {result.to_dict()}")
        return result
