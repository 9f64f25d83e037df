"""
Aggregate Repositories.

============================================================
PURPOSE
============================================================
Read raw records, write derived statistics.

- RouteSummaryRepository: per-route rollup of the latest road
  status snapshot
- DailyAccidentStatRepository: incidents per type per day

Both derived tables are overwritten by key on every run, so
re-running a rollup is idempotent.

============================================================
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.constants import GRADE_CONGESTED, GRADE_NOT_COMPUTABLE, GRADE_SLOW, GRADE_SMOOTH
from storage.models.traffic import (
    DailyAccidentStat,
    IncidentReport,
    RouteStatusSample,
    RouteSummary,
)
from storage.repositories.base import BaseRepository, WriteOutcome, to_utc


def round_half_up(value: Optional[float], places: int = 1) -> Optional[float]:
    """Round like SQL ROUND (half away from zero), keeping None."""
    if value is None:
        return None
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class RouteSnapshotRow:
    """One route's figures within a status snapshot."""

    route_no: str
    route_name: str
    total_sections: int
    smooth_sections: int
    slow_sections: int
    congested_sections: int
    avg_speed: Optional[float]
    avg_traffic_volume: Optional[float]


# =============================================================
# ROUTE SUMMARY
# =============================================================

class RouteSummaryRepository(BaseRepository[RouteSummary]):
    """Key: (route_no, collected_at)."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, RouteSummary, "RouteSummaryRepository")

    def latest_status_timestamp(self) -> Optional[datetime]:
        """Most recent collected_at among road status samples."""
        value = self._execute_scalar(select(func.max(RouteStatusSample.collected_at)))
        return to_utc(value) if value is not None else None

    def summarize_snapshot(self, collected_at: datetime) -> List[RouteSnapshotRow]:
        """
        Per-route figures over the samples of one snapshot.

        Only samples with grade > 0 and speed >= 0 count. Averages
        are rounded to one decimal; the volume average ignores
        negative volumes.
        One row per route_no, even if its samples disagree on the
        route name.
        """
        sample = RouteStatusSample
        stmt = (
            select(
                sample.route_no,
                func.max(sample.route_name).label("route_name"),
                func.count().label("total_sections"),
                func.sum(case((sample.grade == GRADE_SMOOTH, 1), else_=0)).label("smooth"),
                func.sum(case((sample.grade == GRADE_SLOW, 1), else_=0)).label("slow"),
                func.sum(case((sample.grade == GRADE_CONGESTED, 1), else_=0)).label("congested"),
                func.avg(sample.speed).label("avg_speed"),
                func.avg(
                    case((sample.traffic_volume >= 0, sample.traffic_volume), else_=None)
                ).label("avg_volume"),
            )
            .where(
                sample.collected_at == to_utc(collected_at),
                sample.speed >= 0,
                sample.grade > GRADE_NOT_COMPUTABLE,
            )
            .group_by(sample.route_no)
            .order_by(sample.route_no)
        )
        try:
            rows = self._session.execute(stmt).all()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "summarize_snapshot", {"collected_at": str(collected_at)})
            raise

        return [
            RouteSnapshotRow(
                route_no=row.route_no,
                route_name=row.route_name,
                total_sections=int(row.total_sections),
                smooth_sections=int(row.smooth or 0),
                slow_sections=int(row.slow or 0),
                congested_sections=int(row.congested or 0),
                avg_speed=round_half_up(row.avg_speed),
                avg_traffic_volume=round_half_up(row.avg_volume),
            )
            for row in rows
        ]

    def upsert(self, row: RouteSnapshotRow, collected_at: datetime, now: datetime) -> WriteOutcome:
        now = to_utc(now)
        return self._upsert(
            {
                "route_no": row.route_no,
                "route_name": row.route_name,
                "total_sections": row.total_sections,
                "smooth_sections": row.smooth_sections,
                "slow_sections": row.slow_sections,
                "congested_sections": row.congested_sections,
                "avg_speed": row.avg_speed,
                "avg_traffic_volume": row.avg_traffic_volume,
                "collected_at": to_utc(collected_at),
                "created_at": now,
                "updated_at": now,
            },
            key_columns=("route_no", "collected_at"),
            update_columns=(
                "route_name",
                "total_sections",
                "smooth_sections",
                "slow_sections",
                "congested_sections",
                "avg_speed",
                "avg_traffic_volume",
                "updated_at",
            ),
        )

    def list_at(self, collected_at: datetime) -> List[RouteSummary]:
        stmt = (
            select(RouteSummary)
            .where(RouteSummary.collected_at == to_utc(collected_at))
            .order_by(RouteSummary.route_no)
        )
        return self._execute_query(stmt)


# =============================================================
# DAILY ACCIDENT STATS
# =============================================================

class DailyAccidentStatRepository(BaseRepository[DailyAccidentStat]):
    """Key: (stat_date, incident_type)."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, DailyAccidentStat, "DailyAccidentStatRepository")

    def count_incidents_by_type(self, stat_date: date) -> Dict[str, int]:
        """Incidents that occurred on stat_date, grouped by type."""
        stmt = (
            select(IncidentReport.incident_type, func.count())
            .where(IncidentReport.occurred_date == stat_date.strftime("%Y%m%d"))
            .group_by(IncidentReport.incident_type)
        )
        try:
            return {incident_type: int(count) for incident_type, count in self._session.execute(stmt)}
        except SQLAlchemyError as e:
            self._handle_db_error(e, "count_incidents_by_type", {"stat_date": str(stat_date)})
            raise

    def upsert(self, stat_date: date, incident_type: str, count: int, now: datetime) -> WriteOutcome:
        now = to_utc(now)
        return self._upsert(
            {
                "stat_date": stat_date,
                "incident_type": incident_type,
                "incident_count": count,
                "created_at": now,
                "updated_at": now,
            },
            key_columns=("stat_date", "incident_type"),
            update_columns=("incident_count", "updated_at"),
        )

    def get_for_date(self, stat_date: date) -> Dict[str, int]:
        stmt = select(DailyAccidentStat).where(DailyAccidentStat.stat_date == stat_date)
        return {row.incident_type: row.incident_count for row in self._execute_query(stmt)}
