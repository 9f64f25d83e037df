"""
Traffic Measurement Repositories.

============================================================
REPOSITORIES
============================================================
- TrafficMeasurementRepository: tollgate volumes, last write wins
- TollgateUnitRepository: unit registry, first_seen_at preserved
- RouteStatusRepository: road status samples, measurements overwritten

============================================================
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from data_ingestion.types import RoadStatusRecord, TollgateTrafficRecord
from storage.models.traffic import RouteStatusSample, TollgateUnit, TrafficMeasurement
from storage.repositories.base import BaseRepository, WriteOutcome, to_utc


class TrafficMeasurementRepository(BaseRepository[TrafficMeasurement]):
    """Key: (unit_code, collected_at)."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, TrafficMeasurement, "TrafficMeasurementRepository")

    def upsert(self, record: TollgateTrafficRecord, now: datetime) -> WriteOutcome:
        now = to_utc(now)
        return self._upsert(
            {
                "unit_code": record.unit_code,
                "unit_name": record.unit_name,
                "division_code": record.division_code,
                "division_name": record.division_name,
                "traffic_volume": record.traffic_volume,
                "collected_at": to_utc(record.collected_at),
                "sum_date": record.sum_date,
                "sum_time": record.sum_time,
                "created_at": now,
                "updated_at": now,
            },
            key_columns=("unit_code", "collected_at"),
            update_columns=("traffic_volume", "updated_at"),
        )

    def get(self, unit_code: str, collected_at: datetime) -> Optional[TrafficMeasurement]:
        stmt = select(TrafficMeasurement).where(
            TrafficMeasurement.unit_code == unit_code,
            TrafficMeasurement.collected_at == to_utc(collected_at),
        )
        return self._execute_scalar(stmt)

    def count(self) -> int:
        return self._count()


class TollgateUnitRepository(BaseRepository[TollgateUnit]):
    """Key: unit_code. first_seen_at is never overwritten."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, TollgateUnit, "TollgateUnitRepository")

    def upsert(self, record: TollgateTrafficRecord, now: datetime) -> WriteOutcome:
        now = to_utc(now)
        return self._upsert(
            {
                "unit_code": record.unit_code,
                "unit_name": record.unit_name,
                "division_code": record.division_code,
                "division_name": record.division_name,
                "first_seen_at": now,
                "last_seen_at": now,
            },
            key_columns=("unit_code",),
            update_columns=("unit_name", "division_code", "division_name", "last_seen_at"),
        )

    def get(self, unit_code: str) -> Optional[TollgateUnit]:
        stmt = select(TollgateUnit).where(TollgateUnit.unit_code == unit_code)
        return self._execute_scalar(stmt)


class RouteStatusRepository(BaseRepository[RouteStatusSample]):
    """Key: (route_no, zone_id, direction, collected_at)."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, RouteStatusSample, "RouteStatusRepository")

    def upsert(self, record: RoadStatusRecord, now: datetime) -> WriteOutcome:
        now = to_utc(now)
        return self._upsert(
            {
                "route_no": record.route_no,
                "route_name": record.route_name,
                "zone_id": record.zone_id,
                "zone_name": record.zone_name,
                "vds_id": record.vds_id,
                "direction": record.direction,
                "traffic_volume": record.traffic_volume,
                "speed": record.speed,
                "share_ratio": record.share_ratio,
                "time_avg": record.time_avg,
                "grade": record.grade,
                "std_date": record.std_date,
                "std_hour": record.std_hour,
                "collected_at": to_utc(record.collected_at),
                "created_at": now,
                "updated_at": now,
            },
            key_columns=("route_no", "zone_id", "direction", "collected_at"),
            update_columns=(
                "traffic_volume",
                "speed",
                "share_ratio",
                "time_avg",
                "grade",
                "updated_at",
            ),
        )

    def list_at(self, collected_at: datetime) -> List[RouteStatusSample]:
        stmt = (
            select(RouteStatusSample)
            .where(RouteStatusSample.collected_at == to_utc(collected_at))
            .order_by(RouteStatusSample.route_no, RouteStatusSample.zone_id)
        )
        return self._execute_query(stmt)
