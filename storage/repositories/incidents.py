"""
Incident Report Repository.

Natural key: (occurred_date, occurred_time, location, description).
A re-sighted incident only gets its ingested_at refreshed; every
other column keeps its first-seen value.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from data_ingestion.types import IncidentRecord
from storage.models.traffic import IncidentReport
from storage.repositories.base import BaseRepository, WriteOutcome, to_utc


INCIDENT_KEY = ("occurred_date", "occurred_time", "location", "description")


class IncidentRepository(BaseRepository[IncidentReport]):
    """Repository for incident reports."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, IncidentReport, "IncidentRepository")

    @staticmethod
    def _values(record: IncidentRecord, now: datetime) -> Dict[str, Any]:
        now = to_utc(now)
        return {
            "occurred_date": record.occurred_date,
            "occurred_time": record.occurred_time,
            "location": record.location,
            "description": record.description,
            "incident_type": record.incident_type,
            "road_name": record.road_name,
            "route_name": record.route_name,
            "link_id": record.link_id,
            "latitude": record.latitude,
            "longitude": record.longitude,
            "first_seen_at": now,
            "ingested_at": now,
        }

    def upsert(self, record: IncidentRecord, now: datetime) -> WriteOutcome:
        """Insert, or refresh ingested_at of the existing row."""
        return self._upsert(
            self._values(record, now),
            key_columns=INCIDENT_KEY,
            update_columns=("ingested_at",),
        )

    def insert_if_absent(self, record: IncidentRecord, now: datetime) -> WriteOutcome:
        """Insert only if the natural key is new; never touches existing rows."""
        return self._insert_if_absent(self._values(record, now), key_columns=INCIDENT_KEY)

    def get_by_natural_key(
        self,
        occurred_date: str,
        occurred_time: str,
        location: str,
        description: str,
    ) -> Optional[IncidentReport]:
        stmt = select(IncidentReport).where(
            IncidentReport.occurred_date == occurred_date,
            IncidentReport.occurred_time == occurred_time,
            IncidentReport.location == location,
            IncidentReport.description == description,
        )
        return self._execute_scalar(stmt)

    def count(self) -> int:
        return self._count()
