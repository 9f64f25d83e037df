"""
Traffic Domain ORM Models.

============================================================
PURPOSE
============================================================
Models for the deduplicated raw records written by the
processor and the derived statistics written by the rollups.

============================================================
DATA LIFECYCLE ROLE
============================================================
Raw (written from the stream, upserted on natural key):
- IncidentReport
- TrafficMeasurement
- TollgateUnit
- RouteStatusSample

Derived (recomputed by aggregation jobs, overwritten):
- RouteSummary
- DailyAccidentStat

Every natural key carries a named unique constraint; it is
the final arbiter for concurrent writers.

============================================================
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, TimestampMixin


# =============================================================
# RAW
# =============================================================

class IncidentReport(Base):
    """
    One reported traffic incident.

    Natural key: (occurred_date, occurred_time, location, description).
    Created on first sight; re-sight refreshes ingested_at only.
    """

    __tablename__ = "incident_reports"
    __table_args__ = (
        UniqueConstraint(
            "occurred_date", "occurred_time", "location", "description",
            name="uq_incident_reports_natural_key",
        ),
        Index("ix_incident_reports_occurred_date", "occurred_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    occurred_date: Mapped[str] = mapped_column(
        String(8), nullable=False, comment="YYYYMMDD, source local time"
    )
    occurred_time: Mapped[str] = mapped_column(
        String(4), nullable=False, comment="HHMM, source local time"
    )
    location: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    incident_type: Mapped[str] = mapped_column(String(50), nullable=False, default="")

    road_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    route_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    link_id: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    first_seen_at: Mapped[datetime] = mapped_column(
        nullable=False, comment="When the incident was first ingested"
    )
    ingested_at: Mapped[datetime] = mapped_column(
        nullable=False, comment="When the incident was last ingested (freshness)"
    )

    def __repr__(self) -> str:
        return (
            f"<IncidentReport {self.occurred_date} {self.occurred_time} "
            f"{self.location!r} {self.incident_type!r}>"
        )


class TrafficMeasurement(Base, TimestampMixin):
    """
    Traffic volume at one tollgate unit for one collection slot.

    Natural key: (unit_code, collected_at). Re-delivery overwrites
    the volume (last write wins).
    """

    __tablename__ = "traffic_measurements"
    __table_args__ = (
        UniqueConstraint(
            "unit_code", "collected_at",
            name="uq_traffic_measurements_unit_collected",
        ),
        Index("ix_traffic_measurements_collected_at", "collected_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    unit_code: Mapped[str] = mapped_column(String(20), nullable=False)
    unit_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    division_code: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    division_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    traffic_volume: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    collected_at: Mapped[datetime] = mapped_column(nullable=False)

    sum_date: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    sum_time: Mapped[str] = mapped_column(String(4), nullable=False, default="")


class TollgateUnit(Base):
    """
    Registry of tollgate measurement units.

    first_seen_at is set once; labels and last_seen_at refresh on
    every sighting.
    """

    __tablename__ = "tollgate_units"
    __table_args__ = (
        UniqueConstraint("unit_code", name="uq_tollgate_units_unit_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    unit_code: Mapped[str] = mapped_column(String(20), nullable=False)
    unit_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    division_code: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    division_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    first_seen_at: Mapped[datetime] = mapped_column(nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(nullable=False)


class RouteStatusSample(Base, TimestampMixin):
    """
    Status of one road sub-zone in one direction at one time.

    Key: (route_no, zone_id, direction, collected_at). Grade 0 means
    "not computable" and is excluded from rollups.
    """

    __tablename__ = "route_status_samples"
    __table_args__ = (
        UniqueConstraint(
            "route_no", "zone_id", "direction", "collected_at",
            name="uq_route_status_samples_key",
        ),
        Index("ix_route_status_samples_collected_at", "collected_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    route_no: Mapped[str] = mapped_column(String(20), nullable=False)
    route_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    zone_id: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    zone_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    vds_id: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    direction: Mapped[str] = mapped_column(String(10), nullable=False, default="")

    traffic_volume: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    speed: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    share_ratio: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    time_avg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    grade: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    std_date: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    std_hour: Mapped[str] = mapped_column(String(4), nullable=False, default="")
    collected_at: Mapped[datetime] = mapped_column(nullable=False)


# =============================================================
# DERIVED
# =============================================================

class RouteSummary(Base, TimestampMixin):
    """
    Per-route rollup of the latest status snapshot.

    Key: (route_no, collected_at). Recomputed, not appended.
    """

    __tablename__ = "route_summaries"
    __table_args__ = (
        UniqueConstraint("route_no", "collected_at", name="uq_route_summaries_route_collected"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    route_no: Mapped[str] = mapped_column(String(20), nullable=False)
    route_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    total_sections: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    smooth_sections: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    slow_sections: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    congested_sections: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    avg_speed: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    avg_traffic_volume: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    collected_at: Mapped[datetime] = mapped_column(nullable=False)


class DailyAccidentStat(Base, TimestampMixin):
    """
    Incidents per type per calendar day.

    Key: (stat_date, incident_type). Overwritten on re-run.
    """

    __tablename__ = "daily_accident_stats"
    __table_args__ = (
        UniqueConstraint("stat_date", "incident_type", name="uq_daily_accident_stats_date_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    stat_date: Mapped[date] = mapped_column(nullable=False)
    incident_type: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    incident_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
