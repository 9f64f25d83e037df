"""
Storage Models Package.

This package contains all ORM models of the traffic store.

============================================================
MODEL ORGANIZATION
============================================================

Raw records (traffic.py), upserted from the stream:
- IncidentReport
- TrafficMeasurement
- TollgateUnit
- RouteStatusSample

Derived statistics (traffic.py), recomputed by rollups:
- RouteSummary
- DailyAccidentStat

============================================================
"""

from storage.models.base import Base, TimestampMixin
from storage.models.traffic import (
    DailyAccidentStat,
    IncidentReport,
    RouteStatusSample,
    RouteSummary,
    TollgateUnit,
    TrafficMeasurement,
)


__all__ = [
    "Base",
    "TimestampMixin",
    "IncidentReport",
    "TrafficMeasurement",
    "TollgateUnit",
    "RouteStatusSample",
    "RouteSummary",
    "DailyAccidentStat",
]
