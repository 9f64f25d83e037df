"""
Data Ingestion - Normalizers Package.

This package contains all data normalization modules.
Each normalizer converts one external record to a canonical record
or raises MalformedRecord.

Normalizers:
- incident_normalizer: incident reports
- traffic_normalizer: tollgate traffic and road status samples
- time_format: date/time compaction and numeric field helpers
"""

from datetime import tzinfo
from typing import Any, Optional

from core.constants import KIND_INCIDENT, KIND_ROAD_STATUS, KIND_TOLLGATE_TRAFFIC
from core.exceptions import MalformedRecord
from data_ingestion.normalizers.incident_normalizer import normalize_incident
from data_ingestion.normalizers.time_format import (
    compact_date,
    compact_time,
    local_timestamp,
    parse_float,
    parse_int,
)
from data_ingestion.normalizers.traffic_normalizer import (
    normalize_road_status,
    normalize_tollgate_traffic,
)


def normalize_record(kind: str, raw: Any, tz: Optional[tzinfo] = None):
    """
    Normalize one record of the given kind.

    Raises:
        MalformedRecord: If the record (or the kind) is not recognized
    """
    if kind == KIND_INCIDENT:
        return normalize_incident(raw)
    if kind == KIND_TOLLGATE_TRAFFIC:
        return normalize_tollgate_traffic(raw, tz)
    if kind == KIND_ROAD_STATUS:
        return normalize_road_status(raw, tz)
    raise MalformedRecord("Unknown record kind", field="kind", value=kind)


__all__ = [
    "normalize_record",
    "normalize_incident",
    "normalize_tollgate_traffic",
    "normalize_road_status",
    "compact_date",
    "compact_time",
    "local_timestamp",
    "parse_float",
    "parse_int",
]
