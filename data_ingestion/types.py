"""
Data Ingestion - Type Definitions.

============================================================
PURPOSE
============================================================
Shared types for the ingestion layer.

- Canonical record types (output of the normalizers)
- Collector configuration dataclasses
- Ingestion result and metric types
- Error types

============================================================
DESIGN PRINCIPLES
============================================================
- Canonical records are immutable
- Canonical records round-trip through the stream payload
  as plain JSON dictionaries
- Unknown payload fields are ignored on the way back in

============================================================
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from core.constants import KIND_INCIDENT, KIND_ROAD_STATUS, KIND_TOLLGATE_TRAFFIC
from core.exceptions import MalformedRecord, PipelineError


# =============================================================
# ENUMS
# =============================================================

class IngestionSource(str, Enum):
    """Identifiers for ingestion sources."""
    INCIDENT_API = "incident_api"
    TOLLGATE_API = "tollgate_api"
    ROAD_STATUS_API = "road_status_api"
    SEED_REPLAY = "seed_replay"


class IngestionStatus(str, Enum):
    """Status of an ingestion operation."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


# =============================================================
# CANONICAL RECORDS
# =============================================================

class _CanonicalRecord:
    """Payload conversion shared by the canonical record types."""

    kind: str = ""
    _datetime_fields: tuple = ()

    def to_payload(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        payload = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            payload[f.name] = value
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]):
        """
        Rebuild a record from a stream payload dictionary.

        Unknown keys are ignored. Missing required keys raise
        MalformedRecord.
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in payload.items() if k in known}
        for name in cls._datetime_fields:
            raw = values.get(name)
            if isinstance(raw, str):
                try:
                    values[name] = datetime.fromisoformat(raw)
                except ValueError as e:
                    raise MalformedRecord(
                        f"Invalid timestamp in {cls.kind} payload",
                        field=name,
                        value=raw,
                        cause=e,
                    ) from e
        try:
            return cls(**values)
        except TypeError as e:
            raise MalformedRecord(
                f"Incomplete {cls.kind} payload: {e}",
                context={"keys": sorted(payload.keys())},
                cause=e,
            ) from e


@dataclass(frozen=True)
class IncidentRecord(_CanonicalRecord):
    """
    One reported traffic incident, canonical shape.

    Natural key: (occurred_date, occurred_time, location, description).
    """
    occurred_date: str          # YYYYMMDD
    occurred_time: str          # HHMM
    location: str
    description: str
    incident_type: str
    road_name: str = ""
    route_name: str = ""
    link_id: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    kind = KIND_INCIDENT

    @property
    def natural_key(self) -> tuple:
        return (self.occurred_date, self.occurred_time, self.location, self.description)


@dataclass(frozen=True)
class TollgateTrafficRecord(_CanonicalRecord):
    """
    One tollgate traffic-volume sample, canonical shape.

    Natural key: (unit_code, collected_at).
    """
    unit_code: str
    unit_name: str
    division_code: str
    division_name: str
    traffic_volume: int
    collected_at: datetime
    sum_date: str = ""
    sum_time: str = ""

    kind = KIND_TOLLGATE_TRAFFIC
    _datetime_fields = ("collected_at",)

    @property
    def natural_key(self) -> tuple:
        return (self.unit_code, self.collected_at)


@dataclass(frozen=True)
class RoadStatusRecord(_CanonicalRecord):
    """
    One road-segment status sample, canonical shape.

    Natural key: (route_no, zone_id, direction, collected_at).
    """
    route_no: str
    route_name: str
    zone_id: str
    zone_name: str
    direction: str
    traffic_volume: float
    speed: float
    share_ratio: float
    time_avg: float
    grade: int
    collected_at: datetime
    vds_id: str = ""
    std_date: str = ""
    std_hour: str = ""

    kind = KIND_ROAD_STATUS
    _datetime_fields = ("collected_at",)

    @property
    def natural_key(self) -> tuple:
        return (self.route_no, self.zone_id, self.direction, self.collected_at)


RECORD_TYPES = {
    KIND_INCIDENT: IncidentRecord,
    KIND_TOLLGATE_TRAFFIC: TollgateTrafficRecord,
    KIND_ROAD_STATUS: RoadStatusRecord,
}


# =============================================================
# CONFIGURATION TYPES
# =============================================================

@dataclass(frozen=True)
class CollectorConfig:
    """Base configuration for all collectors."""
    source_name: str
    enabled: bool = True
    polling_interval_seconds: float = 60.0
    max_retries: int = 3
    retry_base_delay_seconds: float = 1.0
    timeout_seconds: float = 30.0
    version: str = "1.0.0"


@dataclass(frozen=True)
class IncidentApiConfig(CollectorConfig):
    """Configuration for the incident feed (real or simulator)."""
    api_key: str = ""
    base_url: str = ""
    num_of_rows: int = 100
    publish_source: str = "real"


@dataclass(frozen=True)
class TollgateApiConfig(CollectorConfig):
    """Configuration for the paginated tollgate traffic feed."""
    api_key: str = ""
    base_url: str = ""
    num_of_rows: int = 100
    local_timezone: str = "Asia/Seoul"


@dataclass(frozen=True)
class RoadStatusApiConfig(CollectorConfig):
    """Configuration for the road traffic status feed."""
    api_key: str = ""
    base_url: str = ""
    local_timezone: str = "Asia/Seoul"


@dataclass(frozen=True)
class SeedReplayConfig(CollectorConfig):
    """Configuration for replaying seed incidents at a paced rate."""
    seed_file: str = ""
    window_seconds: float = 300.0
    local_timezone: str = "Asia/Seoul"


# =============================================================
# INGESTION RESULT TYPES
# =============================================================

@dataclass
class IngestionResult:
    """Result of a single collection cycle."""
    batch_id: UUID = field(default_factory=uuid4)
    source: str = ""
    status: IngestionStatus = IngestionStatus.SUCCESS

    # Counts
    records_fetched: int = 0
    records_published: int = 0
    records_skipped: int = 0
    pages_failed: int = 0

    # Stream entry ids created in this cycle
    entry_ids: List[str] = field(default_factory=list)

    # Timing
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    # Errors
    errors: List[str] = field(default_factory=list)

    def mark_complete(self, completed_at: datetime) -> None:
        """Mark the cycle as complete and calculate duration."""
        self.completed_at = completed_at
        if self.started_at:
            delta = completed_at - self.started_at
            self.duration_seconds = delta.total_seconds()

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)
        if self.status == IngestionStatus.SUCCESS:
            self.status = IngestionStatus.PARTIAL

    def mark_failed(self, error: str) -> None:
        """Mark the cycle as failed."""
        self.status = IngestionStatus.FAILED
        self.add_error(error)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/monitoring."""
        return {
            "batch_id": str(self.batch_id),
            "source": self.source,
            "status": self.status.value,
            "records_fetched": self.records_fetched,
            "records_published": self.records_published,
            "records_skipped": self.records_skipped,
            "pages_failed": self.pages_failed,
            "entries": len(self.entry_ids),
            "duration_seconds": self.duration_seconds,
            "error_count": len(self.errors),
            "errors": self.errors[:5],  # Limit for logging
        }


@dataclass
class IngestionMetrics:
    """Aggregated metrics for the ingestion service."""
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0

    total_records_fetched: int = 0
    total_records_published: int = 0
    total_records_skipped: int = 0

    last_run_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None

    source_metrics: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def record_result(self, result: IngestionResult) -> None:
        """Record an ingestion result."""
        self.total_runs += 1
        self.last_run_at = result.completed_at

        self.total_records_fetched += result.records_fetched
        self.total_records_published += result.records_published
        self.total_records_skipped += result.records_skipped

        if result.status == IngestionStatus.SUCCESS:
            self.successful_runs += 1
            self.last_success_at = result.completed_at
        elif result.status == IngestionStatus.FAILED:
            self.failed_runs += 1
            self.last_failure_at = result.completed_at

        if result.source not in self.source_metrics:
            self.source_metrics[result.source] = {
                "runs": 0,
                "records_published": 0,
                "last_run": None,
            }

        self.source_metrics[result.source]["runs"] += 1
        self.source_metrics[result.source]["records_published"] += result.records_published
        self.source_metrics[result.source]["last_run"] = result.completed_at


# =============================================================
# ERROR TYPES
# =============================================================

class IngestionError(PipelineError):
    """Base exception for ingestion errors."""

    def __init__(
        self,
        message: str,
        source: str,
        recoverable: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context=dict(details or {}, source=source))
        self.source = source
        self.recoverable = recoverable
        self.details = details or {}


class FetchError(IngestionError):
    """Error fetching data from an external source."""
    pass


class PublishError(IngestionError):
    """Error appending a batch to the stream."""
    pass
