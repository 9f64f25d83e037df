"""
Data Ingestion Package.

This package handles all data collection and normalization.
No business logic - only data acquisition and publishing.

Sub-packages:
- collectors: Data collection from external sources
- normalizers: Normalization to canonical records

Main service:
- ingestion_service: Runs one polling loop per source
"""

from data_ingestion.ingestion_service import IngestionService, IngestionServiceConfig
from data_ingestion.collectors import (
    BaseCollector,
    IncidentApiCollector,
    RoadStatusApiCollector,
    SeedReplayCollector,
    TollgateApiCollector,
)
from data_ingestion.types import (
    IngestionSource,
    IngestionStatus,
    CollectorConfig,
    IncidentApiConfig,
    TollgateApiConfig,
    RoadStatusApiConfig,
    SeedReplayConfig,
    IngestionResult,
    IngestionMetrics,
    IncidentRecord,
    TollgateTrafficRecord,
    RoadStatusRecord,
    RECORD_TYPES,
    IngestionError,
    FetchError,
    PublishError,
)


__all__ = [
    # Service
    "IngestionService",
    "IngestionServiceConfig",
    # Collectors
    "BaseCollector",
    "IncidentApiCollector",
    "TollgateApiCollector",
    "RoadStatusApiCollector",
    "SeedReplayCollector",
    # Types - Enums
    "IngestionSource",
    "IngestionStatus",
    # Types - Configs
    "CollectorConfig",
    "IncidentApiConfig",
    "TollgateApiConfig",
    "RoadStatusApiConfig",
    "SeedReplayConfig",
    # Types - Results
    "IngestionResult",
    "IngestionMetrics",
    # Types - Records
    "IncidentRecord",
    "TollgateTrafficRecord",
    "RoadStatusRecord",
    "RECORD_TYPES",
    # Types - Errors
    "IngestionError",
    "FetchError",
    "PublishError",
]
