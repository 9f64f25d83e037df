"""
Data Ingestion - Collectors Package.

This package contains all data collection modules.
Each collector is responsible for a specific data source.

Collectors:
- incident_api: Incident feed (real API or simulator)
- tollgate_api: Paginated tollgate traffic volumes
- road_status_api: Road-segment status samples
- seed_replay: Paced replay of seed incidents
"""

from data_ingestion.collectors.base import BaseCollector
from data_ingestion.collectors.incident_api import IncidentApiCollector
from data_ingestion.collectors.road_status_api import RoadStatusApiCollector
from data_ingestion.collectors.seed_replay import SeedReplayCollector
from data_ingestion.collectors.tollgate_api import TollgateApiCollector


__all__ = [
    "BaseCollector",
    "IncidentApiCollector",
    "TollgateApiCollector",
    "RoadStatusApiCollector",
    "SeedReplayCollector",
]
