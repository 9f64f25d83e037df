"""
Aggregation Package.

Periodic rollups from raw records into derived statistics.

Modules:
- snapshot: per-route summary of the latest road status snapshot
- daily: incidents per type for the previous day
- scheduler: the two rollup loops
"""

from aggregation.daily import DailyRollup, next_fire_at, previous_day
from aggregation.scheduler import AggregationScheduler
from aggregation.snapshot import SnapshotRollup
from aggregation.types import RollupResult, RollupStatus


__all__ = [
    "AggregationScheduler",
    "DailyRollup",
    "SnapshotRollup",
    "RollupResult",
    "RollupStatus",
    "next_fire_at",
    "previous_day",
]
