"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The Repository Layer is the ONLY gateway to persistent storage.
All database access MUST go through repository classes.

============================================================
ARCHITECTURE PRINCIPLES
============================================================
1. DAO Pattern: One repository per table
2. Session Injection: Sessions are injected, not created internally
3. Keyed Writes: Every write is addressed by a natural key
4. Exception Handling: All DB errors wrapped in repository exceptions

============================================================
REPOSITORY GROUPS
============================================================

RAW RECORDS
-----------
- IncidentRepository: Incident reports
- TrafficMeasurementRepository: Tollgate traffic volumes
- TollgateUnitRepository: Tollgate unit registry
- RouteStatusRepository: Road status samples

DERIVED STATISTICS
------------------
- RouteSummaryRepository: Per-route snapshot rollups
- DailyAccidentStatRepository: Incidents per type per day

============================================================
USAGE
============================================================

    from storage.repositories import IncidentRepository

    def store(session: Session, record: IncidentRecord, now: datetime):
        outcome = IncidentRepository(session).upsert(record, now)
        return outcome

============================================================
"""

# =============================================================
# EXCEPTIONS
# =============================================================
from storage.repositories.exceptions import (
    RepositoryException,
    IntegrityError,
    ConnectionError,
    QueryError,
    TransactionError,
)

# =============================================================
# BASE REPOSITORY
# =============================================================
from storage.repositories.base import BaseRepository, WriteOutcome, to_utc

# =============================================================
# RAW RECORD REPOSITORIES
# =============================================================
from storage.repositories.incidents import IncidentRepository
from storage.repositories.traffic import (
    TrafficMeasurementRepository,
    TollgateUnitRepository,
    RouteStatusRepository,
)

# =============================================================
# DERIVED STATISTICS REPOSITORIES
# =============================================================
from storage.repositories.aggregates import (
    RouteSnapshotRow,
    RouteSummaryRepository,
    DailyAccidentStatRepository,
    round_half_up,
)


__all__ = [
    # Exceptions
    "RepositoryException",
    "IntegrityError",
    "ConnectionError",
    "QueryError",
    "TransactionError",
    # Base
    "BaseRepository",
    "WriteOutcome",
    "to_utc",
    # Raw records
    "IncidentRepository",
    "TrafficMeasurementRepository",
    "TollgateUnitRepository",
    "RouteStatusRepository",
    # Derived statistics
    "RouteSnapshotRow",
    "RouteSummaryRepository",
    "DailyAccidentStatRepository",
    "round_half_up",
]
