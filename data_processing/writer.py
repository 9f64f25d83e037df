"""
Data Processing - Dedup/Upsert Writer.

============================================================
PURPOSE
============================================================
Turns one stream entry into keyed writes against the store.

    entry payload -> decode -> normalize each record -> upsert

============================================================
FAILURE HANDLING
============================================================
- Payload not decodable: MalformedRecord, the consumer
  acknowledges the entry as poison
- One record malformed: logged and skipped, batch continues
- Record rejected by the store: logged and skipped
- Store unavailable (transient): re-raised, so the entry stays
  pending and is delivered again

============================================================
STRATEGIES
============================================================
Incidents use insert-or-update by default; "check_then_insert"
switches to insert-if-absent. Every other kind is
insert-or-update. Tollgate measurements also refresh the
tollgate unit registry.

============================================================
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session, sessionmaker

from core.clock import ClockProtocol, SystemClock
from core.constants import (
    DEFAULT_LOCAL_TIMEZONE,
    FIELD_PAYLOAD,
    KIND_INCIDENT,
    RECORD_KINDS,
)
from core.exceptions import MalformedRecord
from data_ingestion.normalizers import normalize_record
from data_ingestion.types import IncidentRecord, RoadStatusRecord, TollgateTrafficRecord
from storage.repositories import (
    IncidentRepository,
    RepositoryException,
    RouteStatusRepository,
    TollgateUnitRepository,
    TrafficMeasurementRepository,
    WriteOutcome,
)
from streaming.transport import StreamEntry


STRATEGY_UPSERT = "upsert"
STRATEGY_CHECK_THEN_INSERT = "check_then_insert"


@dataclass
class ProcessingResult:
    """Outcome of writing one stream entry."""

    entry_id: str
    kind: str = ""
    records_received: int = 0
    inserted: int = 0
    refreshed: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def record_outcome(self, outcome: WriteOutcome) -> None:
        if outcome is WriteOutcome.INSERTED:
            self.inserted += 1
        elif outcome is WriteOutcome.REFRESHED:
            self.refreshed += 1
        else:
            self.unchanged += 1

    @property
    def written(self) -> int:
        return self.inserted + self.refreshed + self.unchanged

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "kind": self.kind,
            "records_received": self.records_received,
            "inserted": self.inserted,
            "refreshed": self.refreshed,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": self.errors[:10],
        }


def decode_entry(entry: StreamEntry) -> Tuple[str, List[Any]]:
    """
    Decode an entry payload into (kind, raw records).

    Accepts the {"kind", "records"} envelope and a bare JSON list,
    which is read as a batch of incidents.

    Raises:
        MalformedRecord: If the payload is missing or not decodable
    """
    raw = entry.fields.get(FIELD_PAYLOAD)
    if raw is None:
        raise MalformedRecord("Entry has no payload", field=FIELD_PAYLOAD)

    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedRecord(
            "Entry payload is not valid JSON", field=FIELD_PAYLOAD, value=raw, cause=e
        ) from e

    if isinstance(payload, list):
        return KIND_INCIDENT, payload

    if not isinstance(payload, dict):
        raise MalformedRecord("Unexpected payload type", field=FIELD_PAYLOAD, value=raw)

    kind = payload.get("kind")
    records = payload.get("records")
    if kind not in RECORD_KINDS:
        raise MalformedRecord("Unknown record kind", field="kind", value=kind)
    if not isinstance(records, list):
        raise MalformedRecord("Envelope records is not a list", field="records", value=records)
    return kind, records


class RecordWriter:
    """
    Consumer handler that persists decoded records.

    Each record is written and committed on its own, so a failed
    record never rolls back its neighbours.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Optional[ClockProtocol] = None,
        incident_strategy: str = STRATEGY_UPSERT,
        local_timezone: Optional[tzinfo] = None,
    ) -> None:
        if incident_strategy not in (STRATEGY_UPSERT, STRATEGY_CHECK_THEN_INSERT):
            raise ValueError(f"Unknown incident strategy: {incident_strategy}")
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._incident_strategy = incident_strategy
        self._tz = local_timezone or ZoneInfo(DEFAULT_LOCAL_TIMEZONE)
        self._logger = logging.getLogger("writer")
        self._last_result: Optional[ProcessingResult] = None

    @property
    def incident_strategy(self) -> str:
        return self._incident_strategy

    @property
    def last_result(self) -> Optional[ProcessingResult]:
        return self._last_result

    async def handle_entry(self, entry: StreamEntry) -> ProcessingResult:
        """
        Decode and persist one stream entry.

        Raises:
            MalformedRecord: The entry payload is undecodable
            RepositoryException: A transient store failure
        """
        kind, raw_records = decode_entry(entry)
        # Blocking store calls run off the event loop
        result = await asyncio.to_thread(self.write_records, entry.entry_id, kind, raw_records)
        self._last_result = result

        self._logger.info(f"Processed entry {entry.entry_id}: {result.to_dict()}")
        return result

    def write_records(self, entry_id: str, kind: str, raw_records: List[Any]) -> ProcessingResult:
        result = ProcessingResult(entry_id=entry_id, kind=kind, records_received=len(raw_records))

        with self._session_factory() as session:
            for index, raw in enumerate(raw_records):
                try:
                    record = normalize_record(kind, raw, self._tz)
                except MalformedRecord as e:
                    result.skipped += 1
                    result.errors.append(f"record {index}: {e.message}")
                    self._logger.warning(
                        f"Skipping malformed {kind} record {index} in {entry_id}: "
                        f"{e.message} {e.context}"
                    )
                    continue

                try:
                    outcome = self.write_record(session, record)
                except RepositoryException as e:
                    if e.is_transient:
                        self._logger.error(
                            f"Store unavailable while writing {entry_id}, entry left pending: {e}"
                        )
                        raise
                    result.failed += 1
                    result.errors.append(f"record {index}: {e}")
                    self._logger.error(f"Skipping {kind} record {index} in {entry_id}: {e}")
                    continue

                result.record_outcome(outcome)

        return result

    def write_record(self, session: Session, record: Any) -> WriteOutcome:
        """Write one canonical record with its kind's strategy."""
        now = self._clock.now()

        if isinstance(record, IncidentRecord):
            repo = IncidentRepository(session)
            if self._incident_strategy == STRATEGY_CHECK_THEN_INSERT:
                return repo.insert_if_absent(record, now)
            return repo.upsert(record, now)

        if isinstance(record, TollgateTrafficRecord):
            TollgateUnitRepository(session).upsert(record, now)
            return TrafficMeasurementRepository(session).upsert(record, now)

        if isinstance(record, RoadStatusRecord):
            return RouteStatusRepository(session).upsert(record, now)

        raise MalformedRecord("Unsupported record type", value=type(record).__name__)


__all__ = [
    "ProcessingResult",
    "RecordWriter",
    "WriteOutcome",
    "decode_entry",
    "STRATEGY_UPSERT",
    "STRATEGY_CHECK_THEN_INSERT",
]
