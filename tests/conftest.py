"""
Shared fixtures.

- In-memory SQLite store with every table created
- MockClock pinned to a known instant
- FakeStreamTransport: an in-process stand-in for Redis Streams
  with consumer groups, pending lists and acknowledgements
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from core.clock import MockClock
from core.config import DatabaseSettings
from database.engine import create_all_tables, create_database_engine, get_session_factory
from streaming.transport import StreamEntry, StreamTransport


# ============================================================
# FAKE STREAM
# ============================================================

def _id_key(entry_id: str) -> Tuple[int, int]:
    ms, _, seq = entry_id.partition("-")
    return int(ms), int(seq or 0)


class FakeStreamTransport(StreamTransport):
    """
    Stream transport kept in memory.

    Delivery follows the consumer-group rules: ">" hands out entries
    never delivered to the group, any other id returns the caller's
    own pending entries after that id. claim_idle ignores idle time
    and takes every entry pending on another consumer.
    """

    def __init__(self) -> None:
        self.streams: Dict[str, List[StreamEntry]] = {}
        self.groups: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.acked: List[str] = []
        self.closed = False
        self._sequence = 0

    async def append(self, stream: str, fields: Mapping[str, Any], max_length: Optional[int] = None) -> str:
        self._sequence += 1
        entry = StreamEntry(
            entry_id=f"{1700000000000 + self._sequence}-0",
            fields={k: str(v) for k, v in fields.items()},
        )
        self.streams.setdefault(stream, []).append(entry)
        return entry.entry_id

    async def ensure_group(self, stream: str, group: str, start_id: str = "0") -> bool:
        self.streams.setdefault(stream, [])
        if (stream, group) in self.groups:
            return False
        self.groups[(stream, group)] = {"delivered": 0, "pending": {}}
        return True

    async def read_group(
        self,
        stream: str,
        group: str,
        consumer: str,
        entry_id: str = ">",
        count: int = 10,
        block_ms: Optional[int] = None,
    ) -> List[StreamEntry]:
        state = self.groups[(stream, group)]
        entries = self.streams[stream]

        if entry_id == ">":
            batch = entries[state["delivered"]:state["delivered"] + count]
            state["delivered"] += len(batch)
            for entry in batch:
                state["pending"][entry.entry_id] = consumer
            return list(batch)

        after = _id_key(entry_id)
        own = [
            entry for entry in entries
            if state["pending"].get(entry.entry_id) == consumer and _id_key(entry.entry_id) > after
        ]
        return own[:count]

    async def ack(self, stream: str, group: str, entry_ids: Sequence[str]) -> int:
        pending = self.groups[(stream, group)]["pending"]
        removed = 0
        for entry_id in entry_ids:
            if pending.pop(entry_id, None) is not None:
                removed += 1
                self.acked.append(entry_id)
        return removed

    async def claim_idle(
        self,
        stream: str,
        group: str,
        consumer: str,
        min_idle_ms: int,
        count: int = 10,
    ) -> List[StreamEntry]:
        pending = self.groups[(stream, group)]["pending"]
        claimed = []
        for entry in self.streams[stream]:
            owner = pending.get(entry.entry_id)
            if owner is not None and owner != consumer and len(claimed) < count:
                pending[entry.entry_id] = consumer
                claimed.append(entry)
        return claimed

    async def close(self) -> None:
        self.closed = True

    def pending_ids(self, stream: str, group: str) -> List[str]:
        return sorted(self.groups[(stream, group)]["pending"], key=_id_key)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def transport():
    return FakeStreamTransport()


@pytest.fixture
def clock():
    # 2025-01-11 09:30 in Seoul
    return MockClock(datetime(2025, 1, 11, 0, 30, tzinfo=timezone.utc))


@pytest.fixture
def engine():
    engine = create_database_engine(DatabaseSettings(url="sqlite://"))
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session
