"""
Streaming - Stream Transport.

============================================================
RESPONSIBILITY
============================================================
The durable, append-only log between collectors and processors.

- append: add one entry, get its id back
- ensure_group: create a consumer group (and the stream) if absent
- read_group: ordered, group-claimed reads with a bounded block
- ack: mark entries processed (idempotent)
- claim_idle: take over entries another consumer left pending

============================================================
DESIGN PRINCIPLES
============================================================
- Callers depend on StreamTransport, never on the Redis client
- Every Redis failure surfaces as StreamError
- Entries are returned as StreamEntry with str ids and fields

============================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import redis.asyncio as redis
from redis.exceptions import RedisError, ResponseError

from core.exceptions import StreamError


# ============================================================
# TYPES
# ============================================================

@dataclass(frozen=True)
class StreamEntry:
    """One stream entry as delivered to a consumer."""

    entry_id: str
    fields: Dict[str, str] = field(default_factory=dict)


# ============================================================
# CONTRACT
# ============================================================

class StreamTransport(ABC):
    """Abstract interface of the durable stream."""

    @abstractmethod
    async def append(
        self,
        stream: str,
        fields: Mapping[str, Any],
        max_length: Optional[int] = None,
    ) -> str:
        """Append one entry; returns its id."""
        pass

    @abstractmethod
    async def ensure_group(self, stream: str, group: str, start_id: str = "0") -> bool:
        """Create the group (and stream) if absent. Returns True if created."""
        pass

    @abstractmethod
    async def read_group(
        self,
        stream: str,
        group: str,
        consumer: str,
        entry_id: str = ">",
        count: int = 10,
        block_ms: Optional[int] = None,
    ) -> List[StreamEntry]:
        """
        Read entries for a consumer in a group.

        entry_id ">" returns entries never delivered to the group;
        "0" returns this consumer's own pending entries.
        """
        pass

    @abstractmethod
    async def ack(self, stream: str, group: str, entry_ids: Sequence[str]) -> int:
        """Acknowledge entries; returns how many were pending."""
        pass

    @abstractmethod
    async def claim_idle(
        self,
        stream: str,
        group: str,
        consumer: str,
        min_idle_ms: int,
        count: int = 10,
    ) -> List[StreamEntry]:
        """Claim entries pending on any consumer for at least min_idle_ms."""
        pass

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


# ============================================================
# REDIS STREAMS
# ============================================================

def _to_str(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _to_entries(raw_entries: Any) -> List[StreamEntry]:
    """Convert [(id, {field: value}), ...] into StreamEntry objects."""
    entries = []
    for entry_id, raw_fields in raw_entries or []:
        # Entries deleted while pending come back with no fields
        fields = {
            _to_str(k): _to_str(v) for k, v in (raw_fields or {}).items()
        }
        entries.append(StreamEntry(entry_id=_to_str(entry_id), fields=fields))
    return entries


class RedisStreamTransport(StreamTransport):
    """
    StreamTransport backed by Redis Streams (XADD / XREADGROUP /
    XACK / XAUTOCLAIM).
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._logger = logging.getLogger("stream.transport")

    @classmethod
    def from_url(cls, url: str) -> "RedisStreamTransport":
        """Create a transport with its own client."""
        return cls(redis.Redis.from_url(url, decode_responses=True))

    async def append(
        self,
        stream: str,
        fields: Mapping[str, Any],
        max_length: Optional[int] = None,
    ) -> str:
        try:
            entry_id = await self._client.xadd(
                stream,
                dict(fields),
                maxlen=max_length,
                approximate=True,
            )
        except RedisError as e:
            raise StreamError(f"XADD to {stream} failed: {e}", operation="append", cause=e) from e
        return _to_str(entry_id)

    async def ensure_group(self, stream: str, group: str, start_id: str = "0") -> bool:
        try:
            await self._client.xgroup_create(stream, group, id=start_id, mkstream=True)
        except ResponseError as e:
            if "BUSYGROUP" in str(e):
                return False
            raise StreamError(
                f"XGROUP CREATE {stream} {group} failed: {e}", operation="ensure_group", cause=e
            ) from e
        except RedisError as e:
            raise StreamError(
                f"XGROUP CREATE {stream} {group} failed: {e}", operation="ensure_group", cause=e
            ) from e
        self._logger.info(f"Created consumer group {group} on {stream}")
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
        try:
            response = await self._client.xreadgroup(
                group,
                consumer,
                {stream: entry_id},
                count=count,
                block=block_ms,
            )
        except RedisError as e:
            raise StreamError(f"XREADGROUP on {stream} failed: {e}", operation="read_group", cause=e) from e

        if not response:
            return []
        # [[stream, [(id, fields), ...]]]
        return _to_entries(response[0][1])

    async def ack(self, stream: str, group: str, entry_ids: Sequence[str]) -> int:
        if not entry_ids:
            return 0
        try:
            return int(await self._client.xack(stream, group, *entry_ids))
        except RedisError as e:
            raise StreamError(f"XACK on {stream} failed: {e}", operation="ack", cause=e) from e

    async def claim_idle(
        self,
        stream: str,
        group: str,
        consumer: str,
        min_idle_ms: int,
        count: int = 10,
    ) -> List[StreamEntry]:
        try:
            response = await self._client.xautoclaim(
                stream, group, consumer, min_idle_ms, start_id="0-0", count=count
            )
        except RedisError as e:
            raise StreamError(f"XAUTOCLAIM on {stream} failed: {e}", operation="claim_idle", cause=e) from e
        # [next_start_id, entries, deleted_ids]
        return _to_entries(response[1] if response and len(response) > 1 else [])

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            raise StreamError(f"Redis unreachable: {e}", operation="ping", cause=e) from e

    async def close(self) -> None:
        await self._client.aclose()
