"""
Tests for the stream publisher and the consumer-group reader.

Tests cover:
- Publishing batches as single entries
- Acknowledge-after-handle delivery
- Redelivery of entries left pending by a crash
- Poison entries
- Giving up on entries that keep failing
- Claiming entries abandoned by another consumer
"""

import asyncio
import json
from datetime import datetime
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError

from core.exceptions import MalformedRecord, StreamError
from data_ingestion.types import IncidentRecord
from streaming import (
    ConsumerState,
    RedisStreamTransport,
    StreamConsumer,
    StreamPublisher,
)


STREAM = "traffic-stream"
GROUP = "processor-group"


def _incident(n: int) -> IncidentRecord:
    return IncidentRecord(
        occurred_date="20250110",
        occurred_time="0705",
        location=f"Point {n}",
        description="Collision",
        incident_type="A",
    )


def _consumer(transport, handler, name="processor-1", **kwargs) -> StreamConsumer:
    return StreamConsumer(
        transport,
        handler,
        stream_key=STREAM,
        group=GROUP,
        consumer_name=name,
        block_ms=10,
        error_backoff_seconds=0,
        **kwargs,
    )


# =============================================================
# TEST: Publisher
# =============================================================

class TestStreamPublisher:

    @pytest.mark.asyncio
    async def test_empty_batch_is_noop(self, transport, clock):
        publisher = StreamPublisher(transport, STREAM, clock=clock)

        assert await publisher.publish([]) is None
        assert transport.streams == {}

    @pytest.mark.asyncio
    async def test_batch_becomes_one_entry(self, transport, clock):
        publisher = StreamPublisher(transport, STREAM, source="sim", clock=clock)

        entry_id = await publisher.publish([_incident(1), _incident(2)])

        entries = transport.streams[STREAM]
        assert len(entries) == 1
        assert entries[0].entry_id == entry_id

        fields = entries[0].fields
        assert fields["source"] == "sim"
        assert fields["published_at"] == str(int(clock.now().timestamp()))

        payload = json.loads(fields["payload"])
        assert payload["kind"] == "incident"
        assert [r["location"] for r in payload["records"]] == ["Point 1", "Point 2"]

    @pytest.mark.asyncio
    async def test_timestamps_serialize_as_iso(self, transport, clock):
        from data_ingestion.types import TollgateTrafficRecord

        record = TollgateTrafficRecord(
            unit_code="101",
            unit_name="Seoul",
            division_code="00",
            division_name="HQ",
            traffic_volume=5,
            collected_at=datetime(2025, 1, 10, 7, 5, tzinfo=ZoneInfo("Asia/Seoul")),
        )
        publisher = StreamPublisher(transport, STREAM, clock=clock)
        await publisher.publish([record])

        payload = json.loads(transport.streams[STREAM][0].fields["payload"])
        assert payload["kind"] == "tollgate_traffic"
        assert payload["records"][0]["collected_at"] == "2025-01-10T07:05:00+09:00"

    @pytest.mark.asyncio
    async def test_append_failure_raises_stream_error(self, clock):
        failing = AsyncMock()
        failing.append.side_effect = StreamError("down", operation="append")
        publisher = StreamPublisher(failing, STREAM, clock=clock)

        with pytest.raises(StreamError):
            await publisher.publish([_incident(1)])


# =============================================================
# TEST: Consumer
# =============================================================

class TestStreamConsumer:

    @pytest.mark.asyncio
    async def test_processes_and_acknowledges(self, transport, clock):
        publisher = StreamPublisher(transport, STREAM, clock=clock)
        first = await publisher.publish([_incident(1)])
        second = await publisher.publish([_incident(2)])
        handler = AsyncMock()

        consumer = _consumer(transport, handler)
        handled = await consumer.run_until_idle()

        assert handled == 2
        assert handler.await_count == 2
        assert transport.acked == [first, second]
        assert transport.pending_ids(STREAM, GROUP) == []
        assert consumer.stats.entries_acked == 2
        assert consumer.state == ConsumerState.STOPPED

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, transport):
        consumer = _consumer(transport, AsyncMock())
        await consumer.start()
        await consumer.start()

        assert (STREAM, GROUP) in transport.groups

    @pytest.mark.asyncio
    async def test_crash_leaves_entry_pending_for_redelivery(self, transport, clock):
        publisher = StreamPublisher(transport, STREAM, clock=clock)
        entry_id = await publisher.publish([_incident(1)])

        crashing = AsyncMock(side_effect=RuntimeError("killed mid-write"))
        first = _consumer(transport, crashing)
        await first.run_until_idle()

        assert transport.acked == []
        assert transport.pending_ids(STREAM, GROUP) == [entry_id]
        assert first.stats.failed_entries == 1

        # Restarted under the same name: the pending entry comes back first
        handler = AsyncMock()
        restarted = _consumer(transport, handler)
        handled = await restarted.run_until_idle()

        assert handled == 1
        delivered = handler.await_args.args[0]
        assert delivered.entry_id == entry_id
        assert transport.acked == [entry_id]
        assert transport.pending_ids(STREAM, GROUP) == []

    @pytest.mark.asyncio
    async def test_poison_entry_is_acknowledged(self, transport, clock):
        publisher = StreamPublisher(transport, STREAM, clock=clock)
        entry_id = await publisher.publish([_incident(1)])

        handler = AsyncMock(side_effect=MalformedRecord("bad payload", field="payload"))
        consumer = _consumer(transport, handler)
        await consumer.run_until_idle()

        assert transport.acked == [entry_id]
        assert consumer.stats.poison_entries == 1
        assert consumer.stats.failed_entries == 0

    @pytest.mark.asyncio
    async def test_failure_does_not_block_later_entries(self, transport, clock):
        publisher = StreamPublisher(transport, STREAM, clock=clock)
        bad = await publisher.publish([_incident(1)])
        good = await publisher.publish([_incident(2)])

        async def handler(entry):
            if entry.entry_id == bad:
                raise RuntimeError("store hiccup")

        consumer = _consumer(transport, handler)
        await consumer.run_until_idle()

        assert transport.acked == [good]
        assert transport.pending_ids(STREAM, GROUP) == [bad]

    @pytest.mark.asyncio
    async def test_failing_entry_is_given_up_after_max_attempts(self, transport, clock):
        publisher = StreamPublisher(transport, STREAM, clock=clock)
        bad = await publisher.publish([_incident(1)])
        good = await publisher.publish([_incident(2)])
        seen = []

        async def handler(entry):
            seen.append(entry.entry_id)
            if entry.entry_id == bad:
                raise RuntimeError("value out of range")

        consumer = _consumer(transport, handler, read_count=1, max_delivery_attempts=3)
        await consumer.start()
        for _ in range(10):
            await consumer.poll_once()

        # The new entry is read between retries of the failing one
        assert seen.index(good) < len(seen) - 1
        assert seen.count(bad) == 3
        assert transport.acked == [good, bad]
        assert transport.pending_ids(STREAM, GROUP) == []
        assert consumer.stats.entries_given_up == 1
        assert consumer.stats.failed_entries == 2

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried_without_limit(self, transport, clock):
        from storage.repositories import ConnectionError as StoreConnectionError

        publisher = StreamPublisher(transport, STREAM, clock=clock)
        bad = await publisher.publish([_incident(1)])
        good = await publisher.publish([_incident(2)])
        attempts = []

        async def handler(entry):
            if entry.entry_id == bad:
                attempts.append(entry.entry_id)
                raise StoreConnectionError("IncidentRepository", "upsert", "database is locked")

        consumer = _consumer(transport, handler, read_count=1, max_delivery_attempts=2)
        await consumer.start()
        for _ in range(12):
            await consumer.poll_once()

        assert len(attempts) > 2
        assert transport.acked == [good]
        assert transport.pending_ids(STREAM, GROUP) == [bad]
        assert consumer.stats.entries_given_up == 0

    @pytest.mark.asyncio
    async def test_claims_entries_abandoned_by_another_consumer(self, transport, clock):
        publisher = StreamPublisher(transport, STREAM, clock=clock)
        entry_id = await publisher.publish([_incident(1)])

        dead = _consumer(transport, AsyncMock(side_effect=RuntimeError("crash")), name="processor-dead")
        await dead.run_until_idle()

        handler = AsyncMock()
        survivor = _consumer(transport, handler, name="processor-live", claim_idle_ms=1)
        handled = await survivor.run_until_idle()

        assert handled == 1
        assert survivor.stats.entries_claimed == 1
        assert transport.acked == [entry_id]

    @pytest.mark.asyncio
    async def test_run_stops_on_shutdown(self, transport):
        shutdown = asyncio.Event()

        async def handler(entry):
            shutdown.set()

        await transport.append(STREAM, {"payload": "[]"})
        consumer = _consumer(transport, handler)

        await asyncio.wait_for(consumer.run(shutdown), timeout=5)

        assert consumer.state == ConsumerState.STOPPED
        assert consumer.stats.entries_acked == 1

    @pytest.mark.asyncio
    async def test_read_error_is_counted_not_raised(self, transport):
        consumer = _consumer(transport, AsyncMock())
        await consumer.start()
        transport.read_group = AsyncMock(side_effect=StreamError("gone", operation="read_group"))

        assert await consumer.poll_once() == 0
        assert consumer.stats.read_errors == 1


# =============================================================
# TEST: Redis transport error mapping
# =============================================================

class TestRedisStreamTransport:

    @pytest.mark.asyncio
    async def test_existing_group_is_not_an_error(self):
        client = AsyncMock()
        client.xgroup_create.side_effect = ResponseError("BUSYGROUP Consumer Group name already exists")
        transport = RedisStreamTransport(client)

        assert await transport.ensure_group(STREAM, GROUP) is False

    @pytest.mark.asyncio
    async def test_redis_failure_becomes_stream_error(self):
        client = AsyncMock()
        client.xadd.side_effect = RedisConnectionError("refused")
        transport = RedisStreamTransport(client)

        with pytest.raises(StreamError):
            await transport.append(STREAM, {"payload": "[]"})

    @pytest.mark.asyncio
    async def test_read_group_unpacks_response(self):
        client = AsyncMock()
        client.xreadgroup.return_value = [
            [STREAM, [("1-0", {"payload": "[]", "source": "real"})]]
        ]
        transport = RedisStreamTransport(client)

        entries = await transport.read_group(STREAM, GROUP, "c1")

        assert len(entries) == 1
        assert entries[0].entry_id == "1-0"
        assert entries[0].fields["source"] == "real"

    @pytest.mark.asyncio
    async def test_claim_idle_unpacks_response(self):
        client = AsyncMock()
        client.xautoclaim.return_value = ["0-0", [("2-0", {"payload": "[]"})], []]
        transport = RedisStreamTransport(client)

        entries = await transport.claim_idle(STREAM, GROUP, "c1", 60000)

        assert [e.entry_id for e in entries] == ["2-0"]
