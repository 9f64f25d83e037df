"""
Streaming - Consumer-Group Reader.

============================================================
RESPONSIBILITY
============================================================
Reads the stream as one member of a consumer group and hands
each entry to the processor, acknowledging it only after the
write attempt has completed.

============================================================
STATE MACHINE
============================================================
INITIALIZING -> READING <-> IDLE -> ... -> STOPPED

- INITIALIZING: ensure the group exists (creating the stream)
- READING: entries were returned and are being processed
- IDLE: the bounded block elapsed with nothing to read
- STOPPED: stop was requested; reached at the next poll boundary

============================================================
DELIVERY
============================================================
- At-least-once: an entry is acknowledged after its handler
  returns, never before
- On start, this consumer's own pending entries (delivered but
  never acknowledged, e.g. before a crash) are re-read first
- Optionally, entries pending on dead consumers for longer than
  claim_idle_ms are claimed and processed
- Handler raises MalformedRecord: the entry can never succeed;
  it is logged and acknowledged
- Handler raises anything else: the entry stays pending and is
  retried after a backoff, alternating with reads of new entries
  so one stuck entry never blocks the rest of the stream
- After max_delivery_attempts failures the entry is treated as
  poison and acknowledged; errors flagged is_transient (store
  unreachable) are retried without limit

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.constants import NEW_ENTRIES_ID, PENDING_ENTRIES_ID
from core.exceptions import MalformedRecord, StreamError
from streaming.transport import StreamEntry, StreamTransport


EntryHandler = Callable[[StreamEntry], Awaitable[Any]]


class ConsumerState(str, Enum):
    INITIALIZING = "initializing"
    READING = "reading"
    IDLE = "idle"
    STOPPED = "stopped"


@dataclass
class ConsumerStats:
    """Counters for one consumer process."""

    entries_processed: int = 0
    entries_acked: int = 0
    poison_entries: int = 0
    failed_entries: int = 0
    entries_given_up: int = 0
    entries_claimed: int = 0
    read_errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


class StreamConsumer:
    """
    Consumer-group reader.

    The handler does the actual work (decode, dedup, write); this
    class owns delivery: reading, acknowledging and redelivery.
    """

    def __init__(
        self,
        transport: StreamTransport,
        handler: EntryHandler,
        stream_key: str,
        group: str,
        consumer_name: str,
        read_count: int = 10,
        block_ms: int = 2000,
        claim_idle_ms: int = 0,
        error_backoff_seconds: float = 1.0,
        max_delivery_attempts: int = 5,
    ) -> None:
        self._transport = transport
        self._handler = handler
        self._stream_key = stream_key
        self._group = group
        self._consumer_name = consumer_name
        self._read_count = read_count
        self._block_ms = block_ms
        self._claim_idle_ms = claim_idle_ms
        self._error_backoff_seconds = error_backoff_seconds
        self._max_delivery_attempts = max(1, max_delivery_attempts)

        self._state = ConsumerState.INITIALIZING
        self._stop = asyncio.Event()
        self._draining_pending = True
        self._pending_cursor = PENDING_ENTRIES_ID
        # Failed entries are retried on every other poll
        self._retry_due = False
        self._retry_turn = False
        self._attempts: Dict[str, int] = {}
        self._stats = ConsumerStats()
        self._logger = logging.getLogger("stream.consumer")

    @property
    def state(self) -> ConsumerState:
        return self._state

    @property
    def stats(self) -> ConsumerStats:
        return self._stats

    @property
    def consumer_name(self) -> str:
        return self._consumer_name

    # =========================================================
    # LIFECYCLE
    # =========================================================

    async def start(self) -> None:
        """
        Ensure the consumer group exists.

        Raises:
            StreamError: If the stream is unreachable
        """
        self._state = ConsumerState.INITIALIZING
        created = await self._transport.ensure_group(self._stream_key, self._group)
        if not created:
            self._logger.info(f"Consumer group {self._group} already exists")
        self._draining_pending = True
        self._pending_cursor = PENDING_ENTRIES_ID
        self._retry_due = False
        self._logger.info(
            f"Consumer {self._consumer_name} joined group {self._group} on {self._stream_key}"
        )

    def stop(self) -> None:
        """Request a stop; honored at the next poll boundary."""
        self._stop.set()

    async def run(self, shutdown: Optional[asyncio.Event] = None) -> None:
        """
        Read and process entries until stopped.

        Args:
            shutdown: Shared shutdown event; the consumer's own stop
                event is used when omitted
        """
        if shutdown is not None:
            self._stop = shutdown

        await self.start()
        while not self._stop.is_set():
            await self.poll_once()

        self._state = ConsumerState.STOPPED
        self._logger.info(f"Consumer stopped: {self._stats.to_dict()}")

    async def run_until_idle(self) -> int:
        """
        Drain pending entries, then process new ones until a read
        comes back empty. Used for single-shot runs.

        Returns:
            Number of entries handled
        """
        await self.start()
        handled = 0
        while not self._stop.is_set():
            failed_before = self._stats.failed_entries
            count = await self.poll_once()
            handled += count
            if self._stats.failed_entries > failed_before:
                # Left pending for the next run
                break
            if count == 0 and not self._draining_pending and self._state == ConsumerState.IDLE:
                break
        self._state = ConsumerState.STOPPED
        return handled

    # =========================================================
    # POLLING
    # =========================================================

    async def poll_once(self) -> int:
        """
        One poll: read a batch and process it.

        Returns:
            Number of entries handled in this poll
        """
        retrying = False
        if self._draining_pending:
            entry_id, block_ms = self._pending_cursor, None
        elif self._retry_due and self._retry_turn:
            entry_id, block_ms = PENDING_ENTRIES_ID, None
            retrying = True
        else:
            entry_id, block_ms = NEW_ENTRIES_ID, self._block_ms
        if not self._draining_pending and self._retry_due:
            self._retry_turn = not self._retry_turn

        try:
            entries = await self._transport.read_group(
                self._stream_key,
                self._group,
                self._consumer_name,
                entry_id=entry_id,
                count=self._read_count,
                block_ms=block_ms,
            )
        except StreamError as e:
            self._stats.read_errors += 1
            self._state = ConsumerState.IDLE
            self._logger.error(f"Stream read failed: {e}")
            await self._backoff()
            return 0

        if self._draining_pending:
            if not entries:
                self._draining_pending = False
                self._pending_cursor = PENDING_ENTRIES_ID
                return 0
            self._pending_cursor = entries[-1].entry_id
            self._logger.info(f"Re-processing {len(entries)} pending entries")
        elif retrying:
            if not entries:
                self._retry_due = False
                self._state = ConsumerState.IDLE
                return 0
            self._logger.info(f"Retrying {len(entries)} pending entries")

        if not entries:
            self._state = ConsumerState.IDLE
            if self._claim_idle_ms > 0:
                return await self._claim_abandoned()
            return 0

        self._state = ConsumerState.READING
        return await self._process_entries(entries)

    async def _claim_abandoned(self) -> int:
        try:
            entries = await self._transport.claim_idle(
                self._stream_key,
                self._group,
                self._consumer_name,
                self._claim_idle_ms,
                count=self._read_count,
            )
        except StreamError as e:
            self._logger.error(f"Claiming idle entries failed: {e}")
            return 0

        if not entries:
            return 0
        self._stats.entries_claimed += len(entries)
        self._logger.info(f"Claimed {len(entries)} entries idle for >= {self._claim_idle_ms}ms")
        self._state = ConsumerState.READING
        return await self._process_entries(entries)

    async def _process_entries(self, entries: List[StreamEntry]) -> int:
        failed = False
        for entry in entries:
            if not await self._process_entry(entry):
                failed = True

        if failed:
            # New entries are read next, then the pending list is retried
            self._retry_due = True
            self._retry_turn = False
            await self._backoff()
        return len(entries)

    async def _process_entry(self, entry: StreamEntry) -> bool:
        """
        Hand one entry to the handler and acknowledge it.

        Returns:
            False if the entry was left pending for retry
        """
        self._stats.entries_processed += 1
        try:
            await self._handler(entry)
        except MalformedRecord as e:
            self._stats.poison_entries += 1
            self._logger.warning(
                f"Discarding unreadable entry {entry.entry_id}: {e.message} {e.context}"
            )
        except Exception as e:
            if getattr(e, "is_transient", False):
                self._stats.failed_entries += 1
                self._logger.error(
                    f"Processing entry {entry.entry_id} failed, leaving it pending: {e}"
                )
                return False

            attempts = self._attempts.get(entry.entry_id, 0) + 1
            if attempts < self._max_delivery_attempts:
                self._attempts[entry.entry_id] = attempts
                self._stats.failed_entries += 1
                self._logger.error(
                    f"Processing entry {entry.entry_id} failed "
                    f"(attempt {attempts}/{self._max_delivery_attempts}), leaving it pending: {e}"
                )
                return False

            self._stats.entries_given_up += 1
            self._logger.error(
                f"Giving up on entry {entry.entry_id} after {attempts} attempts: {e}"
            )

        self._attempts.pop(entry.entry_id, None)
        await self._ack(entry)
        return True

    async def _ack(self, entry: StreamEntry) -> None:
        try:
            await self._transport.ack(self._stream_key, self._group, [entry.entry_id])
            self._stats.entries_acked += 1
        except StreamError as e:
            # Still pending; it will be redelivered and rewritten idempotently
            self._logger.error(f"Ack of {entry.entry_id} failed: {e}")

    async def _backoff(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self._error_backoff_seconds)
        except asyncio.TimeoutError:
            pass

    def get_health_status(self) -> Dict[str, Any]:
        return {
            "consumer": self._consumer_name,
            "group": self._group,
            "stream": self._stream_key,
            "state": self._state.value,
            "stats": self._stats.to_dict(),
        }
