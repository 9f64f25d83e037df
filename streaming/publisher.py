"""
Streaming - Stream Publisher.

Serializes one batch of canonical records into a single stream
entry:

    payload       JSON envelope {"kind": ..., "records": [...]}
    published_at  epoch seconds
    source        data source mode (real, sim, replay)

An empty batch publishes nothing. Appends are independent; a
failed append does not affect earlier or later ones.
"""

import json
import logging
from typing import Any, Optional, Sequence

from core.clock import ClockProtocol, SystemClock
from core.constants import (
    DEFAULT_STREAM_KEY,
    FIELD_PAYLOAD,
    FIELD_PUBLISHED_AT,
    FIELD_SOURCE,
)
from core.exceptions import StreamError
from streaming.transport import StreamTransport


def encode_payload(kind: str, records: Sequence[Any]) -> str:
    """Encode a batch of canonical records as the entry payload."""
    return json.dumps(
        {"kind": kind, "records": [record.to_payload() for record in records]},
        ensure_ascii=False,
    )


class StreamPublisher:
    """Appends record batches to the stream."""

    def __init__(
        self,
        transport: StreamTransport,
        stream_key: str = DEFAULT_STREAM_KEY,
        source: str = "real",
        clock: Optional[ClockProtocol] = None,
        max_length: Optional[int] = None,
    ) -> None:
        self._transport = transport
        self._stream_key = stream_key
        self._source = source
        self._clock = clock or SystemClock()
        self._max_length = max_length
        self._logger = logging.getLogger("stream.publisher")

    @property
    def stream_key(self) -> str:
        return self._stream_key

    async def publish(
        self,
        records: Sequence[Any],
        kind: Optional[str] = None,
    ) -> Optional[str]:
        """
        Publish a batch as one entry.

        Args:
            records: Canonical records (all of one kind)
            kind: Record kind; taken from the first record if omitted

        Returns:
            The new entry id, or None for an empty batch

        Raises:
            StreamError: If the append fails
        """
        if not records:
            return None

        kind = kind or records[0].kind
        try:
            payload = encode_payload(kind, records)
        except (TypeError, ValueError) as e:
            raise StreamError(
                f"Cannot serialize {kind} batch: {e}", operation="publish", cause=e
            ) from e

        fields = {
            FIELD_PAYLOAD: payload,
            FIELD_PUBLISHED_AT: str(self._clock.epoch_seconds()),
            FIELD_SOURCE: self._source,
        }
        entry_id = await self._transport.append(
            self._stream_key, fields, max_length=self._max_length
        )

        self._logger.info(
            f"Published {len(records)} {kind} records to {self._stream_key} "
            f"(ID: {entry_id}, source: {self._source})"
        )
        return entry_id
