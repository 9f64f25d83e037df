"""
Streaming Package.

The durable stream between collectors and processors.

Modules:
- transport: StreamTransport contract and its Redis Streams implementation
- publisher: Appends record batches as stream entries
- consumer: Consumer-group reader with at-least-once delivery
"""

from streaming.consumer import ConsumerState, ConsumerStats, StreamConsumer
from streaming.publisher import StreamPublisher, encode_payload
from streaming.transport import RedisStreamTransport, StreamEntry, StreamTransport


__all__ = [
    "StreamTransport",
    "RedisStreamTransport",
    "StreamEntry",
    "StreamPublisher",
    "encode_payload",
    "StreamConsumer",
    "ConsumerState",
    "ConsumerStats",
]
