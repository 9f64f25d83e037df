"""
Data Processing Package.

This package persists records consumed from the stream.

Main modules:
- writer: entry decoding and dedup/upsert writes
"""

from .writer import (
    STRATEGY_CHECK_THEN_INSERT,
    STRATEGY_UPSERT,
    ProcessingResult,
    RecordWriter,
    WriteOutcome,
    decode_entry,
)

__all__ = [
    "ProcessingResult",
    "RecordWriter",
    "WriteOutcome",
    "decode_entry",
    "STRATEGY_UPSERT",
    "STRATEGY_CHECK_THEN_INSERT",
]
