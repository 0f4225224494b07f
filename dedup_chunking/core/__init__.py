"""
Core components for content-defined chunking.

This package contains the fundamental building blocks:
- Gear table and cut-point detection
- Configuration, limits and the error taxonomy
- Chunk record encoding
- The streaming chunker and its stream drivers
"""

from dedup_chunking.core.config import LIMITS, ChunkerConfig, ChunkingLimits
from dedup_chunking.core.cut import center_size, find_cut
from dedup_chunking.core.deduplicator import (
    Deduplicator,
    ProcessResult,
    deduplicate,
    process,
)
from dedup_chunking.core.errors import (
    ArgumentRangeError,
    ArgumentTypeError,
    CapacityError,
    DeduplicationError,
    InsufficientLookaheadError,
    InvariantViolation,
    RecordFormatError,
    RelationError,
    StreamStateError,
)
from dedup_chunking.core.records import (
    RECORD_SIZE,
    ChunkRecord,
    iter_records,
    required_capacity,
    target_size,
    write_record,
)

__all__ = [
    "LIMITS",
    "ChunkerConfig",
    "ChunkingLimits",
    "center_size",
    "find_cut",
    "Deduplicator",
    "ProcessResult",
    "deduplicate",
    "process",
    "ArgumentRangeError",
    "ArgumentTypeError",
    "CapacityError",
    "DeduplicationError",
    "InsufficientLookaheadError",
    "InvariantViolation",
    "RecordFormatError",
    "RelationError",
    "StreamStateError",
    "RECORD_SIZE",
    "ChunkRecord",
    "iter_records",
    "required_capacity",
    "target_size",
    "write_record",
]
