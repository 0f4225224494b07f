"""
Dedup Chunking Library

Content-defined chunking for deduplication. A gear rolling hash with
normalized chunking picks chunk boundaries that depend only on nearby
content, so an insertion or deletion shifts at most a few boundaries. Every
chunk is reported as a 36-byte record: its SHA-256 digest followed by its
length as a big-endian 32-bit integer.

Public API Examples:

One call over an in-memory buffer:
    from dedup_chunking import process, required_capacity
    target = bytearray(required_capacity(16384, len(data)))
    result = process(65536, 16384, 524288, data, 0, len(data), target, 0, True)

Asynchronous call:
    from dedup_chunking import deduplicate
    future = deduplicate(65536, 16384, 524288, data, 0, len(data), target, 0, True)
    result = future.result()

Files and streams:
    from dedup_chunking import ChunkerConfig, dedupe_file
    for record in dedupe_file("disk.img", ChunkerConfig.recommended()):
        print(record.hexdigest, record.offset, record.length)

Many files:
    from dedup_chunking import DistributedDeduplicator
    result = DistributedDeduplicator(max_workers=4).process_files(paths)
    print(result.summary.dedup_ratio)
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
from dedup_chunking.core.streaming import (
    DeduplicationSummary,
    DistributedDeduplicationResult,
    DistributedDeduplicator,
    FileManifest,
    RemainderBuffer,
    StreamingDeduplicator,
    dedupe_bytes,
    dedupe_file,
)
from dedup_chunking.utils.validation import RecordValidator, ValidationError

# Import logging functionality for easy access
from dedup_chunking.logging_config import (
    configure_logging,
    LogConfig,
    LogLevel,
    get_logger,
    enable_debug_mode,
    collect_debug_info,
    user_info,
    user_success,
    user_warning,
    user_error,
    debug_operation,
    performance_log,
    metrics_log
)

# Sensible defaults for library use; call configure_logging() to override.
configure_logging(
    level=LogLevel.NORMAL,
    console_output=True,
    file_output=False,
    collect_performance=False,
    collect_metrics=False
)

# Version info
__version__ = "0.1.0"

# Expose main components
__all__ = [
    # Configuration
    "LIMITS",
    "ChunkerConfig",
    "ChunkingLimits",

    # Chunking core
    "center_size",
    "find_cut",
    "Deduplicator",
    "ProcessResult",
    "deduplicate",
    "process",

    # Records
    "RECORD_SIZE",
    "ChunkRecord",
    "iter_records",
    "required_capacity",
    "target_size",
    "write_record",

    # Streams
    "RemainderBuffer",
    "StreamingDeduplicator",
    "DistributedDeduplicator",
    "DistributedDeduplicationResult",
    "DeduplicationSummary",
    "FileManifest",
    "dedupe_bytes",
    "dedupe_file",

    # Validation
    "RecordValidator",
    "ValidationError",

    # Errors
    "ArgumentRangeError",
    "ArgumentTypeError",
    "CapacityError",
    "DeduplicationError",
    "InsufficientLookaheadError",
    "InvariantViolation",
    "RecordFormatError",
    "RelationError",
    "StreamStateError",

    # Logging and debugging
    "configure_logging",
    "LogConfig",
    "LogLevel",
    "get_logger",
    "enable_debug_mode",
    "collect_debug_info",
    "user_info",
    "user_success",
    "user_warning",
    "user_error",
    "debug_operation",
    "performance_log",
    "metrics_log",

    # Version
    "__version__",
]
