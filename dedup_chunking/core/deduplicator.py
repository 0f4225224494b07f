"""
Streaming chunker: validates a call, drives cut-point detection across one
source region and writes a record for every chunk boundary that is safe to
finalize.

A call is self-contained. The only state that survives between calls of one
logical stream is the unconsumed tail of the source region, and that tail is
owned by the caller (see ``dedup_chunking.core.streaming.RemainderBuffer``).

Boundary safety: on a non-final call, a chunk that would end exactly at the end
of the region is not emitted, because more data could have moved its boundary.
Those bytes are reported as unconsumed and must be resubmitted, followed by
newly read data, on the next call. A cut found strictly inside the region only
depends on bytes already seen, so it is final.

Examples:
    One-shot chunking of an in-memory buffer:
    ```python
    target = bytearray(required_capacity(16384, len(data)))
    result = process(65536, 16384, 524288, data, 0, len(data), target, 0, True)
    for record in result.records(target):
        print(record.hexdigest, record.length)
    ```

    Scheduling on a worker pool:
    ```python
    with Deduplicator(ChunkerConfig.recommended()) as deduplicator:
        future = deduplicator.deduplicate(data, 0, len(data), target, 0, True)
        result = future.result()
    ```
"""

import logging
import os
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Union

from dedup_chunking.core.config import ChunkerConfig, check_integer
from dedup_chunking.core.cut import find_cut
from dedup_chunking.core.errors import (
    ArgumentRangeError,
    ArgumentTypeError,
    CapacityError,
    DeduplicationError,
    InsufficientLookaheadError,
    InvariantViolation,
)
from dedup_chunking.core.records import (
    RECORD_SIZE,
    ChunkRecord,
    digest_chunk,
    iter_records,
    required_capacity,
    write_record,
)

logger = logging.getLogger(__name__)

Flags = Union[bool, int]


@dataclass(frozen=True)
class ProcessResult:
    """
    Progress reported by one call.

    ``source_offset`` and ``target_offset`` are the end positions within the
    caller's buffers; ``consumed`` and ``written`` are the byte counts relative
    to the offsets the call started at.
    """

    source_offset: int
    target_offset: int
    consumed: int
    written: int

    @property
    def record_count(self) -> int:
        return self.written // RECORD_SIZE

    def records(self, target, base_offset: Optional[int] = None) -> Iterator[ChunkRecord]:
        """Decode the records this call wrote into ``target``."""
        return iter_records(
            target,
            self.target_offset - self.written,
            self.target_offset,
            base_offset=base_offset,
        )


@dataclass(frozen=True)
class _Job:
    """A fully validated call, ready to run."""

    config: ChunkerConfig
    source: memoryview
    source_offset: int
    source_length: int
    target: memoryview
    target_offset: int
    target_length: int
    final: bool


def _as_buffer(key: str, value: Any, writable: bool = False) -> memoryview:
    try:
        view = memoryview(value)
    except TypeError:
        raise ArgumentTypeError(f"{key} must be a buffer", type(value).__name__) from None
    if writable and view.readonly:
        raise ArgumentTypeError(f"{key} must be a writable buffer", type(value).__name__)
    if view.format != "B" or view.ndim != 1:
        if not view.c_contiguous:
            raise ArgumentTypeError(f"{key} must be a contiguous buffer")
        view = view.cast("B")
    return view


def _check_final(final: Flags) -> bool:
    if isinstance(final, bool):
        return final
    flags = check_integer("flags", final)
    if flags not in (0, 1):
        raise ArgumentRangeError("flags has an unknown flag", str(flags))
    return flags == 1


def _prepare(
    config: ChunkerConfig,
    source,
    source_offset: int,
    source_size: int,
    target,
    target_offset: int,
    final: Flags,
) -> _Job:
    source_view = _as_buffer("source", source)
    source_offset = check_integer("sourceOffset", source_offset)
    source_size = check_integer("sourceSize", source_size)
    source_length = source_offset + source_size
    if source_length > source_view.nbytes:
        raise CapacityError(
            "source overflow", f"{source_length} > {source_view.nbytes}"
        )

    target_view = _as_buffer("target", target, writable=True)
    target_offset = check_integer("targetOffset", target_offset)
    target_length = target_offset + required_capacity(config.minimum, source_size)
    if target_length > target_view.nbytes:
        raise CapacityError(
            "target overflow", f"{target_length} > {target_view.nbytes}"
        )

    is_final = _check_final(final)
    if not is_final and source_size <= config.maximum:
        raise InsufficientLookaheadError(
            "sourceSize <= maximum", f"{source_size} <= {config.maximum}"
        )

    return _Job(
        config=config,
        source=source_view,
        source_offset=source_offset,
        source_length=source_length,
        target=target_view,
        target_offset=target_offset,
        target_length=target_length,
        final=is_final,
    )


def _run(job: _Job) -> ProcessResult:
    """Chunk a validated region. Never raises except on an internal defect."""
    config = job.config
    average = config.average
    minimum = config.minimum
    maximum = config.maximum
    mask_high = config.mask_high
    mask_low = config.mask_low
    source = job.source
    target = job.target
    source_length = job.source_length
    target_length = job.target_length
    final = job.final

    source_offset = job.source_offset
    target_offset = job.target_offset

    while source_offset < source_length:
        chunk_size = find_cut(
            average,
            minimum,
            maximum,
            mask_high,
            mask_low,
            source,
            source_offset,
            source_length - source_offset,
        )
        if chunk_size <= 0:
            raise InvariantViolation("chunkSize <= 0", str(chunk_size))
        if chunk_size > maximum:
            raise InvariantViolation("chunkSize > maximum", f"{chunk_size} > {maximum}")
        if source_offset + chunk_size > source_length:
            raise InvariantViolation(
                "sourceOffset + chunkSize > sourceLength",
                f"{source_offset} + {chunk_size} > {source_length}",
            )
        if not final and source_offset + chunk_size == source_length:
            # Not enough lookahead to know this boundary is stable.
            break
        if not final and chunk_size < minimum:
            raise InvariantViolation(
                "chunkSize < minimum && flags === 0", f"{chunk_size} < {minimum}"
            )
        if target_offset + RECORD_SIZE > target_length:
            raise InvariantViolation("target overflow", f"at {target_offset}")

        digest = digest_chunk(source[source_offset:source_offset + chunk_size])
        target_offset = write_record(target, target_offset, digest, chunk_size)
        source_offset += chunk_size

    return ProcessResult(
        source_offset=source_offset,
        target_offset=target_offset,
        consumed=source_offset - job.source_offset,
        written=target_offset - job.target_offset,
    )


def process(
    average: int,
    minimum: int,
    maximum: int,
    source,
    source_offset: int,
    source_size: int,
    target,
    target_offset: int,
    final: Flags,
) -> ProcessResult:
    """
    Chunk ``source[source_offset:source_offset + source_size]`` synchronously.

    Args:
        average: Target average chunk size
        minimum: Minimum chunk size
        maximum: Maximum chunk size
        source: Bytes-like object holding the region
        source_offset: Start of the region
        source_size: Length of the region
        target: Writable bytes-like object receiving 36-byte records
        target_offset: Where the first record is written
        final: True when this region ends the logical stream

    Returns:
        ProcessResult with end offsets and consumed/written byte counts

    Raises:
        DeduplicationError: subclass naming the violated precondition; raised
            before anything is written
    """
    config = ChunkerConfig(average=average, minimum=minimum, maximum=maximum)
    job = _prepare(config, source, source_offset, source_size, target, target_offset, final)
    return _run(job)


_default_executor: Optional[ThreadPoolExecutor] = None
_default_executor_lock = threading.Lock()


def get_default_executor() -> ThreadPoolExecutor:
    """Shared worker pool used when a call does not supply its own executor."""
    global _default_executor
    with _default_executor_lock:
        if _default_executor is None:
            _default_executor = ThreadPoolExecutor(
                max_workers=min(32, (os.cpu_count() or 1) + 4),
                thread_name_prefix="dedup",
            )
        return _default_executor


def _schedule(
    job: _Job,
    executor: Optional[Executor],
    callback: Optional[Callable[[Future], Any]],
) -> Future:
    future = (executor or get_default_executor()).submit(_run, job)
    if callback is not None:
        future.add_done_callback(callback)
    return future


def deduplicate(
    average: int,
    minimum: int,
    maximum: int,
    source,
    source_offset: int,
    source_size: int,
    target,
    target_offset: int,
    final: Flags,
    callback: Optional[Callable[[Future], Any]] = None,
    executor: Optional[Executor] = None,
) -> Future:
    """
    Validate now, chunk on a worker pool.

    Precondition faults are raised immediately from this call. The returned
    future resolves exactly once with a ``ProcessResult``; ``callback``, when
    given, is attached with ``add_done_callback`` and so also runs exactly once.
    The executor must share memory with the caller (threads), since records are
    written into ``target`` in place.
    """
    config = ChunkerConfig(average=average, minimum=minimum, maximum=maximum)
    job = _prepare(config, source, source_offset, source_size, target, target_offset, final)
    return _schedule(job, executor, callback)


class Deduplicator:
    """
    A validated configuration bound to a worker pool.

    Use one instance for any number of independent streams; it holds no
    per-stream state.
    """

    def __init__(
        self,
        config: Optional[ChunkerConfig] = None,
        executor: Optional[Executor] = None,
        max_workers: Optional[int] = None,
    ):
        """
        Initialize deduplicator.

        Args:
            config: Chunk size configuration (recommended preset if None)
            executor: Executor to schedule calls on (shared pool if None)
            max_workers: Create a private thread pool of this size instead
        """
        self.config = config or ChunkerConfig.recommended()
        self._owns_executor = executor is None and max_workers is not None
        if self._owns_executor:
            executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dedup")
        self.executor = executor
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def required_capacity(self, source_size: int) -> int:
        return required_capacity(self.config.minimum, source_size)

    def _prepare(self, source, source_offset, source_size, target, target_offset, final) -> _Job:
        try:
            return _prepare(self.config, source, source_offset, source_size, target, target_offset, final)
        except DeduplicationError as e:
            self.logger.debug(f"Rejected call: {e}")
            raise

    def process(
        self,
        source,
        source_offset: int,
        source_size: int,
        target,
        target_offset: int,
        final: Flags,
    ) -> ProcessResult:
        """Chunk one region synchronously (see ``process``)."""
        job = self._prepare(source, source_offset, source_size, target, target_offset, final)
        result = _run(job)
        self.logger.debug(
            f"Processed {result.consumed} of {source_size} bytes into "
            f"{result.record_count} records (final={job.final})"
        )
        return result

    def deduplicate(
        self,
        source,
        source_offset: int,
        source_size: int,
        target,
        target_offset: int,
        final: Flags,
        callback: Optional[Callable[[Future], Any]] = None,
    ) -> Future:
        """Validate now, chunk on this instance's executor (see ``deduplicate``)."""
        job = self._prepare(source, source_offset, source_size, target, target_offset, final)
        return _schedule(job, self.executor, callback)

    def close(self) -> None:
        """Shut down the private pool, if this instance created one."""
        if self._owns_executor and self.executor is not None:
            self.executor.shutdown(wait=True)
            self.executor = None

    def __enter__(self) -> "Deduplicator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        c = self.config
        return f"{self.__class__.__name__}(average={c.average}, minimum={c.minimum}, maximum={c.maximum})"
