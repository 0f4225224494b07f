"""
Stream drivers built on the chunking core.

The core is stateless across calls; these drivers own the carry-over state a
long or unbounded stream needs:

- ``RemainderBuffer`` is a fixed read buffer whose unconsumed tail is moved to
  the front after every call, ready to be followed by newly read bytes.
- ``dedupe_file`` reads a file (or any binary reader) through a
  ``RemainderBuffer`` and yields chunk records with their stream offsets.
- ``StreamingDeduplicator`` accepts data pushed in pieces of any size.
- ``DistributedDeduplicator`` runs many independent streams on a worker pool.

Every driver marks exactly one call per stream as final and checks that the
record lengths add up to the bytes read.
"""

import logging
import os
import time
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from dedup_chunking.core.config import ChunkerConfig
from dedup_chunking.core.deduplicator import Deduplicator
from dedup_chunking.core.errors import (
    ArgumentRangeError,
    InvariantViolation,
    StreamStateError,
)
from dedup_chunking.core.records import ChunkRecord, required_capacity

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 4 * 1024 * 1024


class RemainderBuffer:
    """
    Read buffer that carries unconsumed bytes from one call to the next.

    Invariant: after ``compact`` the buffer holds at most ``maximum`` bytes,
    because only the last, not yet stable chunk of a non-final call is ever
    left unconsumed. ``capacity`` must exceed ``maximum`` so that a full buffer
    always satisfies the lookahead precondition of a non-final call.
    """

    def __init__(self, capacity: int, maximum: int):
        if capacity <= maximum:
            raise ArgumentRangeError(
                "buffer capacity <= maximum", f"{capacity} <= {maximum}"
            )
        self.capacity = capacity
        self.maximum = maximum
        self.buffer = bytearray(capacity)
        self.size = 0

    @property
    def free(self) -> int:
        return self.capacity - self.size

    def readinto(self, reader) -> Tuple[int, bool]:
        """
        Fill the free space from ``reader``.

        Short reads are retried until the buffer is full or the reader is
        exhausted.

        Returns:
            (bytes_read, eof) where ``eof`` is True once the reader returned no data
        """
        view = memoryview(self.buffer)
        bytes_read = 0
        try:
            while self.size < self.capacity:
                if hasattr(reader, "readinto"):
                    count = reader.readinto(view[self.size:])
                else:
                    data = reader.read(self.capacity - self.size)
                    count = None if data is None else len(data)
                    if count:
                        view[self.size:self.size + count] = data
                if count is None:
                    # Non-blocking reader with no data ready; this is not EOF.
                    raise StreamStateError("reader returned no data without EOF")
                if count == 0:
                    return bytes_read, True
                self.size += count
                bytes_read += count
        finally:
            view.release()
        return bytes_read, False

    def compact(self, consumed: int) -> int:
        """Drop ``consumed`` bytes from the front; return the remainder size."""
        if consumed > self.size:
            raise InvariantViolation("consumed > buffered", f"{consumed} > {self.size}")
        remaining = self.size - consumed
        if remaining > self.maximum:
            raise InvariantViolation("remainder > maximum", f"{remaining} > {self.maximum}")
        if remaining:
            self.buffer[0:remaining] = self.buffer[consumed:self.size]
        self.size = remaining
        return remaining


def dedupe_file(
    source: Union[str, Path, BinaryIO],
    config: Optional[ChunkerConfig] = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> Iterator[ChunkRecord]:
    """
    Chunk a file and yield its records in order.

    Args:
        source: Path to a file, or an open binary reader
        config: Chunk size configuration (recommended preset if None)
        buffer_size: Read buffer size, must exceed ``config.maximum``

    Yields:
        ChunkRecord tagged with the chunk's offset in the stream
    """
    config = config or ChunkerConfig.recommended()
    if isinstance(source, (str, Path)):
        with open(source, "rb") as reader:
            yield from _dedupe_reader(reader, config, buffer_size, str(source))
    else:
        yield from _dedupe_reader(source, config, buffer_size, getattr(source, "name", "stream"))


def _dedupe_reader(
    reader: BinaryIO,
    config: ChunkerConfig,
    buffer_size: int,
    name: str,
) -> Iterator[ChunkRecord]:
    deduplicator = Deduplicator(config)
    buffer = RemainderBuffer(buffer_size, config.maximum)
    target = bytearray(required_capacity(config.minimum, buffer_size))

    start_time = time.time()
    stream_offset = 0
    chunk_offset = 0
    chunks = 0
    calls = 0
    logger.debug(f"Starting deduplication stream: {name} (buffer {buffer_size:,} bytes)")

    while True:
        bytes_read, eof = buffer.readinto(reader)
        stream_offset += bytes_read
        calls += 1
        result = deduplicator.process(buffer.buffer, 0, buffer.size, target, 0, eof)
        for record in result.records(target, base_offset=chunk_offset):
            chunks += 1
            yield record
        chunk_offset += result.consumed
        remaining = buffer.compact(result.consumed)
        if eof:
            if remaining:
                raise InvariantViolation("final call left bytes unconsumed", str(remaining))
            break

    if chunk_offset != stream_offset:
        raise InvariantViolation(
            "chunk lengths do not add up to bytes read", f"{chunk_offset} != {stream_offset}"
        )
    logger.debug(
        f"Completed deduplication stream: {name}, {chunks} chunks, "
        f"{stream_offset:,} bytes, {calls} calls in {time.time() - start_time:.2f}s"
    )


def dedupe_bytes(data, config: Optional[ChunkerConfig] = None) -> List[ChunkRecord]:
    """Chunk an in-memory buffer in a single final call."""
    deduplicator = Deduplicator(config)
    target = bytearray(deduplicator.required_capacity(len(data)))
    result = deduplicator.process(data, 0, len(data), target, 0, True)
    return list(result.records(target, base_offset=0))


class StreamingDeduplicator:
    """
    Push-style driver for data that arrives in pieces of arbitrary size.

    Pieces are buffered until at least ``block_size`` bytes are pending, then
    chunked with a non-final call; whatever that call leaves unconsumed stays
    pending. ``finish`` chunks the rest with the final call.

    Examples:
        ```python
        streamer = StreamingDeduplicator(ChunkerConfig.recommended())
        for piece in socket_reader():
            for record in streamer.feed(piece):
                store(record)
        for record in streamer.finish():
            store(record)
        ```
    """

    def __init__(self, config: Optional[ChunkerConfig] = None, block_size: Optional[int] = None):
        """
        Initialize streaming deduplicator.

        Args:
            config: Chunk size configuration (recommended preset if None)
            block_size: Pending bytes that trigger a call; must exceed
                ``config.maximum`` (defaults to the larger of 4 MiB and
                ``2 * maximum``)
        """
        self.deduplicator = Deduplicator(config)
        self.config = self.deduplicator.config
        self.block_size = block_size or max(DEFAULT_BUFFER_SIZE, 2 * self.config.maximum)
        if self.block_size <= self.config.maximum:
            raise ArgumentRangeError(
                "block_size <= maximum", f"{self.block_size} <= {self.config.maximum}"
            )
        self._pending = bytearray()
        self._offset = 0
        self._finished = False
        self.bytes_received = 0
        self.calls = 0
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def pending(self) -> int:
        """Bytes received but not yet covered by a record."""
        return len(self._pending)

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, data) -> List[ChunkRecord]:
        """Add data; return the records that became final."""
        if self._finished:
            raise StreamStateError("stream already finished")
        self._pending += data
        self.bytes_received += len(data)
        if len(self._pending) >= self.block_size:
            return self._drain(final=False)
        return []

    def finish(self) -> List[ChunkRecord]:
        """Chunk everything still pending with the final call."""
        if self._finished:
            raise StreamStateError("stream already finished")
        records = self._drain(final=True)
        self._finished = True
        if self._offset != self.bytes_received:
            raise InvariantViolation(
                "chunk lengths do not add up to bytes received",
                f"{self._offset} != {self.bytes_received}",
            )
        return records

    def stream(self, pieces: Iterable[bytes]) -> Iterator[ChunkRecord]:
        """Feed every piece from ``pieces`` and finish, yielding records as they appear."""
        for piece in pieces:
            yield from self.feed(piece)
        yield from self.finish()

    def _drain(self, final: bool) -> List[ChunkRecord]:
        size = len(self._pending)
        target = bytearray(self.deduplicator.required_capacity(size))
        result = self.deduplicator.process(self._pending, 0, size, target, 0, final)
        self.calls += 1
        records = list(result.records(target, base_offset=self._offset))
        # Rebind instead of deleting in place so no buffer export can block a resize.
        self._pending = self._pending[result.consumed:]
        self._offset += result.consumed
        return records


@dataclass
class FileManifest:
    """Records produced for one file."""

    path: str
    size: int
    records: List[ChunkRecord]
    processing_time: float = 0.0

    @property
    def chunk_count(self) -> int:
        return len(self.records)

    @property
    def unique_digests(self) -> int:
        return len({record.digest for record in self.records})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "size": self.size,
            "processing_time": self.processing_time,
            "chunks": [record.to_dict() for record in self.records],
        }


@dataclass
class DeduplicationSummary:
    """How much of a set of streams is made of repeated chunks."""

    total_chunks: int = 0
    unique_chunks: int = 0
    total_bytes: int = 0
    unique_bytes: int = 0

    @property
    def dedup_ratio(self) -> float:
        """Total bytes over unique bytes (1.0 means nothing repeats)."""
        if self.unique_bytes == 0:
            return 1.0
        return self.total_bytes / self.unique_bytes

    @classmethod
    def from_records(cls, records: Iterable[ChunkRecord]) -> "DeduplicationSummary":
        summary = cls()
        seen = set()
        for record in records:
            summary.total_chunks += 1
            summary.total_bytes += record.length
            if record.digest not in seen:
                seen.add(record.digest)
                summary.unique_chunks += 1
                summary.unique_bytes += record.length
        return summary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_chunks": self.total_chunks,
            "unique_chunks": self.unique_chunks,
            "total_bytes": self.total_bytes,
            "unique_bytes": self.unique_bytes,
            "dedup_ratio": self.dedup_ratio,
        }


@dataclass
class DistributedDeduplicationResult:
    """Result from deduplicating multiple files in parallel."""

    total_files: int
    completed_files: int
    failed_files: int
    total_chunks: int
    total_processing_time: float
    total_size_mb: float
    average_throughput_mbps: float
    manifests: Dict[str, FileManifest] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        """Get success rate as percentage."""
        if self.total_files == 0:
            return 100.0
        return (self.completed_files / self.total_files) * 100

    @property
    def summary(self) -> DeduplicationSummary:
        """Chunk-level summary across every completed file."""
        return DeduplicationSummary.from_records(
            record for manifest in self.manifests.values() for record in manifest.records
        )


def build_manifest(
    file_path: Union[str, Path],
    config: ChunkerConfig,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> FileManifest:
    """Chunk one file into a manifest."""
    start_time = time.time()
    records = list(dedupe_file(file_path, config, buffer_size))
    return FileManifest(
        path=str(file_path),
        size=sum(record.length for record in records),
        records=records,
        processing_time=time.time() - start_time,
    )


def _manifest_worker(file_path: str, config_dict: Dict[str, int], buffer_size: int) -> FileManifest:
    """Process pool entry point; arguments must be picklable."""
    return build_manifest(file_path, ChunkerConfig(**config_dict), buffer_size)


class DistributedDeduplicator:
    """
    Deduplicate many files concurrently, one independent stream per file.

    Calls within one file are strictly sequential; files run in parallel.
    """

    def __init__(
        self,
        config: Optional[ChunkerConfig] = None,
        max_workers: Optional[int] = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        """
        Initialize distributed deduplicator.

        Args:
            config: Chunk size configuration (recommended preset if None)
            max_workers: Maximum number of parallel workers (None = auto-detect)
            buffer_size: Read buffer size per stream
        """
        self.config = config or ChunkerConfig.recommended()
        self.max_workers = max_workers or min(32, (os.cpu_count() or 1) + 4)
        self.buffer_size = buffer_size
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def process_files(
        self,
        file_paths: List[Union[str, Path]],
        parallel_mode: str = "thread",  # "thread", "process", or "sequential"
    ) -> DistributedDeduplicationResult:
        """
        Deduplicate multiple files.

        Args:
            file_paths: Files to process
            parallel_mode: Type of parallelization to use

        Returns:
            DistributedDeduplicationResult with per-file manifests and errors
        """
        if parallel_mode not in ("thread", "process", "sequential"):
            raise ValueError(f"Unknown parallel_mode: {parallel_mode}")

        start_time = time.time()
        requested = len(file_paths)
        # Results are keyed by path, so each path is processed once.
        file_paths = list(dict.fromkeys(Path(p) for p in file_paths))
        if len(file_paths) < requested:
            self.logger.debug(f"Skipping {requested - len(file_paths)} repeated file paths")
        manifests: Dict[str, FileManifest] = {}
        errors: Dict[str, str] = {}

        valid_files = []
        total_size = 0
        for file_path in file_paths:
            if file_path.is_file():
                total_size += file_path.stat().st_size
                valid_files.append(file_path)
            else:
                error_msg = f"File not found: {file_path}"
                self.logger.warning(f"⚠️ {error_msg}")
                errors[str(file_path)] = error_msg

        self.logger.info(
            f"🚀 Starting distributed deduplication: {len(valid_files)} files, "
            f"{total_size / (1024 ** 2):.2f} MB"
        )

        def record_success(file_path: Path, manifest: FileManifest) -> None:
            manifests[str(file_path)] = manifest
            self.logger.info(f"✅ Completed {file_path.name}: {manifest.chunk_count} chunks")

        def record_failure(file_path: Path, error: Exception) -> None:
            errors[str(file_path)] = str(error)
            self.logger.error(f"❌ Failed {file_path.name}: {error}")

        if parallel_mode == "sequential":
            for file_path in valid_files:
                try:
                    record_success(file_path, build_manifest(file_path, self.config, self.buffer_size))
                except Exception as e:
                    record_failure(file_path, e)
        else:
            executor_class = ThreadPoolExecutor if parallel_mode == "thread" else ProcessPoolExecutor
            with executor_class(max_workers=self.max_workers) as executor:
                if parallel_mode == "thread":
                    future_to_file = {
                        executor.submit(build_manifest, file_path, self.config, self.buffer_size): file_path
                        for file_path in valid_files
                    }
                else:
                    # Worker processes rebuild the config from plain values.
                    config_dict = {
                        "average": self.config.average,
                        "minimum": self.config.minimum,
                        "maximum": self.config.maximum,
                    }
                    future_to_file = {
                        executor.submit(_manifest_worker, str(file_path), config_dict, self.buffer_size): file_path
                        for file_path in valid_files
                    }

                for future in as_completed(future_to_file):
                    file_path = future_to_file[future]
                    try:
                        record_success(file_path, future.result())
                    except Exception as e:
                        record_failure(file_path, e)

        total_processing_time = time.time() - start_time
        total_size_mb = total_size / (1024 * 1024)
        result = DistributedDeduplicationResult(
            total_files=len(file_paths),
            completed_files=len(manifests),
            failed_files=len(errors),
            total_chunks=sum(m.chunk_count for m in manifests.values()),
            total_processing_time=total_processing_time,
            total_size_mb=total_size_mb,
            average_throughput_mbps=(
                total_size_mb / total_processing_time if total_processing_time > 0 else 0.0
            ),
            manifests=manifests,
            errors=errors,
        )

        self.logger.info(
            f"🏁 Distributed deduplication completed: "
            f"{result.completed_files}/{result.total_files} files, "
            f"{result.total_chunks:,} chunks, "
            f"{result.average_throughput_mbps:.2f} MB/s"
        )
        return result
