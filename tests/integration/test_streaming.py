"""
Integration tests for the stream drivers.

Chunking a stream must not depend on how it is read: any buffer size larger
than the maximum chunk, and any way of splitting pushed data, gives the same
records as one final call over the whole input.
"""

import io
import random

import pytest

from dedup_chunking.core.config import ChunkerConfig
from dedup_chunking.core.deduplicator import process
from dedup_chunking.core.errors import (
    ArgumentRangeError,
    InvariantViolation,
    StreamStateError,
)
from dedup_chunking.core.records import required_capacity
from dedup_chunking.core.streaming import (
    DeduplicationSummary,
    DistributedDeduplicator,
    RemainderBuffer,
    StreamingDeduplicator,
    build_manifest,
    dedupe_bytes,
    dedupe_file,
)
from dedup_chunking.utils.validation import RecordValidator


class TestRemainderBuffer:
    """Test the carry-over read buffer."""

    def test_capacity_must_exceed_maximum(self):
        """A buffer that cannot hold more than one maximal chunk is rejected."""
        with pytest.raises(ArgumentRangeError, match="buffer capacity <= maximum"):
            RemainderBuffer(8192, 8192)

    def test_fill_and_compact(self):
        """Unconsumed bytes move to the front and new data follows them."""
        reader = io.BytesIO(bytes(range(200)) * 100)
        buffer = RemainderBuffer(10000, 8192)

        assert buffer.readinto(reader) == (10000, False)
        assert buffer.size == 10000
        assert buffer.compact(2000) == 8000
        assert bytes(buffer.buffer[:8000]) == (bytes(range(200)) * 100)[2000:10000]
        assert buffer.free == 2000

        assert buffer.readinto(reader) == (2000, False)
        assert bytes(buffer.buffer[:10000]) == (bytes(range(200)) * 100)[2000:12000]

    def test_eof(self):
        """End of input is reported once the reader is exhausted."""
        buffer = RemainderBuffer(10000, 8192)
        assert buffer.readinto(io.BytesIO(b"abc")) == (3, True)
        assert buffer.size == 3

    def test_short_reads_are_retried(self):
        """A reader returning a few bytes at a time still fills the buffer."""

        class Trickle:
            def __init__(self, data):
                self.data = data

            def read(self, size):
                count = min(7, size)
                piece, self.data = self.data[:count], self.data[count:]
                return piece

        buffer = RemainderBuffer(9000, 8192)
        assert buffer.readinto(Trickle(b"z" * 20000)) == (9000, False)

    @pytest.mark.parametrize("method", ["readinto", "read"])
    def test_reader_without_data_is_not_eof(self, method):
        """A non-blocking reader with nothing ready does not end the stream."""

        class NotReady:
            def __init__(self):
                self.calls = 0

            def next_piece(self):
                self.calls += 1
                return b"w" * 100 if self.calls == 1 else None

        reader = NotReady()
        if method == "readinto":
            def readinto(view):
                piece = reader.next_piece()
                if piece is None:
                    return None
                view[:len(piece)] = piece
                return len(piece)
            reader.readinto = readinto
        else:
            reader.read = lambda size: reader.next_piece()

        buffer = RemainderBuffer(10000, 8192)
        with pytest.raises(StreamStateError, match="reader returned no data without EOF"):
            buffer.readinto(reader)
        assert buffer.size == 100

    def test_remainder_above_maximum_is_a_defect(self):
        """Leaving more than one maximal chunk unconsumed is an invariant violation."""
        buffer = RemainderBuffer(10000, 8192)
        buffer.readinto(io.BytesIO(b"q" * 10000))
        with pytest.raises(InvariantViolation, match="remainder > maximum"):
            buffer.compact(100)
        with pytest.raises(InvariantViolation, match="consumed > buffered"):
            buffer.compact(10001)


class TestDedupeFile:
    """Test file chunking through the remainder buffer."""

    @pytest.mark.parametrize("buffer_size", [8193, 9000, 16384, 100000, 1024 * 1024])
    def test_buffer_size_independence(self, small_config, random_data, chunk_once, buffer_size):
        """Every buffer size gives the records of a single final call."""
        expected = chunk_once(small_config, random_data)
        records = list(dedupe_file(io.BytesIO(random_data), small_config, buffer_size))
        assert records == expected

    def test_path_source(self, small_config, random_data, make_file):
        """Files can be given by path."""
        path = make_file("data.bin", random_data)
        records = list(dedupe_file(path, small_config, 20000))
        assert records == list(dedupe_file(str(path), small_config, 20000))
        assert RecordValidator(small_config).validate(random_data, records) == []

    def test_empty_file(self, small_config, make_file):
        """An empty file has no chunks."""
        assert list(dedupe_file(make_file("empty.bin", b""), small_config, 10000)) == []

    def test_file_smaller_than_buffer(self, small_config, random_bytes):
        """A stream shorter than one buffer is chunked by the final call alone."""
        data = random_bytes(5000, seed=5)
        records = list(dedupe_file(io.BytesIO(data), small_config, 10000))
        assert sum(r.length for r in records) == 5000

    def test_buffer_too_small(self, small_config):
        """The read buffer must exceed the maximum chunk size."""
        with pytest.raises(ArgumentRangeError):
            list(dedupe_file(io.BytesIO(b"x"), small_config, small_config.maximum))

    def test_offsets_are_stream_positions(self, small_config, random_data):
        """Offsets run from zero and add up record by record."""
        records = list(dedupe_file(io.BytesIO(random_data), small_config, 12000))
        position = 0
        for record in records:
            assert record.offset == position
            position += record.length
        assert position == len(random_data)

    def test_repeating_content(self, small_config):
        """A run of one byte value is chunked the same with any buffer size."""
        data = b"\x00" * 100000
        first = list(dedupe_file(io.BytesIO(data), small_config, 8193))
        second = list(dedupe_file(io.BytesIO(data), small_config, 50000))
        assert first == second

    def test_dedupe_bytes(self, small_config, random_data, chunk_once):
        """In-memory chunking matches the single-call helper."""
        assert dedupe_bytes(random_data, small_config) == chunk_once(small_config, random_data)


class TestRandomizedStreams:
    """Randomized configurations, offsets and buffer sizes."""

    @pytest.mark.parametrize("seed", range(12))
    def test_random_stream(self, seed, random_bytes, chunk_once):
        rng = random.Random(seed)
        average = 256 + rng.randrange(4096)
        minimum = 64 + rng.randrange(average - 64)
        maximum = max(1024, average + 1, minimum + average) + rng.randrange(average * 8)
        config = ChunkerConfig(average=average, minimum=minimum, maximum=maximum)

        if rng.random() < 0.2:
            data = bytes([rng.randrange(256)]) * rng.randrange(200000)
        else:
            data = random_bytes(rng.randrange(200000), seed=seed)
        buffer_size = max(round(rng.random() * maximum * rng.randrange(1, 9)), maximum + 1)

        expected = chunk_once(config, data)
        records = list(dedupe_file(io.BytesIO(data), config, buffer_size))

        assert records == expected
        assert RecordValidator(config).validate(data, records) == []

    @pytest.mark.parametrize("seed", range(6))
    def test_random_offsets_single_call(self, seed, random_bytes):
        rng = random.Random(100 + seed)
        config = ChunkerConfig.recommended(rng.choice([256, 512, 1024, 2048]))
        source = random_bytes(rng.randrange(1, 60000), seed=seed)
        source_offset = rng.randrange(min(128, len(source)))
        source_size = rng.randrange(len(source) - source_offset)
        target_offset = rng.randrange(1024)
        target = bytearray(target_offset + required_capacity(config.minimum, source_size))

        result = process(config.average, config.minimum, config.maximum,
                         source, source_offset, source_size, target, target_offset, True)

        region = source[source_offset:source_offset + source_size]
        assert result.source_offset == source_offset + source_size
        assert RecordValidator(config).validate(region, list(result.records(target))) == []


class TestStreamingDeduplicator:
    """Test push-style streaming."""

    @pytest.mark.parametrize("piece_size", [1, 1000, 8191, 8193, 50000])
    def test_piece_size_independence(self, small_config, random_data, chunk_once, piece_size):
        """Pushing data in pieces of any size gives the single-call records."""
        data = random_data[:60000] if piece_size == 1 else random_data
        streamer = StreamingDeduplicator(small_config, block_size=10000)
        pieces = (data[i:i + piece_size] for i in range(0, len(data), piece_size))
        assert list(streamer.stream(pieces)) == chunk_once(small_config, data)

    def test_feed_and_finish(self, small_config, random_data):
        """Records appear as blocks fill up and the rest on finish."""
        streamer = StreamingDeduplicator(small_config, block_size=20000)

        assert streamer.feed(random_data[:1000]) == []
        assert streamer.pending == 1000

        records = streamer.feed(random_data[1000:30000])
        assert records
        assert streamer.pending == 30000 - sum(r.length for r in records)
        assert streamer.pending <= small_config.maximum

        records += streamer.finish()
        assert streamer.finished
        assert streamer.pending == 0
        assert sum(r.length for r in records) == 30000

    def test_finish_once(self, small_config):
        """A finished stream accepts nothing more."""
        streamer = StreamingDeduplicator(small_config)
        assert streamer.finish() == []
        with pytest.raises(StreamStateError, match="stream already finished"):
            streamer.finish()
        with pytest.raises(StreamStateError):
            streamer.feed(b"more")

    def test_block_size_must_exceed_maximum(self, small_config):
        """Blocks must be large enough for a non-final call."""
        with pytest.raises(ArgumentRangeError, match="block_size <= maximum"):
            StreamingDeduplicator(small_config, block_size=small_config.maximum)

    def test_default_block_size(self):
        """The default block is at least 4 MiB and more than one maximal chunk."""
        streamer = StreamingDeduplicator()
        assert streamer.block_size >= 4 * 1024 * 1024
        assert streamer.block_size > streamer.config.maximum


class TestDistributedDeduplicator:
    """Test chunking many files concurrently."""

    @pytest.fixture
    def files(self, make_file, random_bytes):
        shared = random_bytes(40000, seed=11)
        return [
            make_file("a.bin", shared),
            make_file("b.bin", b"prefix" + shared),
            make_file("c.bin", random_bytes(30000, seed=12)),
        ]

    @pytest.mark.parametrize("mode", ["sequential", "thread", "process"])
    def test_modes_agree(self, small_config, files, mode):
        """Every parallel mode produces the same manifests."""
        deduplicator = DistributedDeduplicator(small_config, max_workers=2, buffer_size=20000)
        result = deduplicator.process_files(files, parallel_mode=mode)

        assert result.total_files == 3
        assert result.completed_files == 3
        assert result.failed_files == 0
        assert result.success_rate == 100.0
        for path in files:
            manifest = result.manifests[str(path)]
            assert manifest.records == list(dedupe_file(path, small_config, 20000))
            assert manifest.size == path.stat().st_size

    def test_summary_counts_shared_chunks(self, small_config, files):
        """Content shared between files is counted once in unique bytes."""
        result = DistributedDeduplicator(small_config, max_workers=2).process_files(files)
        summary = result.summary

        assert summary.total_bytes == 40000 + 40006 + 30000
        assert summary.unique_bytes < summary.total_bytes
        assert summary.dedup_ratio > 1.0
        assert result.total_chunks == summary.total_chunks

    def test_missing_file(self, small_config, files, tmp_path):
        """Missing files are reported as errors without stopping the rest."""
        missing = tmp_path / "missing.bin"
        result = DistributedDeduplicator(small_config).process_files(
            files + [missing], parallel_mode="sequential")

        assert result.completed_files == 3
        assert result.failed_files == 1
        assert "File not found" in result.errors[str(missing)]
        assert result.success_rate == 75.0

    @pytest.mark.parametrize("mode", ["sequential", "thread"])
    def test_repeated_paths_counted_once(self, small_config, files, mode):
        """Listing a file twice processes it once and keeps the counts consistent."""
        repeated = [files[0], str(files[0]), files[1], files[0]]
        result = DistributedDeduplicator(small_config, max_workers=2).process_files(
            repeated, parallel_mode=mode)

        assert result.total_files == 2
        assert result.completed_files == 2
        assert result.failed_files == 0
        assert result.completed_files + result.failed_files == result.total_files
        assert result.success_rate == 100.0
        assert set(result.manifests) == {str(files[0]), str(files[1])}

    def test_unknown_mode(self, small_config, files):
        """Unknown parallel modes are rejected."""
        with pytest.raises(ValueError, match="Unknown parallel_mode"):
            DistributedDeduplicator(small_config).process_files(files, parallel_mode="gpu")

    def test_manifest_to_dict(self, small_config, files):
        """Manifests serialize their chunks."""
        manifest = build_manifest(files[0], small_config, 20000)
        data = manifest.to_dict()
        assert data["path"] == str(files[0])
        assert data["size"] == 40000
        assert len(data["chunks"]) == manifest.chunk_count
        assert data["chunks"][0]["offset"] == 0


class TestDeduplicationSummary:
    """Test summary arithmetic."""

    def test_empty(self):
        """No records means nothing repeats."""
        summary = DeduplicationSummary.from_records([])
        assert summary.dedup_ratio == 1.0
        assert summary.to_dict()["total_chunks"] == 0

    def test_repeated_records(self, small_config, random_bytes):
        """The same data twice halves the unique share."""
        data = random_bytes(50000, seed=13)
        records = dedupe_bytes(data, small_config) * 2
        summary = DeduplicationSummary.from_records(records)
        assert summary.total_bytes == 100000
        assert summary.unique_bytes == 50000
        assert summary.dedup_ratio == 2.0
