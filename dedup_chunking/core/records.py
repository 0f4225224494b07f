"""
Chunk record encoding.

Each finalized chunk is written as a fixed 36-byte record: the 32-byte SHA-256
digest of the chunk followed by the chunk length as a 4-byte big-endian
unsigned integer. Records are densely packed with no header, footer or
delimiter, so the record count of a span is ``len(span) // 36`` and the sum of
the length fields equals the number of source bytes consumed.
"""

import hashlib
import math
import struct
from dataclasses import dataclass
from typing import Iterator, Optional

from dedup_chunking.core.config import check_integer, check_minimum
from dedup_chunking.core.errors import RecordFormatError

DIGEST_SIZE = 32
LENGTH_SIZE = 4
RECORD_SIZE = DIGEST_SIZE + LENGTH_SIZE

_LENGTH = struct.Struct(">I")


@dataclass(frozen=True)
class ChunkRecord:
    """A decoded chunk record, optionally tagged with its offset in the stream."""

    digest: bytes
    length: int
    offset: Optional[int] = None

    @property
    def hexdigest(self) -> str:
        return self.digest.hex()

    def to_bytes(self) -> bytes:
        """Encode as a 36-byte record."""
        return self.digest + _LENGTH.pack(self.length)

    @classmethod
    def from_bytes(cls, data, offset: Optional[int] = None) -> "ChunkRecord":
        """Decode a single 36-byte record."""
        if len(data) != RECORD_SIZE:
            raise RecordFormatError(
                f"record must be {RECORD_SIZE} bytes", f"got {len(data)}"
            )
        (length,) = _LENGTH.unpack_from(data, DIGEST_SIZE)
        return cls(digest=bytes(data[:DIGEST_SIZE]), length=length, offset=offset)

    def to_dict(self):
        result = {"hash": self.hexdigest, "size": self.length}
        if self.offset is not None:
            result["offset"] = self.offset
        return result


def digest_chunk(chunk) -> bytes:
    """SHA-256 digest of a chunk's bytes."""
    return hashlib.sha256(chunk).digest()


def write_record(target, target_offset: int, digest: bytes, length: int) -> int:
    """
    Write one record into ``target`` at ``target_offset``.

    Returns:
        The offset just past the record (``target_offset + 36``).
    """
    if len(digest) != DIGEST_SIZE:
        raise RecordFormatError(f"digest must be {DIGEST_SIZE} bytes", f"got {len(digest)}")
    target[target_offset:target_offset + DIGEST_SIZE] = digest
    _LENGTH.pack_into(target, target_offset + DIGEST_SIZE, length)
    return target_offset + RECORD_SIZE


def required_capacity(minimum: int, source_size: int) -> int:
    """
    Worst-case number of target bytes needed to chunk ``source_size`` bytes.

    Every chunk except the last is at least ``minimum`` bytes long, so at most
    ``ceil(source_size / minimum)`` records can be produced.
    """
    minimum = check_minimum(minimum)
    source_size = check_integer("sourceSize", source_size)
    return math.ceil(source_size / minimum) * RECORD_SIZE


# Shorter name for the same sizing rule.
target_size = required_capacity


def iter_records(
    buffer,
    start: int = 0,
    end: Optional[int] = None,
    base_offset: Optional[int] = None,
) -> Iterator[ChunkRecord]:
    """
    Decode the records stored in ``buffer[start:end]``.

    Args:
        buffer: Bytes-like object holding packed records
        start: Offset of the first record
        end: Offset just past the last record (defaults to the buffer end)
        base_offset: Stream offset of the first chunk; when given, each record
            is tagged with the running stream offset

    Yields:
        ChunkRecord for each 36-byte record in order
    """
    view = memoryview(buffer).cast("B")
    if end is None:
        end = len(view)
    if (end - start) % RECORD_SIZE:
        raise RecordFormatError(
            f"record span is not a multiple of {RECORD_SIZE}", f"{end - start} bytes"
        )

    offset = base_offset
    for position in range(start, end, RECORD_SIZE):
        (length,) = _LENGTH.unpack_from(view, position + DIGEST_SIZE)
        yield ChunkRecord(
            digest=bytes(view[position:position + DIGEST_SIZE]),
            length=length,
            offset=offset,
        )
        if offset is not None:
            offset += length
