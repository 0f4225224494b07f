"""
Validation utilities for chunk records.

This module checks that a sequence of records is a correct chunking of a
source: the lengths cover the source exactly, every digest matches its chunk
and every chunk respects the configured size bounds.
"""

import logging
from typing import List, Optional, Sequence

from dedup_chunking.core.config import ChunkerConfig
from dedup_chunking.core.records import ChunkRecord, digest_chunk

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised by ``validate_and_raise`` when records do not match their source."""
    pass


class RecordValidator:
    """
    Validator for the records produced from one source.

    Every issue found is reported as a human readable string; an empty list
    means the records are a valid chunking of the source.
    """

    def __init__(self, config: Optional[ChunkerConfig] = None):
        """
        Initialize record validator.

        Args:
            config: Chunk size configuration the records were produced with
        """
        self.config = config or ChunkerConfig.recommended()
        self.logger = logging.getLogger(f"{__name__}.RecordValidator")

    def validate(
        self,
        source,
        records: Sequence[ChunkRecord],
        final: bool = True,
    ) -> List[str]:
        """
        Validate records against the source they were produced from.

        Args:
            source: Bytes-like object holding the whole chunked region
            records: Records in stream order
            final: Whether the records end the stream; when False the records
                may cover only a prefix of ``source`` and every chunk must
                reach the minimum size

        Returns:
            List of validation issues (empty if valid)
        """
        view = memoryview(source).cast("B")
        issues = []
        position = 0
        last_index = len(records) - 1

        for i, record in enumerate(records):
            if record.length == 0:
                issues.append(f"Chunk {i}: zero length")
                continue
            if record.offset is not None and record.offset != position:
                issues.append(f"Chunk {i}: offset {record.offset} != expected {position}")
            if record.length > self.config.maximum:
                issues.append(f"Chunk {i}: size {record.length} > maximum {self.config.maximum}")
            if record.length < self.config.minimum and (i != last_index or not final):
                issues.append(f"Chunk {i}: size {record.length} < minimum {self.config.minimum}")

            end = position + record.length
            if end > len(view):
                issues.append(f"Chunk {i}: extends past end of source ({end} > {len(view)})")
                return issues
            if digest_chunk(view[position:end]) != record.digest:
                issues.append(f"Chunk {i}: digest mismatch at offset {position}")
            position = end

        if final and position != len(view):
            issues.append(f"Reassembly mismatch: chunks cover {position} of {len(view)} bytes")

        if issues:
            self.logger.debug(f"Found {len(issues)} issues in {len(records)} records")
        return issues

    def validate_and_raise(self, source, records: Sequence[ChunkRecord], final: bool = True) -> None:
        """
        Validate and raise exception if invalid.

        Raises:
            ValidationError: If validation fails
        """
        issues = self.validate(source, records, final)
        if issues:
            raise ValidationError(f"Validation failed: {'; '.join(issues)}")

    def is_valid(self, source, records: Sequence[ChunkRecord], final: bool = True) -> bool:
        """Check if the records are a valid chunking of ``source``."""
        try:
            self.validate_and_raise(source, records, final)
            return True
        except ValidationError:
            return False
