"""
Exception hierarchy for the deduplication core.

Every fault carries ``rule``, the exact condition that was violated, so callers
and tests can tell which precondition failed without parsing free text.
Argument, relation and capacity faults are raised synchronously before any
work starts. ``InvariantViolation`` signals a defect in the chunking loop
itself and should be unreachable with validated input.
"""

from typing import Optional


class DeduplicationError(Exception):
    """Base class for all faults raised by the deduplication core."""

    def __init__(self, rule: str, detail: Optional[str] = None):
        self.rule = rule
        self.detail = detail
        message = rule if detail is None else f"{rule} ({detail})"
        super().__init__(message)


class ArgumentTypeError(DeduplicationError, TypeError):
    """An argument is not of the required kind (integer, buffer, ...)."""


class ArgumentRangeError(DeduplicationError, ValueError):
    """An argument lies outside its allowed domain."""


class InsufficientLookaheadError(ArgumentRangeError):
    """A non-final call supplied no more than one maximal chunk of data."""


class RelationError(DeduplicationError, ValueError):
    """Chunk size parameters are individually valid but inconsistent."""


class CapacityError(DeduplicationError, ValueError):
    """A source or target region does not fit its underlying buffer."""


class InvariantViolation(DeduplicationError, RuntimeError):
    """The chunking loop reached a state that valid input cannot produce."""


class StreamStateError(DeduplicationError, RuntimeError):
    """A stream driver was used after it was finished."""


class RecordFormatError(DeduplicationError, ValueError):
    """A byte span cannot be decoded as a sequence of chunk records."""
