"""
Utility modules for the dedup_chunking package.

- validation: checks that a list of chunk records describes a source correctly
- benchmarking: timing and dedup-ratio measurements across chunk sizes
"""

from dedup_chunking.utils.validation import RecordValidator, ValidationError
from dedup_chunking.utils.benchmarking import BenchmarkResult, BenchmarkRunner

__all__ = [
    "RecordValidator",
    "ValidationError",
    "BenchmarkResult",
    "BenchmarkRunner",
]
