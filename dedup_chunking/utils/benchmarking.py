"""
Benchmarking utilities for the chunking core.

For each target average chunk size the runner chunks a set of sources on a
thread pool and measures latency, throughput, the actual average chunk size
and how many bytes repeat across sources. The generated sources share most of
their content, with a few small insertions per source, so the dedup ratio
shows how well boundaries resynchronize after an edit.
"""

import json
import logging
import random
import statistics
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import psutil

from dedup_chunking.core.config import ChunkerConfig
from dedup_chunking.core.deduplicator import Deduplicator
from dedup_chunking.core.streaming import DeduplicationSummary
from dedup_chunking.logging_config import metrics_log, performance_log

logger = logging.getLogger(__name__)

DEFAULT_AVERAGES = (2048, 4096, 8192, 16384, 32768, 65536, 131072)


@dataclass
class BenchmarkResult:
    """Results from benchmarking one average chunk size."""

    average: int
    minimum: int
    maximum: int
    source_count: int
    source_size: int
    processing_time: float
    latency_ms: float
    throughput_mbps: float
    chunk_count: int
    unique_chunks: int
    avg_chunk_size: float
    average_error_percent: float
    dedup_ratio: float
    savings_percent: float
    memory_usage: Optional[float]
    success: bool
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass
class BenchmarkSuite:
    """Collection of benchmark results."""

    name: str
    timestamp: float
    results: List[BenchmarkResult]
    system_info: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "timestamp": self.timestamp,
            "system_info": self.system_info,
            "results": [result.to_dict() for result in self.results],
        }


def generate_sources(count: int = 8, size: int = 1024 * 1024, seed: int = 0) -> List[bytes]:
    """
    Build ``count`` sources of ``size`` bytes from one shared random master.

    Each source is the master cut into eight pieces, with ``index + 16`` fresh
    random bytes inserted before every piece, truncated to ``size``.
    """
    rng = random.Random(seed)
    master = rng.randbytes(size)
    piece_size = -(-size // 8)
    sources = []
    for index in range(count):
        parts = []
        for offset in range(0, size, piece_size):
            parts.append(rng.randbytes(index + 16))
            parts.append(master[offset:offset + piece_size])
        sources.append(b"".join(parts)[:size])
    return sources


class BenchmarkRunner:
    """
    Runner for chunking benchmarks.

    Measures every average chunk size against the same sources so the results
    are directly comparable.
    """

    def __init__(
        self,
        output_dir: Optional[Union[str, Path]] = None,
        max_workers: Optional[int] = None,
    ):
        """
        Initialize benchmark runner.

        Args:
            output_dir: Directory to save benchmark results
            max_workers: Threads used to chunk sources concurrently
                (defaults to the CPU count)
        """
        self.output_dir = Path(output_dir) if output_dir else Path("benchmarks/results")
        self.max_workers = max_workers or psutil.cpu_count() or 1
        self.logger = logging.getLogger(f"{__name__}.BenchmarkRunner")

    def benchmark_average(self, average: int, sources: Sequence[bytes]) -> BenchmarkResult:
        """
        Chunk every source once with the recommended preset for ``average``.

        Args:
            average: Target average chunk size
            sources: Equal or unequal sized byte sources

        Returns:
            Benchmark result (``success`` False with the error on failure)
        """
        source_size = max((len(s) for s in sources), default=0)
        try:
            config = ChunkerConfig.recommended(average)
        except ValueError as e:
            self.logger.error(f"Benchmark failed for average {average}: {e}")
            return self._failed(average, len(sources), source_size, str(e))

        process = psutil.Process()
        memory_before = process.memory_info().rss
        deduplicator = Deduplicator(config)
        latencies: List[float] = []
        records = []

        def run_one(source: bytes):
            target = bytearray(deduplicator.required_capacity(len(source)))
            started = time.perf_counter()
            result = deduplicator.process(source, 0, len(source), target, 0, True)
            latencies.append(time.perf_counter() - started)
            return list(result.records(target))

        start_time = time.time()
        try:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                for source_records in executor.map(run_one, sources):
                    records.extend(source_records)
        except Exception as e:
            self.logger.error(f"Benchmark failed for average {average}: {e}")
            return self._failed(average, len(sources), source_size, str(e))
        processing_time = time.time() - start_time
        memory_after = process.memory_info().rss

        summary = DeduplicationSummary.from_records(records)
        total_bytes = summary.total_bytes
        avg_chunk_size = (
            summary.unique_bytes / summary.unique_chunks if summary.unique_chunks else 0.0
        )
        savings = (
            (total_bytes - summary.unique_bytes) / total_bytes * 100 if total_bytes else 0.0
        )

        result = BenchmarkResult(
            average=config.average,
            minimum=config.minimum,
            maximum=config.maximum,
            source_count=len(sources),
            source_size=source_size,
            processing_time=processing_time,
            latency_ms=statistics.mean(latencies) * 1000 if latencies else 0.0,
            throughput_mbps=(
                total_bytes / (1024 * 1024) / processing_time if processing_time > 0 else 0.0
            ),
            chunk_count=summary.total_chunks,
            unique_chunks=summary.unique_chunks,
            avg_chunk_size=avg_chunk_size,
            average_error_percent=(avg_chunk_size - average) / average * 100,
            dedup_ratio=summary.dedup_ratio,
            savings_percent=savings,
            memory_usage=(memory_after - memory_before) / (1024 * 1024),
            success=True,
        )

        performance_log(
            f"benchmark average={average}",
            processing_time,
            throughput_mbps=result.throughput_mbps,
        )
        metrics_log(result.to_dict())
        return result

    def run_benchmark_suite(
        self,
        suite_name: str = "dedup",
        averages: Sequence[int] = DEFAULT_AVERAGES,
        sources: Optional[Sequence[bytes]] = None,
        source_count: int = 8,
        source_size: int = 1024 * 1024,
        save_results: bool = True,
    ) -> BenchmarkSuite:
        """
        Benchmark every average in ``averages``.

        Args:
            suite_name: Name of benchmark suite
            averages: Average chunk sizes to test
            sources: Sources to chunk (generated when None)
            source_count: Number of sources to generate
            source_size: Size of each generated source
            save_results: Whether to save results to disk

        Returns:
            Complete benchmark suite results
        """
        self.logger.info(f"Starting benchmark suite: {suite_name}")
        start_time = time.time()
        if sources is None:
            sources = generate_sources(source_count, source_size)

        results = []
        for average in averages:
            self.logger.info(f"Testing average chunk size: {average} bytes")
            results.append(self.benchmark_average(average, sources))

        suite = BenchmarkSuite(
            name=suite_name,
            timestamp=start_time,
            results=results,
            system_info={
                "cpu_count": psutil.cpu_count(),
                "threads": self.max_workers,
                "sources": len(sources),
                "source_size": max((len(s) for s in sources), default=0),
            },
        )

        if save_results:
            self.save_benchmark_suite(suite)

        self.logger.info(f"Benchmark suite completed in {time.time() - start_time:.2f}s")
        return suite

    def save_benchmark_suite(self, suite: BenchmarkSuite) -> Path:
        """
        Save benchmark suite to disk.

        Returns:
            Path to saved file
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        timestamp_str = time.strftime("%Y%m%d_%H%M%S", time.localtime(suite.timestamp))
        filepath = self.output_dir / f"{suite.name}_{timestamp_str}.json"

        with open(filepath, 'w') as f:
            json.dump(suite.to_dict(), f, indent=2)

        self.logger.info(f"Benchmark results saved to {filepath}")
        return filepath

    def load_benchmark_suite(self, filepath: Union[str, Path]) -> BenchmarkSuite:
        """Load benchmark suite from disk."""
        with open(filepath, 'r') as f:
            data = json.load(f)

        return BenchmarkSuite(
            name=data['name'],
            timestamp=data['timestamp'],
            results=[BenchmarkResult(**result_data) for result_data in data['results']],
            system_info=data['system_info'],
        )

    def _failed(self, average: int, source_count: int, source_size: int, error: str) -> BenchmarkResult:
        return BenchmarkResult(
            average=average,
            minimum=0,
            maximum=0,
            source_count=source_count,
            source_size=source_size,
            processing_time=0.0,
            latency_ms=0.0,
            throughput_mbps=0.0,
            chunk_count=0,
            unique_chunks=0,
            avg_chunk_size=0.0,
            average_error_percent=0.0,
            dedup_ratio=1.0,
            savings_percent=0.0,
            memory_usage=None,
            success=False,
            error_message=error,
        )
