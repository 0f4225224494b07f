"""
Pytest configuration and shared fixtures for the test suite.

This module provides deterministic sources, small chunk size configurations
and helpers that run the chunking core end to end.
"""

import hashlib
import random
from pathlib import Path
from typing import Callable, List

import pytest

from dedup_chunking.core.config import ChunkerConfig
from dedup_chunking.core.deduplicator import process
from dedup_chunking.core.records import ChunkRecord, required_capacity


def random_bytes(size: int, seed: int = 1) -> bytes:
    """Deterministic pseudo-random bytes."""
    return random.Random(seed).randbytes(size)


def counter_bytes(size: int, label: str = "dedup-chunking") -> bytes:
    """SHA-256 of ``label`` plus a big-endian 32-bit counter, concatenated."""
    blocks = []
    for counter in range(-(-size // 32)):
        blocks.append(hashlib.sha256(label.encode() + counter.to_bytes(4, "big")).digest())
    return b"".join(blocks)[:size]


def chunk_once(config: ChunkerConfig, data, final: bool = True) -> List[ChunkRecord]:
    """Chunk ``data`` in one call and decode the records."""
    target = bytearray(required_capacity(config.minimum, len(data)))
    result = process(
        config.average, config.minimum, config.maximum,
        data, 0, len(data), target, 0, final,
    )
    return list(result.records(target, base_offset=0))


@pytest.fixture
def small_config() -> ChunkerConfig:
    """Small sizes so pure-Python chunking stays fast in tests."""
    return ChunkerConfig(average=1024, minimum=256, maximum=8192)


@pytest.fixture
def default_config() -> ChunkerConfig:
    """The default 64 KiB configuration."""
    return ChunkerConfig()


@pytest.fixture(scope="session")
def random_data() -> bytes:
    """256 KiB of deterministic pseudo-random bytes."""
    return random_bytes(256 * 1024, seed=1)


@pytest.fixture
def make_file(tmp_path: Path) -> Callable[[str, bytes], Path]:
    """Write bytes to a file under the test's temporary directory."""
    def _make_file(name: str, data: bytes) -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return _make_file


@pytest.fixture(name="random_bytes")
def random_bytes_fixture() -> Callable[..., bytes]:
    """Factory for deterministic pseudo-random bytes."""
    return random_bytes


@pytest.fixture(name="chunk_once")
def chunk_once_fixture() -> Callable[..., List[ChunkRecord]]:
    """Factory that chunks a buffer in a single call."""
    return chunk_once


@pytest.fixture(name="counter_bytes")
def counter_bytes_fixture() -> Callable[..., bytes]:
    """Factory for sources that are easy to rebuild in any language."""
    return counter_bytes
