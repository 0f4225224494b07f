"""
Tests for cut-point detection.

Results are compared against a plain index-based rendition of the gear hash
with normalized chunking, checked for the size bounds every cut obeys, and
pinned to known cuts for fixed sources.
"""

import hashlib

import pytest

from dedup_chunking.core.config import ChunkerConfig
from dedup_chunking.core.cut import center_size, find_cut
from dedup_chunking.core.gear import TABLE


def reference_cut(config: ChunkerConfig, data: bytes) -> int:
    size = len(data)
    if size <= config.minimum:
        return size
    size = min(size, config.maximum)
    normal = center_size(config.average, config.minimum, size)
    h = 0
    i = config.minimum
    while i < normal:
        h = ((h >> 1) + TABLE[data[i]]) & 0xFFFFFFFF
        i += 1
        if h & config.mask_high == 0:
            return i
    while i < size:
        h = ((h >> 1) + TABLE[data[i]]) & 0xFFFFFFFF
        i += 1
        if h & config.mask_low == 0:
            return i
    return size


def cut(config: ChunkerConfig, data, offset: int = 0, size: int = None) -> int:
    if size is None:
        size = len(data) - offset
    return find_cut(
        config.average, config.minimum, config.maximum,
        config.mask_high, config.mask_low,
        data, offset, size,
    )


class TestCenterSize:
    """Test the length of the strict-mask region."""

    def test_default_config(self):
        """64 KiB average with 16 KiB minimum puts the center 40 KiB in."""
        assert center_size(65536, 16384, 10 ** 6) == 65536 - 24576

    def test_small_config(self):
        """The center is minimum plus half the minimum, rounded up."""
        assert center_size(1024, 256, 10 ** 6) == 1024 - 384
        assert center_size(1024, 255, 10 ** 6) == 1024 - 383

    def test_center_capped_at_average(self):
        """A minimum close to the average puts the center at the average."""
        assert center_size(1024, 1000, 10 ** 6) == 0

    def test_clamped_to_source_size(self):
        """The center never lies past the window."""
        assert center_size(65536, 16384, 100) == 100


class TestFindCut:
    """Test cut-point detection on a single window."""

    def test_short_window_is_one_chunk(self, small_config):
        """A window no longer than the minimum is returned whole."""
        assert cut(small_config, b"\x00" * 256) == 256
        assert cut(small_config, b"\x01" * 10) == 10
        assert cut(small_config, b"") == 0

    def test_matches_reference(self, small_config, random_bytes):
        """Cuts agree with the index-based rendition for many windows."""
        for seed in range(20):
            data = random_bytes(small_config.maximum * 2, seed=seed)
            assert cut(small_config, data) == reference_cut(small_config, data)

    def test_matches_reference_on_short_windows(self, small_config, random_bytes):
        """Windows between the minimum and the center are handled the same way."""
        for size in (257, 300, 500, 640, 1000, 2000):
            data = random_bytes(size, seed=size)
            assert cut(small_config, data) == reference_cut(small_config, data)

    def test_offset_is_respected(self, small_config, random_bytes):
        """A window at an offset cuts like the same bytes at offset zero."""
        data = random_bytes(20000, seed=7)
        for offset in (0, 1, 123, 4096, 10000):
            assert cut(small_config, data, offset) == cut(small_config, data[offset:])

    def test_size_limits_window(self, small_config, random_bytes):
        """Bytes past ``source_size`` are never looked at."""
        data = random_bytes(20000, seed=8)
        expected = cut(small_config, data[:3000])
        assert cut(small_config, data, 0, 3000) == expected
        assert cut(small_config, bytearray(data), 0, 3000) == expected

    def test_bounds(self, small_config, random_bytes):
        """Cuts fall between the minimum and the maximum (or window) size."""
        data = random_bytes(200000, seed=9)
        offset = 0
        while offset < len(data):
            size = len(data) - offset
            n = cut(small_config, data, offset, size)
            assert 1 <= n <= min(small_config.maximum, size)
            if size > small_config.minimum:
                assert n >= small_config.minimum
            offset += n

    def test_uniform_input_hits_maximum_or_repeats(self, small_config):
        """Runs of one byte value produce the same cut every time."""
        data = b"\xab" * (small_config.maximum * 4)
        first = cut(small_config, data)
        assert small_config.minimum < first <= small_config.maximum
        assert cut(small_config, data, first) == first

    def test_accepts_memoryview(self, small_config, random_bytes):
        """Any bytes-like source works."""
        data = random_bytes(20000, seed=10)
        assert cut(small_config, memoryview(data)) == cut(small_config, data)

    @pytest.mark.parametrize("average", [256, 1024, 4096])
    def test_reference_across_configs(self, average, random_bytes):
        """The recommended preset agrees with the reference for several sizes."""
        config = ChunkerConfig.recommended(average)
        data = random_bytes(config.maximum + 100, seed=average)
        assert cut(config, data) == reference_cut(config, data)


class TestKnownCuts:
    """First cuts for fixed sources, as produced by other gear chunkers."""

    def test_small_config_first_cut(self, small_config, counter_bytes):
        """The first chunk ends between the center and minimum plus center."""
        data = counter_bytes(64 * 1024)
        assert cut(small_config, data) == 737

    def test_default_config_cut_past_center(self, default_config, counter_bytes):
        """A cut after the 40 KiB center is found with the looser mask."""
        data = counter_bytes(600 * 1024, label="first-chunk-5")
        n = cut(default_config, data)

        assert n == 48866
        assert 65536 - 24576 < n <= 16384 + (65536 - 24576)
        assert hashlib.sha256(data[:n]).hexdigest() == (
            "baeda97b652005b8602e9ab19fe212a19508efa98e6f2d857e16b8ccd45ac37e"
        )

    def test_default_config_first_cut(self, default_config, counter_bytes):
        data = counter_bytes(2 * 1024 * 1024)
        assert cut(default_config, data) == 85067
