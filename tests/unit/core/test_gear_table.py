"""
Tests for the gear table used by the rolling boundary hash.
"""

from dedup_chunking.core.gear import TABLE, TABLE_SIZE, TABLE_VALUE_LIMIT


class TestGearTable:
    """Test the fixed gear table."""

    def test_one_entry_per_byte_value(self):
        """The table covers every byte value."""
        assert TABLE_SIZE == 256
        assert len(TABLE) == TABLE_SIZE

    def test_entries_fit_in_31_bits(self):
        """Every entry is a non-negative integer below 2**31."""
        assert all(isinstance(value, int) for value in TABLE)
        assert all(0 <= value < TABLE_VALUE_LIMIT for value in TABLE)

    def test_fixed_values(self):
        """Boundaries depend on the exact values, so they must not drift."""
        assert TABLE[0] == 1553318008
        assert TABLE[1] == 574654857
        assert TABLE[5] == 1195718329
        assert TABLE[-1] == 854125182

    def test_table_is_immutable(self):
        """The table is a tuple so it cannot be modified at runtime."""
        assert isinstance(TABLE, tuple)

    def test_hash_stays_within_32_bits(self):
        """Rolling over the largest entries never overflows 32 bits."""
        largest = max(TABLE)
        h = 0
        for _ in range(1000):
            h = (h >> 1) + largest
            assert h < 2 ** 32
