"""
Cut-point detection with a gear rolling hash and normalized chunking.

The hash is advanced one byte at a time with ``h = (h >> 1) + TABLE[b]``, so
each of the last ~32 bytes has an exponentially decaying influence on ``h``.
A cut is declared at the first position where ``h`` has all masked bits zero.

Two masks narrow the chunk size distribution around ``average``:

- between ``minimum`` and the center, ``center_size`` bytes from the start of
  the chunk, the stricter ``mask_high`` (bits + 1) makes early cuts rare. When
  the center falls at or before ``minimum`` this region is empty;
- past the center, the looser ``mask_low`` (bits - 1) makes cuts about twice
  as likely, pulling the long tail in before the hard ``maximum``.

Bytes before ``minimum`` are skipped entirely, so no chunk can be shorter than
``minimum`` unless the window itself is.
"""

import math

from dedup_chunking.core.gear import TABLE


def center_size(average: int, minimum: int, source_size: int) -> int:
    """Offset of the center from the chunk start, clamped to ``source_size``."""
    offset = min(average, minimum + math.ceil(minimum / 2))
    size = average - offset
    if size > source_size:
        return source_size
    return size


def find_cut(
    average: int,
    minimum: int,
    maximum: int,
    mask_high: int,
    mask_low: int,
    source,
    source_offset: int,
    source_size: int,
) -> int:
    """
    Find the length of the next chunk starting at ``source_offset``.

    Args:
        average: Target average chunk size
        minimum: Minimum chunk size, scanning starts here
        maximum: Largest chunk this search may return
        mask_high: Mask tested up to the center
        mask_low: Mask tested from the center to the end
        source: Bytes-like object holding the window
        source_offset: Start of the window within ``source``
        source_size: Bytes available in the window

    Returns:
        Chunk length ``n`` with ``1 <= n <= min(maximum, source_size)``, or the
        whole window when it is no longer than ``minimum``.
    """
    if source_size <= minimum:
        return source_size
    if source_size > maximum:
        source_size = maximum

    source_start = source_offset
    strict_end = source_start + center_size(average, minimum, source_size)
    source_end = source_start + source_size

    # Slicing a memoryview does not copy; the hot loops iterate plain ints.
    view = source if isinstance(source, memoryview) else memoryview(source)
    table = TABLE
    h = 0
    position = source_start + minimum
    for byte in view[position:strict_end]:
        h = (h >> 1) + table[byte]
        position += 1
        if not h & mask_high:
            return position - source_start
    for byte in view[position:source_end]:
        h = (h >> 1) + table[byte]
        position += 1
        if not h & mask_low:
            return position - source_start
    return source_size
