"""Page-range chunking for sequential chat submission.

Responsibilities:
- Split `[1, total_pages]` into contiguous fixed-size page ranges.
- Keep chunk indices stable so persisted sessions can resume by index.
"""

from __future__ import annotations

from math import ceil

from ..models.datatypes import PageRange

CHUNK_SIZE_PAGES = 5


def num_chunks(total_pages: int, chunk_size: int = CHUNK_SIZE_PAGES) -> int:
    """Return how many chunks cover `total_pages` pages."""

    if chunk_size <= 0:
        raise ValueError("`chunk_size` must be a positive integer.")
    if total_pages <= 0:
        return 0
    return ceil(total_pages / chunk_size)


def chunk_ranges(total_pages: int, chunk_size: int = CHUNK_SIZE_PAGES) -> list[PageRange]:
    """Return gap-free, non-overlapping page ranges covering every page once.

    Chunk `i` spans pages `i * chunk_size + 1` through
    `min((i + 1) * chunk_size, total_pages)`.
    """

    return [
        PageRange(
            index=index,
            start_page=index * chunk_size + 1,
            end_page=min((index + 1) * chunk_size, total_pages),
        )
        for index in range(num_chunks(total_pages, chunk_size))
    ]
