"""Progress and ETA estimation for a conversion run.

Responsibilities:
- Weight page extraction (80 %) and chunk acknowledgement (15 %) into one percentage.
- Estimate remaining time from throughput observed since the resume point.
- Format ETA and elapsed time for human-readable progress lines.
"""

from __future__ import annotations

from math import ceil
import time
from typing import Callable

from ..models.datatypes import Progress

PAGE_WEIGHT_PERCENT = 80.0
CHUNK_WEIGHT_PERCENT = 15.0
FINALIZE_PERCENT = 95.0
PACKAGE_PERCENT = 98.0
COMPLETE_PERCENT = 100.0


def format_eta(seconds: float) -> str:
    """Return a coarse remaining-time phrase; empty for unknown (negative) values."""

    if seconds < 0:
        return ""
    if seconds < 5:
        return "a few seconds remaining"
    if seconds < 60:
        return "less than a minute remaining"
    minutes = ceil(seconds / 60)
    if minutes == 1:
        return "about 1 minute remaining"
    return f"about {minutes} minutes remaining"


def format_elapsed(seconds: float) -> str:
    """Return elapsed time as `MM:SS`."""

    total_seconds = max(0, int(seconds))
    minutes, remainder = divmod(total_seconds, 60)
    return f"{minutes:02d}:{remainder:02d}"


class ProgressTracker:
    """Derive `Progress` views for one run; nothing here is persisted."""

    def __init__(
        self,
        *,
        total_pages: int,
        chunk_count: int,
        resume_page_offset: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Start the run clock.

        Args:
            total_pages: Document page count.
            chunk_count: Number of chunks in the document.
            resume_page_offset: Pages already covered by acknowledged chunks when
                this run started; throughput is measured from this point.
            clock: Monotonic clock returning seconds.
        """

        self.total_pages = total_pages
        self.chunk_count = chunk_count
        self.resume_page_offset = resume_page_offset
        self._clock = clock
        self._started_at = clock()

    def elapsed_seconds(self) -> float:
        return self._clock() - self._started_at

    def percent(self, pages_done: int, chunks_acknowledged: int) -> float:
        """Return the weighted completion percentage for extraction and submission."""

        page_share = pages_done / self.total_pages if self.total_pages else 0.0
        chunk_share = chunks_acknowledged / self.chunk_count if self.chunk_count else 0.0
        return PAGE_WEIGHT_PERCENT * page_share + CHUNK_WEIGHT_PERCENT * chunk_share

    def eta_seconds(self, pages_done: int) -> float:
        """Return remaining seconds from pages processed since the resume point, or -1."""

        processed_since_resume = pages_done - self.resume_page_offset
        if processed_since_resume <= 0:
            return -1.0
        seconds_per_page = self.elapsed_seconds() / processed_since_resume
        return (self.total_pages - pages_done) * seconds_per_page

    def at_page(self, page_number: int, chunks_acknowledged: int) -> Progress:
        """Return progress while extracting `page_number`."""

        return Progress(
            percent=self.percent(page_number, chunks_acknowledged),
            eta_text=format_eta(self.eta_seconds(page_number)),
            elapsed_text=format_elapsed(self.elapsed_seconds()),
            message=f"Processing page {page_number} of {self.total_pages}...",
        )

    def at_submission(self, chunk_index: int, last_page: int) -> Progress:
        """Return progress while chunk `chunk_index` awaits acknowledgement."""

        return Progress(
            percent=self.percent(last_page, chunk_index),
            eta_text=format_eta(self.eta_seconds(last_page)),
            elapsed_text=format_elapsed(self.elapsed_seconds()),
            message=f"Sending chunk {chunk_index + 1} of {self.chunk_count} to the model...",
        )

    def fixed(self, percent: float, message: str) -> Progress:
        """Return a milestone progress value without an ETA."""

        return Progress(
            percent=percent,
            eta_text="",
            elapsed_text=format_elapsed(self.elapsed_seconds()),
            message=message,
        )
