"""PDF page extraction interfaces.

Responsibilities:
- Define the page-level extractor contract used by the conversion pipeline.
- Extract page text and raster images with `pypdf`.
- Skip individual undecodable images without losing the page text.
"""

from __future__ import annotations

import io
from typing import Protocol

from PIL import Image
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from ..models.datatypes import Document, RawPageImage
from ..telemetry.logger import RunLogger


class PdfExtractionError(RuntimeError):
    """Raised when a PDF cannot be opened or a page cannot be read."""


class DocumentExtractor(Protocol):
    """Protocol for page-level document extraction."""

    def get_page_count(self) -> int:
        """Return the number of pages in the document."""

    def get_page_text(self, page_number: int) -> str:
        """Return extracted text for a 1-based page number."""

    def get_page_images(self, page_number: int) -> list[RawPageImage]:
        """Return raster images found on a 1-based page, in discovery order."""


class PdfDocumentExtractor:
    """Extractor for PDF documents backed by `pypdf`."""

    _PASSTHROUGH_MODES = frozenset({"RGB", "RGBA", "L"})

    def __init__(self, document: Document, run_logger: RunLogger | None = None) -> None:
        """Open the document bytes with `pypdf`."""

        self.document = document
        self._run_logger = run_logger
        try:
            self._reader = PdfReader(io.BytesIO(document.content))
        except (PdfReadError, ValueError, OSError) as exc:
            raise PdfExtractionError(
                f"Could not open PDF `{document.name}`: {exc}"
            ) from exc

    def get_page_count(self) -> int:
        """Return the number of pages declared by the PDF."""

        return len(self._reader.pages)

    def get_page_text(self, page_number: int) -> str:
        """Extract plain text for one page."""

        page = self._page(page_number)
        try:
            extracted_text = page.extract_text()
        except Exception as exc:
            raise PdfExtractionError(
                f"Failed to extract text from page {page_number} of `{self.document.name}`: {exc}"
            ) from exc
        return (extracted_text or "").replace("\f", "\n").strip()

    def get_page_images(self, page_number: int) -> list[RawPageImage]:
        """Extract page images as raw pixel buffers, skipping undecodable ones."""

        page = self._page(page_number)
        try:
            image_count = len(page.images)
        except Exception as exc:
            self._warn_image_skipped(page_number, "listing", exc)
            return []

        images: list[RawPageImage] = []
        for image_index in range(image_count):
            try:
                pil_image = page.images[image_index].image
                if pil_image is None:
                    continue
                images.append(self._to_raw_image(pil_image))
            except Exception as exc:
                self._warn_image_skipped(page_number, str(image_index), exc)
        return images

    def _page(self, page_number: int):
        """Return a `pypdf` page object for a 1-based page number."""

        if page_number < 1 or page_number > len(self._reader.pages):
            raise PdfExtractionError(
                f"Page {page_number} is out of range for `{self.document.name}`."
            )
        return self._reader.pages[page_number - 1]

    @classmethod
    def _to_raw_image(cls, pil_image: Image.Image) -> RawPageImage:
        """Flatten a decoded image into an RGB, RGBA, or grayscale buffer."""

        if pil_image.mode not in cls._PASSTHROUGH_MODES:
            has_alpha = "A" in pil_image.mode or "transparency" in pil_image.info
            pil_image = pil_image.convert("RGBA" if has_alpha else "RGB")
        width, height = pil_image.size
        return RawPageImage(width=width, height=height, pixels=pil_image.tobytes())

    def _warn_image_skipped(self, page_number: int, image_ref: str, exc: Exception) -> None:
        """Log a skipped image without failing the page."""

        if self._run_logger is None:
            return
        self._run_logger.log_warning(
            "extract",
            "image_skipped",
            page=page_number,
            image=image_ref,
            error_type=type(exc).__name__,
        )


def create_pdf_extractor(
    document: Document, run_logger: RunLogger | None = None
) -> PdfDocumentExtractor:
    """Create the default `pypdf`-backed extractor for a document."""

    return PdfDocumentExtractor(document, run_logger=run_logger)
