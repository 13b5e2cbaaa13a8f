"""Core datatypes shared across epubforge modules.

Responsibilities:
- Represent immutable records exchanged between pipeline stages.
- Provide explicit typing for session persistence and reproducibility.

Key types:
- `Document`, `PageRange`, `RawPageImage`, `ExtractedImage`,
  `ConversionSession`, `Progress`, and `ConversionResult`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SESSION_KEY_PREFIX = "epub-session"


@dataclass(frozen=True, slots=True)
class Document:
    """Immutable PDF input identified by file name and byte size.

    Attributes:
        name: Source file name (without directories).
        content: Raw PDF bytes.
    """

    name: str
    content: bytes = field(repr=False)

    @property
    def size(self) -> int:
        """Return the document size in bytes."""

        return len(self.content)

    @property
    def identity_key(self) -> str:
        """Return the session key derived from document name and byte size."""

        return f"{SESSION_KEY_PREFIX}-{self.name}-{self.size}"

    @property
    def stem(self) -> str:
        """Return the file name without a trailing `.pdf` suffix."""

        if self.name.lower().endswith(".pdf"):
            return self.name[: -len(".pdf")]
        return self.name

    @classmethod
    def from_path(cls, path: Path) -> Document:
        """Load a document from disk."""

        return cls(name=path.name, content=path.read_bytes())


@dataclass(frozen=True, slots=True)
class PageRange:
    """A contiguous chunk of source pages.

    Attributes:
        index: 0-based chunk index.
        start_page: Inclusive 1-based first page.
        end_page: Inclusive 1-based last page.
    """

    index: int
    start_page: int
    end_page: int

    @property
    def page_numbers(self) -> range:
        """Return the 1-based page numbers covered by this chunk."""

        return range(self.start_page, self.end_page + 1)

    @property
    def page_count(self) -> int:
        """Return how many pages this chunk covers."""

        return self.end_page - self.start_page + 1


@dataclass(frozen=True, slots=True)
class RawPageImage:
    """Raster image as discovered on a PDF page, before RGBA normalization."""

    width: int
    height: int
    pixels: bytes = field(repr=False)


@dataclass(frozen=True, slots=True)
class ExtractedImage:
    """Encoded image asset carried from extraction to the final archive.

    Attributes:
        mime_type: Image MIME type, e.g. `image/png`.
        data: Base64-encoded image bytes.
    """

    mime_type: str
    data: str = field(repr=False)

    def as_payload(self) -> dict[str, str]:
        """Return the persisted `{mimeType, data}` record."""

        return {"mimeType": self.mime_type, "data": self.data}

    @property
    def data_uri(self) -> str:
        """Return the image as a `data:` URI."""

        return f"data:{self.mime_type};base64,{self.data}"


@dataclass(frozen=True, slots=True)
class ConversionSession:
    """Persisted resumption state for one in-progress conversion.

    Attributes:
        next_chunk_index: First chunk not yet acknowledged by the chat service.
        total_pages: Page count of the document when the session was created.
        conversation_state: Opaque serialized chat history, replayed verbatim.
        images: Ordered images belonging to acknowledged chunks.
    """

    next_chunk_index: int
    total_pages: int
    conversation_state: list[dict[str, Any]] = field(repr=False)
    images: tuple[ExtractedImage, ...] = field(default_factory=tuple, repr=False)


@dataclass(frozen=True, slots=True)
class Progress:
    """Derived progress view emitted to hosts; never persisted."""

    percent: float
    eta_text: str
    elapsed_text: str
    message: str = ""


@dataclass(frozen=True, slots=True)
class ConversionResult:
    """Outcome of one successful conversion.

    Attributes:
        archive: EPUB archive bytes.
        title: Book title used in the package metadata.
        total_pages: Source page count.
        chunk_count: Number of chunks in the document.
        image_count: Number of images written to the archive.
        resumed_from_chunk: Chunk index the run started from (0 for fresh runs).
        retry_attempts: Provider retries performed during this run.
    """

    archive: bytes = field(repr=False)
    title: str
    total_pages: int
    chunk_count: int
    image_count: int
    resumed_from_chunk: int = 0
    retry_attempts: int = 0
