"""Pipeline orchestration for epubforge.

Responsibilities:
- Drive chunked extraction and submission strictly in page order.
- Persist the session before and after every chunk submission.
- Finalize the conversation and package the generated markup as an EPUB.

Key types:
- `ConversionPipeline`: orchestration facade used by the CLI and embedding hosts.
"""

from __future__ import annotations

from collections.abc import Callable
import time
from typing import TypeVar

from ..epub.packager import EpubPackager
from ..errors import PipelineStageError
from ..io.image_encoding import encode_png
from ..io.pdf_document_extractor import DocumentExtractor, create_pdf_extractor
from ..io.session_store import SessionStore
from ..llm.conversation import Conversation, ConversationClient
from ..models.datatypes import (
    ConversionResult,
    ConversionSession,
    Document,
    ExtractedImage,
    PageRange,
    Progress,
)
from ..telemetry.logger import RunLogger
from .chunking import chunk_ranges
from .errors import stage_error_from_exception
from .progress import COMPLETE_PERCENT, FINALIZE_PERCENT, PACKAGE_PERCENT, ProgressTracker

_StageResult = TypeVar("_StageResult")

DEFAULT_THROTTLE_SECONDS = 1.5


def page_delimiter(page_number: int) -> str:
    """Return the separator placed before each page's text in a chunk."""

    return f"\n\n--- PAGE {page_number} ---\n\n"


def image_placeholder(image_index: int) -> str:
    """Return the token marking where global image `image_index` belongs."""

    return f"\n[IMAGE_{image_index}]\n"


class ConversionPipeline:
    """Coordinate one resumable PDF-to-EPUB conversion at a time."""

    def __init__(
        self,
        *,
        session_store: SessionStore,
        conversation_client: ConversationClient,
        extractor_factory: Callable[[Document], DocumentExtractor] = create_pdf_extractor,
        packager: EpubPackager | None = None,
        run_logger: RunLogger | None = None,
        progress_callback: Callable[[Progress], None] | None = None,
        sleeper: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        throttle_seconds: float = DEFAULT_THROTTLE_SECONDS,
    ) -> None:
        """Initialize injected collaborators and runtime hooks."""

        self._session_store = session_store
        self._client = conversation_client
        self._extractor_factory = extractor_factory
        self._packager = packager if packager is not None else EpubPackager(run_logger=run_logger)
        self._run_logger = run_logger
        self._progress_callback = progress_callback
        self._sleeper = sleeper
        self._clock = clock
        self._throttle_seconds = throttle_seconds

    def find_resumable_session(self, document: Document) -> ConversionSession | None:
        """Return the persisted session for `document`, or `None`.

        Malformed entries are removed by the session store and reported as absent.
        """

        return self._session_store.load(document.identity_key)

    def reset(self, document: Document) -> None:
        """Discard any persisted session so the next conversion starts over."""

        self._session_store.delete(document.identity_key)
        self._log_event("session", "discarded", reason="reset")

    def convert(
        self,
        document: Document,
        resume: bool = True,
        title: str | None = None,
    ) -> ConversionResult:
        """Convert `document` into EPUB bytes, resuming from a session when allowed.

        `title` is the fallback book title when the generated markup has no
        `<title>`; it defaults to the document file name without `.pdf`.

        Raises:
            PipelineStageError: On any failure; the session stays at its last
                persisted chunk boundary.
        """

        self._log_stage_start("convert", document=document.name)
        self._emit_progress(Progress(0.0, "", "00:00", "Loading PDF file..."))

        extractor = self._guard("extract", lambda: self._extractor_factory(document))
        total_pages = self._guard("extract", extractor.get_page_count)
        if total_pages <= 0:
            raise self._fail(
                "extract",
                PipelineStageError(
                    stage="extract",
                    detail=f"`{document.name}` does not contain any pages.",
                    hint="Check that the input is a valid, non-empty PDF.",
                ),
            )

        chunks = chunk_ranges(total_pages)
        session = self._guard(
            "session", lambda: self._resolve_session(document, resume, total_pages, len(chunks))
        )
        if session is not None:
            conversation = self._client.start(session.conversation_state)
            start_chunk = session.next_chunk_index
            images: list[ExtractedImage] = list(session.images)
            opening_message = "Resuming previous session..."
            self._log_event("session", "resumed", chunk=start_chunk, images=len(images))
        else:
            conversation = self._client.start()
            start_chunk = 0
            images = []
            opening_message = "Initializing conversion..."

        resume_page_offset = (
            chunks[start_chunk].start_page - 1 if start_chunk < len(chunks) else total_pages
        )
        tracker = ProgressTracker(
            total_pages=total_pages,
            chunk_count=len(chunks),
            resume_page_offset=resume_page_offset,
            clock=self._clock,
        )
        self._emit_progress(
            tracker.fixed(tracker.percent(resume_page_offset, start_chunk), opening_message)
        )
        retries_before = self._retry_attempt_count()

        for chunk in chunks[start_chunk:]:
            self._process_chunk(
                document=document,
                extractor=extractor,
                conversation=conversation,
                chunk=chunk,
                images=images,
                tracker=tracker,
            )
            if chunk.index < len(chunks) - 1:
                self._sleeper(self._throttle_seconds)

        self._emit_progress(
            tracker.fixed(FINALIZE_PERCENT, "Asking the model to assemble the final document...")
        )
        markup = self._run_stage("finalize", lambda: self._client.finalize(conversation))

        self._emit_progress(tracker.fixed(PACKAGE_PERCENT, "Packaging EPUB file..."))
        default_title = title or document.stem
        book = self._run_stage(
            "package", lambda: self._packager.build(markup, default_title, images)
        )

        self._guard("session", lambda: self._session_store.delete(document.identity_key))
        self._log_event("session", "discarded", reason="complete")
        self._emit_progress(tracker.fixed(COMPLETE_PERCENT, "Done."))
        self._log_stage_complete(
            "convert",
            pages=total_pages,
            chunks=len(chunks),
            images=book.image_count,
        )

        return ConversionResult(
            archive=book.archive,
            title=book.title,
            total_pages=total_pages,
            chunk_count=len(chunks),
            image_count=book.image_count,
            resumed_from_chunk=start_chunk,
            retry_attempts=self._retry_attempt_count() - retries_before,
        )

    def _resolve_session(
        self,
        document: Document,
        resume: bool,
        total_pages: int,
        chunk_count: int,
    ) -> ConversionSession | None:
        """Return the session to resume from, discarding stale or mismatched ones."""

        key = document.identity_key
        if not resume:
            self._session_store.delete(key)
            return None

        session = self._session_store.load(key)
        if session is None:
            return None
        if session.total_pages != total_pages or session.next_chunk_index > chunk_count:
            self._session_store.delete(key)
            self._log_warning(
                "session",
                "discarded_mismatch",
                session_pages=session.total_pages,
                document_pages=total_pages,
                chunk=session.next_chunk_index,
            )
            return None
        return session

    def _process_chunk(
        self,
        *,
        document: Document,
        extractor: DocumentExtractor,
        conversation: Conversation,
        chunk: PageRange,
        images: list[ExtractedImage],
        tracker: ProgressTracker,
    ) -> None:
        """Extract, snapshot, submit, and acknowledge one chunk.

        `images` holds the images of acknowledged chunks and is extended with this
        chunk's images only after the chat service acknowledges it.
        """

        chunk_text, chunk_images = self._guard(
            "extract",
            lambda: self._extract_chunk(extractor, chunk, len(images), tracker),
        )

        self._emit_progress(tracker.at_submission(chunk.index, chunk.end_page))
        self._save_session(
            document,
            ConversionSession(
                next_chunk_index=chunk.index,
                total_pages=tracker.total_pages,
                conversation_state=conversation.export_state(),
                images=tuple(images),
            ),
        )

        self._log_event(
            "submit",
            "chunk_submitted",
            chunk=chunk.index,
            pages=f"{chunk.start_page}-{chunk.end_page}",
            images=len(chunk_images),
        )
        self._guard(
            "submit",
            lambda: self._client.submit_chunk(conversation, chunk_text, chunk_images, chunk),
        )
        images.extend(chunk_images)
        self._log_event("submit", "chunk_acknowledged", chunk=chunk.index)

        self._save_session(
            document,
            ConversionSession(
                next_chunk_index=chunk.index + 1,
                total_pages=tracker.total_pages,
                conversation_state=conversation.export_state(),
                images=tuple(images),
            ),
        )

    def _extract_chunk(
        self,
        extractor: DocumentExtractor,
        chunk: PageRange,
        first_image_index: int,
        tracker: ProgressTracker,
    ) -> tuple[str, list[ExtractedImage]]:
        """Return chunk text with page delimiters and image placeholders, plus its images."""

        text_parts: list[str] = []
        chunk_images: list[ExtractedImage] = []
        for page_number in chunk.page_numbers:
            self._emit_progress(tracker.at_page(page_number, chunk.index))
            page_text = extractor.get_page_text(page_number)
            page_images = self._encode_page_images(extractor, page_number)

            text_parts.append(page_delimiter(page_number))
            text_parts.append(page_text)
            for image in page_images:
                text_parts.append(image_placeholder(first_image_index + len(chunk_images)))
                chunk_images.append(image)
        return "".join(text_parts), chunk_images

    def _encode_page_images(
        self, extractor: DocumentExtractor, page_number: int
    ) -> list[ExtractedImage]:
        """Encode every decodable image on a page, skipping ones that fail."""

        encoded: list[ExtractedImage] = []
        for position, raw_image in enumerate(extractor.get_page_images(page_number)):
            try:
                encoded.append(encode_png(raw_image))
            except (ValueError, OSError) as exc:
                self._log_warning(
                    "extract",
                    "image_skipped",
                    page=page_number,
                    image=position,
                    error_type=type(exc).__name__,
                )
        return encoded

    def _save_session(self, document: Document, session: ConversionSession) -> None:
        self._guard(
            "session",
            lambda: self._session_store.save(document.identity_key, session),
        )
        self._log_event(
            "session",
            "saved",
            chunk=session.next_chunk_index,
            images=len(session.images),
        )

    def _retry_attempt_count(self) -> int:
        return int(getattr(self._client, "retry_attempt_count", 0))

    def _emit_progress(self, progress: Progress) -> None:
        if self._progress_callback is not None:
            self._progress_callback(progress)

    def _guard(self, stage_name: str, action: Callable[[], _StageResult]) -> _StageResult:
        """Run `action`, converting any escaping failure into a `PipelineStageError`."""

        try:
            return action()
        except PipelineStageError:
            raise
        except Exception as exc:
            raise self._fail(stage_name, exc) from exc

    def _fail(self, stage_name: str, exc: Exception) -> PipelineStageError:
        """Log a stage failure and return the user-facing error for it."""

        error = stage_error_from_exception(stage_name, exc)
        if self._run_logger is not None:
            self._run_logger.log_stage_failure(
                stage_name,
                type(exc).__name__,
                category=error.category,
                retriable=error.retriable,
            )
        return error

    def _run_stage(
        self,
        stage_name: str,
        action: Callable[[], _StageResult],
    ) -> _StageResult:
        """Run one named stage and emit start/complete/failure telemetry events."""

        self._log_stage_start(stage_name)
        result = self._guard(stage_name, action)
        self._log_stage_complete(stage_name)
        return result

    def _log_stage_start(self, stage_name: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_stage_start(stage_name, **context)

    def _log_stage_complete(self, stage_name: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_stage_complete(stage_name, **context)

    def _log_event(self, stage_name: str, event: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_event(stage_name, event, **context)

    def _log_warning(self, stage_name: str, event: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_warning(stage_name, event, **context)
