"""Deterministic EPUB 2 archive packaging.

Responsibilities:
- Turn finalized model markup into a single-document EPUB 2 container.
- Resolve `[IMAGE_n]` placeholders against the collected image sequence.
- Extract collected and inline `data:` images into archive files with manifest entries.
- Build the NCX navigation map from the in-book `nav ol li a` table of contents.
- Keep archive bytes deterministic for identical markup across replays.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from hashlib import sha256
from io import BytesIO
import re
from typing import Callable, Protocol, Sequence
import uuid
import zipfile

from bs4 import NavigableString, Tag

from ..models.datatypes import ExtractedImage
from ..telemetry.logger import RunLogger
from .markup import ParsedDocument, parse_markup, serialize_xhtml
from .templates import (
    CONTAINER_PATH,
    CONTAINER_XML,
    CONTENT_ROOT,
    MIMETYPE,
    STYLESHEET_CSS,
    ManifestImage,
    NavPoint,
    render_content_opf,
    render_content_xhtml,
    render_toc_ncx,
)

_FIXED_ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)
_DATA_URI_MIME_PATTERN = re.compile(r":(.*?);")
_VALID_FOLDER_SEGMENT = re.compile(r"^[A-Za-z0-9._-]+$")
_IMAGE_PLACEHOLDER_PATTERN = re.compile(r"\[IMAGE_(\d+)\]")
_IMAGE_REFERENCE_PATTERN = re.compile(r"^\[?IMAGE_(\d+)\]?$")
_RAW_TEXT_ELEMENTS = frozenset({"script", "style"})
DEFAULT_LANGUAGE = "en"


class ArchiveFolderError(RuntimeError):
    """Raised when a folder cannot be allocated inside the archive."""


class ArchiveFolder(Protocol):
    """Folder handle inside an archive being written."""

    def folder(self, name: str) -> ArchiveFolder:
        """Return a nested folder handle."""

    def file(self, name: str, data: bytes | str, *, compress: bool = True) -> None:
        """Write one file into this folder."""


class ArchiveWriter(ArchiveFolder, Protocol):
    """Root archive handle; `close` returns the finished archive bytes."""

    def close(self) -> bytes:
        """Finish the archive and return its bytes."""


class _ZipFolder:
    """Path-prefixed view over a `ZipArchiveWriter`."""

    def __init__(self, writer: ZipArchiveWriter, prefix: str) -> None:
        self._writer = writer
        self._prefix = prefix

    def folder(self, name: str) -> _ZipFolder:
        return _ZipFolder(self._writer, _join_folder(self._prefix, name))

    def file(self, name: str, data: bytes | str, *, compress: bool = True) -> None:
        self._writer.file(f"{self._prefix}/{name}", data, compress=compress)


class ZipArchiveWriter:
    """In-memory zip writer with fixed entry timestamps."""

    def __init__(self) -> None:
        self._buffer = BytesIO()
        self._zip = zipfile.ZipFile(self._buffer, mode="w")

    def folder(self, name: str) -> _ZipFolder:
        return _ZipFolder(self, _join_folder("", name))

    def file(self, name: str, data: bytes | str, *, compress: bool = True) -> None:
        info = zipfile.ZipInfo(name, date_time=_FIXED_ZIP_TIMESTAMP)
        info.compress_type = zipfile.ZIP_DEFLATED if compress else zipfile.ZIP_STORED
        info.external_attr = 0o644 << 16
        payload = data.encode("utf-8") if isinstance(data, str) else data
        self._zip.writestr(info, payload)

    def close(self) -> bytes:
        self._zip.close()
        return self._buffer.getvalue()


def _join_folder(prefix: str, name: str) -> str:
    """Validate one folder segment and join it to `prefix`."""

    if not _VALID_FOLDER_SEGMENT.match(name or "") or name in {".", ".."}:
        raise ArchiveFolderError(f"Could not create `{name}` folder.")
    return f"{prefix}/{name}" if prefix else name


@dataclass(frozen=True, slots=True)
class PackagedBook:
    """Packaged archive plus the metadata derived while building it.

    Attributes:
        archive: EPUB archive bytes.
        title: Title written to OPF and NCX metadata.
        language: `dc:language` value.
        image_count: Number of images written under `OEBPS/images/`.
        nav_point_count: Number of NCX navigation entries.
    """

    archive: bytes
    title: str
    language: str
    image_count: int
    nav_point_count: int


@dataclass(frozen=True, slots=True)
class _ImageFile:
    filename: str
    media_type: str
    content: bytes


class EpubPackager:
    """Build EPUB 2 containers from finalized HTML markup."""

    def __init__(
        self,
        archive_factory: Callable[[], ArchiveWriter] = ZipArchiveWriter,
        run_logger: RunLogger | None = None,
    ) -> None:
        self._archive_factory = archive_factory
        self._run_logger = run_logger

    def package(
        self,
        markup: str,
        default_title: str,
        images: Sequence[ExtractedImage] = (),
    ) -> bytes:
        """Return EPUB archive bytes for `markup` and the collected `images`.

        Raises:
            MarkupError: If the markup is blank or contains no elements.
            ArchiveFolderError: If an archive folder cannot be allocated.
        """

        return self.build(markup, default_title, images).archive

    def build(
        self,
        markup: str,
        default_title: str,
        images: Sequence[ExtractedImage] = (),
    ) -> PackagedBook:
        """Return the packaged archive together with its derived metadata.

        `images` is the collected image sequence; `[IMAGE_n]` placeholders in
        the markup resolve to `images[n]`.
        """

        document = parse_markup(markup)

        title = _document_title(document.html) or default_title
        language = (document.html.get("lang") or "").strip() or DEFAULT_LANGUAGE
        identifier = _book_identifier(markup)

        image_files = self._extract_images(document, images)
        document.head.append(
            document.new_tag("link", rel="stylesheet", type="text/css", href="style.css")
        )
        nav_points = _collect_nav_points(document.html)

        archive = self._archive_factory()
        archive.file("mimetype", MIMETYPE, compress=False)
        archive.file(CONTAINER_PATH, CONTAINER_XML)
        content_folder = archive.folder(CONTENT_ROOT)
        images_folder = content_folder.folder("images")
        for image_file in image_files:
            images_folder.file(image_file.filename, image_file.content)
        content_folder.file("style.css", STYLESHEET_CSS)
        content_folder.file(
            "toc.ncx",
            render_toc_ncx(title=title, identifier=identifier, nav_points=nav_points),
        )
        content_folder.file(
            "content.xhtml",
            render_content_xhtml(
                serialize_xhtml(document.head) + "\n" + serialize_xhtml(document.body),
                language=language,
            ),
        )
        content_folder.file(
            "content.opf",
            render_content_opf(
                title=title,
                language=language,
                identifier=identifier,
                images=[
                    ManifestImage(
                        item_id=f"img{index}",
                        href=f"images/{image_file.filename}",
                        media_type=image_file.media_type,
                    )
                    for index, image_file in enumerate(image_files)
                ],
            ),
        )

        return PackagedBook(
            archive=archive.close(),
            title=title,
            language=language,
            image_count=len(image_files),
            nav_point_count=len(nav_points),
        )

    def _extract_images(
        self, document: ParsedDocument, images: Sequence[ExtractedImage]
    ) -> list[_ImageFile]:
        """Move images into archive files and rewrite every `<img>` `src` to point at them.

        An `<img>` source is either a `data:` URI or a reference to a collected
        image (`[IMAGE_n]` or `IMAGE_n`). Bare `[IMAGE_n]` text tokens in the body
        become `<img>` elements first. A collected image is written once no matter
        how often it is referenced. Files are numbered in document order.
        """

        self._expand_placeholder_text(document, len(images))

        image_files: list[_ImageFile] = []
        collected_files: dict[int, _ImageFile] = {}
        for img in list(document.html.find_all("img")):
            src = (img.get("src") or "").strip()
            reference = _IMAGE_REFERENCE_PATTERN.match(src)
            if reference is not None:
                image_index = int(reference.group(1))
                image_file = collected_files.get(image_index)
                if image_file is None and image_index < len(images):
                    image = images[image_index]
                    image_file = self._decode_image(len(image_files), image.mime_type, image.data)
                    if image_file is not None:
                        collected_files[image_index] = image_file
                        image_files.append(image_file)
                if image_file is None:
                    self._log_skipped_image("unknown_placeholder", placeholder=image_index)
                    img.decompose()
                    continue
                img["src"] = f"images/{image_file.filename}"
                continue

            if not src.startswith("data:"):
                continue
            header, _, encoded = src.partition(",")
            mime_match = _DATA_URI_MIME_PATTERN.search(header)
            if mime_match is None or not encoded:
                continue
            image_file = self._decode_image(len(image_files), mime_match.group(1), encoded)
            if image_file is None:
                continue
            img["src"] = f"images/{image_file.filename}"
            image_files.append(image_file)
        return image_files

    def _expand_placeholder_text(self, document: ParsedDocument, image_count: int) -> None:
        """Replace `[IMAGE_n]` text tokens for known images with `<img>` elements."""

        for text in list(document.body.find_all(string=_IMAGE_PLACEHOLDER_PATTERN)):
            if type(text) is not NavigableString:
                continue
            if text.parent is not None and text.parent.name in _RAW_TEXT_ELEMENTS:
                continue

            pieces: list[NavigableString | Tag] = []
            consumed = 0
            for match in _IMAGE_PLACEHOLDER_PATTERN.finditer(text):
                image_index = int(match.group(1))
                if image_index >= image_count:
                    self._log_skipped_image("unknown_placeholder", placeholder=image_index)
                    continue
                if match.start() > consumed:
                    pieces.append(NavigableString(text[consumed : match.start()]))
                pieces.append(document.new_tag("img", src=f"[IMAGE_{image_index}]", alt=""))
                consumed = match.end()
            if not pieces:
                continue
            if consumed < len(text):
                pieces.append(NavigableString(text[consumed:]))
            text.replace_with(*pieces)

    def _decode_image(self, position: int, media_type: str, encoded: str) -> _ImageFile | None:
        """Decode base64 image data into the archive file at `position`, or `None`."""

        try:
            content = base64.b64decode("".join(encoded.split()), validate=True)
        except (binascii.Error, ValueError):
            self._log_skipped_image("invalid_base64")
            return None
        filename = f"image{position}.{_extension_for(media_type)}"
        return _ImageFile(filename=filename, media_type=media_type, content=content)

    def _log_skipped_image(self, reason: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_warning("package", "image_skipped", reason=reason, **context)


def _document_title(html: Tag) -> str:
    title = html.find("title")
    if title is None:
        return ""
    return title.get_text().strip()


def _extension_for(media_type: str) -> str:
    """Return a file extension from a MIME subtype (`image/svg+xml` -> `svg`)."""

    subtype = media_type.partition("/")[2].split("+", 1)[0].strip().lower()
    return subtype or "jpeg"


def _collect_nav_points(html: Tag) -> list[NavPoint]:
    return [
        NavPoint(label=anchor.get_text(), href=anchor.get("href") or "")
        for anchor in html.select("nav ol li a")
    ]


def _book_identifier(markup: str) -> str:
    """Derive a stable `urn:uuid:` identifier from the markup content."""

    digest = sha256(markup.encode("utf-8")).hexdigest()
    return f"urn:uuid:{uuid.uuid5(uuid.NAMESPACE_URL, f'epubforge:{digest}')}"
