"""Shared pytest fixtures for the full epubforge test suite."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import pytest
from pypdf import PdfWriter
from pypdf.generic import (
    DecodedStreamObject,
    DictionaryObject,
    NameObject,
    NumberObject,
)

PAGE_WIDTH = 595
PAGE_HEIGHT = 842
FONT_SIZE = 12
LEFT_MARGIN = 72
TOP_Y = 780
LINE_HEIGHT = 16


def _escape_pdf_text(value: str) -> str:
    """Escape literal text for safe inclusion in a PDF text stream."""

    return value.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _image_xobject(width: int, height: int, rgb_pixels: bytes) -> DecodedStreamObject:
    """Return an unfiltered 8-bit DeviceRGB image XObject."""

    image = DecodedStreamObject()
    image.set_data(rgb_pixels)
    image.update(
        {
            NameObject("/Type"): NameObject("/XObject"),
            NameObject("/Subtype"): NameObject("/Image"),
            NameObject("/Width"): NumberObject(width),
            NameObject("/Height"): NumberObject(height),
            NameObject("/ColorSpace"): NameObject("/DeviceRGB"),
            NameObject("/BitsPerComponent"): NumberObject(8),
        }
    )
    return image


def _add_page(writer: PdfWriter, lines: Sequence[str], image_count: int) -> None:
    """Append one page with extractable text lines and `image_count` small RGB images."""

    page = writer.add_blank_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
    font_ref = writer._add_object(
        DictionaryObject(
            {
                NameObject("/Type"): NameObject("/Font"),
                NameObject("/Subtype"): NameObject("/Type1"),
                NameObject("/BaseFont"): NameObject("/Helvetica"),
            }
        )
    )
    resources = DictionaryObject(
        {NameObject("/Font"): DictionaryObject({NameObject("/F1"): font_ref})}
    )

    content_lines = [
        "BT",
        f"/F1 {FONT_SIZE} Tf",
        f"{LEFT_MARGIN} {TOP_Y} Td",
        f"{LINE_HEIGHT} TL",
    ]
    for index, line in enumerate(lines):
        content_lines.append(f"({_escape_pdf_text(line)}) Tj")
        if index < len(lines) - 1:
            content_lines.append("T*")
    content_lines.append("ET")

    if image_count:
        xobjects = DictionaryObject()
        for image_index in range(image_count):
            name = f"/Im{image_index + 1}"
            shade = (40 * (image_index + 1)) % 256
            pixels = bytes([shade, 0, 255 - shade]) * (4 * 4)
            xobjects[NameObject(name)] = writer._add_object(_image_xobject(4, 4, pixels))
            offset = 100 + 60 * image_index
            content_lines.append(f"q 50 0 0 50 {offset} 100 cm {name} Do Q")
        resources[NameObject("/XObject")] = xobjects

    page[NameObject("/Resources")] = resources
    stream = DecodedStreamObject()
    stream.set_data("\n".join(content_lines).encode("latin-1"))
    page[NameObject("/Contents")] = writer._add_object(stream)


def write_pdf(
    path: Path,
    pages: Sequence[Sequence[str]],
    images_per_page: dict[int, int] | None = None,
) -> Path:
    """Write a deterministic PDF with one entry of `pages` per page.

    `images_per_page` maps 1-based page numbers to the number of images drawn there.
    """

    image_counts = images_per_page or {}
    writer = PdfWriter()
    for page_number, lines in enumerate(pages, start=1):
        _add_page(writer, lines, image_counts.get(page_number, 0))
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as handle:
        writer.write(handle)
    return path


PdfFactory = Callable[..., Path]


@pytest.fixture
def pdf_factory(tmp_path: Path) -> PdfFactory:
    """Provide a builder writing numbered-page PDFs under `tmp_path`.

    Call as `pdf_factory("book.pdf", page_count=7, images_per_page={2: 1})`.
    """

    def _build(
        name: str = "book.pdf",
        page_count: int = 3,
        images_per_page: dict[int, int] | None = None,
    ) -> Path:
        """Write a PDF whose page `n` reads `Synthetic page n`."""

        pages = [
            [f"Synthetic page {number}", f"Body line for page {number}."]
            for number in range(1, page_count + 1)
        ]
        return write_pdf(tmp_path / name, pages, images_per_page)

    return _build
