"""Unit tests for lenient HTML parsing and XHTML serialization."""

from __future__ import annotations

import pytest
from bs4 import Tag

from epubforge.epub.markup import MarkupError, parse_markup, serialize_xhtml


def _tags(element: Tag) -> list[str]:
    """Return direct child element names."""

    return [child.name for child in element.children if isinstance(child, Tag)]


def test_parse_markup_synthesizes_head_and_body_for_fragments() -> None:
    """Bare fragments should be wrapped like a browser would."""

    document = parse_markup("<title>T</title><h1>Heading</h1><p>Text</p>")

    assert document.html.name == "html"
    assert _tags(document.html) == ["head", "body"]
    assert _tags(document.head) == ["title"]
    assert _tags(document.body) == ["h1", "p"]


def test_parse_markup_keeps_existing_document_structure() -> None:
    """Complete documents should keep their head and body content and attributes."""

    document = parse_markup(
        '<!DOCTYPE html><html lang="de"><head><meta charset="utf-8"><title>X</title></head>'
        '<body class="book chapter"><p>One</p></body></html>'
    )

    assert document.html.get("lang") == "de"
    assert _tags(document.head) == ["meta", "title"]
    assert document.body.get("class") == "book chapter"
    assert document.body.get_text() == "One"
    assert list(document.soup.children) == [document.html]


def test_parse_markup_moves_stray_head_elements_and_text_into_place() -> None:
    """Head-only elements before the body go to `head`; other leading content to `body`."""

    document = parse_markup(
        "<html><title>Book</title><p>Lead</p><body><p>Main</p></body><p>Tail</p></html>"
    )

    assert _tags(document.head) == ["title"]
    assert [paragraph.get_text() for paragraph in document.body.find_all("p")] == [
        "Lead",
        "Main",
        "Tail",
    ]


def test_serialize_xhtml_closes_void_elements_and_escapes_text() -> None:
    """Serialization should produce well-formed XHTML."""

    document = parse_markup('<p title="x &amp; y">1 &lt; 2 &amp; 3<br><img src="x.png"></p>')

    assert serialize_xhtml(document.body) == (
        '<body><p title="x &amp; y">1 &lt; 2 &amp; 3<br/><img src="x.png"/></p></body>'
    )


def test_boolean_attributes_get_explicit_values() -> None:
    """Attributes without values should serialize with an empty value."""

    document = parse_markup("<body><input disabled></body>")

    assert serialize_xhtml(document.body) == '<body><input disabled=""/></body>'


def test_new_tag_is_bound_to_the_document() -> None:
    """Elements created through the document should serialize as void when appropriate."""

    document = parse_markup("<p>x</p>")
    document.head.append(document.new_tag("link", rel="stylesheet", href="style.css"))

    assert serialize_xhtml(document.head) == (
        '<head><link rel="stylesheet" href="style.css"/></head>'
    )


@pytest.mark.parametrize("markup", ["", "  ", "just words"])
def test_parse_markup_rejects_element_free_input(markup: str) -> None:
    """Input without any element should raise `MarkupError`."""

    with pytest.raises(MarkupError):
        parse_markup(markup)
