"""Model markup parsing and XHTML serialization on top of BeautifulSoup.

Responsibilities:
- Parse model-generated HTML with the `html.parser` tree builder.
- Synthesize missing `html`, `head`, and `body` elements the way browsers do.
- Serialize head and body back as XHTML for the EPUB content document.
"""

from __future__ import annotations

from dataclasses import dataclass

from bs4 import BeautifulSoup, NavigableString, PageElement, Tag
from bs4.exceptions import ParserRejectedMarkup

_HEAD_ELEMENTS = frozenset({"title", "meta", "link", "style", "base", "script"})


class MarkupError(ValueError):
    """Raised when generated markup cannot be turned into a document tree."""


@dataclass(frozen=True, slots=True)
class ParsedDocument:
    """Parsed markup with its `html` root holding exactly one `head` then one `body`."""

    soup: BeautifulSoup
    html: Tag
    head: Tag
    body: Tag

    def new_tag(self, name: str, **attrs: str) -> Tag:
        """Create an element bound to this document's tree builder."""

        return self.soup.new_tag(name, attrs=attrs)


def parse_markup(markup: str) -> ParsedDocument:
    """Parse markup and return the document with `head` and `body` present.

    Raises:
        MarkupError: If the markup is blank or contains no elements.
    """

    if not markup or not markup.strip():
        raise MarkupError("Generated markup is empty.")

    try:
        soup = BeautifulSoup(markup, "html.parser", multi_valued_attributes=None)
    except ParserRejectedMarkup as exc:
        raise MarkupError(f"Generated markup could not be parsed: {exc}") from exc
    if soup.find(True) is None:
        raise MarkupError("Generated markup does not contain any HTML elements.")

    return _normalize_document(soup)


def serialize_xhtml(element: Tag) -> str:
    """Serialize an element subtree as XHTML (void elements self-closed)."""

    return element.decode(formatter="minimal")


def _is_content_node(node: PageElement) -> bool:
    """Return whether a node belongs in the document body (not doctype or declaration)."""

    return isinstance(node, Tag) or type(node) is NavigableString


def _normalize_document(soup: BeautifulSoup) -> ParsedDocument:
    """Rebuild the soup as one `html` root holding one `head` followed by one `body`."""

    html = soup.find("html", recursive=False)
    stray_nodes = [node for node in list(soup.contents) if node is not html]
    if html is None:
        html = soup.new_tag("html")
        for node in stray_nodes:
            node.extract()
            if _is_content_node(node):
                html.append(node)
    else:
        html.extract()
        for node in stray_nodes:
            node.extract()
            if isinstance(node, Tag):
                html.append(node)

    head = html.find("head", recursive=False)
    if head is None:
        head = soup.new_tag("head")
    existing_body = html.find("body", recursive=False)
    body = existing_body if existing_body is not None else soup.new_tag("body")

    seen_body = False
    leading: list[PageElement] = []
    for child in list(html.contents):
        if child is head:
            continue
        if child is existing_body:
            seen_body = True
            continue
        child.extract()
        if isinstance(child, Tag) and child.name in _HEAD_ELEMENTS and not seen_body:
            head.append(child)
        elif not isinstance(child, Tag) and not child.strip():
            continue
        elif seen_body:
            body.append(child)
        else:
            leading.append(child)
    for index, child in enumerate(leading):
        body.insert(index, child)

    html.clear()
    html.append(head)
    html.append(body)
    soup.append(html)
    return ParsedDocument(soup=soup, html=html, head=head, body=body)
