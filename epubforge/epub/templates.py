"""Static EPUB 2 document templates.

Responsibilities:
- Render `container.xml`, `content.opf`, `toc.ncx`, and the content XHTML wrapper.
- Escape every caller-provided text before it is placed in XML.
"""

from __future__ import annotations

from dataclasses import dataclass
from xml.sax.saxutils import escape, quoteattr

MIMETYPE = "application/epub+zip"
CONTAINER_PATH = "META-INF/container.xml"
CONTENT_ROOT = "OEBPS"

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

STYLESHEET_CSS = """body {
  font-family: serif;
  line-height: 1.6;
  padding: 1em;
}
h1, h2, h3, h4, h5, h6 {
  margin-top: 1.5em;
  margin-bottom: 0.5em;
  line-height: 1.2;
}
img {
  max-width: 100%;
  display: block;
  margin: 1em auto;
}
nav ol {
  list-style-type: none;
  padding-left: 0;
}
nav li {
  margin-bottom: 0.5em;
}
"""


@dataclass(frozen=True, slots=True)
class ManifestImage:
    """One image entry in the OPF manifest."""

    item_id: str
    href: str
    media_type: str


@dataclass(frozen=True, slots=True)
class NavPoint:
    """One NCX navigation entry derived from the in-book table of contents."""

    label: str
    href: str


def render_content_opf(
    *,
    title: str,
    language: str,
    identifier: str,
    images: list[ManifestImage],
) -> str:
    """Render the OPF package document listing content, styles, and images."""

    image_items = "".join(
        f"\n    <item id={quoteattr(image.item_id)} href={quoteattr(image.href)} "
        f"media-type={quoteattr(image.media_type)}/>"
        for image in images
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" unique-identifier="pub-id" version="2.0">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:opf="http://www.idpf.org/2007/opf">
    <dc:title>{escape(title)}</dc:title>
    <dc:language>{escape(language)}</dc:language>
    <dc:identifier id="pub-id">{escape(identifier)}</dc:identifier>
  </metadata>
  <manifest>
    <item id="content" href="content.xhtml" media-type="application/xhtml+xml"/>
    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>
    <item id="css" href="style.css" media-type="text/css"/>{image_items}
  </manifest>
  <spine toc="ncx">
    <itemref idref="content"/>
  </spine>
</package>
"""


def render_toc_ncx(*, title: str, identifier: str, nav_points: list[NavPoint]) -> str:
    """Render the NCX navigation map with 1-based play order."""

    points = "".join(
        f"""
    <navPoint id="navpoint-{order}" playOrder="{order}">
      <navLabel><text>{escape(point.label)}</text></navLabel>
      <content src={quoteattr("content.xhtml" + point.href)}/>
    </navPoint>"""
        for order, point in enumerate(nav_points, start=1)
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE ncx PUBLIC "-//NISO//DTD ncx 2005-1//EN" "http://www.daisy.org/z3986/2005/ncx-2005-1.dtd">
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <head>
    <meta name="dtb:uid" content={quoteattr(identifier)}/>
    <meta name="dtb:depth" content="1"/>
    <meta name="dtb:totalPageCount" content="0"/>
    <meta name="dtb:maxPageNumber" content="0"/>
  </head>
  <docTitle>
    <text>{escape(title)}</text>
  </docTitle>
  <navMap>{points}
  </navMap>
</ncx>
"""


def render_content_xhtml(head_and_body: str, *, language: str) -> str:
    """Wrap serialized `head` and `body` markup in the XHTML 1.1 document shell."""

    lang = quoteattr(language)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.1//EN" "http://www.w3.org/TR/xhtml11/DTD/xhtml11.dtd">
<html xmlns="http://www.w3.org/1999/xhtml" xml:lang={lang}>
{head_and_body}
</html>
"""
