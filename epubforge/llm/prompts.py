"""Prompt template library for the chunked conversion conversation.

Responsibilities:
- Centralize the system instruction, per-chunk turn text, and final assembly prompt.
- Define the structured response schema requested for the final markup.
"""

from __future__ import annotations

from typing import Any

from ..models.datatypes import PageRange

MARKUP_FIELD = "htmlContent"


class PromptLibrary:
    """Build prompt strings for the PDF-to-EPUB conversation."""

    def system_instruction(self) -> str:
        """Return the fixed system instruction sent at conversation start."""

        return (
            "You are an expert document converter. I will send you the content of a PDF "
            "in several parts or chunks. Your task is to analyze each chunk and hold it in "
            "memory. Do not generate any output until I tell you I have sent the final "
            "chunk. Your final goal will be to produce a single, well-structured, reflowable "
            "HTML file suitable for an EPUB, complete with a linked Table of Contents and "
            "embedded images based on all the content provided."
        )

    def chunk_prompt(self, page_range: PageRange, chunk_text: str) -> str:
        """Return the text part of one chunk submission turn."""

        return (
            f"Here is the content for pages {page_range.start_page}-{page_range.end_page}. "
            "Please process it and wait for the next chunk. PDF Content for this chunk is "
            f"below:\n\n{chunk_text}"
        )

    def final_prompt(self) -> str:
        """Return the final instruction describing the markup transformation contract."""

        return (
            "I have now sent you all the chunks of the PDF. Please generate the complete "
            "HTML document based on all the content provided so far. Follow these "
            "instructions carefully:\n\n"
            "1. Analyze the structure: identify titles, chapters, headings (h1, h2, h3), "
            "paragraphs, lists, and other semantic elements.\n"
            "2. Generate a Table of Contents: an ordered list (<ol>) inside a <nav> element "
            "at the very beginning of the body, listing all major sections (h1 and h2).\n"
            "3. Create internal links: every TOC item links to its heading. Give each heading "
            "a unique, URL-friendly `id` derived from its text (\"Chapter 1: The Beginning\" "
            "becomes id=\"chapter-1-the-beginning\").\n"
            "4. Embed images: placeholders appear as [IMAGE_n], where n is the index of the "
            "provided image. Replace each with an <img> whose src is the placeholder "
            "itself (src=\"[IMAGE_0]\"); the image data is attached when the book is packaged. "
            "Images are centered block elements.\n"
            "5. Reflowable layout: a single column, no multi-column or fixed layout. Use "
            "semantic tags (<p>, <h1>, <h2>, <ul>, <ol>, <li>, <strong>, <em>).\n"
            "6. Clean HTML: a complete document with <html>, <head> and <body>. The <head> "
            "must contain a <title>. Keep inline style minimal (serif font, readable line "
            "height).\n\n"
            f"Return a single JSON object with one key, \"{MARKUP_FIELD}\", containing the "
            "entire generated HTML as a string."
        )

    def response_format(self) -> dict[str, Any]:
        """Return the JSON-schema response format for the final markup request."""

        return {
            "type": "json_schema",
            "json_schema": {
                "name": "epub_markup",
                "strict": True,
                "schema": {
                    "type": "object",
                    "properties": {
                        MARKUP_FIELD: {
                            "type": "string",
                            "description": "The full HTML content of the converted document.",
                        }
                    },
                    "required": [MARKUP_FIELD],
                    "additionalProperties": False,
                },
            },
        }
