"""Data models used across epubforge modules."""

from .datatypes import (
    ConversionResult,
    ConversionSession,
    Document,
    ExtractedImage,
    PageRange,
    Progress,
    RawPageImage,
)

__all__ = [
    "ConversionResult",
    "ConversionSession",
    "Document",
    "ExtractedImage",
    "PageRange",
    "Progress",
    "RawPageImage",
]
