"""EPUB container packaging from generated markup."""

from .markup import MarkupError
from .packager import ArchiveFolderError, EpubPackager, PackagedBook

__all__ = ["ArchiveFolderError", "EpubPackager", "MarkupError", "PackagedBook"]
