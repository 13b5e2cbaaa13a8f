"""epubforge pipeline package.

This package contains the conversion orchestrator and its helpers for page
chunking, progress estimation, and stage error mapping.
"""

from .chunking import CHUNK_SIZE_PAGES, chunk_ranges, num_chunks
from .orchestrator import ConversionPipeline

__all__ = ["CHUNK_SIZE_PAGES", "ConversionPipeline", "chunk_ranges", "num_chunks"]
