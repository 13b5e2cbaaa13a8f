"""Top-level package for epubforge.

This package converts paginated PDF documents into reflowable EPUB books by
streaming page chunks through a multi-turn chat model. The main orchestration
entry point is `ConversionPipeline`.
"""

from .pipeline import ConversionPipeline

__all__ = ["ConversionPipeline", "__version__"]

__version__ = "0.1.0"
