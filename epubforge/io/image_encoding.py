"""Raster normalization and PNG encoding for extracted page images.

Responsibilities:
- Normalize 3-channel, 4-channel, single-channel, or malformed pixel buffers to RGBA.
- Encode normalized pixels as base64 PNG assets for chat input and archive packaging.
"""

from __future__ import annotations

import base64
import io

from PIL import Image

from ..models.datatypes import ExtractedImage, RawPageImage

PNG_MIME_TYPE = "image/png"


def normalize_to_rgba(width: int, height: int, pixels: bytes) -> Image.Image:
    """Return an RGBA image for a raw pixel buffer of unknown channel layout.

    Buffers whose length matches neither 3 nor 4 bytes per pixel are read as
    grayscale, truncated or zero-padded to the pixel count.
    """

    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}.")

    pixel_count = width * height
    size = (width, height)
    if len(pixels) == pixel_count * 3:
        return Image.frombytes("RGB", size, bytes(pixels)).convert("RGBA")
    if len(pixels) == pixel_count * 4:
        return Image.frombytes("RGBA", size, bytes(pixels))

    gray = bytes(pixels[:pixel_count]).ljust(pixel_count, b"\x00")
    return Image.frombytes("L", size, gray).convert("RGBA")


def encode_png(raw_image: RawPageImage) -> ExtractedImage:
    """Normalize a raw page image to RGBA and encode it as a base64 PNG asset."""

    rgba = normalize_to_rgba(raw_image.width, raw_image.height, raw_image.pixels)
    buffer = io.BytesIO()
    rgba.save(buffer, format="PNG")
    return ExtractedImage(
        mime_type=PNG_MIME_TYPE,
        data=base64.b64encode(buffer.getvalue()).decode("ascii"),
    )
