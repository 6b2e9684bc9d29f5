"""Thumbnail generator service.

Small wrapper around Pillow that turns raw image bytes into a PNG thumbnail
fitting within `max_size` while preserving aspect ratio. Used for the
reference images shown next to drawing guides.

Example:
    tg = ThumbnailGenerator(max_size=(256, 256))
    thumb_png = tg.create_thumbnail(image_bytes)
"""
from __future__ import annotations

import io
from typing import Tuple

from PIL import Image


class ThumbnailGenerator:
    """Generate PNG thumbnails from image bytes.

    Args:
        max_size: Maximum width and height for the thumbnail. Defaults to (256, 256).
        background: Optional background color used when flattening images with alpha.
            If None, images with alpha are flattened against white.
    """

    def __init__(self, max_size: Tuple[int, int] = (256, 256), background: Tuple[int, int, int] | None = None):
        self.max_size = max_size
        self.background = background or (255, 255, 255)

    def create_thumbnail(self, data: bytes) -> bytes:
        """Create a PNG thumbnail from raw image bytes.

        Raises:
            ValueError: If the bytes cannot be opened as an image.
        """
        try:
            src = Image.open(io.BytesIO(data))
            src.load()
        except Exception as exc:
            raise ValueError("Bytes are not a supported image format") from exc

        src = src.convert("RGBA")
        src.thumbnail(self.max_size, Image.LANCZOS)

        # Flatten alpha against the background color
        background = Image.new("RGB", src.size, self.background)
        background.paste(src, mask=src.split()[3])

        out_io = io.BytesIO()
        background.save(out_io, format="PNG", optimize=True)
        return out_io.getvalue()
