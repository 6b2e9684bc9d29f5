"""Durable storage for generated reference images.

`MediaStorage` is the object-storage collaborator: it writes bytes under a
key inside the media directory and returns the permanent public URL the
application serves them from (`/media/<key>`). `save_reference_image`
stores a topic's reference image together with a Pillow thumbnail.
"""

from __future__ import annotations

import asyncio
import os
import re
import time
from pathlib import Path
from typing import Optional, Tuple

import aiofiles

from services.thumbnail_generator import ThumbnailGenerator

MEDIA_URL_PREFIX = "/media"
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "")


def default_media_dir() -> Path:
    """Return MEDIA_DIR, or a `media` folder next to the database."""
    media_dir = os.getenv("MEDIA_DIR")
    if media_dir:
        return Path(media_dir).expanduser()
    return Path(os.getenv("DATABASE_DIR", "database")).expanduser() / "media"


def topic_slug(topic: str) -> str:
    """Return a filesystem-safe key segment for a topic name."""
    slug = re.sub(r"[^\w-]+", "_", topic.strip(), flags=re.UNICODE).strip("_")
    return slug or "topic"


class MediaStorage:
    """Write objects under `root` and hand back their public URLs."""

    def __init__(self, root: Optional[Path | str] = None, public_base_url: str = PUBLIC_BASE_URL) -> None:
        self.root = Path(root) if root is not None else default_media_dir()
        self.root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, key: str) -> Path:
        """Resolve `key` inside the media root, rejecting path traversal."""
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Invalid storage key: {key!r}")
        return path

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}{MEDIA_URL_PREFIX}/{key}"

    async def upload(self, key: str, data: bytes) -> str:
        """Store `data` under `key` and return its permanent URL.

        Raises:
            ValueError: If `data` is empty or the key escapes the media root.
        """
        if not data:
            raise ValueError("Object bytes are required for upload.")
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)
        return self.url_for(key)


async def save_reference_image(
    storage: MediaStorage,
    topic: str,
    image_bytes: bytes,
    thumbnailer: Optional[ThumbnailGenerator] = None,
) -> Tuple[str, Optional[str]]:
    """Upload a topic's reference image and its thumbnail.

    Returns:
        A tuple of `(image_url, thumbnail_url)`. The thumbnail URL is None when
        no thumbnailer is configured.

    Raises:
        ValueError: If the image bytes are missing or not an image.
    """
    if not image_bytes:
        raise ValueError("Image bytes are required for saving.")
    base_key = f"topics/{topic_slug(topic)}/{int(time.time() * 1000)}"

    thumb_url = None
    if thumbnailer is not None:
        # thumbnail generation is blocking -> run in thread
        thumb_bytes = await asyncio.to_thread(thumbnailer.create_thumbnail, image_bytes)
        thumb_url = await storage.upload(f"{base_key}_thumb.png", thumb_bytes)

    image_url = await storage.upload(f"{base_key}.png", image_bytes)
    return image_url, thumb_url
