import hashlib
import os
import time
from uuid import uuid4
from typing import Awaitable, Callable, Optional

import aiofiles

from app.core.config import settings


class ImageCache:
    """On-disk cache for upstream images, keyed by upstream path."""

    def __init__(self, cache_dir: Optional[str] = None, max_age_seconds: Optional[int] = None):
        self.cache_dir = cache_dir or settings.IMAGE_CACHE_DIR
        self.max_age_seconds = (
            max_age_seconds if max_age_seconds is not None else settings.IMAGE_CACHE_MAX_AGE_SECONDS
        )
        os.makedirs(self.cache_dir, exist_ok=True)

    def _path_for(self, key: str) -> str:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return os.path.join(self.cache_dir, digest[:2], f"{digest}.webp")

    def is_fresh(self, key: str) -> bool:
        full_path = self._path_for(key)
        if not os.path.exists(full_path):
            return False
        return time.time() - os.path.getmtime(full_path) <= self.max_age_seconds

    async def read(self, key: str) -> Optional[bytes]:
        if not self.is_fresh(key):
            return None
        async with aiofiles.open(self._path_for(key), "rb") as f:
            return await f.read()

    async def write(self, key: str, content: bytes) -> str:
        full_path = self._path_for(key)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        tmp_path = f"{full_path}.{uuid4().hex}.tmp"
        async with aiofiles.open(tmp_path, "wb") as f:
            await f.write(content)
        os.replace(tmp_path, full_path)
        return full_path

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[bytes]]) -> bytes:
        cached = await self.read(key)
        if cached is not None:
            return cached
        content = await fetch()
        await self.write(key, content)
        return content


_image_cache: Optional[ImageCache] = None


def get_image_cache() -> ImageCache:
    global _image_cache
    if _image_cache is None:
        _image_cache = ImageCache()
    return _image_cache
