"""Edge cache package exports."""

from __future__ import annotations

import logging
from typing import Optional

from .gateway import CacheGateway, cache_control, cache_key
from .memory_store import MemoryImageCache
from .redis_store import RedisImageCache
from .store import CachedImage, ImageCache

log = logging.getLogger(__name__)


def build_store(
    backend: str,
    *,
    max_entries: int = 256,
    redis_url: Optional[str] = None,
    prefix: str = "imagegw:cache",
) -> ImageCache:
    """Create the configured cache backend ("memory" or "redis")."""
    if backend.strip().lower() == "redis":
        from redis.asyncio import Redis

        if not redis_url:
            raise ValueError("CACHE_BACKEND=redis requires REDIS_URL")
        log.info("using redis image cache", extra={"prefix": prefix})
        return RedisImageCache(Redis.from_url(redis_url), ns=prefix)
    return MemoryImageCache(max_entries=max_entries)


__all__ = [
    "CachedImage",
    "ImageCache",
    "CacheGateway",
    "MemoryImageCache",
    "RedisImageCache",
    "build_store",
    "cache_control",
    "cache_key",
]
