"""Read-through / write-through access to the edge cache.

Lookups happen before any upstream fetch. Writes are scheduled as a Starlette
background task on the outgoing response, so the body goes out first and the
server finishes the write before it retires the request.
"""

from __future__ import annotations

import logging
import time
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from starlette.background import BackgroundTask

from app.cache.store import CachedImage, ImageCache
from app.metrics import CACHE_LOOKUPS

log = logging.getLogger(__name__)


def cache_key(url: str) -> str:
    """Normalized request URL: scheme, host, path and query in original order."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, ""))


def cache_control(max_age: int, s_maxage: bool = False) -> str:
    value = f"public,max-age={max_age}"
    if s_maxage:
        value += f",s-maxage={max_age}"
    return value


class CacheGateway:
    def __init__(self, store: Optional[ImageCache], ttl_s: int = 0) -> None:
        self.store = store
        self.ttl_s = ttl_s

    @property
    def enabled(self) -> bool:
        return self.store is not None

    async def lookup(self, key: str) -> Optional[CachedImage]:
        if self.store is None:
            return None
        try:
            entry = await self.store.get(key)
        except Exception as exc:
            # A broken cache must not take the gateway down; fall through to origin.
            log.warning("cache lookup failed: %s", exc, extra={"cache_key": key})
            CACHE_LOOKUPS.labels(result="error").inc()
            return None
        CACHE_LOOKUPS.labels(result="hit" if entry else "miss").inc()
        return entry

    async def write(self, key: str, entry: CachedImage) -> None:
        if self.store is None:
            return
        if not entry.stored_at:
            entry.stored_at = time.time()
        try:
            await self.store.put(key, entry, self.ttl_s)
        except Exception as exc:
            log.warning("cache write failed: %s", exc, extra={"cache_key": key})
            CACHE_LOOKUPS.labels(result="write_error").inc()
            return
        log.debug("cached response", extra={"cache_key": key, "size": len(entry.body)})

    def deferred_write(self, key: str, entry: CachedImage) -> Optional[BackgroundTask]:
        if self.store is None:
            return None
        return BackgroundTask(self.write, key, entry)


__all__ = ["CacheGateway", "cache_key", "cache_control"]
