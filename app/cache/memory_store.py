"""In-memory edge cache (dev/test, single process) with LRU bound and TTL."""
from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from typing import Optional, Tuple

from app.cache.store import CachedImage, ImageCache
from app.metrics import CACHE_SIZE


class MemoryImageCache(ImageCache):
    """Simple in-memory cache; NOT shared across workers."""

    def __init__(self, max_entries: int = 256) -> None:
        self.max_entries = max_entries
        # key -> (entry, expiry_epoch_seconds)
        self._values: "OrderedDict[str, Tuple[CachedImage, float]]" = OrderedDict()
        self._mu = asyncio.Lock()

    def _now(self) -> float:
        return time.time()

    def __len__(self) -> int:
        return len(self._values)

    async def get(self, key: str) -> Optional[CachedImage]:
        async with self._mu:
            tup = self._values.get(key)
            if tup is None:
                return None
            entry, expiry = tup
            if expiry and expiry <= self._now():
                self._values.pop(key, None)
                CACHE_SIZE.set(len(self._values))
                return None
            self._values.move_to_end(key)
            entry.hits += 1
            return entry

    async def put(self, key: str, entry: CachedImage, ttl_s: int) -> None:
        async with self._mu:
            expiry = self._now() + float(ttl_s) if ttl_s > 0 else 0.0
            if not entry.stored_at:
                entry.stored_at = self._now()
            self._values[key] = (entry, expiry)
            self._values.move_to_end(key)
            if self.max_entries > 0:
                while len(self._values) > self.max_entries:
                    self._values.popitem(last=False)
            CACHE_SIZE.set(len(self._values))

    async def purge(self, key: str) -> bool:
        async with self._mu:
            existed = self._values.pop(key, None) is not None
            CACHE_SIZE.set(len(self._values))
            return existed


__all__ = ["MemoryImageCache"]
