"""Redis-backed edge cache shared by all workers."""

from __future__ import annotations

import base64
import json
import time
from typing import Dict, Optional

from redis.asyncio import Redis

from app.cache.store import CachedImage, ImageCache


def _ns(ns: str, *parts: str) -> str:
    return ":".join((ns, *parts))


class RedisImageCache(ImageCache):
    """Stores each entry as one JSON value with the body base64-encoded."""

    def __init__(self, redis: Redis, ns: str = "imagegw:cache") -> None:
        self.r = redis
        self.ns = ns

    def _k(self, key: str) -> str:
        return _ns(self.ns, key)

    async def get(self, key: str) -> Optional[CachedImage]:
        raw = await self.r.get(self._k(key))
        if not raw:
            return None
        data = json.loads(raw)
        headers: Dict[str, str] = {k.lower(): v for k, v in data.get("headers", {}).items()}
        return CachedImage(
            status=int(data["status"]),
            headers=headers,
            body=base64.b64decode(data["body_b64"]),
            content_type=data.get("content_type"),
            stored_at=float(data.get("stored_at", 0.0)),
        )

    async def put(self, key: str, entry: CachedImage, ttl_s: int) -> None:
        value = {
            "status": int(entry.status),
            "headers": {k.lower(): v for k, v in entry.headers.items()},
            "body_b64": base64.b64encode(entry.body).decode("ascii"),
            "content_type": entry.content_type,
            "stored_at": float(entry.stored_at or time.time()),
        }
        if ttl_s > 0:
            await self.r.set(self._k(key), json.dumps(value), ex=ttl_s)
        else:
            await self.r.set(self._k(key), json.dumps(value))

    async def purge(self, key: str) -> bool:
        return bool(await self.r.delete(self._k(key)))


__all__ = ["RedisImageCache"]
