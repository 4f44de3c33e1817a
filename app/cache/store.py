"""Edge cache interface and value container."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, runtime_checkable


@dataclass
class CachedImage:
    status: int
    headers: Dict[str, str]
    body: bytes
    content_type: Optional[str] = None
    stored_at: float = 0.0
    hits: int = field(default=0, compare=False)


@runtime_checkable
class ImageCache(Protocol):
    async def get(self, key: str) -> Optional[CachedImage]:
        ...

    async def put(self, key: str, entry: CachedImage, ttl_s: int) -> None:
        ...

    async def purge(self, key: str) -> bool:
        ...
