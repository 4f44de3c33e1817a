from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple
from urllib.parse import urlsplit

import httpx


def split_csv(value: str) -> List[str]:
    items = [part.strip() for part in value.split(",")]
    return [item for item in items if item]


@dataclass(frozen=True)
class WhitelistConfig:
    """Allowed hostname suffixes. An empty set allows every host."""

    suffixes: Tuple[str, ...] = ()

    @classmethod
    def from_csv(cls, raw: str | None) -> "WhitelistConfig":
        return cls.from_iterable(split_csv(raw or ""))

    @classmethod
    def from_iterable(cls, items: Iterable[str]) -> "WhitelistConfig":
        return cls(tuple(item.strip().lower() for item in items if item and item.strip()))

    @property
    def allow_all(self) -> bool:
        return not self.suffixes


def hostname_of(url: str) -> str | None:
    """Lowercased host of an http(s) URL the fetch client can also parse."""
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return None
    if parts.scheme not in ("http", "https"):
        return None
    try:
        httpx.URL(url)
    except httpx.InvalidURL:
        return None
    return host or None


def permitted(config: WhitelistConfig, url: str) -> bool:
    """True iff ``url`` parses and its host ends with an allowed suffix.

    Suffix matching lets one entry allow a whole domain: ``miantiao.me``
    permits ``static.miantiao.me``.
    """
    host = hostname_of(url)
    if host is None:
        return False
    if config.allow_all:
        return True
    return any(host.endswith(suffix) for suffix in config.suffixes)


__all__ = ["WhitelistConfig", "permitted", "hostname_of", "split_csv"]
