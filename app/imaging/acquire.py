"""Fetch an image over HTTP and decode it into an owned handle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional

import httpx

from app.imaging import codecs
from app.imaging.errors import DecodeError, FetchError, UpstreamFetchError
from app.imaging.handle import ImageHandle

log = logging.getLogger(__name__)

# httpx hands back decoded bodies, so length/encoding headers no longer apply.
_DROP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "transfer-encoding",
        "content-encoding",
        "content-length",
        "te",
        "trailer",
        "upgrade",
        "proxy-authenticate",
        "proxy-authorization",
    }
)


def passthrough_headers(headers: Mapping[str, str] | httpx.Headers) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for key, value in headers.items():
        lk = key.lower()
        if lk in _DROP_HEADERS:
            continue
        out.setdefault(lk, value)
    return out


def select_forward_headers(
    incoming: Mapping[str, str], allowed: Iterable[str]
) -> Dict[str, str]:
    """Pick the request headers that may be forwarded to the image origin."""
    allow = {name.strip().lower() for name in allowed if name and name.strip()}
    out: Dict[str, str] = {}
    for key, value in incoming.items():
        if key.lower() in allow:
            out[key.lower()] = value
    return out


def media_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


@dataclass
class Acquired:
    """A decoded image plus the bytes and headers it came from."""

    handle: ImageHandle
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)


async def fetch(
    client: httpx.AsyncClient, url: str, headers: Mapping[str, str] | None = None
) -> httpx.Response:
    """GET ``url``; non-success statuses raise ``UpstreamFetchError``."""
    try:
        resp = await client.get(url, headers=dict(headers or {}), follow_redirects=True)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise FetchError(url, type(exc).__name__) from exc
    if not resp.is_success:
        log.info("upstream fetch failed", extra={"url": url, "status": resp.status_code})
        raise UpstreamFetchError(url, resp)
    return resp


def decode_image(
    body: bytes,
    content_type: Optional[str],
    *,
    headers: Optional[Mapping[str, str]] = None,
    label: str = "primary",
) -> ImageHandle:
    """Decode by declared content type.

    WEBP goes through the WEBP codec to raw pixels and is rehydrated with
    explicit dimensions; everything else is left to Pillow's own detection.
    """
    if media_type(content_type) == "image/webp":
        try:
            pixels, width, height = codecs.webp_decode(body)
        except (OSError, ValueError, SyntaxError) as exc:
            raise DecodeError(
                f"failed to decode webp image: {exc}", source=body, headers=headers
            ) from exc
        try:
            return ImageHandle.from_raw(pixels, width, height, label=label)
        except DecodeError as exc:
            raise DecodeError(str(exc), source=body, headers=headers) from exc
    try:
        return ImageHandle.from_bytes(body, label=label)
    except DecodeError as exc:
        raise DecodeError(str(exc), source=body, headers=headers) from exc


async def acquire(
    client: httpx.AsyncClient,
    url: str,
    forwarded_headers: Mapping[str, str] | None = None,
    *,
    label: str = "primary",
) -> Acquired:
    resp = await fetch(client, url, forwarded_headers)
    body = resp.content
    headers = passthrough_headers(resp.headers)
    ctype = resp.headers.get("content-type", "")
    handle = decode_image(body, ctype, headers=headers, label=label)
    return Acquired(handle=handle, body=body, headers=headers)


__all__ = [
    "Acquired",
    "acquire",
    "decode_image",
    "fetch",
    "media_type",
    "passthrough_headers",
    "select_forward_headers",
]
