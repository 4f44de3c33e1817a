"""Output encoding: format name -> codec, plus the content-type table."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Callable, Dict

from PIL import Image

from app.imaging import codecs
from app.imaging.errors import EncodeError
from app.imaging.handle import ImageHandle

OUTPUT_FORMATS: Dict[str, str] = {
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}
DEFAULT_FORMAT = "webp"


@dataclass(frozen=True)
class EncodedImage:
    body: bytes
    content_type: str


def normalize_format(fmt: str | None) -> str:
    name = (fmt or "").strip().lower()
    return name if name in OUTPUT_FORMATS else DEFAULT_FORMAT


def content_type_for(fmt: str | None) -> str:
    return OUTPUT_FORMATS[normalize_format(fmt)]


def _jpeg(handle: ImageHandle, quality: int) -> bytes:
    buf = io.BytesIO()
    img = handle.image
    # JPEG has no alpha channel: flatten onto white.
    with Image.new("RGB", img.size, (255, 255, 255)) as flat:
        flat.paste(img, mask=img.getchannel("A"))
        flat.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def _png(handle: ImageHandle, quality: int) -> bytes:
    buf = io.BytesIO()
    handle.image.save(buf, format="PNG", optimize=False)
    return buf.getvalue()


def _webp(handle: ImageHandle, quality: int) -> bytes:
    return codecs.webp_encode(handle.raw_pixels(), handle.width, handle.height, quality)


_ENCODERS: Dict[str, Callable[[ImageHandle, int], bytes]] = {
    "jpeg": _jpeg,
    "jpg": _jpeg,
    "png": _png,
    "webp": _webp,
}


def encode(handle: ImageHandle, fmt: str | None, quality: int) -> EncodedImage:
    """Encode the handle's current image; quality is ignored for PNG."""
    name = normalize_format(fmt)
    try:
        body = _ENCODERS[name](handle, quality)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeError(f"failed to encode image to {name}: {exc}") from exc
    return EncodedImage(body=body, content_type=OUTPUT_FORMATS[name])


__all__ = [
    "OUTPUT_FORMATS",
    "DEFAULT_FORMAT",
    "EncodedImage",
    "normalize_format",
    "content_type_for",
    "encode",
]
