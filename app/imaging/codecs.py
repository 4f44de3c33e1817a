"""WEBP codec adapter working on raw RGBA pixel buffers (libwebp via Pillow)."""

from __future__ import annotations

import io
from typing import Tuple

from PIL import Image, features


def webp_available() -> bool:
    return bool(features.check("webp"))


def webp_decode(data: bytes) -> Tuple[bytes, int, int]:
    """Decode WEBP bytes to ``(rgba_pixels, width, height)``."""
    with Image.open(io.BytesIO(data), formats=["WEBP"]) as img:
        img.load()
        rgba = img.convert("RGBA")
        try:
            return rgba.tobytes(), rgba.width, rgba.height
        finally:
            rgba.close()


def webp_encode(pixels: bytes, width: int, height: int, quality: int) -> bytes:
    """Encode raw RGBA pixels as WEBP at ``quality``."""
    img = Image.frombuffer("RGBA", (width, height), pixels, "raw", "RGBA", 0, 1)
    buf = io.BytesIO()
    try:
        img.save(buf, format="WEBP", quality=quality, method=4)
    finally:
        img.close()
    return buf.getvalue()


__all__ = ["webp_available", "webp_decode", "webp_encode"]
