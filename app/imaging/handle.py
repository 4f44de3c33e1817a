"""Owned image buffers with exactly-once release.

An ``ImageHandle`` is the single owner of one Pillow image. The buffer is
closed when the handle is released, when a new buffer supersedes it through
``replace``, or when a ``with`` block around the handle exits.
"""

from __future__ import annotations

import io
import logging
from types import TracebackType
from typing import Optional, Type

from PIL import Image

from app.imaging.errors import DecodeError, HandleReleasedError

log = logging.getLogger(__name__)

PIXEL_MODE = "RGBA"


def _as_rgba(img: Image.Image) -> Image.Image:
    if img.mode == PIXEL_MODE:
        return img
    converted = img.convert(PIXEL_MODE)
    img.close()
    return converted


class ImageHandle:
    __slots__ = ("_image", "label")

    def __init__(self, image: Image.Image, label: str = "primary") -> None:
        self._image: Optional[Image.Image] = image
        self.label = label

    # ------------------------------ constructors ------------------------------

    @classmethod
    def from_bytes(cls, data: bytes, label: str = "primary") -> "ImageHandle":
        """Decode encoded bytes; Pillow detects PNG/JPEG/BMP/ICO/TIFF/GIF."""
        img: Optional[Image.Image] = None
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
            return cls(_as_rgba(img), label=label)
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
            if img is not None:
                img.close()
            raise DecodeError(f"failed to decode image: {exc}") from exc

    @classmethod
    def from_raw(
        cls, pixels: bytes, width: int, height: int, label: str = "primary"
    ) -> "ImageHandle":
        """Wrap raw RGBA pixels with explicit dimensions."""
        expected = width * height * 4
        if width <= 0 or height <= 0 or len(pixels) != expected:
            raise DecodeError(
                f"raw pixel buffer size mismatch: got {len(pixels)}, expected {expected}"
            )
        return cls(Image.frombytes(PIXEL_MODE, (width, height), pixels), label=label)

    # -------------------------------- access ----------------------------------

    @property
    def image(self) -> Image.Image:
        if self._image is None:
            raise HandleReleasedError(f"{self.label} image handle already released")
        return self._image

    @property
    def released(self) -> bool:
        return self._image is None

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def raw_pixels(self) -> bytes:
        img = self.image
        if img.mode == PIXEL_MODE:
            return img.tobytes()
        with img.convert(PIXEL_MODE) as rgba:
            return rgba.tobytes()

    # ------------------------------- ownership --------------------------------

    def replace(self, new_image: Image.Image) -> None:
        """Take ownership of ``new_image``; the superseded buffer is closed."""
        old = self.image
        if new_image is old:
            return
        self._image = _as_rgba(new_image)
        old.close()

    def release(self) -> bool:
        """Close the buffer. Returns False when it was already released."""
        img = self._image
        if img is None:
            return False
        self._image = None
        img.close()
        log.debug("released %s image handle", self.label)
        return True

    def __enter__(self) -> "ImageHandle":
        return self

    def __exit__(
        self,
        exc_type: Type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        if self._image is None:
            return f"<ImageHandle {self.label} released>"
        return f"<ImageHandle {self.label} {self._image.width}x{self._image.height}>"


__all__ = ["ImageHandle", "PIXEL_MODE"]
