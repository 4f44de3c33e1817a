"""Static operation registry: name -> single-image or two-image handler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from PIL import Image

from app.imaging import operations as ops

SingleFn = Callable[[Image.Image, Sequence[str]], Image.Image]
DualFn = Callable[[Image.Image, Image.Image, Sequence[str]], Image.Image]


@dataclass(frozen=True)
class SingleImageOp:
    name: str
    fn: SingleFn

    def apply(self, image: Image.Image, params: Sequence[str]) -> Image.Image:
        return self.fn(image, params)


@dataclass(frozen=True)
class DualImageOp:
    """Combines a secondary image into the primary; the secondary is read-only."""

    name: str
    fn: DualFn

    def apply(
        self, primary: Image.Image, secondary: Image.Image, params: Sequence[str]
    ) -> Image.Image:
        return self.fn(primary, secondary, params)


OperationHandler = Union[SingleImageOp, DualImageOp]


def _build() -> Dict[str, OperationHandler]:
    single: Tuple[Tuple[str, SingleFn], ...] = (
        ("resize", ops.resize),
        ("crop", ops.crop),
        ("rotate", ops.rotate),
        ("fliph", ops.fliph),
        ("flipv", ops.flipv),
        ("draw_text", ops.draw_text),
        ("solarize", ops.solarize),
        ("colorize", ops.colorize),
        ("frosted_glass", ops.frosted_glass),
        ("inc_brightness", ops.inc_brightness),
        ("adjust_contrast", ops.adjust_contrast),
        ("tint", ops.tint),
        ("filter", ops.filter_preset),
        ("dramatic", ops.dramatic),
        ("lofi", ops.lofi),
        ("grayscale", ops.grayscale),
        ("sepia", ops.sepia),
        ("alter_channel", ops.alter_channel),
        ("swap_channels", ops.swap_channels),
        ("remove_red_channel", ops.remove_red_channel),
        ("remove_green_channel", ops.remove_green_channel),
        ("remove_blue_channel", ops.remove_blue_channel),
        ("sharpen", ops.sharpen),
        ("box_blur", ops.box_blur),
        ("edge_detection", ops.edge_detection),
        ("emboss", ops.emboss),
    )
    dual: Tuple[Tuple[str, DualFn], ...] = (
        ("watermark", ops.watermark),
        ("blend", ops.blend),
    )
    table: Dict[str, OperationHandler] = {name: SingleImageOp(name, fn) for name, fn in single}
    table.update({name: DualImageOp(name, fn) for name, fn in dual})
    return table


_REGISTRY: Mapping[str, OperationHandler] = _build()


def resolve(name: str) -> Optional[OperationHandler]:
    return _REGISTRY.get(name)


def names() -> list[str]:
    return sorted(_REGISTRY)


__all__ = [
    "SingleImageOp",
    "DualImageOp",
    "OperationHandler",
    "resolve",
    "names",
]
