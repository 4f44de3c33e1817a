"""Named image operations backed by Pillow.

Every single-image operation takes an RGBA image plus the literal string
parameters of its step and returns the resulting image, which may be the same
object (mutated in place) or a new one. Two-image operations take the primary
image, a read-only secondary image and the remaining literal parameters, and
always mutate and return the primary.

Numeric parameters that are absent or unparsable fall back to a default; a
missing *required* parameter raises ``InvalidActionParam``.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Sequence, Tuple, TypeVar
from urllib.parse import unquote

from PIL import Image, ImageChops, ImageDraw, ImageEnhance, ImageFilter, ImageFont, ImageOps

from app.imaging.errors import InvalidActionParam

log = logging.getLogger(__name__)

Params = Sequence[str]
T = TypeVar("T")

_RGB_CHANNELS = 3


# --------------------------------- helpers ----------------------------------


def parse_param(params: Params, index: int, default: T, cast: Callable[[str], T]) -> T:
    try:
        return cast(params[index].strip())
    except (IndexError, ValueError, TypeError):
        return default


def _int(params: Params, index: int, default: int) -> int:
    return parse_param(params, index, default, lambda s: int(float(s)))


def _float(params: Params, index: int, default: float) -> float:
    return parse_param(params, index, default, float)


def _require(params: Params, count: int, usage: str) -> None:
    if len(params) < count:
        raise InvalidActionParam(usage)


def _clamp(value: float, lo: int = 0, hi: int = 255) -> int:
    return int(max(lo, min(hi, value)))


def _map_rgb(img: Image.Image, fn: Callable[[Image.Image], Image.Image]) -> Image.Image:
    """Run ``fn`` on the colour bands and put the original alpha back."""
    alpha = img.getchannel("A")
    out = fn(img.convert("RGB"))
    if out.mode != "RGB":
        out = out.convert("RGB")
    out.putalpha(alpha)
    return out


def _map_band(img: Image.Image, channel: int, lut: Callable[[int], int]) -> Image.Image:
    bands = list(img.split())
    bands[channel] = bands[channel].point(lut)
    return Image.merge(img.mode, bands)


def _contrast_lut(contrast: float) -> Callable[[int], int]:
    c = max(-255.0, min(255.0, contrast))
    factor = (259.0 * (c + 255.0)) / (255.0 * (259.0 - c))
    return lambda v: _clamp(factor * (v - 128) + 128)


# -------------------------------- transform ---------------------------------

_SAMPLING: Dict[str, Image.Resampling] = {
    "1": Image.Resampling.NEAREST,
    "nearest": Image.Resampling.NEAREST,
    "2": Image.Resampling.BILINEAR,
    "triangle": Image.Resampling.BILINEAR,
    "3": Image.Resampling.BICUBIC,
    "catmullrom": Image.Resampling.BICUBIC,
    "4": Image.Resampling.HAMMING,
    "gaussian": Image.Resampling.HAMMING,
}


def resize(img: Image.Image, params: Params) -> Image.Image:
    _require(params, 2, "resize requires at least 2 parameters: width, height")
    width = _int(params, 0, 0)
    height = _int(params, 1, 0)
    if width <= 0 and height <= 0:
        raise InvalidActionParam("resize needs a positive width or height")
    if width <= 0:
        width = max(1, round(img.width * height / img.height))
    if height <= 0:
        height = max(1, round(img.height * width / img.width))
    sampling = params[2].strip().lower() if len(params) > 2 else ""
    return img.resize((width, height), _SAMPLING.get(sampling, Image.Resampling.LANCZOS))


def crop(img: Image.Image, params: Params) -> Image.Image:
    _require(params, 4, "crop requires 4 parameters: x1, y1, x2, y2")
    x1 = max(0, _int(params, 0, 0))
    y1 = max(0, _int(params, 1, 0))
    x2 = min(img.width, _int(params, 2, img.width))
    y2 = min(img.height, _int(params, 3, img.height))
    if x2 <= x1 or y2 <= y1:
        raise InvalidActionParam(f"empty crop box ({x1}, {y1}, {x2}, {y2})")
    return img.crop((x1, y1, x2, y2))


def rotate(img: Image.Image, params: Params) -> Image.Image:
    _require(params, 1, "rotate requires 1 parameter: angle")
    angle = _float(params, 0, 90.0)
    # Pillow turns counter-clockwise; the public contract is clockwise.
    return img.rotate(-angle, resample=Image.Resampling.BICUBIC, expand=True)


def fliph(img: Image.Image, params: Params) -> Image.Image:
    return ImageOps.mirror(img)


def flipv(img: Image.Image, params: Params) -> Image.Image:
    return ImageOps.flip(img)


# --------------------------------- multiple ---------------------------------


def watermark(primary: Image.Image, secondary: Image.Image, params: Params) -> Image.Image:
    x = _int(params, 0, 0)
    y = _int(params, 1, 0)
    # Offsets past the top-left edge clip the watermark.
    src = (max(-x, 0), max(-y, 0))
    if src[0] >= secondary.width or src[1] >= secondary.height:
        return primary
    primary.alpha_composite(secondary, dest=(max(x, 0), max(y, 0)), source=src)
    return primary


_BLEND_MODES: Dict[str, Callable[[Image.Image, Image.Image], Image.Image]] = {
    "multiply": ImageChops.multiply,
    "screen": ImageChops.screen,
    "overlay": ImageChops.overlay,
    "soft_light": ImageChops.soft_light,
    "hard_light": ImageChops.hard_light,
    "difference": ImageChops.difference,
    "lighten": ImageChops.lighter,
    "darken": ImageChops.darker,
    "plus": ImageChops.add,
    "subtract": ImageChops.subtract,
}


def blend(primary: Image.Image, secondary: Image.Image, params: Params) -> Image.Image:
    _require(params, 1, "blend requires 2 parameters: blend_url, blend_mode")
    mode = params[0].strip().lower()
    top = Image.new("RGBA", primary.size, (0, 0, 0, 0))
    top.paste(secondary, (0, 0))
    fn = _BLEND_MODES.get(mode)
    if fn is None:
        primary.alpha_composite(top)
        return primary
    base = primary.convert("RGB")
    mixed = Image.composite(fn(base, top.convert("RGB")), base, top.getchannel("A"))
    mixed.putalpha(primary.getchannel("A"))
    primary.paste(mixed, (0, 0))
    return primary


def draw_text(img: Image.Image, params: Params) -> Image.Image:
    _require(params, 3, "draw_text requires at least 3 parameters: text, x, y")
    text = unquote(params[0])
    x = _int(params, 1, 0)
    y = _int(params, 2, 0)
    size = _float(params, 3, 24.0)
    font = ImageFont.load_default(size=size)
    ImageDraw.Draw(img).text((x, y), text, fill=(255, 255, 255, 255), font=font)
    return img


# --------------------------------- effects ----------------------------------


def solarize(img: Image.Image, params: Params) -> Image.Image:
    return _map_rgb(img, lambda rgb: ImageOps.solarize(rgb, threshold=128))


def colorize(img: Image.Image, params: Params) -> Image.Image:
    return _map_rgb(
        img,
        lambda rgb: ImageOps.colorize(
            ImageOps.grayscale(rgb), black=(38, 12, 84), white=(255, 214, 140)
        ),
    )


_FROST_DISTANCE = 5


def frosted_glass(img: Image.Image, params: Params) -> Image.Image:
    return img.effect_spread(_FROST_DISTANCE)


def inc_brightness(img: Image.Image, params: Params) -> Image.Image:
    amount = _int(params, 0, 10)
    return _map_rgb(img, lambda rgb: rgb.point(lambda v: _clamp(v + amount)))


def adjust_contrast(img: Image.Image, params: Params) -> Image.Image:
    lut = _contrast_lut(_float(params, 0, 0.1))
    return _map_rgb(img, lambda rgb: rgb.point(lut))


def tint(img: Image.Image, params: Params) -> Image.Image:
    _require(params, 3, "tint requires 3 parameters: r, g, b")
    out = img
    for channel, offset in enumerate((_int(params, 0, 0), _int(params, 1, 0), _int(params, 2, 0))):
        if offset:
            out = _map_band(out, channel, lambda v, d=offset: _clamp(v + d))
    return out


# --------------------------------- filters ----------------------------------

_PRESETS: Dict[str, Tuple[int, int, int]] = {
    "oceanic": (0, 89, 173),
    "islands": (0, 24, 95),
    "marine": (0, 14, 119),
    "seagreen": (0, 68, 62),
    "flagblue": (0, 0, 131),
    "liquid": (0, 10, 75),
    "diamante": (30, 82, 87),
    "radio": (64, 11, 49),
    "twenties": (116, 63, 39),
    "rosetint": (255, 107, 129),
    "mauve": (53, 28, 64),
    "bluechrome": (16, 82, 233),
    "vintage": (120, 70, 13),
    "perfume": (80, 40, 120),
    "serenity": (10, 40, 90),
}

_PRESET_STRENGTH = 0.25


def filter_preset(img: Image.Image, params: Params) -> Image.Image:
    _require(params, 1, "filter requires 1 parameter: filter_name")
    name = params[0].strip().lower()
    color = _PRESETS.get(name)
    if color is None:
        log.warning("unknown filter preset", extra={"preset": name})
        return img
    return _map_rgb(
        img,
        lambda rgb: Image.blend(rgb, Image.new("RGB", rgb.size, color), _PRESET_STRENGTH),
    )


def dramatic(img: Image.Image, params: Params) -> Image.Image:
    lut = _contrast_lut(60.0)
    return _map_rgb(img, lambda rgb: ImageOps.grayscale(rgb).point(lut))


def lofi(img: Image.Image, params: Params) -> Image.Image:
    lut = _contrast_lut(30.0)
    return _map_rgb(img, lambda rgb: ImageEnhance.Color(rgb).enhance(1.5).point(lut))


# -------------------------------- monochrome --------------------------------


def grayscale(img: Image.Image, params: Params) -> Image.Image:
    return _map_rgb(img, ImageOps.grayscale)


def sepia(img: Image.Image, params: Params) -> Image.Image:
    return _map_rgb(
        img,
        lambda rgb: ImageOps.colorize(
            ImageOps.grayscale(rgb), black=(20, 12, 4), white=(255, 240, 196), mid=(162, 128, 92)
        ),
    )


# --------------------------------- channels ---------------------------------


def alter_channel(img: Image.Image, params: Params) -> Image.Image:
    _require(params, 2, "alter_channel requires 2 parameters: channel, amount")
    channel = _int(params, 0, 0)
    amount = _int(params, 1, 10)
    if not 0 <= channel < _RGB_CHANNELS:
        return img
    return _map_band(img, channel, lambda v: _clamp(v + amount))


def swap_channels(img: Image.Image, params: Params) -> Image.Image:
    _require(params, 2, "swap_channels requires 2 parameters: channel1, channel2")
    first = _int(params, 0, 0)
    second = _int(params, 1, 1)
    if not (0 <= first < _RGB_CHANNELS and 0 <= second < _RGB_CHANNELS):
        return img
    bands = list(img.split())
    bands[first], bands[second] = bands[second], bands[first]
    return Image.merge(img.mode, bands)


def _remove_channel(channel: int) -> Callable[[Image.Image, Params], Image.Image]:
    def _op(img: Image.Image, params: Params) -> Image.Image:
        min_filter = _int(params, 0, 255)
        return _map_band(img, channel, lambda v: 0 if v < min_filter else v)

    return _op


remove_red_channel = _remove_channel(0)
remove_green_channel = _remove_channel(1)
remove_blue_channel = _remove_channel(2)


# ----------------------------------- conv -----------------------------------


def _convolve(flt: ImageFilter.Filter) -> Callable[[Image.Image, Params], Image.Image]:
    def _op(img: Image.Image, params: Params) -> Image.Image:
        return _map_rgb(img, lambda rgb: rgb.filter(flt))

    return _op


sharpen = _convolve(ImageFilter.SHARPEN)
box_blur = _convolve(ImageFilter.BoxBlur(1))
edge_detection = _convolve(ImageFilter.FIND_EDGES)
emboss = _convolve(ImageFilter.EMBOSS)
