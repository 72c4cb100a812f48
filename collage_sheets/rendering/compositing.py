"""Blend-mode compositing for the global sheet overlay.

Blend operators follow the names used by HTML canvas compositing.  Each
operator receives the sheet and overlay as RGB images of equal size and
returns the blended colour; opacity and the overlay's own alpha are then
applied uniformly by :func:`composite_overlay`.
"""

from __future__ import annotations

import logging
import math
from typing import Callable

from PIL import Image, ImageChops

LOGGER = logging.getLogger(__name__)

BlendFunc = Callable[[Image.Image, Image.Image], Image.Image]


def _normal(_: Image.Image, overlay: Image.Image) -> Image.Image:
    return overlay


def _soft_light_lift(value: int) -> int:
    """``D(cb) - cb`` of the W3C soft-light formula, scaled to 0-255."""
    cb = value / 255
    d = ((16 * cb - 12) * cb + 4) * cb if cb <= 0.25 else math.sqrt(cb)
    return round((d - cb) * 255)


_SOFT_LIGHT_DARKEN = [round(v * (255 - v) / 255) for v in range(256)]
_SOFT_LIGHT_LIFT = [_soft_light_lift(v) for v in range(256)]
_SOFT_LIGHT_LOW = [max(0, 255 - 2 * v) for v in range(256)]
_SOFT_LIGHT_HIGH = [max(0, 2 * v - 255) for v in range(256)]


def _soft_light(backdrop: Image.Image, source: Image.Image) -> Image.Image:
    """W3C compositing soft-light, as used by canvas ``globalCompositeOperation``.

    Dark source values darken by ``cb * (1 - cb)`` and light ones lighten
    towards ``D(cb)``; only one of the two terms is non-zero per pixel.
    """
    darken = backdrop.point(lambda v: _SOFT_LIGHT_DARKEN[v])
    lift = backdrop.point(lambda v: _SOFT_LIGHT_LIFT[v])
    low = source.point(lambda v: _SOFT_LIGHT_LOW[v])
    high = source.point(lambda v: _SOFT_LIGHT_HIGH[v])
    darkened = ImageChops.subtract(backdrop, ImageChops.multiply(low, darken))
    return ImageChops.add(darkened, ImageChops.multiply(high, lift))


_BLEND_DISPATCH: dict[str, BlendFunc] = {
    "normal": _normal,
    "source-over": _normal,
    "multiply": ImageChops.multiply,
    "screen": ImageChops.screen,
    "overlay": ImageChops.overlay,
    "soft-light": _soft_light,
    "hard-light": ImageChops.hard_light,
    "difference": ImageChops.difference,
    "darken": ImageChops.darker,
    "lighten": ImageChops.lighter,
    "lighter": ImageChops.add,
}

SUPPORTED_BLEND_MODES = tuple(_BLEND_DISPATCH)


def resolve_blend_mode(mode: str) -> BlendFunc:
    """Return the blend function for *mode*.

    Unknown modes fall back to ``normal`` with a warning so a stale setting
    never aborts a run.
    """
    func = _BLEND_DISPATCH.get((mode or "").strip().lower())
    if func is None:
        LOGGER.warning("Unknown blend mode: %s", mode)
        return _normal
    return func


def _alpha_mask(overlay: Image.Image, opacity: float) -> Image.Image:
    """Return an ``L`` mask combining the overlay alpha with *opacity*."""
    if "A" in overlay.getbands():
        alpha = overlay.getchannel("A")
    else:
        alpha = Image.new("L", overlay.size, 255)
    if opacity >= 1:
        return alpha
    level = max(0, min(255, round(opacity * 255)))
    return alpha.point(lambda value: value * level // 255)


def composite_overlay(
    sheet: Image.Image,
    overlay: Image.Image,
    *,
    opacity: float,
    blend_mode: str,
) -> Image.Image:
    """Composite *overlay* full-bleed over *sheet* and return the result.

    The overlay is stretched to the sheet dimensions.  *sheet* is expected to
    be an opaque RGB image; the returned image is RGB as well.
    """
    if opacity <= 0:
        return sheet

    stretched = overlay if overlay.size == sheet.size else overlay.resize(sheet.size, Image.Resampling.BILINEAR)
    try:
        mask = _alpha_mask(stretched, opacity)
        colour = stretched.convert("RGB")
        blended = resolve_blend_mode(blend_mode)(sheet, colour)
        result = Image.composite(blended, sheet, mask)
    finally:
        if stretched is not overlay:
            stretched.close()
    return result


__all__ = ["SUPPORTED_BLEND_MODES", "composite_overlay", "resolve_blend_mode"]
