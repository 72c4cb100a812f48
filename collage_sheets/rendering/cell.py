"""
Draws one source image into one grid cell of a sheet.

A cell is rendered in layers: the cover-fitted image (or an error
placeholder when the payload cannot be decoded), the optional number, and
the optional mask or sticker.  Drawing happens directly on the shared sheet
raster; decoded source images are closed as soon as they are pasted.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageFilter, ImageFont, ImageOps, UnidentifiedImageError

from .. import config
from ..models import CollageSettings, LineStyle, MaskMode, SettingsError, SourceImage

LOGGER = logging.getLogger(__name__)

RGB = Tuple[int, int, int]
Font = ImageFont.FreeTypeFont | ImageFont.ImageFont

DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError)


@dataclass(frozen=True, slots=True)
class CellRect:
    """Destination rectangle of a cell on the sheet raster."""
    x: int
    y: int
    w: int
    h: int

    @property
    def box(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.x + self.w, self.y + self.h


def parse_color(value: str) -> RGB:
    """Return an RGB tuple for a CSS-style colour string."""
    try:
        return ImageColor.getrgb(value)[:3]
    except (ValueError, AttributeError) as exc:
        raise SettingsError(f"Invalid colour: {value!r}") from exc


@lru_cache(maxsize=32)
def load_font(family: str, size: int) -> Font:
    """Resolve a bold font for *family* at *size* pixels.

    Generic CSS families map to common bold font files; Pillow's scalable
    default font is the last resort.
    """
    size = max(1, int(size))
    candidates = [family]
    candidates += config.FONT_FALLBACKS.get(family.lower(), [])
    candidates += config.FONT_FALLBACKS["sans-serif"]
    for name in candidates:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    LOGGER.info("No TrueType font found for %r, using Pillow default", family)
    return ImageFont.load_default(size=size)


def decode_source(payload: bytes, target: Tuple[int, int]) -> Image.Image:
    """Decode *payload* upright, hinting the decoder to downscale towards *target*.

    Raises whatever Pillow raises for unreadable data; callers decide whether
    that is fatal.
    """
    side = max(target)
    with Image.open(BytesIO(payload)) as raw:
        # Square hint so the short axis stays large enough after EXIF rotation
        raw.draft("RGB", (side, side))
        upright = ImageOps.exif_transpose(raw)
        upright.load()
    return upright


def cover_fit(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Scale *image* to fill *size*, center-cropping the overflowing axis."""
    return ImageOps.fit(image, size, Image.Resampling.LANCZOS, centering=(0.5, 0.5))


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or (image.mode == "P" and "transparency" in image.info)


def paste_image(canvas: Image.Image, image: Image.Image, position: Tuple[int, int]) -> None:
    """Paste *image* onto the RGB *canvas*, honouring transparency."""
    if _has_alpha(image):
        rgba = image.convert("RGBA")
        try:
            canvas.paste(rgba, position, rgba)
        finally:
            rgba.close()
    elif image.mode != "RGB":
        rgb = image.convert("RGB")
        try:
            canvas.paste(rgb, position)
        finally:
            rgb.close()
    else:
        canvas.paste(image, position)


class CellRenderer:
    """Renders individual cells for one generation run.

    Colours, fonts and the scaled sticker are resolved once at construction
    because every cell of a run shares the same size.
    """

    def __init__(
        self,
        settings: CollageSettings,
        cell_size: Tuple[int, int],
        *,
        sticker: Optional[Image.Image] = None,
    ) -> None:
        self.numbering = settings.numbering
        self.mask = settings.mask
        self.cell_w, self.cell_h = cell_size

        self._font_color = parse_color(self.numbering.font_color)
        self._stroke_color = parse_color(self.numbering.stroke_color)
        self._shadow_color = parse_color(self.numbering.shadow_color)
        self._mask_color = parse_color(self.mask.color)
        self._font: Optional[Font] = None
        if self.numbering.enabled:
            self._font = load_font(self.numbering.font_family, self.numbering.font_size)

        self._sticker: Optional[Image.Image] = None
        if sticker is not None and self.mask.mode is MaskMode.IMAGE:
            self._sticker = self._scale_sticker(sticker)

    def close(self) -> None:
        if self._sticker is not None:
            self._sticker.close()
            self._sticker = None

    # --- full cell ---
    def render(
        self,
        canvas: Image.Image,
        rect: CellRect,
        image: SourceImage,
        global_index: int,
        *,
        masked: bool = False,
    ) -> bool:
        """Render one cell and return ``False`` if the source failed to decode."""
        ok = self.draw_image(canvas, rect, image)
        if self.numbering.enabled:
            self.draw_number(canvas, rect, global_index)
        if masked:
            self.draw_mask(canvas, rect)
        return ok

    def draw_image(self, canvas: Image.Image, rect: CellRect, image: SourceImage) -> bool:
        try:
            source = decode_source(image.payload, (rect.w, rect.h))
        except DECODE_ERRORS as exc:
            LOGGER.warning("Failed to decode image %s (%s): %s", image.name, image.id, exc)
            self.draw_placeholder(canvas, rect)
            return False
        try:
            fitted = cover_fit(source, (rect.w, rect.h))
        finally:
            source.close()
        try:
            paste_image(canvas, fitted, (rect.x, rect.y))
        finally:
            fitted.close()
        return True

    def draw_placeholder(self, canvas: Image.Image, rect: CellRect) -> None:
        """Flat fill with a centered red cross marking a broken image."""
        draw = ImageDraw.Draw(canvas)
        draw.rectangle((rect.x, rect.y, rect.x + rect.w - 1, rect.y + rect.h - 1), fill=config.PLACEHOLDER_FILL)
        half = max(2, rect.w // 20)
        cx, cy = rect.x + rect.w // 2, rect.y + rect.h // 2
        width = max(1, rect.w // 60)
        colour = parse_color(config.PLACEHOLDER_GLYPH_COLOR)
        _round_line(draw, (cx - half, cy - half), (cx + half, cy + half), colour, width)
        _round_line(draw, (cx + half, cy - half), (cx - half, cy + half), colour, width)

    # --- numbering ---
    def text_anchor(self, rect: CellRect) -> Tuple[float, float, str]:
        """Return ``(x, y, anchor)`` of the number's baseline point for *rect*."""
        size = self.numbering.font_size
        position = self.numbering.position

        ty = rect.y + rect.h - size / 2
        if position.value == "center":
            ty = rect.y + rect.h / 2 + size / 3
        elif position.is_top:
            ty = rect.y + size + config.TOP_TEXT_OFFSET

        if position.is_left:
            return rect.x + config.TEXT_INSET, ty, "ls"
        if position.is_right:
            return rect.x + rect.w - config.TEXT_INSET, ty, "rs"
        return rect.x + rect.w / 2, ty, "ms"

    def draw_number(self, canvas: Image.Image, rect: CellRect, number: int) -> None:
        if self._font is None:
            return
        text = str(number)
        x, y, anchor = self.text_anchor(rect)
        font = self._font
        if not isinstance(font, ImageFont.FreeTypeFont):
            # Bitmap fonts only support the default top-left anchor
            x, y, anchor = _emulate_anchor(font, text, x, y, anchor)

        draw = ImageDraw.Draw(canvas)
        size = self.numbering.font_size
        if self.numbering.stroke_enabled:
            # Outline radius is half of a fontSize/12 centred stroke
            stroke = max(1, round(size / 24))
            draw.text((x, y), text, font=font, anchor=anchor, fill=self._stroke_color,
                      stroke_width=stroke, stroke_fill=self._stroke_color)
        if self.numbering.shadow_enabled:
            self._draw_shadow(canvas, (x, y), text, font, anchor, blur=size / 10)
        draw.text((x, y), text, font=font, anchor=anchor, fill=self._font_color)

    def _draw_shadow(self, canvas: Image.Image, xy, text: str, font: Font, anchor: str, *, blur: float) -> None:
        radius = blur / 2
        pad = int(radius * 3) + 1
        left, top, right, bottom = ImageDraw.Draw(canvas).textbbox(xy, text, font=font, anchor=anchor)
        x0, y0 = max(0, int(left) - pad), max(0, int(top) - pad)
        x1, y1 = min(canvas.width, int(right) + pad), min(canvas.height, int(bottom) + pad)
        if x1 <= x0 or y1 <= y0:
            return
        mask = Image.new("L", (x1 - x0, y1 - y0), 0)
        try:
            ImageDraw.Draw(mask).text((xy[0] - x0, xy[1] - y0), text, font=font, anchor=anchor, fill=255)
            blurred = mask.filter(ImageFilter.GaussianBlur(radius)) if radius > 0 else mask
            canvas.paste(self._shadow_color, (x0, y0, x1, y1), blurred)
            if blurred is not mask:
                blurred.close()
        finally:
            mask.close()

    # --- masking ---
    def mask_stroke_width(self, rect: CellRect) -> float:
        return self.mask.width * (rect.w / config.MASK_REFERENCE_WIDTH) * 5

    def sticker_box(self, rect: CellRect) -> Optional[Tuple[int, int, int, int]]:
        """Return the sticker's ``(left, top, width, height)`` inside *rect*."""
        if self._sticker is None:
            return None
        sw, sh = self._sticker.size
        cx = rect.x + rect.w * self.mask.sticker_x / 100
        cy = rect.y + rect.h * self.mask.sticker_y / 100
        return round(cx - sw / 2), round(cy - sh / 2), sw, sh

    def draw_mask(self, canvas: Image.Image, rect: CellRect) -> None:
        if self.mask.mode is MaskMode.LINE:
            draw = ImageDraw.Draw(canvas)
            width = self.mask_stroke_width(rect)
            x, y, w, h = rect.x, rect.y, rect.w, rect.h
            if self.mask.line_style is LineStyle.CROSS:
                _round_line(draw, (x + w * 0.2, y + h * 0.2), (x + w * 0.8, y + h * 0.8), self._mask_color, width)
                _round_line(draw, (x + w * 0.8, y + h * 0.2), (x + w * 0.2, y + h * 0.8), self._mask_color, width)
            else:
                _round_line(draw, (x + w * 0.2, y + h * 0.8), (x + w * 0.8, y + h * 0.2), self._mask_color, width)
        elif self._sticker is not None:
            left, top, _, _ = self.sticker_box(rect)
            paste_image(canvas, self._sticker, (left, top))

    def _scale_sticker(self, sticker: Image.Image) -> Optional[Image.Image]:
        sw = self.cell_w * self.mask.sticker_size / 100
        if sw <= 0 or sticker.width == 0:
            return None
        sh = sw * (sticker.height / sticker.width)
        size = (max(1, round(sw)), max(1, round(sh)))
        return sticker.convert("RGBA").resize(size, Image.Resampling.LANCZOS)


def _round_line(draw: ImageDraw.ImageDraw, start, end, fill: RGB, width: float) -> None:
    """Draw a line with round caps."""
    stroke = max(1, round(width))
    draw.line([start, end], fill=fill, width=stroke)
    radius = stroke / 2
    for px, py in (start, end):
        draw.ellipse((px - radius, py - radius, px + radius, py + radius), fill=fill)


def _emulate_anchor(font: Font, text: str, x: float, y: float, anchor: str) -> Tuple[float, float, None]:
    left, top, right, bottom = font.getbbox(text)
    width = right - left
    if anchor[0] == "m":
        x -= width / 2
    elif anchor[0] == "r":
        x -= width
    return x, y - bottom, None


__all__ = [
    "CellRect",
    "CellRenderer",
    "cover_fit",
    "decode_source",
    "load_font",
    "parse_color",
    "paste_image",
]
