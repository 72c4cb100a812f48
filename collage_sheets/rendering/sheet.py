"""Sheet layout, raster management and encoding.

:class:`SheetBuilder` turns one batch of source images into one encoded
sheet.  The orchestrator drives it step by step (``begin_sheet`` /
``draw_cell`` / ``finish_sheet``) so it can pace and cancel between cells;
:meth:`SheetBuilder.build` runs the same steps in one call.
"""
from __future__ import annotations

import logging
import math
from io import BytesIO
from typing import AbstractSet, Optional, Sequence, Tuple

from PIL import Image

from .. import config
from ..models import CollageError, CollageSettings, EncodedSheet, ExportSettings, LayoutSettings, SettingsError, SourceImage
from .cell import DECODE_ERRORS, CellRect, CellRenderer
from .compositing import composite_overlay

LOGGER = logging.getLogger(__name__)


class SurfaceUnavailableError(CollageError):
    """Raised when no raster surface can be allocated for a sheet."""


class AssetDecodeError(CollageError):
    """Raised when the overlay or sticker image cannot be decoded."""


def compute_cell_size(layout: LayoutSettings) -> Tuple[int, int]:
    """Return the ``(width, height)`` of every cell for *layout*.

    Cells start at the high-res base width and shrink only when the row of
    cells would exceed the maximum canvas dimension.  Both edges are kept
    within that maximum.
    """
    layout.validate()
    ratio = layout.resolved_ratio()
    cell_w = config.BASE_CELL_WIDTH
    if layout.cols * cell_w > config.MAX_CANVAS_DIMENSION:
        cell_w = (config.MAX_CANVAS_DIMENSION - layout.cols * layout.gap) // layout.cols
    if cell_w < 1:
        raise SettingsError(f"{layout.cols} columns with a {layout.gap}px gap leave no room for cells")
    cell_h = min(math.floor(cell_w / ratio), config.MAX_CANVAS_DIMENSION)
    if cell_h < 1:
        raise SettingsError(f"Aspect ratio {ratio} produces cells with no height")
    return cell_w, cell_h


def sheet_dimensions(count: int, cols: int, cell_size: Tuple[int, int], gap: int) -> Tuple[int, int]:
    """Return the pixel size of a sheet holding *count* cells."""
    cell_w, cell_h = cell_size
    rows = math.ceil(count / cols)
    width = cols * cell_w + (cols - 1) * gap
    height = rows * cell_h + (rows - 1) * gap
    return width, height


def cell_rect(position: int, cols: int, cell_size: Tuple[int, int], gap: int) -> CellRect:
    """Return the rectangle of the cell at row-major *position*."""
    cell_w, cell_h = cell_size
    row, col = divmod(position, cols)
    return CellRect(col * (cell_w + gap), row * (cell_h + gap), cell_w, cell_h)


def encode_image(image: Image.Image, export: ExportSettings) -> bytes:
    """Encode *image*: PNG when quality is 1.0, JPEG at that quality otherwise."""
    buffer = BytesIO()
    if export.lossless:
        image.save(buffer, format=config.LOSSLESS_FORMAT, compress_level=config.PNG_COMPRESS_LEVEL)
    else:
        quality = max(1, min(100, round(export.quality * 100)))
        image.convert("RGB").save(
            buffer,
            format=config.LOSSY_FORMAT,
            quality=quality,
            optimize=True,
            progressive=True,
        )
    return buffer.getvalue()


def decode_asset(payload: Optional[bytes], label: str) -> Optional[Image.Image]:
    """Decode an overlay or sticker payload into RGBA."""
    if payload is None:
        return None
    try:
        with Image.open(BytesIO(payload)) as raw:
            return raw.convert("RGBA")
    except DECODE_ERRORS as exc:
        raise AssetDecodeError(f"Failed to decode {label} image: {exc}") from exc


class SheetSurface:
    """The single raster reused for every sheet of a run."""

    PLACEHOLDER_SIZE = (1, 1)

    def __init__(self) -> None:
        self._image: Image.Image = Image.new("RGB", self.PLACEHOLDER_SIZE, "white")

    @property
    def image(self) -> Image.Image:
        return self._image

    @property
    def size(self) -> Tuple[int, int]:
        return self._image.size

    def acquire(self, size: Tuple[int, int]) -> Image.Image:
        """Clear and resize the surface to *size* with an opaque white fill."""
        self.release()
        try:
            image = Image.new("RGB", size, "white")
        except (MemoryError, ValueError) as exc:
            raise SurfaceUnavailableError(f"Cannot allocate a {size[0]}x{size[1]} sheet: {exc}") from exc
        self._replace(image)
        return image

    def swap(self, image: Image.Image) -> None:
        """Replace the surface contents with *image* (same run, new pixels)."""
        self._replace(image)

    def release(self) -> None:
        """Shrink the surface to a minimal placeholder."""
        if self._image.size != self.PLACEHOLDER_SIZE:
            self._replace(Image.new("RGB", self.PLACEHOLDER_SIZE, "white"))

    def _replace(self, image: Image.Image) -> None:
        previous, self._image = self._image, image
        if previous is not image:
            previous.close()


class SheetBuilder:
    """Renders batches of images into encoded sheets for one run.

    Use as a context manager so the decoded overlay and sticker are released
    when the run ends.
    """

    def __init__(
        self,
        settings: CollageSettings,
        *,
        mask_targets: AbstractSet[int] = frozenset(),
        apply_masks: bool = True,
        surface: Optional[SheetSurface] = None,
    ) -> None:
        settings.validate()
        self.settings = settings
        self.layout = settings.layout
        self.cell_size = compute_cell_size(settings.layout)
        self.mask_targets = frozenset(mask_targets) if apply_masks else frozenset()
        self.surface = surface or SheetSurface()

        self._overlay: Optional[Image.Image] = None
        if settings.overlay.active:
            self._overlay = decode_asset(settings.overlay.image, "overlay")
        sticker = decode_asset(settings.mask.sticker_image, "sticker") if self.mask_targets else None
        try:
            self.renderer = CellRenderer(settings, self.cell_size, sticker=sticker)
        finally:
            if sticker is not None:
                sticker.close()

        self._cell_count = 0
        self.failed_cells = 0

    def __enter__(self) -> "SheetBuilder":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.renderer.close()
        if self._overlay is not None:
            self._overlay.close()
            self._overlay = None
        self.surface.release()

    def dimensions(self, count: int) -> Tuple[int, int]:
        return sheet_dimensions(count, self.layout.cols, self.cell_size, self.layout.gap)

    def begin_sheet(self, count: int) -> Image.Image:
        """Prepare a blank surface sized for *count* cells."""
        self._cell_count = count
        return self.surface.acquire(self.dimensions(count))

    def draw_cell(self, position: int, image: SourceImage, global_index: int) -> bool:
        """Draw *image* at *position*; masked when *global_index* is a target."""
        rect = cell_rect(position, self.layout.cols, self.cell_size, self.layout.gap)
        ok = self.renderer.render(
            self.surface.image,
            rect,
            image,
            global_index,
            masked=global_index in self.mask_targets,
        )
        if not ok:
            self.failed_cells += 1
        return ok

    def apply_overlay(self) -> None:
        if self._overlay is None:
            return
        overlay = self.settings.overlay
        blended = composite_overlay(
            self.surface.image,
            self._overlay,
            opacity=overlay.opacity,
            blend_mode=overlay.blend_mode,
        )
        self.surface.swap(blended)

    def finish_sheet(self, index: int) -> EncodedSheet:
        """Composite the overlay, encode, and release the raster."""
        self.apply_overlay()
        image = self.surface.image
        export = self.settings.export
        data = encode_image(image, export)
        sheet = EncodedSheet(
            index=index,
            data=data,
            format=export.image_format,
            width=image.width,
            height=image.height,
        )
        self.surface.release()
        return sheet

    def discard_sheet(self) -> None:
        self.surface.release()

    def build(self, batch: Sequence[SourceImage], index: int, first_global_index: int) -> EncodedSheet:
        """Render *batch* as sheet number *index* (1-based) in one call."""
        self.begin_sheet(len(batch))
        for position, image in enumerate(batch):
            self.draw_cell(position, image, first_global_index + position)
        return self.finish_sheet(index)


__all__ = [
    "AssetDecodeError",
    "SheetBuilder",
    "SheetSurface",
    "SurfaceUnavailableError",
    "cell_rect",
    "compute_cell_size",
    "decode_asset",
    "encode_image",
    "sheet_dimensions",
]
