"""Raster rendering of cells and sheets."""

from .cell import CellRect, CellRenderer
from .compositing import SUPPORTED_BLEND_MODES, composite_overlay
from .sheet import (
    AssetDecodeError,
    SheetBuilder,
    SheetSurface,
    SurfaceUnavailableError,
    compute_cell_size,
    encode_image,
    sheet_dimensions,
)

__all__ = [
    "AssetDecodeError",
    "CellRect",
    "CellRenderer",
    "SUPPORTED_BLEND_MODES",
    "SheetBuilder",
    "SheetSurface",
    "SurfaceUnavailableError",
    "composite_overlay",
    "compute_cell_size",
    "encode_image",
    "sheet_dimensions",
]
