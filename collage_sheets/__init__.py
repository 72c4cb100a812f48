"""Collage Sheets: render ordered image collections into numbered grid sheets."""

from .generator import CancellationToken, GenerationContext, SheetGenerator, generate_sheets
from .index_parser import parse_mask_indices
from .models import (
    CollageSettings,
    EncodedSheet,
    ExportSettings,
    GenerationResult,
    GenerationState,
    GenerationStatus,
    LayoutSettings,
    MaskSettings,
    NumberingSettings,
    OverlaySettings,
    SourceImage,
)

__all__ = [
    "CancellationToken",
    "CollageSettings",
    "EncodedSheet",
    "ExportSettings",
    "GenerationContext",
    "GenerationResult",
    "GenerationState",
    "GenerationStatus",
    "LayoutSettings",
    "MaskSettings",
    "NumberingSettings",
    "OverlaySettings",
    "SheetGenerator",
    "SourceImage",
    "generate_sheets",
    "parse_mask_indices",
]
