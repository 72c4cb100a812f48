"""Plain data types shared by the rendering engine and its callers.

Settings are grouped the way the options are presented to users (layout,
numbering, overlay, masking, export) and aggregated in
:class:`CollageSettings`.  Every group is an immutable dataclass so a run
can never observe a half-edited configuration.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from . import config


class CollageError(Exception):
    """Base class for all engine errors."""


class SettingsError(CollageError, ValueError):
    """Raised when settings cannot produce a valid layout."""


class FontPosition(str, Enum):
    BOTTOM_CENTER = "bottom-center"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    CENTER = "center"
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"

    @property
    def is_top(self) -> bool:
        return self.value.startswith("top")

    @property
    def is_left(self) -> bool:
        return self.value.endswith("left")

    @property
    def is_right(self) -> bool:
        return self.value.endswith("right")


class MaskMode(str, Enum):
    LINE = "line"
    IMAGE = "image"


class LineStyle(str, Enum):
    CROSS = "cross"
    SLASH = "slash"


class GenerationState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    RENDERING = "rendering"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationState.COMPLETED, GenerationState.CANCELLED, GenerationState.FAILED)


@dataclass(frozen=True, slots=True)
class SourceImage:
    """One user image as handed to the engine.

    Attributes:
        id (str): Opaque identity assigned by the image store
        name (str): Display name, usually the original file name
        payload (bytes): Encoded image bytes
        timestamp (float): Insertion time used by callers for ordering
    """
    id: str
    name: str
    payload: bytes
    timestamp: float = 0.0

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass(frozen=True, slots=True)
class LayoutSettings:
    cols: int = config.DEFAULT_COLUMNS
    rows_per_group: int = config.DEFAULT_ROWS_PER_GROUP
    gap: int = config.DEFAULT_GAP
    aspect_ratio: float = config.DEFAULT_ASPECT_RATIO
    custom_width: int = config.DEFAULT_CUSTOM_WIDTH
    custom_height: int = config.DEFAULT_CUSTOM_HEIGHT

    @property
    def effective_rows(self) -> int:
        """Rows per sheet, substituting the fallback for ``0``."""
        return self.rows_per_group if self.rows_per_group > 0 else config.FALLBACK_ROWS_PER_GROUP

    @property
    def batch_size(self) -> int:
        return self.cols * self.effective_rows

    def resolved_ratio(self) -> float:
        """Return the cell width/height ratio.

        Raises:
            SettingsError: If neither an explicit ratio nor a usable custom
                size is configured
        """
        if self.aspect_ratio > 0:
            return float(self.aspect_ratio)
        if self.custom_width > 0 and self.custom_height > 0:
            return self.custom_width / self.custom_height
        raise SettingsError("Aspect ratio must be positive or derived from a custom width and height")

    def validate(self) -> None:
        if self.cols < 1:
            raise SettingsError(f"Column count must be at least 1, got {self.cols}")
        if self.rows_per_group < 0:
            raise SettingsError(f"Rows per sheet cannot be negative, got {self.rows_per_group}")
        if self.gap < 0:
            raise SettingsError(f"Gap cannot be negative, got {self.gap}")
        self.resolved_ratio()


@dataclass(frozen=True, slots=True)
class NumberingSettings:
    enabled: bool = True
    start_number: int = config.DEFAULT_START_NUMBER
    font_size: int = config.DEFAULT_FONT_SIZE
    font_family: str = config.DEFAULT_FONT_FAMILY
    font_color: str = config.DEFAULT_FONT_COLOR
    stroke_enabled: bool = False
    stroke_color: str = config.DEFAULT_STROKE_COLOR
    shadow_enabled: bool = True
    shadow_color: str = config.DEFAULT_SHADOW_COLOR
    position: FontPosition = FontPosition.BOTTOM_CENTER


@dataclass(frozen=True, slots=True)
class OverlaySettings:
    image: Optional[bytes] = None
    opacity: float = 1.0
    blend_mode: str = "source-over"

    @property
    def active(self) -> bool:
        return self.image is not None and self.opacity > 0


@dataclass(frozen=True, slots=True)
class MaskSettings:
    indices: str = ""
    mode: MaskMode = MaskMode.LINE
    line_style: LineStyle = LineStyle.CROSS
    color: str = config.DEFAULT_MASK_COLOR
    width: float = config.DEFAULT_MASK_WIDTH
    sticker_image: Optional[bytes] = None
    sticker_size: float = config.DEFAULT_STICKER_SIZE
    sticker_x: float = config.DEFAULT_STICKER_POSITION
    sticker_y: float = config.DEFAULT_STICKER_POSITION


@dataclass(frozen=True, slots=True)
class ExportSettings:
    quality: float = config.DEFAULT_QUALITY

    @property
    def lossless(self) -> bool:
        return self.quality >= 1.0

    @property
    def image_format(self) -> str:
        return config.LOSSLESS_FORMAT if self.lossless else config.LOSSY_FORMAT

    @property
    def extension(self) -> str:
        return "png" if self.lossless else "jpg"

    def validate(self) -> None:
        if not 0 < self.quality <= 1:
            raise SettingsError(f"Quality must be in (0, 1], got {self.quality}")


@dataclass(frozen=True, slots=True)
class CollageSettings:
    layout: LayoutSettings = field(default_factory=LayoutSettings)
    numbering: NumberingSettings = field(default_factory=NumberingSettings)
    overlay: OverlaySettings = field(default_factory=OverlaySettings)
    mask: MaskSettings = field(default_factory=MaskSettings)
    export: ExportSettings = field(default_factory=ExportSettings)

    def validate(self) -> None:
        self.layout.validate()
        self.export.validate()


@dataclass(frozen=True, slots=True)
class EncodedSheet:
    """One rendered sheet after compression.

    ``index`` is 1-based and drives the stable ``Part_<n>.<ext>`` naming.
    """
    index: int
    data: bytes
    format: str
    width: int
    height: int

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return "png" if self.format == config.LOSSLESS_FORMAT else "jpg"

    @property
    def filename(self) -> str:
        return f"{config.SHEET_FILENAME_PREFIX}{self.index}.{self.extension}"


@dataclass(slots=True)
class GenerationStatus:
    """Progress snapshot exposed to the caller for UI feedback."""
    state: GenerationState = GenerationState.IDLE
    progress: int = 0
    message: str = ""
    current_sheet: int = 0
    total_sheets: int = 0

    @property
    def is_generating(self) -> bool:
        return self.state in (GenerationState.PREPARING, GenerationState.RENDERING)


@dataclass(slots=True)
class GenerationResult:
    sheets: List[EncodedSheet]
    state: GenerationState
    message: str = ""

    @property
    def cancelled(self) -> bool:
        return self.state is GenerationState.CANCELLED

    @property
    def total_bytes(self) -> int:
        return sum(sheet.size for sheet in self.sheets)
