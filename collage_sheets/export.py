"""Post-export transforms for generated sheets.

Sheets can be concatenated vertically into one tall image or bundled into a
zip archive.  File naming (``Part_<n>.<ext>``) is stable so archives stay
compatible with earlier exports.
"""
from __future__ import annotations

import logging
import time
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Sequence, Union

from PIL import Image

from . import config
from .models import CollageError, EncodedSheet, ExportSettings
from .rendering.cell import DECODE_ERRORS
from .rendering.sheet import encode_image

LOGGER = logging.getLogger(__name__)


class ExportError(CollageError):
    """Raised when sheets cannot be exported."""


class CombineRefusedError(ExportError):
    """Raised when a combined export is requested for too many source images."""


class CanvasCapacityError(ExportError):
    """Raised when a combined image would exceed the device pixel budget."""


@dataclass(frozen=True, slots=True)
class DeviceCapabilities:
    """What the calling environment can safely allocate for one canvas."""

    max_pixels: int


MOBILE = DeviceCapabilities(max_pixels=config.MOBILE_MAX_PIXELS)
DESKTOP = DeviceCapabilities(max_pixels=config.DESKTOP_MAX_PIXELS)


def extension_for(quality: float) -> str:
    return ExportSettings(quality=quality).extension


def sheet_filename(index: int, quality: float) -> str:
    """Return the stable per-sheet filename for 1-based *index*."""
    return f"{config.SHEET_FILENAME_PREFIX}{index}.{extension_for(quality)}"


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def combined_filename(quality: float, timestamp_ms: Optional[int] = None) -> str:
    stamp = _timestamp_ms() if timestamp_ms is None else timestamp_ms
    return f"{config.COMBINED_FILENAME_PREFIX}{stamp}.{extension_for(quality)}"


def archive_filename(timestamp_ms: Optional[int] = None) -> str:
    stamp = _timestamp_ms() if timestamp_ms is None else timestamp_ms
    return f"{config.ARCHIVE_FILENAME_PREFIX}{stamp}.zip"


def check_combine_allowed(source_count: int, limit: int = config.COMBINE_MAX_SOURCE_IMAGES) -> None:
    """Refuse combined export above *limit* source images, before any work."""
    if source_count > limit:
        raise CombineRefusedError(
            f"Combined export is limited to {limit} images ({source_count} given); "
            "download the zip archive instead"
        )


@contextmanager
def _own_output_decoding():
    """Lift Pillow's decompression-bomb limit while decoding sheets this engine encoded."""
    previous = Image.MAX_IMAGE_PIXELS
    Image.MAX_IMAGE_PIXELS = None
    try:
        yield
    finally:
        Image.MAX_IMAGE_PIXELS = previous


def combine_sheets(
    sheets: Sequence[EncodedSheet],
    quality: float,
    capabilities: DeviceCapabilities = DESKTOP,
    *,
    source_count: Optional[int] = None,
) -> bytes:
    """Stack *sheets* top to bottom into one image and encode it.

    Width is taken from the first sheet; all sheets of a run share it.  The
    canvas size comes from the recorded sheet dimensions, so the pixel
    budget is enforced before anything is decoded.

    Raises:
        CombineRefusedError: If *source_count* exceeds the image ceiling
        CanvasCapacityError: If the combined canvas exceeds the pixel budget
        ExportError: If there is nothing to combine or a sheet is unreadable
    """
    if source_count is not None:
        check_combine_allowed(source_count)
    if not sheets:
        raise ExportError("No sheets to combine")

    width = sheets[0].width
    height = sum(sheet.height for sheet in sheets)
    if width * height > capabilities.max_pixels:
        raise CanvasCapacityError(
            f"Combined image of {width}x{height} pixels exceeds this device's limit "
            f"of {capabilities.max_pixels} pixels"
        )

    canvas = Image.new("RGB", (width, height), "white")
    try:
        y = 0
        with _own_output_decoding():
            for sheet in sheets:
                try:
                    with Image.open(BytesIO(sheet.data)) as bitmap:
                        bitmap.load()
                        if bitmap.mode != "RGB":
                            with bitmap.convert("RGB") as rgb:
                                canvas.paste(rgb, (0, y))
                        else:
                            canvas.paste(bitmap, (0, y))
                except DECODE_ERRORS as exc:
                    raise ExportError(f"Sheet {sheet.index} could not be decoded: {exc}") from exc
                y += sheet.height
        data = encode_image(canvas, ExportSettings(quality=quality))
    finally:
        canvas.close()

    LOGGER.info("Combined %d sheets into %dx%d (%d bytes)", len(sheets), width, height, len(data))
    return data


def build_archive(sheets: Sequence[EncodedSheet], quality: float, *, folder: Optional[str] = None) -> bytes:
    """Return a zip archive holding every sheet as ``Part_<n>.<ext>``."""
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for position, sheet in enumerate(sheets, start=1):
            name = sheet_filename(position, quality)
            if folder:
                name = f"{folder.strip('/')}/{name}"
            archive.writestr(name, sheet.data)
    LOGGER.info("Archived %d sheets (%d bytes)", len(sheets), buffer.tell())
    return buffer.getvalue()


def write_sheets(sheets: Sequence[EncodedSheet], directory: Union[str, Path], quality: float) -> List[Path]:
    """Write each sheet to *directory* using the per-sheet naming convention."""
    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for position, sheet in enumerate(sheets, start=1):
        path = target / sheet_filename(position, quality)
        path.write_bytes(sheet.data)
        written.append(path)
    return written


def format_size(num_bytes: int) -> str:
    """Human-readable byte size, e.g. ``'1.5 MB'``."""
    size = float(num_bytes)
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def summarize_sizes(sheets: Sequence[EncodedSheet]) -> List[str]:
    return [f"{sheet.filename}: {format_size(sheet.size)}" for sheet in sheets]


__all__ = [
    "CanvasCapacityError",
    "CombineRefusedError",
    "DESKTOP",
    "DeviceCapabilities",
    "ExportError",
    "MOBILE",
    "archive_filename",
    "build_archive",
    "check_combine_allowed",
    "combine_sheets",
    "combined_filename",
    "format_size",
    "sheet_filename",
    "summarize_sizes",
    "write_sheets",
]
