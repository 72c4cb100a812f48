# main.py
"""
Command-line entry point for Collage Sheets.
"""
import argparse
import dataclasses
import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Sequence

from PySide6.QtCore import QCoreApplication

from . import config
from .controllers import GenerationSession, NoImagesError
from .export import (
    DESKTOP,
    MOBILE,
    ExportError,
    archive_filename,
    combined_filename,
    summarize_sizes,
    write_sheets,
)
from .managers.performance import MemoryMonitor
from .models import (
    CollageSettings,
    FontPosition,
    GenerationState,
    GenerationStatus,
    LineStyle,
    MaskMode,
    SourceImage,
)
from .qt_scheduler import QtEventLoopScheduler
from .rendering.compositing import SUPPORTED_BLEND_MODES
from .scheduling import PacedScheduler
from .serialization import load_settings, save_settings
from .store import ImageStore, StoreError
from .validation import ARCHIVE_EXTENSIONS, SHEET_EXTENSIONS, collect_image_paths, validate_image_path, validate_output_path

LOGGER_NAME = "collage_sheets"

_qt_app: Optional[QCoreApplication] = None


def configure_logging(log_dir: Optional[Path] = None) -> logging.Logger:
    """Attach file and console handlers to the ``collage_sheets`` logger.

    Records go to a size-capped ``collage_sheets.log`` in *log_dir* (the
    working directory by default) and to stdout.  Calling it again returns
    the logger unchanged.
    """

    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    )

    log_path = (log_dir or Path.cwd()) / config.LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=config.LOG_MAX_BYTES,
        backupCount=config.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.propagate = False

    return logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="collage-sheets",
        description="Assemble ordered images into numbered collage sheets.",
    )
    parser.add_argument("inputs", nargs="*", help="image files or directories, in order")
    parser.add_argument("-o", "--out", type=Path, default=Path("sheets"), help="output directory")
    parser.add_argument("--settings", type=Path, help="load settings from this JSON file")
    parser.add_argument("--save-settings", type=Path, help="write the effective settings to this JSON file")
    parser.add_argument("--store", type=Path, help="image store directory; inputs are imported into it")
    parser.add_argument("--dedupe", action="store_true", help="drop duplicate images from the store first")

    layout = parser.add_argument_group("layout")
    layout.add_argument("--cols", type=int)
    layout.add_argument("--rows", type=int, help="rows per sheet (0 = %d)" % config.FALLBACK_ROWS_PER_GROUP)
    layout.add_argument("--gap", type=int)
    layout.add_argument("--ratio", type=float, help="cell width/height; 0 uses --custom-size")
    layout.add_argument("--custom-size", nargs=2, type=int, metavar=("W", "H"))

    numbering = parser.add_argument_group("numbering")
    numbering.add_argument("--no-number", action="store_true")
    numbering.add_argument("--start", type=int)
    numbering.add_argument("--font-size", type=int)
    numbering.add_argument("--font")
    numbering.add_argument("--font-color")
    numbering.add_argument("--stroke", metavar="COLOR")
    numbering.add_argument("--no-shadow", action="store_true")
    numbering.add_argument("--position", choices=[p.value for p in FontPosition])

    overlay = parser.add_argument_group("overlay")
    overlay.add_argument("--overlay", type=Path)
    overlay.add_argument("--overlay-opacity", type=float)
    overlay.add_argument("--blend", choices=SUPPORTED_BLEND_MODES)

    mask = parser.add_argument_group("masking")
    mask.add_argument("--mask", help='indices to mask, e.g. "5, 12, 20-25"')
    mask.add_argument("--mask-mode", choices=[m.value for m in MaskMode])
    mask.add_argument("--line-style", choices=[s.value for s in LineStyle])
    mask.add_argument("--mask-color")
    mask.add_argument("--mask-width", type=float)
    mask.add_argument("--sticker", type=Path)
    mask.add_argument("--sticker-size", type=float)
    mask.add_argument("--sticker-pos", nargs=2, type=float, metavar=("X", "Y"))
    mask.add_argument("--repack", action="store_true", help="remove masked images and relayout")

    export = parser.add_argument_group("export")
    export.add_argument("--quality", type=float, help="1.0 = PNG, lower = JPEG quality")
    export.add_argument("--zip", action="store_true", help="also write a zip archive of all sheets")
    export.add_argument("--combine", action="store_true", help="also write one vertically combined image")
    export.add_argument("--device", choices=["desktop", "mobile"], default="desktop")
    export.add_argument("--no-pause", action="store_true", help="render without pacing pauses")
    export.add_argument("--qt", action="store_true", help="pace through a Qt event loop instead of sleeping")
    return parser


def _read_asset(path: Optional[Path]) -> Optional[bytes]:
    if path is None:
        return None
    return validate_image_path(path).read_bytes()


def apply_overrides(settings: CollageSettings, args: argparse.Namespace) -> CollageSettings:
    """Return *settings* with every explicitly given CLI option applied."""

    def pick(**values):
        return {key: value for key, value in values.items() if value is not None}

    layout = dataclasses.replace(settings.layout, **pick(
        cols=args.cols,
        rows_per_group=args.rows,
        gap=args.gap,
        aspect_ratio=args.ratio,
        custom_width=args.custom_size[0] if args.custom_size else None,
        custom_height=args.custom_size[1] if args.custom_size else None,
    ))
    numbering = dataclasses.replace(settings.numbering, **pick(
        enabled=False if args.no_number else None,
        start_number=args.start,
        font_size=args.font_size,
        font_family=args.font,
        font_color=args.font_color,
        stroke_enabled=True if args.stroke else None,
        stroke_color=args.stroke,
        shadow_enabled=False if args.no_shadow else None,
        position=FontPosition(args.position) if args.position else None,
    ))
    overlay = dataclasses.replace(settings.overlay, **pick(
        image=_read_asset(args.overlay),
        opacity=args.overlay_opacity,
        blend_mode=args.blend,
    ))
    mask = dataclasses.replace(settings.mask, **pick(
        indices=args.mask,
        mode=MaskMode(args.mask_mode) if args.mask_mode else None,
        line_style=LineStyle(args.line_style) if args.line_style else None,
        color=args.mask_color,
        width=args.mask_width,
        sticker_image=_read_asset(args.sticker),
        sticker_size=args.sticker_size,
        sticker_x=args.sticker_pos[0] if args.sticker_pos else None,
        sticker_y=args.sticker_pos[1] if args.sticker_pos else None,
    ))
    export = dataclasses.replace(settings.export, **pick(quality=args.quality))
    return CollageSettings(layout=layout, numbering=numbering, overlay=overlay, mask=mask, export=export)


def load_images(args: argparse.Namespace, logger: logging.Logger) -> List[SourceImage]:
    paths, errors = collect_image_paths(args.inputs)
    for error in errors:
        logger.warning("Skipping invalid image: %s", error)

    if args.store is not None:
        store = ImageStore(args.store)
        store.import_files(paths)
        if args.dedupe:
            store.remove_duplicates()
        return store.all()

    now = time.time() * 1000
    return [
        SourceImage(id=str(position), name=path.name, payload=path.read_bytes(), timestamp=now + position)
        for position, path in enumerate(paths)
    ]


def build_scheduler(args: argparse.Namespace) -> PacedScheduler:
    """Return the pacing scheduler selected by ``--no-pause`` and ``--qt``."""
    global _qt_app
    pauses = {"cell_pause": 0, "sheet_pause": 0} if args.no_pause else {}
    if not args.qt:
        return PacedScheduler(**pauses)
    # Keep the application alive for as long as the process runs
    _qt_app = QCoreApplication.instance() or QCoreApplication([sys.argv[0]])
    return QtEventLoopScheduler(**pauses)


def _print_status(status: GenerationStatus) -> None:
    if status.state is GenerationState.RENDERING:
        print(f"\r[{status.progress:3d}%] {status.message}", end="", flush=True)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logger = configure_logging()

    try:
        base = load_settings(args.settings) if args.settings else CollageSettings()
        settings = apply_overrides(base, args)
        settings.validate()
    except ValueError as exc:
        logger.error("Invalid settings: %s", exc)
        return 2
    if args.save_settings:
        save_settings(settings, args.save_settings)

    try:
        images = load_images(args, logger)
    except StoreError as exc:
        logger.error("Image store unavailable: %s", exc)
        return 2
    scheduler = build_scheduler(args)
    session = GenerationSession(settings, scheduler=scheduler, memory_monitor=MemoryMonitor(), on_status=_print_status)

    try:
        result = session.run(images, repack=args.repack)
    except NoImagesError as exc:
        logger.error("%s", exc)
        return 2
    print()

    quality = settings.export.quality
    written = write_sheets(result.sheets, args.out, quality)
    for line in summarize_sizes(result.sheets):
        print(line)
    logger.info("Wrote %d sheets to %s", len(written), args.out)

    try:
        if args.zip and result.sheets:
            target = validate_output_path(args.out / archive_filename(), ARCHIVE_EXTENSIONS)
            target.write_bytes(session.archive())
            logger.info("Wrote archive %s", target)
        if args.combine and result.sheets:
            capabilities = MOBILE if args.device == "mobile" else DESKTOP
            target = validate_output_path(args.out / combined_filename(quality), SHEET_EXTENSIONS)
            target.write_bytes(session.combine(capabilities))
            logger.info("Wrote combined image %s", target)
    except ExportError as exc:
        logger.error("Export refused: %s", exc)
        return 1

    if result.state is GenerationState.FAILED:
        logger.error("%s", result.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
