"""Checks on the file paths the CLI reads images from and writes sheets to."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Tuple, Union
from urllib.parse import urlparse

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".gif", ".tiff", ".tif"}
SHEET_EXTENSIONS = {".jpg", ".jpeg", ".png"}
ARCHIVE_EXTENSIONS = {".zip"}

PathLike = Union[str, Path]


def _reject_remote(raw: str) -> None:
    # One-letter schemes are Windows drive letters ("C:\...")
    scheme = urlparse(raw).scheme
    if len(scheme) > 1:
        raise ValueError(f"Remote locations are not supported: {raw}")


def _require_extension(path: Path, allowed: Iterable[str]) -> None:
    if path.suffix.lower() not in {ext.lower() for ext in allowed}:
        raise ValueError(f"Unsupported file extension: {path.suffix or '(none)'}")


def validate_image_path(path: PathLike, allowed_exts: Iterable[str] = IMAGE_EXTENSIONS) -> Path:
    """Return the resolved location of an existing local image file.

    Raises:
        ValueError: For URLs, missing paths, directories and unknown
            extensions
    """
    raw = str(path)
    _reject_remote(raw)
    try:
        resolved = Path(raw).expanduser().resolve(strict=True)
    except FileNotFoundError as exc:
        raise ValueError(f"File does not exist: {raw}") from exc
    if not resolved.is_file():
        raise ValueError(f"Not a file: {raw}")
    _require_extension(resolved, allowed_exts)
    return resolved


def validate_output_path(path: PathLike, allowed_exts: Iterable[str]) -> Path:
    """Return the resolved target for a file about to be written.

    The parent directory has to exist already.
    """
    raw = str(path)
    _reject_remote(raw)
    resolved = Path(raw).expanduser().resolve()
    if not resolved.parent.is_dir():
        raise ValueError(f"Directory does not exist: {resolved.parent}")
    _require_extension(resolved, allowed_exts)
    return resolved


def collect_image_paths(inputs: Iterable[PathLike]) -> Tuple[List[Path], List[str]]:
    """Expand files and directories into validated image paths.

    Directory contents are taken in name order; explicit files keep the
    order given.  Returns ``(paths, errors)``.
    """
    paths: List[Path] = []
    errors: List[str] = []
    for raw in inputs:
        candidate = Path(str(raw)).expanduser()
        if candidate.is_dir():
            entries = sorted(p for p in candidate.iterdir() if p.suffix.lower() in IMAGE_EXTENSIONS)
        else:
            entries = [candidate]
        for entry in entries:
            try:
                paths.append(validate_image_path(entry))
            except ValueError as exc:
                errors.append(f"{entry}: {exc}")
    return paths, errors
