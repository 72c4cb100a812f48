"""Directory-backed store for raw source images.

Records are ``{id, name, payload, timestamp}``.  Payloads live in one file
per id under ``blobs/``; names and timestamps are kept in ``index.json``.
Reads always come back sorted by timestamp, which is the order images are
handed to the generator.
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from . import config
from .models import CollageError, SourceImage

LOGGER = logging.getLogger(__name__)


class StoreError(CollageError):
    """Raised when the image store cannot be read or written."""


class ImageStore:
    """Keyed blob store sorted by insertion timestamp."""

    INDEX_NAME = "index.json"
    BLOB_DIR = "blobs"

    def __init__(self, path: Union[str, Path] = config.STORE_PATH) -> None:
        self.path = Path(path)
        self._blobs = self.path / self.BLOB_DIR
        self._blobs.mkdir(parents=True, exist_ok=True)
        self._index: Dict[str, Dict[str, object]] = self._read_index()

    # --- index persistence ---
    def _read_index(self) -> Dict[str, Dict[str, object]]:
        index_path = self.path / self.INDEX_NAME
        if not index_path.exists():
            return {}
        try:
            data = json.loads(index_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreError(f"Failed to read image index {index_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"Image index {index_path} is malformed")
        return data

    def _write_index(self) -> None:
        index_path = self.path / self.INDEX_NAME
        tmp = index_path.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(self._index), encoding="utf-8")
            os.replace(tmp, index_path)
        except OSError as exc:
            raise StoreError(f"Failed to write image index {index_path}: {exc}") from exc

    def _blob_path(self, image_id: str) -> Path:
        if not image_id or "/" in image_id or "\\" in image_id or image_id.startswith("."):
            raise StoreError(f"Invalid image id: {image_id!r}")
        return self._blobs / image_id

    # --- record operations ---
    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, image_id: str) -> bool:
        return image_id in self._index

    def put(self, image: SourceImage) -> None:
        self.put_many([image])

    def put_many(self, images: Sequence[SourceImage]) -> None:
        """Insert or overwrite *images* and persist the index once."""
        for image in images:
            path = self._blob_path(image.id)
            try:
                path.write_bytes(image.payload)
            except OSError as exc:
                raise StoreError(f"Failed to store image {image.name}: {exc}") from exc
            self._index[image.id] = {"name": image.name, "timestamp": image.timestamp}
        self._write_index()

    def get(self, image_id: str) -> Optional[SourceImage]:
        meta = self._index.get(image_id)
        if meta is None:
            return None
        try:
            payload = self._blob_path(image_id).read_bytes()
        except OSError as exc:
            raise StoreError(f"Failed to read image {image_id}: {exc}") from exc
        return SourceImage(
            id=image_id,
            name=str(meta["name"]),
            payload=payload,
            timestamp=float(meta["timestamp"]),
        )

    def all(self) -> List[SourceImage]:
        """Return every record ordered by timestamp."""
        ordered = sorted(self._index.items(), key=lambda item: float(item[1]["timestamp"]))
        images: List[SourceImage] = []
        for image_id, _ in ordered:
            image = self.get(image_id)
            if image is not None:
                images.append(image)
        return images

    def delete(self, image_id: str) -> bool:
        if self._index.pop(image_id, None) is None:
            return False
        try:
            self._blob_path(image_id).unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("Failed to remove blob for %s: %s", image_id, exc)
        self._write_index()
        return True

    def clear(self) -> None:
        for image_id in list(self._index):
            try:
                self._blob_path(image_id).unlink(missing_ok=True)
            except OSError as exc:
                LOGGER.warning("Failed to remove blob for %s: %s", image_id, exc)
        self._index.clear()
        self._write_index()

    # --- higher level helpers ---
    def import_files(self, paths: Iterable[Union[str, Path]], *, now: Optional[float] = None) -> List[SourceImage]:
        """Store files in the given order with fresh ids and increasing timestamps."""
        base = time.time() * 1000 if now is None else now
        images: List[SourceImage] = []
        for offset, raw in enumerate(paths):
            path = Path(raw)
            try:
                payload = path.read_bytes()
            except OSError as exc:
                raise StoreError(f"Failed to read {path}: {exc}") from exc
            images.append(
                SourceImage(id=uuid.uuid4().hex, name=path.name, payload=payload, timestamp=base + offset)
            )
        if images:
            self.put_many(images)
            LOGGER.info("Imported %d images into %s", len(images), self.path)
        return images

    def replace(self, image_id: str, payload: bytes, name: str) -> SourceImage:
        """Swap the payload of *image_id*, keeping its position in the order."""
        meta = self._index.get(image_id)
        timestamp = float(meta["timestamp"]) if meta is not None else time.time() * 1000
        image = SourceImage(id=image_id, name=name, payload=payload, timestamp=timestamp)
        self.put(image)
        return image

    def find_duplicates(self) -> List[SourceImage]:
        """Return later images sharing name and byte size with an earlier one."""
        seen = set()
        duplicates: List[SourceImage] = []
        for image in self.all():
            key = (image.name, image.size)
            if key in seen:
                duplicates.append(image)
            else:
                seen.add(key)
        return duplicates

    def remove_duplicates(self) -> int:
        duplicates = self.find_duplicates()
        for image in duplicates:
            self.delete(image.id)
        if duplicates:
            LOGGER.info("Removed %d duplicate images", len(duplicates))
        return len(duplicates)


__all__ = ["ImageStore", "StoreError"]
