"""Shared fixtures: tiny in-memory images and small-cell settings."""
from io import BytesIO
from typing import List, Sequence

import pytest
from PIL import Image

from collage_sheets import config
from collage_sheets.models import (
    CollageSettings,
    ExportSettings,
    LayoutSettings,
    MaskSettings,
    NumberingSettings,
    SourceImage,
)
from collage_sheets.scheduling import ImmediateScheduler


def make_image_bytes(size=(40, 30), color="red", fmt="PNG") -> bytes:
    img = Image.new("RGB", size, color=color)
    buffer = BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def make_sources(count: int, colors: Sequence[str] = ("red", "green", "blue")) -> List[SourceImage]:
    return [
        SourceImage(
            id=f"img-{i}",
            name=f"img_{i}.png",
            payload=make_image_bytes(color=colors[i % len(colors)]),
            timestamp=float(i),
        )
        for i in range(count)
    ]


def small_settings(
    *,
    cols: int = 3,
    rows: int = 3,
    gap: int = 0,
    quality: float = 0.8,
    mask: MaskSettings = MaskSettings(),
    numbering: NumberingSettings = NumberingSettings(enabled=False),
) -> CollageSettings:
    return CollageSettings(
        layout=LayoutSettings(cols=cols, rows_per_group=rows, gap=gap, aspect_ratio=0.75),
        numbering=numbering,
        mask=mask,
        export=ExportSettings(quality=quality),
    )


@pytest.fixture
def small_cells(monkeypatch):
    """Shrink the base cell width so sheets render in milliseconds."""
    monkeypatch.setattr(config, "BASE_CELL_WIDTH", 60)
    return 60


@pytest.fixture
def scheduler():
    return ImmediateScheduler()
