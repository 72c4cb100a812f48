import zipfile
from io import BytesIO

import pytest
from PIL import Image

from collage_sheets.export import (
    MOBILE,
    CanvasCapacityError,
    CombineRefusedError,
    DeviceCapabilities,
    ExportError,
    archive_filename,
    build_archive,
    check_combine_allowed,
    combine_sheets,
    combined_filename,
    format_size,
    sheet_filename,
    summarize_sizes,
    write_sheets,
)
from collage_sheets.models import EncodedSheet, ExportSettings
from collage_sheets.rendering.sheet import encode_image


def make_sheet(index, size=(60, 40), color="red", quality=1.0):
    export = ExportSettings(quality=quality)
    data = encode_image(Image.new("RGB", size, color), export)
    return EncodedSheet(index=index, data=data, format=export.image_format, width=size[0], height=size[1])


def test_filenames_follow_quality():
    assert sheet_filename(3, 1.0) == "Part_3.png"
    assert sheet_filename(3, 0.8) == "Part_3.jpg"
    assert combined_filename(0.8, timestamp_ms=42) == "Combined_42.jpg"
    assert archive_filename(timestamp_ms=42) == "Collage_42.zip"


def test_combine_stacks_vertically():
    sheets = [make_sheet(1, color="red"), make_sheet(2, color="blue"), make_sheet(3, size=(60, 20), color="green")]
    data = combine_sheets(sheets, 1.0)
    with Image.open(BytesIO(data)) as img:
        assert img.format == "PNG"
        assert img.size == (60, 100)
        rgb = img.convert("RGB")
        assert rgb.getpixel((30, 10)) == (255, 0, 0)
        assert rgb.getpixel((30, 50)) == (0, 0, 255)
        assert rgb.getpixel((30, 90)) == (0, 128, 0)


def test_combine_lossy_output_is_jpeg():
    data = combine_sheets([make_sheet(1)], 0.5)
    with Image.open(BytesIO(data)) as img:
        assert img.format == "JPEG"


def test_combine_refused_above_image_limit_regardless_of_budget():
    huge = DeviceCapabilities(max_pixels=10**12)
    with pytest.raises(CombineRefusedError):
        combine_sheets([make_sheet(1)], 1.0, huge, source_count=101)
    combine_sheets([make_sheet(1)], 1.0, huge, source_count=100)


def test_check_combine_allowed_boundary():
    check_combine_allowed(100)
    with pytest.raises(CombineRefusedError):
        check_combine_allowed(101)


def test_combine_exceeding_pixel_budget():
    tiny = DeviceCapabilities(max_pixels=60 * 40)
    with pytest.raises(CanvasCapacityError):
        combine_sheets([make_sheet(1), make_sheet(2)], 1.0, tiny)


def test_mobile_budget_is_smaller():
    assert MOBILE.max_pixels == 16_777_216


def test_combine_without_sheets():
    with pytest.raises(ExportError):
        combine_sheets([], 1.0)


def test_archive_contains_one_entry_per_sheet():
    sheets = [make_sheet(1, quality=0.8), make_sheet(2, quality=0.8)]
    data = build_archive(sheets, 0.8)
    with zipfile.ZipFile(BytesIO(data)) as archive:
        assert archive.namelist() == ["Part_1.jpg", "Part_2.jpg"]
        assert archive.read("Part_2.jpg") == sheets[1].data


def test_archive_folder_prefix():
    data = build_archive([make_sheet(1)], 1.0, folder="batch/")
    with zipfile.ZipFile(BytesIO(data)) as archive:
        assert archive.namelist() == ["batch/Part_1.png"]


def test_write_sheets(tmp_path):
    sheets = [make_sheet(1), make_sheet(2)]
    paths = write_sheets(sheets, tmp_path / "out", 1.0)
    assert [p.name for p in paths] == ["Part_1.png", "Part_2.png"]
    assert paths[0].read_bytes() == sheets[0].data


def test_size_summary():
    assert format_size(512) == "512 B"
    assert format_size(1536) == "1.5 KB"
    assert format_size(3 * 1024 * 1024) == "3.0 MB"
    sheet = make_sheet(1)
    assert summarize_sizes([sheet])[0].startswith("Part_1.png: ")


def test_capacity_checked_from_recorded_dimensions_before_decoding():
    # Larger than Pillow's decompression-bomb limit; the payload is never read
    oversized = EncodedSheet(index=1, data=b"", format="PNG", width=4500, height=45000)
    with pytest.raises(CanvasCapacityError):
        combine_sheets([oversized], 1.0)


def test_sheets_above_decoder_pixel_limit_still_combine(monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 500)
    sheets = [make_sheet(1, color="red"), make_sheet(2, color="blue")]
    data = combine_sheets(sheets, 1.0)
    assert Image.MAX_IMAGE_PIXELS == 500
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", None)
    with Image.open(BytesIO(data)) as img:
        assert img.size == (60, 80)
        assert img.convert("RGB").getpixel((30, 60)) == (0, 0, 255)


def test_unreadable_sheet_is_an_export_error():
    broken = EncodedSheet(index=3, data=b"not a png", format="PNG", width=60, height=40)
    with pytest.raises(ExportError, match="Sheet 3"):
        combine_sheets([broken], 1.0)
