import pytest
from PIL import Image

from collage_sheets.rendering.compositing import SUPPORTED_BLEND_MODES, composite_overlay, resolve_blend_mode


def sheet(color=(200, 100, 50), size=(20, 10)):
    return Image.new("RGB", size, color)


def test_normal_overlay_is_stretched_full_bleed():
    overlay = Image.new("RGBA", (2, 2), (0, 0, 255, 255))
    result = composite_overlay(sheet(), overlay, opacity=1.0, blend_mode="source-over")
    assert result.size == (20, 10)
    assert result.getpixel((19, 9)) == (0, 0, 255)


def test_opacity_scales_overlay():
    overlay = Image.new("RGBA", (20, 10), (0, 0, 0, 255))
    result = composite_overlay(sheet((200, 200, 200)), overlay, opacity=0.5, blend_mode="normal")
    red = result.getpixel((5, 5))[0]
    assert 95 <= red <= 105


def test_transparent_overlay_leaves_sheet_untouched():
    overlay = Image.new("RGBA", (20, 10), (0, 0, 0, 0))
    result = composite_overlay(sheet(), overlay, opacity=1.0, blend_mode="normal")
    assert result.getpixel((0, 0)) == (200, 100, 50)


def test_zero_opacity_returns_sheet():
    base = sheet()
    assert composite_overlay(base, Image.new("RGBA", (1, 1)), opacity=0, blend_mode="normal") is base


def test_multiply_blend():
    overlay = Image.new("RGBA", (20, 10), (255, 0, 255, 255))
    result = composite_overlay(sheet(), overlay, opacity=1.0, blend_mode="multiply")
    assert result.getpixel((0, 0)) == (200, 0, 50)


def test_unknown_mode_falls_back_to_normal():
    assert resolve_blend_mode("sparkle") is resolve_blend_mode("normal")


@pytest.mark.parametrize("mode", SUPPORTED_BLEND_MODES)
def test_every_supported_mode_produces_rgb(mode):
    overlay = Image.new("RGBA", (20, 10), (10, 120, 240, 128))
    assert composite_overlay(sheet(), overlay, opacity=0.8, blend_mode=mode).mode == "RGB"


@pytest.mark.parametrize(
    "overlay_value, expected",
    [
        (0, 64),      # cb - cb(1 - cb) = cb^2
        (128, 128),   # neutral grey leaves the backdrop unchanged
        (255, 181),   # sqrt(cb); a pegtop curve would give 192
    ],
)
def test_soft_light_follows_canvas_formula(overlay_value, expected):
    overlay = Image.new("RGBA", (20, 10), (overlay_value,) * 3 + (255,))
    result = composite_overlay(sheet((128, 128, 128)), overlay, opacity=1.0, blend_mode="soft-light")
    for channel in result.getpixel((3, 3)):
        assert abs(channel - expected) <= 2


def test_soft_light_on_dark_backdrop_uses_polynomial_branch():
    # cb = 0.2: D(cb) = ((16cb - 12)cb + 4)cb = 0.448
    overlay = Image.new("RGBA", (20, 10), (255, 255, 255, 255))
    result = composite_overlay(sheet((51, 51, 51)), overlay, opacity=1.0, blend_mode="soft-light")
    assert abs(result.getpixel((0, 0))[0] - 114) <= 2
