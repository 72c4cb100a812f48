import json

from collage_sheets import config
from collage_sheets.models import (
    CollageSettings,
    ExportSettings,
    FontPosition,
    LayoutSettings,
    LineStyle,
    MaskMode,
    MaskSettings,
    NumberingSettings,
    OverlaySettings,
)
from collage_sheets.serialization import load_settings, save_settings, settings_from_payload, settings_to_payload


def custom_settings():
    return CollageSettings(
        layout=LayoutSettings(cols=4, rows_per_group=0, gap=6, aspect_ratio=1.0),
        numbering=NumberingSettings(start_number=7, position=FontPosition.TOP_RIGHT, stroke_enabled=True),
        overlay=OverlaySettings(image=b"overlay-bytes", opacity=0.5, blend_mode="multiply"),
        mask=MaskSettings(indices="1-3", mode=MaskMode.IMAGE, line_style=LineStyle.SLASH, sticker_image=b"s"),
        export=ExportSettings(quality=1.0),
    )


def test_payload_is_json_with_plain_values():
    payload = settings_to_payload(custom_settings())
    assert payload["version"] == config.SETTINGS_VERSION
    assert payload["numbering"]["position"] == "top-right"
    assert payload["mask"]["mode"] == "image"
    json.dumps(payload)


def test_images_are_not_persisted():
    payload = settings_to_payload(custom_settings())
    assert "image" not in payload["overlay"]
    assert "sticker_image" not in payload["mask"]
    restored = settings_from_payload(payload)
    assert restored.overlay.image is None
    assert restored.mask.sticker_image is None


def test_roundtrip_keeps_everything_else():
    original = custom_settings()
    restored = settings_from_payload(settings_to_payload(original))
    assert restored.layout == original.layout
    assert restored.numbering == original.numbering
    assert restored.export == original.export
    assert restored.mask.indices == "1-3"
    assert restored.mask.line_style is LineStyle.SLASH
    assert restored.overlay.blend_mode == "multiply"


def test_missing_sections_and_keys_use_defaults():
    restored = settings_from_payload({"layout": {"cols": 5}})
    assert restored.layout.cols == 5
    assert restored.layout.rows_per_group == config.DEFAULT_ROWS_PER_GROUP
    assert restored.numbering == NumberingSettings()


def test_invalid_values_are_ignored():
    restored = settings_from_payload({
        "layout": {"cols": "many", "gap": 4},
        "numbering": {"position": "upside-down", "enabled": "yes"},
        "mask": {"width": 12},
    })
    assert restored.layout.cols == config.DEFAULT_COLUMNS
    assert restored.layout.gap == 4
    assert restored.numbering.position is FontPosition.BOTTOM_CENTER
    assert restored.numbering.enabled is True
    assert restored.mask.width == 12.0
    assert isinstance(restored.mask.width, float)


def test_save_and_load(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    save_settings(custom_settings(), path)
    assert load_settings(path).layout.cols == 4


def test_load_missing_or_corrupt_falls_back(tmp_path):
    assert load_settings(tmp_path / "absent.json") == CollageSettings()
    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("[1, 2", encoding="utf-8")
    assert load_settings(corrupt) == CollageSettings()
    not_object = tmp_path / "list.json"
    not_object.write_text("[1, 2]", encoding="utf-8")
    assert load_settings(not_object) == CollageSettings()
