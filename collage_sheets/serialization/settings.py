"""Settings serialization helpers decoupled from any front end.

Payloads are flat JSON dictionaries grouped by settings section.  Image
payloads (overlay, sticker) are never persisted: they are session-only
assets and always come back as ``None``.  Missing or invalid keys fall back
to defaults so settings written by older versions keep loading.
"""
from __future__ import annotations

import json
import logging
from dataclasses import fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Type, TypeVar, Union

from .. import config
from ..models import (
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

LOGGER = logging.getLogger(__name__)

_SECTIONS: Dict[str, Type] = {
    "layout": LayoutSettings,
    "numbering": NumberingSettings,
    "overlay": OverlaySettings,
    "mask": MaskSettings,
    "export": ExportSettings,
}

# Session-only fields: bytes payloads chosen by the user each time
_TRANSIENT_FIELDS = {"image", "sticker_image"}

_ENUM_FIELDS: Dict[str, Type[Enum]] = {
    "position": FontPosition,
    "mode": MaskMode,
    "line_style": LineStyle,
}

T = TypeVar("T")


def _section_to_payload(section: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    for f in fields(section):
        if f.name in _TRANSIENT_FIELDS:
            continue
        value = getattr(section, f.name)
        payload[f.name] = value.value if isinstance(value, Enum) else value
    return payload


def _coerce(name: str, raw: Any, default: Any, type_name: str) -> Any:
    enum_type = _ENUM_FIELDS.get(name)
    if enum_type is not None:
        return enum_type(raw)
    if type_name == "float":
        if isinstance(raw, bool):
            raise TypeError(f"expected a number, got {raw!r}")
        return float(raw)
    if isinstance(default, bool):
        if not isinstance(raw, bool):
            raise TypeError(f"expected a boolean, got {raw!r}")
        return raw
    if isinstance(default, int) and not isinstance(raw, bool):
        if isinstance(raw, float) and not raw.is_integer():
            raise ValueError(f"expected an integer, got {raw!r}")
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, str):
        if not isinstance(raw, str):
            raise TypeError(f"expected a string, got {raw!r}")
        return raw
    return raw


def _section_from_payload(cls: Type[T], payload: Mapping[str, Any]) -> T:
    section = cls()
    changes: Dict[str, Any] = {}
    for f in fields(section):
        if f.name in _TRANSIENT_FIELDS or f.name not in payload:
            continue
        default = getattr(section, f.name)
        try:
            changes[f.name] = _coerce(f.name, payload[f.name], default, str(f.type))
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Ignoring invalid setting %s.%s=%r: %s", cls.__name__, f.name, payload[f.name], exc)
    return replace(section, **changes)


def settings_to_payload(settings: CollageSettings) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"version": config.SETTINGS_VERSION}
    for key in _SECTIONS:
        payload[key] = _section_to_payload(getattr(settings, key))
    return payload


def settings_from_payload(payload: Mapping[str, Any]) -> CollageSettings:
    sections: Dict[str, Any] = {}
    for key, cls in _SECTIONS.items():
        section_payload = payload.get(key)
        if isinstance(section_payload, Mapping):
            sections[key] = _section_from_payload(cls, section_payload)
        else:
            sections[key] = cls()
    return CollageSettings(**sections)


def save_settings(settings: CollageSettings, path: Union[str, Path] = config.SETTINGS_PATH) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(settings_to_payload(settings), indent=2), encoding="utf-8")
    return target


def load_settings(path: Union[str, Path] = config.SETTINGS_PATH) -> CollageSettings:
    """Load settings from *path*, falling back to defaults when unreadable."""
    source = Path(path)
    if not source.exists():
        return CollageSettings()
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        LOGGER.warning("Failed to load settings from %s: %s", source, exc)
        return CollageSettings()
    if not isinstance(payload, Mapping):
        LOGGER.warning("Settings file %s does not contain an object", source)
        return CollageSettings()
    return settings_from_payload(payload)
