"""Serialization helpers for persisted user settings."""

from .settings import (
    load_settings,
    save_settings,
    settings_from_payload,
    settings_to_payload,
)

__all__ = [
    "load_settings",
    "save_settings",
    "settings_from_payload",
    "settings_to_payload",
]
