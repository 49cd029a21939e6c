"""Built-in probe settings and the merge rules used to layer config sources."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

DEFAULTS_DIR = Path(__file__).parent / "defaults"


def load_defaults(name: str = "probe") -> dict[str, Any]:
    """Return the shipped ``defaults/<name>.yaml`` settings."""
    path = DEFAULTS_DIR / f"{name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"No built-in settings named '{name}' ({path})")
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def merge_configs(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Layer *overrides* on *base*; sections merge key by key, leaves replace.

    Neither input is modified.
    """
    merged = dict(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = merge_configs(current, value)
        merged[key] = value
    return merged


def drop_unset(overrides: dict[str, Any]) -> dict[str, Any]:
    """Remove ``None`` leaves so unset CLI options don't mask file values."""
    cleaned: dict[str, Any] = {}
    for key, value in overrides.items():
        if isinstance(value, dict):
            nested = drop_unset(value)
            if nested:
                cleaned[key] = nested
        elif value is not None:
            cleaned[key] = value
    return cleaned
