"""Configuration manager for SourceLens using TOML files."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict

import toml

from . import config

logger = logging.getLogger(__name__)

VIEWER_SECTION = "viewer"

DEFAULT_VIEWER_CONFIG: Dict[str, Any] = {
    "max_call_depth": config.DEFAULT_MAX_CALL_DEPTH,
    "merge_tolerance": config.DEFAULT_MERGE_TOLERANCE,
    "focus_by_default": True,
    "indent_size": config.DEFAULT_INDENT_SIZE,
    "max_source_chars": config.DEFAULT_MAX_SOURCE_CHARS,
}

_CONVERTERS = {
    "max_call_depth": int,
    "merge_tolerance": int,
    "focus_by_default": lambda v: v if isinstance(v, bool) else str(v).lower() in {"1", "true", "yes", "on"},
    "indent_size": int,
    "max_source_chars": int,
}

_NON_NEGATIVE = {"max_call_depth", "merge_tolerance", "indent_size", "max_source_chars"}


def _convert(key: str, raw: Any) -> Any:
    value = _CONVERTERS[key](raw)
    if key in _NON_NEGATIVE and value < 0:
        raise ValueError(f"{key} must not be negative")
    return value


@dataclass(frozen=True)
class ViewerSettings:
    """Tunables consumed by the load pipeline."""

    max_call_depth: int = config.DEFAULT_MAX_CALL_DEPTH
    merge_tolerance: int = config.DEFAULT_MERGE_TOLERANCE
    focus_by_default: bool = True
    indent_size: int = config.DEFAULT_INDENT_SIZE
    max_source_chars: int = config.DEFAULT_MAX_SOURCE_CHARS

    @classmethod
    def from_config(cls) -> "ViewerSettings":
        return cls(**load_viewer_config())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not config.CONFIG_FILE.exists():
        return {}
    try:
        with open(config.CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config.CONFIG_FILE, exc)
        return {}


def _save_full_config(full: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    config.ensure_base_dirs()
    try:
        with open(config.CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(full, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", config.CONFIG_FILE, exc)
        return False


def load_viewer_config() -> Dict[str, Any]:
    """Load the ``[viewer]`` section merged over the defaults.

    Unknown keys are dropped and malformed values fall back to the default
    for that key.
    """
    merged = DEFAULT_VIEWER_CONFIG.copy()
    section = load_full_config().get(VIEWER_SECTION, {})
    for key, raw in section.items():
        if key not in _CONVERTERS:
            logger.debug("Unknown viewer setting '%s' ignored", key)
            continue
        try:
            merged[key] = _convert(key, raw)
        except (TypeError, ValueError):
            logger.warning("Invalid value for viewer setting '%s': %r", key, raw)
    return merged


def save_viewer_setting(key: str, value: str) -> bool:
    """Persist one viewer setting.

    Raises:
        KeyError: if *key* is not a known viewer setting.
        ValueError: if *value* cannot be converted to the setting's type.
    """
    if key not in _CONVERTERS:
        raise KeyError(key)
    converted = _convert(key, value)
    full = load_full_config()
    section = full.setdefault(VIEWER_SECTION, {})
    section[key] = converted
    return _save_full_config(full)


def reset_viewer_config() -> bool:
    """Remove the ``[viewer]`` section, restoring defaults."""
    full = load_full_config()
    full.pop(VIEWER_SECTION, None)
    return _save_full_config(full)
