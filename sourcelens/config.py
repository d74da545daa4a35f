"""Configuration paths and viewer defaults for SourceLens."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("SOURCELENS_HOME", str(Path.home() / ".sourcelens"))).expanduser()
STATE_FILE = BASE_DIR / "state.json"
CONFIG_FILE = BASE_DIR / "config.toml"
SUPPORTED_EXTENSIONS = {".js", ".mjs", ".cjs"}

DEFAULT_MAX_CALL_DEPTH = 10
DEFAULT_MERGE_TOLERANCE = 2
DEFAULT_INDENT_SIZE = 2
DEFAULT_MAX_SOURCE_CHARS = 5_000_000


def ensure_base_dirs() -> None:
    """Create the base directory for local state if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
