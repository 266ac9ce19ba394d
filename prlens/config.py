"""Configuration paths and constants for local PRLens state."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("PRLENS_HOME", str(Path.home() / ".prlens"))).expanduser()
INDEX_DIR = BASE_DIR / "indexes"

# Bump whenever the persisted snapshot layout changes.
SCHEMA_VERSION = 3

DEFAULT_EMBEDDING_DIM = 256
DEFAULT_MAX_WORKERS = 4

SUPPORTED_EXTENSIONS = {".java", ".py", ".js", ".jsx", ".mjs", ".ts", ".tsx", ".go", ".rs"}

SKIP_DIRS = {
    ".venv", "venv", "__pycache__", "node_modules", ".git",
    "site-packages", ".tox", ".pytest_cache", "build", "dist",
    ".mypy_cache", ".ruff_cache", "htmlcov", ".eggs", "target",
    ".gradle", ".idea", ".prlens",
}


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    INDEX_DIR.mkdir(parents=True, exist_ok=True)
