"""Test-versus-production classification from path conventions."""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from .models import Symbol

TEST = "test"
PRODUCTION = "production"

_TEST_DIRS = {"test", "tests", "spec", "specs", "__tests__", "testing", "it"}
_TEST_FILE_RES = (
    re.compile(r".*Tests?\.java$"),
    re.compile(r"^Test[A-Z].*\.java$"),
    re.compile(r"^test_.*\.py$"),
    re.compile(r".*_test\.(py|go)$"),
    re.compile(r".*\.(test|spec)\.(js|jsx|ts|tsx|mjs)$", re.IGNORECASE),
    re.compile(r"^(test|spec)-.*\.\w+$", re.IGNORECASE),
    re.compile(r".*-(test|spec)\.\w+$", re.IGNORECASE),
)


def is_test_path(file_path: str) -> bool:
    path = PurePosixPath(file_path.replace("\\", "/"))
    if any(part.lower() in _TEST_DIRS for part in path.parts[:-1]):
        return True
    return any(pattern.match(path.name) for pattern in _TEST_FILE_RES)


def classify_context(symbol: Symbol) -> str:
    """``"test"`` for symbols living in test code, else ``"production"``."""
    return TEST if is_test_path(symbol.file) else PRODUCTION
