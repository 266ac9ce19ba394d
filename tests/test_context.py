"""Tests for test-versus-production classification."""

import pytest

from prlens.context import PRODUCTION, TEST, classify_context, is_test_path
from prlens.models import Signature, Symbol, SymbolKind


@pytest.mark.parametrize(
    "path",
    [
        "src/test/java/com/shop/InventoryTest.java",
        "com/shop/InventoryTests.java",
        "TestInventory.java",
        "tests/unit/helpers.py",
        "app/test_models.py",
        "app/models_test.py",
        "pkg/server_test.go",
        "web/src/store.spec.ts",
        "web/src/__tests__/store.js",
        "web/src/Button.test.tsx",
    ],
)
def test_test_paths(path: str):
    """Test common test-file conventions are recognised."""
    assert is_test_path(path)


@pytest.mark.parametrize(
    "path",
    [
        "src/main/java/com/shop/Inventory.java",
        "src/main/java/com/shop/Testimony.java",
        "app/contest.py",
        "pkg/server.go",
        "web/src/store.ts",
        "latest/models.py",
    ],
)
def test_production_paths(path: str):
    """Test production files are not mistaken for tests."""
    assert not is_test_path(path)


def test_classify_context():
    """Test symbols take the context of their file."""
    def symbol(file: str) -> Symbol:
        return Symbol("id", "q", SymbolKind.FUNCTION, Signature(), file, 1, 1)

    assert classify_context(symbol("tests/test_api.py")) == TEST
    assert classify_context(symbol("app/api.py")) == PRODUCTION
