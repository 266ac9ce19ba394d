"""Pytest configuration and fixtures for PRLens tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator, List

import pytest

from prlens.embeddings import HashEmbeddingModel
from prlens.models import SourceFile
from prlens.orchestrator import ChangedFile
from prlens.parser import Extractor, iter_source_files
from prlens.storage import IndexSnapshot, SymbolIndex

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def prlens_home(temp_dir: Path, monkeypatch) -> Path:
    """Point every on-disk location at a temporary directory."""
    index_dir = temp_dir / "indexes"
    config_file = temp_dir / "config.toml"

    # storage and config_manager bind these at import time
    monkeypatch.setattr("prlens.storage.INDEX_DIR", index_dir)
    monkeypatch.setattr("prlens.storage.ensure_base_dirs", lambda: index_dir.mkdir(parents=True, exist_ok=True))
    monkeypatch.setattr("prlens.config_manager.CONFIG_FILE", config_file)
    monkeypatch.setattr("prlens.cli.CONFIG_FILE", config_file)
    return temp_dir


@pytest.fixture
def baseline_project_path() -> Path:
    """Baseline tree: Java shop classes plus a Python validation module."""
    return FIXTURES / "baseline_project"


@pytest.fixture
def change_set_path() -> Path:
    """Changed and added files reviewed against the baseline."""
    return FIXTURES / "change_set"


@pytest.fixture
def baseline_files(baseline_project_path: Path) -> List[SourceFile]:
    return list(iter_source_files(baseline_project_path))


@pytest.fixture
def extractor() -> Extractor:
    return Extractor(max_workers=2)


@pytest.fixture
def embedder() -> HashEmbeddingModel:
    return HashEmbeddingModel()


@pytest.fixture
def baseline_index(extractor: Extractor, embedder: HashEmbeddingModel, baseline_files: List[SourceFile]) -> SymbolIndex:
    """A SymbolIndex with the baseline project published."""
    index = SymbolIndex(extractor=extractor, embedder=embedder)
    index.rebuild_index(baseline_files)
    return index


@pytest.fixture
def baseline_snapshot(baseline_index: SymbolIndex) -> IndexSnapshot:
    return baseline_index.current()


@pytest.fixture
def changed_files(change_set_path: Path) -> List[ChangedFile]:
    """The change set as the upstream file source would supply it."""
    return [
        ChangedFile(path=f.path, content=f.content)
        for f in iter_source_files(change_set_path)
    ]


@pytest.fixture
def sample_java_code() -> str:
    """Java source exercising packages, nesting, overloads and fields."""
    return '''package com.example.orders;

import java.util.List;
import java.util.Map;

/**
 * Order service with a { brace in a comment.
 */
@Service
public class OrderService {
    private static final String PREFIX = "ord-{";
    protected Map<String, List<Integer>> cache;
    int a = 1, b = 2;

    public OrderService(Repository repo) {
        this.repo = repo;
    }

    @Override
    public List<Order> find(String id, int limit) throws NotFoundException {
        Order order = repo.load(id);
        validate(order);
        return List.of(order);
    }

    public List<Order> find(String id) {
        return this.find(id, 10);
    }

    private void validate(final Order order) {
        if (order == null) {
            throw new IllegalStateException("missing } order");
        }
    }

    static class Builder {
        String name;

        Builder withName(String name) {
            this.name = name;
            return this;
        }
    }

    interface Listener {
        void onOrder(Order order);
    }
}
'''


@pytest.fixture
def sample_python_code() -> str:
    """Sample Python code for testing extraction."""
    return '''"""Sample module for testing."""


def hello(name: str) -> str:
    return f"Hello, {name}!"


class Calculator:
    """Simple calculator."""

    def add(self, a: int, b: int) -> int:
        return a + b

    @staticmethod
    def multiply(a: int, b: int = 2, *rest, **options) -> int:
        result = Calculator.add(None, a, 0)
        for _ in range(b - 1):
            result = helpers.combine(result, a)
        return result

    def _reset(self):
        self.__clear()

    def __clear(self):
        pass
'''


@pytest.fixture
def sample_patch() -> str:
    """Two-hunk patch for a 12-line file."""
    return (
        "diff --git a/Foo.java b/Foo.java\n"
        "index 1111111..2222222 100644\n"
        "--- a/Foo.java\n"
        "+++ b/Foo.java\n"
        "@@ -1,3 +1,4 @@\n"
        " class Foo {\n"
        "+    int added;\n"
        "     int a;\n"
        "     int b;\n"
        "@@ -8,4 +9,4 @@ class Foo {\n"
        "     void g() {\n"
        "-        old();\n"
        "+        fresh();\n"
        "     }\n"
        " }\n"
        "\\ No newline at end of file\n"
    )
