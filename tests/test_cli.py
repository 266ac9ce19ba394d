"""Integration tests for CLI commands."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from prlens import __version__
from prlens.cli import EXIT_CORRUPT, EXIT_NOT_FOUND, EXIT_STALE, app
from prlens.storage import IndexManager, IndexSnapshot

runner = CliRunner()

CHANGED = [
    "src/app/signup.py",
    "src/main/java/com/shop/EmailValidator.java",
    "src/main/java/com/shop/Inventory.java",
    "src/main/java/com/shop/UserService.java",
]


def parse_json(output: str) -> dict:
    """Decode the JSON document in *output*, ignoring any log lines around it."""
    start = output.index("{")
    payload, _ = json.JSONDecoder().raw_decode(output[start:])
    return payload


@pytest.fixture
def shop_index(prlens_home: Path, baseline_project_path: Path) -> str:
    result = runner.invoke(app, ["index", str(baseline_project_path), "--name", "shop"])
    assert result.exit_code == 0, result.output
    return "shop"


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"PRLens v{__version__}" in result.output


class TestIndexCommand:
    def test_index_project(self, prlens_home: Path, baseline_project_path: Path):
        """Test indexing a baseline tree saves a named index."""
        result = runner.invoke(app, ["index", str(baseline_project_path), "--name", "shop"])

        assert result.exit_code == 0
        assert "Saved to" in result.output
        assert IndexManager().exists("shop")

    def test_index_nonexistent_path(self, prlens_home: Path):
        result = runner.invoke(app, ["index", "/nonexistent/path"])

        assert result.exit_code != 0

    def test_unknown_embedding(self, prlens_home: Path, baseline_project_path: Path):
        """Test an unknown embedding key is rejected before indexing."""
        result = runner.invoke(app, ["index", str(baseline_project_path), "--embedding", "nope"])

        assert result.exit_code != 0
        assert not IndexManager().list_indexes()


class TestListIndexes:
    def test_list_empty(self, prlens_home: Path):
        result = runner.invoke(app, ["list-indexes"])

        assert result.exit_code == 0
        assert "No indexes found" in result.output

    def test_list_populated(self, shop_index: str):
        result = runner.invoke(app, ["list-indexes"])

        assert result.exit_code == 0
        assert shop_index in result.output


class TestDeleteIndex:
    def test_delete(self, shop_index: str):
        """Test a saved index can be deleted by name."""
        result = runner.invoke(app, ["delete-index", shop_index])

        assert result.exit_code == 0
        assert f"Deleted index '{shop_index}'" in result.output
        assert not IndexManager().exists(shop_index)

    def test_delete_missing(self, prlens_home: Path):
        result = runner.invoke(app, ["delete-index", "ghost"])

        assert result.exit_code != 0


class TestAnalyzeCommand:
    def test_json_output(self, shop_index: str, change_set_path: Path):
        """Test analysis of the change set reports duplicates and breaking changes."""
        result = runner.invoke(
            app, ["analyze", *CHANGED, "--index", shop_index, "--root", str(change_set_path), "--json"]
        )

        assert result.exit_code == 0, result.output
        payload = parse_json(result.output)
        assert len(payload["duplicates"]) == 2
        assert [c["flags"] for c in payload["breaking_changes"]] == [["returnTypeChanged"], ["visibilityReduced"]]
        assert payload["breaking_changes"][0]["severity"] == "high"

    def test_table_output(self, shop_index: str, change_set_path: Path):
        result = runner.invoke(app, ["analyze", *CHANGED, "--index", shop_index, "--root", str(change_set_path)])

        assert result.exit_code == 0, result.output
        assert "Duplicates" in result.output
        assert "Breaking changes" in result.output

    def test_missing_file_is_treated_as_removed(self, shop_index: str, change_set_path: Path):
        """Test a path absent from the root is analyzed as a deletion."""
        result = runner.invoke(
            app,
            ["analyze", "src/main/java/com/shop/Report.java", "--index", shop_index,
             "--root", str(change_set_path), "--json"],
        )

        assert result.exit_code == 0, result.output
        payload = parse_json(result.output)
        assert payload["breaking_changes"] == []

    def test_missing_index(self, prlens_home: Path, change_set_path: Path):
        result = runner.invoke(app, ["analyze", *CHANGED, "--index", "ghost", "--root", str(change_set_path)])

        assert result.exit_code == EXIT_NOT_FOUND

    def test_stale_index(self, prlens_home: Path, change_set_path: Path):
        """Test an index built by another generator is refused."""
        IndexManager().save("old", IndexSnapshot(generator_version="other"))

        result = runner.invoke(app, ["analyze", *CHANGED, "--index", "old", "--root", str(change_set_path)])

        assert result.exit_code == EXIT_STALE

    def test_corrupt_index(self, prlens_home: Path, change_set_path: Path):
        path = IndexManager().index_path("broken")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"garbage" * 100)

        result = runner.invoke(app, ["analyze", *CHANGED, "--index", "broken", "--root", str(change_set_path)])

        assert result.exit_code == EXIT_CORRUPT


class TestMapLine:
    @pytest.fixture
    def patch_file(self, temp_dir: Path, sample_patch: str) -> Path:
        path = temp_dir / "foo.diff"
        path.write_text(sample_patch, encoding="utf-8")
        return path

    def test_line_in_hunk(self, patch_file: Path):
        result = runner.invoke(app, ["map-line", str(patch_file), "10"])

        assert result.exit_code == 0
        assert result.output.strip() == "10"

    def test_line_outside_hunks(self, patch_file: Path):
        """Test a line outside every hunk exits non-zero."""
        result = runner.invoke(app, ["map-line", str(patch_file), "7"])

        assert result.exit_code == 1
        assert "not part of any hunk" in result.output

    def test_nearest(self, patch_file: Path):
        result = runner.invoke(app, ["map-line", str(patch_file), "7", "--nearest"])

        assert result.exit_code == 0
        assert result.output.strip() == "9"


class TestShowConfig:
    def test_defaults(self, prlens_home: Path):
        """Test the effective configuration is printed as TOML."""
        result = runner.invoke(app, ["show-config"])

        assert result.exit_code == 0
        assert str(prlens_home / "config.toml") in result.output
        assert "[duplicates]" in result.output
        assert "signature_weight = 0.4" in result.output

    def test_invalid_config(self, prlens_home: Path):
        (prlens_home / "config.toml").write_text("[duplicates]\nbody_weight = 2.0\n", encoding="utf-8")

        result = runner.invoke(app, ["show-config"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
