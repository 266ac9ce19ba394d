"""Tests for TOML configuration loading and validation."""

from pathlib import Path

import pytest
import toml

from prlens.config_manager import (
    DuplicateConfig,
    PRLensConfig,
    load_config,
    load_embedding_config,
    save_config,
    save_embedding_config,
)
from prlens.duplicates import DuplicateDetector
from prlens.errors import ConfigError


def write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_defaults_without_file(self, temp_dir: Path):
        """Test a missing config file yields the documented defaults."""
        cfg = load_config(temp_dir / "missing.toml")

        assert cfg == PRLensConfig()
        assert cfg.duplicates.signature_weight == 0.4
        assert cfg.duplicates.body_weight == 0.6
        assert cfg.duplicates.exact_threshold == 0.95
        assert cfg.duplicates.similar_threshold == 0.80
        assert cfg.breaking.inside_change_set_severity == "medium"
        assert cfg.embeddings.model == "hash"

    def test_custom_values(self, temp_dir: Path):
        """Test values from each section override the defaults."""
        path = write(
            temp_dir / "config.toml",
            "[duplicates]\n"
            "signature_weight = 0.5\n"
            "body_weight = 0.5\n"
            "kinds = [\"function\", \"method\", \"field\"]\n"
            "[breaking]\n"
            "inside_change_set_severity = \"high\"\n"
            "[extractor]\n"
            "use_tree_sitter = false\n"
            "max_workers = 2\n",
        )
        cfg = load_config(path)

        assert cfg.duplicates.signature_weight == 0.5
        assert cfg.duplicates.kinds == ("function", "method", "field")
        assert cfg.breaking.inside_change_set_severity == "high"
        assert cfg.extractor.use_tree_sitter is False
        assert cfg.extractor.max_workers == 2

    def test_integer_weight_is_coerced(self, temp_dir: Path):
        path = write(temp_dir / "config.toml", "[duplicates]\nsignature_weight = 0\nbody_weight = 1\n")
        cfg = load_config(path)

        assert isinstance(cfg.duplicates.body_weight, float)
        assert cfg.duplicates.body_weight == 1.0

    def test_unknown_keys_are_ignored(self, temp_dir: Path):
        """Test unrecognised keys and sections do not fail loading."""
        path = write(temp_dir / "config.toml", "[duplicates]\nshiny = 1\n[plugins]\nname = \"x\"\n")

        assert load_config(path) == PRLensConfig()

    @pytest.mark.parametrize(
        "text",
        [
            "[duplicates]\nsignature_weight = 0.5\nbody_weight = 0.6\n",
            "[duplicates]\nsimilar_threshold = 0.97\n",
            "[duplicates]\nneighbor_k = 0\n",
            "[duplicates]\nbody_weight = \"high\"\n",
            "[duplicates]\nkinds = \"function\"\n",
            "[duplicates]\nkinds = [\"function\", \"lambda\"]\n",
            "[breaking]\ninside_change_set_severity = \"critical\"\n",
            "[embeddings]\ntimeout = -1\n",
            "[extractor]\nuse_tree_sitter = 1\n",
            "[extractor]\nmax_workers = 0\n",
            "not toml at all [\n",
        ],
    )
    def test_invalid_config_raises(self, temp_dir: Path, text: str):
        """Test bad values are rejected rather than silently defaulted."""
        path = write(temp_dir / "config.toml", text)

        with pytest.raises(ConfigError):
            load_config(path)


def test_duplicate_config_validate():
    assert DuplicateConfig().validate() == DuplicateConfig()
    with pytest.raises(ConfigError):
        DuplicateConfig(signature_mismatch_cap=1.0).validate()


def test_unknown_kind_rejected_by_detector():
    """Test a misspelt symbol kind surfaces as a configuration error."""
    with pytest.raises(ConfigError, match="lambda"):
        DuplicateDetector(DuplicateConfig(kinds=("function", "lambda")))


class TestSaveConfig:
    def test_round_trip_preserves_foreign_sections(self, temp_dir: Path):
        """Test saving keeps sections owned by other tools."""
        path = write(temp_dir / "config.toml", "[plugins]\nname = \"x\"\n")
        cfg = PRLensConfig(duplicates=DuplicateConfig(exact_threshold=0.9))

        save_config(cfg, path)

        assert load_config(path) == cfg
        assert toml.load(str(path))["plugins"] == {"name": "x"}

    def test_default_path(self, prlens_home: Path):
        """Test the default location is used when no path is given."""
        path = save_config(PRLensConfig())

        assert path == prlens_home / "config.toml"
        assert load_config() == PRLensConfig()

    def test_embedding_config(self, temp_dir: Path):
        path = temp_dir / "config.toml"
        save_embedding_config("hash", timeout=5.0, path=path)

        emb = load_embedding_config(path)
        assert emb.model == "hash"
        assert emb.timeout == 5.0

    def test_embedding_config_rejects_bad_timeout(self, temp_dir: Path):
        path = temp_dir / "config.toml"

        with pytest.raises(ConfigError):
            save_embedding_config("hash", timeout=0, path=path)
        assert not path.exists()
