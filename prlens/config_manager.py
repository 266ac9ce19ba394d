"""Configuration manager for PRLens using TOML files.

The file lives at ``~/.prlens/config.toml`` (or under ``$PRLENS_HOME``)
and is optional; every section falls back to defaults::

    [embeddings]
    model = "hash"
    timeout = 2.0

    [duplicates]
    signature_weight = 0.4
    body_weight = 0.6
    exact_threshold = 0.95
    similar_threshold = 0.80

    [breaking]
    inside_change_set_severity = "medium"

    [extractor]
    use_tree_sitter = true
    max_workers = 4
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import toml

from .config import BASE_DIR, DEFAULT_MAX_WORKERS
from .errors import ConfigError
from .models import SymbolKind

logger = logging.getLogger(__name__)

CONFIG_FILE = BASE_DIR / "config.toml"


# ===================================================================
# Section dataclasses
# ===================================================================

@dataclass(frozen=True)
class DuplicateConfig:
    """Tuning knobs for :class:`~prlens.duplicates.DuplicateDetector`.

    Weights must sum to 1.0; thresholds satisfy
    ``0 < similar_threshold <= exact_threshold <= 1``.
    """

    signature_weight: float = 0.4
    body_weight: float = 0.6
    exact_threshold: float = 0.95
    similar_threshold: float = 0.80
    # A non-identical signature never reaches a perfect signature score.
    signature_mismatch_cap: float = 0.9
    min_body_tokens: int = 12
    prefilter_threshold: int = 200
    neighbor_k: int = 25
    kinds: Tuple[str, ...] = ("function", "method")

    def validate(self) -> "DuplicateConfig":
        if self.signature_weight < 0 or self.body_weight < 0:
            raise ConfigError("duplicate weights must be non-negative")
        if abs(self.signature_weight + self.body_weight - 1.0) > 1e-6:
            raise ConfigError(
                f"duplicate weights must sum to 1.0, got "
                f"{self.signature_weight} + {self.body_weight}"
            )
        if not 0.0 < self.similar_threshold <= self.exact_threshold <= 1.0:
            raise ConfigError(
                "thresholds must satisfy 0 < similar_threshold <= exact_threshold <= 1"
            )
        if not 0.0 <= self.signature_mismatch_cap < 1.0:
            raise ConfigError("signature_mismatch_cap must be in [0, 1)")
        if self.min_body_tokens < 0 or self.prefilter_threshold < 0 or self.neighbor_k < 1:
            raise ConfigError("min_body_tokens, prefilter_threshold and neighbor_k must be positive")
        unknown = sorted(set(self.kinds) - {k.value for k in SymbolKind})
        if unknown:
            raise ConfigError(
                f"unknown symbol kinds {', '.join(unknown)}; expected any of "
                f"{', '.join(k.value for k in SymbolKind)}"
            )
        return self


@dataclass(frozen=True)
class BreakingConfig:
    # Severity reported when only call sites inside the change set are found.
    inside_change_set_severity: str = "medium"

    def validate(self) -> "BreakingConfig":
        if self.inside_change_set_severity not in ("high", "medium", "low"):
            raise ConfigError(
                f"inside_change_set_severity must be high, medium or low, "
                f"got {self.inside_change_set_severity!r}"
            )
        return self


@dataclass(frozen=True)
class EmbeddingConfig:
    model: str = "hash"
    timeout: float = 2.0

    def validate(self) -> "EmbeddingConfig":
        if self.timeout <= 0:
            raise ConfigError("embedding timeout must be positive")
        return self


@dataclass(frozen=True)
class ExtractorConfig:
    use_tree_sitter: bool = True
    max_workers: int = DEFAULT_MAX_WORKERS

    def validate(self) -> "ExtractorConfig":
        if self.max_workers < 1:
            raise ConfigError("max_workers must be at least 1")
        return self


@dataclass(frozen=True)
class PRLensConfig:
    duplicates: DuplicateConfig = field(default_factory=DuplicateConfig)
    breaking: BreakingConfig = field(default_factory=BreakingConfig)
    embeddings: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["duplicates"]["kinds"] = list(self.duplicates.kinds)
        return payload


# ===================================================================
# Load / save
# ===================================================================

def load_full_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections).  Missing file -> ``{}``."""
    path = path or CONFIG_FILE
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (toml.TomlDecodeError, OSError) as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc


def _build_section(cls: Any, raw: Dict[str, Any], section: str) -> Any:
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(raw) - set(known))
    if unknown:
        logger.warning("Ignoring unknown keys in [%s]: %s", section, ", ".join(unknown))
    values: Dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            continue
        default = getattr(cls(), key)
        if isinstance(default, tuple):
            if not isinstance(value, (list, tuple)):
                raise ConfigError(f"[{section}].{key} must be a list")
            value = tuple(str(v) for v in value)
        elif isinstance(default, bool):
            if not isinstance(value, bool):
                raise ConfigError(f"[{section}].{key} must be true or false")
        elif isinstance(default, (int, float)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"[{section}].{key} must be a number")
            value = type(default)(value)
        values[key] = value
    return cls(**values).validate()


def load_config(path: Optional[Path] = None) -> PRLensConfig:
    """Load and validate every section, falling back to defaults."""
    raw = load_full_config(path)
    return PRLensConfig(
        duplicates=_build_section(DuplicateConfig, raw.get("duplicates", {}), "duplicates"),
        breaking=_build_section(BreakingConfig, raw.get("breaking", {}), "breaking"),
        embeddings=_build_section(EmbeddingConfig, raw.get("embeddings", {}), "embeddings"),
        extractor=_build_section(ExtractorConfig, raw.get("extractor", {}), "extractor"),
    )


def save_config(config: PRLensConfig, path: Optional[Path] = None) -> Path:
    """Write *config* to TOML, preserving sections PRLens does not own."""
    path = path or CONFIG_FILE
    payload = load_full_config(path)
    payload.update(config.to_dict())
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        toml.dump(payload, f)
    return path


# ------------------------------------------------------------------
# Embedding configuration
# ------------------------------------------------------------------

def load_embedding_config(path: Optional[Path] = None) -> EmbeddingConfig:
    """Load only the ``[embeddings]`` section."""
    raw = load_full_config(path)
    return _build_section(EmbeddingConfig, raw.get("embeddings", {}), "embeddings")


def save_embedding_config(model: str, timeout: Optional[float] = None, path: Optional[Path] = None) -> Path:
    """Set the embedding model (and optionally timeout) in ``[embeddings]``."""
    path = path or CONFIG_FILE
    payload = load_full_config(path)
    section = payload.setdefault("embeddings", {})
    section["model"] = model
    if timeout is not None:
        section["timeout"] = timeout
    _build_section(EmbeddingConfig, section, "embeddings")
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        toml.dump(payload, f)
    return path
