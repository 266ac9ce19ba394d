"""Pluggable body embeddings and the similarity measures built on them.

Supported models (configure via ``[embeddings].model``):

========== ====================================== ========= ====== ======================
Key        HuggingFace Model                      Download  Dim    Notes
========== ====================================== ========= ====== ======================
jina-code  jinaai/jina-embeddings-v2-base-code    ~550 MB    768   Code-aware
bge-base   BAAI/bge-base-en-v1.5                  ~440 MB    768   General-purpose
minilm     sentence-transformers/all-MiniLM-L6-v2  ~80 MB    384   Tiny and fast
hash       (none)                                     0 B    256   No ML, token-level only
========== ====================================== ========= ====== ======================

The duplicate detector only sees the :class:`EmbeddingGenerator` interface,
so any of these can be injected.  Embedding is best-effort:
:func:`embed_with_timeout` makes one bounded attempt and callers fall back to
:func:`text_similarity` when no current vector exists.
"""

from __future__ import annotations

import logging
import math
import re
import threading
from abc import ABC, abstractmethod
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from hashlib import blake2b
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import BASE_DIR, DEFAULT_EMBEDDING_DIM
from .errors import EmbeddingError
from .models import Symbol

logger = logging.getLogger(__name__)

MODEL_CACHE_DIR: Path = BASE_DIR / "models"

_TOKEN_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*|\d+|[^\sA-Za-z0-9_]")
_WORD_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


# ===================================================================
# Model Registry
# ===================================================================

EMBEDDING_MODELS: Dict[str, Dict[str, Any]] = {
    "jina-code": {
        "name": "Jina Embeddings v2 Code",
        "hf_id": "jinaai/jina-embeddings-v2-base-code",
        "dim": 768,
        "max_tokens": 8192,
        "size": "~550 MB",
        "pooling": "mean",
        "trust_remote_code": True,
    },
    "bge-base": {
        "name": "BGE Base EN v1.5",
        "hf_id": "BAAI/bge-base-en-v1.5",
        "dim": 768,
        "max_tokens": 512,
        "size": "~440 MB",
        "pooling": "cls",
        "trust_remote_code": False,
    },
    "minilm": {
        "name": "MiniLM L6 v2",
        "hf_id": "sentence-transformers/all-MiniLM-L6-v2",
        "dim": 384,
        "max_tokens": 256,
        "size": "~80 MB",
        "pooling": "mean",
        "trust_remote_code": False,
    },
    "hash": {
        "name": "Hash Embedding",
        "hf_id": None,
        "dim": DEFAULT_EMBEDDING_DIM,
        "max_tokens": None,
        "size": "0 bytes",
        "pooling": None,
        "trust_remote_code": False,
    },
}

DEFAULT_MODEL = "hash"


def tokenize_code(text: str) -> List[str]:
    """Identifier, number and punctuation tokens; whitespace and layout ignored."""
    return _TOKEN_RE.findall(text)


# ===================================================================
# Generator interface
# ===================================================================

class EmbeddingGenerator(ABC):
    """Strategy that turns symbol bodies into fixed-size vectors.

    ``version`` identifies the model and its configuration; vectors stored
    under a different version are treated as missing.
    """

    @property
    @abstractmethod
    def version(self) -> str:
        ...

    @property
    @abstractmethod
    def dim(self) -> int:
        ...

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        """Embed *text* into a unit-norm vector of length :attr:`dim`."""
        ...

    def embed(self, symbol: Symbol) -> List[float]:
        return self.embed_text(symbol.body_text)


# ===================================================================
# HashEmbeddingModel  (zero-dependency default)
# ===================================================================

class HashEmbeddingModel(EmbeddingGenerator):
    """Deterministic token-hashing embedder with no ML dependencies.

    Identical bodies give identical vectors, which is all exact-duplicate
    detection needs; near-duplicates score by shared identifiers.
    """

    def __init__(self, dim: int = DEFAULT_EMBEDDING_DIM) -> None:
        if dim <= 0:
            raise ValueError("dim must be positive")
        self._dim = dim

    @property
    def version(self) -> str:
        return f"hash-v1-{self._dim}"

    @property
    def dim(self) -> int:
        return self._dim

    def embed_text(self, text: str) -> List[float]:
        vec = [0.0] * self._dim
        tokens = _WORD_RE.findall(text.lower())
        if not tokens:
            return vec
        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "big") % self._dim
            sign = 1.0 if (digest[4] & 1) == 0 else -1.0
            vec[idx] += sign
        return _l2_normalize(vec)


# ===================================================================
# TransformerEmbedder  (HuggingFace models)
# ===================================================================

class TransformerEmbedder(EmbeddingGenerator):
    """HuggingFace encoder with ``mean`` or ``cls`` pooling.

    Weights are downloaded on first use and cached under
    ``~/.prlens/models``.
    """

    def __init__(
        self,
        model_key: str,
        cache_dir: Optional[Path] = None,
        device: str = "cpu",
    ) -> None:
        if model_key not in EMBEDDING_MODELS:
            raise ValueError(
                f"Unknown model: '{model_key}'. "
                f"Available: {', '.join(EMBEDDING_MODELS.keys())}"
            )
        spec = EMBEDDING_MODELS[model_key]
        if spec["hf_id"] is None:
            raise ValueError(f"'{model_key}' has no transformer backend. Use HashEmbeddingModel.")

        self.model_key = model_key
        self.hf_id: str = spec["hf_id"]
        self._dim: int = spec["dim"]
        self.max_length: int = spec["max_tokens"]
        self.pooling: str = spec["pooling"]
        self.trust_remote_code: bool = spec["trust_remote_code"]
        self.cache_dir = cache_dir or MODEL_CACHE_DIR
        self.device = device
        self._model: Any = None
        self._tokenizer: Any = None
        self._load_lock = threading.Lock()

    @property
    def version(self) -> str:
        return f"{self.model_key}-{self._dim}"

    @property
    def dim(self) -> int:
        return self._dim

    def _load_model(self) -> None:
        with self._load_lock:
            if self._model is not None:
                return
            try:
                import torch  # noqa: F401
                from transformers import AutoModel, AutoTokenizer
            except ImportError as exc:
                raise EmbeddingError(
                    "torch and transformers are required for neural embeddings. "
                    "Install with: pip install prlens[embeddings]"
                ) from exc

            logger.info(
                "Loading embedding model '%s' (%s), first run downloads %s",
                self.model_key, self.hf_id, EMBEDDING_MODELS[self.model_key]["size"],
            )
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            try:
                self._tokenizer = AutoTokenizer.from_pretrained(
                    self.hf_id,
                    cache_dir=str(self.cache_dir),
                    trust_remote_code=self.trust_remote_code,
                )
                model = AutoModel.from_pretrained(
                    self.hf_id,
                    cache_dir=str(self.cache_dir),
                    trust_remote_code=self.trust_remote_code,
                )
                model.eval()
                model.to(self.device)
            except Exception as exc:
                raise EmbeddingError(
                    f"Failed to load embedding model '{self.model_key}' ({self.hf_id}): {exc}"
                ) from exc
            self._model = model

    def _pool(self, last_hidden_states: Any, attention_mask: Any) -> Any:
        if self.pooling == "cls":
            return last_hidden_states[:, 0]
        if self.pooling == "mean":
            mask = attention_mask.unsqueeze(-1).expand(last_hidden_states.size()).float()
            summed = (last_hidden_states * mask).sum(dim=1)
            return summed / mask.sum(dim=1).clamp(min=1e-9)
        raise EmbeddingError(f"Unknown pooling strategy: {self.pooling}")

    def _encode(self, texts: List[str]) -> List[List[float]]:
        import torch
        import torch.nn.functional as F

        self._load_model()
        batch = self._tokenizer(
            texts,
            max_length=self.max_length,
            padding=True,
            truncation=True,
            return_tensors="pt",
        )
        batch = {k: v.to(self.device) for k, v in batch.items()}
        with torch.no_grad():
            outputs = self._model(**batch)
        pooled = self._pool(outputs.last_hidden_state, batch["attention_mask"])
        return F.normalize(pooled, p=2, dim=1).cpu().tolist()

    def embed_text(self, text: str) -> List[float]:
        return self._encode([text])[0]


# ===================================================================
# Factory
# ===================================================================

def get_embedder(
    model_key: Optional[str] = None,
    cache_dir: Optional[Path] = None,
    device: str = "cpu",
) -> EmbeddingGenerator:
    """Return the configured embedder.

    Resolution order:

    1. Explicit ``model_key`` argument.
    2. ``[embeddings].model`` from ``~/.prlens/config.toml``.
    3. ``"hash"``.

    A transformer model whose dependencies are missing falls back to hash
    with a warning.
    """
    if model_key is None:
        from .config_manager import load_embedding_config

        model_key = load_embedding_config().model

    if model_key == "hash":
        return HashEmbeddingModel()

    if model_key not in EMBEDDING_MODELS:
        logger.warning("Unknown embedding model '%s', falling back to hash.", model_key)
        return HashEmbeddingModel()

    try:
        import torch  # noqa: F401
        import transformers  # noqa: F401
    except ImportError:
        logger.warning(
            "Embedding model '%s' requires torch + transformers. "
            "Falling back to hash embeddings. Install with: pip install prlens[embeddings]",
            model_key,
        )
        return HashEmbeddingModel()
    return TransformerEmbedder(model_key=model_key, cache_dir=cache_dir, device=device)


# ===================================================================
# Time-bounded embedding
# ===================================================================

@dataclass(frozen=True)
class EmbeddingOutcome:
    vector: Optional[Tuple[float, ...]]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.vector is not None


_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def _shared_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="prlens-embed")
        return _executor


def embed_with_timeout(
    generator: EmbeddingGenerator,
    symbol: Symbol,
    timeout: float,
) -> EmbeddingOutcome:
    """One synchronous attempt to embed *symbol*, bounded by *timeout* seconds.

    Never raises: failures and timeouts come back as an outcome with
    ``vector=None`` so the caller can fall back to text similarity.  A timed
    out call is abandoned, not retried.
    """
    future = _shared_executor().submit(generator.embed, symbol)
    try:
        vector = future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        logger.debug("Embedding timed out after %.2fs for %s", timeout, symbol.id)
        return EmbeddingOutcome(None, f"timeout after {timeout}s")
    except Exception as exc:
        logger.debug("Embedding failed for %s: %s", symbol.id, exc)
        return EmbeddingOutcome(None, f"{type(exc).__name__}: {exc}")

    if len(vector) != generator.dim or any(math.isnan(v) or math.isinf(v) for v in vector):
        return EmbeddingOutcome(None, "invalid vector")
    return EmbeddingOutcome(tuple(float(v) for v in vector))


# ===================================================================
# Similarity
# ===================================================================

@dataclass(frozen=True)
class BodySimilarity:
    score: float
    method: str
    low_confidence: bool


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity in ``[-1, 1]``; empty or mismatched vectors give 0.0."""
    if not vec_a or not vec_b or len(vec_a) != len(vec_b):
        return 0.0
    dot = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))
    if norm_a < 1e-12 or norm_b < 1e-12:
        return 0.0
    return dot / (norm_a * norm_b)


def clamped_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine with negatives mapped to 0 and rounding overshoot capped at 1."""
    return min(1.0, max(0.0, cosine_similarity(vec_a, vec_b)))


def text_similarity(text_a: str, text_b: str) -> float:
    """Token-multiset overlap normalised by the larger multiset.

    Whitespace-insensitive; identical token streams give 1.0 and either
    side empty gives 0.0.
    """
    tokens_a = Counter(tokenize_code(text_a))
    tokens_b = Counter(tokenize_code(text_b))
    total_a = sum(tokens_a.values())
    total_b = sum(tokens_b.values())
    if total_a == 0 or total_b == 0:
        return 0.0
    shared = sum((tokens_a & tokens_b).values())
    return shared / max(total_a, total_b)


def body_similarity(
    text_a: str,
    text_b: str,
    vec_a: Optional[Sequence[float]] = None,
    vec_b: Optional[Sequence[float]] = None,
) -> BodySimilarity:
    """Embedding similarity when both vectors exist, else the text fallback."""
    if vec_a is not None and vec_b is not None:
        return BodySimilarity(clamped_similarity(vec_a, vec_b), "embedding", False)
    return BodySimilarity(text_similarity(text_a, text_b), "text", True)


def _l2_normalize(vec: List[float]) -> List[float]:
    """L2-normalise *vec*.  Returns a zero vector unchanged."""
    norm = math.sqrt(sum(v * v for v in vec))
    if norm < 1e-12:
        return vec
    return [v / norm for v in vec]
