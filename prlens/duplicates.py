"""Duplicate and near-duplicate detection for changed symbols.

For a candidate pair (A, B) the combined score is::

    signature_weight * signature_score + body_weight * body_score

``signature_score`` is 1.0 only for identical kind, parameter types and
return type; anything else is the parameter-type overlap scaled below 1.0.
``body_score`` is the clamped embedding cosine, or the token-overlap
fallback (flagged ``low_confidence``) when either side has no current
vector.

Pairs are compared exhaustively below ``prefilter_threshold`` candidates.
Above it each changed symbol is compared only with its signature-shape
bucket and its nearest embedding neighbours.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .config_manager import DuplicateConfig
from .context import classify_context
from .embeddings import (
    EmbeddingGenerator,
    body_similarity,
    clamped_similarity,
    embed_with_timeout,
    tokenize_code,
)
from .models import (
    CROSS_BASELINE,
    EXACT,
    SIMILAR,
    WITHIN_CHANGE,
    DuplicatePair,
    Symbol,
    SymbolKind,
)
from .storage import IndexSnapshot

logger = logging.getLogger(__name__)

ContextFn = Callable[[Symbol], str]
Vector = Sequence[float]


def signature_similarity(a: Symbol, b: Symbol, mismatch_cap: float = 0.9) -> float:
    """1.0 for identical signatures, otherwise capped parameter-type overlap."""
    types_a = a.signature.param_types
    types_b = b.signature.param_types
    if a.kind == b.kind and types_a == types_b and a.signature.return_type == b.signature.return_type:
        return 1.0
    if not types_a and not types_b:
        overlap = 1.0
    else:
        shared = sum((Counter(types_a) & Counter(types_b)).values())
        overlap = shared / max(len(types_a), len(types_b))
    return overlap * mismatch_cap


def same_signature(a: Symbol, b: Symbol) -> bool:
    return (
        a.signature.param_types == b.signature.param_types
        and a.signature.return_type == b.signature.return_type
    )


class DuplicateDetector:
    """Score changed symbols against each other and against the baseline.

    Args:
        config: Weights, thresholds and scale knobs.
        embedder: Generator for change-set vectors.  ``None`` means only
            vectors passed to :meth:`detect` are used.
        context_for: Context tag for a symbol (test vs production).
        embedding_timeout: Seconds allowed per change-set embedding.
    """

    def __init__(
        self,
        config: Optional[DuplicateConfig] = None,
        embedder: Optional[EmbeddingGenerator] = None,
        context_for: ContextFn = classify_context,
        embedding_timeout: float = 2.0,
    ) -> None:
        self.config = (config or DuplicateConfig()).validate()
        self.embedder = embedder
        self.context_for = context_for
        self.embedding_timeout = embedding_timeout
        self._kinds = {SymbolKind(k) for k in self.config.kinds}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def detect(
        self,
        new_symbols: Iterable[Symbol],
        snapshot: IndexSnapshot,
        change_set_files: Optional[Iterable[str]] = None,
        new_vectors: Optional[Mapping[str, Vector]] = None,
    ) -> List[DuplicatePair]:
        """Return reportable duplicate pairs, highest score first."""
        new_list = [s for s in new_symbols if s.kind in self._kinds]
        changed: Set[str] = set(change_set_files) if change_set_files is not None else {s.file for s in new_list}
        baseline = [
            s for s in snapshot.all_symbols()
            if s.kind in self._kinds and s.file not in changed
        ]

        version = self.embedder.version if self.embedder is not None else snapshot.generator_version
        vectors: Dict[str, Vector] = self._new_vectors(new_list, new_vectors)
        for symbol in baseline:
            vec = snapshot.embedding_for(symbol.id, version)
            if vec is not None:
                vectors[symbol.id] = vec

        new_ids = {s.id for s in new_list}
        total = len(new_list) + len(baseline)
        if total > self.config.prefilter_threshold:
            logger.debug("Using neighbour prefilter for %d candidates", total)
            candidate_pairs = self._prefiltered_pairs(new_list, baseline, vectors, snapshot, version)
        else:
            candidate_pairs = self._all_pairs(new_list, baseline)

        results: Dict[Tuple[str, str], DuplicatePair] = {}
        for a, b in candidate_pairs:
            if a.id == b.id:
                continue
            first, second = (a, b) if a.id < b.id else (b, a)
            key = (first.id, second.id)
            if key in results:
                continue
            pair = self.score_pair(first, second, vectors.get(first.id), vectors.get(second.id), new_ids)
            if pair is not None:
                results[key] = pair

        pairs = sorted(results.values(), key=lambda p: (-p.score, p.symbol_a.id, p.symbol_b.id))
        logger.debug("Duplicate detection: %d new, %d baseline, %d pairs", len(new_list), len(baseline), len(pairs))
        return pairs

    def score_pair(
        self,
        a: Symbol,
        b: Symbol,
        vec_a: Optional[Vector],
        vec_b: Optional[Vector],
        new_ids: Set[str],
    ) -> Optional[DuplicatePair]:
        """Score one canonically ordered pair; None when it is not reportable."""
        cfg = self.config
        if a.file == b.file and same_signature(a, b):
            return None

        trivial_a = len(tokenize_code(a.body_text)) < cfg.min_body_tokens
        trivial_b = len(tokenize_code(b.body_text)) < cfg.min_body_tokens
        if trivial_a and trivial_b:
            return None

        sig = signature_similarity(a, b, cfg.signature_mismatch_cap)
        body = body_similarity(a.body_text, b.body_text, vec_a, vec_b)
        score = round(cfg.signature_weight * sig + cfg.body_weight * body.score, 6)
        if score >= cfg.exact_threshold:
            classification = EXACT
        elif score >= cfg.similar_threshold:
            classification = SIMILAR
        else:
            return None

        a_new = a.id in new_ids
        b_new = b.id in new_ids
        if a_new and b_new:
            tag, side = WITHIN_CHANGE, None
        else:
            tag, side = CROSS_BASELINE, ("b" if a_new else "a")

        return DuplicatePair(
            symbol_a=a,
            symbol_b=b,
            score=score,
            classification=classification,
            tag=tag,
            context_a=self.context_for(a),
            context_b=self.context_for(b),
            trivial_body=trivial_a or trivial_b,
            signature_score=round(sig, 6),
            body_score=round(body.score, 6),
            body_method=body.method,
            low_confidence=body.low_confidence,
            baseline_side=side,
        )

    # ------------------------------------------------------------------
    # Candidate generation
    # ------------------------------------------------------------------

    def _new_vectors(
        self,
        new_list: List[Symbol],
        provided: Optional[Mapping[str, Vector]],
    ) -> Dict[str, Vector]:
        vectors: Dict[str, Vector] = {}
        for symbol in new_list:
            if provided is not None and symbol.id in provided:
                vectors[symbol.id] = provided[symbol.id]
                continue
            if self.embedder is None:
                continue
            outcome = embed_with_timeout(self.embedder, symbol, self.embedding_timeout)
            if outcome.vector is not None:
                vectors[symbol.id] = outcome.vector
        return vectors

    @staticmethod
    def _all_pairs(new_list: List[Symbol], baseline: List[Symbol]) -> Iterable[Tuple[Symbol, Symbol]]:
        for i, a in enumerate(new_list):
            for b in new_list[i + 1:]:
                yield a, b
            for b in baseline:
                yield a, b

    def _prefiltered_pairs(
        self,
        new_list: List[Symbol],
        baseline: List[Symbol],
        vectors: Mapping[str, Vector],
        snapshot: IndexSnapshot,
        version: str,
    ) -> Iterable[Tuple[Symbol, Symbol]]:
        cfg = self.config
        min_score = 0.0
        if cfg.body_weight > 0:
            min_score = max(0.0, (cfg.similar_threshold - cfg.signature_weight) / cfg.body_weight)

        buckets: Dict[Tuple[str, int], List[Symbol]] = {}
        for symbol in new_list + baseline:
            buckets.setdefault(symbol.shape, []).append(symbol)
        eligible_baseline = {s.id for s in baseline}

        for a in new_list:
            for b in buckets.get(a.shape, ()):
                yield a, b
            vec = vectors.get(a.id)
            if vec is None:
                continue
            # over-fetch: change-set files may still hold stale baseline entries
            neighbours = snapshot.nearest_by_similarity(
                vec, cfg.neighbor_k * 2, min_score, version, self._kinds,
            )
            kept = 0
            for b, _ in neighbours:
                if b.id not in eligible_baseline:
                    continue
                yield a, b
                kept += 1
                if kept >= cfg.neighbor_k:
                    break
            scored = [
                (clamped_similarity(vec, vectors[b.id]), b.id, b)
                for b in new_list
                if b.id != a.id and b.id in vectors
            ]
            scored = [item for item in scored if item[0] >= min_score]
            scored.sort(key=lambda item: (-item[0], item[1]))
            for _, _, b in scored[:cfg.neighbor_k]:
                yield a, b
