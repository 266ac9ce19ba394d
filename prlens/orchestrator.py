"""Review orchestration: one call from changed files to structured findings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .breaking import BreakingChangeDetector
from .config_manager import PRLensConfig
from .context import classify_context
from .diff_mapper import DiffLineMapper
from .duplicates import ContextFn, DuplicateDetector
from .embeddings import EmbeddingGenerator, get_embedder
from .models import BatchExtraction, BreakingChange, DuplicatePair, SourceFile, Symbol
from .parser import Extractor
from .storage import BuildReport, IndexSnapshot, SymbolIndex

logger = logging.getLogger(__name__)

STATUS_ADDED = "added"
STATUS_MODIFIED = "modified"
STATUS_REMOVED = "removed"
STATUS_RENAMED = "renamed"


@dataclass(frozen=True)
class ChangedFile:
    """One file of a pull request as supplied by the upstream file source."""

    path: str
    content: str = ""
    patch: str = ""
    status: str = STATUS_MODIFIED
    previous_path: Optional[str] = None

    @property
    def deleted(self) -> bool:
        return self.status == STATUS_REMOVED


@dataclass
class ReviewAnalysis:
    duplicates: List[DuplicatePair] = field(default_factory=list)
    breaking_changes: List[BreakingChange] = field(default_factory=list)
    extraction: BatchExtraction = field(default_factory=BatchExtraction)
    mappers: Dict[str, DiffLineMapper] = field(default_factory=dict)
    generator_version: str = ""

    @property
    def skipped_files(self) -> int:
        return self.extraction.skipped_files

    def comment_line(self, symbol: Symbol) -> Optional[int]:
        """Diff-commentable line for *symbol*, or None when it lies outside every hunk."""
        mapper = self.mappers.get(symbol.file)
        if mapper is None:
            return None
        line = mapper.map(symbol.start_line)
        if line is None:
            line = mapper.nearest(symbol.start_line)
        if line is None:
            line = mapper.locate(symbol.name)
        return line

    def _anchor(self, symbol: Optional[Symbol]) -> Optional[Dict[str, Any]]:
        if symbol is None:
            return None
        return {"file": symbol.file, "line": self.comment_line(symbol)}

    def to_dict(self) -> Dict[str, Any]:
        duplicates = []
        for pair in self.duplicates:
            payload = pair.to_dict()
            target = pair.symbol_b if pair.baseline_side == "a" else pair.symbol_a
            payload["comment"] = self._anchor(target)
            duplicates.append(payload)
        breaking = []
        for change in self.breaking_changes:
            payload = change.to_dict()
            payload["impacted_files"] = change.impacted_files
            payload["comment"] = self._anchor(change.new_symbol)
            breaking.append(payload)
        return {
            "generator_version": self.generator_version,
            "duplicates": duplicates,
            "breaking_changes": breaking,
            "skipped_files": self.skipped_files,
            "extraction_errors": self.extraction.errors,
        }


class ReviewAnalyzer:
    """Coordinates extraction, the baseline index and both detectors."""

    def __init__(
        self,
        config: Optional[PRLensConfig] = None,
        index: Optional[SymbolIndex] = None,
        extractor: Optional[Extractor] = None,
        embedder: Optional[EmbeddingGenerator] = None,
        context_for: ContextFn = classify_context,
    ) -> None:
        self.config = config or PRLensConfig()
        self.extractor = extractor or Extractor(
            use_tree_sitter=self.config.extractor.use_tree_sitter,
            max_workers=self.config.extractor.max_workers,
        )
        self.embedder = embedder or (index.embedder if index is not None else get_embedder(self.config.embeddings.model))
        self.index = index or SymbolIndex(
            extractor=self.extractor,
            embedder=self.embedder,
            embedding_timeout=self.config.embeddings.timeout,
        )
        self.duplicate_detector = DuplicateDetector(
            self.config.duplicates,
            embedder=self.embedder,
            context_for=context_for,
            embedding_timeout=self.config.embeddings.timeout,
        )
        self.breaking_detector = BreakingChangeDetector(self.config.breaking)

    def rebuild_baseline(self, files: Iterable[SourceFile]) -> BuildReport:
        return self.index.rebuild_index(files)

    def analyze(
        self,
        changed_files: Sequence[ChangedFile],
        snapshot: Optional[IndexSnapshot] = None,
    ) -> ReviewAnalysis:
        """Run duplicate and breaking-change analysis for one change set."""
        snapshot = snapshot if snapshot is not None else self.index.current()
        change_set, deleted = _change_set(changed_files)

        extraction = self.extractor.extract_many(
            SourceFile(path=f.path, content=f.content) for f in changed_files if not f.deleted
        )
        symbols = extraction.symbols

        duplicates = self.duplicate_detector.detect(symbols, snapshot, change_set)
        breaking = self.breaking_detector.detect(
            symbols,
            snapshot,
            change_set_files=change_set,
            new_calls=extraction.calls,
            deleted_files=deleted,
            skipped_files=extraction.failed_files,
        )
        mappers = {f.path: DiffLineMapper(f.patch) for f in changed_files if f.patch and not f.deleted}
        logger.info(
            "Analyzed %d changed files: %d duplicate pairs, %d breaking changes, %d skipped",
            len(changed_files), len(duplicates), len(breaking), extraction.skipped_files,
        )
        return ReviewAnalysis(
            duplicates=duplicates,
            breaking_changes=breaking,
            extraction=extraction,
            mappers=mappers,
            generator_version=snapshot.generator_version,
        )


def _change_set(changed_files: Sequence[ChangedFile]) -> Tuple[List[str], List[str]]:
    """All touched paths and the subset no longer present after the change."""
    touched: List[str] = []
    deleted: List[str] = []
    for f in changed_files:
        touched.append(f.path)
        if f.deleted:
            deleted.append(f.path)
        if f.previous_path and f.previous_path != f.path:
            # a rename removes the old path
            touched.append(f.previous_path)
            deleted.append(f.previous_path)
    return touched, deleted
