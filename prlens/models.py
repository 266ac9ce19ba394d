"""Core data models shared by extraction, indexing and the detectors."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class SymbolKind(str, Enum):
    CLASS = "class"
    FUNCTION = "function"
    METHOD = "method"
    FIELD = "field"


class Visibility(str, Enum):
    """Access level, ordered ``public > protected > package > private``."""

    PUBLIC = "public"
    PROTECTED = "protected"
    PACKAGE = "package"
    PRIVATE = "private"

    @property
    def rank(self) -> int:
        return _VISIBILITY_RANK[self]


_VISIBILITY_RANK = {
    Visibility.PUBLIC: 3,
    Visibility.PROTECTED: 2,
    Visibility.PACKAGE: 1,
    Visibility.PRIVATE: 0,
}


CALLABLE_KINDS = (SymbolKind.FUNCTION, SymbolKind.METHOD)


# ===================================================================
# Symbols
# ===================================================================

@dataclass(frozen=True)
class Parameter:
    name: str
    type: str = ""


@dataclass(frozen=True)
class Signature:
    params: Tuple[Parameter, ...] = ()
    return_type: str = ""
    visibility: Visibility = Visibility.PUBLIC

    @property
    def param_types(self) -> Tuple[str, ...]:
        return tuple(p.type for p in self.params)

    def render(self, name: str) -> str:
        args = ", ".join(f"{p.type} {p.name}".strip() for p in self.params)
        prefix = f"{self.return_type} " if self.return_type else ""
        return f"{prefix}{name}({args})"


@dataclass(frozen=True)
class Symbol:
    """A named code unit extracted from one file.

    Identity within a snapshot is ``(file, qualified_name, signature)``;
    ``id`` is derived from it deterministically by the extractor.
    ``body_text`` holds the declaration body only (block, suite or
    initializer), never the header.
    """

    id: str
    qualified_name: str
    kind: SymbolKind
    signature: Signature
    file: str
    start_line: int
    end_line: int
    body_text: str = ""
    language: str = ""

    @property
    def name(self) -> str:
        return self.qualified_name.rsplit(".", 1)[-1]

    @property
    def owner(self) -> str:
        """Qualified name of the enclosing type or module ('' at top level)."""
        if "." not in self.qualified_name:
            return ""
        return self.qualified_name.rsplit(".", 1)[0]

    @property
    def shape(self) -> Tuple[str, int]:
        """Coarse signature shape used to bucket duplicate candidates."""
        return (self.kind.value, len(self.signature.params))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "qualified_name": self.qualified_name,
            "kind": self.kind.value,
            "signature": {
                "params": [[p.name, p.type] for p in self.signature.params],
                "return_type": self.signature.return_type,
                "visibility": self.signature.visibility.value,
            },
            "file": self.file,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "language": self.language,
        }


@dataclass(frozen=True)
class CallEdge:
    caller_id: str
    callee_name: str
    file: str
    line: int
    resolved_callee_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "caller_id": self.caller_id,
            "callee_name": self.callee_name,
            "file": self.file,
            "line": self.line,
            "resolved_callee_id": self.resolved_callee_id,
        }


@dataclass(frozen=True)
class Embedding:
    symbol_id: str
    vector: Tuple[float, ...]
    generator_version: str


# ===================================================================
# Extraction results
# ===================================================================

@dataclass(frozen=True)
class SourceFile:
    path: str
    content: str
    language: Optional[str] = None


@dataclass
class ExtractionResult:
    file: str
    language: Optional[str]
    symbols: List[Symbol] = field(default_factory=list)
    calls: List[CallEdge] = field(default_factory=list)
    error: Optional[str] = None
    backend: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class BatchExtraction:
    results: List[ExtractionResult] = field(default_factory=list)

    @property
    def symbols(self) -> List[Symbol]:
        return [s for r in self.results for s in r.symbols]

    @property
    def calls(self) -> List[CallEdge]:
        return [c for r in self.results for c in r.calls]

    @property
    def skipped_files(self) -> int:
        return sum(1 for r in self.results if r.failed)

    @property
    def failed_files(self) -> List[str]:
        return [r.file for r in self.results if r.failed]

    @property
    def errors(self) -> Dict[str, str]:
        return {r.file: r.error for r in self.results if r.error is not None}


# ===================================================================
# Detector results
# ===================================================================

EXACT = "exact"
SIMILAR = "similar"

WITHIN_CHANGE = "withinChange"
CROSS_BASELINE = "crossBaseline"

SIGNATURE_CHANGED = "signatureChanged"
VISIBILITY_REDUCED = "visibilityReduced"
RETURN_TYPE_CHANGED = "returnTypeChanged"
REMOVED = "removed"

SEVERITY_HIGH = "high"
SEVERITY_MEDIUM = "medium"
SEVERITY_LOW = "low"


@dataclass(frozen=True)
class DuplicatePair:
    """Unordered duplicate pair in canonical order (``symbol_a.id < symbol_b.id``)."""

    symbol_a: Symbol
    symbol_b: Symbol
    score: float
    classification: str
    tag: str
    context_a: str
    context_b: str
    trivial_body: bool = False
    signature_score: float = 0.0
    body_score: float = 0.0
    body_method: str = "embedding"
    low_confidence: bool = False
    baseline_side: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.symbol_a.id, self.symbol_b.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol_a": self.symbol_a.to_dict(),
            "symbol_b": self.symbol_b.to_dict(),
            "score": self.score,
            "classification": self.classification,
            "tag": self.tag,
            "context_a": self.context_a,
            "context_b": self.context_b,
            "trivial_body": self.trivial_body,
            "signature_score": self.signature_score,
            "body_score": self.body_score,
            "body_method": self.body_method,
            "low_confidence": self.low_confidence,
            "baseline_side": self.baseline_side,
        }


@dataclass(frozen=True)
class BreakingChange:
    baseline_symbol: Symbol
    new_symbol: Optional[Symbol]
    flags: Tuple[str, ...]
    inside_change_set: Tuple[CallEdge, ...] = ()
    outside_change_set: Tuple[CallEdge, ...] = ()
    severity: str = SEVERITY_LOW

    @property
    def impacted_files(self) -> List[str]:
        return sorted({e.file for e in self.inside_change_set + self.outside_change_set})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseline_symbol": self.baseline_symbol.to_dict(),
            "new_symbol": self.new_symbol.to_dict() if self.new_symbol else None,
            "flags": list(self.flags),
            "inside_change_set": [e.to_dict() for e in self.inside_change_set],
            "outside_change_set": [e.to_dict() for e in self.outside_change_set],
            "severity": self.severity,
        }


# ===================================================================
# Unified diff
# ===================================================================

@dataclass(frozen=True)
class DiffLine:
    tag: str
    text: str


@dataclass(frozen=True)
class DiffHunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: Tuple[DiffLine, ...] = ()
    header: str = ""
