"""Helpers shared by every extraction backend.

All backends funnel their declarations through :class:`SymbolBuilder` so
ids, type strings and ordering come out identical regardless of which
parser produced them.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import CallEdge, Parameter, Signature, Symbol, SymbolKind, Visibility

_WS_RE = re.compile(r"\s+")
_PUNCT_WS_RE = re.compile(r"\s*([<>\[\],.()&|*])\s*")


def normalize_type(text: Optional[str]) -> str:
    """Canonical spelling of a declared type: no layout whitespace.

    ``Map< String , List<Integer> >`` and ``Map<String,List<Integer>>``
    normalise to the same string; words stay separated by one space
    (``? extends Number``).
    """
    if not text:
        return ""
    collapsed = _WS_RE.sub(" ", text.strip())
    return _PUNCT_WS_RE.sub(r"\1", collapsed)


def module_name_for_path(file_path: str) -> str:
    """``src/app/email_utils.py`` -> ``src.app.email_utils``."""
    path = file_path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    path = path.lstrip("/")
    if "." in path.rsplit("/", 1)[-1]:
        path = path.rsplit(".", 1)[0]
    parts = [p for p in path.split("/") if p]
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


def python_visibility(name: str) -> Visibility:
    if name.startswith("__") and name.endswith("__"):
        return Visibility.PUBLIC
    if name.startswith("__"):
        return Visibility.PRIVATE
    if name.startswith("_"):
        return Visibility.PROTECTED
    return Visibility.PUBLIC


def qualify(*parts: str) -> str:
    return ".".join(p for p in parts if p)


# ===================================================================
# SymbolBuilder
# ===================================================================

class SymbolBuilder:
    """Collect declarations and calls for one file, then freeze them.

    Ids have the form ``kind:file:qualified_name(param,types)``; an exact
    redeclaration inside the same file gets a ``#n`` suffix so ids stay
    unique and deterministic.
    """

    def __init__(self, file_path: str, language: str) -> None:
        self.file_path = file_path
        self.language = language
        self._symbols: List[Symbol] = []
        self._calls: List[CallEdge] = []
        self._id_counts: Dict[str, int] = {}

    def add_symbol(
        self,
        qualified_name: str,
        kind: SymbolKind,
        params: Sequence[Tuple[str, str]] = (),
        return_type: str = "",
        visibility: Visibility = Visibility.PUBLIC,
        start_line: int = 1,
        end_line: int = 1,
        body_text: str = "",
    ) -> Symbol:
        signature = Signature(
            params=tuple(Parameter(name=n, type=normalize_type(t)) for n, t in params),
            return_type=normalize_type(return_type),
            visibility=visibility,
        )
        base_id = f"{kind.value}:{self.file_path}:{qualified_name}({','.join(signature.param_types)})"
        seen = self._id_counts.get(base_id, 0)
        self._id_counts[base_id] = seen + 1
        symbol_id = base_id if seen == 0 else f"{base_id}#{seen + 1}"

        symbol = Symbol(
            id=symbol_id,
            qualified_name=qualified_name,
            kind=kind,
            signature=signature,
            file=self.file_path,
            start_line=start_line,
            end_line=max(end_line, start_line),
            body_text=body_text,
            language=self.language,
        )
        self._symbols.append(symbol)
        return symbol

    def add_calls(self, caller: Symbol, calls: Iterable[Tuple[str, int]]) -> None:
        for callee_name, line in calls:
            self._calls.append(CallEdge(
                caller_id=caller.id,
                callee_name=callee_name,
                file=self.file_path,
                line=line,
            ))

    def build(self) -> Tuple[List[Symbol], List[CallEdge]]:
        """Return symbols in source order and calls grouped by caller."""
        order = {s.id: i for i, s in enumerate(self._symbols)}
        symbols = sorted(self._symbols, key=lambda s: s.start_line)
        calls = sorted(self._calls, key=lambda c: order[c.caller_id])
        return symbols, calls


# ===================================================================
# Backend interface
# ===================================================================

class ExtractionBackend(ABC):
    """One way of turning source text into symbols and unresolved calls."""

    name: str = "backend"

    @abstractmethod
    def supports_language(self, language: str) -> bool:
        """Return True if this backend can handle *language*."""
        ...

    @abstractmethod
    def extract(
        self,
        content: str,
        file_path: str,
        language: str,
    ) -> Tuple[List[Symbol], List[CallEdge]]:
        """Extract one file.  Raise :class:`ExtractionError` on failure."""
        ...
