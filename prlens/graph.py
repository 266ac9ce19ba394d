"""Call graph over baseline and change-set edges with lazy callee resolution.

Edges are stored as extracted (``callee_name`` as written).  Resolution
against a snapshot is name-based and deliberately over-approximates: when
the receiver does not narrow the candidates, every symbol with the callee's
simple name is kept.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .models import CALLABLE_KINDS, CallEdge, Symbol
from .storage import IndexSnapshot

logger = logging.getLogger(__name__)

_SELF_RECEIVERS = {"this", "self", "cls"}
_SUPER_RECEIVERS = {"super"}
_SEPARATOR_RE = re.compile(r"\.|::")


def split_callee(callee_name: str) -> List[str]:
    """``obj.items.get`` -> ``['obj', 'items', 'get']``; ``Vec::new`` -> ``['Vec', 'new']``."""
    return [p for p in _SEPARATOR_RE.split(callee_name) if p]


def _simple(qualified_name: str) -> str:
    return qualified_name.rsplit(".", 1)[-1]


class CallGraph:
    """Unresolved call edges plus the symbols that emitted them."""

    def __init__(self, edges: Iterable[CallEdge], callers: Optional[Mapping[str, Symbol]] = None) -> None:
        self._edges = tuple(edges)
        self._callers: Dict[str, Symbol] = dict(callers or {})

    @classmethod
    def for_change(
        cls,
        snapshot: IndexSnapshot,
        new_symbols: Iterable[Symbol],
        new_calls: Iterable[CallEdge],
        change_set_files: Iterable[str],
    ) -> "CallGraph":
        """Baseline edges from untouched files plus every change-set edge."""
        changed = set(change_set_files)
        edges = [e for e in snapshot.call_edges if e.file not in changed]
        edges.extend(new_calls)
        callers: Dict[str, Symbol] = {s.id: s for s in snapshot.all_symbols() if s.file not in changed}
        for symbol in new_symbols:
            callers[symbol.id] = symbol
        return cls(edges, callers)

    @property
    def edges(self) -> Tuple[CallEdge, ...]:
        return self._edges

    def __len__(self) -> int:
        return len(self._edges)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, edge: CallEdge, snapshot: IndexSnapshot) -> List[CallEdge]:
        """One copy of *edge* per snapshot symbol it may refer to."""
        return self._resolve(edge, _NameIndex(snapshot))

    def resolve_all(self, snapshot: IndexSnapshot) -> Dict[str, List[CallEdge]]:
        """Map each snapshot symbol id to the resolved edges that target it."""
        names = _NameIndex(snapshot)
        incoming: Dict[str, List[CallEdge]] = {}
        for edge in self._edges:
            for resolved in self._resolve(edge, names):
                incoming.setdefault(resolved.resolved_callee_id or "", []).append(resolved)
        return incoming

    def _resolve(self, edge: CallEdge, names: "_NameIndex") -> List[CallEdge]:
        parts = split_callee(edge.callee_name)
        if not parts:
            return []
        name = parts[-1]
        candidates = names.by_simple_name.get(name, [])
        if not candidates:
            return []
        receiver = parts[:-1]
        targets = self._narrow(edge, receiver, candidates)
        return [replace(edge, resolved_callee_id=target.id) for target in targets]

    def _narrow(self, edge: CallEdge, receiver: List[str], candidates: List[Symbol]) -> List[Symbol]:
        head = receiver[0] if receiver else ""
        if not receiver or (len(receiver) == 1 and head in _SELF_RECEIVERS):
            caller = self._callers.get(edge.caller_id)
            if caller is not None:
                owner = caller.owner if caller.kind in CALLABLE_KINDS else caller.qualified_name
                same_owner = [c for c in candidates if c.owner == owner]
                if same_owner:
                    return same_owner
            return list(candidates)
        if head in _SUPER_RECEIVERS:
            return list(candidates)

        type_name = receiver[-1]
        by_type = [c for c in candidates if c.owner and _simple(c.owner) == type_name]
        if by_type:
            return by_type
        # receiver is a variable or an expression: keep every candidate
        return list(candidates)


class _NameIndex:
    """Callable snapshot symbols grouped by simple name."""

    def __init__(self, snapshot: IndexSnapshot) -> None:
        self.by_simple_name: Dict[str, List[Symbol]] = {}
        seen: Set[str] = set()
        for symbol in snapshot.all_symbols():
            if symbol.kind not in CALLABLE_KINDS or symbol.id in seen:
                continue
            seen.add(symbol.id)
            self.by_simple_name.setdefault(symbol.name, []).append(symbol)
