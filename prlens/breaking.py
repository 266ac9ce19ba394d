"""Breaking API change detection with call-site impact.

A new symbol corresponds to a baseline symbol when both share qualified
name and kind.  Overloads pair by identical parameter types first and the
remaining ones pair in source order.  Each flagged baseline symbol is
checked against the call graph, and its call sites are split into those
inside the change set and those in untouched files.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .config_manager import BreakingConfig
from .graph import CallGraph
from .models import (
    REMOVED,
    RETURN_TYPE_CHANGED,
    SEVERITY_HIGH,
    SEVERITY_LOW,
    SIGNATURE_CHANGED,
    VISIBILITY_REDUCED,
    BreakingChange,
    CallEdge,
    Symbol,
    SymbolKind,
)
from .storage import IndexSnapshot

logger = logging.getLogger(__name__)

_Key = Tuple[str, SymbolKind]


def compare_symbols(old: Symbol, new: Symbol) -> Tuple[str, ...]:
    """Flags describing how *new* breaks callers of *old* (empty when compatible)."""
    flags: List[str] = []
    if old.signature.param_types != new.signature.param_types:
        flags.append(SIGNATURE_CHANGED)
    if new.signature.visibility.rank < old.signature.visibility.rank:
        flags.append(VISIBILITY_REDUCED)
    if old.signature.return_type != new.signature.return_type:
        flags.append(RETURN_TYPE_CHANGED)
    return tuple(flags)


def pair_overloads(
    baseline: List[Symbol],
    new: List[Symbol],
) -> Tuple[List[Tuple[Symbol, Symbol]], List[Symbol], List[Symbol]]:
    """Pair symbols sharing one (qualified name, kind).

    Returns ``(pairs, unpaired_baseline, unpaired_new)``.
    """
    remaining_new = list(new)
    pairs: List[Tuple[Symbol, Symbol]] = []
    unmatched: List[Symbol] = []
    for old in baseline:
        match = next(
            (n for n in remaining_new if n.signature.param_types == old.signature.param_types),
            None,
        )
        if match is None:
            unmatched.append(old)
        else:
            remaining_new.remove(match)
            pairs.append((old, match))

    leftover_baseline: List[Symbol] = []
    for old in unmatched:
        if remaining_new:
            pairs.append((old, remaining_new.pop(0)))
        else:
            leftover_baseline.append(old)
    return pairs, leftover_baseline, remaining_new


class BreakingChangeDetector:
    """Compare changed symbols with the baseline and rate the fallout."""

    def __init__(self, config: Optional[BreakingConfig] = None) -> None:
        self.config = (config or BreakingConfig()).validate()

    def detect(
        self,
        new_symbols: Iterable[Symbol],
        snapshot: IndexSnapshot,
        change_set_files: Optional[Iterable[str]] = None,
        new_calls: Iterable[CallEdge] = (),
        call_graph: Optional[CallGraph] = None,
        deleted_files: Iterable[str] = (),
        skipped_files: Iterable[str] = (),
    ) -> List[BreakingChange]:
        """Return breaking changes sorted by baseline file, line and name.

        *change_set_files* lists every path touched by the change, deleted
        ones included; it defaults to the files of *new_symbols*.  Members of
        *skipped_files* (changed files that failed to parse) are never
        reported removed, since their new content is unknown.
        """
        new_list = list(new_symbols)
        changed: Set[str] = set(change_set_files) if change_set_files is not None else {s.file for s in new_list}
        present = changed - set(deleted_files) - set(skipped_files)
        if call_graph is None:
            call_graph = CallGraph.for_change(snapshot, new_list, new_calls, changed)

        new_by_key: Dict[_Key, List[Symbol]] = {}
        for symbol in new_list:
            new_by_key.setdefault((symbol.qualified_name, symbol.kind), []).append(symbol)

        keys: List[_Key] = list(new_by_key)
        seen_keys = set(keys)
        for path in sorted(present):
            for symbol in snapshot.lookup_by_file(path):
                key = (symbol.qualified_name, symbol.kind)
                if key not in seen_keys:
                    seen_keys.add(key)
                    keys.append(key)

        findings: List[Tuple[Symbol, Optional[Symbol], Tuple[str, ...]]] = []
        for qname, kind in keys:
            baseline = [s for s in snapshot.lookup_by_qualified_name(qname) if s.kind == kind]
            if not baseline:
                continue
            pairs, leftover, _ = pair_overloads(baseline, new_by_key.get((qname, kind), []))
            for old, new in pairs:
                flags = compare_symbols(old, new)
                if flags:
                    findings.append((old, new, flags))
            for old in leftover:
                if old.file in present:
                    findings.append((old, None, (REMOVED,)))

        if not findings:
            return []

        incoming = call_graph.resolve_all(snapshot)
        changes = [self._with_impact(old, new, flags, incoming.get(old.id, []), changed) for old, new, flags in findings]
        changes.sort(key=lambda c: (
            c.baseline_symbol.file,
            c.baseline_symbol.start_line,
            c.baseline_symbol.qualified_name,
            c.baseline_symbol.id,
        ))
        logger.debug("Breaking change detection: %d findings", len(changes))
        return changes

    def _with_impact(
        self,
        old: Symbol,
        new: Optional[Symbol],
        flags: Tuple[str, ...],
        edges: List[CallEdge],
        changed: Set[str],
    ) -> BreakingChange:
        inside = tuple(e for e in edges if e.file in changed)
        outside = tuple(e for e in edges if e.file not in changed)
        return BreakingChange(
            baseline_symbol=old,
            new_symbol=new,
            flags=flags,
            inside_change_set=inside,
            outside_change_set=outside,
            severity=self.severity_for(inside, outside),
        )

    def severity_for(self, inside: Tuple[CallEdge, ...], outside: Tuple[CallEdge, ...]) -> str:
        if outside:
            return SEVERITY_HIGH
        if inside:
            return self.config.inside_change_set_severity
        return SEVERITY_LOW
