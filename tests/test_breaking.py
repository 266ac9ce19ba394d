"""Tests for breaking-change detection and call-site impact."""

from typing import List

import pytest

from prlens.breaking import BreakingChangeDetector, compare_symbols, pair_overloads
from prlens.config_manager import BreakingConfig
from prlens.models import (
    REMOVED,
    RETURN_TYPE_CHANGED,
    SEVERITY_HIGH,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
    SIGNATURE_CHANGED,
    VISIBILITY_REDUCED,
    Parameter,
    Signature,
    SourceFile,
    Symbol,
    SymbolKind,
    Visibility,
)
from prlens.orchestrator import ChangedFile
from prlens.parser import Extractor
from prlens.storage import IndexSnapshot

INVENTORY = "src/main/java/com/shop/Inventory.java"
REPORT = "src/main/java/com/shop/Report.java"

LOG_METHOD = """    public void log(String message) {
        System.out.println(message);
    }
"""


def method(name: str, types=(), returns: str = "void", visibility: Visibility = Visibility.PUBLIC) -> Symbol:
    return Symbol(
        id=f"method:A.java:A.{name}({','.join(types)})",
        qualified_name=f"A.{name}",
        kind=SymbolKind.METHOD,
        signature=Signature(
            params=tuple(Parameter(f"p{i}", t) for i, t in enumerate(types)),
            return_type=returns,
            visibility=visibility,
        ),
        file="A.java",
        start_line=1,
        end_line=1,
    )


@pytest.fixture
def inventory_change(changed_files: List[ChangedFile]) -> ChangedFile:
    return next(f for f in changed_files if f.path == INVENTORY)


def analyze(extractor: Extractor, snapshot: IndexSnapshot, files, deleted=(), config=None):
    batch = extractor.extract_many(files)
    paths = [f.path for f in files] + list(deleted)
    return BreakingChangeDetector(config).detect(
        batch.symbols,
        snapshot,
        change_set_files=paths,
        new_calls=batch.calls,
        deleted_files=deleted,
    )


class TestCompare:
    def test_compatible(self):
        assert compare_symbols(method("f", ("int",)), method("f", ("int",))) == ()

    def test_each_flag(self):
        """Test parameter, visibility and return changes map to their flags."""
        old = method("f", ("int",), "int", Visibility.PUBLIC)

        assert compare_symbols(old, method("f", ("long",), "int")) == (SIGNATURE_CHANGED,)
        assert compare_symbols(old, method("f", ("int",), "int", Visibility.PACKAGE)) == (VISIBILITY_REDUCED,)
        assert compare_symbols(old, method("f", ("int",), "void")) == (RETURN_TYPE_CHANGED,)

    def test_widening_is_compatible(self):
        """Test making a member more visible is not breaking."""
        old = method("f", visibility=Visibility.PRIVATE)
        for wider in (Visibility.PACKAGE, Visibility.PROTECTED, Visibility.PUBLIC):
            assert compare_symbols(old, method("f", visibility=wider)) == ()


class TestOverloadPairing:
    def test_exact_types_pair_first(self):
        """Test overloads pair by identical types, leftovers in order."""
        old_int, old_str = method("f", ("int",)), method("f", ("String",))
        new_str, new_long = method("f", ("String",)), method("f", ("long",))

        pairs, leftover_old, leftover_new = pair_overloads([old_int, old_str], [new_str, new_long])

        assert pairs == [(old_str, new_str), (old_int, new_long)]
        assert leftover_old == [] and leftover_new == []

    def test_unpaired_baseline(self):
        old_a, old_b = method("f", ("int",)), method("f", ("String",))
        pairs, leftover_old, _ = pair_overloads([old_a, old_b], [method("f", ("String",))])

        assert [old for old, _ in pairs] == [old_b]
        assert leftover_old == [old_a]


class TestFixtureScenario:
    def test_return_type_and_visibility(self, extractor: Extractor, baseline_snapshot: IndexSnapshot, inventory_change):
        """Test the modified Inventory reports exactly two breaking changes."""
        changes = analyze(extractor, baseline_snapshot, [SourceFile(inventory_change.path, inventory_change.content)])

        assert [(c.baseline_symbol.name, c.flags) for c in changes] == [
            ("getQuantity", (RETURN_TYPE_CHANGED,)),
            ("restock", (VISIBILITY_REDUCED,)),
        ]

    def test_outside_caller_is_high(self, extractor: Extractor, baseline_snapshot: IndexSnapshot, inventory_change):
        """Test a caller in an untouched file raises severity to high."""
        quantity, restock = analyze(
            extractor, baseline_snapshot, [SourceFile(inventory_change.path, inventory_change.content)]
        )

        assert quantity.severity == SEVERITY_HIGH
        assert [(e.file, e.line) for e in quantity.outside_change_set] == [(REPORT, 5)]
        assert quantity.inside_change_set == ()
        assert quantity.impacted_files == [REPORT]
        assert quantity.new_symbol is not None
        assert quantity.new_symbol.signature.return_type == "void"

        assert restock.severity == SEVERITY_LOW
        assert restock.impacted_files == []

    def test_caller_inside_change_set(self, extractor: Extractor, baseline_snapshot: IndexSnapshot, inventory_change):
        """Test callers that are themselves changed only raise severity to medium."""
        report = "package com.shop;\n\npublic class Report {\n    public int total(Inventory i) {\n        return i.getQuantity() + 1;\n    }\n}\n"
        quantity = analyze(
            extractor,
            baseline_snapshot,
            [SourceFile(inventory_change.path, inventory_change.content), SourceFile(REPORT, report)],
        )[0]

        assert quantity.baseline_symbol.name == "getQuantity"
        assert quantity.outside_change_set == ()
        assert [e.file for e in quantity.inside_change_set] == [REPORT]
        assert quantity.severity == SEVERITY_MEDIUM

        strict = analyze(
            extractor,
            baseline_snapshot,
            [SourceFile(inventory_change.path, inventory_change.content), SourceFile(REPORT, report)],
            config=BreakingConfig(inside_change_set_severity="high"),
        )[0]
        assert strict.severity == SEVERITY_HIGH

    def test_removed_member(self, extractor: Extractor, baseline_snapshot: IndexSnapshot, inventory_change):
        """Test a member missing from a still-present file is reported as removed."""
        content = inventory_change.content.replace(LOG_METHOD, "")
        assert content != inventory_change.content
        changes = analyze(extractor, baseline_snapshot, [SourceFile(INVENTORY, content)])

        removed = [c for c in changes if REMOVED in c.flags]
        assert [c.baseline_symbol.name for c in removed] == ["log"]
        assert removed[0].new_symbol is None
        # restock still calls log from inside the change set
        assert removed[0].severity == SEVERITY_MEDIUM

    def test_skipped_file_members_not_removed(self, baseline_snapshot: IndexSnapshot):
        """Test members of a changed file whose new version failed to parse are left alone."""
        changes = BreakingChangeDetector().detect(
            [], baseline_snapshot, change_set_files=[INVENTORY], skipped_files=[INVENTORY]
        )

        assert changes == []

    def test_deleted_file_is_not_flagged_member_by_member(self, extractor: Extractor, baseline_snapshot: IndexSnapshot):
        """Test deleting a whole file does not report each of its members."""
        assert analyze(extractor, baseline_snapshot, [], deleted=[REPORT]) == []

    def test_unchanged_file_reports_nothing(self, extractor: Extractor, baseline_snapshot: IndexSnapshot, baseline_files):
        """Test re-submitting the baseline unchanged finds no breaking changes."""
        assert analyze(extractor, baseline_snapshot, baseline_files) == []

    def test_results_are_sorted(self, extractor: Extractor, baseline_snapshot: IndexSnapshot, inventory_change):
        changes = analyze(extractor, baseline_snapshot, [SourceFile(inventory_change.path, inventory_change.content)])
        keys = [(c.baseline_symbol.file, c.baseline_symbol.start_line) for c in changes]
        assert keys == sorted(keys)
