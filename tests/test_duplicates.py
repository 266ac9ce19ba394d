"""Tests for duplicate and near-duplicate detection."""

from typing import List, Sequence

import pytest

from prlens.config_manager import DuplicateConfig
from prlens.context import PRODUCTION, TEST
from prlens.duplicates import DuplicateDetector, same_signature, signature_similarity
from prlens.embeddings import HashEmbeddingModel
from prlens.models import (
    CROSS_BASELINE,
    EXACT,
    SIMILAR,
    WITHIN_CHANGE,
    Parameter,
    Signature,
    SourceFile,
    Symbol,
    SymbolKind,
)
from prlens.orchestrator import ChangedFile
from prlens.parser import Extractor
from prlens.storage import IndexSnapshot

LONG_BODY = "a b c d e f g h i j k l"


def func(name: str, file: str, body: str, types: Sequence[str] = ("int",), returns: str = "int") -> Symbol:
    params = tuple(Parameter(f"p{i}", t) for i, t in enumerate(types))
    return Symbol(
        id=f"function:{file}:{name}({','.join(types)})",
        qualified_name=name,
        kind=SymbolKind.FUNCTION,
        signature=Signature(params=params, return_type=returns),
        file=file,
        start_line=1,
        end_line=5,
        body_text=body,
    )


@pytest.fixture
def change_symbols(extractor: Extractor, changed_files: List[ChangedFile]) -> List[Symbol]:
    """Symbols extracted from every file of the fixture change set."""
    return extractor.extract_many(SourceFile(f.path, f.content) for f in changed_files).symbols


@pytest.fixture
def detector() -> DuplicateDetector:
    return DuplicateDetector(embedder=HashEmbeddingModel())


def qnames(pair):
    return {pair.symbol_a.qualified_name, pair.symbol_b.qualified_name}


class TestSignatureScore:
    def test_identical(self):
        a = func("a.f", "a.py", "")
        b = func("b.g", "b.py", "")
        assert signature_similarity(a, b) == 1.0
        assert same_signature(a, b)

    def test_mismatch_is_capped(self):
        """Test a differing return type never reaches a perfect score."""
        a = func("a.f", "a.py", "", returns="int")
        b = func("b.g", "b.py", "", returns="str")
        assert signature_similarity(a, b) == pytest.approx(0.9)

    def test_partial_overlap(self):
        a = func("a.f", "a.py", "", types=("int", "str"))
        b = func("b.g", "b.py", "", types=("int",))
        assert signature_similarity(a, b) == pytest.approx(0.45)


class TestFixtureScenario:
    def test_finds_exact_pairs(self, detector: DuplicateDetector, change_symbols, baseline_snapshot, changed_files):
        """Test the copied validators are reported and nothing else is."""
        pairs = detector.detect(change_symbols, baseline_snapshot, [f.path for f in changed_files])

        assert [qnames(p) for p in pairs] == [
            {"src.app.signup.check_email", "src.app.validation.validate_email"},
            {"com.shop.EmailValidator.isValidEmail", "com.shop.UserService.validateEmail"},
        ]
        assert all(p.classification == EXACT and p.score == 1.0 for p in pairs)

    def test_tags_and_baseline_side(self, detector: DuplicateDetector, change_symbols, baseline_snapshot, changed_files):
        """Test pairs are tagged by where each side lives."""
        pairs = detector.detect(change_symbols, baseline_snapshot, [f.path for f in changed_files])
        cross, within = pairs

        assert cross.tag == CROSS_BASELINE
        assert cross.symbol_b.qualified_name == "src.app.validation.validate_email"
        assert cross.baseline_side == "b"
        assert cross.body_method == "embedding"
        assert not cross.low_confidence

        assert within.tag == WITHIN_CHANGE
        assert within.baseline_side is None

    def test_canonical_order_and_symmetry(self, detector: DuplicateDetector, change_symbols, baseline_snapshot, changed_files):
        """Test input order does not change the pairs or their orientation."""
        files = [f.path for f in changed_files]
        forward = detector.detect(change_symbols, baseline_snapshot, files)
        backward = detector.detect(list(reversed(change_symbols)), baseline_snapshot, list(reversed(files)))

        assert [p.key for p in forward] == [p.key for p in backward]
        assert all(p.symbol_a.id < p.symbol_b.id for p in forward)

    def test_idempotent(self, detector: DuplicateDetector, change_symbols, baseline_snapshot, changed_files):
        files = [f.path for f in changed_files]
        assert detector.detect(change_symbols, baseline_snapshot, files) == detector.detect(
            change_symbols, baseline_snapshot, files
        )

    def test_prefilter_finds_same_pairs(self, change_symbols, baseline_snapshot, changed_files):
        """Test the neighbour prefilter keeps the pairs an exhaustive scan finds."""
        files = [f.path for f in changed_files]
        exhaustive = DuplicateDetector(embedder=HashEmbeddingModel()).detect(change_symbols, baseline_snapshot, files)
        prefiltered = DuplicateDetector(
            DuplicateConfig(prefilter_threshold=0, neighbor_k=2),
            embedder=HashEmbeddingModel(),
        ).detect(change_symbols, baseline_snapshot, files)

        assert [p.key for p in prefiltered] == [p.key for p in exhaustive]

    def test_changed_files_leave_baseline(self, detector: DuplicateDetector, baseline_snapshot):
        """Test baseline symbols of a changed file are not compared with their replacement."""
        copy = baseline_snapshot.lookup_by_qualified_name("src.app.validation.validate_email")[0]

        assert detector.detect([copy], baseline_snapshot, [copy.file]) == []


class TestScoring:
    def test_text_fallback_and_similar(self):
        """Test missing vectors fall back to token overlap flagged low confidence."""
        a = func("a.f", "a.py", LONG_BODY)
        b = func("b.g", "b.py", "a b c d e f g h i x y z")
        pairs = DuplicateDetector().detect([a, b], IndexSnapshot())

        assert len(pairs) == 1
        pair = pairs[0]
        assert pair.classification == SIMILAR
        assert pair.score == pytest.approx(0.85)
        assert pair.body_method == "text"
        assert pair.low_confidence

    def test_weights_are_configurable(self):
        """Test a body-only weighting drops the same pair below threshold."""
        a = func("a.f", "a.py", LONG_BODY)
        b = func("b.g", "b.py", "a b c d e f g h i x y z")
        config = DuplicateConfig(signature_weight=0.0, body_weight=1.0)

        assert DuplicateDetector(config).detect([a, b], IndexSnapshot()) == []

    def test_trivial_bodies_suppressed(self):
        """Test two tiny bodies never count as duplicates."""
        a = func("a.get", "a.py", "return x")
        b = func("b.get", "b.py", "return x")

        assert DuplicateDetector().detect([a, b], IndexSnapshot()) == []

    def test_one_trivial_side_is_flagged(self):
        """Test a pair is still scored when only one body is trivial."""
        a = func("a.f", "a.py", LONG_BODY)
        b = func("b.g", "b.py", "a b c d e f g h i j k")
        pair = DuplicateDetector().score_pair(a, b, None, None, {a.id, b.id})

        assert pair is not None
        assert pair.trivial_body

    def test_same_file_same_signature_skipped(self):
        """Test overload-like pairs in one file are not reported."""
        a = func("a.f", "a.py", LONG_BODY)
        b = func("a.g", "a.py", LONG_BODY)

        assert DuplicateDetector().detect([a, b], IndexSnapshot()) == []

    def test_context_tags(self):
        """Test each side carries its test or production context."""
        a = func("a.f", "src/a.py", LONG_BODY)
        b = func("b.g", "tests/test_b.py", LONG_BODY)
        pair = DuplicateDetector().detect([a, b], IndexSnapshot())[0]

        assert (pair.context_a, pair.context_b) == (PRODUCTION, TEST)

    def test_only_callables_by_default(self):
        """Test fields and classes are ignored unless configured."""
        a = Symbol("field:a.py:A.x()", "A.x", SymbolKind.FIELD, Signature(return_type="int"), "a.py", 1, 1, LONG_BODY)
        b = Symbol("field:b.py:B.y()", "B.y", SymbolKind.FIELD, Signature(return_type="int"), "b.py", 1, 1, LONG_BODY)

        assert DuplicateDetector().detect([a, b], IndexSnapshot()) == []
        assert len(DuplicateDetector(DuplicateConfig(kinds=("field",))).detect([a, b], IndexSnapshot())) == 1
