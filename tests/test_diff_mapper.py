"""Tests for mapping file lines onto unified-diff hunks."""

import pytest

from prlens.diff_mapper import DiffLineMapper, extract_added_code, map_file_line, parse_patch, split_patch

MULTI_FILE_PATCH = (
    "diff --git a/Foo.java b/Foo.java\n"
    "--- a/Foo.java\n"
    "+++ b/Foo.java\n"
    "@@ -1,2 +1,3 @@\n"
    " class Foo {\n"
    "+    int x;\n"
    " }\n"
    "diff --git a/Gone.java b/Gone.java\n"
    "deleted file mode 100644\n"
    "--- a/Gone.java\n"
    "+++ /dev/null\n"
    "@@ -1 +0,0 @@\n"
    "-class Gone {}\n"
    "diff --git a/new.py b/new.py\n"
    "new file mode 100644\n"
    "--- /dev/null\n"
    "+++ b/new.py\n"
    "@@ -0,0 +1,2 @@\n"
    "+def new():\n"
    "+    return 1\n"
)


class TestParsePatch:
    def test_hunks(self, sample_patch: str):
        """Test headers and markers are skipped and hunk bounds parsed."""
        hunks = parse_patch(sample_patch)

        assert [(h.old_start, h.old_count, h.new_start, h.new_count) for h in hunks] == [(1, 3, 1, 4), (8, 4, 9, 4)]
        assert [line.tag for line in hunks[1].lines] == [" ", "-", "+", " ", " "]

    def test_header_without_counts(self):
        """Test omitted hunk counts default to one line."""
        hunk = parse_patch("@@ -3 +3 @@\n-a\n+b\n")[0]

        assert (hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count) == (3, 1, 3, 1)

    def test_empty_patch(self):
        assert parse_patch("") == []
        assert not DiffLineMapper("")


class TestDiffLineMapper:
    @pytest.mark.parametrize("line,expected", [(1, 1), (2, 2), (4, 4), (5, None), (8, None), (9, 9), (10, 10), (12, 12), (13, None)])
    def test_map(self, sample_patch: str, line: int, expected):
        """Test only lines inside a hunk map to themselves."""
        assert DiffLineMapper(sample_patch).map(line) == expected
        assert map_file_line(sample_patch, line) == expected

    def test_commentable_and_added(self, sample_patch: str):
        """Test removed lines never advance the new-file counter."""
        mapper = DiffLineMapper(sample_patch)

        assert mapper.commentable_lines() == [1, 2, 3, 4, 9, 10, 11, 12]
        assert mapper.added_lines() == [2, 10]

    def test_nearest(self, sample_patch: str):
        """Test the closest hunk line is found, preferring later lines on ties."""
        mapper = DiffLineMapper(sample_patch)

        assert mapper.nearest(3) == 3
        assert mapper.nearest(6) == 4
        assert mapper.nearest(7) == 9
        assert mapper.nearest(30) is None
        assert mapper.nearest(6, max_offset=1) is None

    def test_locate(self, sample_patch: str):
        mapper = DiffLineMapper(sample_patch)

        assert mapper.locate("fresh") == 10
        assert mapper.locate("old") is None

    def test_position_of(self, sample_patch: str):
        """Test positions count removed lines and later hunk headers."""
        mapper = DiffLineMapper(sample_patch)

        assert [mapper.position_of(n) for n in (1, 2, 4)] == [1, 2, 4]
        assert mapper.position_of(9) == 6
        assert mapper.position_of(10) == 8
        assert mapper.position_of(5) is None


def test_extract_added_code(sample_patch: str):
    """Test added lines are returned in order without their prefix."""
    assert extract_added_code(sample_patch) == "    int added;\n        fresh();"


class TestSplitPatch:
    def test_split_by_new_path(self):
        """Test a multi-file diff splits per file and drops deletions."""
        files = split_patch(MULTI_FILE_PATCH)

        assert sorted(files) == ["Foo.java", "new.py"]
        assert DiffLineMapper(files["Foo.java"]).added_lines() == [2]
        assert DiffLineMapper(files["new.py"]).added_lines() == [1, 2]

    def test_file_headers_kept(self):
        files = split_patch(MULTI_FILE_PATCH)

        assert files["Foo.java"].startswith("diff --git a/Foo.java b/Foo.java")
        assert "Gone" not in files["Foo.java"]
