"""Map whole-file line numbers onto unified-diff hunks.

Only lines present in the new file and inside a hunk (``+`` added and
`` `` context) can carry an inline review comment; ``-`` lines exist only
in the old file and never advance the new-file counter.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterator, List, Optional, Tuple

from .models import DiffHunk, DiffLine

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")

ADDED = "+"
REMOVED = "-"
CONTEXT = " "


def parse_patch(patch: str) -> List[DiffHunk]:
    """Split a unified diff into hunks.

    File headers (``diff --git``, ``---``, ``+++``, ``index``) and
    ``\\ No newline at end of file`` markers are ignored.
    """
    hunks: List[DiffHunk] = []
    current: Optional[Tuple[int, int, int, int, str]] = None
    lines: List[DiffLine] = []

    def _flush() -> None:
        if current is not None:
            old_start, old_count, new_start, new_count, header = current
            hunks.append(DiffHunk(old_start, old_count, new_start, new_count, tuple(lines), header))

    for raw in (patch or "").splitlines():
        match = HUNK_HEADER_RE.match(raw)
        if match:
            _flush()
            lines = []
            current = (
                int(match.group(1)),
                int(match.group(2)) if match.group(2) is not None else 1,
                int(match.group(3)),
                int(match.group(4)) if match.group(4) is not None else 1,
                raw,
            )
            continue
        if current is None:
            continue
        if raw.startswith("diff "):
            # next file in a multi-file patch
            _flush()
            current = None
            lines = []
            continue
        if raw.startswith("\\") or not raw:
            continue
        tag = raw[0]
        if tag in (ADDED, REMOVED, CONTEXT):
            lines.append(DiffLine(tag, raw[1:]))
    _flush()
    return hunks


def _walk(hunks: List[DiffHunk]) -> Iterator[Tuple[int, str, str]]:
    """Yield ``(new_line, tag, text)`` for every line present in the new file."""
    for hunk in hunks:
        counter = hunk.new_start - 1
        for line in hunk.lines:
            if line.tag == REMOVED:
                continue
            counter += 1
            yield counter, line.tag, line.text


def map_file_line(patch: str, line: int) -> Optional[int]:
    """Return *line* if it can host an inline comment in *patch*, else None."""
    for new_line, _, _ in _walk(parse_patch(patch)):
        if new_line == line:
            return new_line
    return None


def extract_added_code(patch: str) -> str:
    """Added lines only, in order, without their ``+`` prefix."""
    return "\n".join(
        line.text
        for hunk in parse_patch(patch)
        for line in hunk.lines
        if line.tag == ADDED
    )


class DiffLineMapper:
    """A parsed patch answering repeated line queries."""

    def __init__(self, patch: str) -> None:
        self.patch = patch or ""
        self.hunks = parse_patch(self.patch)
        self._commentable: Dict[int, str] = {}
        self._text: Dict[int, str] = {}
        for new_line, tag, text in _walk(self.hunks):
            self._commentable.setdefault(new_line, tag)
            self._text.setdefault(new_line, text)
        self._positions = self._diff_positions()

    def __bool__(self) -> bool:
        return bool(self.hunks)

    def map(self, line: int) -> Optional[int]:
        return line if line in self._commentable else None

    def commentable_lines(self) -> List[int]:
        return sorted(self._commentable)

    def added_lines(self) -> List[int]:
        return sorted(n for n, tag in self._commentable.items() if tag == ADDED)

    def nearest(self, line: int, max_offset: int = 10) -> Optional[int]:
        """Closest commentable line within *max_offset*, preferring later lines on ties."""
        if line in self._commentable:
            return line
        for offset in range(1, max_offset + 1):
            if line + offset in self._commentable:
                return line + offset
            if line - offset in self._commentable:
                return line - offset
        return None

    def locate(self, name: str) -> Optional[int]:
        """First added line that calls or declares ``name(``."""
        pattern = re.compile(rf"\b{re.escape(name)}\s*\(")
        for new_line in self.added_lines():
            if pattern.search(self._text[new_line]):
                return new_line
        return None

    def position_of(self, line: int) -> Optional[int]:
        """1-based position of *line* counted from the first hunk header.

        This is the ``position`` some review APIs expect instead of a file
        line number.
        """
        return self._positions.get(line)

    def _diff_positions(self) -> Dict[int, int]:
        positions: Dict[int, int] = {}
        position = 0
        for hunk in self.hunks:
            if position:
                # every hunk header after the first occupies a position
                position += 1
            counter = hunk.new_start - 1
            for diff_line in hunk.lines:
                position += 1
                if diff_line.tag == REMOVED:
                    continue
                counter += 1
                positions.setdefault(counter, position)
        return positions


_FILE_HEADER_RE = re.compile(r"^\+\+\+ (?:b/)?(.+?)\s*$")


def split_patch(patch: str) -> Dict[str, str]:
    """Split a multi-file ``git diff`` into per-file patches keyed by new path.

    Files deleted by the diff (``+++ /dev/null``) are left out.
    """
    files: Dict[str, List[str]] = {}
    current: Optional[List[str]] = None
    pending: List[str] = []
    for raw in (patch or "").splitlines():
        if raw.startswith("diff "):
            current = None
            pending = [raw]
            continue
        if current is None:
            match = _FILE_HEADER_RE.match(raw)
            if match:
                path = match.group(1)
                if path == "/dev/null":
                    pending = []
                    continue
                current = files.setdefault(path, [])
                current.extend(pending)
                current.append(raw)
                pending = []
            else:
                pending.append(raw)
            continue
        current.append(raw)
    return {path: "\n".join(lines) for path, lines in files.items()}
