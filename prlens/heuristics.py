"""Tolerant brace-scanning extractors for brace-delimited languages.

Used when no structural parser is available for a language (JavaScript,
TypeScript, Go, Rust) and as the second backend for Java when
tree-sitter is missing or fails.  Every extractor works on a *masked*
copy of the source in which comments and literal contents are blanked
out (newlines kept), so braces, parentheses and keywords inside strings
never confuse the scanner and offsets stay valid for the original text.

The Java path follows the same conventions as the tree-sitter backend
(qualified names, body text, line spans, normalised types) so both
produce identical symbols for well-formed code.
"""

from __future__ import annotations

import logging
import re
from bisect import bisect_right
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .errors import ExtractionError
from .models import CallEdge, Symbol, SymbolKind, Visibility
from .symbol_builder import (
    ExtractionBackend,
    SymbolBuilder,
    module_name_for_path,
    qualify,
)

logger = logging.getLogger(__name__)

HEURISTIC_LANGUAGES = ("java", "javascript", "typescript", "go", "rust")

_IDENT = r"[A-Za-z_$][\w$]*"

_CHAR_LITERAL_RE = re.compile(
    r"'(?:\\(?:u\{[0-9a-fA-F]+\}|x[0-9a-fA-F]{2}|u[0-9a-fA-F]{4}|.)|[^\\'\n])'"
)
_RUST_RAW_STRING_RE = re.compile(r"r(#*)\"")


# ===================================================================
# Masked source
# ===================================================================

def mask_source(text: str, language: str) -> str:
    """Blank comments and literal contents, keeping length and newlines."""
    out = list(text)
    n = len(text)
    backtick_strings = language in ("javascript", "typescript", "go")
    quote_strings = language in ("javascript", "typescript")

    def blank(start: int, end: int) -> None:
        for k in range(start, min(end, n)):
            if out[k] != "\n":
                out[k] = " "

    i = 0
    while i < n:
        ch = text[i]
        nxt = text[i + 1] if i + 1 < n else ""

        if ch == "/" and nxt == "/":
            end = text.find("\n", i)
            end = n if end == -1 else end
            blank(i, end)
            i = end
            continue
        if ch == "/" and nxt == "*":
            end = text.find("*/", i + 2)
            end = n if end == -1 else end + 2
            blank(i, end)
            i = end
            continue

        if language == "java" and text.startswith('"""', i):
            end = text.find('"""', i + 3)
            end = n if end == -1 else end
            blank(i + 3, end)
            i = min(end + 3, n)
            continue

        if language == "rust" and ch == "r" and (i == 0 or not (text[i - 1].isalnum() or text[i - 1] == "_")):
            m = _RUST_RAW_STRING_RE.match(text, i)
            if m:
                closer = '"' + m.group(1)
                end = text.find(closer, m.end())
                end = n if end == -1 else end
                blank(m.end(), end)
                i = min(end + len(closer), n)
                continue

        if ch == '"' or (ch == "'" and quote_strings) or (ch == "`" and backtick_strings):
            raw = ch == "`" and language == "go"
            j = i + 1
            closed = False
            while j < n:
                c = text[j]
                if c == "\\" and not raw:
                    j += 2
                    continue
                if c == ch:
                    closed = True
                    break
                if c == "\n" and ch != "`":
                    break
                j += 1
            j = min(j, n)
            blank(i + 1, j)
            i = j + 1 if closed else j
            continue

        if ch == "'":
            m = _CHAR_LITERAL_RE.match(text, i)
            if m:
                blank(i + 1, m.end() - 1)
                i = m.end()
                continue

        i += 1
    return "".join(out)


class MaskedSource:
    """Original text, its masked twin, and offset -> line mapping."""

    def __init__(self, text: str, language: str) -> None:
        self.text = text
        self.masked = mask_source(text, language)
        self._line_starts = [0] + [i + 1 for i, ch in enumerate(text) if ch == "\n"]
        self._depth: Optional[List[int]] = None

    def line_of(self, offset: int) -> int:
        return bisect_right(self._line_starts, offset)

    def depth_at(self, offset: int) -> int:
        """Number of unclosed ``{`` before *offset*."""
        if self._depth is None:
            depth = [0] * (len(self.masked) + 1)
            d = 0
            for i, ch in enumerate(self.masked):
                depth[i] = d
                if ch == "{":
                    d += 1
                elif ch == "}":
                    d -= 1
            depth[len(self.masked)] = d
            self._depth = depth
        return self._depth[offset]

    def match_brace(self, open_idx: int) -> int:
        return _match_pair(self.masked, open_idx, "{", "}")

    def match_paren(self, open_idx: int) -> int:
        return _match_pair(self.masked, open_idx, "(", ")")


def _match_pair(text: str, open_idx: int, opener: str, closer: str) -> int:
    depth = 0
    for j in range(open_idx, len(text)):
        c = text[j]
        if c == opener:
            depth += 1
        elif c == closer:
            depth -= 1
            if depth == 0:
                return j
    raise ExtractionError(f"unbalanced '{opener}' opened at offset {open_idx}")


def split_top_level(text: str, sep: str = ",") -> List[Tuple[int, int]]:
    """Spans of *text* separated by *sep* outside any bracket pair."""
    spans: List[Tuple[int, int]] = []
    depth = 0
    start = 0
    for i, ch in enumerate(text):
        if ch in "([{<":
            depth += 1
        elif ch in ")]}>":
            # '->' and '=>' are arrows, not closers
            if ch == ">" and i > 0 and text[i - 1] in "-=":
                continue
            depth = max(depth - 1, 0)
        elif ch == sep and depth == 0:
            spans.append((start, i))
            start = i + 1
    if text[start:].strip():
        spans.append((start, len(text)))
    return spans


def _first_non_space(text: str, offset: int) -> int:
    while offset < len(text) and text[offset].isspace():
        offset += 1
    return offset


def _find_top_level(text: str, target: str, start: int = 0) -> int:
    depth = 0
    for i in range(start, len(text)):
        ch = text[i]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == target and depth == 0:
            return i
    return -1


# ===================================================================
# Call extraction (shared by every brace language)
# ===================================================================

_CALL_RE = re.compile(
    rf"(?<![\w$@])((?:{_IDENT}\s*(?:\.|::)\s*)*)({_IDENT})\s*\("
)
_NEW_RE = re.compile(
    rf"\bnew\s+({_IDENT}(?:\s*\.\s*{_IDENT})*)\s*(?:<[^;{{}}()]*?>)?\s*\("
)

_CALL_KEYWORDS = {
    "if", "for", "while", "switch", "catch", "synchronized", "return", "new",
    "throw", "assert", "this", "super", "try", "do", "else", "case", "function",
    "typeof", "instanceof", "await", "yield", "import", "match", "loop", "fn",
    "func", "sizeof", "defer", "go", "in", "of", "delete", "void", "where",
}

# Words that may precede a call without turning it into a declaration.
_CALL_PRECEDERS = {
    "return", "else", "throw", "case", "yield", "await", "in", "of", "typeof",
    "do", "go", "defer", "not", "and", "or", "instanceof", "delete", "void",
    "assert", "move", "ref", "mut", "as", "let", "const",
    "if", "while", "for", "match", "switch", "range",
}


def _preceding_token(masked: str, offset: int) -> Tuple[str, str]:
    """Return (previous non-space char, word ending there if any)."""
    j = offset - 1
    while j >= 0 and masked[j].isspace():
        j -= 1
    if j < 0:
        return "", ""
    ch = masked[j]
    if not (ch.isalnum() or ch in "_$"):
        return ch, ""
    end = j + 1
    while j >= 0 and (masked[j].isalnum() or masked[j] in "_$"):
        j -= 1
    return ch, masked[j + 1:end]


_BODY_AFTER_PARAMS_RE = re.compile(r"\s*(?:\{|throws\b)")


def _opens_body(masked: str, paren: int, end: int) -> bool:
    """True when the parameter list opened at *paren* is followed by a body or ``throws``."""
    depth = 0
    for j in range(paren, end):
        c = masked[j]
        if c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
            if depth == 0:
                return _BODY_AFTER_PARAMS_RE.match(masked, j + 1) is not None
    return False


def scan_calls(src: MaskedSource, start: int, end: int, constructors: bool) -> List[Tuple[str, int]]:
    """Calls inside ``masked[start:end]`` as ``(callee_as_written, line)``.

    Ordered by the offset of the callee name so a chain ``a.b().c()``
    yields ``a.b`` before ``c``.
    """
    masked = src.masked
    found: List[Tuple[int, str]] = []

    for m in _CALL_RE.finditer(masked, start, end):
        prefix, name = m.group(1), m.group(2)
        if name in _CALL_KEYWORDS and not prefix:
            continue
        prev_char, prev_word = _preceding_token(masked, m.start())
        if prev_char == "@":
            continue
        if prev_word:
            if prev_word == "new":
                continue
            if prev_word == "void" and _opens_body(masked, m.end() - 1, end):
                # Java `void run() {`, not the JS operator
                continue
            if prev_word not in _CALL_PRECEDERS:
                # `Type name(` is a declaration, not a call
                continue
        if prev_char == ".":
            callee = name
        else:
            callee = re.sub(r"\s+", "", prefix) + name
        found.append((m.start(2), callee))

    if constructors:
        for m in _NEW_RE.finditer(masked, start, end):
            found.append((m.start(1), re.sub(r"\s+", "", m.group(1))))

    found.sort(key=lambda item: item[0])
    return [(callee, src.line_of(pos)) for pos, callee in found]


# ===================================================================
# Java
# ===================================================================

_JAVA_MODIFIERS = {
    "public", "protected", "private", "static", "final", "abstract",
    "synchronized", "native", "transient", "volatile", "strictfp",
    "default", "sealed", "non-sealed",
}
_JAVA_TYPE_RE = re.compile(
    r"^\s*((?:[\w-]+\s+)*?)(class|interface|enum|record|@\s*interface)\s+([A-Za-z_$][\w$]*)"
)
_JAVA_PACKAGE_RE = re.compile(r"^\s*package\s+([\w.]+)\s*;", re.MULTILINE)
_TRAILING_IDENT_RE = re.compile(rf"({_IDENT})\s*$")


@dataclass
class _Member:
    start: int
    end: int
    header_end: int
    body_open: Optional[int] = None
    body_close: Optional[int] = None


def blank_annotations(header: str) -> str:
    """Replace ``@Annotation(...)`` with spaces, keeping offsets."""
    out = list(header)
    n = len(header)
    i = 0
    while i < n:
        if header[i] == "@" and not re.match(r"@\s*interface\b", header[i:]):
            j = i + 1
            while j < n and (header[j].isalnum() or header[j] in "_$."):
                j += 1
            k = j
            while k < n and header[k].isspace():
                k += 1
            if k < n and header[k] == "(":
                try:
                    j = _match_pair(header, k, "(", ")") + 1
                except ExtractionError:
                    j = n
            for p in range(i, j):
                if out[p] != "\n":
                    out[p] = " "
            i = j
            continue
        i += 1
    return "".join(out)


def split_java_prefix(prefix: str) -> Tuple[List[str], str, str]:
    """``public static <T> List<T> copy`` -> (modifiers, type, name)."""
    modifiers: List[str] = []
    rest = prefix.strip()
    while rest:
        m = re.match(r"([\w-]+)\s+", rest)
        if m and m.group(1) in _JAVA_MODIFIERS:
            modifiers.append(m.group(1))
            rest = rest[m.end():]
            continue
        if rest.startswith("<"):
            try:
                close = _match_pair(rest, 0, "<", ">")
            except ExtractionError:
                break
            rest = rest[close + 1:].lstrip()
            continue
        break
    m = _TRAILING_IDENT_RE.search(rest)
    if m is None:
        return modifiers, "", ""
    return modifiers, rest[:m.start()].strip(), m.group(1)


def java_visibility(modifiers: Sequence[str], default: Visibility) -> Visibility:
    for word in modifiers:
        if word == "public":
            return Visibility.PUBLIC
        if word == "protected":
            return Visibility.PROTECTED
        if word == "private":
            return Visibility.PRIVATE
    return default


def split_java_params(params_text: str) -> List[Tuple[str, str]]:
    """``final Map<K, V> m, String... rest`` -> [(m, Map<K, V>), (rest, String...)]."""
    params: List[Tuple[str, str]] = []
    for s, e in split_top_level(params_text):
        piece = blank_annotations(params_text[s:e]).strip()
        piece = re.sub(r"\bfinal\s+", "", piece).strip()
        if not piece:
            continue
        m = _TRAILING_IDENT_RE.search(piece)
        if m is None:
            continue
        name = m.group(1)
        if name == "this":
            # receiver parameter
            continue
        params.append((name, piece[:m.start()].strip()))
    return params


class JavaHeuristicExtractor:
    """Member splitter for Java that needs no grammar."""

    def __init__(self, content: str, file_path: str) -> None:
        self.src = MaskedSource(content, "java")
        self.builder = SymbolBuilder(file_path, "java")

    def run(self) -> Tuple[List[Symbol], List[CallEdge]]:
        m = _JAVA_PACKAGE_RE.search(self.src.masked)
        package = m.group(1) if m else ""
        for member in self._members(0, len(self.src.masked)):
            self._handle_member(member, package, None, Visibility.PACKAGE)
        return self.builder.build()

    # ------------------------------------------------------------------
    # Member splitting
    # ------------------------------------------------------------------

    def _members(self, start: int, end: int) -> Iterator[_Member]:
        masked = self.src.masked
        i = start
        while i < end:
            while i < end and (masked[i].isspace() or masked[i] == ";"):
                i += 1
            if i >= end:
                return
            head = i
            depth = 0
            saw_equals = False
            member: Optional[_Member] = None
            j = i
            while j < end:
                c = masked[j]
                if c == "(":
                    depth += 1
                elif c == ")":
                    depth -= 1
                elif depth == 0:
                    if c == "=":
                        saw_equals = True
                    elif c == ";":
                        member = _Member(head, j + 1, j)
                        j += 1
                        break
                    elif c == "{":
                        close = self.src.match_brace(j)
                        if saw_equals:
                            j = close + 1
                            continue
                        member = _Member(head, close + 1, j, j, close)
                        j = close + 1
                        break
                    elif c == "}":
                        raise ExtractionError(
                            f"unexpected '}}' at line {self.src.line_of(j)}"
                        )
                j += 1
            if member is None:
                raise ExtractionError(
                    f"unterminated declaration at line {self.src.line_of(head)}"
                )
            yield member
            i = j

    def _enum_member_start(self, body_open: int, body_close: int) -> Optional[int]:
        """Offset after the enum constant list, or None when there are no members."""
        masked = self.src.masked
        j = body_open + 1
        depth = 0
        while j < body_close:
            c = masked[j]
            if c == "(":
                depth += 1
            elif c == ")":
                depth -= 1
            elif c == "{":
                j = self.src.match_brace(j) + 1
                continue
            elif c == ";" and depth == 0:
                return j + 1
            j += 1
        return None

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _handle_member(
        self,
        member: _Member,
        scope: str,
        type_name: Optional[str],
        default_visibility: Visibility,
    ) -> None:
        raw_header = self.src.masked[member.start:member.header_end]
        header = blank_annotations(raw_header)
        if not header.strip():
            return
        first_word = header.split(None, 1)[0]
        if first_word in ("package", "import"):
            return

        tm = _JAVA_TYPE_RE.match(header)
        if tm and all(w in _JAVA_MODIFIERS for w in tm.group(1).split()):
            self._handle_type(member, tm, scope, default_visibility)
            return
        if type_name is None:
            # only type declarations are legal at top level
            return

        paren = header.find("(")
        equals = _find_top_level(header, "=")
        if paren != -1 and (equals == -1 or paren < equals):
            self._handle_method(member, header, paren, scope, type_name, default_visibility)
        elif member.body_open is None:
            self._handle_field(member, header, scope, default_visibility)
        # else: initializer block or compact record constructor

    def _handle_type(self, member: _Member, tm: "re.Match[str]", scope: str, default_visibility: Visibility) -> None:
        modifiers = tm.group(1).split()
        keyword = re.sub(r"\s+", "", tm.group(2))
        name = tm.group(3)
        qname = qualify(scope, name)
        if member.body_open is None or member.body_close is None:
            return
        self.builder.add_symbol(
            qname,
            SymbolKind.CLASS,
            visibility=java_visibility(modifiers, default_visibility),
            start_line=self.src.line_of(member.start),
            end_line=self.src.line_of(member.end - 1),
            body_text=self.src.text[member.body_open:member.body_close + 1],
        )
        if keyword == "@interface":
            return
        inner_default = Visibility.PUBLIC if keyword == "interface" else Visibility.PACKAGE
        start = member.body_open + 1
        if keyword == "enum":
            enum_start = self._enum_member_start(member.body_open, member.body_close)
            if enum_start is None:
                return
            start = enum_start
        for child in self._members(start, member.body_close):
            self._handle_member(child, qname, name, inner_default)

    def _handle_method(
        self,
        member: _Member,
        header: str,
        paren: int,
        scope: str,
        type_name: str,
        default_visibility: Visibility,
    ) -> None:
        modifiers, return_type, name = split_java_prefix(header[:paren])
        if not name:
            return
        close = _match_pair(header, paren, "(", ")")
        params = split_java_params(header[paren + 1:close])
        body_text = ""
        if member.body_open is not None and member.body_close is not None:
            body_text = self.src.text[member.body_open:member.body_close + 1]
        symbol = self.builder.add_symbol(
            qualify(scope, name),
            SymbolKind.METHOD,
            params=params,
            # constructors declare no return type
            return_type=return_type,
            visibility=java_visibility(modifiers, default_visibility),
            start_line=self.src.line_of(member.start),
            end_line=self.src.line_of(member.end - 1),
            body_text=body_text,
        )
        if member.body_open is not None and member.body_close is not None:
            self.builder.add_calls(
                symbol,
                scan_calls(self.src, member.body_open, member.body_close + 1, constructors=True),
            )

    def _handle_field(self, member: _Member, header: str, scope: str, default_visibility: Visibility) -> None:
        declarators = split_top_level(header)
        if not declarators:
            return
        field_type = ""
        modifiers: List[str] = []
        for index, (s, e) in enumerate(declarators):
            segment = header[s:e]
            eq = _find_top_level(segment, "=")
            left = segment if eq == -1 else segment[:eq]
            value = ""
            if eq != -1:
                value_start = member.start + s + eq + 1
                value = self.src.text[value_start:member.start + e].strip()
            left = re.sub(r"\[\s*\]", "", left) if index else left
            if index == 0:
                modifiers, field_type, name = split_java_prefix(left)
                if not field_type:
                    return
            else:
                m = _TRAILING_IDENT_RE.search(left)
                if m is None:
                    continue
                name = m.group(1)
            if not name:
                continue
            self.builder.add_symbol(
                qualify(scope, name),
                SymbolKind.FIELD,
                return_type=field_type,
                visibility=java_visibility(modifiers, default_visibility),
                start_line=self.src.line_of(member.start),
                end_line=self.src.line_of(member.end - 1),
                body_text=value,
            )


# ===================================================================
# JavaScript / TypeScript
# ===================================================================

_JS_CLASS_RE = re.compile(
    rf"^[ \t]*(?:export\s+)?(?:default\s+)?(?:declare\s+)?(?:abstract\s+)?class\s+({_IDENT})[^{{;]*\{{",
    re.MULTILINE,
)
_JS_FUNCTION_RE = re.compile(
    rf"^[ \t]*(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*({_IDENT})\s*(?:<[^>(]*>)?\s*\(",
    re.MULTILINE,
)
_JS_ARROW_RE = re.compile(
    rf"^[ \t]*(?:export\s+)?(?:const|let|var)\s+({_IDENT})\s*(?::[^=\n]+)?=\s*(?:async\s+)?"
    rf"(?:\(([^()]*)\)|({_IDENT}))\s*(?::\s*([^=\n{{]+?))?\s*=>",
    re.MULTILINE,
)
_JS_METHOD_RE = re.compile(
    rf"^[ \t]*((?:(?:public|private|protected|static|readonly|async|abstract|override|get|set)\s+)*)"
    rf"(\*?\s*#?{_IDENT})\s*[?!]?\s*(?:<[^>(]*>)?\s*\(",
    re.MULTILINE,
)
_JS_FIELD_RE = re.compile(
    rf"^[ \t]*((?:(?:public|private|protected|static|readonly|declare|override)[ \t]+)*)"
    rf"(#?{_IDENT})[ \t]*[?!]?[ \t]*(?::[ \t]*([^=;\n]+?))?[ \t]*(?:=[ \t]*([^;\n]*?))?[ \t]*;?[ \t]*$",
    re.MULTILINE,
)
_JS_RESERVED = {
    "if", "for", "while", "switch", "catch", "return", "function", "new",
    "else", "do", "try", "throw", "typeof", "await", "yield", "import",
    "export", "const", "let", "var", "class", "super", "this", "delete",
}


def _js_visibility(modifiers: str, name: str) -> Visibility:
    words = modifiers.split()
    if "private" in words or name.startswith("#"):
        return Visibility.PRIVATE
    if "protected" in words:
        return Visibility.PROTECTED
    return Visibility.PUBLIC


def split_ts_params(params_text: str) -> List[Tuple[str, str]]:
    params: List[Tuple[str, str]] = []
    for s, e in split_top_level(params_text):
        piece = params_text[s:e].strip()
        piece = re.sub(r"^(?:(?:public|private|protected|readonly|override)\s+)+", "", piece)
        if not piece:
            continue
        eq = _find_top_level(piece, "=")
        if eq != -1:
            piece = piece[:eq].strip()
        colon = _find_top_level(piece, ":")
        if colon == -1:
            name, ptype = piece, ""
        else:
            name, ptype = piece[:colon].strip(), piece[colon + 1:].strip()
        params.append((name.rstrip("?").strip(), ptype))
    return params


class ScriptHeuristicExtractor:
    """Classes, methods, fields, functions and arrow functions for JS/TS."""

    def __init__(self, content: str, file_path: str, language: str) -> None:
        self.src = MaskedSource(content, language)
        self.builder = SymbolBuilder(file_path, language)
        self.module = module_name_for_path(file_path)

    def run(self) -> Tuple[List[Symbol], List[CallEdge]]:
        masked = self.src.masked
        for m in _JS_CLASS_RE.finditer(masked):
            if self.src.depth_at(m.start()) != 0:
                continue
            self._handle_class(m)
        for m in _JS_FUNCTION_RE.finditer(masked):
            if self.src.depth_at(m.start()) != 0:
                continue
            self._handle_callable(
                m.start(), m.end() - 1, qualify(self.module, m.group(1)),
                SymbolKind.FUNCTION, Visibility.PUBLIC,
            )
        for m in _JS_ARROW_RE.finditer(masked):
            if self.src.depth_at(m.start()) != 0:
                continue
            self._handle_arrow(m)
        return self.builder.build()

    def _handle_class(self, m: "re.Match[str]") -> None:
        name = m.group(1)
        qname = qualify(self.module, name)
        body_open = m.end() - 1
        body_close = self.src.match_brace(body_open)
        self.builder.add_symbol(
            qname,
            SymbolKind.CLASS,
            start_line=self.src.line_of(_first_non_space(self.src.masked, m.start())),
            end_line=self.src.line_of(body_close),
            body_text=self.src.text[body_open:body_close + 1],
        )
        member_depth = self.src.depth_at(body_open) + 1
        method_spans: List[Tuple[int, int]] = []
        for mm in _JS_METHOD_RE.finditer(self.src.masked, body_open + 1, body_close):
            if self.src.depth_at(mm.start()) != member_depth:
                continue
            raw_name = re.sub(r"[\s*]", "", mm.group(2))
            if raw_name.lstrip("#") in _JS_RESERVED:
                continue
            span = self._handle_callable(
                mm.start(), mm.end() - 1,
                qualify(qname, raw_name.lstrip("#")), SymbolKind.METHOD,
                _js_visibility(mm.group(1), raw_name),
                is_constructor=raw_name == "constructor",
            )
            if span is not None:
                method_spans.append(span)
        for fm in _JS_FIELD_RE.finditer(self.src.masked, body_open + 1, body_close):
            start = fm.start(2)
            if self.src.depth_at(start) != member_depth:
                continue
            if any(s <= start <= e for s, e in method_spans):
                continue
            raw_name = fm.group(2)
            if raw_name.lstrip("#") in _JS_RESERVED:
                continue
            value = ""
            if fm.group(4) is not None:
                value = self.src.text[fm.start(4):fm.end(4)].strip()
            line = self.src.line_of(_first_non_space(self.src.masked, fm.start()))
            self.builder.add_symbol(
                qualify(qname, raw_name.lstrip("#")),
                SymbolKind.FIELD,
                return_type=fm.group(3) or "",
                visibility=_js_visibility(fm.group(1), raw_name),
                start_line=line,
                end_line=line,
                body_text=value,
            )

    def _handle_callable(
        self,
        decl_start: int,
        paren: int,
        qname: str,
        kind: SymbolKind,
        visibility: Visibility,
        is_constructor: bool = False,
    ) -> Optional[Tuple[int, int]]:
        masked = self.src.masked
        close = self.src.match_paren(paren)
        params = split_ts_params(masked[paren + 1:close])
        brace = masked.find("{", close + 1)
        semi = masked.find(";", close + 1)
        if brace == -1 or (semi != -1 and semi < brace):
            if kind is SymbolKind.FUNCTION:
                # overload signature; the implementation follows
                return None
            body_open = None
            end = semi if semi != -1 else close
        else:
            body_open = brace
            end = self.src.match_brace(brace)
        annotation = masked[close + 1:body_open if body_open is not None else end].strip()
        if annotation and not annotation.startswith(":"):
            return None
        return_type = "" if is_constructor else annotation[1:].strip()

        start = _first_non_space(masked, decl_start)
        body_text = "" if body_open is None else self.src.text[body_open:end + 1]
        symbol = self.builder.add_symbol(
            qname,
            kind,
            params=params,
            return_type=return_type,
            visibility=visibility,
            start_line=self.src.line_of(start),
            end_line=self.src.line_of(end),
            body_text=body_text,
        )
        if body_open is not None:
            self.builder.add_calls(symbol, scan_calls(self.src, body_open, end + 1, constructors=True))
        return (start, end)

    def _handle_arrow(self, m: "re.Match[str]") -> None:
        masked = self.src.masked
        name = m.group(1)
        if m.group(2) is not None:
            params = split_ts_params(m.group(2))
        else:
            params = [(m.group(3), "")]
        return_type = (m.group(4) or "").strip()
        k = m.end()
        while k < len(masked) and masked[k] in " \t":
            k += 1
        start = _first_non_space(masked, m.start())
        if k < len(masked) and masked[k] == "{":
            end = self.src.match_brace(k)
            body_start, body_end = k, end + 1
        else:
            end = masked.find("\n", k)
            end = len(masked) if end == -1 else end
            body_start, body_end = k, end
            end = max(end - 1, k)
        symbol = self.builder.add_symbol(
            qualify(self.module, name),
            SymbolKind.FUNCTION,
            params=params,
            return_type=return_type,
            start_line=self.src.line_of(start),
            end_line=self.src.line_of(end),
            body_text=self.src.text[body_start:body_end].strip(),
        )
        self.builder.add_calls(symbol, scan_calls(self.src, body_start, body_end, constructors=True))


# ===================================================================
# Go
# ===================================================================

_GO_PACKAGE_RE = re.compile(r"^\s*package\s+(\w+)", re.MULTILINE)
_GO_FUNC_RE = re.compile(
    r"^func\s*(?:\(([^()]*)\)\s*)?([A-Za-z_]\w*)\s*(?:\[[^\]]*\])?\s*\(",
    re.MULTILINE,
)
_GO_TYPE_RE = re.compile(
    r"^type\s+([A-Za-z_]\w*)(?:\[[^\]]*\])?\s+(struct|interface)\s*\{",
    re.MULTILINE,
)
_GO_FIELD_RE = re.compile(
    r"^[ \t]*([A-Za-z_]\w*(?:\s*,\s*[A-Za-z_]\w*)*)[ \t]+([^\s`][^`\n]*?)[ \t]*(?:`[^`\n]*`)?[ \t]*$",
    re.MULTILINE,
)


def _go_visibility(name: str) -> Visibility:
    return Visibility.PUBLIC if name[:1].isupper() else Visibility.PACKAGE


def split_go_params(params_text: str) -> List[Tuple[str, str]]:
    """Go groups names before a shared type: ``a, b int, s string``."""
    items = [params_text[s:e].strip() for s, e in split_top_level(params_text)]
    items = [it for it in items if it]
    parsed: List[Tuple[str, Optional[str]]] = []
    for item in items:
        parts = item.split(None, 1)
        if len(parts) == 2 and re.fullmatch(r"[A-Za-z_]\w*", parts[0]):
            parsed.append((parts[0], parts[1]))
        else:
            parsed.append((item, None))
    if all(t is None for _, t in parsed):
        # unnamed parameters: every item is a type
        return [("", name) for name, _ in parsed]
    params: List[Tuple[str, str]] = []
    pending: List[str] = []
    for name, ptype in parsed:
        if ptype is None:
            pending.append(name)
            continue
        for p in pending:
            params.append((p, ptype))
        pending = []
        params.append((name, ptype))
    for p in pending:
        params.append((p, ""))
    return params


class GoHeuristicExtractor:
    def __init__(self, content: str, file_path: str) -> None:
        self.src = MaskedSource(content, "go")
        self.builder = SymbolBuilder(file_path, "go")

    def run(self) -> Tuple[List[Symbol], List[CallEdge]]:
        masked = self.src.masked
        m = _GO_PACKAGE_RE.search(masked)
        package = m.group(1) if m else ""
        for tm in _GO_TYPE_RE.finditer(masked):
            if self.src.depth_at(tm.start()) != 0:
                continue
            self._handle_type(tm, package)
        for fm in _GO_FUNC_RE.finditer(masked):
            if self.src.depth_at(fm.start()) != 0:
                continue
            self._handle_func(fm, package)
        return self.builder.build()

    def _handle_type(self, tm: "re.Match[str]", package: str) -> None:
        name = tm.group(1)
        qname = qualify(package, name)
        body_open = tm.end() - 1
        body_close = self.src.match_brace(body_open)
        self.builder.add_symbol(
            qname,
            SymbolKind.CLASS,
            visibility=_go_visibility(name),
            start_line=self.src.line_of(tm.start()),
            end_line=self.src.line_of(body_close),
            body_text=self.src.text[body_open:body_close + 1],
        )
        if tm.group(2) != "struct":
            return
        depth = self.src.depth_at(body_open) + 1
        for fm in _GO_FIELD_RE.finditer(self.src.masked, body_open + 1, body_close):
            if self.src.depth_at(fm.start(1)) != depth:
                continue
            line = self.src.line_of(fm.start(1))
            for field_name in re.split(r"\s*,\s*", fm.group(1).strip()):
                self.builder.add_symbol(
                    qualify(qname, field_name),
                    SymbolKind.FIELD,
                    return_type=fm.group(2),
                    visibility=_go_visibility(field_name),
                    start_line=line,
                    end_line=line,
                )

    def _handle_func(self, fm: "re.Match[str]", package: str) -> None:
        masked = self.src.masked
        receiver = fm.group(1)
        name = fm.group(2)
        paren = fm.end() - 1
        close = self.src.match_paren(paren)
        params = split_go_params(masked[paren + 1:close])
        k = close + 1
        depth = 0
        while k < len(masked):
            c = masked[k]
            if c == "(":
                depth += 1
            elif c == ")":
                depth -= 1
            elif c == "{" and depth == 0:
                break
            elif c == "\n" and depth == 0:
                # declaration without body
                return
            k += 1
        if k >= len(masked):
            return
        return_type = masked[close + 1:k].strip()
        body_close = self.src.match_brace(k)

        kind = SymbolKind.FUNCTION
        qname = qualify(package, name)
        if receiver and receiver.strip():
            recv_type = receiver.strip().split()[-1].lstrip("*")
            recv_type = re.sub(r"\[.*\]$", "", recv_type)
            kind = SymbolKind.METHOD
            qname = qualify(package, recv_type, name)

        symbol = self.builder.add_symbol(
            qname,
            kind,
            params=params,
            return_type=return_type,
            visibility=_go_visibility(name),
            start_line=self.src.line_of(fm.start()),
            end_line=self.src.line_of(body_close),
            body_text=self.src.text[k:body_close + 1],
        )
        self.builder.add_calls(symbol, scan_calls(self.src, k, body_close + 1, constructors=False))


# ===================================================================
# Rust
# ===================================================================

_RUST_VIS = r"(pub(?:\s*\([^)]*\))?\s+)?"
_RUST_FN_RE = re.compile(
    rf"^[ \t]*{_RUST_VIS}(?:default\s+)?(?:const\s+)?(?:async\s+)?(?:unsafe\s+)?"
    r"(?:extern\s+\"[^\"]*\"\s+)?fn\s+([A-Za-z_]\w*)\s*(?:<[^(]*?>)?\s*\(",
    re.MULTILINE,
)
_RUST_IMPL_RE = re.compile(
    r"^[ \t]*(?:unsafe\s+)?impl\b(?:\s*<[^{]*?>)?\s+(?:([^{]*?)\s+for\s+)?([A-Za-z_][\w:]*)[^{;]*\{",
    re.MULTILINE,
)
_RUST_TYPE_RE = re.compile(
    rf"^[ \t]*{_RUST_VIS}(struct|enum|trait|union)\s+([A-Za-z_]\w*)",
    re.MULTILINE,
)
_RUST_FIELD_RE = re.compile(
    rf"^[ \t]*{_RUST_VIS}([A-Za-z_]\w*)\s*:\s*([^\n]+?),?[ \t]*$",
    re.MULTILINE,
)
_RUST_SELF_RE = re.compile(r"^(?:&\s*(?:'\w+\s+)?)?(?:mut\s+)?self\b")


def split_rust_params(params_text: str) -> List[Tuple[str, str]]:
    params: List[Tuple[str, str]] = []
    for s, e in split_top_level(params_text):
        piece = params_text[s:e].strip()
        if not piece or _RUST_SELF_RE.match(piece):
            continue
        m = re.search(r"(?<!:):(?!:)", piece)
        if m is None:
            params.append(("", piece))
            continue
        name = re.sub(r"^mut\s+", "", piece[:m.start()].strip())
        params.append((name, piece[m.end():].strip()))
    return params


class RustHeuristicExtractor:
    def __init__(self, content: str, file_path: str) -> None:
        self.src = MaskedSource(content, "rust")
        self.builder = SymbolBuilder(file_path, "rust")
        self.module = module_name_for_path(file_path)

    def run(self) -> Tuple[List[Symbol], List[CallEdge]]:
        masked = self.src.masked
        # body span -> (owner name, members public by default)
        containers: Dict[Tuple[int, int], Tuple[str, bool]] = {}

        for tm in _RUST_TYPE_RE.finditer(masked):
            if self.src.depth_at(tm.start()) != 0:
                continue
            span = self._handle_type(tm)
            if span is not None and tm.group(2) == "trait":
                containers[span] = (tm.group(3), True)

        for im in _RUST_IMPL_RE.finditer(masked):
            if self.src.depth_at(im.start()) != 0:
                continue
            body_open = im.end() - 1
            body_close = self.src.match_brace(body_open)
            type_name = im.group(2).split("::")[-1]
            containers[(body_open, body_close)] = (type_name, im.group(1) is not None)

        for fm in _RUST_FN_RE.finditer(masked):
            depth = self.src.depth_at(fm.start())
            owner: Optional[Tuple[str, bool]] = None
            if depth == 1:
                for (open_idx, close_idx), info in containers.items():
                    if open_idx < fm.start() < close_idx:
                        owner = info
                        break
                if owner is None:
                    continue
            elif depth != 0:
                continue
            self._handle_fn(fm, owner)
        return self.builder.build()

    def _handle_type(self, tm: "re.Match[str]") -> Optional[Tuple[int, int]]:
        masked = self.src.masked
        name = tm.group(3)
        qname = qualify(self.module, name)
        visibility = Visibility.PUBLIC if tm.group(1) else Visibility.PRIVATE
        brace = masked.find("{", tm.end())
        semi = masked.find(";", tm.end())
        start_line = self.src.line_of(_first_non_space(masked, tm.start()))
        if brace == -1 or (semi != -1 and semi < brace):
            end = semi if semi != -1 else tm.end()
            self.builder.add_symbol(
                qname, SymbolKind.CLASS, visibility=visibility,
                start_line=start_line, end_line=self.src.line_of(end),
            )
            return None
        close = self.src.match_brace(brace)
        self.builder.add_symbol(
            qname,
            SymbolKind.CLASS,
            visibility=visibility,
            start_line=start_line,
            end_line=self.src.line_of(close),
            body_text=self.src.text[brace:close + 1],
        )
        if tm.group(2) == "struct":
            for fm in _RUST_FIELD_RE.finditer(masked, brace + 1, close):
                if self.src.depth_at(fm.start(2)) != 1:
                    continue
                line = self.src.line_of(fm.start(2))
                self.builder.add_symbol(
                    qualify(qname, fm.group(2)),
                    SymbolKind.FIELD,
                    return_type=fm.group(3).rstrip(","),
                    visibility=Visibility.PUBLIC if fm.group(1) else Visibility.PRIVATE,
                    start_line=line,
                    end_line=line,
                )
        return (brace, close)

    def _handle_fn(self, fm: "re.Match[str]", owner: Optional[Tuple[str, bool]]) -> None:
        masked = self.src.masked
        name = fm.group(2)
        paren = fm.end() - 1
        close = self.src.match_paren(paren)
        params = split_rust_params(masked[paren + 1:close])

        brace = masked.find("{", close + 1)
        semi = masked.find(";", close + 1)
        has_body = brace != -1 and (semi == -1 or brace < semi)
        tail_end = brace if has_body else (semi if semi != -1 else close + 1)
        tail = masked[close + 1:tail_end]
        tail = re.split(r"\bwhere\b", tail)[0].strip()
        return_type = tail[2:].strip() if tail.startswith("->") else ""

        if owner is None:
            kind = SymbolKind.FUNCTION
            qname = qualify(self.module, name)
            visibility = Visibility.PUBLIC if fm.group(1) else Visibility.PRIVATE
        else:
            kind = SymbolKind.METHOD
            qname = qualify(self.module, owner[0], name)
            visibility = Visibility.PUBLIC if (fm.group(1) or owner[1]) else Visibility.PRIVATE

        start = _first_non_space(masked, fm.start())
        if has_body:
            end = self.src.match_brace(brace)
            body_text = self.src.text[brace:end + 1]
        else:
            end = tail_end
            body_text = ""
        symbol = self.builder.add_symbol(
            qname,
            kind,
            params=params,
            return_type=return_type,
            visibility=visibility,
            start_line=self.src.line_of(start),
            end_line=self.src.line_of(end),
            body_text=body_text,
        )
        if has_body:
            self.builder.add_calls(symbol, scan_calls(self.src, brace, end + 1, constructors=False))


# ===================================================================
# Backend
# ===================================================================

class HeuristicBackend(ExtractionBackend):
    """Tolerant extractor for every brace-delimited language."""

    name = "heuristic"

    def supports_language(self, language: str) -> bool:
        return language in HEURISTIC_LANGUAGES

    def extract(
        self,
        content: str,
        file_path: str,
        language: str,
    ) -> Tuple[List[Symbol], List[CallEdge]]:
        if language == "java":
            return JavaHeuristicExtractor(content, file_path).run()
        if language in ("javascript", "typescript"):
            return ScriptHeuristicExtractor(content, file_path, language).run()
        if language == "go":
            return GoHeuristicExtractor(content, file_path).run()
        if language == "rust":
            return RustHeuristicExtractor(content, file_path).run()
        raise ExtractionError(f"no heuristic extractor for {language}")
