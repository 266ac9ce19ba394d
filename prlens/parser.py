"""Symbol extraction with Tree-sitter and tolerant fallbacks.

Backend chain per language (first that succeeds wins):

- **java**: Tree-sitter (``tree_sitter_java``) -> brace-scanning heuristic
- **python**: Tree-sitter (``tree_sitter_python``) -> built-in ``ast``
- **javascript / typescript / go / rust**: brace-scanning heuristic

Every backend emits the same :class:`~prlens.models.Symbol` shape.  The
:class:`Extractor` facade never raises on malformed input: a file whose
chain is exhausted comes back with no symbols and a soft ``error``.
"""

from __future__ import annotations

import ast
import importlib
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .config import DEFAULT_MAX_WORKERS, SKIP_DIRS, SUPPORTED_EXTENSIONS
from .errors import ExtractionError
from .heuristics import HeuristicBackend, java_visibility
from .models import (
    BatchExtraction,
    CallEdge,
    ExtractionResult,
    SourceFile,
    Symbol,
    SymbolKind,
    Visibility,
)
from .symbol_builder import (
    ExtractionBackend,
    SymbolBuilder,
    module_name_for_path,
    python_visibility,
    qualify,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".java": "java",
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".go": "go",
    ".rs": "rust",
}

LANGUAGE_ALIASES: Dict[str, str] = {
    "py": "python",
    "js": "javascript",
    "ts": "typescript",
    "golang": "go",
    "rs": "rust",
}


def detect_language(file_path: str, language_hint: Optional[str] = None) -> Optional[str]:
    """Language from an explicit hint, else from the file extension."""
    if language_hint:
        hint = language_hint.strip().lower()
        return LANGUAGE_ALIASES.get(hint, hint)
    return LANGUAGE_MAP.get(PurePosixPath(file_path.replace("\\", "/")).suffix.lower())


# ===================================================================
# Tree-sitter Backend (Primary)
# ===================================================================

class TreeSitterBackend(ExtractionBackend):
    """Error-tolerant structural extraction for Java and Python.

    Grammar ``Language`` objects are loaded once per process; ``Parser``
    instances are not thread-safe, so each worker thread gets its own.
    """

    name = "tree-sitter"

    # Map language name -> module that provides the tree-sitter Language
    _GRAMMAR_MODULES: Dict[str, str] = {
        "java": "tree_sitter_java",
        "python": "tree_sitter_python",
    }

    _languages: Dict[str, Any] = {}
    _unavailable: Set[str] = set()
    _load_lock = threading.Lock()

    def __init__(self) -> None:
        self._local = threading.local()

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    @classmethod
    def _load_language(cls, lang: str) -> Any:
        with cls._load_lock:
            if lang in cls._languages:
                return cls._languages[lang]
            if lang in cls._unavailable:
                return None
            mod_name = cls._GRAMMAR_MODULES.get(lang)
            if mod_name is None:
                cls._unavailable.add(lang)
                return None
            try:
                from tree_sitter import Language  # type: ignore[import-untyped]

                mod = importlib.import_module(mod_name)
                # tree-sitter >=0.22 per-language packages expose a
                # language() function that returns the Language capsule.
                ts_lang = Language(mod.language())
            except ImportError:
                logger.warning(
                    "Grammar package '%s' not installed for language '%s'; "
                    "using fallback extraction. Install with: pip install %s",
                    mod_name, lang, mod_name.replace("_", "-"),
                )
                cls._unavailable.add(lang)
                return None
            except Exception as exc:
                logger.warning("Could not load tree-sitter grammar for %s: %s", lang, exc)
                cls._unavailable.add(lang)
                return None
            cls._languages[lang] = ts_lang
            logger.debug("Loaded tree-sitter grammar for %s", lang)
            return ts_lang

    def supports_language(self, language: str) -> bool:
        return self._load_language(language) is not None

    def _parser_for(self, lang: str) -> Any:
        parsers = getattr(self._local, "parsers", None)
        if parsers is None:
            parsers = self._local.parsers = {}
        parser = parsers.get(lang)
        if parser is None:
            from tree_sitter import Parser as TSParser  # type: ignore[import-untyped]

            ts_lang = self._load_language(lang)
            if ts_lang is None:
                raise ExtractionError(f"tree-sitter grammar for {lang} unavailable")
            parser = TSParser(ts_lang)
            parsers[lang] = parser
        return parser

    # ------------------------------------------------------------------
    # File-level extraction
    # ------------------------------------------------------------------

    def extract(
        self,
        content: str,
        file_path: str,
        language: str,
    ) -> Tuple[List[Symbol], List[CallEdge]]:
        parser = self._parser_for(language)
        source = content.encode("utf-8")
        tree = parser.parse(source)
        if tree.root_node.has_error:
            logger.debug("tree-sitter recovered from syntax errors in %s", file_path)

        builder = SymbolBuilder(file_path, language)
        if language == "java":
            _JavaWalker(source, builder).walk(tree.root_node)
        elif language == "python":
            _PythonWalker(source, builder, module_name_for_path(file_path)).walk(tree.root_node)
        else:
            raise ExtractionError(f"no tree-sitter walker for {language}")
        return builder.build()


def _text(source: bytes, node: Any) -> str:
    return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def _line(node: Any) -> int:
    return node.start_point[0] + 1


def _end_line(node: Any) -> int:
    return node.end_point[0] + 1


def _code_end(node: Any) -> Any:
    """Innermost node ending where *node*'s code ends, skipping trailing comments."""
    named = node.named_children
    if not named or named[-1].end_byte != node.end_byte:
        return node
    code = [c for c in named if c.type != "comment"]
    return _code_end(code[-1]) if code else node


# ===================================================================
# Java walker
# ===================================================================

_JAVA_TYPE_NODES = {
    "class_declaration": "class",
    "interface_declaration": "interface",
    "enum_declaration": "enum",
    "record_declaration": "record",
    "annotation_type_declaration": "@interface",
}
_JAVA_BODY_SKIP = {"class_body", "interface_body", "enum_body", "annotation_type_body"}


class _JavaWalker:
    """Recursive definition walker over a Java syntax tree."""

    def __init__(self, source: bytes, builder: SymbolBuilder) -> None:
        self.source = source
        self.builder = builder

    def walk(self, root: Any) -> None:
        package = ""
        for child in root.children:
            if child.type == "package_declaration":
                for sub in child.children:
                    if sub.type in ("scoped_identifier", "identifier"):
                        package = _text(self.source, sub)
        for child in root.children:
            if child.type in _JAVA_TYPE_NODES:
                self._process_type(child, package, Visibility.PACKAGE)

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def _modifiers(self, node: Any) -> List[str]:
        for child in node.children:
            if child.type == "modifiers":
                return [c.type for c in child.children if c.type in ("public", "protected", "private")]
        return []

    def _process_type(self, node: Any, scope: str, default_visibility: Visibility) -> None:
        name_node = node.child_by_field_name("name")
        body = node.child_by_field_name("body")
        if name_node is None or body is None:
            return
        name = _text(self.source, name_node)
        qname = qualify(scope, name)
        self.builder.add_symbol(
            qname,
            SymbolKind.CLASS,
            visibility=java_visibility(self._modifiers(node), default_visibility),
            start_line=_line(node),
            end_line=_end_line(node),
            body_text=_text(self.source, body),
        )
        keyword = _JAVA_TYPE_NODES[node.type]
        if keyword == "@interface":
            return
        inner_default = Visibility.PUBLIC if keyword == "interface" else Visibility.PACKAGE

        members: List[Any] = []
        for child in body.children:
            if child.type == "enum_body_declarations":
                members.extend(child.children)
            else:
                members.append(child)

        for member in members:
            if member.type in _JAVA_TYPE_NODES:
                self._process_type(member, qname, inner_default)
            elif member.type in ("method_declaration", "constructor_declaration"):
                self._process_method(member, qname, inner_default)
            elif member.type in ("field_declaration", "constant_declaration"):
                self._process_field(member, qname, inner_default)

    def _process_method(self, node: Any, scope: str, default_visibility: Visibility) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        return_type = ""
        if node.type == "method_declaration":
            type_node = node.child_by_field_name("type")
            return_type = _text(self.source, type_node) if type_node is not None else ""
        params = self._params(node.child_by_field_name("parameters"))
        body = node.child_by_field_name("body")

        symbol = self.builder.add_symbol(
            qualify(scope, _text(self.source, name_node)),
            SymbolKind.METHOD,
            params=params,
            return_type=return_type,
            visibility=java_visibility(self._modifiers(node), default_visibility),
            start_line=_line(node),
            end_line=_end_line(node),
            body_text=_text(self.source, body) if body is not None else "",
        )
        if body is not None:
            self.builder.add_calls(symbol, self._collect_calls(body))

    def _params(self, params_node: Any) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = []
        if params_node is None:
            return params
        for child in params_node.children:
            if child.type == "formal_parameter":
                name_node = child.child_by_field_name("name")
                type_node = child.child_by_field_name("type")
                if name_node is None or type_node is None:
                    continue
                params.append((_text(self.source, name_node), _text(self.source, type_node)))
            elif child.type == "spread_parameter":
                type_text = ""
                name = ""
                for sub in child.children:
                    if sub.type == "variable_declarator":
                        name_node = sub.child_by_field_name("name")
                        name = _text(self.source, name_node) if name_node is not None else ""
                    elif sub.type not in ("modifiers", "...") and not type_text:
                        type_text = _text(self.source, sub)
                params.append((name, type_text + "..."))
        return params

    def _process_field(self, node: Any, scope: str, default_visibility: Visibility) -> None:
        type_node = node.child_by_field_name("type")
        field_type = _text(self.source, type_node) if type_node is not None else ""
        visibility = java_visibility(self._modifiers(node), default_visibility)
        for declarator in node.children_by_field_name("declarator"):
            name_node = declarator.child_by_field_name("name")
            if name_node is None:
                continue
            value = declarator.child_by_field_name("value")
            self.builder.add_symbol(
                qualify(scope, _text(self.source, name_node)),
                SymbolKind.FIELD,
                return_type=field_type,
                visibility=visibility,
                start_line=_line(node),
                end_line=_end_line(node),
                body_text=_text(self.source, value) if value is not None else "",
            )

    # ------------------------------------------------------------------
    # Call extraction
    # ------------------------------------------------------------------

    def _collect_calls(self, body: Any) -> List[Tuple[str, int]]:
        """Every call inside *body*, ordered by the callee name position."""
        found: List[Tuple[int, str, int]] = []

        def _find(node: Any) -> None:
            if node.type == "method_invocation":
                name_node = node.child_by_field_name("name")
                obj = node.child_by_field_name("object")
                if name_node is not None:
                    name = _text(self.source, name_node)
                    callee = name
                    if obj is not None:
                        obj_text = "".join(_text(self.source, obj).split())
                        if _is_dotted_name(obj_text):
                            callee = f"{obj_text}.{name}"
                    found.append((name_node.start_byte, callee, _line(name_node)))
            elif node.type == "object_creation_expression":
                type_node = node.child_by_field_name("type")
                if type_node is not None:
                    type_text = "".join(_text(self.source, type_node).split())
                    type_text = type_text.split("<", 1)[0]
                    found.append((type_node.start_byte, type_text, _line(type_node)))
            for ch in node.children:
                _find(ch)

        _find(body)
        found.sort(key=lambda item: item[0])
        return [(callee, line) for _, callee, line in found]


def _is_dotted_name(text: str) -> bool:
    parts = text.split(".")
    return all(p and (p[0].isalpha() or p[0] in "_$") and all(c.isalnum() or c in "_$" for c in p) for p in parts)


# ===================================================================
# Python walker
# ===================================================================

class _PythonWalker:
    """Recursive definition walker over a Python syntax tree."""

    def __init__(self, source: bytes, builder: SymbolBuilder, module: str) -> None:
        self.source = source
        self.builder = builder
        self.module = module

    def walk(self, root: Any) -> None:
        self._walk(root, self.module, in_class=False)

    def _walk(self, ts_node: Any, scope: str, in_class: bool) -> None:
        for child in ts_node.children:
            outer_node = child
            actual_def = child

            # Unwrap @decorated_definition -> inner function/class
            if child.type == "decorated_definition":
                inner = child.child_by_field_name("definition")
                if inner is None:
                    continue
                actual_def = inner

            if actual_def.type == "function_definition":
                self._process_function(outer_node, actual_def, scope, in_class)
            elif actual_def.type == "class_definition":
                self._process_class(outer_node, actual_def, scope)

    def _process_function(self, outer_node: Any, func_node: Any, scope: str, in_class: bool) -> None:
        name_node = func_node.child_by_field_name("name")
        if name_node is None:
            return
        name = _text(self.source, name_node)
        params = self._params(func_node.child_by_field_name("parameters"))
        if in_class and params and params[0][0] in ("self", "cls"):
            params = params[1:]
        return_node = func_node.child_by_field_name("return_type")
        body = func_node.child_by_field_name("body")
        end_line, body_text = self._block(outer_node, body)

        symbol = self.builder.add_symbol(
            qualify(scope, name),
            SymbolKind.METHOD if in_class else SymbolKind.FUNCTION,
            params=params,
            return_type=_text(self.source, return_node) if return_node is not None else "",
            visibility=python_visibility(name),
            start_line=_line(outer_node),
            end_line=end_line,
            body_text=body_text,
        )
        if body is not None:
            self.builder.add_calls(symbol, self._collect_calls(body))
            # nested definitions
            self._walk(body, qualify(scope, name), in_class=False)

    def _process_class(self, outer_node: Any, class_node: Any, scope: str) -> None:
        name_node = class_node.child_by_field_name("name")
        if name_node is None:
            return
        name = _text(self.source, name_node)
        body = class_node.child_by_field_name("body")
        end_line, body_text = self._block(outer_node, body)
        self.builder.add_symbol(
            qualify(scope, name),
            SymbolKind.CLASS,
            visibility=python_visibility(name),
            start_line=_line(outer_node),
            end_line=end_line,
            body_text=body_text,
        )
        if body is not None:
            self._walk(body, qualify(scope, name), in_class=True)

    def _block(self, outer_node: Any, body: Any) -> Tuple[int, str]:
        """End line and body text spanning the first to the last statement.

        Comments before the first or after the last statement belong to
        neither, matching what the ``ast`` backend sees.
        """
        statements = [c for c in body.named_children if c.type != "comment"] if body is not None else []
        if not statements:
            return _end_line(outer_node), ""
        end = _code_end(statements[-1])
        text = self.source[statements[0].start_byte:end.end_byte].decode("utf-8", errors="replace")
        return _end_line(end), text

    def _params(self, params_node: Any) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = []
        if params_node is None:
            return params
        for child in params_node.children:
            kind = child.type
            if kind == "identifier":
                params.append((_text(self.source, child), ""))
            elif kind in ("list_splat_pattern", "dictionary_splat_pattern"):
                params.append((_text(self.source, child), ""))
            elif kind == "typed_parameter":
                type_node = child.child_by_field_name("type")
                name = ""
                for sub in child.children:
                    if sub.type in ("identifier", "list_splat_pattern", "dictionary_splat_pattern"):
                        name = _text(self.source, sub)
                        break
                params.append((name, _text(self.source, type_node) if type_node is not None else ""))
            elif kind in ("default_parameter", "typed_default_parameter"):
                name_node = child.child_by_field_name("name")
                type_node = child.child_by_field_name("type")
                params.append((
                    _text(self.source, name_node) if name_node is not None else "",
                    _text(self.source, type_node) if type_node is not None else "",
                ))
        return params

    def _collect_calls(self, body: Any) -> List[Tuple[str, int]]:
        """Every call inside *body*, skipping nested definitions."""
        found: List[Tuple[Tuple[int, int], str]] = []

        def _find(node: Any) -> None:
            if node.type == "call":
                func = node.child_by_field_name("function")
                if func is not None:
                    name = _resolve_ts_call_name(self.source, func)
                    if name:
                        found.append((func.end_point, name))
            for ch in node.children:
                if ch.type in ("function_definition", "class_definition", "decorated_definition"):
                    continue
                _find(ch)

        _find(body)
        found.sort(key=lambda item: item[0])
        return [(name, point[0] + 1) for point, name in found]


def _resolve_ts_call_name(source: bytes, func_node: Any) -> Optional[str]:
    """Resolve a Tree-sitter call-function node to a dotted name string."""
    if func_node.type == "identifier":
        return _text(source, func_node)
    if func_node.type == "attribute":
        parts: List[str] = []
        current = func_node
        while current is not None and current.type == "attribute":
            attr = current.child_by_field_name("attribute")
            if attr is not None:
                parts.append(_text(source, attr))
            current = current.child_by_field_name("object")
        if current is not None and current.type == "identifier":
            parts.append(_text(source, current))
        return ".".join(reversed(parts)) if parts else None
    if func_node.type == "call":
        inner = func_node.child_by_field_name("function")
        if inner is not None:
            return _resolve_ts_call_name(source, inner)
    return None


# ===================================================================
# AST Fallback Backend (Python without tree-sitter)
# ===================================================================

class AstBackend(ExtractionBackend):
    """Pure-Python fallback using the built-in ``ast`` module."""

    name = "ast"

    def supports_language(self, language: str) -> bool:
        return language == "python"

    def extract(
        self,
        content: str,
        file_path: str,
        language: str,
    ) -> Tuple[List[Symbol], List[CallEdge]]:
        try:
            tree = ast.parse(content)
        except (SyntaxError, ValueError) as exc:
            raise ExtractionError(f"{type(exc).__name__}: {exc}") from exc

        builder = SymbolBuilder(file_path, "python")
        _AstWalker(content, builder).walk_body(tree.body, module_name_for_path(file_path), in_class=False)
        return builder.build()


class _AstWalker:
    """Walks statement lists (not whole subtrees) to mirror the tree-sitter walker."""

    def __init__(self, content: str, builder: SymbolBuilder) -> None:
        self.content = content
        self.builder = builder
        # byte offset of each line start, for utf-8 column arithmetic
        self._raw = content.encode("utf-8")
        self._line_offsets = [0]
        for i, b in enumerate(self._raw):
            if b == 0x0A:
                self._line_offsets.append(i + 1)

    def _segment(self, start_line: int, start_col: int, end_line: int, end_col: int) -> str:
        start = self._line_offsets[start_line - 1] + start_col
        end = self._line_offsets[end_line - 1] + end_col
        return self._raw[start:end].decode("utf-8", errors="replace")

    def _node_text(self, node: Optional[ast.AST]) -> str:
        if node is None:
            return ""
        return self._segment(node.lineno, node.col_offset, node.end_lineno, node.end_col_offset)  # type: ignore[attr-defined]

    def _body_text(self, body: Sequence[ast.stmt]) -> str:
        if not body:
            return ""
        first, last = body[0], body[-1]
        return self._segment(first.lineno, first.col_offset, last.end_lineno, last.end_col_offset)  # type: ignore[arg-type]

    def walk_body(self, body: Sequence[ast.stmt], scope: str, in_class: bool) -> None:
        for stmt in body:
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                self._visit_function(stmt, scope, in_class)
            elif isinstance(stmt, ast.ClassDef):
                self._visit_class(stmt, scope)

    def _start_line(self, node: Any) -> int:
        lines = [node.lineno] + [d.lineno for d in node.decorator_list]
        return min(lines)

    def _visit_class(self, node: ast.ClassDef, scope: str) -> None:
        qname = qualify(scope, node.name)
        self.builder.add_symbol(
            qname,
            SymbolKind.CLASS,
            visibility=python_visibility(node.name),
            start_line=self._start_line(node),
            end_line=getattr(node, "end_lineno", node.lineno),
            body_text=self._body_text(node.body),
        )
        self.walk_body(node.body, qname, in_class=True)

    def _visit_function(self, node: Any, scope: str, in_class: bool) -> None:
        args = node.args
        params: List[Tuple[str, str]] = []
        for arg in list(args.posonlyargs) + list(args.args):
            params.append((arg.arg, self._node_text(arg.annotation)))
        if args.vararg is not None:
            params.append(("*" + args.vararg.arg, self._node_text(args.vararg.annotation)))
        for arg in args.kwonlyargs:
            params.append((arg.arg, self._node_text(arg.annotation)))
        if args.kwarg is not None:
            params.append(("**" + args.kwarg.arg, self._node_text(args.kwarg.annotation)))
        if in_class and params and params[0][0] in ("self", "cls"):
            params = params[1:]

        qname = qualify(scope, node.name)
        symbol = self.builder.add_symbol(
            qname,
            SymbolKind.METHOD if in_class else SymbolKind.FUNCTION,
            params=params,
            return_type=self._node_text(node.returns),
            visibility=python_visibility(node.name),
            start_line=self._start_line(node),
            end_line=getattr(node, "end_lineno", node.lineno),
            body_text=self._body_text(node.body),
        )
        self.builder.add_calls(symbol, _ast_collect_calls(node.body))
        self.walk_body(node.body, qname, in_class=False)


def _ast_collect_calls(body: Sequence[ast.stmt]) -> List[Tuple[str, int]]:
    found: List[Tuple[Tuple[int, int], str]] = []

    class _CV(ast.NodeVisitor):
        def visit_Call(self, call_node: ast.Call) -> None:
            n = _ast_name_from_expr(call_node.func)
            if n:
                func = call_node.func
                found.append(((func.end_lineno - 1, func.end_col_offset), n))  # type: ignore[operator]
            self.generic_visit(call_node)

        def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
            return

        def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
            return

        def visit_ClassDef(self, node: ast.ClassDef) -> None:
            return

    visitor = _CV()
    for stmt in body:
        visitor.visit(stmt)
    found.sort(key=lambda item: item[0])
    return [(name, point[0] + 1) for point, name in found]


def _ast_name_from_expr(expr: ast.AST) -> Optional[str]:
    if isinstance(expr, ast.Name):
        return expr.id
    if isinstance(expr, ast.Attribute):
        parts: List[str] = []
        current: ast.AST = expr
        while isinstance(current, ast.Attribute):
            parts.append(current.attr)
            current = current.value
        if isinstance(current, ast.Name):
            parts.append(current.id)
        return ".".join(reversed(parts)) if parts else None
    if isinstance(expr, ast.Call):
        return _ast_name_from_expr(expr.func)
    return None


# ===================================================================
# Extractor facade
# ===================================================================

class Extractor:
    """Language-aware extraction with per-file failure isolation.

    ``extract`` never raises for malformed input; ``extract_many`` runs a
    bounded worker pool and returns results in input order.
    """

    def __init__(
        self,
        use_tree_sitter: bool = True,
        max_workers: int = DEFAULT_MAX_WORKERS,
        backends: Optional[Sequence[ExtractionBackend]] = None,
    ) -> None:
        self.max_workers = max(1, max_workers)
        if backends is not None:
            self._backends: List[ExtractionBackend] = list(backends)
        else:
            self._backends = []
            if use_tree_sitter:
                self._backends.append(TreeSitterBackend())
            self._backends.extend([AstBackend(), HeuristicBackend()])

    def chain_for(self, language: str) -> List[ExtractionBackend]:
        return [b for b in self._backends if b.supports_language(language)]

    def extract(
        self,
        content: str,
        file_path: str,
        language_hint: Optional[str] = None,
    ) -> ExtractionResult:
        language = detect_language(file_path, language_hint)
        if language is None:
            return ExtractionResult(file=file_path, language=None)

        chain = self.chain_for(language)
        if not chain:
            return ExtractionResult(file=file_path, language=language)

        errors: List[str] = []
        for backend in chain:
            try:
                symbols, calls = backend.extract(content, file_path, language)
            except Exception as exc:
                # any backend failure moves on to the next one
                logger.debug("%s backend failed on %s: %s", backend.name, file_path, exc)
                errors.append(f"{backend.name}: {exc}")
                continue
            return ExtractionResult(
                file=file_path,
                language=language,
                symbols=symbols,
                calls=calls,
                backend=backend.name,
            )

        logger.warning("Skipping %s: %s", file_path, "; ".join(errors))
        return ExtractionResult(file=file_path, language=language, error="; ".join(errors))

    def extract_file(self, source: SourceFile) -> ExtractionResult:
        return self.extract(source.content, source.path, source.language)

    def extract_many(self, files: Iterable[SourceFile]) -> BatchExtraction:
        file_list = list(files)
        if not file_list:
            return BatchExtraction()
        if self.max_workers == 1 or len(file_list) == 1:
            return BatchExtraction(results=[self.extract_file(f) for f in file_list])
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="prlens-extract") as pool:
            results = list(pool.map(self.extract_file, file_list))
        return BatchExtraction(results=results)


# ===================================================================
# Project walking
# ===================================================================

def iter_source_files(root: Path) -> Iterator[SourceFile]:
    """Yield every supported file under *root* with a root-relative POSIX path."""
    root = Path(root)
    for file_path in sorted(root.rglob("*")):
        if not file_path.is_file() or file_path.suffix.lower() not in SUPPORTED_EXTENSIONS:
            continue
        rel = file_path.relative_to(root)
        if any(part in SKIP_DIRS for part in rel.parts[:-1]):
            continue
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read %s: %s", file_path, exc)
            continue
        yield SourceFile(path=rel.as_posix(), content=content)
