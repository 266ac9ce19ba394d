"""Baseline symbol index: immutable snapshots, atomic publication, persistence.

Architecture:

- :class:`IndexSnapshot` is a frozen view over symbols, call edges and
  embeddings with dictionary indexes for the common lookups.
- :class:`SymbolIndex` owns the single published snapshot.  A rebuild
  extracts and embeds off to the side and then swaps the reference under
  a lock, so readers never see a half-built index.
- Snapshots persist to one **SQLite** file per index, written to a
  temporary path and renamed into place.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .config import INDEX_DIR, SCHEMA_VERSION, ensure_base_dirs
from .embeddings import EmbeddingGenerator, HashEmbeddingModel, clamped_similarity, embed_with_timeout
from .errors import CorruptIndex, IndexNotFound, StaleIndex
from .models import (
    CALLABLE_KINDS,
    CallEdge,
    Embedding,
    Parameter,
    Signature,
    SourceFile,
    Symbol,
    SymbolKind,
    Visibility,
)
from .parser import Extractor

logger = logging.getLogger(__name__)


# ===================================================================
# IndexSnapshot
# ===================================================================

class IndexSnapshot:
    """Immutable, internally consistent view of one baseline."""

    def __init__(
        self,
        symbols: Iterable[Symbol] = (),
        call_edges: Iterable[CallEdge] = (),
        embeddings: Iterable[Embedding] = (),
        files: Iterable[str] = (),
        generator_version: str = "",
        schema_version: int = SCHEMA_VERSION,
        created_at: Optional[float] = None,
    ) -> None:
        self._symbols: Tuple[Symbol, ...] = tuple(symbols)
        self._call_edges: Tuple[CallEdge, ...] = tuple(call_edges)
        self._embeddings: Dict[str, Embedding] = {e.symbol_id: e for e in embeddings}
        self._files = frozenset(files) | {s.file for s in self._symbols}
        self.generator_version = generator_version
        self.schema_version = schema_version
        self.created_at = created_at if created_at is not None else time.time()

        self._by_id: Dict[str, Symbol] = {}
        self._by_qname: Dict[str, List[Symbol]] = {}
        self._by_file: Dict[str, List[Symbol]] = {}
        for symbol in self._symbols:
            self._by_id[symbol.id] = symbol
            self._by_qname.setdefault(symbol.qualified_name, []).append(symbol)
            self._by_file.setdefault(symbol.file, []).append(symbol)

    def __len__(self) -> int:
        return len(self._symbols)

    def __repr__(self) -> str:
        return (
            f"IndexSnapshot(symbols={len(self._symbols)}, files={len(self._files)}, "
            f"generator={self.generator_version!r})"
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def files(self) -> frozenset:
        return self._files

    @property
    def call_edges(self) -> Tuple[CallEdge, ...]:
        return self._call_edges

    @property
    def embeddings(self) -> Tuple[Embedding, ...]:
        return tuple(self._embeddings.values())

    def all_symbols(self) -> Iterator[Symbol]:
        return iter(self._symbols)

    def get(self, symbol_id: str) -> Optional[Symbol]:
        return self._by_id.get(symbol_id)

    def lookup_by_qualified_name(self, qualified_name: str) -> List[Symbol]:
        return list(self._by_qname.get(qualified_name, ()))

    def lookup_by_file(self, file_path: str) -> List[Symbol]:
        return list(self._by_file.get(file_path, ()))

    def has_file(self, file_path: str) -> bool:
        return file_path in self._files

    def embedding_for(self, symbol_id: str, generator_version: Optional[str] = None) -> Optional[Tuple[float, ...]]:
        """Stored vector for *symbol_id*, or None when missing or from another generator."""
        emb = self._embeddings.get(symbol_id)
        if emb is None:
            return None
        if generator_version is not None and emb.generator_version != generator_version:
            return None
        return emb.vector

    def nearest_by_similarity(
        self,
        vector: Sequence[float],
        k: int,
        min_score: float = 0.0,
        generator_version: Optional[str] = None,
        kinds: Optional[Iterable[SymbolKind]] = None,
    ) -> List[Tuple[Symbol, float]]:
        """Top *k* embedded symbols by clamped cosine, ties broken by id."""
        if k <= 0 or not vector:
            return []
        allowed = set(kinds) if kinds is not None else None
        scored: List[Tuple[float, str]] = []
        for symbol_id, emb in self._embeddings.items():
            if generator_version is not None and emb.generator_version != generator_version:
                continue
            symbol = self._by_id.get(symbol_id)
            if symbol is None or (allowed is not None and symbol.kind not in allowed):
                continue
            score = clamped_similarity(vector, emb.vector)
            if score >= min_score:
                scored.append((score, symbol_id))
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [(self._by_id[sid], score) for score, sid in scored[:k]]


# ===================================================================
# Rebuild
# ===================================================================

@dataclass
class BuildReport:
    files: int = 0
    symbols: int = 0
    call_edges: int = 0
    embedded: int = 0
    embedding_failures: int = 0
    skipped_files: int = 0
    errors: Dict[str, str] = field(default_factory=dict)
    elapsed: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": self.files,
            "symbols": self.symbols,
            "call_edges": self.call_edges,
            "embedded": self.embedded,
            "embedding_failures": self.embedding_failures,
            "skipped_files": self.skipped_files,
            "errors": dict(self.errors),
            "elapsed": round(self.elapsed, 3),
        }


def embed_symbols(
    symbols: Iterable[Symbol],
    embedder: EmbeddingGenerator,
    timeout: float,
    kinds: Iterable[SymbolKind] = CALLABLE_KINDS,
) -> Tuple[List[Embedding], int]:
    """Embed every symbol of *kinds*; returns (embeddings, failure count)."""
    wanted = set(kinds)
    embeddings: List[Embedding] = []
    failures = 0
    for symbol in symbols:
        if symbol.kind not in wanted:
            continue
        outcome = embed_with_timeout(embedder, symbol, timeout)
        if outcome.vector is None:
            failures += 1
            continue
        embeddings.append(Embedding(symbol.id, outcome.vector, embedder.version))
    return embeddings, failures


def build_snapshot(
    files: Iterable[SourceFile],
    extractor: Extractor,
    embedder: EmbeddingGenerator,
    embedding_timeout: float = 2.0,
) -> Tuple[IndexSnapshot, BuildReport]:
    """Extract and embed *files* into a fresh, unpublished snapshot."""
    started = time.monotonic()
    file_list = list(files)
    batch = extractor.extract_many(file_list)
    symbols = batch.symbols
    embeddings, failures = embed_symbols(symbols, embedder, embedding_timeout)

    snapshot = IndexSnapshot(
        symbols=symbols,
        call_edges=batch.calls,
        embeddings=embeddings,
        files=[f.path for f in file_list],
        generator_version=embedder.version,
    )
    report = BuildReport(
        files=len(file_list),
        symbols=len(symbols),
        call_edges=len(snapshot.call_edges),
        embedded=len(embeddings),
        embedding_failures=failures,
        skipped_files=batch.skipped_files,
        errors=batch.errors,
        elapsed=time.monotonic() - started,
    )
    return snapshot, report


class SymbolIndex:
    """Single-writer holder of the published baseline snapshot.

    Any number of readers may call :meth:`current` concurrently; a snapshot
    they hold stays valid and unchanged after a later rebuild.
    """

    def __init__(
        self,
        extractor: Optional[Extractor] = None,
        embedder: Optional[EmbeddingGenerator] = None,
        embedding_timeout: float = 2.0,
        snapshot: Optional[IndexSnapshot] = None,
    ) -> None:
        self.extractor = extractor or Extractor()
        self.embedder = embedder or HashEmbeddingModel()
        self.embedding_timeout = embedding_timeout
        self._snapshot = snapshot or IndexSnapshot(generator_version=self.embedder.version)
        self._publish_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self.last_report: Optional[BuildReport] = None

    def current(self) -> IndexSnapshot:
        with self._publish_lock:
            return self._snapshot

    def publish(self, snapshot: IndexSnapshot) -> None:
        with self._publish_lock:
            self._snapshot = snapshot

    def rebuild_index(self, files: Iterable[SourceFile]) -> BuildReport:
        """Replace the baseline with a snapshot built from *files*."""
        with self._write_lock:
            snapshot, report = build_snapshot(
                files, self.extractor, self.embedder, self.embedding_timeout,
            )
            self.publish(snapshot)
            self.last_report = report
        logger.info(
            "Indexed %d files: %d symbols, %d call edges, %d embedded "
            "(%d embedding failures, %d skipped files) in %.2fs",
            report.files, report.symbols, report.call_edges, report.embedded,
            report.embedding_failures, report.skipped_files, report.elapsed,
        )
        return report


# ===================================================================
# Persistence (SQLite)
# ===================================================================

_SCHEMA = (
    "CREATE TABLE meta (key TEXT PRIMARY KEY, value TEXT NOT NULL)",
    "CREATE TABLE files (path TEXT PRIMARY KEY)",
    """
    CREATE TABLE symbols (
        ord            INTEGER NOT NULL,
        id             TEXT PRIMARY KEY,
        qualified_name TEXT NOT NULL,
        kind           TEXT NOT NULL,
        params         TEXT NOT NULL,
        return_type    TEXT NOT NULL,
        visibility     TEXT NOT NULL,
        file           TEXT NOT NULL,
        start_line     INTEGER NOT NULL,
        end_line       INTEGER NOT NULL,
        body_text      TEXT NOT NULL,
        language       TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE embeddings (
        symbol_id         TEXT PRIMARY KEY,
        vector            TEXT NOT NULL,
        generator_version TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE call_edges (
        ord                INTEGER NOT NULL,
        caller_id          TEXT NOT NULL,
        callee_name        TEXT NOT NULL,
        file               TEXT NOT NULL,
        line               INTEGER NOT NULL,
        resolved_callee_id TEXT
    )
    """,
    "CREATE INDEX idx_symbols_qname ON symbols(qualified_name)",
    "CREATE INDEX idx_symbols_file ON symbols(file)",
)


def save_snapshot(snapshot: IndexSnapshot, path: Path) -> Path:
    """Write *snapshot* to *path* atomically (temp file + rename)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    if tmp_path.exists():
        tmp_path.unlink()

    conn = sqlite3.connect(str(tmp_path))
    try:
        cur = conn.cursor()
        for statement in _SCHEMA:
            cur.execute(statement)
        cur.executemany(
            "INSERT INTO meta (key, value) VALUES (?, ?)",
            [
                ("schema_version", str(snapshot.schema_version)),
                ("generator_version", snapshot.generator_version),
                ("created_at", repr(snapshot.created_at)),
            ],
        )
        cur.executemany("INSERT INTO files (path) VALUES (?)", [(f,) for f in sorted(snapshot.files)])
        cur.executemany(
            """
            INSERT INTO symbols (
                ord, id, qualified_name, kind, params, return_type, visibility,
                file, start_line, end_line, body_text, language
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    i,
                    s.id,
                    s.qualified_name,
                    s.kind.value,
                    json.dumps([[p.name, p.type] for p in s.signature.params]),
                    s.signature.return_type,
                    s.signature.visibility.value,
                    s.file,
                    s.start_line,
                    s.end_line,
                    s.body_text,
                    s.language,
                )
                for i, s in enumerate(snapshot.all_symbols())
            ],
        )
        cur.executemany(
            "INSERT INTO embeddings (symbol_id, vector, generator_version) VALUES (?, ?, ?)",
            [(e.symbol_id, json.dumps(list(e.vector)), e.generator_version) for e in snapshot.embeddings],
        )
        cur.executemany(
            """
            INSERT INTO call_edges (ord, caller_id, callee_name, file, line, resolved_callee_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (i, e.caller_id, e.callee_name, e.file, e.line, e.resolved_callee_id)
                for i, e in enumerate(snapshot.call_edges)
            ],
        )
        conn.commit()
    finally:
        conn.close()
    os.replace(tmp_path, path)
    logger.debug("Saved index snapshot to %s", path)
    return path


def load_snapshot(path: Path, expected_generator_version: Optional[str] = None) -> IndexSnapshot:
    """Load a snapshot written by :func:`save_snapshot`.

    Raises:
        IndexNotFound: nothing exists at *path*.
        CorruptIndex: the file is not a readable index.
        StaleIndex: schema version differs from this build, or the
            generator version differs from *expected_generator_version*.
    """
    path = Path(path)
    if not path.is_file():
        raise IndexNotFound(path, "no index file")

    try:
        conn = sqlite3.connect(path.resolve().as_uri() + "?mode=ro", uri=True)
    except sqlite3.Error as exc:
        raise CorruptIndex(path, str(exc)) from exc
    conn.row_factory = sqlite3.Row
    try:
        meta = {row["key"]: row["value"] for row in conn.execute("SELECT key, value FROM meta")}
        _check_versions(path, meta, expected_generator_version)
        files = [row["path"] for row in conn.execute("SELECT path FROM files")]
        symbols = [_row_to_symbol(row) for row in conn.execute("SELECT * FROM symbols ORDER BY ord")]
        embeddings = [
            Embedding(row["symbol_id"], tuple(float(v) for v in json.loads(row["vector"])), row["generator_version"])
            for row in conn.execute("SELECT * FROM embeddings")
        ]
        edges = [
            CallEdge(
                caller_id=row["caller_id"],
                callee_name=row["callee_name"],
                file=row["file"],
                line=row["line"],
                resolved_callee_id=row["resolved_callee_id"],
            )
            for row in conn.execute("SELECT * FROM call_edges ORDER BY ord")
        ]
    except sqlite3.Error as exc:
        raise CorruptIndex(path, str(exc)) from exc
    except (KeyError, ValueError, TypeError) as exc:
        raise CorruptIndex(path, f"malformed record: {exc}") from exc
    finally:
        conn.close()

    return IndexSnapshot(
        symbols=symbols,
        call_edges=edges,
        embeddings=embeddings,
        files=files,
        generator_version=meta["generator_version"],
        schema_version=int(meta["schema_version"]),
        created_at=float(meta.get("created_at", "0") or 0),
    )


def _check_versions(path: Path, meta: Mapping[str, str], expected_generator_version: Optional[str]) -> None:
    if "schema_version" not in meta or "generator_version" not in meta:
        raise CorruptIndex(path, "missing version metadata")
    try:
        schema_version = int(meta["schema_version"])
    except ValueError as exc:
        raise CorruptIndex(path, f"bad schema_version {meta['schema_version']!r}") from exc
    if schema_version != SCHEMA_VERSION:
        raise StaleIndex(
            path,
            f"schema version {schema_version} != {SCHEMA_VERSION}",
            found=schema_version,
            expected=SCHEMA_VERSION,
        )
    found = meta["generator_version"]
    if expected_generator_version is not None and found != expected_generator_version:
        raise StaleIndex(
            path,
            f"embedding generator {found!r} != {expected_generator_version!r}",
            found=found,
            expected=expected_generator_version,
        )


def _row_to_symbol(row: Mapping[str, Any]) -> Symbol:
    params = tuple(Parameter(name=str(n), type=str(t)) for n, t in json.loads(row["params"]))
    return Symbol(
        id=row["id"],
        qualified_name=row["qualified_name"],
        kind=SymbolKind(row["kind"]),
        signature=Signature(
            params=params,
            return_type=row["return_type"],
            visibility=Visibility(row["visibility"]),
        ),
        file=row["file"],
        start_line=row["start_line"],
        end_line=row["end_line"],
        body_text=row["body_text"],
        language=row["language"],
    )


# ===================================================================
# IndexManager  (named indexes on disk)
# ===================================================================

class IndexManager:
    """Manage named baseline indexes under ``~/.prlens/indexes``."""

    DB_NAME = "index.db"

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        if base_dir is None:
            ensure_base_dirs()
        self.base_dir = Path(base_dir) if base_dir is not None else INDEX_DIR

    def list_indexes(self) -> List[str]:
        if not self.base_dir.exists():
            return []
        return sorted(p.name for p in self.base_dir.iterdir() if (p / self.DB_NAME).is_file())

    def index_path(self, name: str) -> Path:
        return self.base_dir / name / self.DB_NAME

    def exists(self, name: str) -> bool:
        return self.index_path(name).is_file()

    def save(self, name: str, snapshot: IndexSnapshot) -> Path:
        return save_snapshot(snapshot, self.index_path(name))

    def load(self, name: str, expected_generator_version: Optional[str] = None) -> IndexSnapshot:
        return load_snapshot(self.index_path(name), expected_generator_version)

    def delete(self, name: str) -> bool:
        directory = self.base_dir / name
        if not directory.exists():
            return False
        for child in sorted(directory.glob("**/*"), reverse=True):
            if child.is_file():
                child.unlink()
            elif child.is_dir():
                child.rmdir()
        directory.rmdir()
        return True
