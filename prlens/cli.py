"""Typer-based CLI for PRLens baseline indexing and change analysis."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import toml
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config_manager import CONFIG_FILE, load_config
from .diff_mapper import DiffLineMapper, split_patch
from .embeddings import EMBEDDING_MODELS, get_embedder
from .errors import ConfigError, CorruptIndex, IndexNotFound, StaleIndex
from .orchestrator import STATUS_ADDED, STATUS_MODIFIED, STATUS_REMOVED, ChangedFile, ReviewAnalysis, ReviewAnalyzer
from .parser import Extractor, iter_source_files
from .storage import IndexManager, SymbolIndex

app = typer.Typer(
    help="PRLens: duplicate and breaking-change analysis for pull requests.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

EXIT_NOT_FOUND = 2
EXIT_STALE = 3
EXIT_CORRUPT = 4


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"PRLens v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    root = logging.getLogger("prlens")
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=Console(stderr=True), show_path=False))


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """PRLens: index a baseline, then analyze change sets against it."""
    _configure_logging(verbose)


def _load_config_or_exit():
    try:
        return load_config()
    except ConfigError as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(code=1)


@app.command("index")
def index_project(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the baseline source tree."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Index name (defaults to the directory name)."),
    embedding: Optional[str] = typer.Option(None, "--embedding", "-e", help="Embedding model key (overrides config)."),
):
    """Extract, embed and persist a baseline snapshot."""
    cfg = _load_config_or_exit()
    resolved = project_path.resolve()
    index_name = name or resolved.name.replace(" ", "_")

    if embedding is not None and embedding not in EMBEDDING_MODELS:
        raise typer.BadParameter(f"Unknown embedding model '{embedding}'. Available: {', '.join(EMBEDDING_MODELS)}")
    embedder = get_embedder(embedding or cfg.embeddings.model)
    index = SymbolIndex(
        extractor=Extractor(use_tree_sitter=cfg.extractor.use_tree_sitter, max_workers=cfg.extractor.max_workers),
        embedder=embedder,
        embedding_timeout=cfg.embeddings.timeout,
    )
    report = index.rebuild_index(iter_source_files(resolved))
    path = IndexManager().save(index_name, index.current())

    table = Table(title=f"Index '{index_name}'")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key, value in report.to_dict().items():
        if key == "errors":
            continue
        table.add_row(key.replace("_", " "), str(value))
    table.add_row("generator", embedder.version)
    console.print(table)
    for file_path, error in sorted(report.errors.items()):
        typer.echo(f"skipped {file_path}: {error}", err=True)
    typer.echo(f"Saved to {path}")


@app.command("list-indexes")
def list_indexes():
    """List persisted baseline indexes."""
    names = IndexManager().list_indexes()
    if not names:
        typer.echo("No indexes found. Run 'prlens index <path>' first.")
        raise typer.Exit(code=0)
    for index_name in names:
        typer.echo(index_name)


@app.command("delete-index")
def delete_index(index_name: str = typer.Argument(..., help="Baseline index to delete.")):
    """Delete a persisted baseline index."""
    if not IndexManager().delete(index_name):
        raise typer.BadParameter(f"Index '{index_name}' not found.")
    typer.echo(f"Deleted index '{index_name}'.")


@app.command("analyze")
def analyze(
    files: List[str] = typer.Argument(..., help="Changed files, relative to --root."),
    index_name: str = typer.Option(..., "--index", "-i", help="Baseline index name."),
    root: Path = typer.Option(Path("."), "--root", "-r", file_okay=False, help="Root of the changed tree."),
    patch: Optional[Path] = typer.Option(None, "--patch", "-p", exists=True, dir_okay=False, help="git diff of the change."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
):
    """Find duplicates and breaking changes in FILES against a baseline."""
    cfg = _load_config_or_exit()
    embedder = get_embedder(cfg.embeddings.model)
    manager = IndexManager()
    try:
        snapshot = manager.load(index_name, expected_generator_version=embedder.version)
    except IndexNotFound:
        typer.echo(f"Index '{index_name}' not found. Run 'prlens index <path> --name {index_name}'.", err=True)
        raise typer.Exit(code=EXIT_NOT_FOUND)
    except StaleIndex as exc:
        typer.echo(f"Index '{index_name}' is stale ({exc.reason}). Rebuild it with 'prlens index'.", err=True)
        raise typer.Exit(code=EXIT_STALE)
    except CorruptIndex as exc:
        typer.echo(f"Index '{index_name}' is corrupt ({exc.reason}). Delete and rebuild it.", err=True)
        raise typer.Exit(code=EXIT_CORRUPT)

    patches: Dict[str, str] = split_patch(patch.read_text(encoding="utf-8")) if patch else {}
    changed: List[ChangedFile] = []
    for rel in files:
        rel_path = Path(rel).as_posix()
        full = root / rel_path
        if full.is_file():
            status = STATUS_MODIFIED if snapshot.has_file(rel_path) else STATUS_ADDED
            content = full.read_text(encoding="utf-8", errors="replace")
            changed.append(ChangedFile(rel_path, content, patches.get(rel_path, ""), status))
        else:
            changed.append(ChangedFile(rel_path, status=STATUS_REMOVED))

    analyzer = ReviewAnalyzer(config=cfg, embedder=embedder)
    result = analyzer.analyze(changed, snapshot=snapshot)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return
    _print_analysis(result)


def _print_analysis(result: ReviewAnalysis) -> None:
    if result.duplicates:
        table = Table(title="Duplicates")
        table.add_column("Score", justify="right")
        table.add_column("Kind")
        table.add_column("Symbol A")
        table.add_column("Symbol B")
        table.add_column("Tag")
        for pair in result.duplicates:
            a, b = pair.symbol_a, pair.symbol_b
            note = " (text)" if pair.low_confidence else ""
            table.add_row(
                f"{pair.score:.3f}",
                pair.classification + note,
                f"{a.qualified_name} [{a.file}:{a.start_line}]",
                f"{b.qualified_name} [{b.file}:{b.start_line}]",
                pair.tag,
            )
        console.print(table)
    else:
        typer.echo("Duplicates: none found")

    if result.breaking_changes:
        table = Table(title="Breaking changes")
        table.add_column("Severity")
        table.add_column("Symbol")
        table.add_column("Flags")
        table.add_column("Call sites (in / out)", justify="right")
        for change in result.breaking_changes:
            old = change.baseline_symbol
            table.add_row(
                change.severity,
                f"{old.qualified_name} [{old.file}:{old.start_line}]",
                ", ".join(change.flags),
                f"{len(change.inside_change_set)} / {len(change.outside_change_set)}",
            )
        console.print(table)
    else:
        typer.echo("Breaking changes: none found")

    if result.skipped_files:
        typer.echo(f"Skipped {result.skipped_files} file(s) that could not be parsed.", err=True)


@app.command("map-line")
def map_line(
    patch: Path = typer.Argument(..., exists=True, dir_okay=False, help="Unified diff for one file."),
    line: int = typer.Argument(..., min=1, help="Line number in the new file."),
    nearest: bool = typer.Option(False, "--nearest", help="Fall back to the closest commentable line."),
):
    """Map a new-file line onto the diff; exit 1 when it is outside every hunk."""
    mapper = DiffLineMapper(patch.read_text(encoding="utf-8"))
    mapped = mapper.map(line)
    if mapped is None and nearest:
        mapped = mapper.nearest(line)
    if mapped is None:
        typer.echo(f"Line {line} is not part of any hunk.", err=True)
        raise typer.Exit(code=1)
    typer.echo(str(mapped))


@app.command("show-config")
def show_config():
    """Print the effective configuration."""
    cfg = _load_config_or_exit()
    typer.echo(f"# {CONFIG_FILE}")
    typer.echo(toml.dumps(cfg.to_dict()))


if __name__ == "__main__":
    app()
