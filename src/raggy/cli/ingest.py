"""raggy ingest: ingest files, directories and globs into the store.

Source dispatch by extension:
  .pdf                      → byte-stream extractor + PdfChunker
  .md / .markdown           → MarkdownChunker
  other allow-listed text   → PlainTextChunker
  anything else             → counted as skipped non-text
  directory                 → expanded recursively
  glob (*, ?, **)           → expanded before validation
"""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from raggy.cli import context
from raggy.cli.errors import (
    err_ingest_busy,
    err_no_paths,
    err_no_valid_paths,
    err_store_io,
    warn_index_stale,
)
from raggy.service import BUSY, NO_VALID_PATHS, IngestRejected, RagService
from raggy.store.index import FlatIndex
from raggy.store.models import IngestReport

console = Console()

_POLL_SECONDS = 0.1


def ingest_cmd(
    ctx: typer.Context,
    source: Annotated[
        list[str] | None,
        typer.Option("--source", "-s", help="File, directory or glob to ingest (repeatable)."),
    ] = None,
) -> None:
    """Ingest one or more sources into the raggy store."""
    svc = context.make_service(ctx)
    report = run_with_progress(svc, lambda: svc.ingest(list(source or [])))
    print_report(report)
    if report.chunks and FlatIndex(svc.store.index_dir).available():
        console.print(warn_index_stale())


def run_with_progress(
    svc: RagService,
    job: Callable[[], IngestReport],
    no_paths_message: Callable[[], str] = err_no_paths,
) -> IngestReport:
    """Run *job* in a worker thread, rendering ``svc.progress`` until it ends.

    Maps IngestRejected and OSError to an actionable message and exit 1.
    """
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(job)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            transient=True,
            console=console,
        ) as prog:
            task = prog.add_task("Starting…", total=None)
            while not future.done():
                snap = svc.get_ingest_progress()
                total = snap.get("totalFiles") or None
                prog.update(
                    task,
                    description=snap.get("message") or "Working…",
                    total=total,
                    completed=snap.get("processedFiles", 0),
                )
                time.sleep(_POLL_SECONDS)

        try:
            return future.result()
        except IngestRejected as exc:
            console.print(_rejection_message(exc, no_paths_message))
            raise typer.Exit(1) from exc
        except OSError as exc:
            console.print(err_store_io(exc))
            raise typer.Exit(1) from exc


def _rejection_message(exc: IngestRejected, no_paths_message: Callable[[], str]) -> str:
    if exc.reason == BUSY:
        return err_ingest_busy()
    if exc.reason == NO_VALID_PATHS:
        return err_no_valid_paths(exc.invalid_paths)
    return no_paths_message()


def print_report(report: IngestReport) -> None:
    table = Table(title="Ingest report", show_header=False, expand=False)
    table.add_column("Field", style="bold")
    table.add_column("Value", justify="right")
    rows = [
        ("Documents added", report.added),
        ("Chunks added", report.chunks),
        ("Requested paths", report.requested_paths),
        ("Valid paths", report.valid_paths),
        ("Files seen", report.processed_files),
        ("Unchanged files", report.unchanged_files),
    ]
    for label, value in rows:
        table.add_row(label, str(value))
    console.print(table)

    notes = report.discrepancies()
    if notes:
        console.print("[yellow]Discrepancies:[/]")
        for note in notes:
            console.print(f"  • {note}")
    for path in report.invalid_paths:
        console.print(f"  [dim]✗ {path}[/]")
    if not notes:
        console.print("[green]✓[/] No discrepancies.")
