"""raggy status command.

Shows store overview (documents, chunks, model, dimension, index) and the
chunk count of every registered document.
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from raggy.cli import context
from raggy.cli.errors import err_store_io
from raggy.service import RagService

console = Console()


def status_cmd(
    ctx: typer.Context,
    show_progress: Annotated[
        bool,
        typer.Option(
            "--progress",
            help="Also show ingest progress held by this process. A fresh CLI run reports idle.",
        ),
    ] = False,
) -> None:
    """Show store status: documents, chunks, embedding model and index."""
    svc = context.make_service(ctx)
    try:
        stats = svc.stats()
        docs = svc.list_registry()
        counts = svc.get_chunk_counts_by_document()
    except OSError as exc:
        console.print(err_store_io(exc))
        raise typer.Exit(1) from exc

    _show_store_panel(svc, stats)
    _show_documents_table(docs, counts)
    if show_progress:
        _show_progress_panel(svc)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_store_panel(svc: RagService, stats: dict) -> None:
    dim = stats["embeddingDim"]
    index = "[green]✓ available[/]" if stats["indexAvailable"] else "[dim]none[/]"
    lines = [
        f"Store:      {escape(str(svc.store.base_dir))}",
        f"Documents:  [bold]{stats['documents']}[/]  |  Chunks: [bold]{stats['chunks']:,}[/]",
        f"Embedding:  {stats['provider']} / {escape(stats['model'])}",
        f"Dimension:  {dim if dim is not None else '[dim]unset[/]'}",
        f"Flat index: {index}",
    ]
    if stats["documents"] and not stats["chunks"]:
        lines.append("[yellow]Registry has documents but the ledger is empty.[/]")
    elif stats["chunks"] and not stats["documents"]:
        lines.append("[yellow]Ledger has chunks but the registry is empty.[/]")
    console.print(Panel("\n".join(lines), title="[bold]Store[/]", expand=False))


def _show_documents_table(docs, counts: dict[str, int]) -> None:
    if not docs:
        console.print("[dim]No documents ingested yet.[/]  Run:  raggy ingest --source PATH")
        return
    table = Table(title="Documents", expand=False)
    table.add_column("Path")
    table.add_column("Chunks", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Added", style="dim")
    for d in docs:
        table.add_row(escape(d.path), str(counts.get(d.id, 0)), f"{d.size:,}", d.added_at[:19])
    console.print(table)


def _show_progress_panel(svc: RagService) -> None:
    snap = svc.get_ingest_progress()
    lines = [f"Status:  [bold]{snap.get('status')}[/]"]
    if snap.get("totalFiles"):
        lines.append(f"Files:   {snap.get('processedFiles', 0)}/{snap['totalFiles']}")
    if snap.get("message"):
        lines.append(f"Message: {escape(str(snap['message']))}")
    console.print(Panel("\n".join(lines), title="[bold]Ingest (this process)[/]", expand=False))
