"""raggy preview: show how a file would be chunked, without embedding."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from raggy.cli import context
from raggy.ingest import chunker_for_path
from raggy.ingest.files import is_pdf_path
from raggy.ingest.pdf import extract_pdf_file
from raggy.ingest.split import split_text

console = Console()


def preview_cmd(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="File to preview.")],
    chars: Annotated[
        bool,
        typer.Option("--chars", help="Use the fixed-size character splitter instead."),
    ] = False,
    limit: Annotated[
        int,
        typer.Option("--limit", help="Show at most this many chunks (0 = all)."),
    ] = 0,
) -> None:
    """Print the chunks a file would produce."""
    cfg = context.load_cli_config(ctx)
    try:
        if is_pdf_path(path):
            text = extract_pdf_file(path)
        else:
            text = path.read_bytes().decode("utf-8", errors="replace")
    except OSError as exc:
        console.print(f"[red]Error:[/] Cannot read '{escape(str(path))}': {exc.strerror or exc}")
        raise typer.Exit(1) from exc

    ch = cfg.chunking
    if chars:
        rows = [(None, w) for w in split_text(text, ch.chunk_chars, ch.chunk_overlap)]
    else:
        chunker = chunker_for_path(path, ch.tokenizer, ch.max_sentences, ch.overlap_sentences)
        rows = []
        for d in chunker.chunk(text):
            label = d.heading or (f"page {d.page}" if d.page is not None else None)
            rows.append((label, d.text))

    console.print(f"[bold]{escape(str(path))}[/]: {len(rows)} chunk(s)")
    shown = rows if limit <= 0 else rows[:limit]
    for i, (label, body) in enumerate(shown):
        tag = f" [dim]{escape(label)}[/]" if label else ""
        console.print(f"\n[cyan]#{i}[/]{tag}")
        console.print(escape(body))
