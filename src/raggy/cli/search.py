"""raggy search: query the store and print diversified hits."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from raggy.cli import context
from raggy.cli.errors import err_store_io

console = Console()

_SNIPPET_CHARS = 160


def search_cmd(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Free-text query.")],
    k: Annotated[
        int | None,
        typer.Option("-k", "--top-k", help="Number of results (default: search.top_k)."),
    ] = None,
    min_score: Annotated[
        float | None,
        typer.Option("--min-score", help="Minimum similarity (default: search.min_score)."),
    ] = None,
    mmr_lambda: Annotated[
        float | None,
        typer.Option("--mmr-lambda", help="Relevance/diversity weight in [0, 1]."),
    ] = None,
    mmr_pool: Annotated[
        int | None,
        typer.Option("--mmr-pool", help="Candidate pool size before diversification."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print results as JSON."),
    ] = False,
) -> None:
    """Search ingested chunks by semantic similarity."""
    svc = context.make_service(ctx)
    try:
        hits = svc.search(query, k=k, min_score=min_score, mmr_lambda=mmr_lambda, mmr_pool=mmr_pool)
    except OSError as exc:
        console.print(err_store_io(exc))
        raise typer.Exit(1) from exc

    if as_json:
        typer.echo(json.dumps({"results": [h.to_dict() for h in hits]}, ensure_ascii=False))
        return

    if not hits:
        console.print("[yellow]No results.[/] Try a lower --min-score or check: raggy status")
        return

    table = Table(title=f"Results for {escape(repr(query))}", expand=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Source")
    table.add_column("Text")
    for i, h in enumerate(hits, start=1):
        where = escape(h.path)
        if h.page is not None:
            where += f" p.{h.page}"
        if h.heading:
            where += f"\n[dim]{escape(h.heading)}[/]"
        snippet = h.text if len(h.text) <= _SNIPPET_CHARS else h.text[:_SNIPPET_CHARS] + "…"
        table.add_row(str(i), f"{h.score:.3f}", where, escape(snippet))
    console.print(table)
