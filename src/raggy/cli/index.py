"""raggy index / probe: flat-index build and backend connectivity check."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from raggy.cli import context
from raggy.cli.errors import err_backend_unreachable, err_store_io

console = Console()


def index_cmd(ctx: typer.Context) -> None:
    """Build the flat vector index from the chunk ledger."""
    svc = context.make_service(ctx)
    try:
        meta = svc.build_index()
    except OSError as exc:
        console.print(err_store_io(exc))
        raise typer.Exit(1) from exc
    console.print(
        f"[green]✓[/] Indexed [bold]{meta['count']:,}[/] chunk(s), dim {meta['dim']} "
        f"→ {escape(str(svc.store.index_dir))}"
    )


def probe_cmd(
    ctx: typer.Context,
    timeout: Annotated[
        float,
        typer.Option("--timeout", help="Seconds to wait for the primary endpoint."),
    ] = 2.0,
) -> None:
    """Check that the embedding backend is reachable."""
    svc = context.make_service(ctx)
    result = svc.probe(timeout=timeout)
    if not result.ok:
        console.print(err_backend_unreachable(result.base_url, result.error or f"HTTP {result.status}"))
        raise typer.Exit(1)

    models = f"{len(result.models)} model(s)" if result.models is not None else "models not reported"
    console.print(f"[green]✓[/] {escape(result.endpoint or result.base_url)}  status {result.status}  {models}")
    for note in result.discrepancies():
        console.print(f"  [yellow]•[/] {note}")
