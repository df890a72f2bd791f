"""raggy reset / reingest: store lifecycle management.

reset     removes the registry, ledger, metadata and flat index.
reingest  resets, then ingests every path the registry held.

Usage:
  raggy reset --yes
  raggy reingest --yes
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console

from raggy.cli import context
from raggy.cli.errors import err_empty_registry, err_ingest_busy, err_store_io
from raggy.cli.ingest import print_report, run_with_progress
from raggy.service import IngestRejected

console = Console()


def reset_cmd(
    ctx: typer.Context,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Delete all ingested data and start with an empty store."""
    svc = context.make_service(ctx)
    if not yes and not typer.confirm(
        f"Delete everything under {svc.store.base_dir}?", default=False
    ):
        console.print("[dim]Aborted.[/]")
        raise typer.Exit(0)

    try:
        svc.reset_store()
    except IngestRejected as exc:
        console.print(err_ingest_busy())
        raise typer.Exit(1) from exc
    except OSError as exc:
        console.print(err_store_io(exc))
        raise typer.Exit(1) from exc

    console.print("[green]✓[/] Store reset.")


def reingest_cmd(
    ctx: typer.Context,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Reset the store and ingest every registered path again."""
    svc = context.make_service(ctx)
    if not yes and not typer.confirm(
        "Reset the store and re-ingest all registered documents?", default=False
    ):
        console.print("[dim]Aborted.[/]")
        raise typer.Exit(0)

    report = run_with_progress(svc, svc.reingest, no_paths_message=err_empty_registry)
    print_report(report)
