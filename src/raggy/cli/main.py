"""raggy CLI entry point."""

from __future__ import annotations

import importlib.metadata
from pathlib import Path
from typing import Annotated

import typer

from raggy.cli.context import CliState
from raggy.cli.index import index_cmd, probe_cmd
from raggy.cli.ingest import ingest_cmd
from raggy.cli.preview import preview_cmd
from raggy.cli.reset import reingest_cmd, reset_cmd
from raggy.cli.search import search_cmd
from raggy.cli.status import status_cmd
from raggy.config import ConfigError, load_config
from raggy.log import configure_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("raggy")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"raggy {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="raggy",
    help=(
        "raggy: local retrieval backend.\n\n"
        "  raggy ingest  Chunk, embed and store documents.\n"
        "  raggy search  Query stored chunks by similarity."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log at DEBUG level to stderr."),
    ] = False,
    project_dir: Annotated[
        Path | None,
        typer.Option("--project-dir", help="Directory holding raggy.yaml and the data dir."),
    ] = None,
) -> None:
    """raggy: local retrieval backend."""
    ctx.obj = CliState(project_dir=project_dir, verbose=verbose)
    try:
        log_cfg = load_config(project_dir=project_dir).logging
        level, as_json = log_cfg.level, log_cfg.json
    except ConfigError:
        # Reported by the command itself.
        level, as_json = "WARNING", False
    configure_logging("DEBUG" if verbose else level, json=as_json)


app.command("ingest")(ingest_cmd)
app.command("search")(search_cmd)
app.command("status")(status_cmd)
app.command("reset")(reset_cmd)
app.command("reingest")(reingest_cmd)
app.command("index")(index_cmd)
app.command("probe")(probe_cmd)
app.command("preview")(preview_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed raggy version."""
    typer.echo(f"raggy {_installed_version()}")


if __name__ == "__main__":
    app()
