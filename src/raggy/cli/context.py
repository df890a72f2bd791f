"""Shared CLI state: global options, config loading, service construction."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console

from raggy.cli.errors import err_config
from raggy.config import ConfigError, RaggyConfig, load_config
from raggy.service import RagService

console = Console()


@dataclass
class CliState:
    """Values from the global callback, stored on ``ctx.obj``."""

    project_dir: Path | None = None
    verbose: bool = False


def state_of(ctx: typer.Context) -> CliState:
    obj = ctx.find_root().obj
    return obj if isinstance(obj, CliState) else CliState()


def load_cli_config(ctx: typer.Context) -> RaggyConfig:
    """Load config for the current project dir; exit 1 on ConfigError."""
    try:
        return load_config(project_dir=state_of(ctx).project_dir)
    except ConfigError as exc:
        console.print(err_config(exc))
        raise typer.Exit(1) from exc


def make_service(ctx: typer.Context) -> RagService:
    """Build the RagService for a command invocation."""
    cfg = load_cli_config(ctx)
    return RagService(cfg, project_dir=state_of(ctx).project_dir)
