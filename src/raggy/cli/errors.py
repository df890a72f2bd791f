"""raggy rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from raggy.cli.errors import err_ingest_busy
    console.print(err_ingest_busy())
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_ingest_busy() -> str:
    """Another ingest holds the guard."""
    return (
        "[red]Error:[/] An ingest operation is already running.\n"
        "  Wait for it to finish, then retry.  Check:  raggy status"
    )


def err_no_paths() -> str:
    """ingest called without any usable path."""
    return (
        "[red]Error:[/] No paths provided.\n"
        "  Run:  raggy ingest --source PATH [--source PATH ...]"
    )


def err_no_valid_paths(invalid: list[str]) -> str:
    """None of the requested paths exist."""
    listing = "\n".join(f"    {p}" for p in invalid) or "    (none)"
    return (
        "[red]Error:[/] None of the provided paths exist or are accessible.\n"
        f"  Missing:\n{listing}\n"
        "  Check the paths; network shares must be mounted locally first."
    )


def err_empty_registry() -> str:
    """reingest with nothing registered."""
    return (
        "[red]Error:[/] No documents in the registry to reingest.\n"
        "  Run:  raggy ingest --source PATH"
    )


def err_config(exc: Exception) -> str:
    """Config file or env var could not be used."""
    return (
        f"[red]Error:[/] Invalid configuration: {exc}\n"
        "  Fix raggy.yaml, ~/.raggy/config.yaml, or the environment variable named above."
    )


def err_store_io(exc: OSError) -> str:
    """Store directory or file could not be written."""
    where = f" '{exc.filename}'" if getattr(exc, "filename", None) else ""
    return (
        f"[red]Error:[/] Store I/O failed{where}: {exc.strerror or exc}\n"
        "  Check permissions and free space for the data directory (store.data_dir / RAGGY_DATA_DIR)."
    )


def err_backend_unreachable(base_url: str, detail: str | None = None) -> str:
    """Embedding backend did not answer the probe."""
    suffix = f" ({detail})" if detail else ""
    return (
        f"[red]Error:[/] Embedding backend not reachable at '{base_url}'{suffix}.\n"
        "  Start it:  ollama serve\n"
        "  Or point raggy elsewhere:  export EMBEDDINGS_BASE_URL=http://host:11434"
    )


def warn_index_stale() -> str:
    """The flat index predates the latest ingest."""
    return (
        "[yellow]Warning:[/] A flat index exists and will be used for search, "
        "but it does not include newly ingested chunks.\n"
        "  Run:  raggy index"
    )
