"""File-backed store: document registry, chunk ledger, store metadata.

Layout under ``base_dir`` (normally ``<data_dir>/embeddings``)::

    registry.json   JSON array of Document records
    chunks.jsonl    one ChunkRecord per line, append-only
    meta.json       StoreMeta
    index/          optional flat index (see raggy.store.index)

Registry, ledger and meta are only ever replaced through
``raggy.store.atomic``. The store assumes a single writer per process.
"""

from __future__ import annotations

import json
import shutil
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from pathlib import Path

import structlog

from raggy.store.atomic import atomic_append_lines, atomic_write_text
from raggy.store.models import ChunkRecord, Document, StoreMeta

logger = structlog.get_logger()

REGISTRY_NAME = "registry.json"
CHUNKS_NAME = "chunks.jsonl"
META_NAME = "meta.json"
INDEX_DIR_NAME = "index"


class Store:
    """Data access layer for the registry, ledger and metadata files."""

    def __init__(self, base_dir: Path | str, embedding_model: str | None = None) -> None:
        """Bind the store to *base_dir*. Nothing is touched until initialize().

        Args:
            base_dir: Directory holding the store artifacts.
            embedding_model: Model identifier recorded in fresh metadata.
        """
        self.base_dir = Path(base_dir)
        self.embedding_model = embedding_model

    @property
    def registry_path(self) -> Path:
        return self.base_dir / REGISTRY_NAME

    @property
    def chunks_path(self) -> Path:
        return self.base_dir / CHUNKS_NAME

    @property
    def meta_path(self) -> Path:
        return self.base_dir / META_NAME

    @property
    def index_dir(self) -> Path:
        return self.base_dir / INDEX_DIR_NAME

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Create the directory and any missing artifact; never overwrite."""
        self.base_dir.mkdir(parents=True, exist_ok=True)
        if not self.registry_path.exists():
            atomic_write_text(self.registry_path, "[]")
        if not self.chunks_path.exists():
            atomic_write_text(self.chunks_path, "")
        if not self.meta_path.exists():
            self.write_meta(self._fresh_meta())

    def reset(self) -> None:
        """Delete every artifact (index included) and start empty."""
        if self.base_dir.exists():
            shutil.rmtree(self.base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        atomic_write_text(self.registry_path, "[]")
        atomic_write_text(self.chunks_path, "")
        self.write_meta(self._fresh_meta())

    def _fresh_meta(self) -> StoreMeta:
        return StoreMeta(
            embedding_model=self.embedding_model,
            created_at=datetime.now(timezone.utc).isoformat(),
        )

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def list_registry(self) -> list[Document]:
        """Return all registered documents in insertion order."""
        if not self.registry_path.exists():
            return []
        raw = json.loads(self.registry_path.read_text(encoding="utf-8") or "[]")
        return [Document.from_dict(d) for d in raw]

    def write_registry(self, documents: Iterable[Document]) -> None:
        payload = [d.to_dict() for d in documents]
        atomic_write_text(self.registry_path, json.dumps(payload, indent=2))

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def read_meta(self) -> StoreMeta:
        """Return stored metadata; defaults if the file is missing or unreadable."""
        try:
            return StoreMeta.from_dict(json.loads(self.meta_path.read_text(encoding="utf-8")))
        except (OSError, ValueError):
            return StoreMeta(created_at=datetime.now(timezone.utc).isoformat())

    def write_meta(self, meta: StoreMeta) -> None:
        atomic_write_text(self.meta_path, json.dumps(meta.to_dict(), indent=2))

    def stored_dimension(self) -> int | None:
        return self.read_meta().dim

    # ------------------------------------------------------------------
    # Chunk ledger
    # ------------------------------------------------------------------

    def append_chunks(self, records: Iterable[ChunkRecord]) -> int:
        """Append *records* to the ledger in one atomic rewrite.

        Returns:
            Number of records written. Zero records leaves the ledger untouched.
        """
        lines = [json.dumps(r.to_dict(), ensure_ascii=False) for r in records]
        if lines:
            atomic_append_lines(self.chunks_path, lines)
        return len(lines)

    def iter_chunks(self) -> Iterator[ChunkRecord]:
        """Stream ledger records line by line; malformed lines are skipped."""
        if not self.chunks_path.exists():
            return
        with self.chunks_path.open("r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield ChunkRecord.from_dict(json.loads(line))
                except (ValueError, KeyError, TypeError) as exc:
                    logger.debug("ledger_line_invalid", line=lineno, error=str(exc))

    def count_chunks(self) -> int:
        if not self.chunks_path.exists():
            return 0
        with self.chunks_path.open("r", encoding="utf-8") as fh:
            return sum(1 for line in fh if line.strip())

    def chunk_counts_by_document(self) -> dict[str, int]:
        """Return ``{doc_id: chunk_count}`` by scanning the ledger."""
        counts: dict[str, int] = {}
        for rec in self.iter_chunks():
            counts[rec.doc_id] = counts.get(rec.doc_id, 0) + 1
        return counts
