"""RagService: the operation surface over store, ingestor and retriever.

The service owns the ingest guard. Checking that no ingest is running and
moving progress to ``running`` happen under one lock, so a second
``ingest()``/``reingest()`` is rejected rather than queued.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any

import structlog

from raggy.config import RaggyConfig
from raggy.ingest.embedder import BaseEmbedder, OllamaEmbedder, ProbeResult
from raggy.ingest.files import expand_globs
from raggy.ingest.pipeline import Ingestor
from raggy.rag.retriever import QueryCache, Retriever
from raggy.store.index import FlatIndex, build_index
from raggy.store.models import Document, IngestReport, SearchHit
from raggy.store.progress import IngestProgress
from raggy.store.repository import Store

logger = structlog.get_logger()

BUSY = "busy"
NO_PATHS = "no_paths"
NO_VALID_PATHS = "no_valid_paths"


class IngestRejected(RuntimeError):
    """An ingest request was refused before the store was touched.

    Attributes:
        reason: ``busy``, ``no_paths`` or ``no_valid_paths``.
        invalid_paths: Paths that did not exist or globs that matched nothing.
    """

    def __init__(self, reason: str, message: str, invalid_paths: list[str] | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.invalid_paths = list(invalid_paths or [])


class RagService:
    """Facade wiring config into store, embedder, ingestor and retriever.

    Args:
        config: Loaded configuration.
        project_dir: Base for a relative ``store.data_dir``. Defaults to CWD.
        store: Override the store (tests).
        embedder: Override the embedding provider (tests).
        progress: Override the progress object (tests).
    """

    def __init__(
        self,
        config: RaggyConfig | None = None,
        project_dir: Path | None = None,
        *,
        store: Store | None = None,
        embedder: BaseEmbedder | None = None,
        progress: IngestProgress | None = None,
    ) -> None:
        self.config = config or RaggyConfig()
        emb = self.config.embedding
        self.embedder = embedder or OllamaEmbedder(
            base_url=emb.base_url,
            model=emb.model,
            concurrency=emb.concurrency,
            timeout=emb.timeout,
        )
        self.store = store or Store(
            self.config.embeddings_dir(project_dir), embedding_model=self.embedder.model
        )
        self.progress = progress or IngestProgress()
        self.retriever = Retriever(
            self.store,
            self.embedder,
            pool_base=self.config.search.mmr_pool_base,
            pool_min=self.config.search.mmr_pool_min,
            mmr_lambda=self.config.search.mmr_lambda,
            cache=QueryCache(),
        )
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Store lifecycle
    # ------------------------------------------------------------------

    def init_store(self) -> None:
        self.store.initialize()

    def reset_store(self) -> None:
        """Wipe the store.

        Raises:
            IngestRejected: If an ingest is running (reason ``busy``).
        """
        with self._lock:
            if self.progress.is_running:
                raise self._reject(
                    BUSY, "An ingest operation is already running. Please wait for it to finish."
                )
            self.store.reset()

    def list_registry(self) -> list[Document]:
        self.store.initialize()
        return self.store.list_registry()

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def _ingestor(self) -> Ingestor:
        ch = self.config.chunking
        return Ingestor(
            self.store,
            self.embedder,
            self.progress,
            tokenizer=ch.tokenizer,
            max_sentences=ch.max_sentences,
            overlap_sentences=ch.overlap_sentences,
        )

    def _reject(self, reason: str, message: str, invalid: list[str] | None = None) -> IngestRejected:
        logger.warning("ingest_rejected", reason=reason, invalid_paths=invalid or None)
        return IngestRejected(reason, message, invalid)

    def ingest(self, paths: list[str]) -> IngestReport:
        """Ingest *paths* (files, directories or globs).

        Raises:
            IngestRejected: If an ingest is already running, no paths were
                given, or none of them exist.
            OSError: If the store cannot be written; progress is marked error.
        """
        with self._lock:
            if self.progress.is_running:
                raise self._reject(
                    BUSY, "An ingest operation is already running. Please wait for it to finish."
                )

            expanded, unmatched = expand_globs(list(paths or []))
            if not expanded:
                expanded = list(paths or [])

            if not any(str(p).strip() for p in expanded):
                self.progress.fail("No paths provided")
                raise self._reject(NO_PATHS, "No paths provided.")

            invalid = list(unmatched)
            valid = 0
            for p in expanded:
                if os.path.exists(p):
                    valid += 1
                elif p not in invalid:
                    invalid.append(p)
            if valid == 0:
                self.progress.fail(
                    "None of the provided paths exist or are accessible."
                )
                raise self._reject(
                    NO_VALID_PATHS,
                    "None of the provided paths exist or are accessible.",
                    invalid,
                )

            self.progress.start("Enumerating files…")

        report = self._run(expanded)
        report.invalid_paths = list(unmatched) + [
            p for p in report.invalid_paths if p not in unmatched
        ]
        return report

    def reingest(self) -> IngestReport:
        """Reset the store, then ingest every path that was in the registry.

        Raises:
            IngestRejected: If an ingest is running or the registry is empty.
        """
        with self._lock:
            if self.progress.is_running:
                raise self._reject(
                    BUSY, "An ingest operation is already running. Please wait for it to finish."
                )
            self.store.initialize()
            paths = [d.path for d in self.store.list_registry()]
            if not paths:
                raise self._reject(NO_PATHS, "No documents in registry to reingest.")
            self.progress.start("Resetting…")

        try:
            self.store.reset()
        except Exception as exc:
            self.progress.fail(str(exc))
            raise
        return self._run(paths)

    def _run(self, paths: list[str]) -> IngestReport:
        try:
            return self._ingestor().run(paths)
        except Exception as exc:
            self.progress.fail(str(exc))
            raise

    def get_ingest_progress(self) -> dict[str, Any]:
        return self.progress.snapshot()

    # ------------------------------------------------------------------
    # Search + inspection
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        k: int | None = None,
        min_score: float | None = None,
        mmr_lambda: float | None = None,
        mmr_pool: int | None = None,
    ) -> list[SearchHit]:
        """Search with config defaults for any argument left as None."""
        self.store.initialize()
        s = self.config.search
        return self.retriever.search(
            query,
            k=s.top_k if k is None else k,
            min_score=s.min_score if min_score is None else min_score,
            mmr_lambda=mmr_lambda,
            mmr_pool=mmr_pool,
        )

    def get_chunk_counts_by_document(self) -> dict[str, int]:
        self.store.initialize()
        return self.store.chunk_counts_by_document()

    def get_stored_embedding_dimension(self) -> int | None:
        return self.store.stored_dimension()

    def stats(self) -> dict[str, Any]:
        """Document and chunk totals plus the embedding setup."""
        self.store.initialize()
        return {
            "documents": len(self.store.list_registry()),
            "chunks": self.store.count_chunks(),
            "provider": self.embedder.provider,
            "model": self.embedder.model,
            "embeddingDim": self.store.stored_dimension(),
            "indexAvailable": FlatIndex(self.store.index_dir).available(),
        }

    def build_index(self) -> dict[str, Any]:
        self.store.initialize()
        return build_index(self.store)

    def probe(self, timeout: float = 2.0) -> ProbeResult:
        """Check embedding backend connectivity."""
        probe = getattr(self.embedder, "probe", None)
        if probe is None:
            return ProbeResult(
                ok=False,
                status=0,
                base_url="",
                error=f"provider '{self.embedder.provider}' does not support probing",
            )
        return probe(timeout=timeout)
