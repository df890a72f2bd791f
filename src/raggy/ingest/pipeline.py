"""Ingestion: files -> chunks -> embeddings -> store.

One ``Ingestor.run()`` call processes every requested path and then
persists in three writes: one atomic ledger append, one atomic registry
rewrite, one atomic meta rewrite. A crash mid-run leaves the store as it
was before the run.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

import structlog

from raggy.ingest import chunker_for_path
from raggy.ingest.base import ChunkDraft
from raggy.ingest.embedder import BaseEmbedder
from raggy.ingest.files import (
    content_hash_of_file,
    is_pdf_path,
    is_probably_text_path,
    walk_files,
)
from raggy.ingest.pdf import extract_pdf_file
from raggy.ingest.sentences import REGEX
from raggy.store import progress as prog
from raggy.store.models import ChunkRecord, Document, IngestReport, StoreMeta
from raggy.store.progress import IngestProgress
from raggy.store.repository import Store
from raggy.store.vectors import is_finite_vector, l2_normalize

logger = structlog.get_logger()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def embed_text_for(path: str, text: str) -> str:
    """Text sent to the embedder: the file's basename, then the chunk."""
    base = os.path.basename(path)
    return f"filename: {base}\n{text}" if base else text


def dedupe_drafts(drafts: list[ChunkDraft]) -> tuple[list[ChunkDraft], int]:
    """Drop drafts whose trimmed text was already seen; first occurrence wins.

    Returns:
        ``(unique_drafts, duplicate_count)``. Blank drafts count as duplicates.
    """
    seen: set[str] = set()
    unique: list[ChunkDraft] = []
    for d in drafts:
        key = d.text.strip()
        if key and key not in seen:
            seen.add(key)
            unique.append(d)
    return unique, len(drafts) - len(unique)


class Ingestor:
    """Run ingestion of a list of paths into a Store.

    Args:
        store: Target store; initialised on first use.
        embedder: Embedding provider.
        progress: Progress object updated as files are processed.
        tokenizer: Sentence tokenizer name (``regex`` or ``smart``).
        max_sentences: Sentences per window.
        overlap_sentences: Sentences shared by consecutive windows.
    """

    def __init__(
        self,
        store: Store,
        embedder: BaseEmbedder,
        progress: IngestProgress | None = None,
        tokenizer: str = REGEX,
        max_sentences: int = 6,
        overlap_sentences: int = 2,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.progress = progress or IngestProgress()
        self.tokenizer = tokenizer
        self.max_sentences = max_sentences
        self.overlap_sentences = overlap_sentences

    def run(self, paths: list[str]) -> IngestReport:
        """Ingest *paths* (files or directories) and return the report.

        Raises:
            OSError: If the store cannot be written. Nothing is partially
                committed in that case.
        """
        if not self.progress.is_running:
            self.progress.start("Enumerating files…")

        self.store.initialize()
        registry = self.store.list_registry()
        meta = self.store.read_meta()
        report = IngestReport(requested_paths=len(paths))
        staged: list[ChunkRecord] = []

        expanded: list[tuple[str, list[str]]] = []
        for p in paths:
            if not p or not os.path.exists(p):
                report.invalid_paths.append(p)
                continue
            expanded.append((p, walk_files(p)))
        report.valid_paths = len(expanded)
        self.progress.set_total(sum(len(files) for _, files in expanded))
        logger.info(
            "ingest_started",
            requested=report.requested_paths,
            valid=report.valid_paths,
            files=sum(len(files) for _, files in expanded),
        )

        for _, files in expanded:
            for file in files:
                report.processed_files += 1
                self._ingest_file(file, registry, meta, report, staged)
                self.progress.file_processed(report.processed_files)

        self.store.append_chunks(staged)
        self.store.write_registry(registry)
        if staged:
            meta.normalised = True
        if not meta.embedding_model:
            meta.embedding_model = self.embedder.model
        self.store.write_meta(meta)

        self.progress.finish(f"Added {report.added} doc(s), {report.chunks} chunk(s).")
        logger.info("ingest_completed", **report.to_dict())
        return report

    # ------------------------------------------------------------------
    # Per-file pipeline
    # ------------------------------------------------------------------

    def _ingest_file(
        self,
        file: str,
        registry: list[Document],
        meta: StoreMeta,
        report: IngestReport,
        staged: list[ChunkRecord],
    ) -> None:
        is_pdf = is_pdf_path(file)
        if not is_pdf and not is_probably_text_path(file):
            report.skipped_non_text_files += 1
            return

        self.progress.begin_file(file, f"Processing {os.path.basename(file)}")

        # ---- Identity ----
        try:
            doc_id, size = content_hash_of_file(file)
            mtime_ms = os.stat(file).st_mtime * 1000.0
        except OSError as exc:
            self._unreadable(file, exc, report)
            return

        registry[:] = [d for d in registry if not (d.path == file and d.id != doc_id)]
        existing = next((d for d in registry if d.id == doc_id), None)
        if existing is not None:
            existing.path = file
            existing.mtime_ms = mtime_ms
            existing.size = size
            existing.content_hash = doc_id
            report.unchanged_files += 1
            self.progress.set_file_status(prog.FILE_SKIPPED)
            return

        # ---- Chunk ----
        try:
            if is_pdf:
                content = extract_pdf_file(file)
            else:
                content = Path(file).read_bytes().decode("utf-8", errors="replace")
        except OSError as exc:
            self._unreadable(file, exc, report)
            return

        chunker = chunker_for_path(
            file, self.tokenizer, self.max_sentences, self.overlap_sentences
        )
        drafts, dupes = dedupe_drafts(chunker.chunk(content))
        if dupes:
            report.skipped_duplicate_chunks += dupes
            report.duplicate_chunks_by_file[file] = (
                report.duplicate_chunks_by_file.get(file, 0) + dupes
            )
        self.progress.file_chunks(len(drafts))
        if not drafts:
            report.skipped_zero_chunk_files += 1
            self.progress.set_file_status(prog.FILE_SKIPPED)
            return

        # ---- Embed ----
        vectors = self.embedder.embed([embed_text_for(file, d.text) for d in drafts])

        self.progress.set_file_status(prog.FILE_WRITING)
        records: list[ChunkRecord] = []
        for i, (draft, vec) in enumerate(zip(drafts, vectors)):
            if not vec or not is_finite_vector(vec):
                report.skipped_empty_embedding_chunks += 1
                continue
            unit = l2_normalize(vec)
            if meta.dim is None:
                meta.dim = len(unit)
            elif len(unit) != meta.dim:
                logger.warning(
                    "embedding_dim_mismatch", path=file, expected=meta.dim, got=len(unit)
                )
            records.append(
                ChunkRecord(
                    doc_id=doc_id,
                    path=file,
                    chunk_index=i,
                    text=draft.text,
                    embedding=unit,
                    heading=draft.heading,
                    page=draft.page,
                )
            )
            self.progress.chunk_written(i + 1)

        if not records:
            report.skipped_files_no_embeddings += 1
            self.progress.set_file_status(prog.FILE_SKIPPED)
            return

        registry.append(
            Document(
                id=doc_id,
                path=file,
                added_at=_now(),
                mtime_ms=mtime_ms,
                size=size,
                content_hash=doc_id,
            )
        )
        staged.extend(records)
        report.added += 1
        report.chunks += len(records)
        self.progress.set_file_status(prog.FILE_DONE)

    def _unreadable(self, file: str, exc: OSError, report: IngestReport) -> None:
        logger.warning("ingest_file_unreadable", path=file, error=str(exc))
        report.skipped_unreadable_files += 1
        self.progress.set_file_status(prog.FILE_SKIPPED)
