"""Domain models for the raggy store.

On disk every record uses camelCase keys; the dataclasses use snake_case
and convert at the JSON boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SCHEMA_VERSION = 1


@dataclass
class Document:
    id: str
    path: str
    added_at: str
    mtime_ms: float
    size: int
    content_hash: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "path": self.path,
            "addedAt": self.added_at,
            "mtimeMs": self.mtime_ms,
            "size": self.size,
            "contentHash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Document:
        return cls(
            id=d["id"],
            path=d.get("path", ""),
            added_at=d.get("addedAt", ""),
            mtime_ms=d.get("mtimeMs", 0),
            size=int(d.get("size", 0)),
            content_hash=d.get("contentHash", d["id"]),
        )


@dataclass
class ChunkRecord:
    doc_id: str
    path: str
    chunk_index: int
    text: str
    embedding: list[float]
    heading: str | None = None
    page: int | None = None

    @property
    def id(self) -> str:
        return f"{self.doc_id}:{self.chunk_index}"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "docId": self.doc_id,
            "path": self.path,
            "chunkIndex": self.chunk_index,
            "text": self.text,
            "embedding": self.embedding,
        }
        if self.heading is not None:
            d["heading"] = self.heading
        if self.page is not None:
            d["page"] = self.page
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ChunkRecord:
        return cls(
            doc_id=d["docId"],
            path=d.get("path", ""),
            chunk_index=int(d.get("chunkIndex", 0)),
            text=d.get("text", ""),
            embedding=d.get("embedding") or [],
            heading=d.get("heading"),
            page=d.get("page"),
        )


@dataclass
class StoreMeta:
    embedding_model: str | None = None
    dim: int | None = None
    normalised: bool | None = None
    created_at: str = ""
    schema_version: int = SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "schemaVersion": self.schema_version,
            "embeddingModel": self.embedding_model,
            "createdAt": self.created_at,
        }
        if self.dim is not None:
            d["dim"] = self.dim
        if self.normalised is not None:
            d["normalised"] = self.normalised
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> StoreMeta:
        dim = d.get("dim")
        return cls(
            embedding_model=d.get("embeddingModel"),
            dim=dim if isinstance(dim, int) and not isinstance(dim, bool) else None,
            normalised=d.get("normalised"),
            created_at=d.get("createdAt", ""),
            schema_version=int(d.get("schemaVersion", SCHEMA_VERSION)),
        )


@dataclass
class IngestReport:
    """Structured outcome of one ingest call.

    Partial success is visible through the skip counters rather than a bare
    success flag.
    """

    added: int = 0
    chunks: int = 0
    requested_paths: int = 0
    valid_paths: int = 0
    processed_files: int = 0
    unchanged_files: int = 0
    skipped_non_text_files: int = 0
    skipped_zero_chunk_files: int = 0
    skipped_unreadable_files: int = 0
    skipped_duplicate_chunks: int = 0
    skipped_empty_embedding_chunks: int = 0
    skipped_files_no_embeddings: int = 0
    duplicate_chunks_by_file: dict[str, int] = field(default_factory=dict)
    invalid_paths: list[str] = field(default_factory=list)

    def discrepancies(self) -> list[str]:
        """Human-readable notes on everything that was not ingested."""
        notes: list[str] = []
        if self.valid_paths < self.requested_paths:
            notes.append(f"{self.requested_paths - self.valid_paths} invalid/missing path(s)")
        if self.skipped_non_text_files:
            notes.append(f"skipped {self.skipped_non_text_files} non-text file(s)")
        if self.skipped_unreadable_files:
            notes.append(f"skipped {self.skipped_unreadable_files} unreadable file(s)")
        if self.skipped_zero_chunk_files:
            notes.append(f"skipped {self.skipped_zero_chunk_files} file(s) with 0 chunks")
        if self.unchanged_files:
            notes.append(f"{self.unchanged_files} file(s) already ingested (unchanged)")
        if self.skipped_duplicate_chunks:
            notes.append(f"skipped {self.skipped_duplicate_chunks} duplicate chunk(s)")
        if self.skipped_empty_embedding_chunks:
            notes.append(
                f"skipped {self.skipped_empty_embedding_chunks} chunk(s) with empty embeddings"
            )
        if self.skipped_files_no_embeddings:
            notes.append(
                f"{self.skipped_files_no_embeddings} file(s) produced no embeddable chunks"
            )
        return notes

    def to_dict(self) -> dict[str, Any]:
        return {
            "added": self.added,
            "chunks": self.chunks,
            "requestedPaths": self.requested_paths,
            "validPaths": self.valid_paths,
            "processedFiles": self.processed_files,
            "unchangedFiles": self.unchanged_files,
            "skippedNonTextFiles": self.skipped_non_text_files,
            "skippedZeroChunkFiles": self.skipped_zero_chunk_files,
            "skippedUnreadableFiles": self.skipped_unreadable_files,
            "skippedDuplicateChunks": self.skipped_duplicate_chunks,
            "skippedEmptyEmbeddingChunks": self.skipped_empty_embedding_chunks,
            "skippedFilesNoEmbeddings": self.skipped_files_no_embeddings,
            "duplicateChunksByFile": dict(self.duplicate_chunks_by_file) or None,
            "invalidPaths": list(self.invalid_paths) or None,
        }


@dataclass
class SearchHit:
    score: float
    path: str
    doc_id: str
    chunk_index: int
    text: str
    heading: str | None = None
    page: int | None = None

    @property
    def bucket(self) -> str:
        """Coarse neighbourhood key: document path plus chunk pair."""
        return f"{self.path}:{self.chunk_index // 2}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "path": self.path,
            "docId": self.doc_id,
            "chunkIndex": self.chunk_index,
            "text": self.text,
            "heading": self.heading,
            "page": self.page,
        }
