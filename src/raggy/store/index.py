"""Precomputed flat vector index.

An index directory holds four artifacts; all must exist for the index to
be used:

    meta.json       {"count", "dim", "model", "builtAt"}
    vectors.f32     little-endian float32, row-major, count x dim
    ids.txt         one chunk id per line, row order
    records.jsonl   compact records keyed by id (no embedding)

The index is an immutable snapshot of the ledger at build time. Rows are
unit-normalised, so the score of a row is its dot product with the
normalised query.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import numpy as np
import structlog

from raggy.store.atomic import atomic_write_bytes, atomic_write_text
from raggy.store.repository import Store
from raggy.store.vectors import l2_normalize, select_top_k

logger = structlog.get_logger()

META_FILE = "meta.json"
VECTORS_FILE = "vectors.f32"
IDS_FILE = "ids.txt"
RECORDS_FILE = "records.jsonl"

_ARTIFACTS = (META_FILE, VECTORS_FILE, IDS_FILE, RECORDS_FILE)


class IndexCorruptError(RuntimeError):
    """Raised when index artifacts are inconsistent with each other."""


class FlatIndex:
    """Read side of the flat index."""

    def __init__(self, index_dir: Path | str) -> None:
        self.index_dir = Path(index_dir)
        self.meta: dict[str, Any] | None = None
        self.vectors: np.ndarray | None = None
        self.ids: list[str] = []
        self.records: dict[str, dict[str, Any]] = {}

    def available(self) -> bool:
        return all((self.index_dir / name).is_file() for name in _ARTIFACTS)

    @property
    def dim(self) -> int:
        return int(self.meta.get("dim", 0)) if self.meta else 0

    @property
    def count(self) -> int:
        return int(self.meta.get("count", 0)) if self.meta else 0

    def load(self) -> FlatIndex:
        """Read all artifacts into memory and check their shapes agree.

        Raises:
            IndexCorruptError: If the vector buffer or id list disagrees with meta.
            OSError / ValueError: If an artifact is missing or unparseable.
        """
        meta = json.loads((self.index_dir / META_FILE).read_text(encoding="utf-8"))
        count = int(meta.get("count", 0))
        dim = int(meta.get("dim", 0))

        flat = np.fromfile(self.index_dir / VECTORS_FILE, dtype="<f4")
        if dim <= 0 and count > 0:
            raise IndexCorruptError(f"index meta has invalid dim {dim}")
        if flat.size != count * dim:
            raise IndexCorruptError(
                f"vectors.f32 holds {flat.size} floats, expected {count} x {dim}"
            )
        vectors = flat.reshape((count, dim)) if count else np.zeros((0, max(dim, 0)), "<f4")

        ids = [
            line
            for line in (self.index_dir / IDS_FILE).read_text(encoding="utf-8").split("\n")
            if line
        ]
        if len(ids) != count:
            raise IndexCorruptError(f"ids.txt holds {len(ids)} ids, expected {count}")

        records: dict[str, dict[str, Any]] = {}
        with (self.index_dir / RECORDS_FILE).open("r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line:
                    continue
                try:
                    rec = json.loads(line)
                except ValueError:
                    continue
                if isinstance(rec, dict) and rec.get("id"):
                    records[rec["id"]] = rec

        self.meta = meta
        self.vectors = vectors
        self.ids = ids
        self.records = records
        return self

    def query(self, q: list[float], k: int) -> list[tuple[int, float]]:
        """Return the top-*k* ``(row, score)`` pairs for query vector *q*."""
        if self.vectors is None or k <= 0 or self.count == 0:
            return []
        qn = np.asarray(l2_normalize(q), dtype=np.float32)
        if qn.shape[0] != self.dim:
            raise IndexCorruptError(f"query dim {qn.shape[0]} != index dim {self.dim}")
        scores = self.vectors @ qn
        return select_top_k(scores.tolist(), k)

    def record_for_row(self, row: int) -> dict[str, Any] | None:
        if row < 0 or row >= len(self.ids):
            return None
        return self.records.get(self.ids[row])


def try_load_index(index_dir: Path | str) -> FlatIndex | None:
    """Load the index at *index_dir*, or return None if it is not there."""
    idx = FlatIndex(index_dir)
    if not idx.available():
        return None
    return idx.load()


# ------------------------------------------------------------------
# Builder
# ------------------------------------------------------------------


def build_index(store: Store) -> dict[str, Any]:
    """Snapshot the store's ledger into ``store.index_dir``.

    Records whose embedding length differs from the first record's are left
    out. ``meta.json`` is written last so a partial build is never seen as
    available.

    Returns:
        The index meta that was written.
    """
    index_dir = store.index_dir
    index_dir.mkdir(parents=True, exist_ok=True)
    meta_path = index_dir / META_FILE
    if meta_path.exists():
        meta_path.unlink()

    rows: list[list[float]] = []
    ids: list[str] = []
    compact: list[str] = []
    dim = 0
    skipped = 0
    for rec in store.iter_chunks():
        if not rec.embedding:
            skipped += 1
            continue
        if not dim:
            dim = len(rec.embedding)
        elif len(rec.embedding) != dim:
            skipped += 1
            continue
        rows.append(l2_normalize(rec.embedding))
        ids.append(rec.id)
        compact.append(
            json.dumps(
                {
                    "id": rec.id,
                    "docId": rec.doc_id,
                    "path": rec.path,
                    "chunkIndex": rec.chunk_index,
                    "text": rec.text,
                    "heading": rec.heading,
                    "page": rec.page,
                },
                ensure_ascii=False,
            )
        )

    matrix = np.asarray(rows, dtype="<f4").reshape((len(rows), dim))
    atomic_write_bytes(index_dir / VECTORS_FILE, matrix.tobytes(order="C"))
    atomic_write_text(index_dir / IDS_FILE, "".join(f"{i}\n" for i in ids))
    atomic_write_text(index_dir / RECORDS_FILE, "".join(f"{c}\n" for c in compact))

    meta = {
        "count": len(ids),
        "dim": dim,
        "model": store.read_meta().embedding_model,
        "builtAt": datetime.now(timezone.utc).isoformat(),
    }
    atomic_write_text(meta_path, json.dumps(meta, indent=2))
    logger.info("index_built", count=len(ids), dim=dim, skipped=skipped)
    return meta
