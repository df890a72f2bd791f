"""Tests for the flat vector index."""

from __future__ import annotations

import json
import math
import random

import numpy as np
import pytest

from raggy.store.index import (
    IDS_FILE,
    META_FILE,
    VECTORS_FILE,
    FlatIndex,
    IndexCorruptError,
    build_index,
    try_load_index,
)
from raggy.store.models import ChunkRecord
from raggy.store.vectors import l2_normalize


def _rec(doc: str, idx: int, vec: list[float], text: str = "") -> ChunkRecord:
    return ChunkRecord(
        doc_id=doc, path=f"/{doc}.md", chunk_index=idx, text=text or f"{doc}-{idx}",
        embedding=vec,
    )


@pytest.fixture
def populated(store):
    store.append_chunks([
        _rec("a", 0, [1.0, 0.0, 0.0]),
        _rec("a", 1, [0.0, 1.0, 0.0]),
        _rec("b", 0, [0.0, 0.0, 2.0]),
    ])
    return store


def test_try_load_missing_index_returns_none(store):
    assert try_load_index(store.index_dir) is None


def test_build_writes_all_artifacts(populated):
    meta = build_index(populated)
    assert meta["count"] == 3
    assert meta["dim"] == 3
    assert meta["model"] == "fake-embed"
    idx = FlatIndex(populated.index_dir)
    assert idx.available()
    on_disk = json.loads((populated.index_dir / META_FILE).read_text())
    assert on_disk["count"] == 3
    assert (populated.index_dir / VECTORS_FILE).stat().st_size == 3 * 3 * 4


def test_query_ranks_by_dot_product(populated):
    build_index(populated)
    idx = try_load_index(populated.index_dir)
    hits = idx.query([0.0, 0.1, 1.0], k=2)
    ids = [idx.ids[row] for row, _ in hits]
    assert ids == ["b:0", "a:1"]
    top = idx.record_for_row(hits[0][0])
    assert top["path"] == "/b.md"
    assert "embedding" not in top
    # rows are normalised at build time
    assert hits[0][1] == pytest.approx(1.0 / (0.1**2 + 1.0) ** 0.5, rel=1e-5)


def test_build_skips_mismatched_dimensions(store):
    store.append_chunks([
        _rec("a", 0, [1.0, 0.0]),
        _rec("a", 1, [1.0, 0.0, 0.0]),
        _rec("a", 2, []),
        _rec("a", 3, [0.0, 1.0]),
    ])
    meta = build_index(store)
    assert meta["count"] == 2
    idx = try_load_index(store.index_dir)
    assert idx.ids == ["a:0", "a:3"]


def test_build_empty_ledger(store):
    meta = build_index(store)
    assert meta["count"] == 0
    idx = try_load_index(store.index_dir)
    assert idx.query([1.0], k=3) == []


def test_truncated_vectors_detected(populated):
    build_index(populated)
    vec_path = populated.index_dir / VECTORS_FILE
    vec_path.write_bytes(vec_path.read_bytes()[:-4])
    with pytest.raises(IndexCorruptError):
        FlatIndex(populated.index_dir).load()


def test_id_count_mismatch_detected(populated):
    build_index(populated)
    (populated.index_dir / IDS_FILE).write_text("a:0\n")
    with pytest.raises(IndexCorruptError):
        FlatIndex(populated.index_dir).load()


def test_query_dim_mismatch_raises(populated):
    build_index(populated)
    idx = try_load_index(populated.index_dir)
    with pytest.raises(IndexCorruptError):
        idx.query([1.0, 0.0], k=1)


def test_missing_meta_means_unavailable(populated):
    build_index(populated)
    (populated.index_dir / META_FILE).unlink()
    assert try_load_index(populated.index_dir) is None


def test_record_for_row_out_of_range(populated):
    build_index(populated)
    idx = try_load_index(populated.index_dir)
    assert idx.record_for_row(-1) is None
    assert idx.record_for_row(99) is None


@pytest.mark.parametrize("k", [1, 5, 50])
def test_query_top_k_matches_full_sort_over_random_unit_vectors(store, k):
    rng = random.Random(99)
    dim = 12
    vectors = []
    for _ in range(1000):
        v = [rng.gauss(0.0, 1.0) for _ in range(dim)]
        norm = math.sqrt(sum(x * x for x in v))
        vectors.append([x / norm for x in v])
    store.append_chunks([_rec("r", i, v) for i, v in enumerate(vectors)])
    build_index(store)
    idx = try_load_index(store.index_dir)

    q = [rng.gauss(0.0, 1.0) for _ in range(dim)]
    qn = np.asarray(l2_normalize(q), dtype=np.float32)
    matrix = np.asarray([l2_normalize(v) for v in vectors], dtype=np.float32)
    scores = (matrix @ qn).tolist()
    expected = sorted(range(len(scores)), key=lambda i: scores[i], reverse=True)[:k]

    hits = idx.query(q, k)
    assert [idx.ids[row] for row, _ in hits] == [f"r:{i}" for i in expected]
    assert [s for _, s in hits] == pytest.approx([scores[i] for i in expected], abs=1e-5)
