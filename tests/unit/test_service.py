"""Tests for RagService: ingest guard, rejection reasons, search and inspection."""

from __future__ import annotations

import os
import threading
import time

import pytest

from raggy.config import RaggyConfig
from raggy.ingest.embedder import ProbeResult
from raggy.service import BUSY, NO_PATHS, NO_VALID_PATHS, IngestRejected, RagService
from raggy.store.progress import DONE, ERROR


@pytest.fixture
def svc(store, fake_embedder) -> RagService:
    cfg = RaggyConfig()
    cfg.search.min_score = 0.0
    return RagService(cfg, store=store, embedder=fake_embedder)


# ------------------------------------------------------------------
# Ingest guard and rejections
# ------------------------------------------------------------------

def test_ingest_rejected_while_running(svc, write_file):
    path = write_file("a.txt", "Hello.")
    assert svc.progress.try_start()
    with pytest.raises(IngestRejected) as info:
        svc.ingest([str(path)])
    assert info.value.reason == BUSY
    assert svc.store.list_registry() == []


def test_reingest_rejected_while_running(svc):
    svc.progress.start()
    with pytest.raises(IngestRejected) as info:
        svc.reingest()
    assert info.value.reason == BUSY


def test_concurrent_ingest_only_one_wins(svc, write_file):
    path = write_file("a.txt", "Hello.")
    gate = threading.Event()
    original = svc.embedder.embed

    def slow_embed(texts):
        gate.wait(2.0)
        return original(texts)

    svc.embedder.embed = slow_embed
    results: list[object] = []
    worker = threading.Thread(target=lambda: results.append(svc.ingest([str(path)])))
    worker.start()
    try:
        for _ in range(200):
            if svc.progress.is_running:
                break
            time.sleep(0.01)
        with pytest.raises(IngestRejected) as info:
            svc.ingest([str(path)])
        assert info.value.reason == BUSY
    finally:
        gate.set()
        worker.join()
    assert results[0].added == 1


@pytest.mark.parametrize("paths", [[], [""], ["   "]])
def test_no_paths(svc, paths):
    with pytest.raises(IngestRejected) as info:
        svc.ingest(paths)
    assert info.value.reason == NO_PATHS
    assert svc.progress.status == ERROR


def test_no_valid_paths(svc, tmp_path):
    missing = str(tmp_path / "missing.txt")
    with pytest.raises(IngestRejected) as info:
        svc.ingest([missing])
    assert info.value.reason == NO_VALID_PATHS
    assert info.value.invalid_paths == [missing]
    assert svc.progress.snapshot()["message"] == "None of the provided paths exist or are accessible."


def test_unmatched_glob_is_invalid_once(svc, tmp_path):
    pattern = str(tmp_path / "*.zzz")
    with pytest.raises(IngestRejected) as info:
        svc.ingest([pattern])
    assert info.value.invalid_paths == [pattern]


# ------------------------------------------------------------------
# Ingest
# ------------------------------------------------------------------

def test_ingest_expands_globs(svc, write_file, tmp_path):
    write_file("docs/a.md", "Alpha.")
    write_file("docs/b.md", "Beta.")
    write_file("docs/c.txt", "Gamma.")
    pattern = str(tmp_path / "docs" / "*.md")
    unmatched = str(tmp_path / "docs" / "*.rst")
    report = svc.ingest([pattern, unmatched])
    assert report.added == 2
    assert report.requested_paths == 2
    assert report.invalid_paths == [unmatched]
    assert svc.get_ingest_progress()["status"] == DONE


def test_ingest_mixed_valid_and_missing(svc, write_file, tmp_path):
    good = write_file("a.txt", "Hello.")
    missing = str(tmp_path / "nope.txt")
    report = svc.ingest([str(good), missing])
    assert report.added == 1
    assert report.invalid_paths == [missing]


def test_ingest_blank_entry_is_invalid_not_rejected(svc, write_file):
    good = write_file("a.txt", "Hello.")
    report = svc.ingest([str(good), ""])
    assert report.added == 1
    assert report.requested_paths == 2
    assert report.invalid_paths == [""]
    assert svc.progress.status == DONE


def test_ingest_directory_with_symlink_loop(svc, write_file, tmp_path):
    write_file("docs/a.txt", "Hello there.")
    os.symlink(tmp_path / "docs", tmp_path / "docs" / "loop", target_is_directory=True)
    report = svc.ingest([str(tmp_path / "docs")])
    assert report.added == 1
    assert report.processed_files == 1
    assert svc.progress.status == DONE


def test_ingest_failure_marks_progress_error(svc, write_file, monkeypatch):
    path = write_file("a.txt", "Hello.")

    def boom(records):
        raise OSError("disk full")

    monkeypatch.setattr(svc.store, "append_chunks", boom)
    with pytest.raises(OSError):
        svc.ingest([str(path)])
    snap = svc.get_ingest_progress()
    assert snap["status"] == ERROR
    assert snap["message"] == "disk full"


def test_reingest_empty_registry(svc):
    with pytest.raises(IngestRejected) as info:
        svc.reingest()
    assert info.value.reason == NO_PATHS
    assert str(info.value) == "No documents in registry to reingest."


def test_reingest_rebuilds_from_registry(svc, write_file):
    a = write_file("a.txt", "Alpha text.")
    b = write_file("b.md", "Beta line.\nGamma line.\n")
    svc.ingest([str(a), str(b)])
    before = svc.store.count_chunks()

    report = svc.reingest()
    assert report.added == 2
    assert svc.store.count_chunks() == before
    assert sorted(d.path for d in svc.list_registry()) == sorted([str(a), str(b)])


def test_reset_store(svc, write_file):
    svc.ingest([str(write_file("a.txt", "Hello."))])
    svc.reset_store()
    assert svc.list_registry() == []
    assert svc.get_stored_embedding_dimension() is None


def test_reset_store_rejected_while_running(svc, write_file):
    svc.ingest([str(write_file("a.txt", "Hello."))])
    svc.progress.start()
    with pytest.raises(IngestRejected) as info:
        svc.reset_store()
    assert info.value.reason == BUSY
    assert len(svc.store.list_registry()) == 1


# ------------------------------------------------------------------
# Search and inspection
# ------------------------------------------------------------------

def test_search_uses_config_defaults(svc, write_file):
    svc.ingest([str(write_file("notes.md", "Apples are red.\nBananas are yellow.\n"))])
    hits = svc.search("bananas yellow")
    assert hits
    assert hits[0].text == "Bananas are yellow."
    assert len(svc.search("bananas yellow", k=1)) == 1


def test_stats_and_counts(svc, write_file):
    svc.ingest([str(write_file("notes.md", "One line.\nTwo line.\n"))])
    stats = svc.stats()
    assert stats["documents"] == 1
    assert stats["chunks"] == 2
    assert stats["provider"] == "fake"
    assert stats["model"] == "fake-embed"
    assert stats["embeddingDim"] == 16
    assert stats["indexAvailable"] is False

    doc_id = svc.list_registry()[0].id
    assert svc.get_chunk_counts_by_document() == {doc_id: 2}


def test_build_index_then_stats(svc, write_file):
    svc.ingest([str(write_file("a.txt", "Hello there."))])
    meta = svc.build_index()
    assert meta["count"] == 1
    assert svc.stats()["indexAvailable"] is True


def test_probe_without_support(svc):
    result = svc.probe()
    assert isinstance(result, ProbeResult)
    assert not result.ok
    assert "does not support probing" in result.error


def test_default_store_location(tmp_path):
    cfg = RaggyConfig()
    svc = RagService(cfg, project_dir=tmp_path)
    assert svc.store.base_dir == tmp_path / "data" / "embeddings"
    assert svc.embedder.model == "nomic-embed-text"
    assert svc.store.embedding_model == "nomic-embed-text"
