"""Tests for the ingestion pipeline."""

from __future__ import annotations

import math
import zlib

import pytest
from structlog.testing import capture_logs

from raggy.ingest import pipeline
from raggy.ingest.base import ChunkDraft
from raggy.ingest.pipeline import Ingestor, dedupe_drafts, embed_text_for
from raggy.store.progress import DONE, IngestProgress


def _ingest(store, embedder, paths, **kwargs):
    return Ingestor(store, embedder, **kwargs).run([str(p) for p in paths])


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def test_embed_text_for_prefixes_basename():
    assert embed_text_for("/x/y/notes.md", "Body.") == "filename: notes.md\nBody."


def test_dedupe_drafts_first_wins():
    drafts = [ChunkDraft("a"), ChunkDraft(" a "), ChunkDraft("b"), ChunkDraft("  ")]
    unique, dupes = dedupe_drafts(drafts)
    assert [d.text for d in unique] == ["a", "b"]
    assert dupes == 2


# ------------------------------------------------------------------
# Happy path
# ------------------------------------------------------------------

def test_ingest_directory(store, fake_embedder, write_file, tmp_path):
    write_file("docs/a.md", "# Title\nFirst line here.\nSecond line here.\n")
    write_file("docs/b.txt", "Plain text body. Another sentence.")
    report = _ingest(store, fake_embedder, [tmp_path / "docs"])

    assert report.added == 2
    assert report.chunks == 3
    assert report.requested_paths == 1
    assert report.valid_paths == 1
    assert report.processed_files == 2
    assert report.discrepancies() == []

    registry = store.list_registry()
    assert sorted(d.path.rsplit("/", 1)[-1] for d in registry) == ["a.md", "b.txt"]
    assert store.count_chunks() == 3

    meta = store.read_meta()
    assert meta.dim == fake_embedder.dim
    assert meta.normalised is True
    assert meta.embedding_model == "fake-embed"


def test_chunks_carry_heading_and_filename_prefix(store, fake_embedder, write_file):
    path = write_file("a.md", "# Setup\nInstall the thing.\n")
    _ingest(store, fake_embedder, [path])
    rec = next(store.iter_chunks())
    assert rec.heading == "Setup"
    assert rec.text == "Install the thing."
    assert rec.id == f"{rec.doc_id}:0"
    assert fake_embedder.calls == [["filename: a.md\nInstall the thing."]]


def test_stored_vectors_are_unit_length(store, fake_embedder, write_file):
    path = write_file("a.txt", "Words words words. More words here. And more.")
    _ingest(store, fake_embedder, [path])
    for rec in store.iter_chunks():
        assert math.sqrt(sum(x * x for x in rec.embedding)) == pytest.approx(1.0)


def test_pdf_file_is_extracted_and_paged(store, fake_embedder, write_file):
    content = zlib.compress(b"BT (Quarterly revenue grew.) Tj ET")
    pdf = (
        b"%PDF-1.4\n"
        + b"<< /Length %d /Filter /FlateDecode >>\nstream\n" % len(content)
        + content
        + b"\nendstream\n%%EOF\n"
    )
    path = write_file("report.pdf", pdf)
    report = _ingest(store, fake_embedder, [path])
    assert report.added == 1
    rec = next(store.iter_chunks())
    assert rec.text == "Quarterly revenue grew."
    assert rec.page == 1


def test_progress_finishes(store, fake_embedder, write_file):
    path = write_file("a.txt", "Hello there.")
    progress = IngestProgress()
    _ingest(store, fake_embedder, [path], progress=progress)
    snap = progress.snapshot()
    assert snap["status"] == DONE
    assert snap["processedFiles"] == snap["totalFiles"] == 1
    assert snap["message"] == "Added 1 doc(s), 1 chunk(s)."


# ------------------------------------------------------------------
# Identity and idempotence
# ------------------------------------------------------------------

def test_reingest_is_idempotent(store, fake_embedder, write_file, tmp_path):
    write_file("docs/a.md", "Line one.\nLine two.\n")
    write_file("docs/b.txt", "Body text.")
    first = _ingest(store, fake_embedder, [tmp_path / "docs"])
    ledger_before = store.chunks_path.read_text()

    second = _ingest(store, fake_embedder, [tmp_path / "docs"])
    assert first.added == 2
    assert second.added == 0
    assert second.chunks == 0
    assert second.unchanged_files == 2
    assert store.chunks_path.read_text() == ledger_before
    assert len(store.list_registry()) == 2


def test_identical_copies_share_identity(store, fake_embedder, write_file):
    a = write_file("one/a.txt", "Same content everywhere.")
    b = write_file("two/a.txt", "Same content everywhere.")
    report = _ingest(store, fake_embedder, [a, b])
    assert report.added == 1
    assert report.unchanged_files == 1
    registry = store.list_registry()
    assert len(registry) == 1
    assert registry[0].path == str(b)


def test_changed_file_replaces_registry_entry(store, fake_embedder, write_file):
    path = write_file("a.txt", "Original text.")
    _ingest(store, fake_embedder, [path])
    old_id = store.list_registry()[0].id

    path.write_text("Edited text.", encoding="utf-8")
    report = _ingest(store, fake_embedder, [path])
    registry = store.list_registry()
    assert report.added == 1
    assert len(registry) == 1
    assert registry[0].id != old_id
    # Old chunks stay in the ledger until the store is reset.
    assert {r.doc_id for r in store.iter_chunks()} == {old_id, registry[0].id}


# ------------------------------------------------------------------
# Skips
# ------------------------------------------------------------------

def test_invalid_paths_reported(store, fake_embedder, write_file, tmp_path):
    good = write_file("a.txt", "Hello.")
    missing = tmp_path / "missing.txt"
    report = _ingest(store, fake_embedder, [good, missing])
    assert report.requested_paths == 2
    assert report.valid_paths == 1
    assert report.invalid_paths == [str(missing)]
    assert "1 invalid/missing path(s)" in report.discrepancies()


def test_non_text_files_skipped(store, fake_embedder, write_file, tmp_path):
    write_file("docs/pic.png", b"\x89PNG\r\n")
    write_file("docs/a.txt", "Hello.")
    report = _ingest(store, fake_embedder, [tmp_path / "docs"])
    assert report.skipped_non_text_files == 1
    assert report.added == 1


def test_empty_file_has_zero_chunks(store, fake_embedder, write_file):
    path = write_file("empty.txt", "   \n")
    report = _ingest(store, fake_embedder, [path])
    assert report.skipped_zero_chunk_files == 1
    assert report.added == 0
    assert store.list_registry() == []
    assert fake_embedder.calls == []


def test_unreadable_file_skipped(store, fake_embedder, write_file, monkeypatch):
    bad = write_file("bad.txt", "Cannot read me.")
    good = write_file("good.txt", "Readable.")
    real = pipeline.content_hash_of_file

    def flaky(path):
        if str(path) == str(bad):
            raise PermissionError(13, "Permission denied", str(path))
        return real(path)

    monkeypatch.setattr(pipeline, "content_hash_of_file", flaky)
    with capture_logs() as logs:
        report = _ingest(store, fake_embedder, [bad, good])
    assert report.skipped_unreadable_files == 1
    assert report.added == 1
    assert any(e["event"] == "ingest_file_unreadable" for e in logs)


def test_duplicate_chunks_counted_per_file(store, fake_embedder, write_file):
    path = write_file("a.md", "Same line.\nSame line.\nOther line.\n")
    report = _ingest(store, fake_embedder, [path])
    assert report.skipped_duplicate_chunks == 1
    assert report.duplicate_chunks_by_file == {str(path): 1}
    assert report.chunks == 2


def test_failed_embeddings_leave_index_gaps(store, make_embedder, write_file):
    embedder = make_embedder(fail_on=("BROKEN",))
    path = write_file("a.md", "Alpha line.\nBROKEN line.\nGamma line.\n")
    report = _ingest(store, embedder, [path])
    assert report.skipped_empty_embedding_chunks == 1
    assert report.chunks == 2
    assert [r.chunk_index for r in store.iter_chunks()] == [0, 2]


def test_non_finite_embeddings_skipped(store, make_embedder, write_file):
    embedder = make_embedder(overrides={"filename: a.txt\nHello.": [math.nan, 1.0]})
    path = write_file("a.txt", "Hello.")
    report = _ingest(store, embedder, [path])
    assert report.skipped_empty_embedding_chunks == 1
    assert report.skipped_files_no_embeddings == 1


def test_file_without_any_embedding_not_registered(store, make_embedder, write_file):
    embedder = make_embedder(fail_on=("unembeddable",))
    bad = write_file("bad.txt", "All of this is unembeddable.")
    good = write_file("good.txt", "This is fine.")
    report = _ingest(store, embedder, [bad, good])
    assert report.skipped_files_no_embeddings == 1
    assert report.skipped_empty_embedding_chunks == 1
    assert all(r.path == str(good) for r in store.iter_chunks())
    assert [d.path for d in store.list_registry()] == [str(good)]

    # Not registered, so a retry embeds it again.
    retry = _ingest(store, make_embedder(), [bad])
    assert retry.added == 1


def test_dimension_mismatch_warns(store, make_embedder, write_file):
    _ingest(store, make_embedder(dim=16), [write_file("a.txt", "First doc.")])
    with capture_logs() as logs:
        _ingest(store, make_embedder(dim=8), [write_file("b.txt", "Second doc.")])
    mismatch = [e for e in logs if e["event"] == "embedding_dim_mismatch"]
    assert mismatch and mismatch[0]["expected"] == 16 and mismatch[0]["got"] == 8
    assert store.read_meta().dim == 16


def test_store_write_failure_propagates(store, fake_embedder, write_file, monkeypatch):
    path = write_file("a.txt", "Hello.")

    def boom(records):
        raise OSError("disk full")

    monkeypatch.setattr(store, "append_chunks", boom)
    with pytest.raises(OSError, match="disk full"):
        _ingest(store, fake_embedder, [path])
    assert store.list_registry() == []
