"""Tests for crash-safe writes."""

from __future__ import annotations

import os

import pytest

from raggy.store import atomic
from raggy.store.atomic import atomic_append_lines, atomic_write_bytes, atomic_write_text


def _leftovers(directory):
    return [p.name for p in directory.iterdir() if p.name.endswith(".tmp")]


def test_write_text_creates_parents(tmp_path):
    target = tmp_path / "a" / "b" / "file.json"
    atomic_write_text(target, "[]")
    assert target.read_text() == "[]"


def test_write_text_replaces_content(tmp_path):
    target = tmp_path / "file.txt"
    atomic_write_text(target, "old")
    atomic_write_text(target, "new")
    assert target.read_text() == "new"
    assert _leftovers(tmp_path) == []


def test_write_bytes(tmp_path):
    target = tmp_path / "v.bin"
    atomic_write_bytes(target, b"\x00\x01")
    assert target.read_bytes() == b"\x00\x01"


def test_append_lines_to_missing_file(tmp_path):
    target = tmp_path / "ledger.jsonl"
    atomic_append_lines(target, ["a", "b"])
    assert target.read_text() == "a\nb\n"


def test_append_lines_keeps_existing(tmp_path):
    target = tmp_path / "ledger.jsonl"
    target.write_text("first\n")
    atomic_append_lines(target, ["second"])
    assert target.read_text() == "first\nsecond\n"


def test_failed_replace_leaves_original_intact(tmp_path, monkeypatch):
    target = tmp_path / "registry.json"
    target.write_text("original")

    def boom(src, dst):
        raise OSError("disk gone")

    monkeypatch.setattr(atomic.os, "replace", boom)
    with pytest.raises(OSError, match="disk gone"):
        atomic_write_text(target, "replacement")

    assert target.read_text() == "original"
    assert _leftovers(tmp_path) == []


def test_failed_append_leaves_original_intact(tmp_path, monkeypatch):
    target = tmp_path / "chunks.jsonl"
    target.write_text("line1\n")

    def boom(src, dst):
        raise OSError("rename failed")

    monkeypatch.setattr(atomic.os, "replace", boom)
    with pytest.raises(OSError):
        atomic_append_lines(target, ["line2"])

    assert target.read_text() == "line1\n"
    assert _leftovers(tmp_path) == []


def test_interrupted_write_leaves_no_temp(tmp_path, monkeypatch):
    target = tmp_path / "meta.json"
    target.write_text("{}")
    real_fsync = os.fsync

    def interrupted(fd):
        real_fsync(fd)
        raise KeyboardInterrupt

    monkeypatch.setattr(atomic.os, "fsync", interrupted)
    with pytest.raises(KeyboardInterrupt):
        atomic_write_text(target, '{"dim": 3}')
    assert target.read_text() == "{}"
    assert _leftovers(tmp_path) == []
