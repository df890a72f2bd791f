"""Tests for the fixed-size character splitter."""

from __future__ import annotations

from raggy.ingest.split import split_text


def test_short_text_is_one_window():
    assert split_text("hello", chunk_chars=800, overlap=120) == ["hello"]


def test_windows_overlap():
    assert split_text("abcdefghij", chunk_chars=4, overlap=1) == ["abcd", "defg", "ghij", "j"]


def test_overlap_larger_than_window_still_advances():
    assert split_text("abc", chunk_chars=2, overlap=10) == ["ab", "bc", "c"]


def test_crlf_normalised():
    assert split_text("a\r\nb", chunk_chars=10) == ["a\nb"]


def test_empty_text():
    assert split_text("") == []
