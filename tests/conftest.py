"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
import re
from collections.abc import Sequence
from pathlib import Path

import pytest
import structlog

from raggy.ingest.embedder import BaseEmbedder
from raggy.store.repository import Store

_WORD_RE = re.compile(r"[a-z0-9]+")


class FakeEmbedder(BaseEmbedder):
    """Deterministic bag-of-words embedder.

    Each lowercase word is hashed into one of *dim* buckets, so texts that
    share words get similar vectors. Texts containing any of *fail_on*
    come back as ``[]``. *overrides* maps an exact text to a fixed vector.
    Every ``embed()`` call is recorded in ``calls``.
    """

    provider = "fake"

    def __init__(
        self,
        dim: int = 16,
        fail_on: Sequence[str] = (),
        overrides: dict[str, list[float]] | None = None,
        model: str = "fake-embed",
    ) -> None:
        self.dim = dim
        self.model = model
        self.fail_on = tuple(fail_on)
        self.overrides = dict(overrides or {})
        self.calls: list[list[str]] = []

    def vector_for(self, text: str) -> list[float]:
        if text in self.overrides:
            return list(self.overrides[text])
        if any(marker in text for marker in self.fail_on):
            return []
        vec = [0.0] * self.dim
        for word in _WORD_RE.findall(text.lower()):
            if word == "filename":
                continue
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dim
            vec[bucket] += 1.0
        if not any(vec):
            vec[0] = 1.0
        return vec

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self.vector_for(t) for t in texts]


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def make_embedder():
    """The FakeEmbedder class, for tests that need custom settings."""
    return FakeEmbedder


@pytest.fixture
def store(tmp_path: Path) -> Store:
    """Initialised store under tmp_path/data/embeddings."""
    s = Store(tmp_path / "data" / "embeddings", embedding_model="fake-embed")
    s.initialize()
    return s


@pytest.fixture
def write_file(tmp_path: Path):
    """Factory: write_file("docs/a.txt", "text") -> absolute Path."""

    def _write(name: str, content: str | bytes) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture(autouse=True)
def _reset_structlog():
    """CLI runs bind structlog to the runner's stderr; restore defaults after each test."""
    yield
    structlog.reset_defaults()
