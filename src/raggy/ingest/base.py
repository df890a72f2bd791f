"""Base chunker interface and the sentence windowing shared by all chunkers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from raggy.ingest.sentences import REGEX, split_sentences


@dataclass
class ChunkDraft:
    """A chunk before embedding: text plus optional location context."""

    text: str
    heading: str | None = None
    section_path: list[str] = field(default_factory=list)
    page: int | None = None


def window_sentences(sents: list[str], max_sent: int = 6, overlap_sent: int = 2) -> list[str]:
    """Group *sents* into overlapping windows.

    Windows start every ``max(1, max_sent - overlap_sent)`` sentences and
    join up to *max_sent* sentences with a single space. Blank windows are
    dropped. With 10 sentences and the defaults, windows start at 0, 4, 8.
    """
    step = max(1, max_sent - overlap_sent)
    out: list[str] = []
    for i in range(0, len(sents), step):
        win = " ".join(sents[i : i + max_sent])
        if win.strip():
            out.append(win)
    return out


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``chunk()`` and use ``_windows()`` to tokenize and
    window a span of text.
    """

    def __init__(self, tokenizer: str = REGEX, max_sent: int = 6, overlap_sent: int = 2) -> None:
        if max_sent < 1:
            raise ValueError("max_sent must be >= 1")
        if overlap_sent < 0:
            raise ValueError("overlap_sent must be >= 0")
        self.tokenizer = tokenizer
        self.max_sent = max_sent
        self.overlap_sent = overlap_sent

    @abstractmethod
    def chunk(self, text: str) -> list[ChunkDraft]:
        """Split *text* into ordered ChunkDrafts."""

    def _windows(self, text: str) -> list[str]:
        sents = split_sentences(text, self.tokenizer)
        return window_sentences(sents, self.max_sent, self.overlap_sent)
