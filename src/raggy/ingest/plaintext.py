"""Plain text chunker: sentence windows over the whole document."""

from __future__ import annotations

from raggy.ingest.base import BaseChunker, ChunkDraft


class PlainTextChunker(BaseChunker):
    """Tokenize the full text into sentences and window them.

    Default: 6 sentences per window, 2 sentences overlap.
    """

    def chunk(self, text: str) -> list[ChunkDraft]:
        if not text.strip():
            return []
        return [ChunkDraft(text=w) for w in self._windows(text)]
