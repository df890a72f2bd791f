"""raggy ingest pipeline: chunkers, PDF extraction, embedding provider."""

from __future__ import annotations

from pathlib import Path

from raggy.ingest.base import BaseChunker, ChunkDraft, window_sentences
from raggy.ingest.markdown import MarkdownChunker
from raggy.ingest.pdf import PdfChunker
from raggy.ingest.plaintext import PlainTextChunker
from raggy.ingest.sentences import REGEX

_MD_EXTS = {".md", ".markdown"}
_PDF_EXTS = {".pdf"}


def chunker_for_path(
    path: str | Path,
    tokenizer: str = REGEX,
    max_sent: int = 6,
    overlap_sent: int = 2,
) -> BaseChunker:
    """Pick a chunker by file extension: PDF, Markdown, or plain text."""
    ext = Path(path).suffix.lower()
    if ext in _PDF_EXTS:
        cls: type[BaseChunker] = PdfChunker
    elif ext in _MD_EXTS:
        cls = MarkdownChunker
    else:
        cls = PlainTextChunker
    return cls(tokenizer=tokenizer, max_sent=max_sent, overlap_sent=overlap_sent)


__all__ = [
    "BaseChunker",
    "ChunkDraft",
    "MarkdownChunker",
    "PdfChunker",
    "PlainTextChunker",
    "chunker_for_path",
    "window_sentences",
]
