"""Fixed-size character splitter.

Not used by ingestion, which windows sentences. Exposed for previewing how
a document would split by characters (``raggy preview --chars``).
"""

from __future__ import annotations


def split_text(text: str, chunk_chars: int = 800, overlap: int = 120) -> list[str]:
    """Split *text* into windows of *chunk_chars* characters.

    Windows advance by ``max(1, chunk_chars - overlap)``; empty windows are
    dropped.
    """
    clean = text.replace("\r\n", "\n")
    step = max(1, chunk_chars - overlap)
    out: list[str] = []
    for i in range(0, len(clean), step):
        window = clean[i : i + chunk_chars]
        if window:
            out.append(window)
    return out
