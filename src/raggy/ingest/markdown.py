"""Markdown chunker: heading-aware, one block per non-blank line."""

from __future__ import annotations

import re

from raggy.ingest.base import BaseChunker, ChunkDraft

# ATX headings, H1 through H6.
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")


class MarkdownChunker(BaseChunker):
    """Split Markdown into blocks that carry their heading context.

    Strategy:
    - Walk lines, tracking a heading stack. A heading of depth *d* truncates
      the stack to *d - 1* entries and pushes its title.
    - Every other non-blank line (right-trimmed) becomes a block tagged with
      the deepest heading and a copy of the stack.
    - Each block is tokenized and windowed on its own, so windows never
      cross block boundaries.
    """

    def chunk(self, text: str) -> list[ChunkDraft]:
        if not text.strip():
            return []

        drafts: list[ChunkDraft] = []
        for heading, section_path, block in self._blocks(text):
            for win in self._windows(block):
                drafts.append(
                    ChunkDraft(text=win, heading=heading, section_path=list(section_path))
                )
        return drafts

    @staticmethod
    def _blocks(text: str) -> list[tuple[str | None, list[str], str]]:
        blocks: list[tuple[str | None, list[str], str]] = []
        stack: list[str] = []
        for raw in text.replace("\r\n", "\n").split("\n"):
            line = raw.rstrip()
            m = _HEADING_RE.match(line)
            if m:
                depth = len(m.group(1))
                stack = stack[: depth - 1] + [m.group(2).strip()]
                continue
            if not line:
                continue
            blocks.append((stack[-1] if stack else None, list(stack), line))
        return blocks
