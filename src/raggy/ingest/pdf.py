"""PDF text extraction straight from the byte stream, and the PDF chunker.

This is not a PDF parser. It scans for ``stream``/``endstream`` pairs,
inflates FlateDecode payloads, and collects the string operands of every
``BT ... ET`` text object. Fonts, encodings, cross-reference tables and
object streams are ignored, so extraction is best-effort.
"""

from __future__ import annotations

import re
import zlib
from pathlib import Path

import structlog

from raggy.ingest.base import BaseChunker, ChunkDraft

logger = structlog.get_logger()

# Inflated size ceiling per stream.
MAX_PDF_STREAM_SIZE = 10 * 1024 * 1024

_FLATE_RE = re.compile(r"/Filter\s*/FlateDecode")
_TEXT_OBJECT_RE = re.compile(r"BT(.*?)ET", re.DOTALL)
_LITERAL_RE = re.compile(r"\((?:\\.|[^\\])*?\)", re.DOTALL)
_HEX_RE = re.compile(r"<([0-9A-Fa-f\s]+)>")
_ESCAPE_RE = re.compile(r"\\([nrtbf\\()])")
_NON_HEX_RE = re.compile(r"[^0-9a-fA-F]")

_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "b": "\b", "f": "\f"}


def _decode_literal(lit: str) -> str:
    s = lit[1:-1] if lit.startswith("(") and lit.endswith(")") else lit
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), s)


def _decode_hex(hex_text: str) -> str:
    clean = _NON_HEX_RE.sub("", hex_text)
    if len(clean) % 2:
        clean += "0"
    return bytes.fromhex(clean).decode("utf-8", errors="replace")


def _inflate(data: bytes, limit: int = MAX_PDF_STREAM_SIZE) -> bytes | None:
    """Inflate *data*; None if it is corrupt or would exceed *limit* bytes."""
    d = zlib.decompressobj()
    try:
        out = d.decompress(data, limit + 1)
    except zlib.error as exc:
        logger.debug("pdf_stream_skipped", reason="inflate_failed", error=str(exc))
        return None
    if len(out) > limit or d.unconsumed_tail:
        logger.warning("pdf_stream_skipped", reason="too_large", limit=limit)
        return None
    return out


def _text_lines(content: str) -> list[str]:
    lines: list[str] = []
    for m in _TEXT_OBJECT_RE.finditer(content):
        block = m.group(1)
        parts = [_decode_literal(lm.group(0)) for lm in _LITERAL_RE.finditer(block)]
        parts.extend(_decode_hex(hm.group(1)) for hm in _HEX_RE.finditer(block))
        if parts:
            lines.append(" ".join(parts))
    return lines


def extract_pdf_text(data: bytes) -> str:
    """Extract visible text from raw PDF bytes.

    One output line per text object that holds at least one string. Never
    raises for malformed content; unusable streams contribute nothing.
    """
    out: list[str] = []
    pos = 0
    while True:
        s_idx = data.find(b"stream", pos)
        if s_idx < 0:
            break
        e_idx = data.find(b"endstream", s_idx)
        if e_idx < 0:
            break

        dict_start = data.rfind(b"<<", 0, s_idx)
        dict_end = data.find(b">>", dict_start) if dict_start >= 0 else -1
        has_flate = False
        if dict_start >= 0 and dict_end > dict_start:
            has_flate = bool(_FLATE_RE.search(data[dict_start : dict_end + 2].decode("latin-1")))

        start = s_idx + len(b"stream")
        if data[start : start + 2] == b"\r\n":
            start += 2
        elif data[start : start + 1] == b"\n":
            start += 1
        payload = data[start:e_idx]
        pos = e_idx + len(b"endstream")

        content = _inflate(payload) if has_flate else payload
        if not content:
            continue
        out.extend(_text_lines(content.decode("latin-1")))

    return "\n".join(out).strip()


def extract_pdf_file(path: Path | str) -> str:
    """Read the PDF at *path* and return its extracted text.

    Raises:
        OSError: If the file cannot be read.
    """
    return extract_pdf_text(Path(path).read_bytes())


class PdfChunker(BaseChunker):
    """Split extracted PDF text on form feeds into pages and window each page.

    Chunks carry a 1-based ``page``. Text without form feeds is one page.
    """

    def chunk(self, text: str) -> list[ChunkDraft]:
        drafts: list[ChunkDraft] = []
        for page_no, page in enumerate((text or "").split("\f"), start=1):
            for win in self._windows(page):
                drafts.append(ChunkDraft(text=win, page=page_no))
        return drafts
