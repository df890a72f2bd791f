"""Sentence tokenizers.

Two modes:

- ``regex``: a boundary is ``.``, ``!`` or ``?`` followed by whitespace.
- ``smart``: as ``regex`` but a boundary is suppressed after a known
  abbreviation (``e.g.``, ``Dr.``, month names, ...).

Both fall back to line splitting when punctuation yields at most one piece.
"""

from __future__ import annotations

import re

REGEX = "regex"
SMART = "smart"
TOKENIZERS = (REGEX, SMART)

ABBREVIATIONS = (
    "e.g.", "i.e.", "etc.", "Mr.", "Mrs.", "Dr.", "Prof.", "Inc.", "Ltd.",
    "vs.", "No.", "Fig.", "Eq.",
    "Jan.", "Feb.", "Mar.", "Apr.", "Jun.", "Jul.", "Aug.", "Sep.", "Sept.",
    "Oct.", "Nov.", "Dec.",
)  # fmt: skip

# Compared against the last 6 characters of the running sentence.
_ABBREV_TAILS = tuple(a[-6:] for a in ABBREVIATIONS)

_CTRL_WS_RE = re.compile(r"[\t\v\f]+")
_NEWLINES_RE = re.compile(r"\n+")


def _normalise(text: str) -> str:
    return _CTRL_WS_RE.sub(" ", (text or "").replace("\r\n", "\n"))


def _split(text: str, smart: bool) -> list[str]:
    clean = _normalise(text)
    parts: list[str] = []
    cur: list[str] = []
    n = len(clean)
    for i, ch in enumerate(clean):
        cur.append(ch)
        if ch in ".!?" and i + 1 < n and clean[i + 1].isspace():
            sentence = "".join(cur)
            if smart and sentence[-6:].endswith(_ABBREV_TAILS):
                continue
            parts.append(sentence.strip())
            cur = []
    rest = "".join(cur).strip()
    if rest:
        parts.append(rest)

    if len(parts) <= 1:
        return [s.strip() for s in _NEWLINES_RE.split(clean) if s.strip()]
    return parts


def split_sentences_regex(text: str) -> list[str]:
    return _split(text, smart=False)


def split_sentences_smart(text: str) -> list[str]:
    return _split(text, smart=True)


def split_sentences(text: str, tokenizer: str = REGEX) -> list[str]:
    """Split *text* with the named tokenizer; unknown names mean ``regex``."""
    if tokenizer == SMART:
        return split_sentences_smart(text)
    return split_sentences_regex(text)
