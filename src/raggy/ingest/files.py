"""Filesystem helpers for ingestion: traversal, classification, hashing, globs."""

from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path

_BLOCK_SIZE = 65536

PDF_EXTS = frozenset({".pdf"})

TEXT_EXTS = frozenset({
    ".txt", ".md", ".markdown", ".json", ".csv", ".tsv", ".log", ".ini", ".conf",
    ".cfg", ".yaml", ".yml", ".xml",
    ".js", ".mjs", ".cjs", ".ts", ".tsx", ".jsx", ".css", ".scss", ".less",
    ".html", ".htm", ".shtm", ".xhtml",
    ".py", ".rb", ".go", ".rs", ".java", ".kt", ".scala", ".c", ".h", ".cc",
    ".cpp", ".hpp", ".m", ".mm", ".swift", ".php", ".pl",
    ".sh", ".bash", ".zsh", ".fish", ".r", ".jl", ".lua", ".sql",
    ".bat", ".cmd",
    ".ps1", ".psm1", ".psd1",
})  # fmt: skip

_GLOB_CHARS = "*?[]"


def is_pdf_path(path: str | Path) -> bool:
    return Path(path).suffix.lower() in PDF_EXTS


def is_probably_text_path(path: str | Path) -> bool:
    """True if the extension is on the text allow-list. PDFs are not text."""
    return Path(path).suffix.lower() in TEXT_EXTS


def walk_files(root: str | Path) -> list[str]:
    """Return every file under *root*, depth-first, in sorted order.

    Uses an explicit stack, so directory depth is not bounded by recursion.
    Symlinked entries are not followed. A file path is returned as-is.
    """
    root = str(root)
    if os.path.isfile(root):
        return [root]

    out: list[str] = []
    stack = [root]
    while stack:
        current = stack.pop()
        subdirs: list[str] = []
        try:
            entries = sorted(os.scandir(current), key=lambda e: e.name)
            for entry in entries:
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(entry.path)
                elif entry.is_file(follow_symlinks=False):
                    out.append(entry.path)
        except OSError:
            continue
        # Reverse so the first subdirectory is popped first.
        stack.extend(reversed(subdirs))
    return out


def content_hash_of_file(path: str | Path) -> tuple[str, int]:
    """Return ``(sha256 hex digest, byte size)`` of the file at *path*.

    Streams in 64 KiB blocks.

    Raises:
        OSError: If the file cannot be read.
    """
    h = hashlib.sha256()
    size = 0
    with open(path, "rb") as fh:
        for block in iter(lambda: fh.read(_BLOCK_SIZE), b""):
            h.update(block)
            size += len(block)
    return h.hexdigest(), size


# ------------------------------------------------------------------
# Glob expansion
# ------------------------------------------------------------------


def has_glob(path: str) -> bool:
    return any(c in path for c in _GLOB_CHARS)


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a glob *pattern* into an anchored regex.

    ``**`` matches across separators (``**/`` may match no directory at
    all), ``*`` within one segment, ``?`` one
    non-separator character. ``/`` and ``\\`` each match either separator.
    Everything else, ``[`` and ``]`` included, is literal.
    """
    out: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == "*":
            if i + 1 < n and pattern[i + 1] == "*":
                # "**/" also matches zero directories.
                if i + 2 < n and pattern[i + 2] in "/\\":
                    out.append(r"(?:.*[/\\])?")
                    i += 3
                else:
                    out.append(".*")
                    i += 2
                continue
            out.append(r"[^/\\]*")
        elif ch == "?":
            out.append(r"[^/\\]")
        elif ch in "/\\":
            out.append(r"[/\\]")
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.DOTALL)


def _glob_base_dir(pattern: str) -> str:
    """Directory prefix of *pattern* up to the segment holding the first glob char."""
    idx = next((i for i, c in enumerate(pattern) if c in _GLOB_CHARS), -1)
    if idx < 0:
        return os.path.dirname(pattern) or "."
    sep_idx = max(pattern.rfind("/", 0, idx), pattern.rfind("\\", 0, idx))
    if sep_idx >= 0:
        return pattern[:sep_idx] or os.sep
    return "."


def expand_globs(paths: list[str]) -> tuple[list[str], list[str]]:
    """Expand glob patterns in *paths*.

    Returns:
        ``(expanded, unmatched)``. Non-glob paths pass through unchanged.
        Patterns with ``**`` walk from their non-glob base directory and
        match full paths; other patterns match file basenames in the
        pattern's own directory. Patterns that match nothing, or whose
        directory cannot be read, land in *unmatched*.
    """
    expanded: list[str] = []
    unmatched: list[str] = []
    for p in paths:
        if not has_glob(p):
            expanded.append(p)
            continue

        if "**" in p:
            base = _glob_base_dir(p)
            regex = glob_to_regex(p)
            candidates = walk_files(base) if os.path.isdir(base) else []
            if base == ".":
                candidates = [os.path.relpath(c) for c in candidates]
            matches = [c for c in candidates if regex.match(c)]
        else:
            base = os.path.dirname(p) or "."
            regex = glob_to_regex(os.path.basename(p))
            try:
                entries = sorted(os.scandir(base), key=lambda e: e.name)
            except OSError:
                entries = []
            matches = [
                os.path.join(os.path.dirname(p), e.name)
                for e in entries
                if e.is_file() and regex.match(e.name)
            ]

        if matches:
            expanded.extend(matches)
        else:
            unmatched.append(p)
    return expanded, unmatched
