"""Crash-safe file writes: temp file -> fsync -> rename.

A reader of the target path always sees either the previous complete file
or the new complete file, never a truncated one. Appends are full rewrites:
the old content is streamed into the temp file before the new lines.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Iterable
from pathlib import Path


def atomic_write_text(path: Path, content: str) -> None:
    """Replace *path* with *content* atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        _discard(tmp_path)
        raise


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Binary counterpart of :func:`atomic_write_text`."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        _discard(tmp_path)
        raise


def atomic_append_lines(path: Path, lines: Iterable[str]) -> None:
    """Append *lines* (one ``\\n`` after each) to *path* atomically.

    A missing *path* is treated as empty.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as out:
            try:
                with path.open("rb") as src:
                    shutil.copyfileobj(src, out, 65536)
            except FileNotFoundError:
                pass
            for line in lines:
                out.write(line.encode("utf-8"))
                out.write(b"\n")
            out.flush()
            os.fsync(out.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        _discard(tmp_path)
        raise


def _discard(tmp_path: str) -> None:
    try:
        os.unlink(tmp_path)
    except OSError:
        pass
