"""Ingest progress state.

One instance is owned by the service and passed explicitly to the ingestor,
so tests can run isolated instances side by side.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any

IDLE = "idle"
RUNNING = "running"
DONE = "done"
ERROR = "error"

# Per-file sub-states
FILE_IDLE = "idle"
FILE_EMBEDDING = "embedding"
FILE_WRITING = "writing"
FILE_SKIPPED = "skipped"
FILE_DONE = "done"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class IngestProgress:
    """Mutable progress record with controlled transitions.

    ``idle -> running -> {done, error}``; a new run may start from any
    state except ``running`` (enforced by :meth:`try_start`).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state: dict[str, Any] = {
            "status": IDLE,
            "totalFiles": 0,
            "processedFiles": 0,
        }

    @property
    def status(self) -> str:
        return self._state["status"]

    @property
    def is_running(self) -> bool:
        return self.status == RUNNING

    def try_start(self, message: str = "Starting…") -> bool:
        """Atomically enter ``running``; False if a run is already active."""
        with self._lock:
            if self._state["status"] == RUNNING:
                return False
            self._reset_running(message)
            return True

    def start(self, message: str = "Starting…") -> None:
        with self._lock:
            self._reset_running(message)

    def _reset_running(self, message: str) -> None:
        now = _now()
        self._state = {
            "status": RUNNING,
            "totalFiles": 0,
            "processedFiles": 0,
            "startedAt": now,
            "updatedAt": now,
            "message": message,
            "currentFilePath": None,
            "currentFileTotalChunks": 0,
            "currentFileProcessedChunks": 0,
            "currentFileStatus": FILE_IDLE,
        }

    def set_total(self, total_files: int) -> None:
        self._update(
            totalFiles=total_files,
            message="Starting…" if total_files else "No files",
        )

    def begin_file(self, path: str, message: str) -> None:
        self._update(
            message=message,
            currentFilePath=path,
            currentFileTotalChunks=0,
            currentFileProcessedChunks=0,
            currentFileStatus=FILE_EMBEDDING,
        )

    def set_file_status(self, status: str) -> None:
        self._update(currentFileStatus=status)

    def file_chunks(self, total: int) -> None:
        self._update(currentFileTotalChunks=total)

    def chunk_written(self, processed: int) -> None:
        self._update(currentFileProcessedChunks=processed)

    def file_processed(self, processed_files: int) -> None:
        total = self._state.get("totalFiles") or processed_files
        self._update(processedFiles=min(processed_files, total))

    def finish(self, message: str) -> None:
        self._update(status=DONE, message=message)

    def fail(self, message: str) -> None:
        self._update(status=ERROR, message=message)

    def snapshot(self) -> dict[str, Any]:
        """Detached copy of the current state."""
        with self._lock:
            return dict(self._state)

    def _update(self, **fields: Any) -> None:
        with self._lock:
            self._state.update(fields)
            self._state["updatedAt"] = _now()
