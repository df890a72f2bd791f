"""Embedding provider: Ollama ``/api/embeddings`` with a bounded worker pool.

Each text is one HTTP request. ``concurrency`` worker threads pull indices
from a shared cursor and write into their own output slot, so results keep
input order. A failed item yields ``[]`` in its slot and a warning log;
the batch as a whole never fails.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

logger = structlog.get_logger()

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "nomic-embed-text"


class BaseEmbedder(ABC):
    """Abstract embedding provider.

    ``embed()`` returns one vector per input text, in input order. A text
    that could not be embedded gets an empty list.
    """

    provider: str = ""
    model: str = ""

    @abstractmethod
    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts*; output length always equals input length."""


@dataclass
class ProbeResult:
    """Outcome of a backend connectivity check."""

    ok: bool
    status: int
    base_url: str
    endpoint: str | None = None
    models: list[str] | None = None
    used_fallback: bool = False
    error: str | None = None

    def discrepancies(self) -> list[str]:
        notes: list[str] = []
        if self.used_fallback:
            notes.append("primary /api/tags failed; used /api/version")
        if self.models is None:
            notes.append("models not reported")
        return notes

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "status": self.status,
            "baseUrl": self.base_url,
            "endpoint": self.endpoint,
            "models": len(self.models) if self.models is not None else None,
            "modelsList": self.models,
            "usedFallback": self.used_fallback,
            "error": self.error,
        }


def _vector_from_response(data: Any) -> list[float] | None:
    """Pull ``embedding`` or ``data[0].embedding`` out of a response body."""
    if not isinstance(data, dict):
        return None
    emb = data.get("embedding")
    if emb is None:
        items = data.get("data")
        if isinstance(items, list) and items and isinstance(items[0], dict):
            emb = items[0].get("embedding")
    if not isinstance(emb, list) or not emb:
        return None
    if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in emb):
        return None
    return [float(x) for x in emb]


class OllamaEmbedder(BaseEmbedder):
    """Embed texts through an Ollama server.

    Args:
        base_url: Server root, e.g. ``http://localhost:11434``.
        model: Embedding model name.
        concurrency: Worker thread count; values below 1 mean 1.
        timeout: Per-request timeout in seconds.
        client: Optional preconfigured ``httpx.Client`` (tests pass one with
            a ``MockTransport``). Owned by the caller when given.
    """

    provider = "ollama"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        concurrency: int = 4,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.concurrency = max(1, int(concurrency))
        self.timeout = timeout
        self._client = client

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        out: list[list[float]] = [[] for _ in texts]
        if not texts:
            return out

        cursor = 0
        lock = threading.Lock()

        with self._session() as client:

            def worker() -> None:
                nonlocal cursor
                while True:
                    with lock:
                        i = cursor
                        cursor += 1
                    if i >= len(texts):
                        return
                    out[i] = self._embed_one(client, texts[i])

            n_workers = min(self.concurrency, len(texts))
            threads = [threading.Thread(target=worker, daemon=True) for _ in range(n_workers)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        return out

    def _embed_one(self, client: httpx.Client, text: str) -> list[float]:
        url = f"{self.base_url}/api/embeddings"
        try:
            response = client.post(url, json={"model": self.model, "prompt": text})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "embedding_request_failed",
                status_code=exc.response.status_code,
                model=self.model,
            )
            return []
        except httpx.HTTPError as exc:
            logger.warning("embedding_request_failed", error=str(exc), model=self.model)
            return []
        except ValueError as exc:
            logger.warning("embedding_invalid_response", error=str(exc), model=self.model)
            return []

        vec = _vector_from_response(data)
        if vec is None:
            logger.warning("embedding_invalid_response", reason="missing_or_empty", model=self.model)
            return []
        return vec

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def probe(self, timeout: float = 2.0) -> ProbeResult:
        """Check the server: ``GET /api/tags``, falling back to ``/api/version``.

        Never raises for transport errors; they are reported in the result.
        """
        with self._session(timeout=timeout) as client:
            used_fallback = False
            response = self._get(client, "/api/tags", timeout)
            if response is None or not response.is_success:
                used_fallback = True
                response = self._get(client, "/api/version", timeout)

        if response is None:
            return ProbeResult(
                ok=False,
                status=0,
                base_url=self.base_url,
                used_fallback=used_fallback,
                error="backend unreachable",
            )

        models: list[str] | None = None
        try:
            parsed = response.json()
        except ValueError:
            parsed = None
        if isinstance(parsed, dict) and isinstance(parsed.get("models"), list):
            models = [
                str(m.get("name") or m.get("model") or m.get("tag") or "")
                for m in parsed["models"]
                if isinstance(m, dict)
            ]
            models = [m for m in models if m]

        return ProbeResult(
            ok=response.is_success,
            status=response.status_code,
            base_url=self.base_url,
            endpoint=str(response.request.url),
            models=models,
            used_fallback=used_fallback,
        )

    def _get(self, client: httpx.Client, path: str, timeout: float) -> httpx.Response | None:
        try:
            return client.get(f"{self.base_url}{path}", timeout=timeout)
        except httpx.HTTPError as exc:
            logger.warning("embedding_probe_failed", endpoint=path, error=str(exc))
            return None

    # ------------------------------------------------------------------
    # Client lifecycle
    # ------------------------------------------------------------------

    @contextmanager
    def _session(self, timeout: float | None = None) -> Iterator[httpx.Client]:
        """Yield the injected client, or a short-lived one closed on exit."""
        if self._client is not None:
            yield self._client
            return
        with httpx.Client(timeout=timeout if timeout is not None else self.timeout) as client:
            yield client
