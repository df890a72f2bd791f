"""Similarity search over the store, with bucket-diversified top-k.

Search path:
  1. Embed the query (memoised in a bounded LRU cache).
  2. If a flat index is present, score every row with one matrix-vector
     product; otherwise stream the ledger and score with cosine similarity
     into a bounded candidate pool.
  3. Diversify: at most one hit per bucket, where a bucket is the document
     path plus ``chunkIndex // 2``, so adjacent overlapping windows do not
     crowd out the rest.
"""

from __future__ import annotations

import math
from collections import OrderedDict
from collections.abc import Hashable

import structlog

from raggy.ingest.embedder import BaseEmbedder
from raggy.store.index import FlatIndex
from raggy.store.models import SearchHit
from raggy.store.repository import Store
from raggy.store.vectors import TopKPool, cosine_similarity, l2_normalize

logger = structlog.get_logger()

QUERY_CACHE_SIZE = 100


class QueryCache:
    """Bounded LRU map from cache key to query embedding.

    Eviction is oldest-inserted first; re-putting a key makes it newest.
    """

    def __init__(self, capacity: int = QUERY_CACHE_SIZE) -> None:
        self.capacity = max(1, capacity)
        self._data: OrderedDict[Hashable, list[float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data

    def get(self, key: Hashable) -> list[float] | None:
        return self._data.get(key)

    def put(self, key: Hashable, value: list[float]) -> None:
        if key in self._data:
            del self._data[key]
        self._data[key] = value
        while len(self._data) > self.capacity:
            self._data.popitem(last=False)


# ------------------------------------------------------------------
# Diversification
# ------------------------------------------------------------------


def mmr_select(
    candidates: list[SearchHit],
    k: int,
    min_score: float = 0.0,
    mmr_lambda: float = 0.5,
) -> list[SearchHit]:
    """Pick up to *k* hits from score-sorted *candidates*, one per bucket.

    Candidates carry no embeddings, so diversity is approximated by buckets
    rather than pairwise similarity. *mmr_lambda* is clamped to ``[0, 1]``
    and recorded but does not change the selection.
    """
    if k <= 0:
        return []
    lam = min(1.0, max(0.0, mmr_lambda))
    pool = [c for c in candidates if c.score >= min_score]
    if not pool:
        return []

    if len(pool) <= k:
        seen: set[str] = set()
        out: list[SearchHit] = []
        for c in pool:
            if c.bucket in seen:
                continue
            out.append(c)
            seen.add(c.bucket)
            if len(out) >= k:
                break
        return out

    logger.debug("mmr_select", pool=len(pool), k=k, mmr_lambda=lam)

    selected = [pool[0]]
    used = {pool[0].bucket}
    for cand in pool[1:]:
        if len(selected) >= k:
            break
        if cand.bucket not in used:
            selected.append(cand)
            used.add(cand.bucket)

    # Fill pass over buckets still unused.
    i = 0
    while len(selected) < k and i < len(pool):
        c = pool[i]
        i += 1
        if c.bucket in used:
            continue
        selected.append(c)
        used.add(c.bucket)

    return selected[:k]


# ------------------------------------------------------------------
# Retriever
# ------------------------------------------------------------------


def _hit_from_record(score: float, rec: dict) -> SearchHit:
    return SearchHit(
        score=float(score),
        path=rec.get("path", ""),
        doc_id=rec.get("docId", ""),
        chunk_index=int(rec.get("chunkIndex", 0)),
        text=rec.get("text", ""),
        heading=rec.get("heading"),
        page=rec.get("page"),
    )


class Retriever:
    """Answer similarity queries against a Store.

    Args:
        store: Store to search.
        embedder: Provider used to embed the query.
        pool_base: Ledger candidate pool is ``pool_base * k`` unless overridden.
        pool_min: Lower bound on the ledger candidate pool.
        mmr_lambda: Default relevance/diversity weight.
        cache: Query embedding cache; a fresh one if not given.
    """

    def __init__(
        self,
        store: Store,
        embedder: BaseEmbedder,
        pool_base: int = 8,
        pool_min: int = 50,
        mmr_lambda: float = 0.5,
        cache: QueryCache | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.pool_base = max(1, pool_base)
        self.pool_min = max(0, pool_min)
        self.mmr_lambda = mmr_lambda
        self.cache = cache if cache is not None else QueryCache()

    def search(
        self,
        query: str,
        k: int = 5,
        min_score: float = 0.0,
        mmr_lambda: float | None = None,
        mmr_pool: int | None = None,
    ) -> list[SearchHit]:
        """Return up to *k* diversified hits scoring at least *min_score*."""
        query = (query or "").strip()
        if k <= 0 or not query:
            return []
        lam = self.mmr_lambda if mmr_lambda is None else mmr_lambda

        raw = self._query_embedding(query)
        if not raw:
            logger.warning("search_empty_query_embedding", model=self.embedder.model)
            return []
        q = l2_normalize(raw)

        stored_dim = self.store.stored_dimension()
        if stored_dim is not None and stored_dim != len(q):
            logger.warning(
                "search_dim_mismatch",
                store_dim=stored_dim,
                query_dim=len(q),
                hint="re-ingest with a consistent provider/model",
            )

        hits = self._search_index(q, k, min_score, lam, mmr_pool)
        source = "index"
        if hits is None:
            source = "ledger"
            hits = self._search_ledger(q, k, min_score, lam, mmr_pool)

        logger.debug("search_completed", source=source, k=k, hits=len(hits))
        return hits

    def _query_embedding(self, query: str) -> list[float]:
        key = (self.embedder.provider, self.embedder.model, query)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        vectors = self.embedder.embed([query])
        vec = vectors[0] if vectors else []
        if vec:
            self.cache.put(key, vec)
        return vec

    def _search_index(
        self,
        q: list[float],
        k: int,
        min_score: float,
        mmr_lambda: float,
        mmr_pool: int | None,
    ) -> list[SearchHit] | None:
        """Search the flat index; None if it is absent or unusable."""
        index = FlatIndex(self.store.index_dir)
        if not index.available():
            return None
        try:
            index.load()
            hint = mmr_pool if mmr_pool else self.pool_base * k
            pool = max(k, k * math.ceil(hint / k))
            candidates = []
            for row, score in index.query(q, pool):
                rec = index.record_for_row(row)
                if rec is not None:
                    candidates.append(_hit_from_record(score, rec))
        except (OSError, ValueError, RuntimeError) as exc:
            logger.warning("search_index_failed", error=str(exc), fallback="ledger")
            return None
        return mmr_select(candidates, k, min_score, mmr_lambda)

    def _search_ledger(
        self,
        q: list[float],
        k: int,
        min_score: float,
        mmr_lambda: float,
        mmr_pool: int | None,
    ) -> list[SearchHit]:
        capacity = max(self.pool_min, mmr_pool if mmr_pool is not None else self.pool_base * k)
        pool: TopKPool[SearchHit] = TopKPool(capacity, min_score=min_score)
        for rec in self.store.iter_chunks():
            score = cosine_similarity(q, rec.embedding)
            pool.push(
                score,
                SearchHit(
                    score=score,
                    path=rec.path,
                    doc_id=rec.doc_id,
                    chunk_index=rec.chunk_index,
                    text=rec.text,
                    heading=rec.heading,
                    page=rec.page,
                ),
            )
        return mmr_select(pool.items(), k, min_score, mmr_lambda)
