"""Vector math and bounded top-k selection.

Every embedding is unit-normalised before it is persisted, so cosine
similarity and the plain dot product rank identically over stored vectors.
The flat index relies on this to score with ``dot`` alone.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Generic, TypeVar

T = TypeVar("T")


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    """Dot product over the shorter of the two lengths."""
    n = min(len(a), len(b))
    return sum(a[i] * b[i] for i in range(n))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of *a* and *b*; ``0.0`` if either norm is zero."""
    n = min(len(a), len(b))
    s = na = nb = 0.0
    for i in range(n):
        x, y = a[i], b[i]
        s += x * y
        na += x * x
        nb += y * y
    denom = math.sqrt(na) * math.sqrt(nb)
    if denom == 0.0:
        return 0.0
    return s / denom


def l2_norm(v: Sequence[float]) -> float:
    return math.sqrt(sum(x * x for x in v))


def l2_normalize(v: Sequence[float]) -> list[float]:
    """Return a unit-length copy of *v*.

    Vectors already within 1e-12 of unit length, and zero vectors, are
    returned as an unchanged copy.
    """
    n = l2_norm(v) or 1.0
    if abs(n - 1.0) < 1e-12:
        return list(v)
    return [x / n for x in v]


def is_finite_vector(v: Sequence[float]) -> bool:
    return all(math.isfinite(x) for x in v)


# ------------------------------------------------------------------
# Bounded top-k
# ------------------------------------------------------------------


def select_top_k(scores: Sequence[float], k: int) -> list[tuple[int, float]]:
    """Return the ``(index, score)`` pairs of the *k* best scores, best first.

    Keeps a fixed array of *k* slots sorted descending. Each score is
    compared against the worst kept slot; on acceptance it replaces that
    slot and bubbles up into place. O(N·k), no full sort.
    """
    if k <= 0:
        return []
    top_scores = [-math.inf] * k
    top_idx = [-1] * k
    last = k - 1
    for row, s in enumerate(scores):
        if s > top_scores[last]:
            top_scores[last] = s
            top_idx[last] = row
            p = last
            while p > 0 and top_scores[p] > top_scores[p - 1]:
                top_scores[p], top_scores[p - 1] = top_scores[p - 1], top_scores[p]
                top_idx[p], top_idx[p - 1] = top_idx[p - 1], top_idx[p]
                p -= 1
    return [(top_idx[i], top_scores[i]) for i in range(k) if top_idx[i] >= 0]


class TopKPool(Generic[T]):
    """Score-sorted candidate pool bounded at *capacity*.

    Candidates below *min_score* are discarded on arrival. Once full, a new
    candidate must beat the current worst entry to get in.
    """

    def __init__(self, capacity: int, min_score: float = -math.inf) -> None:
        self.capacity = max(0, capacity)
        self.min_score = min_score
        self._scores: list[float] = []
        self._items: list[T] = []

    def __len__(self) -> int:
        return len(self._items)

    def push(self, score: float, item: T) -> bool:
        """Offer *item*; return True if it was kept."""
        if score < self.min_score or self.capacity == 0:
            return False
        if len(self._items) < self.capacity:
            self._scores.append(score)
            self._items.append(item)
        elif score > self._scores[-1]:
            self._scores[-1] = score
            self._items[-1] = item
        else:
            return False
        p = len(self._items) - 1
        while p > 0 and self._scores[p] > self._scores[p - 1]:
            self._scores[p], self._scores[p - 1] = self._scores[p - 1], self._scores[p]
            self._items[p], self._items[p - 1] = self._items[p - 1], self._items[p]
            p -= 1
        return True

    def items(self) -> list[T]:
        """Kept items, best first."""
        return list(self._items)

    def scored(self) -> list[tuple[float, T]]:
        return list(zip(self._scores, self._items))
