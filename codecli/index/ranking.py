"""
Ranking Engine — exact cosine-similarity scoring and top-K selection.

Brute force over every stored chunk; the corpus is an in-memory snapshot
taken by the store under its read lock.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from .models import Chunk, Document, SearchResult


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Compute cosine similarity between two vectors without numpy.

    Returns ``0.0`` when either vector is empty or has zero magnitude, or
    when the dimensions differ, so scoring never raises.
    """
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    score = dot / (norm_a * norm_b)
    if not math.isfinite(score):
        return 0.0
    # Rounding can push |score| a hair past 1 for parallel vectors.
    return max(-1.0, min(1.0, score))


def rank(
    query: Sequence[float],
    corpus: Iterable[tuple[Chunk, Document]],
    limit: int,
) -> list[SearchResult]:
    """
    Score every chunk in *corpus* against *query* and return the best *limit*.

    Results are ordered by descending score; equal scores keep ascending
    chunk-ID order so output is deterministic.
    """
    if limit <= 0:
        return []

    scored = [
        (cosine_similarity(query, chunk.vector), chunk, doc)
        for chunk, doc in corpus
    ]
    scored.sort(key=lambda entry: (-entry[0], entry[1].id))

    return [
        SearchResult(
            path=doc.path,
            start_line=chunk.start_line,
            end_line=chunk.end_line,
            content=chunk.content,
            score=score,
        )
        for score, chunk, doc in scored[:limit]
    ]
