"""Cosine scoring of knowledge chunks against a query embedding."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from src.models.retrieval import KnowledgeChunk, ScoredChunk


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity over the shared prefix of *a* and *b*.

    Returns ``0.0`` when either vector has zero norm (blank text embeds to
    the zero vector) or when one of them is empty.
    """
    dimension = min(len(a), len(b))
    if dimension == 0:
        return 0.0
    va = np.asarray(a[:dimension], dtype=np.float64)
    vb = np.asarray(b[:dimension], dtype=np.float64)
    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


def score_chunks(query_embedding: Sequence[float], chunks: list[KnowledgeChunk]) -> list[ScoredChunk]:
    """Score every chunk and sort by descending similarity.

    Equal scores are ordered by chunk id so the ranking is deterministic
    regardless of the order the store returned the chunks in.
    """
    scored = [
        ScoredChunk(chunk=chunk, score=cosine_similarity(query_embedding, chunk.embedding))
        for chunk in chunks
    ]
    scored.sort(key=lambda s: (-s.score, s.chunk.id))
    return scored
