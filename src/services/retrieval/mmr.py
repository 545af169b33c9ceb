"""Maximal Marginal Relevance reranking.

Greedy selection balancing relevance against redundancy::

    mmr(c) = lambda * relevance(c) - (1 - lambda) * max_{s in selected} sim(c, s)

The first pick is always the most relevant candidate.  ``lambda = 1``
degenerates to plain relevance ranking; ``lambda = 0`` picks the most
dissimilar candidate each round.
"""

from __future__ import annotations

from src.models.retrieval import ScoredChunk
from src.services.retrieval.scoring import cosine_similarity

DEFAULT_MMR_LAMBDA = 0.65


def apply_mmr(
    candidates: list[ScoredChunk],
    max_results: int,
    mmr_lambda: float = DEFAULT_MMR_LAMBDA,
) -> list[ScoredChunk]:
    """Select up to *max_results* candidates by MMR, in selection order.

    *candidates* need not be sorted; ties on MMR score keep the candidate
    that ranks higher by (score desc, id asc).
    """
    if max_results <= 0 or not candidates:
        return []

    pool = sorted(candidates, key=lambda s: (-s.score, s.chunk.id))
    selected: list[ScoredChunk] = [pool.pop(0)]

    while len(selected) < max_results and pool:
        best_index = 0
        best_score = float("-inf")
        for index, candidate in enumerate(pool):
            redundancy = max(
                0.0,
                max(cosine_similarity(candidate.chunk.embedding, s.chunk.embedding) for s in selected),
            )
            mmr_score = mmr_lambda * candidate.score - (1 - mmr_lambda) * redundancy
            if mmr_score > best_score:
                best_score = mmr_score
                best_index = index
        selected.append(pool.pop(best_index))

    return selected
