"""Retrieval side of the knowledge core.

- scoring.py           -- cosine similarity and deterministic ranking
- mmr.py               -- Maximal Marginal Relevance reranking
- prompt.py            -- citations and the prompt payload
- retrieval_service.py -- RetrievalService orchestrating the above
"""

from src.services.retrieval.mmr import apply_mmr
from src.services.retrieval.prompt import build_prompt_payload, create_citation
from src.services.retrieval.retrieval_service import RetrievalService
from src.services.retrieval.scoring import cosine_similarity, score_chunks

__all__ = [
    "RetrievalService",
    "apply_mmr",
    "build_prompt_payload",
    "cosine_similarity",
    "create_citation",
    "score_chunks",
]
