"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture its meaning.
Chunks are embedded during ingestion and queries at retrieval time, always
with the same provider so vectors are comparable.

Two implementations of IEmbeddingProvider:
    1. OpenAIEmbeddingProvider  -- text-embedding-3-large (3072 dims) or any
       OpenAI-compatible endpoint.  Requires an API key or base URL.
    2. HashingEmbeddingProvider -- deterministic 32-dim hashing embedding.
       Offline, free, reproducible; the fallback when no API is configured.
"""

from src.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["HashingEmbeddingProvider", "OpenAIEmbeddingProvider"]
