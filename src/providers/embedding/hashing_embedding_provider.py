"""Deterministic hashing embedding provider.

Produces a small (32-dim) L2-normalised vector from three signals:

1. **Characters** -- every character adds a code-point-derived weight to
   slot ``position % 32``.
2. **Tokens** -- each alphanumeric token is hashed into a slot; its weight
   varies with the token's position so word order matters slightly.
3. **Bigrams** -- adjacent token pairs are hashed the same way, which is
   what separates "alpha integration" from "integration alpha".

No network, no model download: used for offline deployments, demos and
tests.  Identical input always yields an identical vector, so retrieval
over a hashing-embedded corpus is fully reproducible.
"""

from __future__ import annotations

import math
import re

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider

logger = structlog.get_logger(logger_name=__name__)

EMBEDDING_DIMENSION = 32

_TOKEN_SPLIT = re.compile(r"[\W_]+")


def hash_token(token: str) -> int:
    """Polynomial string hash modulo the prime 9973."""
    value = 0
    for char in token:
        value = (value * 31 + ord(char)) % 9973
    return value


def _normalise(vector: list[float]) -> list[float]:
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        return [0.0] * len(vector)
    return [v / norm for v in vector]


def hash_embed(text: str, dimension: int = EMBEDDING_DIMENSION) -> list[float]:
    """Embed *text* into a *dimension*-length unit vector (zeros for blank text)."""
    vector = [0.0] * dimension
    lower = text.strip().lower()
    if not lower:
        return vector

    for index, char in enumerate(lower):
        code = ord(char)
        vector[index % dimension] += (code % 97) / 97 + (code % 7) * 0.013

    tokens = [t for t in _TOKEN_SPLIT.split(lower) if t]

    for position, token in enumerate(tokens):
        hashed = hash_token(token)
        weight = 0.45 + (position % 5) * 0.07
        vector[hashed % dimension] += (hashed % 257) * 0.0009 * weight

    for left, right in zip(tokens, tokens[1:]):
        hashed = hash_token(f"{left}_{right}")
        vector[hashed % dimension] += (hashed % 193) * 0.0012

    return _normalise(vector)


class HashingEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider computing :func:`hash_embed` locally."""

    def __init__(self, dimension: int = EMBEDDING_DIMENSION) -> None:
        self._dimension = dimension

    async def embed(self, text: str, model: str | None = None) -> list[float]:
        return hash_embed(text, self._dimension)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        vectors = [hash_embed(t, self._dimension) for t in texts]
        logger.debug("hashing_embedding_batch", batch_size=len(texts))
        return vectors

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "hashing_embedding"

    def is_available(self) -> bool:
        return True
