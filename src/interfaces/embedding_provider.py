"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into embedding vectors.  The same
provider embeds chunks at ingestion time and queries at retrieval time, so
both sides of the knowledge core agree on dimensionality.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider   -- text-embedding-3-large or any OpenAI-compatible endpoint
#   HashingEmbeddingProvider  -- deterministic 32-dim hashing embedding (offline, tests)
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for embedding services used by ingestion and retrieval.

    Implementations translate every backend failure into
    :class:`~src.utils.errors.EmbeddingError` so the retry classifier never
    needs to know about SDK-specific exception types.
    """

    @abstractmethod
    async def embed(self, text: str, model: str | None = None) -> list[float]:
        """Generate an embedding vector for a single text.

        Parameters
        ----------
        text:
            The text to embed.
        model:
            Optional model override.  ``None`` uses the provider's
            configured default.

        Returns
        -------
        list[float]
            Vector with length equal to :meth:`get_dimension`.

        Raises
        ------
        src.utils.errors.EmbeddingError
            If the backend call fails.  ``status_code`` / ``transport_code``
            are populated when the failure carries them.
        """

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for several texts in one call.

        Returns vectors in the same order as *texts*.  Usage reported by
        the backend is apportioned evenly across the items for logging.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Constant for the lifetime of the provider; all stored chunks of a
        deployment share it.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai-text-embedding-3-large"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured.

        Checks credentials/configuration only; never generates an embedding.
        """
