"""Abstract base class for the retrieval-side knowledge store."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.chunk import DocumentLanguage
from src.models.retrieval import KnowledgeChunk


# Concrete implementations:
#   RepositoryKnowledgeStore  -- serves vectorized chunks from the chunk repository
#   InMemoryKnowledgeStore    -- list-backed, for tests and demos
# Located in: src/providers/knowledge/
class IKnowledgeStore(ABC):
    """Read-only source of embedded knowledge chunks for retrieval.

    Retrieval is eventually consistent with ingestion: a chunk appears here
    only once it has been vectorized.
    """

    @abstractmethod
    async def list_chunks(
        self, workspace_id: str, language: DocumentLanguage
    ) -> list[KnowledgeChunk]:
        """Return every chunk of *workspace_id* written in *language*."""
