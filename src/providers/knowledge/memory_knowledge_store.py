"""List-backed knowledge store for tests and demos."""

from __future__ import annotations

from src.interfaces.knowledge_store import IKnowledgeStore
from src.models.chunk import DocumentLanguage
from src.models.retrieval import KnowledgeChunk


class InMemoryKnowledgeStore(IKnowledgeStore):
    def __init__(self, chunks: list[KnowledgeChunk] | None = None) -> None:
        self._chunks: list[KnowledgeChunk] = list(chunks or [])

    def add(self, chunk: KnowledgeChunk) -> None:
        self._chunks.append(chunk)

    def replace_all(self, chunks: list[KnowledgeChunk]) -> None:
        self._chunks = list(chunks)

    async def list_chunks(
        self, workspace_id: str, language: DocumentLanguage
    ) -> list[KnowledgeChunk]:
        return [
            c for c in self._chunks if c.workspace_id == workspace_id and c.language == language
        ]
