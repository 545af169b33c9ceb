"""Abstract base class for chunk persistence.

The repository is the only shared mutable resource of the ingestion
pipeline.  Every status transition is a single-row update keyed by
``chunk_id``, so concurrent workers handling *different* chunks never
contend on the same row; jobs for the *same* chunk are serialized by the
queue's job-id deduplication.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.chunk import ChunkRecord, ChunkStatus


# Concrete implementation: SQLiteChunkRepository (src/providers/repository/)
class IChunkRepository(ABC):
    """Contract for storing chunk records and their embedding state.

    All mutation methods raise :class:`~src.utils.errors.RepositoryError`
    when the target chunk does not exist.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create the backing schema if it does not exist yet."""

    @abstractmethod
    async def create_or_update_chunk(self, record: ChunkRecord) -> None:
        """Upsert *record* by ``chunk_id``.

        The stored row takes the record's text, ranges, metadata and status;
        vector and error are cleared so a re-chunked document starts over.
        """

    @abstractmethod
    async def mark_chunk_processing(self, chunk_id: str) -> ChunkRecord:
        """Set status ``processing``, clear the error, increment ``attempts``."""

    @abstractmethod
    async def mark_chunk_retrying(self, chunk_id: str, delay: float, error: str) -> ChunkRecord:
        """Set status ``retrying`` and record the error.

        *delay* is the backoff (seconds) the queue will wait before the next
        attempt; it is logged, not stored.
        """

    @abstractmethod
    async def mark_chunk_vectorized(self, chunk_id: str, vector: list[float]) -> ChunkRecord:
        """Set status ``vectorized``, store *vector*, clear the error."""

    @abstractmethod
    async def mark_chunk_failed(self, chunk_id: str, error: str) -> ChunkRecord:
        """Set status ``failed`` and record *error*."""

    @abstractmethod
    async def get_chunk(self, chunk_id: str) -> ChunkRecord | None:
        """Return the chunk or ``None`` when it does not exist."""

    @abstractmethod
    async def list_document_chunks(self, document_id: str) -> list[ChunkRecord]:
        """Return all chunks of a document ordered by ``chunk_index``."""

    @abstractmethod
    async def list_vectorized_chunks(self, workspace_id: str | None = None) -> list[ChunkRecord]:
        """Return vectorized chunks, optionally restricted to one workspace."""

    @abstractmethod
    async def count_by_status(self, document_id: str | None = None) -> dict[ChunkStatus, int]:
        """Return chunk counts per status (every status present, zero-filled)."""
