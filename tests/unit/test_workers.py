"""Unit tests for the ChunkWorker and EmbeddingWorker job handlers."""

from __future__ import annotations

import asyncio

import pytest

from src.models.chunk import ChunkRecord, ChunkStatus, DocumentSource
from src.models.jobs import DocumentChunkJob, EmbeddingJob, QueuedJob
from src.providers.embedding.hashing_embedding_provider import hash_embed
from src.providers.queue.memory_job_queue import InMemoryJobQueue
from src.providers.repository.sqlite_chunk_repository import SQLiteChunkRepository
from src.services.ingestion.chunk_worker import EMBED_CHUNK_JOB_NAME, ChunkWorker
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.embedding_worker import EmbeddingWorker
from src.utils.errors import (
    EmbeddingError,
    PermanentProviderError,
    TransientProviderError,
    ValidationError,
)
from tests.conftest import ScriptedEmbeddingProvider, numbered_words, rate_limited


def _chunk_job(document_id: str, text: str, source: DocumentSource, job_id: str = "job-1") -> QueuedJob:
    payload = DocumentChunkJob(document_id=document_id, text=text, job_id=job_id, source=source)
    return QueuedJob(
        job_id=job_id,
        name="chunk-document",
        payload=payload.model_dump(mode="json"),
        attempts_made=1,
    )


def _embedding_job(record: ChunkRecord, attempts_made: int = 1) -> QueuedJob:
    payload = EmbeddingJob(
        chunk_id=record.chunk_id,
        document_id=record.document_id,
        chunk_index=record.chunk_index,
        text=record.text,
        token_range=record.token_range,
        token_count=record.token_count,
        metadata=record.metadata,
    )
    return QueuedJob(
        job_id=record.chunk_id,
        name=EMBED_CHUNK_JOB_NAME,
        payload=payload.model_dump(mode="json"),
        attempts_made=attempts_made,
        max_attempts=5,
    )


async def _persisted_chunk(
    repository: SQLiteChunkRepository,
    chunker: TextChunker,
    source: DocumentSource,
) -> ChunkRecord:
    [record] = chunker.chunk_document("doc-e", numbered_words(6), "job-1", source).chunks
    await repository.create_or_update_chunk(record)
    return record


# ======================================================================
# ChunkWorker
# ======================================================================


class TestChunkWorker:
    @pytest.mark.asyncio
    async def test_persists_chunks_and_enqueues_embedding_jobs(
        self,
        chunk_repository: SQLiteChunkRepository,
        embedding_queue: InMemoryJobQueue,
        small_chunker: TextChunker,
        file_source: DocumentSource,
    ) -> None:
        worker = ChunkWorker(
            chunk_repository,
            embedding_queue,
            chunker=small_chunker,
            embedding_job_attempts=4,
            embedding_backoff_delay=2.0,
        )

        result = await worker.handle(_chunk_job("doc-1", numbered_words(25), file_source))

        assert result == {"chunk_count": 3}
        chunks = await chunk_repository.list_document_chunks("doc-1")
        assert [c.chunk_id for c in chunks] == [f"doc-1::chunk::{i}" for i in range(3)]
        assert all(c.status == ChunkStatus.QUEUED for c in chunks)

        for chunk in chunks:
            job = await embedding_queue.get(chunk.chunk_id)
            assert job is not None
            assert job.name == EMBED_CHUNK_JOB_NAME
            assert job.max_attempts == 4
            assert job.backoff_delay == 2.0
            payload = EmbeddingJob.model_validate(job.payload)
            assert payload.text == chunk.text
            assert payload.metadata.job_id == "job-1"

    @pytest.mark.asyncio
    async def test_empty_document(
        self,
        chunk_repository: SQLiteChunkRepository,
        embedding_queue: InMemoryJobQueue,
        small_chunker: TextChunker,
        file_source: DocumentSource,
    ) -> None:
        worker = ChunkWorker(chunk_repository, embedding_queue, chunker=small_chunker)

        assert await worker.handle(_chunk_job("doc-empty", "   ", file_source)) == {"chunk_count": 0}
        assert (await embedding_queue.counts()).waiting == 0

    @pytest.mark.asyncio
    async def test_resubmission_does_not_duplicate(
        self,
        chunk_repository: SQLiteChunkRepository,
        embedding_queue: InMemoryJobQueue,
        small_chunker: TextChunker,
        file_source: DocumentSource,
    ) -> None:
        worker = ChunkWorker(chunk_repository, embedding_queue, chunker=small_chunker)
        job = _chunk_job("doc-1", numbered_words(25), file_source)

        await worker.handle(job)
        await worker.handle(job)

        assert len(await chunk_repository.list_document_chunks("doc-1")) == 3
        assert (await embedding_queue.counts()).waiting == 3

    @pytest.mark.asyncio
    async def test_malformed_payload_raises_validation_error(
        self,
        chunk_repository: SQLiteChunkRepository,
        embedding_queue: InMemoryJobQueue,
    ) -> None:
        worker = ChunkWorker(chunk_repository, embedding_queue)
        job = QueuedJob(job_id="bad", name="chunk-document", payload={"text": "no id"})

        with pytest.raises(ValidationError):
            await worker.handle(job)


# ======================================================================
# EmbeddingWorker
# ======================================================================


class TestEmbeddingWorker:
    @pytest.mark.asyncio
    async def test_success_marks_vectorized(
        self,
        chunk_repository: SQLiteChunkRepository,
        small_chunker: TextChunker,
        file_source: DocumentSource,
    ) -> None:
        record = await _persisted_chunk(chunk_repository, small_chunker, file_source)
        worker = EmbeddingWorker(chunk_repository, ScriptedEmbeddingProvider())

        result = await worker.handle(_embedding_job(record))

        assert result == {"vector_length": 32}
        stored = await chunk_repository.get_chunk(record.chunk_id)
        assert stored is not None
        assert stored.status == ChunkStatus.VECTORIZED
        assert len(stored.vector or []) == 32
        assert stored.attempts == 1
        assert stored.error is None

    @pytest.mark.asyncio
    async def test_embeds_stored_text_over_job_payload(
        self,
        chunk_repository: SQLiteChunkRepository,
        small_chunker: TextChunker,
        file_source: DocumentSource,
    ) -> None:
        record = await _persisted_chunk(chunk_repository, small_chunker, file_source)
        outdated = _embedding_job(record.model_copy(update={"text": "old text"}))
        provider = ScriptedEmbeddingProvider()
        worker = EmbeddingWorker(chunk_repository, provider)

        await worker.handle(outdated)

        assert provider.calls == [record.text]
        stored = await chunk_repository.get_chunk(record.chunk_id)
        assert stored is not None
        assert stored.vector == hash_embed(record.text, 32)

    @pytest.mark.asyncio
    async def test_rechunk_during_embedding_discards_vector(
        self,
        chunk_repository: SQLiteChunkRepository,
        small_chunker: TextChunker,
        file_source: DocumentSource,
    ) -> None:
        record = await _persisted_chunk(chunk_repository, small_chunker, file_source)
        [replacement] = small_chunker.chunk_document(
            "doc-e", numbered_words(6, prefix="z"), "job-2", file_source
        ).chunks

        class RechunkingProvider(ScriptedEmbeddingProvider):
            async def embed(self, text: str, model: str | None = None) -> list[float]:
                await chunk_repository.create_or_update_chunk(replacement)
                return await super().embed(text, model)

        worker = EmbeddingWorker(chunk_repository, RechunkingProvider())

        with pytest.raises(TransientProviderError):
            await worker.handle(_embedding_job(record))

        stored = await chunk_repository.get_chunk(record.chunk_id)
        assert stored is not None
        assert stored.status == ChunkStatus.QUEUED
        assert stored.text == replacement.text
        assert stored.vector is None

    @pytest.mark.asyncio
    async def test_transient_failure_marks_retrying(
        self,
        chunk_repository: SQLiteChunkRepository,
        small_chunker: TextChunker,
        file_source: DocumentSource,
    ) -> None:
        record = await _persisted_chunk(chunk_repository, small_chunker, file_source)
        provider = ScriptedEmbeddingProvider(failures=[rate_limited()])
        worker = EmbeddingWorker(chunk_repository, provider, base_retry_delay=5, max_retry_delay=60)

        with pytest.raises(TransientProviderError) as exc_info:
            await worker.handle(_embedding_job(record, attempts_made=3))

        # Two attempts failed before this one: 5 * 2**2.
        assert exc_info.value.delay == 20
        stored = await chunk_repository.get_chunk(record.chunk_id)
        assert stored is not None
        assert stored.status == ChunkStatus.RETRYING
        assert stored.error == "Rate limit exceeded"

    @pytest.mark.asyncio
    async def test_permanent_failure_marks_failed(
        self,
        chunk_repository: SQLiteChunkRepository,
        small_chunker: TextChunker,
        file_source: DocumentSource,
    ) -> None:
        record = await _persisted_chunk(chunk_repository, small_chunker, file_source)
        provider = ScriptedEmbeddingProvider(
            failures=[EmbeddingError("Input too long", status_code=400)]
        )
        worker = EmbeddingWorker(chunk_repository, provider)

        with pytest.raises(PermanentProviderError):
            await worker.handle(_embedding_job(record))

        stored = await chunk_repository.get_chunk(record.chunk_id)
        assert stored is not None
        assert stored.status == ChunkStatus.FAILED
        assert stored.error == "Input too long"

    @pytest.mark.asyncio
    async def test_provider_timeout_is_transient(
        self,
        chunk_repository: SQLiteChunkRepository,
        small_chunker: TextChunker,
        file_source: DocumentSource,
    ) -> None:
        record = await _persisted_chunk(chunk_repository, small_chunker, file_source)

        class SlowProvider(ScriptedEmbeddingProvider):
            async def embed(self, text: str, model: str | None = None) -> list[float]:
                await asyncio.sleep(1)
                return [1.0]

        worker = EmbeddingWorker(chunk_repository, SlowProvider(), timeout_seconds=0.01)

        with pytest.raises(TransientProviderError):
            await worker.handle(_embedding_job(record))
        stored = await chunk_repository.get_chunk(record.chunk_id)
        assert stored is not None
        assert stored.status == ChunkStatus.RETRYING

    @pytest.mark.asyncio
    async def test_handle_exhausted_marks_failed(
        self,
        chunk_repository: SQLiteChunkRepository,
        small_chunker: TextChunker,
        file_source: DocumentSource,
    ) -> None:
        record = await _persisted_chunk(chunk_repository, small_chunker, file_source)
        await chunk_repository.mark_chunk_retrying(record.chunk_id, 5.0, "Rate limit exceeded")
        worker = EmbeddingWorker(chunk_repository, ScriptedEmbeddingProvider())
        job = _embedding_job(record, attempts_made=5).model_copy(
            update={"last_error": "Rate limit exceeded"}
        )

        await worker.handle_exhausted(job, TransientProviderError("Rate limit exceeded"))

        stored = await chunk_repository.get_chunk(record.chunk_id)
        assert stored is not None
        assert stored.status == ChunkStatus.FAILED
        assert stored.error == "Rate limit exceeded"

    @pytest.mark.asyncio
    async def test_handle_exhausted_keeps_existing_failure(
        self,
        chunk_repository: SQLiteChunkRepository,
        small_chunker: TextChunker,
        file_source: DocumentSource,
    ) -> None:
        record = await _persisted_chunk(chunk_repository, small_chunker, file_source)
        await chunk_repository.mark_chunk_failed(record.chunk_id, "Input too long")
        worker = EmbeddingWorker(chunk_repository, ScriptedEmbeddingProvider())

        await worker.handle_exhausted(_embedding_job(record), PermanentProviderError("other"))

        stored = await chunk_repository.get_chunk(record.chunk_id)
        assert stored is not None
        assert stored.error == "Input too long"

    @pytest.mark.asyncio
    async def test_malformed_payload_raises_validation_error(
        self, chunk_repository: SQLiteChunkRepository
    ) -> None:
        worker = EmbeddingWorker(chunk_repository, ScriptedEmbeddingProvider())
        job = QueuedJob(job_id="bad", name=EMBED_CHUNK_JOB_NAME, payload={"chunk_id": "x"})

        with pytest.raises(ValidationError):
            await worker.handle(job)
