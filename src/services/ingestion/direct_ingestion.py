"""Synchronous ingestion shortcut: chunk, embed and store in one call.

Bypasses the job queues for small documents and one-off CLI runs.  All
chunks of the document are embedded with a single ``embed_batch`` call;
a provider failure marks every chunk ``failed`` and is reported on the
returned :class:`IngestionResult` rather than raised, and there is no
automatic retry (use the queued pipeline for that).
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import structlog

from src.interfaces.chunk_repository import IChunkRepository
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.chunk import DocumentSource, IngestionResult
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.retry_policy import serialize_error
from src.services.ingestion.training_pipeline import coerce_source
from src.utils.errors import EmbeddingError, ValidationError

logger = structlog.get_logger(logger_name=__name__)


class DirectIngestionService:
    """Chunk -> persist -> batch embed -> mark vectorized, without queues."""

    def __init__(
        self,
        chunker: TextChunker,
        repository: IChunkRepository,
        provider: IEmbeddingProvider,
    ) -> None:
        self._chunker = chunker
        self._repository = repository
        self._provider = provider

    async def ingest_document(
        self,
        document_id: str,
        text: str,
        source: DocumentSource | dict[str, Any],
        job_id: str | None = None,
    ) -> IngestionResult:
        if not document_id or not document_id.strip():
            raise ValidationError("document_id must not be blank")
        source = coerce_source(source)
        job_id = job_id or str(uuid.uuid4())
        start = time.monotonic()

        result = self._chunker.chunk_document(document_id, text, job_id, source)
        chunks = result.chunks
        if not chunks:
            logger.warning("ingest_empty_document", document_id=document_id)
            return IngestionResult(
                document_id=document_id,
                language=result.language,
                ingestion_time=round(time.monotonic() - start, 3),
            )

        for chunk in chunks:
            await self._repository.create_or_update_chunk(chunk)
            await self._repository.mark_chunk_processing(chunk.chunk_id)

        try:
            vectors = await self._provider.embed_batch([c.text for c in chunks])
            if len(vectors) != len(chunks):
                raise EmbeddingError(
                    message=f"Provider returned {len(vectors)} vectors for {len(chunks)} chunks",
                    provider_name=self._provider.get_provider_name(),
                )
        except EmbeddingError as exc:
            message = serialize_error(exc)
            for chunk in chunks:
                await self._repository.mark_chunk_failed(chunk.chunk_id, message)
            logger.error("ingest_embedding_failed", document_id=document_id, error=message)
            return IngestionResult(
                document_id=document_id,
                language=result.language,
                chunks_created=len(chunks),
                chunks_failed=len(chunks),
                total_tokens=sum(c.token_count for c in chunks),
                ingestion_time=round(time.monotonic() - start, 3),
                error=message,
            )

        for chunk, vector in zip(chunks, vectors):
            await self._repository.mark_chunk_vectorized(chunk.chunk_id, vector)

        elapsed = round(time.monotonic() - start, 3)
        logger.info(
            "ingest_document_complete",
            document_id=document_id,
            language=result.language.value,
            chunks=len(chunks),
            elapsed_s=elapsed,
        )
        return IngestionResult(
            document_id=document_id,
            language=result.language,
            chunks_created=len(chunks),
            chunks_vectorized=len(vectors),
            total_tokens=sum(c.token_count for c in chunks),
            ingestion_time=elapsed,
        )
