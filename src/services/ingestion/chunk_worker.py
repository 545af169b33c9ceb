"""First pipeline stage: chunk a document and fan out embedding jobs.

For each chunk the worker **persists the record first, then enqueues** its
embedding job (job id == chunk id).  If the process dies between the two
steps the chunk sits in ``queued`` without a job; re-submitting the
document upserts the same rows and enqueues the missing job.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from src.interfaces.chunk_repository import IChunkRepository
from src.interfaces.job_queue import IJobQueue
from src.models.jobs import DocumentChunkJob, EmbeddingJob, QueuedJob
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.retry_policy import DEFAULT_BASE_DELAY_SECONDS
from src.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_EMBEDDING_JOB_ATTEMPTS = 5
EMBED_CHUNK_JOB_NAME = "embed-chunk"


class ChunkWorker:
    """Handles jobs from the document-chunk queue.

    Parameters
    ----------
    repository:
        Chunk store; every chunk is upserted before its job is enqueued.
    embedding_queue:
        Queue receiving one :class:`EmbeddingJob` per chunk.
    chunker:
        Tokenizing chunker.  A default :class:`TextChunker` when omitted.
    embedding_job_attempts:
        ``max_attempts`` of each embedding job.
    embedding_backoff_delay:
        Base delay in seconds for the embedding jobs' exponential backoff.
    """

    def __init__(
        self,
        repository: IChunkRepository,
        embedding_queue: IJobQueue,
        chunker: TextChunker | None = None,
        embedding_job_attempts: int = DEFAULT_EMBEDDING_JOB_ATTEMPTS,
        embedding_backoff_delay: float = DEFAULT_BASE_DELAY_SECONDS,
    ) -> None:
        self._repository = repository
        self._embedding_queue = embedding_queue
        self._chunker = chunker or TextChunker()
        self._embedding_job_attempts = embedding_job_attempts
        self._embedding_backoff_delay = embedding_backoff_delay

    async def handle(self, job: QueuedJob) -> dict[str, Any]:
        try:
            data = DocumentChunkJob.model_validate(job.payload)
        except PydanticValidationError as exc:
            raise ValidationError(f"Malformed document chunk job {job.job_id}: {exc}") from exc

        job_id = data.job_id or job.job_id
        logger.info("chunk_job_started", job_id=job_id, document_id=data.document_id)

        result = self._chunker.chunk_document(
            document_id=data.document_id,
            text=data.text,
            job_id=job_id,
            source=data.source,
        )

        if not result.chunks:
            logger.warning("chunk_job_empty_document", job_id=job_id, document_id=data.document_id)
            return {"chunk_count": 0}

        for chunk in result.chunks:
            await self._repository.create_or_update_chunk(chunk)

            payload = EmbeddingJob(
                chunk_id=chunk.chunk_id,
                document_id=chunk.document_id,
                chunk_index=chunk.chunk_index,
                text=chunk.text,
                token_range=chunk.token_range,
                token_count=chunk.token_count,
                metadata=chunk.metadata,
            )
            await self._embedding_queue.add(
                EMBED_CHUNK_JOB_NAME,
                payload.model_dump(mode="json"),
                job_id=chunk.chunk_id,
                max_attempts=self._embedding_job_attempts,
                backoff_delay=self._embedding_backoff_delay,
            )

        logger.info(
            "chunk_job_completed",
            job_id=job_id,
            document_id=data.document_id,
            language=result.language.value,
            chunk_count=len(result.chunks),
        )
        return {"chunk_count": len(result.chunks)}
