"""Second pipeline stage: embed one chunk and store its vector.

Status transitions driven here::

    queued/retrying --mark_processing--> processing
    processing --success--> vectorized
    processing --transient failure--> retrying   (job rescheduled by the queue)
    processing --permanent failure--> failed     (job not retried)

When the queue gives up on a chunk after its last transient failure,
:meth:`EmbeddingWorker.handle_exhausted` marks the chunk ``failed`` so it
never stays stuck in ``retrying``.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from src.interfaces.chunk_repository import IChunkRepository
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.chunk import ChunkStatus
from src.models.jobs import EmbeddingJob, QueuedJob
from src.services.ingestion.retry_policy import (
    DEFAULT_BASE_DELAY_SECONDS,
    DEFAULT_MAX_DELAY_SECONDS,
    compute_retry_delay,
    is_transient_error,
    serialize_error,
)
from src.utils.errors import PermanentProviderError, TransientProviderError, ValidationError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_EMBED_TIMEOUT_SECONDS = 30.0


class EmbeddingWorker:
    """Handles jobs from the chunk-embedding queue.

    Parameters
    ----------
    repository:
        Chunk store receiving every status transition.
    provider:
        Embedding backend.  Must raise :class:`EmbeddingError` on failure.
    base_retry_delay, max_retry_delay:
        Backoff recorded on the chunk when a transient failure occurs.
    timeout_seconds:
        Upper bound for one provider call; exceeding it counts as transient.
    """

    def __init__(
        self,
        repository: IChunkRepository,
        provider: IEmbeddingProvider,
        base_retry_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        max_retry_delay: float = DEFAULT_MAX_DELAY_SECONDS,
        timeout_seconds: float = DEFAULT_EMBED_TIMEOUT_SECONDS,
    ) -> None:
        self._repository = repository
        self._provider = provider
        self._base_retry_delay = base_retry_delay
        self._max_retry_delay = max_retry_delay
        self._timeout_seconds = timeout_seconds

    async def handle(self, job: QueuedJob) -> dict[str, Any]:
        try:
            data = EmbeddingJob.model_validate(job.payload)
        except PydanticValidationError as exc:
            raise ValidationError(f"Malformed embedding job {job.job_id}: {exc}") from exc

        chunk_id = data.chunk_id
        # The stored row is authoritative: a re-chunk may have replaced the
        # text after this job was enqueued.
        record = await self._repository.mark_chunk_processing(chunk_id)
        if record.metadata.checksum != data.metadata.checksum:
            logger.info(
                "embedding_payload_superseded",
                chunk_id=chunk_id,
                job_id=job.job_id,
                payload_checksum=data.metadata.checksum,
                stored_checksum=record.metadata.checksum,
            )

        try:
            vector = await asyncio.wait_for(
                self._provider.embed(record.text), timeout=self._timeout_seconds
            )
        except Exception as exc:  # noqa: BLE001 -- every failure is classified below
            message = serialize_error(exc)
            # attempts_made already counts the current run.
            previous_attempts = max(job.attempts_made - 1, 0)

            if is_transient_error(exc):
                delay = compute_retry_delay(
                    previous_attempts, self._base_retry_delay, self._max_retry_delay
                )
                await self._repository.mark_chunk_retrying(chunk_id, delay, message)
                logger.warning(
                    "embedding_transient_failure",
                    chunk_id=chunk_id,
                    job_id=job.job_id,
                    attempts_made=job.attempts_made,
                    delay=delay,
                    error=message,
                )
                raise TransientProviderError(
                    message=message,
                    provider_name=self._provider.get_provider_name(),
                    delay=delay,
                ) from exc

            await self._repository.mark_chunk_failed(chunk_id, message)
            logger.error(
                "embedding_permanent_failure",
                chunk_id=chunk_id,
                job_id=job.job_id,
                error=message,
            )
            raise PermanentProviderError(
                message=message,
                provider_name=self._provider.get_provider_name(),
            ) from exc

        current = await self._repository.get_chunk(chunk_id)
        if current is None or current.metadata.checksum != record.metadata.checksum:
            logger.warning("embedding_discarded_stale", chunk_id=chunk_id, job_id=job.job_id)
            raise TransientProviderError(
                message=f"Chunk {chunk_id} was re-chunked while embedding",
                provider_name=self._provider.get_provider_name(),
            )

        await self._repository.mark_chunk_vectorized(chunk_id, vector)
        logger.info(
            "embedding_stored",
            chunk_id=chunk_id,
            job_id=job.job_id,
            vector_length=len(vector),
            attempts_made=job.attempts_made,
        )
        return {"vector_length": len(vector)}

    async def handle_exhausted(self, job: QueuedJob, error: BaseException) -> None:
        """Queue ``on_failed`` hook: surface a given-up job on its chunk.

        A permanent failure already marked the chunk; anything else (last
        transient failure, repository hiccup) is recorded here.
        """
        chunk_id = job.payload.get("chunk_id") or job.job_id
        record = await self._repository.get_chunk(chunk_id)
        if record is None or record.status == ChunkStatus.FAILED:
            return
        message = job.last_error or serialize_error(error)
        await self._repository.mark_chunk_failed(chunk_id, message)
        logger.error(
            "embedding_attempts_exhausted",
            chunk_id=chunk_id,
            job_id=job.job_id,
            attempts_made=job.attempts_made,
            error=message,
        )
