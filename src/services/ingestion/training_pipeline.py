"""Entry point of queued ingestion: validate and enqueue a document.

:class:`TrainingPipeline` is what the admin surface calls when a workspace
owner uploads or links a document.  It never chunks or embeds itself; it
drops a :class:`DocumentChunkJob` on the document-chunk queue and returns
the job id immediately.  Progress is observed per chunk through
:meth:`get_chunk_status` / :meth:`get_document_status`.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from src.interfaces.chunk_repository import IChunkRepository
from src.interfaces.job_queue import IJobQueue
from src.models.chunk import ChunkRecord, ChunkStatus, DocumentSource
from src.models.jobs import DocumentChunkJob
from src.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)

CHUNK_DOCUMENT_JOB_NAME = "chunk-document"


def coerce_source(source: DocumentSource | dict[str, Any]) -> DocumentSource:
    """Validate source metadata, raising the domain ``ValidationError``."""
    if not isinstance(source, DocumentSource):
        try:
            source = DocumentSource.model_validate(source)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid document source: {exc}") from exc
    if not source.source_type.strip():
        raise ValidationError("Document source requires a non-blank source_type")
    return source


class TrainingPipeline:
    """Enqueues documents for chunking and reports chunk status."""

    def __init__(
        self,
        chunk_queue: IJobQueue,
        repository: IChunkRepository,
        chunk_job_attempts: int = 1,
    ) -> None:
        self._chunk_queue = chunk_queue
        self._repository = repository
        self._chunk_job_attempts = chunk_job_attempts

    async def enqueue_document_job(
        self,
        document_id: str,
        text: str,
        source: DocumentSource | dict[str, Any],
        job_id: str | None = None,
    ) -> str:
        """Enqueue *text* for chunking and return the job id.

        Re-submitting with a *job_id* that is still waiting or active is a
        no-op that returns the same id; a failed one is scheduled afresh.

        Raises
        ------
        ValidationError
            If *document_id* is blank or *source* is malformed.
        """
        if not document_id or not document_id.strip():
            raise ValidationError("document_id must not be blank")
        source = coerce_source(source)
        job_id = job_id or str(uuid.uuid4())

        payload = DocumentChunkJob(
            document_id=document_id,
            text=text,
            job_id=job_id,
            source=source,
        )
        job = await self._chunk_queue.add(
            CHUNK_DOCUMENT_JOB_NAME,
            payload.model_dump(mode="json"),
            job_id=job_id,
            max_attempts=self._chunk_job_attempts,
        )
        logger.info(
            "document_job_enqueued",
            job_id=job.job_id,
            document_id=document_id,
            workspace_id=source.workspace_id,
        )
        return job.job_id

    async def get_chunk_status(self, chunk_id: str) -> ChunkRecord | None:
        return await self._repository.get_chunk(chunk_id)

    async def get_document_status(self, document_id: str) -> dict[ChunkStatus, int]:
        """Chunk counts per status for one document."""
        return await self._repository.count_by_status(document_id)
