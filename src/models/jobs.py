"""Job payload and queue envelope models.

Two payload types flow through the pipeline:

- :class:`DocumentChunkJob` -- queued by ``TrainingPipeline`` on the
  ``document-chunk`` queue, consumed by ``ChunkWorker``.
- :class:`EmbeddingJob` -- queued by ``ChunkWorker`` on the
  ``chunk-embedding`` queue (one per chunk, job id == chunk id), consumed by
  ``EmbeddingWorker``.

:class:`QueuedJob` is the envelope every :class:`IJobQueue` implementation
hands to the queue worker: the payload plus attempt bookkeeping.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.chunk import ChunkMetadata, DocumentSource, TokenRange, utc_now

DOCUMENT_CHUNK_QUEUE = "document-chunk"
CHUNK_EMBEDDING_QUEUE = "chunk-embedding"


class JobState(str, Enum):  # noqa: UP042
    """Lifecycle of a queued job."""

    WAITING = "waiting"      # Ready (or scheduled) to be reserved
    ACTIVE = "active"        # Reserved by a worker
    COMPLETED = "completed"
    FAILED = "failed"        # Non-retryable error or attempts exhausted


class DocumentChunkJob(BaseModel):
    """Request to chunk one document."""

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(min_length=1)
    text: str
    job_id: str | None = None
    source: DocumentSource


class EmbeddingJob(BaseModel):
    """Request to embed one persisted chunk."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    document_id: str
    chunk_index: int = Field(ge=0)
    text: str
    token_range: TokenRange
    token_count: int = Field(ge=0)
    metadata: ChunkMetadata


class QueuedJob(BaseModel):
    """A job as stored by a queue: payload plus retry bookkeeping.

    ``attempts_made`` counts reservations, so it is already incremented
    while the handler runs; the first run sees ``attempts_made == 1``.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str
    name: str
    payload: dict[str, Any] = Field(default_factory=dict)
    state: JobState = JobState.WAITING
    attempts_made: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=1, ge=1)
    # Base delay in seconds for exponential backoff between attempts.
    backoff_delay: float = Field(default=0.0, ge=0.0)
    available_at: datetime = Field(default_factory=utc_now)
    last_error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.max_attempts - self.attempts_made)


class QueueCounts(BaseModel):
    """Number of jobs per state in one queue."""

    model_config = ConfigDict(frozen=True)

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def pending(self) -> int:
        return self.waiting + self.active
