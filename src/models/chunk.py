"""Chunk data models for the ingestion side of the knowledge core.

Defines Pydantic v2 models for document sources, token ranges, chunk
metadata and the persisted :class:`ChunkRecord`.  All models use frozen
config -- status transitions produce new ChunkRecord instances via
``model_copy(update={...})`` and the repository stores the result.

Chunk lifecycle::

    queued --> processing --> vectorized
                   |  ^
                   v  |
                 retrying
                   |
                   v
                 failed

``vectorized`` and ``failed`` are terminal for a given ingestion run.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    """Timezone-aware UTC timestamp used for created/updated fields."""
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ChunkStatus(str, Enum):  # noqa: UP042
    """Processing state of a single chunk."""

    QUEUED = "queued"          # Persisted, embedding job enqueued
    PROCESSING = "processing"  # Embedding call in flight
    RETRYING = "retrying"      # Transient failure, job rescheduled
    VECTORIZED = "vectorized"  # Vector stored, servable by retrieval
    FAILED = "failed"          # Permanent failure or attempts exhausted


class DocumentLanguage(str, Enum):  # noqa: UP042
    """Languages the heuristic detector can report."""

    EN = "en"
    NL = "nl"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Source / range value objects
# ---------------------------------------------------------------------------
class DocumentSource(BaseModel):
    """Where a document came from.

    ``source_type`` is free-form ("url", "file", "faq", ...) but must not be
    blank; :meth:`TrainingPipeline.enqueue_document_job` rejects blank values
    with a domain ``ValidationError`` before anything is enqueued.
    """

    model_config = ConfigDict(frozen=True)

    source_type: str
    url: str | None = None
    filename: str | None = None
    title: str | None = None
    # Scope of the workspace that owns the document.  Retrieval only serves
    # chunks whose metadata carries the requested workspace id.
    workspace_id: str | None = None


class TokenRange(BaseModel):
    """Half-open ``[start, end)`` token offsets of a chunk in its document."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0)
    end: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "TokenRange":
        if self.end < self.start:
            raise ValueError(f"token range end ({self.end}) precedes start ({self.start})")
        return self

    @property
    def length(self) -> int:
        return self.end - self.start


class ChunkMetadata(BaseModel):
    """Provenance of a chunk: its document source plus derived fields."""

    model_config = ConfigDict(frozen=True)

    source_type: str
    url: str | None = None
    filename: str | None = None
    title: str | None = None
    workspace_id: str | None = None
    language: DocumentLanguage = DocumentLanguage.UNKNOWN
    # SHA-256 hex digest of the chunk text.
    checksum: str
    # Id of the chunking job that produced this chunk.
    job_id: str

    @classmethod
    def from_source(
        cls,
        source: DocumentSource,
        *,
        language: DocumentLanguage,
        checksum: str,
        job_id: str,
    ) -> "ChunkMetadata":
        return cls(
            **source.model_dump(),
            language=language,
            checksum=checksum,
            job_id=job_id,
        )

    def to_source(self) -> DocumentSource:
        return DocumentSource(
            source_type=self.source_type,
            url=self.url,
            filename=self.filename,
            title=self.title,
            workspace_id=self.workspace_id,
        )


# ---------------------------------------------------------------------------
# ChunkRecord -- the persisted unit of the ingestion pipeline.
# ---------------------------------------------------------------------------
class ChunkRecord(BaseModel):
    """A chunk of a document together with its embedding state.

    ``chunk_id`` is derived from the document id and the chunk index
    (see :func:`build_chunk_id`) so re-chunking the same document upserts
    the same rows instead of duplicating them.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    document_id: str
    chunk_index: int = Field(ge=0)
    text: str
    token_count: int = Field(ge=0)
    token_range: TokenRange
    metadata: ChunkMetadata
    status: ChunkStatus = ChunkStatus.QUEUED
    vector: list[float] | None = None
    error: str | None = None
    # Number of embedding attempts started for this chunk.
    attempts: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in (ChunkStatus.VECTORIZED, ChunkStatus.FAILED)


class ChunkingResult(BaseModel):
    """Output of :meth:`TextChunker.chunk_document`."""

    model_config = ConfigDict(frozen=True)

    language: DocumentLanguage
    chunks: list[ChunkRecord] = Field(default_factory=list)


class IngestionResult(BaseModel):
    """Summary of a direct (non-queued) ingestion run for one document.

    Returned by :class:`DirectIngestionService` and printed by the
    ``ingest`` CLI command.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    language: DocumentLanguage
    chunks_created: int = Field(default=0, ge=0)
    chunks_vectorized: int = Field(default=0, ge=0)
    chunks_failed: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    ingestion_time: float = Field(default=0.0, ge=0.0)
    error: str | None = None


def build_chunk_id(document_id: str, index: int) -> str:
    """Deterministic chunk identity: ``"{document_id}::chunk::{index}"``."""
    return f"{document_id}::chunk::{index}"
