"""Knowledge-core domain models -- re-exports all public model classes.

Other parts of the codebase import from ``src.models`` rather than from the
individual submodules:

    - chunk.py      -- Document sources, chunk records and their status machine
    - jobs.py       -- Queue payloads and the queue envelope
    - retrieval.py  -- Knowledge chunks, citations, prompt payload, responses
    - workspace.py  -- Workspace read model (languages, tone, branding)

If you add a new model class, remember to add it to ``__all__`` too.
"""

from __future__ import annotations

# --- Ingestion side: what the chunker produces and the repository stores. ---
from src.models.chunk import (
    ChunkingResult,
    ChunkMetadata,
    ChunkRecord,
    ChunkStatus,
    DocumentLanguage,
    DocumentSource,
    IngestionResult,
    TokenRange,
    build_chunk_id,
)
# --- Job pipeline: payloads and queue bookkeeping. ---
from src.models.jobs import (
    CHUNK_EMBEDDING_QUEUE,
    DOCUMENT_CHUNK_QUEUE,
    DocumentChunkJob,
    EmbeddingJob,
    JobState,
    QueueCounts,
    QueuedJob,
)
# --- Retrieval side. ---
from src.models.retrieval import (
    Citation,
    KnowledgeChunk,
    KnowledgeSource,
    PromptPayload,
    RetrievalMetadata,
    RetrievalResponse,
    RetrievedContext,
    ScoredChunk,
    SourceKind,
)
from src.models.workspace import (
    Branding,
    ToneOfVoice,
    Workspace,
    WorkspaceStatus,
)

__all__ = [
    "Branding",
    "CHUNK_EMBEDDING_QUEUE",
    "ChunkMetadata",
    "ChunkRecord",
    "ChunkStatus",
    "ChunkingResult",
    "Citation",
    "DOCUMENT_CHUNK_QUEUE",
    "DocumentChunkJob",
    "DocumentLanguage",
    "DocumentSource",
    "EmbeddingJob",
    "IngestionResult",
    "JobState",
    "KnowledgeChunk",
    "KnowledgeSource",
    "PromptPayload",
    "QueueCounts",
    "QueuedJob",
    "RetrievalMetadata",
    "RetrievalResponse",
    "RetrievedContext",
    "ScoredChunk",
    "SourceKind",
    "TokenRange",
    "ToneOfVoice",
    "Workspace",
    "WorkspaceStatus",
    "build_chunk_id",
]
