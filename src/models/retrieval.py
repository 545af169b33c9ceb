"""Retrieval-side data models.

The retrieval path works on :class:`KnowledgeChunk` -- a read view of a
vectorized chunk scoped to one workspace and language -- and returns a
:class:`RetrievalResponse` carrying the reranked contexts, the prompt
payload for the answer-generation step, and request metadata.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.models.chunk import DocumentLanguage, utc_now
from src.models.workspace import Branding, ToneOfVoice


class SourceKind(str, Enum):  # noqa: UP042
    URL = "url"
    FILE = "file"


class KnowledgeSource(BaseModel):
    """Citation target of a knowledge chunk: a URL or an uploaded file."""

    model_config = ConfigDict(frozen=True)

    kind: SourceKind
    title: str
    url: str | None = None
    filename: str | None = None


class KnowledgeChunk(BaseModel):
    """A vectorized chunk as served to retrieval."""

    model_config = ConfigDict(frozen=True)

    id: str
    workspace_id: str
    language: DocumentLanguage
    content: str
    summary: str = ""
    keywords: list[str] = Field(default_factory=list)
    embedding: list[float]
    source: KnowledgeSource
    created_at: datetime = Field(default_factory=utc_now)


class ScoredChunk(BaseModel):
    """A knowledge chunk with its cosine similarity to the query."""

    model_config = ConfigDict(frozen=True)

    chunk: KnowledgeChunk
    score: float

    @property
    def id(self) -> str:
        return self.chunk.id


class Citation(BaseModel):
    """A short, display-ready reference to a retrieved chunk."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    snippet: str
    url: str | None = None
    filename: str | None = None


class RetrievedContext(BaseModel):
    """One context selected by MMR, with its citation."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    summary: str
    keywords: list[str] = Field(default_factory=list)
    language: DocumentLanguage
    score: float
    source: KnowledgeSource
    citation: Citation


class PromptPayload(BaseModel):
    """Everything the answer-generation step needs to build its LLM prompt."""

    model_config = ConfigDict(frozen=True)

    system: str
    tone: ToneOfVoice
    language: DocumentLanguage
    brand: Branding
    instructions: str
    citations: list[Citation] = Field(default_factory=list)


class RetrievalMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    workspace_id: str
    workspace_name: str
    query: str
    language: DocumentLanguage
    tone: ToneOfVoice
    retrieved_at: datetime = Field(default_factory=utc_now)
    context_count: int = Field(default=0, ge=0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class RetrievalResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    contexts: list[RetrievedContext] = Field(default_factory=list)
    metadata: RetrievalMetadata
    prompt: PromptPayload
