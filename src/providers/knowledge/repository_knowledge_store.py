"""Knowledge store serving vectorized chunks from the chunk repository.

Bridges the ingestion and retrieval halves of the core: every chunk the
embedding worker marks ``vectorized`` becomes a :class:`KnowledgeChunk`
for its workspace (``metadata.workspace_id``) and detected language.
Chunks without a workspace id are never served; chunks whose language
could not be detected are served for every language of the workspace.
"""

from __future__ import annotations

import re
from collections import Counter

import structlog

from src.interfaces.chunk_repository import IChunkRepository
from src.interfaces.knowledge_store import IKnowledgeStore
from src.models.chunk import ChunkRecord, DocumentLanguage
from src.models.retrieval import KnowledgeChunk, KnowledgeSource, SourceKind

logger = structlog.get_logger(logger_name=__name__)

_SUMMARY_CHARS = 160
_KEYWORD_COUNT = 5
_WORD_PATTERN = re.compile(r"[^\W\d_]{4,}")

# Function words that would otherwise dominate keyword counts.
_STOPWORDS = frozenset(
    {
        "that", "this", "with", "from", "have", "will", "your", "about", "their",
        "there", "which", "when", "what", "been", "were", "into", "they", "also",
        "voor", "naar", "heeft", "wordt", "kunnen", "moeten", "zijn", "deze",
        "onze", "jouw", "door", "maar", "worden", "hebben", "zoals", "over",
    }
)


def summarize(record: ChunkRecord) -> str:
    """Chunk title when present, otherwise the opening of the chunk text."""
    if record.metadata.title:
        return record.metadata.title
    text = " ".join(record.text.split())
    if len(text) <= _SUMMARY_CHARS:
        return text
    return text[:_SUMMARY_CHARS].rsplit(" ", 1)[0] + "…"


def extract_keywords(text: str, limit: int = _KEYWORD_COUNT) -> list[str]:
    """Most frequent content words, ties broken alphabetically."""
    words = [w for w in _WORD_PATTERN.findall(text.lower()) if w not in _STOPWORDS]
    counts = Counter(words)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [word for word, _ in ranked[:limit]]


def to_knowledge_source(record: ChunkRecord) -> KnowledgeSource:
    meta = record.metadata
    if meta.url:
        return KnowledgeSource(kind=SourceKind.URL, title=meta.title or meta.url, url=meta.url)
    filename = meta.filename or record.document_id
    return KnowledgeSource(kind=SourceKind.FILE, title=meta.title or filename, filename=filename)


def to_knowledge_chunk(record: ChunkRecord) -> KnowledgeChunk:
    return KnowledgeChunk(
        id=record.chunk_id,
        workspace_id=record.metadata.workspace_id or "",
        language=record.metadata.language,
        content=record.text,
        summary=summarize(record),
        keywords=extract_keywords(record.text),
        embedding=record.vector or [],
        source=to_knowledge_source(record),
        created_at=record.created_at,
    )


class RepositoryKnowledgeStore(IKnowledgeStore):
    """Read-only view over vectorized chunks in an :class:`IChunkRepository`."""

    def __init__(self, repository: IChunkRepository) -> None:
        self._repository = repository

    async def list_chunks(
        self, workspace_id: str, language: DocumentLanguage
    ) -> list[KnowledgeChunk]:
        records = await self._repository.list_vectorized_chunks(workspace_id=workspace_id)
        chunks = [
            to_knowledge_chunk(r)
            for r in records
            if r.vector and r.metadata.language in (language, DocumentLanguage.UNKNOWN)
        ]
        logger.debug(
            "knowledge_chunks_loaded",
            workspace_id=workspace_id,
            language=language.value,
            vectorized=len(records),
            served=len(chunks),
        )
        return chunks
