"""Shared pytest fixtures for the knowledge-core test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.chunk import DocumentLanguage, DocumentSource
from src.models.retrieval import KnowledgeChunk, KnowledgeSource, SourceKind
from src.models.workspace import Branding, ToneOfVoice, Workspace, WorkspaceStatus
from src.providers.embedding.hashing_embedding_provider import hash_embed
from src.providers.queue.memory_job_queue import InMemoryJobQueue
from src.providers.repository.sqlite_chunk_repository import SQLiteChunkRepository
from src.providers.workspace.config_workspace_provider import ConfigWorkspaceProvider
from src.services.ingestion.chunker import TextChunker
from src.utils.errors import EmbeddingError

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class WhitespaceEncoding:
    """Tokenizer double: one token per whitespace-separated word.

    Makes token counts obvious (``"w0 w1 w2"`` is three tokens) so window
    arithmetic can be asserted exactly without loading tiktoken data.
    """

    def __init__(self) -> None:
        self._vocab: list[str] = []
        self._ids: dict[str, int] = {}

    def encode_ordinary(self, text: str) -> list[int]:
        tokens = []
        for word in text.split():
            if word not in self._ids:
                self._ids[word] = len(self._vocab)
                self._vocab.append(word)
            tokens.append(self._ids[word])
        return tokens

    def decode(self, tokens: list[int]) -> str:
        return " ".join(self._vocab[t] for t in tokens)


class ScriptedEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider that raises the queued errors first, then embeds.

    ``failures`` is consumed front to back, one entry per call; once empty
    every call returns the deterministic hashing embedding of the text.
    """

    def __init__(self, failures: list[BaseException] | None = None, dimension: int = 32) -> None:
        self.failures = list(failures or [])
        self.calls: list[str] = []
        self._dimension = dimension

    async def embed(self, text: str, model: str | None = None) -> list[float]:
        self.calls.append(text)
        if self.failures:
            raise self.failures.pop(0)
        return hash_embed(text, self._dimension)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed(t) for t in texts]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "scripted_embedding"

    def is_available(self) -> bool:
        return True


def rate_limited(message: str = "Rate limit exceeded") -> EmbeddingError:
    return EmbeddingError(message=message, provider_name="scripted_embedding", status_code=429)


def numbered_words(count: int, prefix: str = "w") -> str:
    """``"w0 w1 ... w{count-1}"`` -- *count* distinct whitespace tokens."""
    return " ".join(f"{prefix}{i}" for i in range(count))


ENGLISH_FAQ = (
    "To reset the password for your account, open the settings page and choose the "
    "security tab. You will receive an email with a link that is valid for one hour. "
    "If the link has expired you can request a new one from the same page, and our "
    "support team will help you with anything else that comes up."
)

DUTCH_FAQ = (
    "Om het wachtwoord van je account te wijzigen, open je de instellingen en kies je "
    "het tabblad beveiliging. Je ontvangt een e-mail met een link die een uur geldig is. "
    "Als de link is verlopen kan je een nieuwe aanvragen via dezelfde pagina, en onze "
    "klantenservice helpt je graag verder met andere vragen over het gebruik."
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def whitespace_encoding() -> WhitespaceEncoding:
    return WhitespaceEncoding()


@pytest.fixture
def word_chunker(whitespace_encoding: WhitespaceEncoding) -> TextChunker:
    """TextChunker with default bounds over the whitespace tokenizer."""
    return TextChunker(encoding=whitespace_encoding)


@pytest.fixture
def small_chunker() -> TextChunker:
    """TextChunker with tiny bounds (min 5, max 10, overlap 2) for pipeline tests."""
    return TextChunker(encoding=WhitespaceEncoding(), min_tokens=5, max_tokens=10, overlap=2)


@pytest.fixture
def file_source() -> DocumentSource:
    return DocumentSource(
        source_type="file",
        filename="faq.txt",
        title="Support FAQ",
        workspace_id="acme-support",
    )


@pytest.fixture
async def chunk_repository(tmp_path: Path) -> SQLiteChunkRepository:
    repository = SQLiteChunkRepository(db_path=tmp_path / "chunks.db")
    await repository.initialize()
    return repository


@pytest.fixture
def embedding_queue() -> InMemoryJobQueue:
    return InMemoryJobQueue("chunk-embedding")


@pytest.fixture
def chunk_queue() -> InMemoryJobQueue:
    return InMemoryJobQueue("document-chunk")


@pytest.fixture
def workspace_config() -> dict[str, Any]:
    """Config dict shaped like ``config/config.yaml``."""
    return {
        "workspaces": [
            {
                "id": "acme-support",
                "name": "Acme Support",
                "status": "active",
                "languages": ["en", "nl"],
                "tone_of_voice": "supportive",
                "branding": {
                    "primary": "#1d4ed8",
                    "accent": "#f59e0b",
                    "background": "#f8fafc",
                },
            },
            {
                "id": "bakkerij-jansen",
                "name": "Bakkerij Jansen",
                "status": "active",
                "languages": ["nl"],
                "tone_of_voice": "friendly",
            },
            {
                "id": "legacy-portal",
                "name": "Legacy Portal",
                "status": "archived",
                "languages": ["en"],
                "tone_of_voice": "professional",
            },
        ]
    }


@pytest.fixture
def workspace_provider(workspace_config: dict[str, Any]) -> ConfigWorkspaceProvider:
    return ConfigWorkspaceProvider.from_config(workspace_config)


@pytest.fixture
def acme_workspace() -> Workspace:
    return Workspace(
        id="acme-support",
        name="Acme Support",
        status=WorkspaceStatus.ACTIVE,
        languages=[DocumentLanguage.EN, DocumentLanguage.NL],
        tone_of_voice=ToneOfVoice.SUPPORTIVE,
        branding=Branding(primary="#1d4ed8", accent="#f59e0b", background="#f8fafc"),
    )


def make_knowledge_chunk(
    chunk_id: str,
    content: str,
    workspace_id: str = "acme-support",
    language: DocumentLanguage = DocumentLanguage.EN,
    embedding: list[float] | None = None,
    url: str | None = None,
) -> KnowledgeChunk:
    """Build a KnowledgeChunk embedded with the hashing embedding."""
    if url:
        source = KnowledgeSource(kind=SourceKind.URL, title=f"Page {chunk_id}", url=url)
    else:
        source = KnowledgeSource(
            kind=SourceKind.FILE, title=f"File {chunk_id}", filename=f"{chunk_id}.txt"
        )
    return KnowledgeChunk(
        id=chunk_id,
        workspace_id=workspace_id,
        language=language,
        content=content,
        summary=content[:40],
        keywords=[],
        embedding=embedding if embedding is not None else hash_embed(content),
        source=source,
    )
