"""Integration tests for retrieval over ingested workspace knowledge.

Documents are ingested through the real chunker, SQLite repository and
repository-backed knowledge store; retrieval then runs against them with
the same scripted embedding provider.
"""

from __future__ import annotations

import functools
from pathlib import Path
from typing import Any

import pytest

from src.config.settings import Settings
from src.main import build_components, initialize_components
from src.models.chunk import DocumentLanguage
from src.models.workspace import ToneOfVoice
from src.services.ingestion.chunker import TextChunker
from src.utils.confidence import EMPTY_RETRIEVAL_CONFIDENCE
from src.utils.errors import (
    EmptyQueryError,
    UnsupportedLanguageError,
    WorkspaceInactiveError,
    WorkspaceNotFoundError,
)
from tests.conftest import (
    DUTCH_FAQ,
    ENGLISH_FAQ,
    ScriptedEmbeddingProvider,
    WhitespaceEncoding,
    rate_limited,
)

BROKEN_DOC = (
    "This guide explains how the delivery schedule works for every order that "
    "you place with the support team during the week."
)


@pytest.fixture
async def components(
    tmp_path: Path, workspace_config: dict[str, Any], monkeypatch: pytest.MonkeyPatch
) -> dict[str, Any]:
    """Knowledge core with three ingested documents and one failed one."""
    monkeypatch.setattr(
        "src.main.TextChunker", functools.partial(TextChunker, encoding=WhitespaceEncoding())
    )
    settings = Settings(
        _env_file=None,
        openai_api_key="",
        openai_base_url="",
        chunk_db_path=str(tmp_path / "chunks.db"),
        job_db_path=str(tmp_path / "jobs.db"),
        chunk_min_tokens=5,
        chunk_max_tokens=10,
        chunk_overlap_tokens=2,
        retrieval_max_contexts=4,
    )
    # The first embedding call fails, so BROKEN_DOC ends up failed.
    provider = ScriptedEmbeddingProvider(failures=[rate_limited()])
    built = build_components(
        settings, config=workspace_config, embedding_provider=provider, in_memory_queues=True
    )
    await initialize_components(built)

    ingest = built["direct_ingestion"].ingest_document
    broken = await ingest(
        "broken", BROKEN_DOC, {"source_type": "file", "workspace_id": "acme-support"}
    )
    assert broken.error is not None
    await ingest(
        "faq-en",
        ENGLISH_FAQ,
        {"source_type": "url", "url": "https://acme.test/faq", "workspace_id": "acme-support"},
    )
    await ingest(
        "faq-nl",
        DUTCH_FAQ,
        {"source_type": "file", "filename": "faq-nl.md", "workspace_id": "acme-support"},
    )
    await ingest(
        "bakery",
        DUTCH_FAQ,
        {"source_type": "file", "filename": "bakkerij.md", "workspace_id": "bakkerij-jansen"},
    )
    return built


class TestRetrievalFlow:
    @pytest.mark.asyncio
    async def test_english_query(self, components: dict[str, Any]) -> None:
        response = await components["retrieval_service"].retrieve(
            "acme-support", "How do I reset the password for my account?", language="en"
        )

        assert 0 < len(response.contexts) <= 4
        assert all(c.id.startswith("faq-en::chunk::") for c in response.contexts)
        assert all(c.citation.url == "https://acme.test/faq" for c in response.contexts)
        assert len({c.citation.id for c in response.contexts}) == len(response.contexts)
        assert response.metadata.language == DocumentLanguage.EN
        assert response.metadata.tone == ToneOfVoice.SUPPORTIVE
        assert response.metadata.context_count == len(response.contexts)
        assert response.metadata.confidence > EMPTY_RETRIEVAL_CONFIDENCE
        assert response.prompt.citations == [c.citation for c in response.contexts]

    @pytest.mark.asyncio
    async def test_detects_dutch_and_stays_in_workspace(
        self, components: dict[str, Any]
    ) -> None:
        response = await components["retrieval_service"].retrieve(
            "acme-support", "Hoe kan ik het wachtwoord van mijn account wijzigen?"
        )

        assert response.metadata.language == DocumentLanguage.NL
        assert response.contexts
        assert all(c.id.startswith("faq-nl::chunk::") for c in response.contexts)
        assert all(c.language == DocumentLanguage.NL for c in response.contexts)

    @pytest.mark.asyncio
    async def test_failed_chunks_are_never_served(self, components: dict[str, Any]) -> None:
        response = await components["retrieval_service"].retrieve(
            "acme-support", "delivery schedule for my order", language="en", max_contexts=20
        )
        assert not any(c.id.startswith("broken::") for c in response.contexts)

    @pytest.mark.asyncio
    async def test_max_contexts_respected(self, components: dict[str, Any]) -> None:
        response = await components["retrieval_service"].retrieve(
            "bakkerij-jansen", "wachtwoord wijzigen", max_contexts=1
        )
        assert len(response.contexts) == 1
        assert response.contexts[0].citation.filename == "bakkerij.md"


class TestRetrievalErrors:
    @pytest.mark.asyncio
    async def test_blank_query(self, components: dict[str, Any]) -> None:
        with pytest.raises(EmptyQueryError):
            await components["retrieval_service"].retrieve("acme-support", "   ")

    @pytest.mark.asyncio
    async def test_unknown_workspace(self, components: dict[str, Any]) -> None:
        with pytest.raises(WorkspaceNotFoundError):
            await components["retrieval_service"].retrieve("nope", "hello there")

    @pytest.mark.asyncio
    async def test_archived_workspace(self, components: dict[str, Any]) -> None:
        with pytest.raises(WorkspaceInactiveError):
            await components["retrieval_service"].retrieve("legacy-portal", "hello there")

    @pytest.mark.asyncio
    async def test_language_not_enabled(self, components: dict[str, Any]) -> None:
        with pytest.raises(UnsupportedLanguageError):
            await components["retrieval_service"].retrieve(
                "bakkerij-jansen", "opening hours", language="en"
            )
