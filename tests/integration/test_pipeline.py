"""Integration tests for the two-stage ingestion pipeline.

Wires the real components through ``build_components`` (SQLite chunk
store, in-memory or SQLite queues, queue workers) with a scripted
embedding provider, then drains both stages and inspects chunk state.
"""

from __future__ import annotations

import functools
from pathlib import Path
from typing import Any

import pytest

from src.config.settings import Settings
from src.main import build_components, drain_pipeline, initialize_components
from src.models.chunk import ChunkStatus, DocumentLanguage
from src.models.jobs import JobState
from src.providers.embedding.hashing_embedding_provider import hash_embed
from src.services.ingestion.chunker import TextChunker
from src.utils.errors import EmbeddingError, ValidationError
from tests.conftest import (
    DUTCH_FAQ,
    ENGLISH_FAQ,
    ScriptedEmbeddingProvider,
    WhitespaceEncoding,
    numbered_words,
    rate_limited,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings(tmp_path: Path, **overrides) -> Settings:
    defaults = {
        "_env_file": None,
        "openai_api_key": "",
        "openai_base_url": "",
        "chunk_db_path": str(tmp_path / "chunks.db"),
        "job_db_path": str(tmp_path / "jobs.db"),
        "chunk_min_tokens": 5,
        "chunk_max_tokens": 10,
        "chunk_overlap_tokens": 2,
        "embedding_job_attempts": 5,
        "embedding_backoff_seconds": 0.0,
        "worker_poll_interval_seconds": 0.01,
    }
    defaults.update(overrides)
    return Settings(**defaults)


@pytest.fixture
def word_tokens(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make build_components chunk on whitespace instead of tiktoken."""
    monkeypatch.setattr(
        "src.main.TextChunker", functools.partial(TextChunker, encoding=WhitespaceEncoding())
    )


async def _pipeline(
    tmp_path: Path,
    workspace_config: dict[str, Any],
    provider: ScriptedEmbeddingProvider,
    in_memory_queues: bool = True,
    **overrides,
) -> dict[str, Any]:
    components = build_components(
        _settings(tmp_path, **overrides),
        config=workspace_config,
        embedding_provider=provider,
        in_memory_queues=in_memory_queues,
    )
    await initialize_components(components)
    return components


_SOURCE = {"source_type": "file", "filename": "notes.txt", "workspace_id": "acme-support"}


# ---------------------------------------------------------------------------
# Queued ingestion
# ---------------------------------------------------------------------------


@pytest.mark.usefixtures("word_tokens")
class TestQueuedIngestion:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("in_memory_queues", [True, False], ids=["memory", "sqlite"])
    async def test_document_is_chunked_and_vectorized(
        self, tmp_path: Path, workspace_config: dict[str, Any], in_memory_queues: bool
    ) -> None:
        provider = ScriptedEmbeddingProvider()
        components = await _pipeline(
            tmp_path, workspace_config, provider, in_memory_queues=in_memory_queues
        )
        pipeline = components["training_pipeline"]

        job_id = await pipeline.enqueue_document_job("notes", numbered_words(25), _SOURCE)
        processed = await drain_pipeline(components)

        assert job_id
        # 25 tokens, max 10, overlap 2 -> [0,10) [8,18) [16,25)
        assert processed == {"chunk_jobs": 1, "embedding_jobs": 3}
        counts = await pipeline.get_document_status("notes")
        assert counts[ChunkStatus.VECTORIZED] == 3
        last = await pipeline.get_chunk_status("notes::chunk::2")
        assert (last.token_range.start, last.token_range.end) == (16, 25)
        assert last.metadata.filename == "notes.txt"
        assert len(last.vector) == provider.get_dimension()

    @pytest.mark.asyncio
    async def test_transient_failures_retry_until_vectorized(
        self, tmp_path: Path, workspace_config: dict[str, Any]
    ) -> None:
        provider = ScriptedEmbeddingProvider(failures=[rate_limited()] * 3)
        components = await _pipeline(tmp_path, workspace_config, provider)
        pipeline = components["training_pipeline"]

        await pipeline.enqueue_document_job("short", numbered_words(8), _SOURCE)
        await drain_pipeline(components)

        record = await pipeline.get_chunk_status("short::chunk::0")
        assert record.status == ChunkStatus.VECTORIZED
        assert record.attempts == 4
        assert record.error is None
        assert len(provider.calls) == 4

    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_retried(
        self, tmp_path: Path, workspace_config: dict[str, Any]
    ) -> None:
        bad_request = EmbeddingError(message="Input too long", status_code=400)
        provider = ScriptedEmbeddingProvider(failures=[bad_request])
        components = await _pipeline(tmp_path, workspace_config, provider)
        pipeline = components["training_pipeline"]

        await pipeline.enqueue_document_job("short", numbered_words(8), _SOURCE)
        await drain_pipeline(components)

        record = await pipeline.get_chunk_status("short::chunk::0")
        assert record.status == ChunkStatus.FAILED
        assert record.attempts == 1
        assert "Input too long" in record.error
        job = await components["embedding_queue"].get("short::chunk::0")
        assert job.state == JobState.FAILED

    @pytest.mark.asyncio
    async def test_exhausted_attempts_mark_chunk_failed(
        self, tmp_path: Path, workspace_config: dict[str, Any]
    ) -> None:
        provider = ScriptedEmbeddingProvider(failures=[rate_limited("still limited")] * 10)
        components = await _pipeline(
            tmp_path, workspace_config, provider, embedding_job_attempts=3
        )
        pipeline = components["training_pipeline"]

        await pipeline.enqueue_document_job("short", numbered_words(8), _SOURCE)
        await drain_pipeline(components)

        record = await pipeline.get_chunk_status("short::chunk::0")
        assert record.status == ChunkStatus.FAILED
        assert record.attempts == 3
        assert "still limited" in record.error
        assert len(provider.calls) == 3

    @pytest.mark.asyncio
    async def test_duplicate_job_id_is_deduplicated(
        self, tmp_path: Path, workspace_config: dict[str, Any]
    ) -> None:
        components = await _pipeline(tmp_path, workspace_config, ScriptedEmbeddingProvider())
        pipeline = components["training_pipeline"]

        first = await pipeline.enqueue_document_job(
            "notes", numbered_words(8), _SOURCE, job_id="job-1"
        )
        second = await pipeline.enqueue_document_job(
            "notes", numbered_words(8), _SOURCE, job_id="job-1"
        )
        processed = await drain_pipeline(components)

        assert first == second == "job-1"
        assert processed["chunk_jobs"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("in_memory_queues", [True, False], ids=["memory", "sqlite"])
    async def test_reingest_after_permanent_failure(
        self, tmp_path: Path, workspace_config: dict[str, Any], in_memory_queues: bool
    ) -> None:
        bad_request = EmbeddingError(message="Input too long", status_code=400)
        provider = ScriptedEmbeddingProvider(failures=[bad_request])
        components = await _pipeline(
            tmp_path, workspace_config, provider, in_memory_queues=in_memory_queues
        )
        pipeline = components["training_pipeline"]

        await pipeline.enqueue_document_job("short", numbered_words(8), _SOURCE)
        await drain_pipeline(components)
        assert (await pipeline.get_chunk_status("short::chunk::0")).status == ChunkStatus.FAILED

        await pipeline.enqueue_document_job("short", numbered_words(8), _SOURCE)
        processed = await drain_pipeline(components)

        assert processed == {"chunk_jobs": 1, "embedding_jobs": 1}
        record = await pipeline.get_chunk_status("short::chunk::0")
        assert record.status == ChunkStatus.VECTORIZED
        assert record.error is None
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("in_memory_queues", [True, False], ids=["memory", "sqlite"])
    async def test_reingest_with_new_text_replaces_vector(
        self, tmp_path: Path, workspace_config: dict[str, Any], in_memory_queues: bool
    ) -> None:
        provider = ScriptedEmbeddingProvider()
        components = await _pipeline(
            tmp_path, workspace_config, provider, in_memory_queues=in_memory_queues
        )
        pipeline = components["training_pipeline"]

        await pipeline.enqueue_document_job("short", numbered_words(8), _SOURCE)
        await drain_pipeline(components)
        await pipeline.enqueue_document_job("short", numbered_words(8, prefix="z"), _SOURCE)
        await drain_pipeline(components)

        record = await pipeline.get_chunk_status("short::chunk::0")
        assert record.status == ChunkStatus.VECTORIZED
        assert record.text == numbered_words(8, prefix="z")
        assert record.vector == hash_embed(record.text, 32)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("in_memory_queues", [True, False], ids=["memory", "sqlite"])
    async def test_reingest_while_embedding_pending_uses_latest_text(
        self, tmp_path: Path, workspace_config: dict[str, Any], in_memory_queues: bool
    ) -> None:
        provider = ScriptedEmbeddingProvider()
        components = await _pipeline(
            tmp_path, workspace_config, provider, in_memory_queues=in_memory_queues
        )
        pipeline = components["training_pipeline"]

        await pipeline.enqueue_document_job("short", numbered_words(8), _SOURCE)
        await components["chunk_runner"].run_until_idle()
        await pipeline.enqueue_document_job("short", numbered_words(8, prefix="z"), _SOURCE)
        await components["chunk_runner"].run_until_idle()
        assert (await components["embedding_queue"].counts()).waiting == 1

        embedded = await components["embedding_runner"].run_until_idle()

        assert embedded == 1
        record = await pipeline.get_chunk_status("short::chunk::0")
        assert record.status == ChunkStatus.VECTORIZED
        assert record.text.startswith("z0")
        assert record.vector == hash_embed(record.text, 32)
        assert provider.calls == [record.text]

    @pytest.mark.asyncio
    async def test_blank_document_id_rejected(
        self, tmp_path: Path, workspace_config: dict[str, Any]
    ) -> None:
        components = await _pipeline(tmp_path, workspace_config, ScriptedEmbeddingProvider())
        with pytest.raises(ValidationError):
            await components["training_pipeline"].enqueue_document_job(" ", "text", _SOURCE)
        assert (await components["chunk_queue"].counts()).waiting == 0


# ---------------------------------------------------------------------------
# Direct ingestion
# ---------------------------------------------------------------------------


@pytest.mark.usefixtures("word_tokens")
class TestDirectIngestion:
    @pytest.mark.asyncio
    async def test_ingest_document(
        self, tmp_path: Path, workspace_config: dict[str, Any]
    ) -> None:
        components = await _pipeline(tmp_path, workspace_config, ScriptedEmbeddingProvider())

        result = await components["direct_ingestion"].ingest_document(
            "faq-nl", DUTCH_FAQ, {"source_type": "faq", "workspace_id": "acme-support"}
        )

        assert result.error is None
        assert result.language == DocumentLanguage.NL
        assert result.chunks_created == result.chunks_vectorized > 0
        counts = await components["repository"].count_by_status("faq-nl")
        assert counts[ChunkStatus.VECTORIZED] == result.chunks_created

    @pytest.mark.asyncio
    async def test_embedding_failure_marks_every_chunk_failed(
        self, tmp_path: Path, workspace_config: dict[str, Any]
    ) -> None:
        provider = ScriptedEmbeddingProvider(failures=[rate_limited()])
        components = await _pipeline(tmp_path, workspace_config, provider)

        result = await components["direct_ingestion"].ingest_document(
            "faq-en", ENGLISH_FAQ, _SOURCE
        )

        assert result.error is not None
        assert result.chunks_vectorized == 0
        assert result.chunks_failed == result.chunks_created
        counts = await components["repository"].count_by_status("faq-en")
        assert counts[ChunkStatus.FAILED] == result.chunks_created
