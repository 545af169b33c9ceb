"""Composition root of the workspace knowledge core.

Wires providers, services and queue workers together via dependency
injection.  Loads configuration from ``.env`` and ``config/config.yaml``;
nothing in the codebase reaches for a module-level queue, connection or
provider singleton -- everything is built here and passed down.

Used by the CLI (``python -m src.cli``) and by integration tests.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.config.loader import load_config
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.job_queue import IJobQueue
from src.models.jobs import CHUNK_EMBEDDING_QUEUE, DOCUMENT_CHUNK_QUEUE
from src.pipeline.job_runner import QueueWorker
from src.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.knowledge.repository_knowledge_store import RepositoryKnowledgeStore
from src.providers.queue.memory_job_queue import InMemoryJobQueue
from src.providers.queue.sqlite_job_queue import SQLiteJobQueue
from src.providers.repository.sqlite_chunk_repository import SQLiteChunkRepository
from src.providers.workspace.config_workspace_provider import ConfigWorkspaceProvider
from src.services.ingestion.chunk_worker import ChunkWorker
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.direct_ingestion import DirectIngestionService
from src.services.ingestion.embedding_worker import EmbeddingWorker
from src.services.ingestion.training_pipeline import TrainingPipeline
from src.services.retrieval.retrieval_service import RetrievalService

logger = structlog.get_logger(logger_name=__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider.

    Priority: OpenAI/OpenAI-compatible (if an API key or base URL is set)
    -> deterministic hashing embedding (always available).
    """
    if app_settings.uses_openai_embeddings():
        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider
    return HashingEmbeddingProvider()


def _build_queue(name: str, app_settings: Settings, in_memory: bool) -> IJobQueue:
    if in_memory:
        return InMemoryJobQueue(name)
    return SQLiteJobQueue(name, db_path=app_settings.job_db_path)


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(
    custom_settings: Settings | None = None,
    config: dict[str, Any] | None = None,
    embedding_provider: IEmbeddingProvider | None = None,
    in_memory_queues: bool = False,
) -> dict[str, Any]:
    """Construct every provider, service and worker.

    Parameters
    ----------
    custom_settings:
        Application settings.  A fresh ``Settings()`` when omitted.
    config:
        Merged config dict (workspace seeds).  Loaded from
        ``settings.workspace_config_path`` when omitted.
    embedding_provider:
        Overrides provider selection (tests inject fakes here).
    in_memory_queues:
        Use process-local queues instead of the SQLite job database.

    Returns
    -------
    dict
        Component instances keyed by role name.  Call
        :func:`initialize_components` before use.
    """
    s = custom_settings or Settings()
    cfg = config if config is not None else load_config(s.workspace_config_path, settings=s)

    provider = embedding_provider or _build_embedding_provider(s)
    repository = SQLiteChunkRepository(db_path=s.chunk_db_path)
    chunk_queue = _build_queue(DOCUMENT_CHUNK_QUEUE, s, in_memory_queues)
    embedding_queue = _build_queue(CHUNK_EMBEDDING_QUEUE, s, in_memory_queues)

    chunker = TextChunker(
        min_tokens=s.chunk_min_tokens,
        max_tokens=s.chunk_max_tokens,
        overlap=s.chunk_overlap_tokens,
        encoding_name=s.chunk_encoding,
    )
    chunk_worker = ChunkWorker(
        repository=repository,
        embedding_queue=embedding_queue,
        chunker=chunker,
        embedding_job_attempts=s.embedding_job_attempts,
        embedding_backoff_delay=s.embedding_backoff_seconds,
    )
    embedding_worker = EmbeddingWorker(
        repository=repository,
        provider=provider,
        base_retry_delay=s.embedding_backoff_seconds,
        max_retry_delay=s.retry_delay_cap_seconds,
        timeout_seconds=s.embedding_timeout_seconds,
    )

    workspaces = ConfigWorkspaceProvider.from_config(cfg)
    knowledge_store = RepositoryKnowledgeStore(repository)

    logger.info(
        "components_built",
        embedding_provider=provider.get_provider_name(),
        queues="memory" if in_memory_queues else "sqlite",
        chunk_db=s.chunk_db_path,
    )

    return {
        "settings": s,
        "config": cfg,
        "embedding_provider": provider,
        "repository": repository,
        "chunk_queue": chunk_queue,
        "embedding_queue": embedding_queue,
        "chunker": chunker,
        "training_pipeline": TrainingPipeline(chunk_queue=chunk_queue, repository=repository),
        "chunk_worker": chunk_worker,
        "embedding_worker": embedding_worker,
        "chunk_runner": QueueWorker(
            chunk_queue,
            chunk_worker.handle,
            concurrency=s.chunk_worker_concurrency,
            poll_interval=s.worker_poll_interval_seconds,
        ),
        "embedding_runner": QueueWorker(
            embedding_queue,
            embedding_worker.handle,
            concurrency=s.embedding_worker_concurrency,
            poll_interval=s.worker_poll_interval_seconds,
            on_failed=embedding_worker.handle_exhausted,
        ),
        "direct_ingestion": DirectIngestionService(chunker, repository, provider),
        "workspaces": workspaces,
        "knowledge_store": knowledge_store,
        "retrieval_service": RetrievalService(
            workspaces=workspaces,
            knowledge_store=knowledge_store,
            embedding_provider=provider,
            default_max_contexts=s.retrieval_max_contexts,
            default_mmr_lambda=s.retrieval_mmr_lambda,
        ),
    }


async def initialize_components(components: dict[str, Any]) -> None:
    """Create database schemas for the repository and both queues."""
    await components["repository"].initialize()
    await components["chunk_queue"].initialize()
    await components["embedding_queue"].initialize()


async def drain_pipeline(components: dict[str, Any]) -> dict[str, int]:
    """Run both stages until no job is waiting or active.

    Chunking runs first so every embedding job exists before the embedding
    stage drains.
    """
    chunked = await components["chunk_runner"].run_until_idle()
    embedded = await components["embedding_runner"].run_until_idle()
    logger.info("pipeline_drained", chunk_jobs=chunked, embedding_jobs=embedded)
    return {"chunk_jobs": chunked, "embedding_jobs": embedded}
