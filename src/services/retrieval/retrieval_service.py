"""Query-time retrieval: score, rerank and package workspace knowledge.

:meth:`RetrievalService.retrieve` runs these steps:

1. Reject blank queries (:class:`EmptyQueryError`).
2. Resolve the workspace (must exist and be active) and the language
   (explicit, or detected among the workspace's languages).
3. Embed the query with the same provider used at ingestion.
4. Load the workspace's chunks in that language and cosine-score them.
5. Keep the top ``min(len(corpus), max(max_contexts, 1) * 2)`` candidates
   and rerank them with MMR.
6. Wrap the selection as contexts with citations, build the prompt
   payload and compute retrieval confidence.

An empty corpus is not an error: the response carries zero contexts, the
no-context prompt disclaimer and the floor confidence.
"""

from __future__ import annotations

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.knowledge_store import IKnowledgeStore
from src.interfaces.workspace_provider import IWorkspaceProvider
from src.models.chunk import DocumentLanguage
from src.models.retrieval import (
    RetrievalMetadata,
    RetrievalResponse,
    RetrievedContext,
    ScoredChunk,
)
from src.models.workspace import Workspace
from src.services.language_detector import detect_preferred_language
from src.services.retrieval.mmr import DEFAULT_MMR_LAMBDA, apply_mmr
from src.services.retrieval.prompt import build_prompt_payload, create_citation
from src.services.retrieval.scoring import score_chunks
from src.utils.confidence import compute_retrieval_confidence, confidence_to_level
from src.utils.errors import (
    EmptyQueryError,
    UnsupportedLanguageError,
    WorkspaceInactiveError,
    WorkspaceNotFoundError,
)

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_MAX_CONTEXTS = 6
CANDIDATE_MULTIPLIER = 2


def to_retrieved_context(scored: ScoredChunk) -> RetrievedContext:
    chunk = scored.chunk
    return RetrievedContext(
        id=chunk.id,
        content=chunk.content,
        summary=chunk.summary,
        keywords=list(chunk.keywords),
        language=chunk.language,
        score=scored.score,
        source=chunk.source,
        citation=create_citation(chunk),
    )


def _dedupe_citation_ids(contexts: list[RetrievedContext]) -> list[RetrievedContext]:
    """Suffix colliding citation ids (``CDOC-1``, ``CDOC-1-2``, ...).

    Chunks of one document share their first five id characters, so two of
    them in the same response would otherwise be indistinguishable.
    """
    seen: dict[str, int] = {}
    result: list[RetrievedContext] = []
    for context in contexts:
        base = context.citation.id
        seen[base] = seen.get(base, 0) + 1
        if seen[base] > 1:
            citation = context.citation.model_copy(update={"id": f"{base}-{seen[base]}"})
            context = context.model_copy(update={"citation": citation})
        result.append(context)
    return result


class RetrievalService:
    """Serves workspace-scoped, MMR-reranked knowledge contexts."""

    def __init__(
        self,
        workspaces: IWorkspaceProvider,
        knowledge_store: IKnowledgeStore,
        embedding_provider: IEmbeddingProvider,
        default_max_contexts: int = DEFAULT_MAX_CONTEXTS,
        default_mmr_lambda: float = DEFAULT_MMR_LAMBDA,
    ) -> None:
        self._workspaces = workspaces
        self._knowledge_store = knowledge_store
        self._embedding_provider = embedding_provider
        self._default_max_contexts = default_max_contexts
        self._default_mmr_lambda = default_mmr_lambda

    async def retrieve(
        self,
        workspace_id: str,
        query: str,
        language: DocumentLanguage | str | None = None,
        max_contexts: int | None = None,
        mmr_lambda: float | None = None,
    ) -> RetrievalResponse:
        """Retrieve reranked contexts and a prompt payload for *query*.

        Raises
        ------
        EmptyQueryError
            If *query* is blank.
        WorkspaceNotFoundError
            If *workspace_id* is unknown.
        WorkspaceInactiveError
            If the workspace is archived.
        UnsupportedLanguageError
            If *language* is not enabled for the workspace.
        src.utils.errors.EmbeddingError
            If the query cannot be embedded.
        """
        trimmed = query.strip()
        if not trimmed:
            raise EmptyQueryError()

        workspace = await self._resolve_workspace(workspace_id)
        resolved_language = self._resolve_language(workspace, trimmed, language)
        limit = max(max_contexts if max_contexts is not None else self._default_max_contexts, 1)
        lam = mmr_lambda if mmr_lambda is not None else self._default_mmr_lambda

        query_embedding = await self._embedding_provider.embed(trimmed)
        chunks = await self._knowledge_store.list_chunks(workspace.id, resolved_language)
        scored = score_chunks(query_embedding, chunks)

        candidate_count = min(len(scored), limit * CANDIDATE_MULTIPLIER)
        reranked = apply_mmr(scored[:candidate_count], limit, lam)
        contexts = _dedupe_citation_ids([to_retrieved_context(s) for s in reranked[:limit]])

        confidence = compute_retrieval_confidence([c.score for c in contexts])
        prompt = build_prompt_payload(workspace, resolved_language, trimmed, contexts)
        metadata = RetrievalMetadata(
            workspace_id=workspace.id,
            workspace_name=workspace.name,
            query=trimmed,
            language=resolved_language,
            tone=workspace.tone_of_voice,
            context_count=len(contexts),
            confidence=confidence,
        )

        logger.info(
            "retrieval_complete",
            workspace_id=workspace.id,
            language=resolved_language.value,
            corpus_size=len(chunks),
            candidates=candidate_count,
            context_count=len(contexts),
            confidence=round(confidence, 3),
            confidence_level=confidence_to_level(confidence).value,
        )
        return RetrievalResponse(contexts=contexts, metadata=metadata, prompt=prompt)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _resolve_workspace(self, workspace_id: str) -> Workspace:
        workspace = await self._workspaces.get_workspace(workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError(workspace_id)
        if not workspace.is_active:
            raise WorkspaceInactiveError(workspace.name)
        return workspace

    @staticmethod
    def _resolve_language(
        workspace: Workspace,
        query: str,
        language: DocumentLanguage | str | None,
    ) -> DocumentLanguage:
        if language is None:
            return detect_preferred_language(query, workspace.languages)
        try:
            resolved = DocumentLanguage(language)
        except ValueError:
            raise UnsupportedLanguageError(workspace.name, str(language)) from None
        if resolved not in workspace.languages:
            raise UnsupportedLanguageError(workspace.name, resolved.value)
        return resolved
