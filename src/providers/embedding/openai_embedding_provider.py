"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports both real OpenAI and OpenAI-compatible providers (TogetherAI,
Ollama, Fireworks) via custom ``base_url`` and model name settings.

The adapter is the single place where SDK exceptions are translated into
:class:`~src.utils.errors.EmbeddingError`:

* ``openai.APITimeoutError``    -> ``transport_code="ETIMEDOUT"``
* ``openai.APIConnectionError`` -> ``transport_code="ECONNRESET"``
* ``openai.APIStatusError``     -> ``status_code=<HTTP status>``

The SDK's own retry loop is disabled (``max_retries=0``); retries belong to
the job queue so every attempt is visible on the chunk record.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Known embedding model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "nomic-embed-text": 768,
    "BAAI/bge-base-en-v1.5": 768,
    "intfloat/multilingual-e5-large-instruct": 1024,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-large`` (3072 dims) by default.  When
    ``openai_base_url`` is configured the client points at that URL and
    uses ``openai_embedding_model``.
    """

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        # Build client kwargs -- add base_url only when configured.
        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": httpx.Timeout(settings.embedding_timeout_seconds, connect=10.0),
            "max_retries": 0,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = client or openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model or "text-embedding-3-large"
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 768)
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, text: str, model: str | None = None) -> list[float]:
        model_name = model or self._model
        try:
            response = await self._client.embeddings.create(input=text, model=model_name)
        except openai.APIError as exc:
            raise self._to_embedding_error(exc) from exc

        logger.debug(
            "openai_embedding_single",
            model=model_name,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return list(response.data[0].embedding)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*, splitting into batches of 2048 per API call.

        Token usage is reported per call; it is divided evenly across the
        batch items so per-chunk cost shows up in the logs.
        """
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), _OPENAI_BATCH_LIMIT):
            batch = texts[start : start + _OPENAI_BATCH_LIMIT]
            try:
                response = await self._client.embeddings.create(input=batch, model=self._model)
            except openai.APIError as exc:
                raise self._to_embedding_error(exc) from exc

            # The API may return items out of order; ``index`` is authoritative.
            ordered = sorted(response.data, key=lambda item: item.index)
            all_embeddings.extend(list(item.embedding) for item in ordered)

            total_tokens = response.usage.total_tokens if response.usage else 0
            logger.info(
                "openai_embedding_batch",
                model=self._model,
                provider=self._provider_label,
                batch_size=len(batch),
                tokens=total_tokens,
                tokens_per_item=round(total_tokens / len(batch), 2),
            )
        return all_embeddings

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key or a compatible base URL is configured."""
        return bool(self._api_key or self._settings.openai_base_url)

    # ------------------------------------------------------------------
    # Error translation
    # ------------------------------------------------------------------

    def _to_embedding_error(self, exc: openai.APIError) -> EmbeddingError:
        # APITimeoutError subclasses APIConnectionError, so it is checked first.
        if isinstance(exc, openai.APITimeoutError):
            return EmbeddingError(
                message=f"{self._provider_label} request timed out: {exc}",
                provider_name=self._provider_label,
                transport_code="ETIMEDOUT",
            )
        if isinstance(exc, openai.APIConnectionError):
            return EmbeddingError(
                message=f"{self._provider_label} connection error: {exc}",
                provider_name=self._provider_label,
                transport_code="ECONNRESET",
            )
        if isinstance(exc, openai.APIStatusError):
            return EmbeddingError(
                message=f"{self._provider_label} API error: {exc.message}",
                provider_name=self._provider_label,
                status_code=exc.status_code,
            )
        return EmbeddingError(
            message=f"{self._provider_label} API error: {exc}",
            provider_name=self._provider_label,
        )
