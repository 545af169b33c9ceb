"""Custom exception hierarchy for the workspace knowledge core.

All application exceptions inherit from :class:`KnowledgeBaseError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai_embedding", "sqlite_chunks") caused the
failure.

The hierarchy is organized by pipeline concern:

    KnowledgeBaseError  (base -- catch-all for any knowledge-core error)
    +-- ValidationError          (bad caller input -- never retried)
    |   +-- EmptyQueryError      (blank retrieval query)
    +-- EmbeddingError           (provider boundary failure, status/transport aware)
    +-- TransientProviderError   (rate limit, 5xx, timeout -- retried with backoff)
    +-- PermanentProviderError   (any other provider failure -- terminal)
    +-- RepositoryError          (chunk persistence failure)
    +-- JobQueueError            (job queue substrate failure)
    +-- ConfigurationError       (startup / missing config)
    +-- WorkspaceNotFoundError   (unknown workspace id)
    +-- WorkspaceInactiveError   (archived workspace)
    +-- UnsupportedLanguageError (language not enabled for a workspace)

The retry classifier in :mod:`src.services.ingestion.retry_policy` looks only
at :class:`EmbeddingError` fields, never at SDK-specific exception types.
"""

from __future__ import annotations


class KnowledgeBaseError(Exception):
    """Base exception for all knowledge-core errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai_embedding] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Caller input errors
# ---------------------------------------------------------------------------

class ValidationError(KnowledgeBaseError):
    """Raised for malformed caller input (source metadata, job payloads)."""

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmptyQueryError(ValidationError):
    """Raised when a retrieval query contains no textual input."""

    def __init__(
        self,
        message: str = "Query must contain textual input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Embedding provider errors
# ---------------------------------------------------------------------------

class EmbeddingError(KnowledgeBaseError):
    """Raised by embedding provider adapters when a call fails.

    The adapter translates SDK exceptions into this neutral shape:
    ``status_code`` for HTTP-like failures, ``transport_code`` for
    connection-level failures (``ETIMEDOUT``, ``ECONNRESET``).  Either may be
    ``None``; the message is always present.
    """

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
        status_code: int | None = None,
        transport_code: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code
        self._transport_code = transport_code

    @property
    def status_code(self) -> int | None:
        return self._status_code

    @property
    def transport_code(self) -> str | None:
        return self._transport_code


class TransientProviderError(KnowledgeBaseError):
    """A provider failure worth retrying (rate limit, 5xx, timeout/reset).

    Never surfaces to the caller of ingestion -- the job runtime catches it
    and reschedules the job with exponential backoff.
    """

    def __init__(
        self,
        message: str = "Transient provider failure",
        provider_name: str | None = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._delay = delay

    @property
    def delay(self) -> float:
        return self._delay


class PermanentProviderError(KnowledgeBaseError):
    """A provider failure that will not succeed on retry.

    The chunk is marked ``failed`` and requires manual re-ingestion.
    """

    def __init__(
        self,
        message: str = "Permanent provider failure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Storage / runtime errors
# ---------------------------------------------------------------------------

class RepositoryError(KnowledgeBaseError):
    """Raised when chunk persistence fails or targets an unknown chunk."""

    def __init__(
        self,
        message: str = "Chunk repository operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobQueueError(KnowledgeBaseError):
    """Raised when the job queue substrate rejects an operation."""

    def __init__(
        self,
        message: str = "Job queue operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(KnowledgeBaseError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Workspace errors
# ---------------------------------------------------------------------------

class WorkspaceNotFoundError(KnowledgeBaseError):
    """Raised when a workspace id cannot be resolved."""

    def __init__(self, workspace_id: str) -> None:
        super().__init__(message=f'Workspace "{workspace_id}" was not found')
        self.workspace_id = workspace_id


class WorkspaceInactiveError(KnowledgeBaseError):
    """Raised when retrieval targets an archived workspace."""

    def __init__(self, workspace_name: str) -> None:
        super().__init__(message=f'Workspace "{workspace_name}" is not active')


class UnsupportedLanguageError(ValidationError):
    """Raised when a language is not enabled for the target workspace."""

    def __init__(self, workspace_name: str, language: str) -> None:
        super().__init__(
            message=f'Workspace "{workspace_name}" does not support language "{language}"'
        )
