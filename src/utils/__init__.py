"""Utility modules for the workspace knowledge core.

Available utility modules (all re-exported here for convenience):

- **confidence** -- Similarity normalisation and retrieval confidence math
  used to tell the chat flow how much the returned contexts can be trusted.
- **errors** -- Domain exception hierarchy rooted at KnowledgeBaseError;
  the retry classifier and the job runtime dispatch on these types.
- **logging** -- structlog setup: console rendering in development, JSON
  lines in production, always on stderr.
"""

# -- Retrieval confidence ---------------------------------------------------
from src.utils.confidence import (
    ConfidenceLevel,
    compute_retrieval_confidence,
    confidence_to_level,
    normalize_similarity,
)

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    EmptyQueryError,
    JobQueueError,
    KnowledgeBaseError,
    PermanentProviderError,
    RepositoryError,
    TransientProviderError,
    UnsupportedLanguageError,
    ValidationError,
    WorkspaceInactiveError,
    WorkspaceNotFoundError,
)

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, job_log_context

__all__ = [
    "ConfidenceLevel",
    "ConfigurationError",
    "EmbeddingError",
    "EmptyQueryError",
    "JobQueueError",
    "KnowledgeBaseError",
    "PermanentProviderError",
    "RepositoryError",
    "TransientProviderError",
    "UnsupportedLanguageError",
    "ValidationError",
    "WorkspaceInactiveError",
    "WorkspaceNotFoundError",
    "compute_retrieval_confidence",
    "configure_logging",
    "confidence_to_level",
    "job_log_context",
    "normalize_similarity",
]
