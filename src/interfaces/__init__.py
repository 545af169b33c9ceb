"""Public interface definitions for the knowledge core's collaborators.

Every external service and storage substrate is accessed exclusively
through the abstract base classes defined in this package.  Concrete
adapters implement these interfaces and are wired together in
``src/main.py``, so business logic never imports an SDK directly and unit
tests can inject fakes.

CONCRETE PROVIDER MAP:
    Interface            ->  Concrete implementations (in src/providers/)
    -----------------------------------------------------------------
    IEmbeddingProvider   ->  OpenAIEmbeddingProvider, HashingEmbeddingProvider
    IChunkRepository     ->  SQLiteChunkRepository
    IJobQueue            ->  SQLiteJobQueue, InMemoryJobQueue
    IKnowledgeStore      ->  RepositoryKnowledgeStore, InMemoryKnowledgeStore
    IWorkspaceProvider   ->  ConfigWorkspaceProvider
"""

from src.interfaces.chunk_repository import IChunkRepository
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.job_queue import IJobQueue, compute_backoff
from src.interfaces.knowledge_store import IKnowledgeStore
from src.interfaces.workspace_provider import IWorkspaceProvider

__all__ = [
    "IChunkRepository",
    "IEmbeddingProvider",
    "IJobQueue",
    "IKnowledgeStore",
    "IWorkspaceProvider",
    "compute_backoff",
]
