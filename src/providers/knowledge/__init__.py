"""Knowledge store implementations for retrieval."""

from src.providers.knowledge.memory_knowledge_store import InMemoryKnowledgeStore
from src.providers.knowledge.repository_knowledge_store import RepositoryKnowledgeStore

__all__ = ["InMemoryKnowledgeStore", "RepositoryKnowledgeStore"]
