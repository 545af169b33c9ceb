"""Chunk repository implementations."""

from src.providers.repository.sqlite_chunk_repository import SQLiteChunkRepository

__all__ = ["SQLiteChunkRepository"]
