"""Abstract base class for durable job queues.

A queue holds :class:`~src.models.jobs.QueuedJob` envelopes for one named
stage of the pipeline.  Delivery is at-least-once: a reserved job that is
neither completed, retried nor failed (worker crash) is eventually handed
out again, so job handlers must be idempotent.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.jobs import QueueCounts, QueuedJob

# Upper bound for a single backoff interval, in seconds.
MAX_BACKOFF_SECONDS = 60.0


def compute_backoff(backoff_delay: float, attempts_made: int) -> float:
    """Exponential backoff: ``backoff_delay * 2**(attempts_made - 1)``, capped.

    *attempts_made* counts the attempt that just failed (>= 1), so the first
    retry waits exactly *backoff_delay*.
    """
    if backoff_delay <= 0:
        return 0.0
    exponent = max(0, attempts_made - 1)
    return min(MAX_BACKOFF_SECONDS, backoff_delay * (2 ** exponent))


# Concrete implementations:
#   SQLiteJobQueue    -- durable, aiosqlite-backed (src/providers/queue/)
#   InMemoryJobQueue  -- heap-ordered, for tests and one-shot CLI runs
class IJobQueue(ABC):
    """Contract for a named job queue with retries and exponential backoff."""

    @abstractmethod
    def get_queue_name(self) -> str:
        """Return the queue name, e.g. ``"chunk-embedding"``."""

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare backing storage.  Idempotent."""

    @abstractmethod
    async def add(
        self,
        name: str,
        payload: dict[str, Any],
        job_id: str | None = None,
        max_attempts: int = 1,
        backoff_delay: float = 0.0,
        remove_on_complete: bool = True,
    ) -> QueuedJob:
        """Enqueue a job.

        When *job_id* is given and a waiting or active job with that id
        already exists, the existing job is returned unchanged: this is the
        deduplication that serializes work on one chunk.  A failed or
        completed job with that id is replaced by a fresh waiting job with
        zero attempts, so re-ingesting a document always schedules new work.
        """

    @abstractmethod
    async def reserve(self, limit: int = 1) -> list[QueuedJob]:
        """Atomically claim up to *limit* ready jobs.

        Reserved jobs move to ``active`` and have ``attempts_made``
        incremented.  Jobs whose ``available_at`` lies in the future are
        skipped.  Returns an empty list when nothing is ready.
        """

    @abstractmethod
    async def complete(self, job_id: str) -> None:
        """Mark a reserved job ``completed``."""

    @abstractmethod
    async def retry(self, job_id: str, error: str) -> QueuedJob:
        """Put a reserved job back to ``waiting`` after a backoff.

        If the job has no attempts remaining it is marked ``failed``
        instead.  The returned envelope shows which happened.
        """

    @abstractmethod
    async def fail(self, job_id: str, error: str) -> QueuedJob:
        """Mark a job ``failed`` without further attempts."""

    @abstractmethod
    async def get(self, job_id: str) -> QueuedJob | None:
        """Return the job envelope or ``None``."""

    @abstractmethod
    async def counts(self) -> QueueCounts:
        """Return the number of jobs per state."""
