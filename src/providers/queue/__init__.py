"""Job queue implementations.

    SQLiteJobQueue    -- durable (aiosqlite), shared by CLI processes.
    InMemoryJobQueue  -- process-local heap queue for tests and one-shot runs.
"""

from src.providers.queue.memory_job_queue import InMemoryJobQueue
from src.providers.queue.sqlite_job_queue import SQLiteJobQueue

__all__ = ["InMemoryJobQueue", "SQLiteJobQueue"]
