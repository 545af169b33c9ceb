"""In-memory job queue.

Jobs live in a dict keyed by job id; waiting jobs are additionally indexed
by a min-heap of ``(available_at, sequence, job_id)`` so ``reserve`` hands
out the earliest-ready job first and delayed retries stay parked until
their backoff elapses.  A single :class:`asyncio.Lock` guards both.

Nothing survives a restart; use :class:`SQLiteJobQueue` for durable
pipelines.  This implementation backs the test-suite and one-shot CLI
runs.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from src.interfaces.job_queue import IJobQueue, compute_backoff
from src.models.jobs import JobState, QueueCounts, QueuedJob
from src.utils.errors import JobQueueError

logger = structlog.get_logger(logger_name=__name__)

# Re-adding a job id in one of these states is a no-op.
_LIVE_STATES = (JobState.WAITING, JobState.ACTIVE)


def _to_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)  # noqa: UP017


class InMemoryJobQueue(IJobQueue):
    """Heap-ordered, process-local job queue."""

    def __init__(self, queue_name: str, clock: Callable[[], float] = time.time) -> None:
        self._queue_name = queue_name
        self._clock = clock
        self._jobs: dict[str, QueuedJob] = {}
        self._remove_on_complete: dict[str, bool] = {}
        self._ready: list[tuple[float, int, str]] = []
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    def get_queue_name(self) -> str:
        return self._queue_name

    async def initialize(self) -> None:
        return None

    async def add(
        self,
        name: str,
        payload: dict[str, Any],
        job_id: str | None = None,
        max_attempts: int = 1,
        backoff_delay: float = 0.0,
        remove_on_complete: bool = True,
    ) -> QueuedJob:
        job_id = job_id or str(uuid.uuid4())
        async with self._lock:
            existing = self._jobs.get(job_id)
            if existing is not None and existing.state in _LIVE_STATES:
                logger.debug(
                    "job_deduplicated",
                    queue=self._queue_name,
                    job_id=job_id,
                    state=existing.state.value,
                )
                return existing
            if existing is not None:
                logger.info(
                    "job_replaced",
                    queue=self._queue_name,
                    job_id=job_id,
                    previous_state=existing.state.value,
                )

            now = self._clock()
            job = QueuedJob(
                job_id=job_id,
                name=name,
                payload=payload,
                max_attempts=max_attempts,
                backoff_delay=backoff_delay,
                available_at=_to_datetime(now),
                created_at=_to_datetime(now),
                updated_at=_to_datetime(now),
            )
            self._jobs[job_id] = job
            self._remove_on_complete[job_id] = remove_on_complete
            heapq.heappush(self._ready, (now, next(self._sequence), job_id))
        return job

    async def reserve(self, limit: int = 1) -> list[QueuedJob]:
        reserved: list[QueuedJob] = []
        async with self._lock:
            now = self._clock()
            while self._ready and len(reserved) < limit:
                available_at, _, job_id = self._ready[0]
                if available_at > now:
                    break
                heapq.heappop(self._ready)
                job = self._jobs.get(job_id)
                # Stale heap entry: the job was completed, failed or re-parked.
                if job is None or job.state != JobState.WAITING:
                    continue
                job = job.model_copy(
                    update={
                        "state": JobState.ACTIVE,
                        "attempts_made": job.attempts_made + 1,
                        "updated_at": _to_datetime(now),
                    }
                )
                self._jobs[job_id] = job
                reserved.append(job)
        return reserved

    async def complete(self, job_id: str) -> None:
        async with self._lock:
            job = self._require(job_id)
            if self._remove_on_complete.get(job_id, True):
                del self._jobs[job_id]
                self._remove_on_complete.pop(job_id, None)
                return
            self._jobs[job_id] = job.model_copy(
                update={"state": JobState.COMPLETED, "updated_at": _to_datetime(self._clock())}
            )

    async def retry(self, job_id: str, error: str) -> QueuedJob:
        async with self._lock:
            job = self._require(job_id)
            now = self._clock()
            if job.attempts_made >= job.max_attempts:
                job = job.model_copy(
                    update={
                        "state": JobState.FAILED,
                        "last_error": error,
                        "updated_at": _to_datetime(now),
                    }
                )
                self._jobs[job_id] = job
                return job

            available_at = now + compute_backoff(job.backoff_delay, job.attempts_made)
            job = job.model_copy(
                update={
                    "state": JobState.WAITING,
                    "last_error": error,
                    "available_at": _to_datetime(available_at),
                    "updated_at": _to_datetime(now),
                }
            )
            self._jobs[job_id] = job
            heapq.heappush(self._ready, (available_at, next(self._sequence), job_id))
        return job

    async def fail(self, job_id: str, error: str) -> QueuedJob:
        async with self._lock:
            job = self._require(job_id).model_copy(
                update={
                    "state": JobState.FAILED,
                    "last_error": error,
                    "updated_at": _to_datetime(self._clock()),
                }
            )
            self._jobs[job_id] = job
        return job

    async def get(self, job_id: str) -> QueuedJob | None:
        return self._jobs.get(job_id)

    async def counts(self) -> QueueCounts:
        tally = {state: 0 for state in JobState}
        for job in self._jobs.values():
            tally[job.state] += 1
        return QueueCounts(
            waiting=tally[JobState.WAITING],
            active=tally[JobState.ACTIVE],
            completed=tally[JobState.COMPLETED],
            failed=tally[JobState.FAILED],
        )

    def _require(self, job_id: str) -> QueuedJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobQueueError(
                message=f"Job {job_id} not found in queue {self._queue_name}",
                provider_name="memory_queue",
            )
        return job
