"""Queue worker runtime: reserve jobs, run handlers, settle outcomes.

A :class:`QueueWorker` binds one :class:`IJobQueue` to one async handler
(``ChunkWorker.handle`` or ``EmbeddingWorker.handle``) and runs up to
``concurrency`` jobs at a time.  Outcome handling per job:

=========================  ==============================================
Handler outcome            Queue action
=========================  ==============================================
returns                    ``complete``
non-retryable error        ``fail`` + ``on_failed`` hook
any other error            ``retry`` (exponential backoff); when the queue
                           reports the attempts exhausted, ``on_failed``
=========================  ==============================================

Non-retryable errors are :class:`PermanentProviderError` and
:class:`ValidationError` -- retrying them cannot succeed.

Every log line emitted while a job runs (including those of the handler
and its collaborators) carries ``job_id`` and ``queue`` via structlog
contextvars.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import structlog

from src.interfaces.job_queue import IJobQueue
from src.models.jobs import JobState, QueuedJob
from src.utils.errors import PermanentProviderError, ValidationError
from src.utils.logging import job_log_context

logger = structlog.get_logger(logger_name=__name__)

JobHandler = Callable[[QueuedJob], Awaitable[Any]]
FailureHook = Callable[[QueuedJob, BaseException], Awaitable[None]]

NON_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (PermanentProviderError, ValidationError)


class QueueWorker:
    """Polls a job queue and runs its jobs with bounded concurrency.

    Parameters
    ----------
    queue:
        Source of jobs.
    handler:
        Coroutine function processing one job.
    concurrency:
        Maximum number of jobs handled at once.
    poll_interval:
        Seconds to sleep when no job is ready.
    on_failed:
        Awaited with the final job envelope and the error whenever a job
        ends in ``failed``.
    """

    def __init__(
        self,
        queue: IJobQueue,
        handler: JobHandler,
        concurrency: int = 1,
        poll_interval: float = 0.5,
        on_failed: FailureHook | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._queue = queue
        self._handler = handler
        self._concurrency = concurrency
        self._poll_interval = poll_interval
        self._on_failed = on_failed

    @property
    def queue_name(self) -> str:
        return self._queue.get_queue_name()

    async def run_once(self) -> int:
        """Reserve and process one batch of ready jobs; return how many ran."""
        jobs = await self._queue.reserve(self._concurrency)
        if not jobs:
            return 0
        results = await asyncio.gather(
            *(self._process(job) for job in jobs), return_exceptions=True
        )
        for job, result in zip(jobs, results):
            # _process settles every handler error itself; anything left is a
            # queue/hook failure.
            if isinstance(result, BaseException):
                logger.error(
                    "job_settlement_failed",
                    queue=self.queue_name,
                    job_id=job.job_id,
                    error=str(result),
                )
        return len(jobs)

    async def run_until_idle(self, max_batches: int | None = None) -> int:
        """Process jobs until the queue has nothing waiting or active.

        Delayed retries are waited for (polling every ``poll_interval``).
        ``max_batches`` bounds the number of non-empty batches.

        Returns the total number of jobs processed.
        """
        processed = 0
        batches = 0
        while max_batches is None or batches < max_batches:
            count = await self.run_once()
            if count:
                processed += count
                batches += 1
                continue
            counts = await self._queue.counts()
            if counts.pending == 0:
                break
            await asyncio.sleep(self._poll_interval)
        return processed

    async def run_forever(self, stop_event: asyncio.Event | None = None) -> None:
        """Poll until *stop_event* is set (or the task is cancelled).

        Each of the ``concurrency`` slots reserves and runs one job at a
        time, so a slow job never holds back the other slots.
        """
        stop_event = stop_event or asyncio.Event()
        logger.info("queue_worker_started", queue=self.queue_name, concurrency=self._concurrency)
        await asyncio.gather(
            *(self._run_slot(slot, stop_event) for slot in range(self._concurrency))
        )
        logger.info("queue_worker_stopped", queue=self.queue_name)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_slot(self, slot: int, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                jobs = await self._queue.reserve(1)
                for job in jobs:
                    await self._process(job)
            except Exception as exc:  # noqa: BLE001 -- a broken poll must not end the loop
                logger.error(
                    "queue_poll_failed", queue=self.queue_name, slot=slot, error=str(exc)
                )
                jobs = []
            if jobs:
                continue
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass

    async def _process(self, job: QueuedJob) -> None:
        with job_log_context(job_id=job.job_id, queue=self.queue_name):
            try:
                result = await self._handler(job)
            except NON_RETRYABLE_ERRORS as exc:
                failed = await self._queue.fail(job.job_id, str(exc))
                logger.error(
                    "job_failed",
                    attempts_made=job.attempts_made,
                    retryable=False,
                    error=str(exc),
                )
                await self._notify_failed(failed, exc)
                return
            except Exception as exc:  # noqa: BLE001 -- the queue decides retry vs. fail
                updated = await self._queue.retry(job.job_id, str(exc))
                if updated.state == JobState.FAILED:
                    logger.error(
                        "job_failed",
                        attempts_made=updated.attempts_made,
                        retryable=True,
                        error=str(exc),
                    )
                    await self._notify_failed(updated, exc)
                else:
                    logger.warning(
                        "job_retry_scheduled",
                        attempts_made=updated.attempts_made,
                        max_attempts=updated.max_attempts,
                        available_at=updated.available_at.isoformat(),
                        error=str(exc),
                    )
                return

            await self._queue.complete(job.job_id)
            logger.info("job_completed", attempts_made=job.attempts_made, result=result)

    async def _notify_failed(self, job: QueuedJob, error: BaseException) -> None:
        if self._on_failed is not None:
            await self._on_failed(job, error)
