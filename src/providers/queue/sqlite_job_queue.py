"""SQLite-backed durable job queue.

Persists jobs to ``data/jobs.db`` via ``aiosqlite`` so queued work survives
a restart.  Several named queues share one database (``queue`` column).

Reservation takes a write lock (``BEGIN IMMEDIATE``) so two worker
processes polling the same database never claim the same job.  A reserved
job carries a lease (``locked_until``); if its worker dies the lease runs
out and the job becomes reservable again.  Delivery is therefore
at-least-once.
"""

from __future__ import annotations

import json
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import aiosqlite
import structlog

from src.interfaces.job_queue import IJobQueue, compute_backoff
from src.models.jobs import JobState, QueueCounts, QueuedJob
from src.utils.errors import JobQueueError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/jobs.db")
_DEFAULT_LEASE_SECONDS = 300.0

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS jobs (
    queue              TEXT    NOT NULL,
    job_id             TEXT    NOT NULL,
    name               TEXT    NOT NULL,
    payload            TEXT    NOT NULL,
    state              TEXT    NOT NULL,
    attempts_made      INTEGER NOT NULL DEFAULT 0,
    max_attempts       INTEGER NOT NULL DEFAULT 1,
    backoff_delay      REAL    NOT NULL DEFAULT 0,
    remove_on_complete INTEGER NOT NULL DEFAULT 1,
    available_at       REAL    NOT NULL,
    locked_until       REAL,
    last_error         TEXT,
    created_at         REAL    NOT NULL,
    updated_at         REAL    NOT NULL,
    PRIMARY KEY (queue, job_id)
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_jobs_ready ON jobs(queue, state, available_at);",
]

# A waiting or active job with the same id wins; a failed or completed one
# is overwritten with a fresh job.
_INSERT_SQL = """\
INSERT INTO jobs (
    queue, job_id, name, payload, state, attempts_made, max_attempts,
    backoff_delay, remove_on_complete, available_at, created_at, updated_at
)
VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?)
ON CONFLICT(queue, job_id)
DO UPDATE SET name               = excluded.name,
              payload            = excluded.payload,
              state              = excluded.state,
              attempts_made      = 0,
              max_attempts       = excluded.max_attempts,
              backoff_delay      = excluded.backoff_delay,
              remove_on_complete = excluded.remove_on_complete,
              available_at       = excluded.available_at,
              locked_until       = NULL,
              last_error         = NULL,
              created_at         = excluded.created_at,
              updated_at         = excluded.updated_at
WHERE jobs.state IN ('failed', 'completed');
"""

_SELECT_COLUMNS = (
    "job_id, name, payload, state, attempts_made, max_attempts, backoff_delay, "
    "available_at, last_error, created_at, updated_at"
)

_SELECT_READY_SQL = f"""\
SELECT {_SELECT_COLUMNS}, locked_until
FROM jobs
WHERE queue = ?
  AND ((state = 'waiting' AND available_at <= ?)
       OR (state = 'active' AND locked_until IS NOT NULL AND locked_until <= ?))
ORDER BY available_at ASC, created_at ASC
LIMIT ?;
"""

_ACTIVATE_SQL = """\
UPDATE jobs
SET state = 'active', attempts_made = attempts_made + 1, locked_until = ?, updated_at = ?
WHERE queue = ? AND job_id = ?;
"""

_SET_STATE_SQL = """\
UPDATE jobs
SET state = ?, last_error = ?, available_at = ?, locked_until = NULL, updated_at = ?
WHERE queue = ? AND job_id = ?;
"""


def _to_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)  # noqa: UP017


def _row_to_job(row: aiosqlite.Row) -> QueuedJob:
    r = dict(row)
    return QueuedJob(
        job_id=r["job_id"],
        name=r["name"],
        payload=json.loads(r["payload"]),
        state=JobState(r["state"]),
        attempts_made=r["attempts_made"],
        max_attempts=r["max_attempts"],
        backoff_delay=r["backoff_delay"],
        available_at=_to_datetime(r["available_at"]),
        last_error=r["last_error"],
        created_at=_to_datetime(r["created_at"]),
        updated_at=_to_datetime(r["updated_at"]),
    )


class SQLiteJobQueue(IJobQueue):
    """Durable job queue persisted in SQLite."""

    def __init__(
        self,
        queue_name: str,
        db_path: str | Path = _DEFAULT_DB_PATH,
        lease_seconds: float = _DEFAULT_LEASE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._queue_name = queue_name
        self._db_path = Path(db_path)
        self._lease_seconds = lease_seconds
        self._clock = clock

    def get_queue_name(self) -> str:
        return self._queue_name

    async def initialize(self) -> None:
        """Create the jobs table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("job_queue_initialized", queue=self._queue_name, path=str(self._db_path))

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
        now = self._clock()
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            previous = await self._fetch(db, job_id)
            cursor = await db.execute(
                _INSERT_SQL,
                (
                    self._queue_name,
                    job_id,
                    name,
                    json.dumps(payload),
                    JobState.WAITING.value,
                    max_attempts,
                    backoff_delay,
                    int(remove_on_complete),
                    now,
                    now,
                    now,
                ),
            )
            written = cursor.rowcount > 0
            await db.commit()
            job = await self._fetch(db, job_id)

        if not written:
            logger.debug(
                "job_deduplicated",
                queue=self._queue_name,
                job_id=job_id,
                state=job.state.value if job else None,
            )
        elif previous is not None:
            logger.info(
                "job_replaced",
                queue=self._queue_name,
                job_id=job_id,
                previous_state=previous.state.value,
            )
        if job is None:
            raise JobQueueError(
                message=f"Job {job_id} vanished right after insert",
                provider_name=self.get_provider_name(),
            )
        return job

    async def reserve(self, limit: int = 1) -> list[QueuedJob]:
        if limit <= 0:
            return []
        now = self._clock()
        reserved: list[QueuedJob] = []
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("BEGIN IMMEDIATE")
            cursor = await db.execute(_SELECT_READY_SQL, (self._queue_name, now, now, limit))
            rows = await cursor.fetchall()
            for row in rows:
                job = _row_to_job(row)
                if job.state == JobState.ACTIVE and job.attempts_made >= job.max_attempts:
                    # Lease expired on the final attempt: nothing left to retry.
                    await db.execute(
                        _SET_STATE_SQL,
                        (
                            JobState.FAILED.value,
                            "lease expired on final attempt",
                            row["available_at"],
                            now,
                            self._queue_name,
                            job.job_id,
                        ),
                    )
                    logger.warning("job_lease_expired", queue=self._queue_name, job_id=job.job_id)
                    continue
                await db.execute(
                    _ACTIVATE_SQL,
                    (now + self._lease_seconds, now, self._queue_name, job.job_id),
                )
                reserved.append(
                    job.model_copy(
                        update={
                            "state": JobState.ACTIVE,
                            "attempts_made": job.attempts_made + 1,
                            "updated_at": _to_datetime(now),
                        }
                    )
                )
            await db.commit()
        return reserved

    async def complete(self, job_id: str) -> None:
        now = self._clock()
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT remove_on_complete, available_at FROM jobs WHERE queue = ? AND job_id = ?",
                (self._queue_name, job_id),
            )
            row = await cursor.fetchone()
            if row is None:
                raise self._not_found(job_id)
            if row["remove_on_complete"]:
                await db.execute(
                    "DELETE FROM jobs WHERE queue = ? AND job_id = ?",
                    (self._queue_name, job_id),
                )
            else:
                await db.execute(
                    _SET_STATE_SQL,
                    (
                        JobState.COMPLETED.value,
                        None,
                        row["available_at"],
                        now,
                        self._queue_name,
                        job_id,
                    ),
                )
            await db.commit()

    async def retry(self, job_id: str, error: str) -> QueuedJob:
        now = self._clock()
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            job = await self._fetch(db, job_id)
            if job is None:
                raise self._not_found(job_id)

            if job.attempts_made >= job.max_attempts:
                state, available_at = JobState.FAILED, job.available_at.timestamp()
            else:
                state = JobState.WAITING
                available_at = now + compute_backoff(job.backoff_delay, job.attempts_made)

            await db.execute(
                _SET_STATE_SQL,
                (state.value, error, available_at, now, self._queue_name, job_id),
            )
            await db.commit()
            updated = await self._fetch(db, job_id)
        return updated  # type: ignore[return-value]

    async def fail(self, job_id: str, error: str) -> QueuedJob:
        now = self._clock()
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            job = await self._fetch(db, job_id)
            if job is None:
                raise self._not_found(job_id)
            await db.execute(
                _SET_STATE_SQL,
                (
                    JobState.FAILED.value,
                    error,
                    job.available_at.timestamp(),
                    now,
                    self._queue_name,
                    job_id,
                ),
            )
            await db.commit()
            updated = await self._fetch(db, job_id)
        return updated  # type: ignore[return-value]

    async def get(self, job_id: str) -> QueuedJob | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            return await self._fetch(db, job_id)

    async def counts(self) -> QueueCounts:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT state, COUNT(*) AS total FROM jobs WHERE queue = ? GROUP BY state",
                (self._queue_name,),
            )
            rows = await cursor.fetchall()
        tally = {row["state"]: row["total"] for row in rows}
        return QueueCounts(
            waiting=tally.get(JobState.WAITING.value, 0),
            active=tally.get(JobState.ACTIVE.value, 0),
            completed=tally.get(JobState.COMPLETED.value, 0),
            failed=tally.get(JobState.FAILED.value, 0),
        )

    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
        return "sqlite_queue"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _fetch(self, db: aiosqlite.Connection, job_id: str) -> QueuedJob | None:
        cursor = await db.execute(
            f"SELECT {_SELECT_COLUMNS} FROM jobs WHERE queue = ? AND job_id = ?",
            (self._queue_name, job_id),
        )
        row = await cursor.fetchone()
        return _row_to_job(row) if row else None

    def _not_found(self, job_id: str) -> JobQueueError:
        return JobQueueError(
            message=f"Job {job_id} not found in queue {self._queue_name}",
            provider_name=self.get_provider_name(),
        )
