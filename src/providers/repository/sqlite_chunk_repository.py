"""SQLite-backed chunk repository.

Persists :class:`ChunkRecord` rows to a local SQLite database at
``data/chunks.db``.  Uses ``aiosqlite`` for async I/O; vectors and
metadata are stored as JSON text.  Every status transition is a single
``UPDATE ... WHERE chunk_id = ?`` so workers handling different chunks
never touch the same row.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.chunk_repository import IChunkRepository
from src.models.chunk import ChunkMetadata, ChunkRecord, ChunkStatus, TokenRange, utc_now
from src.utils.errors import RepositoryError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/chunks.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS chunks (
    chunk_id     TEXT    PRIMARY KEY,
    document_id  TEXT    NOT NULL,
    chunk_index  INTEGER NOT NULL,
    text         TEXT    NOT NULL,
    token_count  INTEGER NOT NULL,
    token_start  INTEGER NOT NULL,
    token_end    INTEGER NOT NULL,
    metadata     TEXT    NOT NULL,
    workspace_id TEXT,
    language     TEXT    NOT NULL,
    status       TEXT    NOT NULL,
    vector       TEXT,
    error        TEXT,
    attempts     INTEGER NOT NULL DEFAULT 0,
    created_at   TEXT    NOT NULL,
    updated_at   TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id, chunk_index);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_status ON chunks(status);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_workspace ON chunks(workspace_id, status);",
]

# Re-chunking a document overwrites content and resets embedding state but
# keeps created_at and the attempt counter.
_UPSERT_SQL = """\
INSERT INTO chunks (
    chunk_id, document_id, chunk_index, text, token_count, token_start,
    token_end, metadata, workspace_id, language, status, vector, error,
    attempts, created_at, updated_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, NULL, ?, ?, ?)
ON CONFLICT(chunk_id)
DO UPDATE SET document_id  = excluded.document_id,
              chunk_index  = excluded.chunk_index,
              text         = excluded.text,
              token_count  = excluded.token_count,
              token_start  = excluded.token_start,
              token_end    = excluded.token_end,
              metadata     = excluded.metadata,
              workspace_id = excluded.workspace_id,
              language     = excluded.language,
              status       = excluded.status,
              vector       = NULL,
              error        = NULL,
              updated_at   = excluded.updated_at;
"""

_MARK_PROCESSING_SQL = """\
UPDATE chunks
SET status = ?, error = NULL, attempts = attempts + 1, updated_at = ?
WHERE chunk_id = ?;
"""

_MARK_RETRYING_SQL = """\
UPDATE chunks SET status = ?, error = ?, updated_at = ? WHERE chunk_id = ?;
"""

_MARK_VECTORIZED_SQL = """\
UPDATE chunks SET status = ?, vector = ?, error = NULL, updated_at = ? WHERE chunk_id = ?;
"""

_MARK_FAILED_SQL = """\
UPDATE chunks SET status = ?, error = ?, updated_at = ? WHERE chunk_id = ?;
"""

_SELECT_COLUMNS = (
    "chunk_id, document_id, chunk_index, text, token_count, token_start, token_end, "
    "metadata, status, vector, error, attempts, created_at, updated_at"
)


def _row_to_record(row: aiosqlite.Row) -> ChunkRecord:
    r = dict(row)
    return ChunkRecord(
        chunk_id=r["chunk_id"],
        document_id=r["document_id"],
        chunk_index=r["chunk_index"],
        text=r["text"],
        token_count=r["token_count"],
        token_range=TokenRange(start=r["token_start"], end=r["token_end"]),
        metadata=ChunkMetadata.model_validate_json(r["metadata"]),
        status=ChunkStatus(r["status"]),
        vector=json.loads(r["vector"]) if r["vector"] else None,
        error=r["error"],
        attempts=r["attempts"],
        created_at=datetime.fromisoformat(r["created_at"]),
        updated_at=datetime.fromisoformat(r["updated_at"]),
    )


class SQLiteChunkRepository(IChunkRepository):
    """SQLite-backed chunk persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the chunks table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("chunk_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_or_update_chunk(self, record: ChunkRecord) -> None:
        now = utc_now().isoformat()
        params = (
            record.chunk_id,
            record.document_id,
            record.chunk_index,
            record.text,
            record.token_count,
            record.token_range.start,
            record.token_range.end,
            record.metadata.model_dump_json(),
            record.metadata.workspace_id,
            record.metadata.language.value,
            record.status.value,
            record.attempts,
            record.created_at.isoformat(),
            now,
        )
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(_UPSERT_SQL, params)
                await db.commit()
        except aiosqlite.Error as exc:
            raise RepositoryError(
                message=f"Failed to upsert chunk {record.chunk_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug(
            "chunk_upserted",
            chunk_id=record.chunk_id,
            document_id=record.document_id,
            status=record.status.value,
        )

    async def mark_chunk_processing(self, chunk_id: str) -> ChunkRecord:
        return await self._update(
            chunk_id,
            _MARK_PROCESSING_SQL,
            (ChunkStatus.PROCESSING.value, utc_now().isoformat(), chunk_id),
        )

    async def mark_chunk_retrying(self, chunk_id: str, delay: float, error: str) -> ChunkRecord:
        record = await self._update(
            chunk_id,
            _MARK_RETRYING_SQL,
            (ChunkStatus.RETRYING.value, error, utc_now().isoformat(), chunk_id),
        )
        logger.info("chunk_retry_scheduled", chunk_id=chunk_id, delay=delay, error=error)
        return record

    async def mark_chunk_vectorized(self, chunk_id: str, vector: list[float]) -> ChunkRecord:
        return await self._update(
            chunk_id,
            _MARK_VECTORIZED_SQL,
            (ChunkStatus.VECTORIZED.value, json.dumps(vector), utc_now().isoformat(), chunk_id),
        )

    async def mark_chunk_failed(self, chunk_id: str, error: str) -> ChunkRecord:
        return await self._update(
            chunk_id,
            _MARK_FAILED_SQL,
            (ChunkStatus.FAILED.value, error, utc_now().isoformat(), chunk_id),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_chunk(self, chunk_id: str) -> ChunkRecord | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM chunks WHERE chunk_id = ?",
                (chunk_id,),
            )
            row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def list_document_chunks(self, document_id: str) -> list[ChunkRecord]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM chunks WHERE document_id = ? "
                "ORDER BY chunk_index ASC",
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_record(r) for r in rows]

    async def list_vectorized_chunks(self, workspace_id: str | None = None) -> list[ChunkRecord]:
        query = f"SELECT {_SELECT_COLUMNS} FROM chunks WHERE status = ?"
        params: list[Any] = [ChunkStatus.VECTORIZED.value]
        if workspace_id is not None:
            query += " AND workspace_id = ?"
            params.append(workspace_id)
        query += " ORDER BY chunk_id ASC"

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
        return [_row_to_record(r) for r in rows]

    async def count_by_status(self, document_id: str | None = None) -> dict[ChunkStatus, int]:
        query = "SELECT status, COUNT(*) AS total FROM chunks"
        params: tuple[Any, ...] = ()
        if document_id is not None:
            query += " WHERE document_id = ?"
            params = (document_id,)
        query += " GROUP BY status"

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()

        counts = {status: 0 for status in ChunkStatus}
        for row in rows:
            counts[ChunkStatus(row["status"])] = row["total"]
        return counts

    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
        return "sqlite_chunks"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _update(self, chunk_id: str, sql: str, params: tuple[Any, ...]) -> ChunkRecord:
        """Run a single-row UPDATE and return the refreshed record."""
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(sql, params)
                if cursor.rowcount == 0:
                    raise RepositoryError(
                        message=f"Chunk {chunk_id} does not exist",
                        provider_name=self.get_provider_name(),
                    )
                await db.commit()
                cursor = await db.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM chunks WHERE chunk_id = ?",
                    (chunk_id,),
                )
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise RepositoryError(
                message=f"Failed to update chunk {chunk_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return _row_to_record(row)
