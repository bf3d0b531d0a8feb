"""SQLite-backed ingestion record store.

Persists IngestionRecords, their SmartTags and ExtractionQueueEntries to a
local SQLite database (``data/ingestion.db`` by default) using ``aiosqlite``.
Tags and queue entries reference the record with ``ON DELETE CASCADE``, so
deleting a record removes everything attached to it.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite
import structlog
from pydantic import TypeAdapter

from knowledge_pipeline.interfaces.record_store import IIngestionRecordStore
from knowledge_pipeline.models.ingestion import (
    AnonymousActor,
    ExtractedContent,
    ExtractionQueueEntry,
    ExtractionStatus,
    IngestionRecord,
    IngestionStatus,
    SourceKind,
    UserActor,
    actor_from_columns,
)
from knowledge_pipeline.models.tags import SmartTag, TagCategory
from knowledge_pipeline.utils.errors import NotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/ingestion.db")

_CONTENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(ExtractedContent)

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS ingestion_records (
    id                      TEXT PRIMARY KEY,
    owner_kind              TEXT NOT NULL,
    owner_id                TEXT,
    source_kind             TEXT NOT NULL,
    source_locator          TEXT NOT NULL,
    storage_path            TEXT NOT NULL,
    title                   TEXT,
    mime_type               TEXT NOT NULL,
    declared_name           TEXT NOT NULL,
    byte_size               INTEGER NOT NULL DEFAULT 0,
    status                  TEXT NOT NULL,
    extraction_status       TEXT NOT NULL,
    content_text            TEXT,
    extracted_content       TEXT,
    embedding               TEXT,
    embedding_model         TEXT,
    error_message           TEXT,
    retry_count             INTEGER NOT NULL DEFAULT 0,
    created_at              TEXT NOT NULL,
    updated_at              TEXT NOT NULL,
    processing_started_at   TEXT,
    processing_completed_at TEXT
);
""",
    """\
CREATE TABLE IF NOT EXISTS smart_tags (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    record_id           TEXT NOT NULL REFERENCES ingestion_records(id) ON DELETE CASCADE,
    name                TEXT NOT NULL,
    category            TEXT NOT NULL,
    confidence          REAL NOT NULL,
    description         TEXT NOT NULL DEFAULT '',
    extracted_entities  TEXT NOT NULL DEFAULT '[]'
);
""",
    """\
CREATE TABLE IF NOT EXISTS extraction_queue (
    record_id      TEXT PRIMARY KEY REFERENCES ingestion_records(id) ON DELETE CASCADE,
    progress       INTEGER NOT NULL DEFAULT 0,
    status         TEXT NOT NULL,
    started_at     TEXT,
    completed_at   TEXT,
    error_message  TEXT
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_records_owner ON ingestion_records(owner_kind, owner_id);",
    "CREATE INDEX IF NOT EXISTS idx_records_status ON ingestion_records(status);",
    "CREATE INDEX IF NOT EXISTS idx_tags_record ON smart_tags(record_id);",
]

_RECORD_COLUMNS = (
    "id",
    "owner_kind",
    "owner_id",
    "source_kind",
    "source_locator",
    "storage_path",
    "title",
    "mime_type",
    "declared_name",
    "byte_size",
    "status",
    "extraction_status",
    "content_text",
    "extracted_content",
    "embedding",
    "embedding_model",
    "error_message",
    "retry_count",
    "created_at",
    "updated_at",
    "processing_started_at",
    "processing_completed_at",
)

# Columns ``save`` never rewrites: identity, ownership, retry accounting.
_IMMUTABLE_ON_SAVE = {"id", "owner_kind", "owner_id", "retry_count", "created_at"}

_INSERT_RECORD_SQL = (
    f"INSERT INTO ingestion_records ({', '.join(_RECORD_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _RECORD_COLUMNS)});"
)

_SAVE_COLUMNS = [c for c in _RECORD_COLUMNS if c not in _IMMUTABLE_ON_SAVE]
_UPDATE_RECORD_SQL = (
    "UPDATE ingestion_records SET "
    + ", ".join(f"{c} = ?" for c in _SAVE_COLUMNS)
    + " WHERE id = ?;"
)

# Single statement so concurrent retries of one record cannot lose an increment.
_MARK_FOR_RETRY_SQL = """\
UPDATE ingestion_records
SET status            = 'pending',
    extraction_status = 'pending',
    retry_count       = retry_count + 1,
    error_message     = NULL,
    processing_completed_at = NULL,
    updated_at        = ?
WHERE id = ?
  AND status = 'failed'
  AND (? IS NULL OR retry_count < ?);
"""

_UPSERT_QUEUE_SQL = """\
INSERT INTO extraction_queue (record_id, progress, status, started_at, completed_at, error_message)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT(record_id)
DO UPDATE SET progress      = excluded.progress,
              status        = excluded.status,
              started_at    = excluded.started_at,
              completed_at  = excluded.completed_at,
              error_message = excluded.error_message;
"""


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteIngestionRecordStore(IIngestionRecordStore):
    """SQLite-backed persistence for the ingestion pipeline."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            # Foreign keys are per-connection in SQLite; cascades need this.
            await db.execute("PRAGMA foreign_keys = ON;")
            yield db

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            for create_sql in _CREATE_TABLES_SQL:
                await db.execute(create_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("record_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def create(self, record: IngestionRecord) -> IngestionRecord:
        row = self._record_to_row(record)
        async with self._connect() as db:
            await db.execute(_INSERT_RECORD_SQL, tuple(row[c] for c in _RECORD_COLUMNS))
            await db.commit()
        logger.info(
            "ingestion_record_created",
            record_id=record.id,
            source_kind=record.source_kind.value,
            mime_type=record.mime_type,
        )
        return record

    async def get(self, record_id: str) -> IngestionRecord | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {', '.join(_RECORD_COLUMNS)} FROM ingestion_records WHERE id = ?",
                (record_id,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            tags = await self._fetch_tags(db, record_id)
        return self._row_to_record(row, tags)

    async def save(self, record: IngestionRecord) -> IngestionRecord:
        record = record.model_copy(update={"updated_at": datetime.now(tz=timezone.utc)})  # noqa: UP017
        row = self._record_to_row(record)
        async with self._connect() as db:
            cursor = await db.execute(
                _UPDATE_RECORD_SQL,
                (*[row[c] for c in _SAVE_COLUMNS], record.id),
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise NotFoundError(
                    message=f"Ingestion record {record.id} not found",
                    provider_name=self.get_provider_name(),
                )
        return record

    async def list_records(
        self,
        owner: AnonymousActor | UserActor | None = None,
        status: IngestionStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[IngestionRecord]:
        where, params = self._owner_filter(owner)
        if status is not None:
            where.append("status = ?")
            params.append(status.value)
        sql = f"SELECT {', '.join(_RECORD_COLUMNS)} FROM ingestion_records"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
            records = []
            for row in rows:
                tags = await self._fetch_tags(db, row["id"])
                records.append(self._row_to_record(row, tags))
        return records

    async def count_by_status(
        self, owner: AnonymousActor | UserActor | None = None
    ) -> dict[IngestionStatus, int]:
        where, params = self._owner_filter(owner)
        sql = "SELECT status, COUNT(*) AS n FROM ingestion_records"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " GROUP BY status"

        counts = {status: 0 for status in IngestionStatus}
        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            for row in await cursor.fetchall():
                counts[IngestionStatus(row["status"])] = row["n"]
        return counts

    async def delete(self, record_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM ingestion_records WHERE id = ?", (record_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("ingestion_record_deleted", record_id=record_id)
        return deleted

    async def mark_for_retry(
        self, record_id: str, max_retry_count: int | None = None
    ) -> IngestionRecord | None:
        now = datetime.now(tz=timezone.utc).isoformat()  # noqa: UP017
        async with self._connect() as db:
            cursor = await db.execute(
                _MARK_FOR_RETRY_SQL,
                (now, record_id, max_retry_count, max_retry_count),
            )
            await db.commit()
            if cursor.rowcount == 0:
                return None
        return await self.get(record_id)

    # ------------------------------------------------------------------
    # Smart tags
    # ------------------------------------------------------------------

    async def replace_tags(self, record_id: str, tags: list[SmartTag]) -> None:
        async with self._connect() as db:
            # One transaction: readers see either the old set or the new one.
            await db.execute("BEGIN")
            await db.execute("DELETE FROM smart_tags WHERE record_id = ?", (record_id,))
            await db.executemany(
                "INSERT INTO smart_tags "
                "(record_id, name, category, confidence, description, extracted_entities) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (
                        record_id,
                        tag.name,
                        tag.category.value,
                        tag.confidence,
                        tag.description,
                        json.dumps(tag.extracted_entities),
                    )
                    for tag in tags
                ],
            )
            await db.commit()

    async def get_tags(self, record_id: str) -> list[SmartTag]:
        async with self._connect() as db:
            return await self._fetch_tags(db, record_id)

    # ------------------------------------------------------------------
    # Extraction queue
    # ------------------------------------------------------------------

    async def upsert_queue_entry(self, entry: ExtractionQueueEntry) -> None:
        async with self._connect() as db:
            await db.execute(
                _UPSERT_QUEUE_SQL,
                (
                    entry.record_id,
                    entry.progress,
                    entry.status.value,
                    _iso(entry.started_at),
                    _iso(entry.completed_at),
                    entry.error_message,
                ),
            )
            await db.commit()

    async def get_queue_entry(self, record_id: str) -> ExtractionQueueEntry | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT record_id, progress, status, started_at, completed_at, error_message "
                "FROM extraction_queue WHERE record_id = ?",
                (record_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return ExtractionQueueEntry(
            record_id=row["record_id"],
            progress=row["progress"],
            status=ExtractionStatus(row["status"]),
            started_at=_parse_dt(row["started_at"]),
            completed_at=_parse_dt(row["completed_at"]),
            error_message=row["error_message"],
        )

    def get_provider_name(self) -> str:
        return "sqlite"

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _owner_filter(owner: AnonymousActor | UserActor | None) -> tuple[list[str], list[Any]]:
        if owner is None:
            return [], []
        if owner.owner_id is None:
            return ["owner_kind = ?"], [owner.kind]
        return ["owner_kind = ?", "owner_id = ?"], [owner.kind, owner.owner_id]

    @staticmethod
    async def _fetch_tags(db: aiosqlite.Connection, record_id: str) -> list[SmartTag]:
        cursor = await db.execute(
            "SELECT name, category, confidence, description, extracted_entities "
            "FROM smart_tags WHERE record_id = ? ORDER BY id",
            (record_id,),
        )
        rows = await cursor.fetchall()
        return [
            SmartTag(
                name=r["name"],
                category=TagCategory(r["category"]),
                confidence=r["confidence"],
                description=r["description"],
                extracted_entities=json.loads(r["extracted_entities"] or "[]"),
            )
            for r in rows
        ]

    @staticmethod
    def _record_to_row(record: IngestionRecord) -> dict[str, Any]:
        content = (
            _CONTENT_ADAPTER.dump_json(record.extracted_content).decode("utf-8")
            if record.extracted_content is not None
            else None
        )
        return {
            "id": record.id,
            "owner_kind": record.owner.kind,
            "owner_id": record.owner.owner_id,
            "source_kind": record.source_kind.value,
            "source_locator": record.source_locator,
            "storage_path": record.storage_path,
            "title": record.title,
            "mime_type": record.mime_type,
            "declared_name": record.declared_name,
            "byte_size": record.byte_size,
            "status": record.status.value,
            "extraction_status": record.extraction_status.value,
            "content_text": record.content_text,
            "extracted_content": content,
            "embedding": json.dumps(record.embedding) if record.embedding is not None else None,
            "embedding_model": record.embedding_model,
            "error_message": record.error_message,
            "retry_count": record.retry_count,
            "created_at": _iso(record.created_at),
            "updated_at": _iso(record.updated_at),
            "processing_started_at": _iso(record.processing_started_at),
            "processing_completed_at": _iso(record.processing_completed_at),
        }

    @staticmethod
    def _row_to_record(row: aiosqlite.Row, tags: list[SmartTag]) -> IngestionRecord:
        content = (
            _CONTENT_ADAPTER.validate_json(row["extracted_content"])
            if row["extracted_content"]
            else None
        )
        return IngestionRecord(
            id=row["id"],
            owner=actor_from_columns(row["owner_kind"], row["owner_id"]),
            source_kind=SourceKind(row["source_kind"]),
            source_locator=row["source_locator"],
            storage_path=row["storage_path"],
            title=row["title"],
            mime_type=row["mime_type"],
            declared_name=row["declared_name"],
            byte_size=row["byte_size"],
            status=IngestionStatus(row["status"]),
            extraction_status=ExtractionStatus(row["extraction_status"]),
            content_text=row["content_text"],
            extracted_content=content,
            embedding=json.loads(row["embedding"]) if row["embedding"] else None,
            embedding_model=row["embedding_model"],
            smart_tags=tags,
            error_message=row["error_message"],
            retry_count=row["retry_count"],
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
            processing_started_at=_parse_dt(row["processing_started_at"]),
            processing_completed_at=_parse_dt(row["processing_completed_at"]),
        )
