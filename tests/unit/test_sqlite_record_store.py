"""Unit tests for SQLiteIngestionRecordStore against a temporary database."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from knowledge_pipeline.models.ingestion import (
    AnonymousActor,
    ExtractionQueueEntry,
    ExtractionStatus,
    IngestionRecord,
    IngestionStatus,
    SourceKind,
    TextContent,
    UserActor,
)
from knowledge_pipeline.models.tags import SmartTag, TagCategory
from knowledge_pipeline.providers.record_store.sqlite_record_store import (
    SQLiteIngestionRecordStore,
)
from knowledge_pipeline.utils.errors import NotFoundError

_BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)  # noqa: UP017


def _record(offset_minutes: int = 0, **overrides) -> IngestionRecord:
    created = _BASE_TIME + timedelta(minutes=offset_minutes)
    defaults = {
        "source_kind": SourceKind.UPLOAD,
        "source_locator": "notes.txt",
        "storage_path": "anonymous/notes.txt",
        "mime_type": "text/plain",
        "declared_name": "notes.txt",
        "byte_size": 11,
        "created_at": created,
        "updated_at": created,
    }
    defaults.update(overrides)
    return IngestionRecord(**defaults)


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> SQLiteIngestionRecordStore:
    sqlite_store = SQLiteIngestionRecordStore(db_path=tmp_path / "nested" / "ingestion.db")
    await sqlite_store.initialize()
    return sqlite_store


class TestRecords:
    @pytest.mark.asyncio
    async def test_create_and_get_round_trip(self, store: SQLiteIngestionRecordStore) -> None:
        record = _record(
            owner=UserActor(user_id="u-1"),
            content_text="hello world",
            extracted_content=TextContent(line_count=1, character_count=11),
            embedding=[0.1, 0.2],
            embedding_model="mock",
        )
        await store.create(record)

        loaded = await store.get(record.id)

        assert loaded is not None
        assert loaded.owner == UserActor(user_id="u-1")
        assert loaded.extracted_content == TextContent(line_count=1, character_count=11)
        assert loaded.embedding == [0.1, 0.2]
        assert loaded.created_at == record.created_at

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store: SQLiteIngestionRecordStore) -> None:
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_save_updates_fields_but_not_retry_count(
        self, store: SQLiteIngestionRecordStore
    ) -> None:
        record = await store.create(_record())

        saved = await store.save(
            record.model_copy(
                update={
                    "status": IngestionStatus.FAILED,
                    "error_message": "boom",
                    "retry_count": 9,
                }
            )
        )
        loaded = await store.get(record.id)

        assert loaded.status == IngestionStatus.FAILED
        assert loaded.error_message == "boom"
        assert loaded.retry_count == 0
        assert saved.updated_at > record.updated_at

    @pytest.mark.asyncio
    async def test_save_missing_raises(self, store: SQLiteIngestionRecordStore) -> None:
        with pytest.raises(NotFoundError):
            await store.save(_record())

    @pytest.mark.asyncio
    async def test_list_newest_first_with_filters(
        self, store: SQLiteIngestionRecordStore
    ) -> None:
        older = await store.create(_record(0))
        newer = await store.create(_record(5, owner=UserActor(user_id="u-1")))
        failed = await store.create(_record(10, status=IngestionStatus.FAILED))

        all_ids = [r.id for r in await store.list_records()]
        assert all_ids == [failed.id, newer.id, older.id]

        anonymous = await store.list_records(owner=AnonymousActor())
        assert {r.id for r in anonymous} == {older.id, failed.id}

        only_failed = await store.list_records(status=IngestionStatus.FAILED)
        assert [r.id for r in only_failed] == [failed.id]

        page = await store.list_records(limit=1, offset=1)
        assert [r.id for r in page] == [newer.id]

    @pytest.mark.asyncio
    async def test_count_by_status_zero_fills(self, store: SQLiteIngestionRecordStore) -> None:
        await store.create(_record(0))
        await store.create(_record(1, status=IngestionStatus.COMPLETED))

        counts = await store.count_by_status()

        assert set(counts) == set(IngestionStatus)
        assert counts[IngestionStatus.PENDING] == 1
        assert counts[IngestionStatus.COMPLETED] == 1
        assert counts[IngestionStatus.FAILED] == 0

    @pytest.mark.asyncio
    async def test_delete_cascades(self, store: SQLiteIngestionRecordStore) -> None:
        record = await store.create(_record())
        await store.replace_tags(
            record.id, [SmartTag(name="ai", category=TagCategory.TOPIC, confidence=0.9)]
        )
        await store.upsert_queue_entry(ExtractionQueueEntry(record_id=record.id, progress=30))

        assert await store.delete(record.id) is True
        assert await store.delete(record.id) is False
        assert await store.get_tags(record.id) == []
        assert await store.get_queue_entry(record.id) is None


class TestMarkForRetry:
    @pytest.mark.asyncio
    async def test_failed_record_resets_and_increments(
        self, store: SQLiteIngestionRecordStore
    ) -> None:
        record = await store.create(
            _record(status=IngestionStatus.FAILED, error_message="timeout")
        )

        retried = await store.mark_for_retry(record.id)

        assert retried.status == IngestionStatus.PENDING
        assert retried.extraction_status == ExtractionStatus.PENDING
        assert retried.retry_count == 1
        assert retried.error_message is None

    @pytest.mark.asyncio
    async def test_non_failed_record_is_not_retried(
        self, store: SQLiteIngestionRecordStore
    ) -> None:
        record = await store.create(_record(status=IngestionStatus.COMPLETED))
        assert await store.mark_for_retry(record.id) is None
        assert (await store.get(record.id)).retry_count == 0

    @pytest.mark.asyncio
    async def test_cap_blocks_further_retries(self, store: SQLiteIngestionRecordStore) -> None:
        record = await store.create(_record(status=IngestionStatus.FAILED))

        assert await store.mark_for_retry(record.id, max_retry_count=1) is not None
        await store.save(
            (await store.get(record.id)).model_copy(update={"status": IngestionStatus.FAILED})
        )

        assert await store.mark_for_retry(record.id, max_retry_count=1) is None
        assert (await store.get(record.id)).retry_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_retries_increment_once(
        self, store: SQLiteIngestionRecordStore
    ) -> None:
        record = await store.create(_record(status=IngestionStatus.FAILED))

        results = await asyncio.gather(*(store.mark_for_retry(record.id) for _ in range(3)))

        assert sum(1 for r in results if r is not None) == 1
        assert (await store.get(record.id)).retry_count == 1


class TestTagsAndQueue:
    @pytest.mark.asyncio
    async def test_replace_tags_replaces_whole_set(
        self, store: SQLiteIngestionRecordStore
    ) -> None:
        record = await store.create(_record())
        await store.replace_tags(
            record.id,
            [
                SmartTag(
                    name="vector search",
                    category=TagCategory.TOPIC,
                    confidence=0.92,
                    extracted_entities=["Weaviate"],
                )
            ],
        )
        await store.replace_tags(
            record.id, [SmartTag(name="tutorial", category=TagCategory.CONTENT_TYPE, confidence=0.8)]
        )

        tags = await store.get_tags(record.id)
        assert [t.name for t in tags] == ["tutorial"]
        assert (await store.get(record.id)).smart_tags == tags

    @pytest.mark.asyncio
    async def test_queue_entry_upsert(self, store: SQLiteIngestionRecordStore) -> None:
        record = await store.create(_record())
        started = datetime.now(tz=timezone.utc)  # noqa: UP017

        await store.upsert_queue_entry(
            ExtractionQueueEntry(
                record_id=record.id,
                progress=30,
                status=ExtractionStatus.PROCESSING,
                started_at=started,
            )
        )
        await store.upsert_queue_entry(
            ExtractionQueueEntry(
                record_id=record.id,
                progress=100,
                status=ExtractionStatus.COMPLETED,
                started_at=started,
            )
        )

        entry = await store.get_queue_entry(record.id)
        assert entry.progress == 100
        assert entry.status == ExtractionStatus.COMPLETED
        assert entry.started_at == started
