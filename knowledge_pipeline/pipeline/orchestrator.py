"""Central orchestrator for the ingestion pipeline.

Drives one :class:`IngestionRecord` at a time through

    PENDING -> EXTRACTING -> (TAGGING) -> EMBEDDING -> UPLOADING -> COMPLETED

persisting every status change through the injected
:class:`IIngestionRecordStore`.  Records are frozen models, so each stage
produces a new instance via ``model_copy(update={...})`` and saves it.

Failure policy:
    * extraction, embedding and upload errors are terminal for the record
      (status FAILED, ``error_message`` set) until an explicit retry
    * tagging is best-effort.  In background mode it runs as an
      ``asyncio.Task`` alongside embedding and its outcome is awaited
      before the vector object is built.  In inline mode the record passes
      through TAGGING first.  Either way a tagging failure never fails the record.

Many records may be in flight at once; each walks its own state machine
and nothing is ordered across records.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

import structlog

from knowledge_pipeline.models.ingestion import (
    AnonymousActor,
    ExtractionQueueEntry,
    ExtractionStatus,
    IngestionRecord,
    IngestionStatus,
    SourceKind,
    UserActor,
)
from knowledge_pipeline.models.pipeline import BulkOperationResult, ProcessingReport
from knowledge_pipeline.models.vectors import VectorObject
from knowledge_pipeline.pipeline.state_machine import ensure_transition, is_retryable
from knowledge_pipeline.utils.concurrency import throttled_gather
from knowledge_pipeline.utils.errors import (
    KnowledgePipelineError,
    NotFoundError,
    ValidationError,
)
from knowledge_pipeline.utils.logging import get_logger

if TYPE_CHECKING:
    from knowledge_pipeline.interfaces.blob_storage_provider import IBlobStorageProvider
    from knowledge_pipeline.interfaces.record_store import IIngestionRecordStore
    from knowledge_pipeline.models.crawl import CrawledPage
    from knowledge_pipeline.pipeline.progress_tracker import ProgressTracker
    from knowledge_pipeline.services.embedding.embedder import Embedder
    from knowledge_pipeline.services.extraction.content_extractor import ContentExtractor
    from knowledge_pipeline.services.tagging.smart_tagger import SmartTagger, TaggingOutcome
    from knowledge_pipeline.services.vector_store.uploader import VectorStoreUploader

ActorType = AnonymousActor | UserActor

# Vector-store object ids derive from record ids so a retried upload
# overwrites the earlier object instead of duplicating it.
_OBJECT_ID_NAMESPACE = uuid.UUID("6f1c1f1e-8d1b-4e55-9a51-7b0c8f3d2a10")


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


def vector_object_id(record_id: str) -> str:
    return str(uuid.uuid5(_OBJECT_ID_NAMESPACE, record_id))


class PipelineOrchestrator:
    """Runs ingestion records through extraction, tagging, embedding and upload.

    All collaborators are injected.  ``tagger`` may be ``None`` to disable
    tagging entirely.
    """

    def __init__(
        self,
        store: IIngestionRecordStore,
        blob_storage: IBlobStorageProvider,
        extractor: ContentExtractor,
        embedder: Embedder,
        uploader: VectorStoreUploader,
        progress_tracker: ProgressTracker,
        tagger: SmartTagger | None = None,
        collection: str = "KnowledgeFragment",
        tagging_mode: str = "background",
        max_retry_count: int = 5,
        concurrency: int = 4,
    ) -> None:
        if tagging_mode not in ("background", "inline"):
            raise ValueError(f"Unknown tagging mode: {tagging_mode}")
        self._store = store
        self._blob_storage = blob_storage
        self._extractor = extractor
        self._embedder = embedder
        self._uploader = uploader
        self._progress = progress_tracker
        self._tagger = tagger
        self._collection = collection
        self._tagging_mode = tagging_mode
        self._max_retry_count = max_retry_count if max_retry_count > 0 else None
        self._concurrency = max(1, concurrency)
        self._active: set[str] = set()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def collection(self) -> str:
        return self._collection

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_upload(
        self,
        actor: ActorType,
        file_name: str,
        mime_type: str,
        data: bytes,
        title: str | None = None,
    ) -> IngestionRecord:
        """Store uploaded bytes and create a PENDING record for them."""
        if not isinstance(data, (bytes, bytearray)):
            raise ValidationError(message="Upload payload must be bytes")
        safe_name = PurePosixPath(file_name or "").name or "upload.bin"
        record_id = uuid.uuid4().hex
        path = f"uploads/{self._owner_segment(actor)}/{record_id}/{safe_name}"
        storage_path = await self._blob_storage.upload(path, bytes(data))

        record = IngestionRecord(
            id=record_id,
            owner=actor,
            source_kind=SourceKind.UPLOAD,
            source_locator=storage_path,
            storage_path=storage_path,
            title=title or safe_name,
            mime_type=mime_type or "application/octet-stream",
            declared_name=safe_name,
            byte_size=len(data),
        )
        return await self._store.create(record)

    async def submit_crawled_page(self, actor: ActorType, page: CrawledPage) -> IngestionRecord:
        """Store a crawled page's text and create a PENDING record for it."""
        text = page.best_text
        if not text.strip():
            raise ValidationError(message=f"Crawled page {page.url} has no content")
        data = text.encode("utf-8")
        is_markdown = bool(page.markdown)
        name = "page.md" if is_markdown else "page.txt"
        record_id = uuid.uuid4().hex
        path = f"crawls/{self._owner_segment(actor)}/{record_id}/{name}"
        storage_path = await self._blob_storage.upload(path, data)

        record = IngestionRecord(
            id=record_id,
            owner=actor,
            source_kind=SourceKind.CRAWL,
            source_locator=page.url,
            storage_path=storage_path,
            title=page.title or page.url,
            mime_type="text/markdown" if is_markdown else "text/plain",
            declared_name=name,
            byte_size=len(data),
        )
        return await self._store.create(record)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process(self, record_id: str) -> ProcessingReport:
        """Run one PENDING record through every stage.

        Stage failures end in FAILED and are reported, not raised.

        Raises
        ------
        NotFoundError
            If the record does not exist.
        ValidationError
            If the record is not PENDING or is already being processed.
        """
        if record_id in self._active:
            raise ValidationError(message=f"Record {record_id} is already being processed")
        # claimed before the first await so concurrent callers see it
        self._active.add(record_id)
        try:
            record = await self._store.get(record_id)
            if record is None:
                raise NotFoundError(message=f"Ingestion record {record_id} not found")
            if record.status is not IngestionStatus.PENDING:
                raise ValidationError(
                    message=(
                        f"Record {record_id} is {record.status.value}; "
                        "only pending records can be processed"
                    )
                )
            with structlog.contextvars.bound_contextvars(record_id=record_id):
                return await self._run(record)
        finally:
            self._active.discard(record_id)

    async def process_many(self, record_ids: list[str]) -> list[ProcessingReport | BaseException]:
        """Process records concurrently (bounded), results in submission order.

        Errors that stop a record from starting (not found, not pending)
        are returned in place of its report.
        """
        results = await throttled_gather(
            [self.process(record_id) for record_id in record_ids],
            limit=self._concurrency,
        )
        for record_id, result in zip(record_ids, results):
            if isinstance(result, BaseException):
                self._logger.warning("record_not_processed", record_id=record_id, error=str(result))
        return results

    async def process_pending(self, limit: int = 100) -> list[ProcessingReport | BaseException]:
        """Process up to *limit* PENDING records, oldest first."""
        pending = await self._store.list_records(status=IngestionStatus.PENDING, limit=limit)
        return await self.process_many([r.id for r in reversed(pending)])

    async def _run(self, record: IngestionRecord) -> ProcessingReport:
        background: list[asyncio.Task[TaggingOutcome | None]] = []
        self._logger.info("record_processing_started", retry_count=record.retry_count)
        try:
            record, tagging_outcome = await self._run_stages(record, background)
        finally:
            # Background tagging is always collected, even if a stage raised.
            if background:
                tagging_outcome = await self._await_tagging(background[0])
        return self._report(record, tagging_outcome)

    async def _run_stages(
        self,
        record: IngestionRecord,
        background: list[asyncio.Task[TaggingOutcome | None]],
    ) -> tuple[IngestionRecord, TaggingOutcome | None]:
        tagging_outcome: TaggingOutcome | None = None

        # -- Extraction ----------------------------------------------------
        record = await self._transition(
            record,
            IngestionStatus.EXTRACTING,
            extraction_status=ExtractionStatus.PROCESSING,
            processing_started_at=_utcnow(),
            processing_completed_at=None,
            error_message=None,
        )
        await self._progress.start(record.id)
        await self._progress.update(record.id, 10, "extraction started")

        try:
            data = await self._blob_storage.download(record.storage_path)
        except Exception as exc:  # noqa: BLE001
            failed = await self._fail(
                record, f"Failed to download source from storage: {exc}", extraction=True
            )
            return failed, None

        try:
            extraction = await self._extractor.extract(
                data,
                record.mime_type,
                record.declared_name,
                on_progress=lambda p: self._progress.update(record.id, p),
            )
        except Exception as exc:  # noqa: BLE001
            return await self._fail(record, f"Extraction failed: {exc}", extraction=True), None

        record = await self._save(
            record.model_copy(
                update={
                    "content_text": extraction.content_text,
                    "extracted_content": extraction.extracted_content,
                    "extraction_status": ExtractionStatus.COMPLETED,
                }
            )
        )
        await self._progress.update(record.id, 90, "content saved")
        await self._progress.complete(record.id)

        # -- Tagging -------------------------------------------------------
        if self._tagger is not None and self._tagging_mode == "inline":
            record = await self._transition(record, IngestionStatus.TAGGING)
            tagging_outcome = await self._tag(self._tagger, record)
        elif self._tagger is not None:
            background.append(asyncio.create_task(self._tag(self._tagger, record)))

        # -- Embedding -----------------------------------------------------
        record = await self._transition(record, IngestionStatus.EMBEDDING)
        try:
            vector = await self._embedder.embed_text(record.content_text or "")
        except Exception as exc:  # noqa: BLE001
            return await self._fail(record, f"Embedding failed: {exc}"), tagging_outcome

        # -- Upload --------------------------------------------------------
        if background:
            # uploaded tags must reflect this run's tagging
            tagging_outcome = await self._await_tagging(background.pop())
        record = await self._transition(
            record,
            IngestionStatus.UPLOADING,
            embedding=vector,
            embedding_model=self._embedder.model_name,
        )
        obj = VectorObject(
            id=vector_object_id(record.id),
            vector=vector,
            properties=self._object_properties(record, tagging_outcome),
        )
        try:
            result = await self._uploader.upload(self._collection, [obj])
        except Exception as exc:  # noqa: BLE001
            return await self._fail(record, f"Upload failed: {exc}"), tagging_outcome
        if result.uploaded < result.requested:
            reason = (
                result.failed_batches[0].error
                if result.failed_batches
                else f"vector store stored {result.uploaded} of {result.requested} objects"
            )
            return await self._fail(record, f"Upload failed: {reason}"), tagging_outcome

        record = await self._transition(
            record,
            IngestionStatus.COMPLETED,
            processing_completed_at=_utcnow(),
        )
        self._logger.info("record_processing_completed", collection=self._collection)
        return record, tagging_outcome

    # ------------------------------------------------------------------
    # Retry / delete
    # ------------------------------------------------------------------

    async def retry(self, record_id: str, actor: ActorType) -> ProcessingReport:
        """Move a FAILED record back to PENDING and process it again.

        Raises
        ------
        NotFoundError
            If the record does not exist or is not owned by *actor*.
        ValidationError
            If the record is not FAILED or has used up its retries.
        """
        record = await self.get(record_id, actor)
        if not is_retryable(record.status):
            raise ValidationError(
                message=(
                    f"Record {record_id} is {record.status.value}; only failed records can be retried"
                )
            )
        if self._max_retry_count is not None and record.retry_count >= self._max_retry_count:
            raise ValidationError(
                message=f"Record {record_id} reached the retry limit of {self._max_retry_count}"
            )
        ensure_transition(record.status, IngestionStatus.PENDING)

        updated = await self._store.mark_for_retry(record_id, self._max_retry_count)
        if updated is None:
            # Lost a race with another retry (or the record vanished).
            current = await self._store.get(record_id)
            if current is None:
                raise NotFoundError(message=f"Ingestion record {record_id} not found")
            raise ValidationError(
                message=f"Record {record_id} is {current.status.value}; retry was not applied"
            )
        self._logger.info("record_retry_requested", record_id=record_id, retry_count=updated.retry_count)
        return await self.process(record_id)

    async def bulk_retry(self, record_ids: list[str], actor: ActorType) -> BulkOperationResult:
        """Retry each record independently; one rejection never blocks the rest."""
        ids = self._require_ids(record_ids)
        results = await throttled_gather(
            [self.retry(record_id, actor) for record_id in ids],
            limit=self._concurrency,
        )
        succeeded: list[str] = []
        failed: dict[str, str] = {}
        for record_id, result in zip(ids, results):
            if isinstance(result, BaseException):
                failed[record_id] = str(result)
            elif result.status is IngestionStatus.COMPLETED:
                succeeded.append(record_id)
            else:
                failed[record_id] = result.error_message or result.status.value
        self._logger.info("bulk_retry_complete", requested=len(ids), succeeded=len(succeeded))
        return BulkOperationResult(requested=len(ids), succeeded=succeeded, failed=failed)

    async def delete(self, record_id: str, actor: ActorType) -> None:
        """Delete a record with its tags and queue entry, then its stored bytes."""
        record = await self.get(record_id, actor)
        if record_id in self._active:
            raise ValidationError(message=f"Record {record_id} is being processed")
        if not await self._store.delete(record_id):
            raise NotFoundError(message=f"Ingestion record {record_id} not found")
        self._progress.forget(record_id)
        try:
            await self._blob_storage.delete(record.storage_path)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "blob_delete_failed", record_id=record_id, path=record.storage_path, error=str(exc)
            )

    async def bulk_delete(self, record_ids: list[str], actor: ActorType) -> BulkOperationResult:
        """Delete each record independently."""
        ids = self._require_ids(record_ids)
        succeeded: list[str] = []
        failed: dict[str, str] = {}
        for record_id in ids:
            try:
                await self.delete(record_id, actor)
            except KnowledgePipelineError as exc:
                failed[record_id] = str(exc)
                continue
            succeeded.append(record_id)
        self._logger.info("bulk_delete_complete", requested=len(ids), succeeded=len(succeeded))
        return BulkOperationResult(requested=len(ids), succeeded=succeeded, failed=failed)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, record_id: str, actor: ActorType) -> IngestionRecord:
        """Return the record if it exists and belongs to *actor*."""
        record = await self._store.get(record_id)
        if record is None or not record.is_owned_by(actor):
            raise NotFoundError(message=f"Ingestion record {record_id} not found")
        return record

    async def list_records(
        self,
        actor: ActorType,
        status: IngestionStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[IngestionRecord]:
        return await self._store.list_records(owner=actor, status=status, limit=limit, offset=offset)

    async def status_counts(self, actor: ActorType) -> dict[IngestionStatus, int]:
        return await self._store.count_by_status(owner=actor)

    async def get_progress(self, record_id: str, actor: ActorType) -> ExtractionQueueEntry | None:
        await self.get(record_id, actor)
        return await self._progress.get_entry(record_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _transition(
        self, record: IngestionRecord, target: IngestionStatus, **updates: Any
    ) -> IngestionRecord:
        ensure_transition(record.status, target)
        saved = await self._save(record.model_copy(update={"status": target, **updates}))
        self._logger.debug(
            "record_status_changed", previous=record.status.value, status=target.value
        )
        return saved

    async def _save(self, record: IngestionRecord) -> IngestionRecord:
        return await self._store.save(record)

    async def _fail(
        self, record: IngestionRecord, message: str, extraction: bool = False
    ) -> IngestionRecord:
        updates: dict[str, Any] = {"error_message": message}
        if extraction:
            updates["extraction_status"] = ExtractionStatus.FAILED
        failed = await self._transition(record, IngestionStatus.FAILED, **updates)
        if extraction:
            await self._progress.fail(record.id, message)
        self._logger.warning(
            "record_processing_failed", stage=record.status.value, error=message
        )
        return failed

    async def _tag(self, tagger: SmartTagger, record: IngestionRecord) -> TaggingOutcome | None:
        return await tagger.tag_record(
            record.id,
            record.content_text or "",
            title=record.title,
            locator=record.source_locator,
        )

    async def _await_tagging(self, task: asyncio.Task) -> TaggingOutcome | None:
        try:
            return await task
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("background_tagging_crashed", error=str(exc))
            return None

    def _object_properties(
        self, record: IngestionRecord, tagging: TaggingOutcome | None
    ) -> dict[str, Any]:
        tags = tagging.tags if tagging is not None else record.smart_tags
        return {
            "title": record.title or record.declared_name,
            "content": record.content_text or "",
            "url": record.source_locator if record.source_kind is SourceKind.CRAWL else "",
            "source": record.source_kind.value,
            "record_id": record.id,
            "owner_id": record.owner_id or "",
            "mime_type": record.mime_type,
            "tags": ", ".join(tag.name for tag in tags),
        }

    @staticmethod
    def _report(record: IngestionRecord, tagging: TaggingOutcome | None) -> ProcessingReport:
        return ProcessingReport(
            record_id=record.id,
            status=record.status,
            tag_count=len(tagging.tags) if tagging is not None else 0,
            tagging_fallback=tagging.used_fallback if tagging is not None else False,
            tagging_error=tagging.error if tagging is not None else None,
            error_message=record.error_message,
        )

    @staticmethod
    def _owner_segment(actor: ActorType) -> str:
        return actor.owner_id or actor.kind

    @staticmethod
    def _require_ids(record_ids: list[str]) -> list[str]:
        if not record_ids:
            raise ValidationError(message="At least one record id is required")
        # Duplicates would race against themselves.
        return list(dict.fromkeys(record_ids))
