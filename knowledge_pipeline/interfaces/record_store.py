"""Abstract base class for the ingestion-record repository.

The record store is the only shared mutable resource in the pipeline.
Updates are keyed by record id and independent; the single cross-request
hazard is concurrent retries of the same record, which is why
:meth:`IIngestionRecordStore.mark_for_retry` must be one atomic update.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from knowledge_pipeline.models.ingestion import (
    AnonymousActor,
    ExtractionQueueEntry,
    IngestionRecord,
    IngestionStatus,
    UserActor,
)
from knowledge_pipeline.models.tags import SmartTag


# Concrete implementations: SQLiteIngestionRecordStore
# Located in: knowledge_pipeline/providers/record_store/
class IIngestionRecordStore(ABC):
    """Durable storage for IngestionRecords, their SmartTags and queue entries."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indexes if needed.  Safe to call repeatedly."""

    # -- Records -------------------------------------------------------------

    @abstractmethod
    async def create(self, record: IngestionRecord) -> IngestionRecord:
        """Persist a new record and return it."""

    @abstractmethod
    async def get(self, record_id: str) -> IngestionRecord | None:
        """Return the record (with its smart tags loaded) or ``None``."""

    @abstractmethod
    async def save(self, record: IngestionRecord) -> IngestionRecord:
        """Overwrite the stored record's mutable fields.

        Tags are not written here; use :meth:`replace_tags`.

        Raises
        ------
        knowledge_pipeline.utils.errors.NotFoundError
            If the record does not exist.
        """

    @abstractmethod
    async def list_records(
        self,
        owner: AnonymousActor | UserActor | None = None,
        status: IngestionStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[IngestionRecord]:
        """Return records, newest first, optionally filtered by owner and status."""

    @abstractmethod
    async def count_by_status(
        self, owner: AnonymousActor | UserActor | None = None
    ) -> dict[IngestionStatus, int]:
        """Return the number of records in each status (zero-filled)."""

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """Delete a record, cascading to its tags and queue entry.

        Returns ``True`` if a record was deleted.
        """

    @abstractmethod
    async def mark_for_retry(
        self, record_id: str, max_retry_count: int | None = None
    ) -> IngestionRecord | None:
        """Atomically move a FAILED record back to PENDING.

        In a single update: increment ``retry_count``, clear
        ``error_message``, set ``status`` to PENDING and reset extraction
        state.  When *max_retry_count* is given the update only applies
        while ``retry_count < max_retry_count``.

        Returns the updated record, or ``None`` if the record does not
        exist, is not FAILED, or has exhausted its retries.
        """

    # -- Smart tags ----------------------------------------------------------

    @abstractmethod
    async def replace_tags(self, record_id: str, tags: list[SmartTag]) -> None:
        """Atomically replace every tag of *record_id* with *tags*."""

    @abstractmethod
    async def get_tags(self, record_id: str) -> list[SmartTag]:
        """Return the record's tags in insertion order."""

    # -- Extraction queue ----------------------------------------------------

    @abstractmethod
    async def upsert_queue_entry(self, entry: ExtractionQueueEntry) -> None:
        """Insert or replace the record's single extraction queue entry."""

    @abstractmethod
    async def get_queue_entry(self, record_id: str) -> ExtractionQueueEntry | None:
        """Return the record's queue entry or ``None``."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"sqlite"``."""
