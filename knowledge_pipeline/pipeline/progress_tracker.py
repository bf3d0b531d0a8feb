"""Extraction progress tracking with callback-based listener notification.

Keeps each record's :class:`ExtractionQueueEntry` in the record store and
broadcasts updates to registered listeners.  Listeners are keyed by record
id; listeners registered under ``ALL_RECORDS`` hear every record.

Within one processing run progress never goes backwards: an update lower
than the current value is recorded as the current value.  :meth:`start`
begins a new run at 0.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from knowledge_pipeline.interfaces.record_store import IIngestionRecordStore
from knowledge_pipeline.models.ingestion import ExtractionQueueEntry, ExtractionStatus
from knowledge_pipeline.utils.logging import get_logger

ALL_RECORDS = "*"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class ProgressTracker:
    """Persists and broadcasts per-record extraction progress.

    Listener callbacks may be sync or async and receive
    ``(record_id, status, progress, message)``.
    """

    def __init__(self, store: IIngestionRecordStore) -> None:
        self._store = store
        self._entries: dict[str, ExtractionQueueEntry] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def start(self, record_id: str, message: str = "queued") -> ExtractionQueueEntry:
        """Create or reset the record's queue entry for a new processing run."""
        entry = ExtractionQueueEntry(
            record_id=record_id,
            progress=0,
            status=ExtractionStatus.PROCESSING,
            started_at=_utcnow(),
        )
        return await self._record(entry, message)

    async def update(self, record_id: str, progress: int, message: str = "") -> ExtractionQueueEntry:
        """Advance progress (clamped to 0-100, never below the current value)."""
        current = await self._current(record_id)
        progress = max(0, min(100, int(progress)))
        if current is not None and current.status is ExtractionStatus.PROCESSING:
            progress = max(progress, current.progress)
            entry = current.model_copy(update={"progress": progress})
        else:
            entry = ExtractionQueueEntry(
                record_id=record_id,
                progress=progress,
                status=ExtractionStatus.PROCESSING,
                started_at=_utcnow(),
            )
        return await self._record(entry, message)

    async def complete(self, record_id: str, message: str = "extraction complete") -> ExtractionQueueEntry:
        current = await self._current(record_id)
        base = current or ExtractionQueueEntry(record_id=record_id, started_at=_utcnow())
        entry = base.model_copy(
            update={
                "progress": 100,
                "status": ExtractionStatus.COMPLETED,
                "completed_at": _utcnow(),
                "error_message": None,
            }
        )
        return await self._record(entry, message)

    async def fail(self, record_id: str, error_message: str) -> ExtractionQueueEntry:
        current = await self._current(record_id)
        base = current or ExtractionQueueEntry(record_id=record_id, started_at=_utcnow())
        entry = base.model_copy(
            update={
                "status": ExtractionStatus.FAILED,
                "completed_at": _utcnow(),
                "error_message": error_message,
            }
        )
        return await self._record(entry, error_message)

    async def get_entry(self, record_id: str) -> ExtractionQueueEntry | None:
        return await self._current(record_id)

    def forget(self, record_id: str) -> None:
        """Drop cached state and listeners for a deleted record."""
        self._entries.pop(record_id, None)
        self._listeners.pop(record_id, None)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def register_listener(self, record_id: str, callback: Callable) -> None:
        """Register a callback for one record, or for all via ``ALL_RECORDS``."""
        listeners = self._listeners.setdefault(record_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                record_id=record_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, record_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(record_id, [])
        if callback in listeners:
            listeners.remove(callback)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _current(self, record_id: str) -> ExtractionQueueEntry | None:
        entry = self._entries.get(record_id)
        if entry is None:
            entry = await self._store.get_queue_entry(record_id)
            if entry is not None and entry.status is ExtractionStatus.PROCESSING:
                self._entries[record_id] = entry
        return entry

    async def _record(self, entry: ExtractionQueueEntry, message: str) -> ExtractionQueueEntry:
        await self._store.upsert_queue_entry(entry)
        # only in-flight runs are cached; finished entries are read from the store
        if entry.status is ExtractionStatus.PROCESSING:
            self._entries[entry.record_id] = entry
        else:
            self._entries.pop(entry.record_id, None)
        self._logger.debug(
            "extraction_progress",
            record_id=entry.record_id,
            status=entry.status.value,
            progress=entry.progress,
            message=message,
        )
        await self._notify_listeners(entry, message)
        return entry

    async def _notify_listeners(self, entry: ExtractionQueueEntry, message: str) -> None:
        """Invoke listeners; a listener that raises is logged and skipped."""
        listeners = [
            *self._listeners.get(entry.record_id, []),
            *self._listeners.get(ALL_RECORDS, []),
        ]
        for callback in listeners:
            try:
                result = callback(entry.record_id, entry.status, entry.progress, message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    record_id=entry.record_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
