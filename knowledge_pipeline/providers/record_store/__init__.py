"""Ingestion record store adapters."""

from knowledge_pipeline.providers.record_store.sqlite_record_store import (
    SQLiteIngestionRecordStore,
)

__all__ = ["SQLiteIngestionRecordStore"]
