"""Bulk ingestion service."""

from knowledge_pipeline.services.ingestion.batch_ingestion_service import BatchIngestionService

__all__ = ["BatchIngestionService"]
