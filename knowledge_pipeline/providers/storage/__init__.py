"""Blob storage adapters."""

from knowledge_pipeline.providers.storage.local_blob_storage import LocalBlobStorageProvider

__all__ = ["LocalBlobStorageProvider"]
