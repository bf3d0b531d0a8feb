"""Vector-store upload service."""

from knowledge_pipeline.services.vector_store.uploader import VectorStoreUploader

__all__ = ["VectorStoreUploader"]
