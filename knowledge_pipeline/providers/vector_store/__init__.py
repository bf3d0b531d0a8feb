"""Vector store provider adapters."""

from knowledge_pipeline.providers.vector_store.weaviate_provider import (
    WeaviateVectorStoreProvider,
)

__all__ = ["WeaviateVectorStoreProvider"]
