"""Embedding provider adapters."""

from knowledge_pipeline.providers.embedding.openai_embedding_provider import (
    OpenAIEmbeddingProvider,
)

__all__ = ["OpenAIEmbeddingProvider"]
