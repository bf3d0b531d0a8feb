"""Embedding service."""

from knowledge_pipeline.services.embedding.embedder import Embedder

__all__ = ["Embedder"]
