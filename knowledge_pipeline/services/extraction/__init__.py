"""Content extraction service."""

from knowledge_pipeline.services.extraction.content_extractor import ContentExtractor

__all__ = ["ContentExtractor"]
