"""Concrete adapters for the interfaces in ``knowledge_pipeline.interfaces``."""
