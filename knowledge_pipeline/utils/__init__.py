"""Utility modules for the knowledge pipeline.

- **errors** -- exception hierarchy rooted at KnowledgePipelineError.
- **concurrency** -- semaphore-throttled gather and the cooperative
  PauseToken used by batch embedding.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

from knowledge_pipeline.utils.concurrency import PauseToken, throttled_gather
from knowledge_pipeline.utils.errors import (
    ConfigurationError,
    ExternalServiceError,
    KnowledgePipelineError,
    NotFoundError,
    PipelineError,
    ValidationError,
)
from knowledge_pipeline.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "ExternalServiceError",
    "KnowledgePipelineError",
    "NotFoundError",
    "PauseToken",
    "PipelineError",
    "ValidationError",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
