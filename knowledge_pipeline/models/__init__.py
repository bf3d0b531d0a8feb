"""Domain models -- re-exports all public model classes.

    - ingestion.py  -- IngestionRecord, status enums, Actor, ExtractedContent
    - tags.py       -- SmartTag and TagCategory
    - embedding.py  -- per-item and batch embedding outcomes
    - vectors.py    -- vector objects and vector-store operation results
    - crawl.py      -- crawler options and crawled pages
    - pipeline.py   -- orchestrator reports
"""

from __future__ import annotations

from knowledge_pipeline.models.crawl import CrawledPage, CrawlOptions
from knowledge_pipeline.models.embedding import BatchEmbeddingResult, EmbeddingOutcome
from knowledge_pipeline.models.ingestion import (
    Actor,
    AnonymousActor,
    ArchiveContent,
    BinaryContent,
    ExtractedContent,
    ExtractionQueueEntry,
    ExtractionResult,
    ExtractionStatus,
    IngestionRecord,
    IngestionStatus,
    JsonContent,
    SourceKind,
    TextContent,
    UserActor,
    actor_from_columns,
)
from knowledge_pipeline.models.pipeline import (
    BatchIngestionReport,
    BulkOperationResult,
    ProcessingReport,
)
from knowledge_pipeline.models.tags import FALLBACK_TAG, SmartTag, TagCategory
from knowledge_pipeline.models.vectors import (
    ClearResult,
    CollectionStats,
    FailedBatch,
    HealthStatus,
    SearchHit,
    UploadResult,
    VectorObject,
)

__all__ = [
    "FALLBACK_TAG",
    "Actor",
    "AnonymousActor",
    "ArchiveContent",
    "BatchEmbeddingResult",
    "BatchIngestionReport",
    "BinaryContent",
    "BulkOperationResult",
    "ClearResult",
    "CollectionStats",
    "CrawlOptions",
    "CrawledPage",
    "EmbeddingOutcome",
    "ExtractedContent",
    "ExtractionQueueEntry",
    "ExtractionResult",
    "ExtractionStatus",
    "FailedBatch",
    "HealthStatus",
    "IngestionRecord",
    "IngestionStatus",
    "JsonContent",
    "ProcessingReport",
    "SearchHit",
    "SmartTag",
    "SourceKind",
    "TagCategory",
    "TextContent",
    "UploadResult",
    "UserActor",
    "VectorObject",
    "actor_from_columns",
]
