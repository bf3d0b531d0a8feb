"""Results reported by the orchestrator for single and bulk operations."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from knowledge_pipeline.models.ingestion import IngestionStatus
from knowledge_pipeline.models.vectors import UploadResult


class ProcessingReport(BaseModel):
    """What happened when the orchestrator processed one record."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    status: IngestionStatus
    tag_count: int = Field(default=0, ge=0)
    tagging_fallback: bool = False
    tagging_error: str | None = None
    error_message: str | None = None


class BulkOperationResult(BaseModel):
    """Per-member outcome of a bulk retry or delete."""

    model_config = ConfigDict(frozen=True)

    requested: int = Field(ge=0)
    succeeded: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


class BatchIngestionReport(BaseModel):
    """Summary of a bulk crawl/embed/upload run that bypasses ingestion records."""

    model_config = ConfigDict(frozen=True)

    collection: str
    total: int = Field(ge=0)
    embedded: int = Field(default=0, ge=0)
    embedding_failed: int = Field(default=0, ge=0)
    paused: bool = False
    upload: UploadResult | None = None
    # index -> error for items that failed embedding
    errors: dict[int, str] = Field(default_factory=dict)

    @property
    def uploaded(self) -> int:
        return self.upload.uploaded if self.upload else 0
