"""Vector-store value types: objects to upload and the results of store operations."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class VectorObject(BaseModel):
    """One object destined for a vector-store collection."""

    model_config = ConfigDict(frozen=True)

    properties: dict[str, Any] = Field(default_factory=dict)
    vector: list[float] = Field(min_length=1)
    id: str | None = None


class FailedBatch(BaseModel):
    """A batch insert call that raised; every object in it is considered failed."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    start: int = Field(ge=0)
    size: int = Field(ge=0)
    error: str


class UploadResult(BaseModel):
    """Outcome of VectorStoreUploader.upload.  ``uploaded`` never exceeds ``requested``."""

    model_config = ConfigDict(frozen=True)

    collection: str
    requested: int = Field(default=0, ge=0)
    uploaded: int = Field(default=0, ge=0)
    batches: int = Field(default=0, ge=0)
    failed_batches: list[FailedBatch] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.uploaded == self.requested and not self.failed_batches


class ClearResult(BaseModel):
    """Outcome of VectorStoreUploader.clear.  ``deleted_count <= total_objects``."""

    model_config = ConfigDict(frozen=True)

    collection: str
    deleted_count: int = Field(default=0, ge=0)
    total_objects: int = Field(default=0, ge=0)
    failed_ids: list[str] = Field(default_factory=list)


class CollectionStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    collections: dict[str, int] = Field(default_factory=dict)
    total_objects: int = Field(default=0, ge=0)
    nodes: int = Field(default=0, ge=0)


class HealthStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    connected: bool
    provider: str
    stats: CollectionStats | None = None
    error: str | None = None


class SearchHit(BaseModel):
    """A nearVector query match."""

    model_config = ConfigDict(frozen=True)

    id: str
    distance: float
    properties: dict[str, Any] = Field(default_factory=dict)
