"""Ingestion record models -- the durable unit of work in the pipeline.

All models are frozen Pydantic v2 models.  The orchestrator advances a
record by producing a new instance via ``model_copy(update={...})`` and
saving it through the injected ``IIngestionRecordStore``.

    IngestionRecord        one per crawled page or uploaded file
    ExtractedContent       tagged union (text | json | archive | binary)
    ExtractionQueueEntry   coarse progress for observers, one per record
    Actor                  AnonymousActor | UserActor (record owner)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from knowledge_pipeline.models.tags import SmartTag


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Status enums
# ---------------------------------------------------------------------------
class IngestionStatus(str, Enum):  # noqa: UP042
    """Pipeline stage of a record.

    Forward-only: PENDING -> EXTRACTING -> (TAGGING) -> EMBEDDING ->
    UPLOADING -> COMPLETED, with FAILED reachable from every non-terminal
    stage.  Only an explicit retry moves FAILED back to PENDING.
    """

    PENDING = "pending"
    EXTRACTING = "extracting"
    TAGGING = "tagging"
    EMBEDDING = "embedding"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


class ExtractionStatus(str, Enum):  # noqa: UP042
    """Extraction progress, tracked separately from IngestionStatus."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SourceKind(str, Enum):  # noqa: UP042
    CRAWL = "crawl"
    UPLOAD = "upload"


# ---------------------------------------------------------------------------
# Actor -- who owns a record.
# ---------------------------------------------------------------------------
class AnonymousActor(BaseModel):
    """Owner for records submitted without an authenticated user."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["anonymous"] = "anonymous"

    @property
    def owner_id(self) -> str | None:
        return None


class UserActor(BaseModel):
    """Owner for records submitted by an authenticated user."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["user"] = "user"
    user_id: str = Field(min_length=1)

    @property
    def owner_id(self) -> str | None:
        return self.user_id


Actor = Annotated[Union[AnonymousActor, UserActor], Field(discriminator="kind")]


def actor_from_columns(kind: str, owner_id: str | None) -> AnonymousActor | UserActor:
    """Rebuild an Actor from its persisted ``owner_kind``/``owner_id`` columns."""
    if kind == "user" and owner_id:
        return UserActor(user_id=owner_id)
    return AnonymousActor()


# ---------------------------------------------------------------------------
# ExtractedContent -- typed description of what the extractor found.
# ---------------------------------------------------------------------------
class TextContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    encoding: str = "utf-8"
    line_count: int = Field(ge=0)
    character_count: int = Field(ge=0)
    # "invalid-format" when a JSON payload could not be parsed.
    annotation: str | None = None


class JsonContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["json"] = "json"
    key_count: int = Field(ge=0)
    size: int = Field(ge=0)


class ArchiveContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["archive"] = "archive"
    format: str
    size: int = Field(ge=0)
    note: str = "archive contents are not unpacked"


class BinaryContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["binary"] = "binary"
    mime_type: str
    file_name: str
    size: int = Field(ge=0)


ExtractedContent = Annotated[
    Union[TextContent, JsonContent, ArchiveContent, BinaryContent],
    Field(discriminator="type"),
]


class ExtractionResult(BaseModel):
    """Output of ContentExtractor.extract: normalized text plus its description."""

    model_config = ConfigDict(frozen=True)

    content_text: str = Field(min_length=1)
    extracted_content: ExtractedContent


# ---------------------------------------------------------------------------
# IngestionRecord
# ---------------------------------------------------------------------------
class IngestionRecord(BaseModel):
    """Durable state for one source item as it moves through the pipeline."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    owner: Actor = Field(default_factory=AnonymousActor)
    source_kind: SourceKind
    source_locator: str
    # Blob-storage handle the extractor downloads from.
    storage_path: str
    title: str | None = None
    mime_type: str = "application/octet-stream"
    declared_name: str = ""
    byte_size: int = Field(default=0, ge=0)

    status: IngestionStatus = IngestionStatus.PENDING
    extraction_status: ExtractionStatus = ExtractionStatus.PENDING

    content_text: str | None = None
    extracted_content: ExtractedContent | None = None
    embedding: list[float] | None = None
    embedding_model: str | None = None
    smart_tags: list[SmartTag] = Field(default_factory=list)

    error_message: str | None = None
    retry_count: int = Field(default=0, ge=0)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None

    @property
    def owner_id(self) -> str | None:
        return self.owner.owner_id

    def is_owned_by(self, actor: AnonymousActor | UserActor) -> bool:
        return self.owner.kind == actor.kind and self.owner.owner_id == actor.owner_id


class ExtractionQueueEntry(BaseModel):
    """Coarse extraction progress for one record, for polling observers."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    progress: int = Field(default=0, ge=0, le=100)
    status: ExtractionStatus = ExtractionStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
