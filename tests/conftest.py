"""Shared pytest fixtures and in-memory fakes for the knowledge pipeline test suite."""

from __future__ import annotations

import asyncio
import hashlib
import struct
from datetime import datetime, timezone
from typing import Any

import pytest

from knowledge_pipeline.interfaces.blob_storage_provider import IBlobStorageProvider
from knowledge_pipeline.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_pipeline.interfaces.llm_provider import ILLMProvider
from knowledge_pipeline.interfaces.record_store import IIngestionRecordStore
from knowledge_pipeline.interfaces.vector_store_provider import IVectorStoreProvider
from knowledge_pipeline.models.ingestion import (
    AnonymousActor,
    ExtractionQueueEntry,
    ExtractionStatus,
    IngestionRecord,
    IngestionStatus,
    UserActor,
)
from knowledge_pipeline.models.tags import SmartTag
from knowledge_pipeline.models.vectors import CollectionStats, SearchHit, VectorObject
from knowledge_pipeline.pipeline.orchestrator import PipelineOrchestrator
from knowledge_pipeline.pipeline.progress_tracker import ProgressTracker
from knowledge_pipeline.services.embedding.embedder import Embedder
from knowledge_pipeline.services.extraction.content_extractor import ContentExtractor
from knowledge_pipeline.services.tagging.smart_tagger import SmartTagger
from knowledge_pipeline.services.vector_store.uploader import VectorStoreUploader
from knowledge_pipeline.utils.errors import ExternalServiceError, NotFoundError

# ---------------------------------------------------------------------------
# Embedding
# ---------------------------------------------------------------------------

EMBEDDING_DIM = 128


def hash_to_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic fixed-length unit vector by hashing *text*."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim * 4:
        raw += hashlib.sha256(raw).digest()
    raw = raw[: dim * 4]
    # Unpack as unsigned ints to avoid NaN/inf float bit patterns.
    values = [v / 2**32 - 0.5 for v in struct.unpack(f"<{dim}I", raw)]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider.

    ``fail_on`` texts raise ExternalServiceError; ``calls`` records every
    text passed to :meth:`embed_single`.
    """

    def __init__(self, dim: int = EMBEDDING_DIM, fail_on: set[str] | None = None) -> None:
        self._dim = dim
        self.fail_on = fail_on or set()
        self.calls: list[str] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_single(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self.fail_on:
            raise ExternalServiceError(message="embedding backend unavailable", provider_name="mock")
        return hash_to_vector(text, self._dim)

    def get_dimension(self) -> int:
        return self._dim

    def get_model_name(self) -> str:
        return "mock-embedding-model"

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Vector store
# ---------------------------------------------------------------------------


class InMemoryVectorStore(IVectorStoreProvider):
    """Dict-backed vector store that records every insert call.

    ``fail_batches`` holds zero-based insert-call indices that raise;
    ``fail_deletes`` holds object ids whose delete raises.
    """

    def __init__(
        self,
        fail_batches: set[int] | None = None,
        fail_deletes: set[str] | None = None,
    ) -> None:
        self.collections: dict[str, dict[str, VectorObject]] = {}
        self.insert_calls: list[tuple[str, int]] = []
        self.fail_batches = fail_batches or set()
        self.fail_deletes = fail_deletes or set()
        self.unreachable = False
        self._counter = 0

    async def ensure_collection(self, collection: str) -> bool:
        if collection in self.collections:
            return False
        self.collections[collection] = {}
        return True

    async def insert_batch(self, collection: str, objects: list[VectorObject]) -> int:
        call_index = len(self.insert_calls)
        self.insert_calls.append((collection, len(objects)))
        if call_index in self.fail_batches:
            raise ExternalServiceError(message="batch rejected", provider_name="memory")
        target = self.collections.setdefault(collection, {})
        for obj in objects:
            self._counter += 1
            target[obj.id or f"obj-{self._counter}"] = obj
        return len(objects)

    async def query_near_vector(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
        distance: float = 0.7,
    ) -> list[SearchHit]:
        hits: list[SearchHit] = []
        for object_id, obj in self.collections.get(collection, {}).items():
            dot = sum(a * b for a, b in zip(vector, obj.vector))
            dist = 1.0 - dot
            if dist <= distance:
                hits.append(SearchHit(id=object_id, distance=dist, properties=obj.properties))
        hits.sort(key=lambda h: h.distance)
        return hits[:limit]

    async def list_object_ids(self, collection: str) -> list[str]:
        if collection not in self.collections:
            raise NotFoundError(message=f"Collection {collection} does not exist")
        return list(self.collections[collection])

    async def delete_object(self, collection: str, object_id: str) -> None:
        if object_id in self.fail_deletes:
            raise ExternalServiceError(message=f"cannot delete {object_id}", provider_name="memory")
        target = self.collections.get(collection, {})
        if object_id not in target:
            raise NotFoundError(message=f"Object {object_id} not found")
        del target[object_id]

    async def get_stats(self) -> CollectionStats:
        if self.unreachable:
            raise ExternalServiceError(message="connection refused", provider_name="memory")
        counts = {name: len(objs) for name, objs in self.collections.items()}
        return CollectionStats(collections=counts, total_objects=sum(counts.values()), nodes=1)

    def get_provider_name(self) -> str:
        return "memory"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------


class InMemoryRecordStore(IIngestionRecordStore):
    """Dict-backed record store with the same save/retry semantics as SQLite.

    ``save`` never writes tags or ``retry_count``; ``mark_for_retry`` is a
    single critical section under an asyncio lock.
    """

    def __init__(self) -> None:
        self.records: dict[str, IngestionRecord] = {}
        self.tags: dict[str, list[SmartTag]] = {}
        self.queue: dict[str, ExtractionQueueEntry] = {}
        self.saved_statuses: dict[str, list[IngestionStatus]] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        return None

    async def create(self, record: IngestionRecord) -> IngestionRecord:
        self.records[record.id] = record.model_copy(update={"smart_tags": []})
        self.saved_statuses[record.id] = [record.status]
        return record

    async def get(self, record_id: str) -> IngestionRecord | None:
        record = self.records.get(record_id)
        if record is None:
            return None
        return record.model_copy(update={"smart_tags": list(self.tags.get(record_id, []))})

    async def save(self, record: IngestionRecord) -> IngestionRecord:
        stored = self.records.get(record.id)
        if stored is None:
            raise NotFoundError(message=f"Ingestion record {record.id} not found")
        record = record.model_copy(update={"updated_at": datetime.now(tz=timezone.utc)})
        self.records[record.id] = record.model_copy(
            update={"retry_count": stored.retry_count, "smart_tags": []}
        )
        self.saved_statuses[record.id].append(record.status)
        return record

    async def list_records(
        self,
        owner: AnonymousActor | UserActor | None = None,
        status: IngestionStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[IngestionRecord]:
        matches = [
            r
            for r in reversed(list(self.records.values()))
            if (owner is None or r.is_owned_by(owner)) and (status is None or r.status is status)
        ]
        return matches[offset : offset + limit]

    async def count_by_status(
        self, owner: AnonymousActor | UserActor | None = None
    ) -> dict[IngestionStatus, int]:
        counts = {status: 0 for status in IngestionStatus}
        for record in self.records.values():
            if owner is None or record.is_owned_by(owner):
                counts[record.status] += 1
        return counts

    async def delete(self, record_id: str) -> bool:
        if self.records.pop(record_id, None) is None:
            return False
        self.tags.pop(record_id, None)
        self.queue.pop(record_id, None)
        return True

    async def mark_for_retry(
        self, record_id: str, max_retry_count: int | None = None
    ) -> IngestionRecord | None:
        async with self._lock:
            record = self.records.get(record_id)
            if record is None or record.status is not IngestionStatus.FAILED:
                return None
            if max_retry_count is not None and record.retry_count >= max_retry_count:
                return None
            self.records[record_id] = record.model_copy(
                update={
                    "status": IngestionStatus.PENDING,
                    "extraction_status": ExtractionStatus.PENDING,
                    "retry_count": record.retry_count + 1,
                    "error_message": None,
                    "processing_completed_at": None,
                }
            )
        return await self.get(record_id)

    async def replace_tags(self, record_id: str, tags: list[SmartTag]) -> None:
        self.tags[record_id] = list(tags)

    async def get_tags(self, record_id: str) -> list[SmartTag]:
        return list(self.tags.get(record_id, []))

    async def upsert_queue_entry(self, entry: ExtractionQueueEntry) -> None:
        self.queue[entry.record_id] = entry

    async def get_queue_entry(self, record_id: str) -> ExtractionQueueEntry | None:
        return self.queue.get(record_id)

    def get_provider_name(self) -> str:
        return "memory"


# ---------------------------------------------------------------------------
# Blob storage / LLM
# ---------------------------------------------------------------------------


class InMemoryBlobStorage(IBlobStorageProvider):
    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}

    async def upload(self, path: str, data: bytes) -> str:
        self.blobs[path] = bytes(data)
        return path

    async def download(self, path: str) -> bytes:
        if path not in self.blobs:
            raise NotFoundError(message=f"Blob {path} not found", provider_name="memory")
        return self.blobs[path]

    async def delete(self, path: str, missing_ok: bool = True) -> None:
        self.blobs.pop(path, None)

    def get_provider_name(self) -> str:
        return "memory"


class MockLLMProvider(ILLMProvider):
    """Returns a canned response (or raises ``error``) and records prompts."""

    def __init__(self, response: str = "[]", error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.prompts: list[str] = []

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        self.prompts.append(user_prompt)
        if self.error is not None:
            raise self.error
        return self.response

    async def validate_credentials(self) -> bool:
        return self.error is None

    def get_provider_name(self) -> str:
        return "mock-llm"

    def is_available(self) -> bool:
        return True


TAGS_RESPONSE = """[
  {"tag_name": "vector search", "tag_category": "topic", "confidence_score": 0.92,
   "tag_description": "Similarity search over embeddings", "entities": ["Weaviate"]},
  {"tag_name": "tutorial", "tag_category": "content_type", "confidence_score": 0.8,
   "tag_description": "Step-by-step guide", "entities": []}
]"""


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def blob_storage() -> InMemoryBlobStorage:
    return InMemoryBlobStorage()


@pytest.fixture
def mock_llm() -> MockLLMProvider:
    return MockLLMProvider(response=TAGS_RESPONSE)


def build_orchestrator(
    record_store: InMemoryRecordStore,
    blob_storage: InMemoryBlobStorage,
    embedding_provider: IEmbeddingProvider,
    vector_store: IVectorStoreProvider,
    llm: ILLMProvider | None = None,
    **kwargs: Any,
) -> PipelineOrchestrator:
    """Wire a PipelineOrchestrator to in-memory fakes with no pacing delay."""
    tagger = SmartTagger(llm=llm, store=record_store) if llm is not None else None
    return PipelineOrchestrator(
        store=record_store,
        blob_storage=blob_storage,
        extractor=ContentExtractor(),
        embedder=Embedder(embedding_provider, pacing_delay=0.0),
        uploader=VectorStoreUploader(vector_store, batch_size=kwargs.pop("batch_size", 100)),
        progress_tracker=ProgressTracker(record_store),
        tagger=tagger,
        **kwargs,
    )


@pytest.fixture
def orchestrator(
    record_store: InMemoryRecordStore,
    blob_storage: InMemoryBlobStorage,
    embedding_provider: MockEmbeddingProvider,
    vector_store: InMemoryVectorStore,
) -> PipelineOrchestrator:
    return build_orchestrator(record_store, blob_storage, embedding_provider, vector_store)
