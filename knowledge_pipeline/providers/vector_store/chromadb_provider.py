"""ChromaDB vector store provider adapter.

Wraps ``chromadb.PersistentClient`` to implement
:class:`IVectorStoreProvider` for local development without a Weaviate
instance.  Collections use cosine distance; vectors are always supplied
by the caller.
"""

from __future__ import annotations

import os
import uuid
from typing import Any

os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

import chromadb
import structlog

from knowledge_pipeline.interfaces.vector_store_provider import IVectorStoreProvider
from knowledge_pipeline.models.vectors import CollectionStats, SearchHit, VectorObject
from knowledge_pipeline.utils.errors import ExternalServiceError, NotFoundError

logger = structlog.get_logger(logger_name=__name__)


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Keeps ChromaDB from loading its default embedding model.

    Every vector arrives precomputed, so this is never called.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("vectors are precomputed; ChromaDB embedding is never used")

    def name(self) -> str:
        return "noop_precomputed"


class ChromaDBVectorStoreProvider(IVectorStoreProvider):
    """Vector store backed by ChromaDB with local persistence."""

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        client: Any | None = None,
    ) -> None:
        self._persist_directory = persist_directory
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def ensure_collection(self, collection: str) -> bool:
        existed = collection in self._collection_names()
        self._get_or_create(collection)
        if not existed:
            logger.info("chromadb_collection_created", collection=collection)
        return not existed

    async def insert_batch(self, collection: str, objects: list[VectorObject]) -> int:
        if not objects:
            return 0
        target = self._get_or_create(collection)
        try:
            target.upsert(
                ids=[obj.id or uuid.uuid4().hex for obj in objects],
                embeddings=[obj.vector for obj in objects],
                documents=[str(obj.properties.get("content", "")) for obj in objects],
                metadatas=[self._to_metadata(obj.properties) for obj in objects],
            )
        except Exception as exc:
            raise ExternalServiceError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return len(objects)

    async def query_near_vector(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
        distance: float = 0.7,
    ) -> list[SearchHit]:
        target = self._require(collection)
        try:
            results = target.query(
                query_embeddings=[vector],
                n_results=limit,
                include=["metadatas", "distances", "documents"],
            )
        except Exception as exc:
            raise ExternalServiceError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = (results.get("ids") or [[]])[0]
        distances = (results.get("distances") or [[]])[0] or [0.0] * len(ids)
        metadatas = (results.get("metadatas") or [[]])[0] or [{}] * len(ids)
        documents = (results.get("documents") or [[]])[0] or [""] * len(ids)

        hits = []
        for object_id, dist, meta, doc in zip(ids, distances, metadatas, documents):
            if dist > distance:
                continue
            properties = dict(meta or {})
            properties.setdefault("content", doc)
            hits.append(SearchHit(id=object_id, distance=float(dist), properties=properties))
        return hits

    async def list_object_ids(self, collection: str) -> list[str]:
        target = self._require(collection)
        return list(target.get(include=[])["ids"])

    async def delete_object(self, collection: str, object_id: str) -> None:
        target = self._require(collection)
        try:
            target.delete(ids=[object_id])
        except Exception as exc:
            raise ExternalServiceError(
                message=f"ChromaDB delete of {object_id} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def get_stats(self) -> CollectionStats:
        counts = {
            name: self._client.get_collection(name=name).count()
            for name in sorted(self._collection_names())
        }
        return CollectionStats(collections=counts, total_objects=sum(counts.values()), nodes=1)

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _collection_names(self) -> set[str]:
        # chromadb < 0.6 returns Collection objects, newer versions return names.
        return {getattr(c, "name", c) for c in self._client.list_collections()}

    def _get_or_create(self, collection: str) -> Any:
        return self._client.get_or_create_collection(
            name=collection,
            metadata={"hnsw:space": "cosine"},
            embedding_function=_NoopEmbeddingFunction(),
        )

    def _require(self, collection: str) -> Any:
        if collection not in self._collection_names():
            raise NotFoundError(
                message=f"Collection {collection} does not exist",
                provider_name=self.get_provider_name(),
            )
        return self._get_or_create(collection)

    @staticmethod
    def _to_metadata(properties: dict[str, Any]) -> dict[str, Any]:
        """ChromaDB metadata values must be scalars; lists are comma-joined."""
        metadata: dict[str, Any] = {}
        for key, value in properties.items():
            if value is None or key == "content":
                continue
            if isinstance(value, (list, tuple)):
                value = ",".join(str(v) for v in value)
            elif not isinstance(value, (str, int, float, bool)):
                value = str(value)
            metadata[key] = value
        return metadata
