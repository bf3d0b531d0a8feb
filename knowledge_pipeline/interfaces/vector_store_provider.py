"""Abstract base class for vector-store providers.

Narrow contract over an external vector database: schema create-or-exists,
batch insert, nearVector similarity query, id listing and per-id delete.
Batching, dimension checks and partial-failure accounting live in
:class:`~knowledge_pipeline.services.vector_store.uploader.VectorStoreUploader`,
not in the adapters.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from knowledge_pipeline.models.vectors import CollectionStats, SearchHit, VectorObject


# Concrete implementations:
#   WeaviateVectorStoreProvider  -- REST + GraphQL over httpx
#   ChromaDBVectorStoreProvider  -- local persistent ChromaDB
# Located in: knowledge_pipeline/providers/vector_store/
class IVectorStoreProvider(ABC):
    """Contract for the external vector store."""

    @abstractmethod
    async def ensure_collection(self, collection: str) -> bool:
        """Create *collection* if it does not exist.

        Returns
        -------
        bool
            ``True`` if the collection was created, ``False`` if it already
            existed.  "Already exists" is never an error.

        Raises
        ------
        knowledge_pipeline.utils.errors.ExternalServiceError
            If the store rejects the schema for any other reason.
        """

    @abstractmethod
    async def insert_batch(self, collection: str, objects: list[VectorObject]) -> int:
        """Insert one batch of objects.

        Returns
        -------
        int
            Number of objects the store reports as stored.  May be lower
            than ``len(objects)`` on partial success, never higher.

        Raises
        ------
        knowledge_pipeline.utils.errors.ExternalServiceError
            If the batch call as a whole fails.
        """

    @abstractmethod
    async def query_near_vector(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
        distance: float = 0.7,
    ) -> list[SearchHit]:
        """Return up to *limit* objects within *distance* of *vector*, nearest first."""

    @abstractmethod
    async def list_object_ids(self, collection: str) -> list[str]:
        """Return the ids of every object in *collection*.

        Raises
        ------
        knowledge_pipeline.utils.errors.NotFoundError
            If the collection does not exist.
        """

    @abstractmethod
    async def delete_object(self, collection: str, object_id: str) -> None:
        """Delete one object by id.

        Raises
        ------
        knowledge_pipeline.utils.errors.ExternalServiceError
            If the delete fails.
        """

    @abstractmethod
    async def get_stats(self) -> CollectionStats:
        """Return per-collection object counts."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"weaviate"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
