"""Vector-store upload stage.

:class:`VectorStoreUploader` wraps an
:class:`~knowledge_pipeline.interfaces.vector_store_provider.IVectorStoreProvider`
and adds the delivery rules the adapters do not know about:

* the collection is created if missing ("already exists" is success)
* objects go out in batches of ``batch_size``, exactly ceil(N / B) calls
* a batch call that raises marks the whole batch failed; later batches
  still run, and the caller may resend the failed ones
* ``uploaded`` counts what the store acknowledged and never exceeds
  ``requested``
* ``clear`` deletes object by object; one failed delete never stops the
  rest
"""

from __future__ import annotations

import structlog

from knowledge_pipeline.interfaces.vector_store_provider import IVectorStoreProvider
from knowledge_pipeline.models.vectors import (
    ClearResult,
    FailedBatch,
    HealthStatus,
    SearchHit,
    UploadResult,
    VectorObject,
)
from knowledge_pipeline.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)


class VectorStoreUploader:
    """Batched, at-least-once upload of vectors plus metadata."""

    def __init__(self, store: IVectorStoreProvider, batch_size: int = 100) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._store = store
        self._batch_size = batch_size

    @property
    def provider_name(self) -> str:
        return self._store.get_provider_name()

    async def upload(self, collection: str, objects: list[VectorObject]) -> UploadResult:
        """Ensure *collection* exists, then insert *objects* in bounded batches.

        Raises
        ------
        ValidationError
            If the collection name is blank or vector dimensions differ.
            Nothing is sent in that case.
        ExternalServiceError
            If the collection cannot be created.
        """
        if not collection or not collection.strip():
            raise ValidationError(message="Collection name must not be empty")
        if not objects:
            return UploadResult(collection=collection)
        self._check_dimensions(objects)

        await self._store.ensure_collection(collection)

        uploaded = 0
        batches = 0
        failed_batches: list[FailedBatch] = []
        for index, start in enumerate(range(0, len(objects), self._batch_size)):
            batch = objects[start : start + self._batch_size]
            batches += 1
            try:
                stored = await self._store.insert_batch(collection, batch)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "vector_batch_failed",
                    collection=collection,
                    batch=index,
                    size=len(batch),
                    error=str(exc),
                )
                failed_batches.append(
                    FailedBatch(index=index, start=start, size=len(batch), error=str(exc))
                )
                continue
            uploaded += max(0, min(stored, len(batch)))
            logger.debug(
                "vector_batch_uploaded",
                collection=collection,
                batch=index,
                stored=stored,
                size=len(batch),
            )

        result = UploadResult(
            collection=collection,
            requested=len(objects),
            uploaded=uploaded,
            batches=batches,
            failed_batches=failed_batches,
        )
        logger.info(
            "vector_upload_complete",
            collection=collection,
            requested=result.requested,
            uploaded=result.uploaded,
            batches=result.batches,
            failed_batches=len(result.failed_batches),
        )
        return result

    async def clear(self, collection: str) -> ClearResult:
        """Delete every object in *collection*, one by one.

        Raises
        ------
        NotFoundError
            If the collection does not exist.
        """
        object_ids = await self._store.list_object_ids(collection)
        deleted = 0
        failed_ids: list[str] = []
        for object_id in object_ids:
            try:
                await self._store.delete_object(collection, object_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "vector_delete_failed",
                    collection=collection,
                    object_id=object_id,
                    error=str(exc),
                )
                failed_ids.append(object_id)
                continue
            deleted += 1

        logger.info(
            "vector_collection_cleared",
            collection=collection,
            deleted=deleted,
            total=len(object_ids),
        )
        return ClearResult(
            collection=collection,
            deleted_count=deleted,
            total_objects=len(object_ids),
            failed_ids=failed_ids,
        )

    async def health_check(self) -> HealthStatus:
        """Report connectivity and collection stats.  Never raises."""
        provider = self._store.get_provider_name()
        try:
            stats = await self._store.get_stats()
        except Exception as exc:  # noqa: BLE001
            logger.warning("vector_store_unreachable", provider=provider, error=str(exc))
            return HealthStatus(connected=False, provider=provider, error=str(exc))
        return HealthStatus(connected=True, provider=provider, stats=stats)

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
        distance: float = 0.7,
    ) -> list[SearchHit]:
        """Nearest-neighbour query by vector with a distance threshold."""
        if not vector:
            raise ValidationError(message="Query vector must not be empty")
        if limit < 1:
            raise ValidationError(message="limit must be >= 1")
        return await self._store.query_near_vector(
            collection, vector, limit=limit, distance=distance
        )

    @staticmethod
    def _check_dimensions(objects: list[VectorObject]) -> None:
        expected = len(objects[0].vector)
        for position, obj in enumerate(objects):
            if len(obj.vector) != expected:
                raise ValidationError(
                    message=(
                        f"Vector at position {position} has dimension {len(obj.vector)}, "
                        f"expected {expected}"
                    )
                )
