"""Weaviate vector store provider adapter.

Talks to Weaviate's REST and GraphQL endpoints over ``httpx`` to implement
:class:`IVectorStoreProvider`:

    POST   /v1/schema                  create class (422 = already exists)
    GET    /v1/schema[/{class}]        list classes / existence check
    POST   /v1/batch/objects           batch insert
    GET    /v1/objects?class=...       cursor-paged id listing
    DELETE /v1/objects/{class}/{id}    per-object delete
    GET    /v1/nodes                   cluster nodes (health)
    POST   /v1/graphql                 nearVector query and Aggregate counts

Vectors are always supplied by the caller (``vectorizer: none``).
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from knowledge_pipeline.config.settings import Settings
from knowledge_pipeline.interfaces.vector_store_provider import IVectorStoreProvider
from knowledge_pipeline.models.vectors import CollectionStats, SearchHit, VectorObject
from knowledge_pipeline.utils.errors import (
    ConfigurationError,
    ExternalServiceError,
    NotFoundError,
)

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 30.0
_LIST_PAGE_SIZE = 100

# Text properties every pipeline collection carries.
COLLECTION_PROPERTIES: tuple[str, ...] = (
    "title",
    "content",
    "url",
    "source",
    "record_id",
    "owner_id",
    "mime_type",
    "tags",
)


class WeaviateVectorStoreProvider(IVectorStoreProvider):
    """Vector store backed by a Weaviate instance reached over HTTP.

    An ``httpx.AsyncClient`` may be injected (tests pass a mock); otherwise
    one is created against ``settings.weaviate_url`` with the API key as a
    bearer token.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not settings.weaviate_url and http_client is None:
            raise ConfigurationError(
                message="WEAVIATE_URL is not configured",
                provider_name="weaviate",
            )
        self._url = settings.weaviate_url.rstrip("/")
        self._owns_client = http_client is None
        headers = {"Content-Type": "application/json"}
        if settings.weaviate_api_key:
            headers["Authorization"] = f"Bearer {settings.weaviate_api_key}"
        self._client = http_client or httpx.AsyncClient(
            base_url=self._url,
            headers=headers,
            timeout=httpx.Timeout(_DEFAULT_TIMEOUT),
        )

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def ensure_collection(self, collection: str) -> bool:
        schema = {
            "class": collection,
            "vectorizer": "none",
            "properties": [
                {"name": name, "dataType": ["text"]} for name in COLLECTION_PROPERTIES
            ],
        }
        response = await self._send("POST", "/v1/schema", json=schema)
        if response.status_code == 422:
            if "already exists" not in response.text.lower():
                raise ExternalServiceError(
                    message=f"Weaviate rejected schema for {collection}: {response.text[:200]}",
                    provider_name=self.get_provider_name(),
                )
            logger.debug("weaviate_collection_exists", collection=collection)
            return False
        self._raise_for_status(response, f"create collection {collection}")
        logger.info("weaviate_collection_created", collection=collection)
        return True

    async def insert_batch(self, collection: str, objects: list[VectorObject]) -> int:
        if not objects:
            return 0
        payload = {"objects": [self._to_weaviate_object(collection, obj) for obj in objects]}
        response = await self._send("POST", "/v1/batch/objects", json=payload)
        self._raise_for_status(response, f"batch insert into {collection}")

        body = response.json()
        if not isinstance(body, list):
            # No per-object report: a 2xx means the whole batch was accepted.
            return len(objects)

        stored = 0
        for item in body:
            errors = ((item or {}).get("result") or {}).get("errors")
            if errors:
                logger.warning(
                    "weaviate_object_rejected",
                    collection=collection,
                    object_id=(item or {}).get("id"),
                    errors=errors,
                )
            else:
                stored += 1
        return min(stored, len(objects))

    async def query_near_vector(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
        distance: float = 0.7,
    ) -> list[SearchHit]:
        fields = " ".join(COLLECTION_PROPERTIES)
        query = (
            "{ Get { "
            f"{collection}(nearVector: {{vector: {json.dumps(vector)}, distance: {distance}}}, "
            f"limit: {int(limit)}) "
            f"{{ {fields} _additional {{ distance id }} }}"
            " } }"
        )
        data = await self._graphql(query)
        rows = (data.get("Get") or {}).get(collection) or []

        hits: list[SearchHit] = []
        for row in rows:
            additional = row.pop("_additional", {}) or {}
            hits.append(
                SearchHit(
                    id=str(additional.get("id", "")),
                    distance=float(additional.get("distance", 0.0)),
                    properties={k: v for k, v in row.items() if v is not None},
                )
            )
        logger.info("weaviate_query", collection=collection, results=len(hits))
        return hits

    async def list_object_ids(self, collection: str) -> list[str]:
        existing = await self._send("GET", f"/v1/schema/{collection}")
        if existing.status_code == 404:
            raise NotFoundError(
                message=f"Collection {collection} does not exist",
                provider_name=self.get_provider_name(),
            )
        self._raise_for_status(existing, f"read schema for {collection}")

        ids: list[str] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"class": collection, "limit": _LIST_PAGE_SIZE}
            if cursor:
                params["after"] = cursor
            response = await self._send("GET", "/v1/objects", params=params)
            self._raise_for_status(response, f"list objects in {collection}")
            page = [obj["id"] for obj in response.json().get("objects") or [] if obj.get("id")]
            ids.extend(page)
            if len(page) < _LIST_PAGE_SIZE:
                break
            cursor = page[-1]
        return ids

    async def delete_object(self, collection: str, object_id: str) -> None:
        response = await self._send("DELETE", f"/v1/objects/{collection}/{object_id}")
        if response.status_code == 404:
            raise NotFoundError(
                message=f"Object {object_id} not found in {collection}",
                provider_name=self.get_provider_name(),
            )
        self._raise_for_status(response, f"delete {object_id} from {collection}")

    async def get_stats(self) -> CollectionStats:
        nodes_response = await self._send("GET", "/v1/nodes")
        self._raise_for_status(nodes_response, "read nodes")
        nodes = nodes_response.json().get("nodes") or []

        schema_response = await self._send("GET", "/v1/schema")
        self._raise_for_status(schema_response, "read schema")
        classes = [c["class"] for c in schema_response.json().get("classes") or []]

        counts: dict[str, int] = {}
        for name in classes:
            data = await self._graphql(f"{{ Aggregate {{ {name} {{ meta {{ count }} }} }} }}")
            rows = (data.get("Aggregate") or {}).get(name) or [{}]
            counts[name] = int(((rows[0] or {}).get("meta") or {}).get("count") or 0)

        return CollectionStats(
            collections=counts,
            total_objects=sum(counts.values()),
            nodes=len(nodes),
        )

    def get_provider_name(self) -> str:
        return "weaviate"

    def is_available(self) -> bool:
        return bool(self._url) or not self._owns_client

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise ExternalServiceError(
                message=f"Timeout calling {method} {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                message=f"HTTP error calling {method} {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def _graphql(self, query: str) -> dict[str, Any]:
        response = await self._send("POST", "/v1/graphql", json={"query": query})
        self._raise_for_status(response, "graphql query")
        body = response.json()
        if body.get("errors"):
            messages = "; ".join(str(e.get("message", e)) for e in body["errors"])
            raise ExternalServiceError(
                message=f"GraphQL error: {messages}",
                provider_name=self.get_provider_name(),
            )
        return body.get("data") or {}

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if 200 <= response.status_code < 300:
            return
        raise ExternalServiceError(
            message=f"Failed to {action}: HTTP {response.status_code} {response.text[:200]}",
            provider_name=self.get_provider_name(),
        )

    @staticmethod
    def _to_weaviate_object(collection: str, obj: VectorObject) -> dict[str, Any]:
        item: dict[str, Any] = {
            "class": collection,
            "properties": obj.properties,
            "vector": obj.vector,
        }
        if obj.id:
            item["id"] = obj.id
        return item
