"""Qdrant plumbing shared by the storage mixins.

Each record kind lives in its own collection. Records are fetched by ID or
by payload filter, so every point carries the same one-dimensional vector.
"""

from __future__ import annotations

import uuid
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models
from qdrant_client.http.exceptions import UnexpectedResponse

from hookrelay.config import settings
from hookrelay.exceptions import StorageError
from hookrelay.models import ApiKey, DeliveryAttempt, Subscription

from .retry import qdrant_retry

RecordT = TypeVar("RecordT", Subscription, DeliveryAttempt, ApiKey)

# Record kind -> collection suffix
COLLECTION_NAMES = {
    "subscriptions": "subscriptions",
    "deliveries": "deliveries",
    "api_keys": "api_keys",
}

# Payload fields that get a keyword index, per collection
INDEXED_FIELDS = {
    "subscriptions": ("user_id", "trigger_type", "active"),
    "deliveries": ("user_id", "subscription_id", "status"),
    "api_keys": ("user_id",),
}

IN_MEMORY_LOCATION = ":memory:"

PLACEHOLDER_VECTOR = [1.0]
POINT_ID_NAMESPACE = uuid.UUID("6f1c2b0e-4f5d-4a3e-9a51-2c7e8d9b1f40")


class StorageBase:
    """Owns the AsyncQdrantClient and the generic record helpers.

    Subclass mixins add the typed operations for each collection.
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        max_scroll_limit: int | None = None,
    ) -> None:
        """Unset arguments fall back to the global settings (qdrant_url, qdrant_api_key,
        collection_prefix, storage_max_scroll_limit).
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._max_scroll_limit = max_scroll_limit or settings.storage_max_scroll_limit
        self._client: AsyncQdrantClient | None = None
        self._collections_initialized = False

    @property
    def client(self) -> AsyncQdrantClient:
        if self._client is None:
            raise RuntimeError(f"{type(self).__name__} not initialized; await initialize() first")
        return self._client

    @property
    def is_in_memory(self) -> bool:
        return self._url == IN_MEMORY_LOCATION

    @property
    def is_initialized(self) -> bool:
        return self._client is not None and self._collections_initialized

    async def initialize(self) -> None:
        """Connect and create any missing collections.

        Raises:
            StorageError: If Qdrant is unreachable or rejects the setup.
        """
        if self.is_in_memory:
            self._client = AsyncQdrantClient(location=IN_MEMORY_LOCATION)
        else:
            self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        try:
            await self._ensure_collections()
        except (httpx.HTTPError, UnexpectedResponse) as e:
            await self.close()
            raise StorageError(
                f"Failed to initialize Qdrant collections at {self._url}: {e}"
            ) from e
        self._collections_initialized = True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collections_initialized = False

    async def __aenter__(self) -> StorageBase:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _collection_name(self, kind: str) -> str:
        return f"{self._prefix}_{COLLECTION_NAMES.get(kind, kind)}"

    @staticmethod
    def _point_id(kind: str, record_id: str) -> str:
        # Qdrant only accepts UUIDs or unsigned ints as point IDs
        return str(uuid.uuid5(POINT_ID_NAMESPACE, f"{kind}/{record_id}"))

    async def _ensure_collections(self) -> None:
        response = await self.client.get_collections()
        existing = {c.name for c in response.collections}

        for kind in COLLECTION_NAMES:
            collection_name = self._collection_name(kind)
            if collection_name in existing:
                continue

            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            # Payload indexes are a no-op for the local in-memory client
            if not self.is_in_memory:
                await self._create_indexes(kind, collection_name)

    async def _create_indexes(self, kind: str, collection_name: str) -> None:
        for field_name in INDEXED_FIELDS.get(kind, ()):
            schema = (
                models.PayloadSchemaType.BOOL
                if field_name == "active"
                else models.PayloadSchemaType.KEYWORD
            )
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=schema,
            )

    @staticmethod
    def _record_to_payload(record: BaseModel) -> dict[str, Any]:
        return record.model_dump(mode="json")

    @staticmethod
    def _payload_to_record(payload: dict[str, Any], record_class: type[RecordT]) -> RecordT:
        return record_class.model_validate(payload)

    @qdrant_retry
    async def _upsert_record(self, kind: str, record_id: str, record: BaseModel) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._point_id(kind, record_id),
                    vector=PLACEHOLDER_VECTOR,
                    payload=self._record_to_payload(record),
                )
            ],
        )

    @qdrant_retry
    async def _retrieve_record(
        self, kind: str, record_id: str, record_class: type[RecordT]
    ) -> RecordT | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[self._point_id(kind, record_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return self._payload_to_record(results[0].payload, record_class)

    @qdrant_retry
    async def _scroll_records(
        self,
        kind: str,
        conditions: list[models.FieldCondition],
        record_class: type[RecordT],
    ) -> list[RecordT]:
        """Every record matching ``conditions``, read page by page.

        Scroll pages come back in point-ID order, not creation order, so callers
        sort the complete result themselves.
        """
        records: list[RecordT] = []
        offset: models.ExtendedPointId | None = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=self._collection_name(kind),
                scroll_filter=models.Filter(must=conditions) if conditions else None,
                limit=self._max_scroll_limit,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            records.extend(
                self._payload_to_record(p.payload, record_class)
                for p in points
                if p.payload is not None
            )
            if offset is None:
                return records

    @qdrant_retry
    async def _set_payload(self, kind: str, record_id: str, payload: dict[str, Any]) -> None:
        await self.client.set_payload(
            collection_name=self._collection_name(kind),
            payload=payload,
            points=[self._point_id(kind, record_id)],
        )

    @qdrant_retry
    async def _delete_record(self, kind: str, record_id: str) -> None:
        await self.client.delete(
            collection_name=self._collection_name(kind),
            points_selector=models.PointIdsList(points=[self._point_id(kind, record_id)]),
        )

    @staticmethod
    def _match(key: str, value: Any) -> models.FieldCondition:
        return models.FieldCondition(key=key, match=models.MatchValue(value=value))
