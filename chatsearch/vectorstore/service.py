"""Vector store interface and Qdrant implementation."""

import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import UnexpectedResponse
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchAny,
    MatchValue,
    PayloadSchemaType,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from chatsearch.config import QdrantSettings, get_settings
from chatsearch.exceptions import ErrorCode, IndexUnavailableError
from chatsearch.logging_config import get_logger
from chatsearch.vectorstore.models import ScoredPoint, VectorRecord

logger = get_logger(__name__)

_SCROLL_PAGE = 256


def _already_exists(error: Exception) -> bool:
    """Whether a Qdrant error reports an existing collection or index."""
    if isinstance(error, UnexpectedResponse) and error.status_code == 409:
        return True
    return "already exists" in str(error).lower()


def _build_filter(filters: dict[str, Any] | None) -> Filter | None:
    """Turn ``{key: value}`` or ``{key: [values]}`` into a must-filter."""
    if not filters:
        return None
    conditions = []
    for key, value in filters.items():
        if isinstance(value, (list, tuple, set)):
            match: MatchAny | MatchValue = MatchAny(any=list(value))
        else:
            match = MatchValue(value=value)
        conditions.append(FieldCondition(key=key, match=match))
    return Filter(must=conditions)  # type: ignore[arg-type]


class VectorStore(ABC):
    """Abstract base class for vector stores.

    Defines the remote operations the vector index relies on. Every
    method raises IndexUnavailableError when the store cannot serve it.
    """

    @abstractmethod
    async def collection_exists(self, name: str) -> bool:
        """Check if a collection exists."""
        ...

    @abstractmethod
    async def create_collection(self, name: str, dimensions: int) -> None:
        """Create a cosine collection; an existing one is not an error."""
        ...

    @abstractmethod
    async def collection_dimensions(self, name: str) -> int | None:
        """Vector size of an existing collection, or None if unknown."""
        ...

    @abstractmethod
    async def ensure_payload_index(
        self,
        name: str,
        field: str,
        schema: PayloadSchemaType,
    ) -> None:
        """Create a payload index; an existing one is not an error."""
        ...

    @abstractmethod
    async def upsert(self, collection: str, records: list[VectorRecord]) -> int:
        """Insert or update points.

        Returns:
            Number of points upserted.
        """
        ...

    @abstractmethod
    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[ScoredPoint]:
        """Search for similar vectors.

        Args:
            collection: Collection name.
            vector: Query vector.
            limit: Maximum results to return.
            filters: Payload filters; list values match any element.

        Returns:
            Points ordered by descending similarity.
        """
        ...

    @abstractmethod
    async def find_point_ids(
        self,
        collection: str,
        key: str,
        values: Sequence[str],
    ) -> list[str]:
        """Ids of points whose payload ``key`` is one of ``values``."""
        ...

    @abstractmethod
    async def delete(self, collection: str, ids: list[str]) -> int:
        """Delete points by id.

        Returns:
            Number of ids submitted for deletion.
        """
        ...

    @abstractmethod
    async def count(self, collection: str) -> int:
        """Exact number of points in a collection."""
        ...

    async def close(self) -> None:
        """Release client resources."""
        return None


class QdrantVectorStore(VectorStore):
    """Qdrant vector store implementation."""

    def __init__(
        self,
        settings: QdrantSettings | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize Qdrant vector store.

        Args:
            settings: Qdrant configuration.
            client: Existing client (for testing).
        """
        self._settings = settings or get_settings().qdrant
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> AsyncQdrantClient:
        """Get or create Qdrant client."""
        if self._client is None:
            api_key = None
            if self._settings.api_key:
                api_key = self._settings.api_key.get_secret_value()

            self._client = AsyncQdrantClient(
                url=self._settings.url,
                api_key=api_key,
                timeout=math.ceil(self._settings.timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the Qdrant client."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None

    def _error(self, operation: str, collection: str, error: Exception) -> IndexUnavailableError:
        return IndexUnavailableError(
            f"Qdrant {operation} failed: {error}",
            code=ErrorCode.VECTOR_INDEX_ERROR,
            details={"collection": collection, "operation": operation, "error": str(error)},
        )

    async def collection_exists(self, name: str) -> bool:
        """Check if collection exists."""
        client = await self._get_client()
        try:
            return await client.collection_exists(name)
        except Exception as e:
            raise self._error("collection_exists", name, e) from e

    async def create_collection(self, name: str, dimensions: int) -> None:
        """Create a Qdrant collection with cosine distance."""
        client = await self._get_client()

        try:
            await client.create_collection(
                collection_name=name,
                vectors_config=VectorParams(
                    size=dimensions,
                    distance=Distance.COSINE,
                ),
            )
            logger.info(f"Created collection: {name}", extra={"dimensions": dimensions})
        except Exception as e:
            if _already_exists(e):
                logger.debug(f"Collection already exists: {name}")
                return
            raise self._error("create_collection", name, e) from e

    async def collection_dimensions(self, name: str) -> int | None:
        """Read the vector size from the collection config."""
        client = await self._get_client()
        try:
            info = await client.get_collection(name)
        except Exception as e:
            raise self._error("get_collection", name, e) from e

        vectors = info.config.params.vectors
        if isinstance(vectors, VectorParams):
            return vectors.size
        # Named vectors: only a single unnamed-equivalent config is meaningful here
        if isinstance(vectors, dict) and len(vectors) == 1:
            return next(iter(vectors.values())).size
        return None

    async def ensure_payload_index(
        self,
        name: str,
        field: str,
        schema: PayloadSchemaType,
    ) -> None:
        """Create a payload index on ``field``."""
        client = await self._get_client()
        try:
            await client.create_payload_index(
                collection_name=name,
                field_name=field,
                field_schema=schema,
            )
        except Exception as e:
            if _already_exists(e):
                return
            raise self._error("create_payload_index", name, e) from e

    async def upsert(self, collection: str, records: list[VectorRecord]) -> int:
        """Upsert points and wait for the write to apply."""
        if not records:
            return 0

        client = await self._get_client()

        try:
            points = [
                PointStruct(id=record.id, vector=record.vector, payload=record.payload)
                for record in records
            ]
            await client.upsert(collection_name=collection, points=points, wait=True)

            logger.debug(
                f"Upserted {len(points)} points",
                extra={"collection": collection},
            )
            return len(points)

        except Exception as e:
            raise self._error("upsert", collection, e) from e

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[ScoredPoint]:
        """Search for similar vectors."""
        client = await self._get_client()

        try:
            results = await client.query_points(
                collection_name=collection,
                query=vector,
                limit=limit,
                query_filter=_build_filter(filters),
                with_payload=True,
            )
        except Exception as e:
            raise self._error("search", collection, e) from e

        return [
            ScoredPoint(
                id=str(point.id),
                score=point.score if point.score is not None else 0.0,
                payload=dict(point.payload) if point.payload else {},
            )
            for point in results.points
        ]

    async def find_point_ids(
        self,
        collection: str,
        key: str,
        values: Sequence[str],
    ) -> list[str]:
        """Scroll through matching points and collect their ids."""
        if not values:
            return []

        client = await self._get_client()
        scroll_filter = _build_filter({key: list(values)})
        ids: list[str] = []
        offset = None

        try:
            while True:
                points, offset = await client.scroll(
                    collection_name=collection,
                    scroll_filter=scroll_filter,
                    limit=_SCROLL_PAGE,
                    offset=offset,
                    with_payload=False,
                    with_vectors=False,
                )
                ids.extend(str(point.id) for point in points)
                if offset is None:
                    break
        except Exception as e:
            raise self._error("scroll", collection, e) from e

        return ids

    async def delete(self, collection: str, ids: list[str]) -> int:
        """Delete points by id."""
        if not ids:
            return 0

        client = await self._get_client()

        try:
            await client.delete(
                collection_name=collection,
                points_selector=PointIdsList(points=ids),  # type: ignore[arg-type]
                wait=True,
            )
        except Exception as e:
            raise self._error("delete", collection, e) from e

        logger.debug(
            f"Deleted {len(ids)} points",
            extra={"collection": collection},
        )
        return len(ids)

    async def count(self, collection: str) -> int:
        """Count points in a collection."""
        client = await self._get_client()
        try:
            result = await client.count(collection_name=collection, exact=True)
        except Exception as e:
            raise self._error("count", collection, e) from e
        return result.count
