"""Vector index over messages.

Keeps a Qdrant collection eventually consistent with the message store and
answers semantic queries. When Qdrant is disabled or a call fails, queries
are answered by a brute-force scan of the user's recent embedded messages,
so callers always get the same result shape.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar
from uuid import uuid4

from qdrant_client.models import PayloadSchemaType

from chatsearch.config import Settings, get_settings
from chatsearch.embeddings.service import EmbeddingService
from chatsearch.embeddings.similarity import cosine_similarity, is_zero_vector
from chatsearch.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    IndexUnavailableError,
)
from chatsearch.logging_config import get_logger
from chatsearch.messages.models import Message
from chatsearch.messages.store import MessageStore
from chatsearch.observability.metrics import set_index_enabled, track_index_operation
from chatsearch.vectorstore.models import (
    IndexStats,
    ScoredPoint,
    SemanticBackend,
    SemanticHit,
    SemanticSearchOutcome,
    VectorRecord,
)
from chatsearch.vectorstore.service import QdrantVectorStore, VectorStore

logger = get_logger(__name__)

T = TypeVar("T")

PAYLOAD_INDEXES = {
    "userId": PayloadSchemaType.KEYWORD,
    "messageId": PayloadSchemaType.KEYWORD,
    "timestamp": PayloadSchemaType.DATETIME,
}


def build_payload(message: Message) -> dict[str, object]:
    """Point payload for a message.

    ``userId`` lists both participants so either one finds the point.
    """
    return {
        "messageId": message.id,
        "userId": message.participants,
        "senderId": message.sender_id,
        "receiverId": message.receiver_id,
        "timestamp": message.created_at.isoformat(),
        "text": message.text,
    }


def _hit_from_point(point: ScoredPoint) -> SemanticHit | None:
    payload = point.payload
    if point.message_id is None or "senderId" not in payload:
        return None
    message = Message(
        id=point.message_id,
        sender_id=str(payload["senderId"]),
        receiver_id=str(payload.get("receiverId", "")),
        text=str(payload.get("text", "")),
        created_at=payload["timestamp"],
    )
    return SemanticHit(message=message, similarity=point.score)


def _rank_hits(hits: list[SemanticHit], limit: int) -> list[SemanticHit]:
    hits.sort(key=lambda h: (h.similarity, h.message.created_at), reverse=True)
    return hits[:limit]


class VectorIndex:
    """Semantic index over messages with an in-process fallback.

    Attributes:
        collection: Qdrant collection name.
    """

    def __init__(
        self,
        embeddings: EmbeddingService,
        store: MessageStore,
        vector_store: VectorStore | None = None,
        collection: str = "messages",
        timeout: float = 10.0,
        retry_interval: float = 60.0,
        fallback_candidates: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the index.

        Args:
            embeddings: Service used to embed message and query text.
            store: Message store used by the fallback scan.
            vector_store: Remote vector store, or None to always use the fallback.
            collection: Collection name.
            timeout: Per-call timeout for remote operations.
            retry_interval: Seconds before a disabled index is retried.
            fallback_candidates: Recent messages scanned by the fallback.
            clock: Monotonic clock (for testing).
        """
        self._embeddings = embeddings
        self._store = store
        self._vector_store = vector_store
        self.collection = collection
        self._timeout = timeout
        self._retry_interval = retry_interval
        self._fallback_candidates = fallback_candidates
        self._clock = clock

        self._enabled = False
        self._disabled_at: float | None = None
        self._points: dict[str, str] = {}
        self._pending_deletes: set[str] = set()

    @classmethod
    def from_settings(
        cls,
        embeddings: EmbeddingService,
        store: MessageStore,
        settings: Settings | None = None,
    ) -> "VectorIndex":
        """Build the index; Qdrant is only contacted when enabled in settings."""
        settings = settings or get_settings()
        qdrant = settings.qdrant
        return cls(
            embeddings=embeddings,
            store=store,
            vector_store=QdrantVectorStore(qdrant) if qdrant.enabled else None,
            collection=qdrant.collection_name,
            timeout=qdrant.timeout,
            retry_interval=qdrant.retry_interval,
            fallback_candidates=settings.search.fallback_candidates,
        )

    @property
    def enabled(self) -> bool:
        """Whether the remote index currently serves requests."""
        return self._enabled

    @property
    def dimensions(self) -> int:
        return self._embeddings.dimensions

    async def initialize(self) -> bool:
        """Prepare the collection and enable the remote path.

        Returns:
            True if the remote index is usable.
        """
        if self._vector_store is None:
            set_index_enabled(False)
            logger.info("Remote vector index disabled by configuration, using store fallback")
            return False

        try:
            await self.ensure_collection()
        except (IndexUnavailableError, DimensionMismatchError) as e:
            self._disable("initialize", e)
            return False

        self._enabled = True
        self._disabled_at = None
        set_index_enabled(True)
        logger.info(
            f"Vector index ready: {self.collection}",
            extra={"collection": self.collection, "dimensions": self.dimensions},
        )
        return await self._replay_deletes()

    async def _replay_deletes(self) -> bool:
        """Remove points of deleted messages that are still in the collection."""
        if not self._pending_deletes:
            return True

        vs = self._vector_store
        assert vs is not None
        message_ids = sorted(self._pending_deletes)
        try:
            found = await self._remote(
                "scroll",
                lambda: vs.find_point_ids(self.collection, "messageId", message_ids),
            )
            point_ids = set(found) | {self._points[m] for m in message_ids if m in self._points}
            if point_ids:
                await self._remote("delete", lambda: vs.delete(self.collection, sorted(point_ids)))
        except IndexUnavailableError as e:
            logger.warning(
                f"Replaying pending deletes failed: {e.message}",
                extra={"pending": len(message_ids), "stage": "delete"},
            )
            return False

        for message_id in message_ids:
            self._points.pop(message_id, None)
        self._pending_deletes.difference_update(message_ids)
        logger.info(
            f"Removed {len(point_ids)} points of deleted messages",
            extra={"collection": self.collection, "messages": len(message_ids)},
        )
        return True

    async def ensure_collection(
        self,
        dimension: int | None = None,
        metric: str = "cosine",
    ) -> None:
        """Create the collection and payload indexes if missing.

        Args:
            dimension: Vector size, defaults to the embedding dimension.
            metric: Distance metric; only cosine is supported.

        Raises:
            ConfigurationError: Unsupported metric or no remote store configured.
            DimensionMismatchError: Existing collection has another vector size.
            IndexUnavailableError: Qdrant could not be reached.
        """
        if metric.lower() != "cosine":
            raise ConfigurationError(
                f"Unsupported distance metric: {metric}",
                details={"metric": metric},
            )
        if self._vector_store is None:
            raise ConfigurationError("No remote vector store configured")

        dimension = dimension or self.dimensions
        vs = self._vector_store

        if await self._remote("collection_exists", lambda: vs.collection_exists(self.collection)):
            existing = await self._remote(
                "get_collection",
                lambda: vs.collection_dimensions(self.collection),
            )
            if existing is not None and existing != dimension:
                raise DimensionMismatchError(
                    dimension,
                    existing,
                    details={"collection": self.collection},
                )
        else:
            await self._remote(
                "create_collection",
                lambda: vs.create_collection(self.collection, dimension),
            )

        for field, schema in PAYLOAD_INDEXES.items():
            await self._remote(
                "create_payload_index",
                lambda field=field, schema=schema: vs.ensure_payload_index(
                    self.collection, field, schema
                ),
            )

    async def index_message(
        self,
        message: Message,
        embedding: Sequence[float] | None = None,
    ) -> str | None:
        """Index one message, replacing any earlier point for it.

        Args:
            message: Message to index.
            embedding: Precomputed vector; the text is embedded when None.

        Returns:
            The new point id, or None when nothing was indexed.
        """
        indexed = await self._index([message], [embedding] if embedding is not None else None)
        return indexed.get(message.id)

    async def batch_index(
        self,
        messages: Sequence[Message],
        embeddings: Sequence[Sequence[float] | None] | None = None,
    ) -> int:
        """Index many messages with a single upsert.

        Returns:
            Number of messages indexed.
        """
        if not messages:
            return 0
        if embeddings is not None and len(embeddings) != len(messages):
            raise ValueError("embeddings must align with messages")
        indexed = await self._index(messages, embeddings)
        return len(indexed)

    async def _index(
        self,
        messages: Sequence[Message],
        embeddings: Sequence[Sequence[float] | None] | None,
    ) -> dict[str, str]:
        """Upsert fresh points, then delete the stale ones for the same messages."""
        if not await self._ready():
            return {}

        if embeddings is None:
            results = await self._embeddings.embed_batch([m.text for m in messages])
            embeddings = [None if r.degraded else r.embedding for r in results]

        records: list[VectorRecord] = []
        new_points: dict[str, str] = {}
        for message, vector in zip(messages, embeddings, strict=True):
            if vector is None or is_zero_vector(vector):
                logger.warning(
                    "Skipping index of message without a usable embedding",
                    extra={"message_id": message.id, "stage": "index"},
                )
                continue
            if len(vector) != self.dimensions:
                logger.warning(
                    "Skipping index of message with wrong embedding dimension",
                    extra={
                        "message_id": message.id,
                        "expected": self.dimensions,
                        "actual": len(vector),
                    },
                )
                continue
            point_id = str(uuid4())
            new_points[message.id] = point_id
            records.append(
                VectorRecord(id=point_id, vector=list(vector), payload=build_payload(message))
            )

        if not records:
            return {}

        vs = self._vector_store
        assert vs is not None
        message_ids = list(new_points)
        try:
            await self._remote("upsert", lambda: vs.upsert(self.collection, records))
            found = await self._remote(
                "scroll",
                lambda: vs.find_point_ids(self.collection, "messageId", message_ids),
            )
            previous = {self._points[mid] for mid in message_ids if mid in self._points}
            stale = (previous | set(found)) - set(new_points.values())
            if stale:
                await self._remote("delete", lambda: vs.delete(self.collection, sorted(stale)))
        except IndexUnavailableError as e:
            logger.warning(
                f"Indexing failed: {e.message}",
                extra={"message_ids": message_ids[:10], "stage": "index"},
            )
            return {}

        self._points.update(new_points)
        logger.debug(f"Indexed {len(records)} messages", extra={"collection": self.collection})
        return new_points

    async def semantic_search(
        self,
        user_id: str,
        query: str,
        limit: int = 10,
        min_similarity: float = 0.1,
    ) -> SemanticSearchOutcome:
        """Find the user's messages closest in meaning to the query.

        Args:
            user_id: Participant whose messages are searched.
            query: Query text.
            limit: Maximum hits.
            min_similarity: Hits scoring below this are dropped.

        Returns:
            Hits sorted by descending similarity and the backend used.

        Raises:
            StoreUnavailableError: The store could not be read to scan or to
                confirm that Qdrant hits still exist.
        """
        result = await self._embeddings.embed(query)
        if result.degraded:
            logger.warning(
                "Query embedding degraded, skipping semantic search",
                extra={"user_id": user_id, "stage": "semantic_search"},
            )
            return SemanticSearchOutcome(backend=SemanticBackend.NONE, query_degraded=True)

        vector = result.embedding
        if await self._ready():
            vs = self._vector_store
            assert vs is not None
            try:
                points = await self._remote(
                    "search",
                    lambda: vs.search(
                        self.collection,
                        vector,
                        limit=limit * 2,
                        filters={"userId": user_id},
                    ),
                )
            except IndexUnavailableError as e:
                logger.warning(
                    f"Remote semantic search failed, using store fallback: {e.message}",
                    extra={"user_id": user_id, "stage": "semantic_search"},
                )
            else:
                hits = [
                    hit
                    for hit in map(_hit_from_point, points)
                    if hit is not None and hit.similarity >= min_similarity
                ]
                hits = await self._drop_deleted(hits)
                return SemanticSearchOutcome(
                    hits=_rank_hits(hits, limit),
                    backend=SemanticBackend.QDRANT,
                )

        return await self._fallback_search(user_id, vector, limit, min_similarity)

    async def _drop_deleted(self, hits: list[SemanticHit]) -> list[SemanticHit]:
        """Keep only hits whose message the store still holds."""
        if not hits:
            return hits
        live = await self._store.existing_ids({hit.message.id for hit in hits})
        orphaned = [hit.message.id for hit in hits if hit.message.id not in live]
        if orphaned:
            self._pending_deletes.update(orphaned)
            logger.warning(
                f"Dropped {len(orphaned)} index hits for deleted messages",
                extra={"message_ids": orphaned[:10], "stage": "semantic_search"},
            )
            await self._replay_deletes()
        return [hit for hit in hits if hit.message.id in live]

    async def _fallback_search(
        self,
        user_id: str,
        vector: list[float],
        limit: int,
        min_similarity: float,
    ) -> SemanticSearchOutcome:
        """Brute-force cosine scan over the user's recent embedded messages."""
        candidates = await self._store.recent_with_embeddings(
            user_id,
            limit=self._fallback_candidates,
        )
        hits = []
        for message in candidates:
            similarity = cosine_similarity(vector, message.embedding)
            if similarity >= min_similarity:
                hits.append(SemanticHit(message=message, similarity=similarity))

        return SemanticSearchOutcome(
            hits=_rank_hits(hits, limit),
            backend=SemanticBackend.STORE_FALLBACK,
        )

    async def delete_message(self, message_id: str) -> int:
        """Remove a message's points from the index.

        A delete that cannot reach Qdrant is remembered and replayed when
        the index becomes available again.

        Returns:
            Number of points deleted; 0 when the message was never indexed
            or the delete was deferred.
        """
        if self._vector_store is None:
            self._points.pop(message_id, None)
            return 0
        if not await self._ready():
            self._pending_deletes.add(message_id)
            return 0

        vs = self._vector_store
        mapped = self._points.get(message_id)
        try:
            if mapped is not None:
                point_ids = [mapped]
            else:
                point_ids = await self._remote(
                    "scroll",
                    lambda: vs.find_point_ids(self.collection, "messageId", [message_id]),
                )
            deleted = 0
            if point_ids:
                deleted = await self._remote("delete", lambda: vs.delete(self.collection, point_ids))
        except IndexUnavailableError as e:
            self._pending_deletes.add(message_id)
            logger.warning(
                f"Failed to delete message from index, will retry: {e.message}",
                extra={"message_id": message_id, "stage": "delete"},
            )
            return 0

        self._points.pop(message_id, None)
        self._pending_deletes.discard(message_id)
        return deleted

    async def get_stats(self) -> IndexStats:
        """Index status; never raises."""
        vector_count = None
        if self._enabled and self._vector_store is not None:
            vs = self._vector_store
            try:
                vector_count = await self._remote("count", lambda: vs.count(self.collection))
            except IndexUnavailableError:
                vector_count = None

        return IndexStats(
            enabled=self._enabled,
            collection=self.collection,
            vector_count=vector_count,
            dimensions=self.dimensions,
            tracked_messages=len(self._points),
            pending_deletes=len(self._pending_deletes),
        )

    async def close(self) -> None:
        """Close the remote store client."""
        if self._vector_store is not None:
            await self._vector_store.close()

    async def _ready(self) -> bool:
        """Whether to use the remote path, retrying a disabled index when due."""
        if self._enabled:
            return True
        if self._vector_store is None or self._disabled_at is None:
            return False
        if self._clock() - self._disabled_at < self._retry_interval:
            return False

        logger.info("Retrying disabled vector index", extra={"collection": self.collection})
        return await self.initialize()

    async def _remote(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run one remote call with a timeout, metrics and disable-on-failure."""
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(call(), timeout=self._timeout)
        except Exception as e:
            track_index_operation(operation, time.perf_counter() - start, success=False)
            self._disable(operation, e)
            if isinstance(e, IndexUnavailableError):
                raise
            raise IndexUnavailableError(
                f"Qdrant {operation} failed: {e!r}",
                details={"collection": self.collection, "operation": operation},
            ) from e

        track_index_operation(operation, time.perf_counter() - start, success=True)
        return result

    def _disable(self, operation: str, error: Exception) -> None:
        """Switch to the fallback path, logging only the first failure of an outage."""
        first_failure = self._enabled or self._disabled_at is None
        self._enabled = False
        self._disabled_at = self._clock()
        set_index_enabled(False)
        if first_failure:
            logger.error(
                f"Vector index disabled after {operation} failure: {error}",
                extra={
                    "collection": self.collection,
                    "operation": operation,
                    "retry_in": self._retry_interval,
                },
            )
