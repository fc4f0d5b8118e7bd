"""Tests for the message vector index."""

from collections.abc import Sequence
from typing import Any
from unittest.mock import AsyncMock

import pytest
from qdrant_client.models import PayloadSchemaType

from chatsearch.embeddings.service import EmbeddingService
from chatsearch.embeddings.similarity import cosine_similarity
from chatsearch.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    IndexUnavailableError,
)
from chatsearch.messages.memory import InMemoryMessageStore
from chatsearch.vectorstore.index import VectorIndex, build_payload
from chatsearch.vectorstore.models import ScoredPoint, SemanticBackend, VectorRecord
from chatsearch.vectorstore.service import VectorStore

from tests.conftest import DIMENSIONS, FixedProvider, make_message


class FakeVectorStore(VectorStore):
    """In-memory stand-in for Qdrant."""

    def __init__(self, dimensions: int | None = None) -> None:
        self.dimensions = dimensions
        self.points: dict[str, VectorRecord] = {}
        self.payload_indexes: dict[str, PayloadSchemaType] = {}
        self.fail = False
        self.calls: list[str] = []

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise IndexUnavailableError(f"{name} failed")

    async def collection_exists(self, name: str) -> bool:
        self._call("collection_exists")
        return self.dimensions is not None

    async def create_collection(self, name: str, dimensions: int) -> None:
        self._call("create_collection")
        self.dimensions = dimensions

    async def collection_dimensions(self, name: str) -> int | None:
        self._call("collection_dimensions")
        return self.dimensions

    async def ensure_payload_index(self, name: str, field: str, schema: PayloadSchemaType) -> None:
        self._call("ensure_payload_index")
        self.payload_indexes[field] = schema

    async def upsert(self, collection: str, records: list[VectorRecord]) -> int:
        self._call("upsert")
        for record in records:
            self.points[record.id] = record
        return len(records)

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[ScoredPoint]:
        self._call("search")
        user_id = (filters or {}).get("userId")
        scored = [
            ScoredPoint(
                id=record.id,
                score=cosine_similarity(vector, record.vector),
                payload=record.payload,
            )
            for record in self.points.values()
            if user_id is None or user_id in record.payload["userId"]
        ]
        scored.sort(key=lambda p: p.score, reverse=True)
        return scored[:limit]

    async def find_point_ids(self, collection: str, key: str, values: Sequence[str]) -> list[str]:
        self._call("find_point_ids")
        return [pid for pid, record in self.points.items() if record.payload.get(key) in values]

    async def delete(self, collection: str, ids: list[str]) -> int:
        self._call("delete")
        for point_id in ids:
            self.points.pop(point_id, None)
        return len(ids)

    async def count(self, collection: str) -> int:
        self._call("count")
        return len(self.points)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _unit(index: int, dimensions: int = DIMENSIONS) -> list[float]:
    vector = [0.0] * dimensions
    vector[index] = 1.0
    return vector


def _mix(first: int, second: int, weight: float) -> list[float]:
    vector = [0.0] * DIMENSIONS
    vector[first] = weight
    vector[second] = 1.0 - weight
    return vector


@pytest.fixture
def vector_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def index(
    embedding_service: EmbeddingService,
    store: InMemoryMessageStore,
    vector_store: FakeVectorStore,
    clock: FakeClock,
) -> VectorIndex:
    return VectorIndex(
        embeddings=embedding_service,
        store=store,
        vector_store=vector_store,
        retry_interval=60.0,
        clock=clock,
    )


class TestBuildPayload:
    """Tests for point payloads."""

    def test_payload_lists_both_participants(self) -> None:
        message = make_message("m1", "hello", sender_id="alice", receiver_id="bob")

        payload = build_payload(message)

        assert payload["messageId"] == "m1"
        assert payload["userId"] == ["alice", "bob"]
        assert payload["senderId"] == "alice"
        assert payload["receiverId"] == "bob"
        assert payload["timestamp"] == "2024-01-01T12:00:00+00:00"
        assert payload["text"] == "hello"


class TestInitialize:
    """Tests for collection setup."""

    @pytest.mark.asyncio
    async def test_creates_collection_and_payload_indexes(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        """A missing collection is created with the embedding dimension."""
        assert await index.initialize() is True

        assert index.enabled
        assert vector_store.dimensions == DIMENSIONS
        assert vector_store.payload_indexes == {
            "userId": PayloadSchemaType.KEYWORD,
            "messageId": PayloadSchemaType.KEYWORD,
            "timestamp": PayloadSchemaType.DATETIME,
        }

    @pytest.mark.asyncio
    async def test_existing_collection_is_reused(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        vector_store.dimensions = DIMENSIONS

        assert await index.initialize() is True
        assert "create_collection" not in vector_store.calls

    @pytest.mark.asyncio
    async def test_dimension_mismatch_disables_index(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        """A collection of another size is never written to."""
        vector_store.dimensions = DIMENSIONS * 2

        assert await index.initialize() is False
        assert not index.enabled

        with pytest.raises(DimensionMismatchError):
            await index.ensure_collection()

    @pytest.mark.asyncio
    async def test_unreachable_store_disables_index(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        vector_store.fail = True

        assert await index.initialize() is False
        assert not index.enabled

    @pytest.mark.asyncio
    async def test_non_cosine_metric_rejected(self, index: VectorIndex) -> None:
        with pytest.raises(ConfigurationError, match="metric"):
            await index.ensure_collection(metric="dot")

    @pytest.mark.asyncio
    async def test_disabled_by_configuration(
        self,
        embedding_service: EmbeddingService,
        store: InMemoryMessageStore,
    ) -> None:
        """Without a vector store the index stays in fallback mode."""
        index = VectorIndex(embeddings=embedding_service, store=store, vector_store=None)

        assert await index.initialize() is False
        with pytest.raises(ConfigurationError):
            await index.ensure_collection()


class TestIndexing:
    """Tests for keeping points in sync with messages."""

    @pytest.mark.asyncio
    async def test_index_message(self, index: VectorIndex, vector_store: FakeVectorStore) -> None:
        """A message becomes one point carrying its payload."""
        await index.initialize()
        message = make_message("m1", "see you tomorrow")

        point_id = await index.index_message(message)

        assert point_id is not None
        assert list(vector_store.points) == [point_id]
        assert vector_store.points[point_id].payload["messageId"] == "m1"

    @pytest.mark.asyncio
    async def test_reindex_replaces_point(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        """Re-indexing leaves exactly one point per message."""
        await index.initialize()
        message = make_message("m1", "see you tomorrow")

        first = await index.index_message(message)
        second = await index.index_message(message)

        assert first != second
        assert list(vector_store.points) == [second]

    @pytest.mark.asyncio
    async def test_stale_points_found_without_local_map(
        self,
        embedding_service: EmbeddingService,
        store: InMemoryMessageStore,
        vector_store: FakeVectorStore,
    ) -> None:
        """Points written by another process are removed too."""
        vector_store.dimensions = DIMENSIONS
        message = make_message("m1", "see you tomorrow")
        vector_store.points["old"] = VectorRecord(
            id="old",
            vector=_unit(0),
            payload=build_payload(message),
        )
        index = VectorIndex(embeddings=embedding_service, store=store, vector_store=vector_store)
        await index.initialize()

        point_id = await index.index_message(message)

        assert list(vector_store.points) == [point_id]

    @pytest.mark.asyncio
    async def test_zero_embedding_not_indexed(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        """Degraded vectors never reach the index."""
        await index.initialize()

        point_id = await index.index_message(make_message("m1", "hi"), [0.0] * DIMENSIONS)

        assert point_id is None
        assert vector_store.points == {}

    @pytest.mark.asyncio
    async def test_wrong_dimension_not_indexed(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        await index.initialize()

        assert await index.index_message(make_message("m1", "hi"), [1.0, 0.0]) is None
        assert vector_store.points == {}

    @pytest.mark.asyncio
    async def test_batch_index(self, index: VectorIndex, vector_store: FakeVectorStore) -> None:
        """Precomputed vectors are indexed in one upsert."""
        await index.initialize()
        messages = [make_message("m1", "one"), make_message("m2", "two")]

        indexed = await index.batch_index(messages, [_unit(0), _unit(1)])

        assert indexed == 2
        assert vector_store.calls.count("upsert") == 1
        assert len(vector_store.points) == 2

    @pytest.mark.asyncio
    async def test_batch_index_empty_makes_no_remote_call(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        await index.initialize()
        vector_store.calls.clear()

        assert await index.batch_index([]) == 0
        assert vector_store.calls == []

    @pytest.mark.asyncio
    async def test_batch_index_misaligned(self, index: VectorIndex) -> None:
        with pytest.raises(ValueError, match="align"):
            await index.batch_index([make_message("m1", "one")], [])

    @pytest.mark.asyncio
    async def test_index_failure_returns_none(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        """Remote failures are contained and disable the index."""
        await index.initialize()
        vector_store.fail = True

        assert await index.index_message(make_message("m1", "hello")) is None
        assert not index.enabled

    @pytest.mark.asyncio
    async def test_not_initialized_skips_remote(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        assert await index.index_message(make_message("m1", "hello")) is None
        assert vector_store.calls == []


class TestSemanticSearch:
    """Tests for semantic queries."""

    def _index(
        self,
        store: InMemoryMessageStore,
        vector_store: FakeVectorStore | None,
        vectors: dict[str, list[float]],
        clock: FakeClock | None = None,
    ) -> VectorIndex:
        embeddings = EmbeddingService([FixedProvider(vectors)], dimensions=DIMENSIONS)
        return VectorIndex(
            embeddings=embeddings,
            store=store,
            vector_store=vector_store,
            clock=clock or FakeClock(),
        )

    @pytest.mark.asyncio
    async def test_qdrant_search_filters_threshold_and_limit(
        self,
        store: InMemoryMessageStore,
        vector_store: FakeVectorStore,
    ) -> None:
        """Hits below the threshold are dropped and the limit is honoured."""
        vectors = {
            "query": _unit(0),
            "close": _mix(0, 1, 0.9),
            "closer": _mix(0, 1, 0.99),
            "far": _unit(1),
        }
        index = self._index(store, vector_store, vectors)
        await index.initialize()
        for message_id, text in [("m1", "close"), ("m2", "closer"), ("m3", "far")]:
            message = make_message(message_id, text)
            store.add(message)
            await index.index_message(message)

        outcome = await index.semantic_search("alice", "query", limit=1, min_similarity=0.5)

        assert outcome.backend == SemanticBackend.QDRANT
        assert [hit.message.id for hit in outcome.hits] == ["m2"]
        assert outcome.hits[0].message.text == "closer"

        outcome = await index.semantic_search("alice", "query", limit=10, min_similarity=0.5)
        assert [hit.message.id for hit in outcome.hits] == ["m2", "m1"]

    @pytest.mark.asyncio
    async def test_qdrant_search_scoped_to_user(
        self,
        store: InMemoryMessageStore,
        vector_store: FakeVectorStore,
    ) -> None:
        vectors = {"query": _unit(0), "mine": _unit(0), "theirs": _unit(0)}
        index = self._index(store, vector_store, vectors)
        await index.initialize()
        for message in [
            make_message("m1", "mine", sender_id="alice", receiver_id="bob"),
            make_message("m2", "theirs", sender_id="carol", receiver_id="dave"),
        ]:
            store.add(message)
            await index.index_message(message)

        outcome = await index.semantic_search("bob", "query")

        assert [hit.message.id for hit in outcome.hits] == ["m1"]

    @pytest.mark.asyncio
    async def test_remote_failure_uses_store_fallback(
        self,
        vector_store: FakeVectorStore,
    ) -> None:
        """A failing Qdrant call is answered from the store with the same shape."""
        store = InMemoryMessageStore(
            [
                make_message("m1", "close", embedding=_mix(0, 1, 0.9)),
                make_message("m2", "far", embedding=_unit(1)),
                make_message("m3", "no vector"),
            ]
        )
        index = self._index(store, vector_store, {"query": _unit(0)})
        await index.initialize()
        vector_store.fail = True

        outcome = await index.semantic_search("alice", "query", min_similarity=0.5)

        assert outcome.backend == SemanticBackend.STORE_FALLBACK
        assert [hit.message.id for hit in outcome.hits] == ["m1"]
        assert not index.enabled

    @pytest.mark.asyncio
    async def test_disabled_index_uses_store_fallback(self) -> None:
        store = InMemoryMessageStore([make_message("m1", "close", embedding=_unit(0))])
        index = self._index(store, None, {"query": _unit(0)})
        await index.initialize()

        outcome = await index.semantic_search("alice", "query")

        assert outcome.backend == SemanticBackend.STORE_FALLBACK
        assert outcome.hits[0].similarity == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_degraded_query_returns_no_hits(self) -> None:
        """A zero query vector cannot rank anything."""
        store = InMemoryMessageStore([make_message("m1", "close", embedding=_unit(0))])
        embeddings = EmbeddingService([], dimensions=DIMENSIONS)
        index = VectorIndex(embeddings=embeddings, store=store)

        outcome = await index.semantic_search("alice", "query")

        assert outcome.hits == []
        assert outcome.query_degraded is True
        assert outcome.backend == SemanticBackend.NONE

    @pytest.mark.asyncio
    async def test_recovers_after_retry_interval(
        self,
        store: InMemoryMessageStore,
        vector_store: FakeVectorStore,
        clock: FakeClock,
    ) -> None:
        """A disabled index is retried once the interval has passed."""
        index = self._index(store, vector_store, {"query": _unit(0)}, clock=clock)
        vector_store.fail = True
        await index.initialize()
        vector_store.fail = False

        outcome = await index.semantic_search("alice", "query")
        assert outcome.backend == SemanticBackend.STORE_FALLBACK

        clock.now += 61
        outcome = await index.semantic_search("alice", "query")

        assert outcome.backend == SemanticBackend.QDRANT
        assert index.enabled

    @pytest.mark.asyncio
    async def test_delete_during_outage_applied_on_recovery(
        self,
        vector_store: FakeVectorStore,
        clock: FakeClock,
    ) -> None:
        """A message deleted while Qdrant is down never comes back."""
        message = make_message("m1", "close")
        store = InMemoryMessageStore([message])
        index = self._index(store, vector_store, {"query": _unit(0), "close": _unit(0)}, clock)
        await index.initialize()
        await index.index_message(message)

        vector_store.fail = True
        await index.semantic_search("alice", "query")
        vector_store.fail = False

        await store.delete_message("m1")
        assert await index.delete_message("m1") == 0
        assert len(vector_store.points) == 1

        clock.now += 120
        outcome = await index.semantic_search("alice", "query")

        assert outcome.backend == SemanticBackend.QDRANT
        assert outcome.hits == []
        assert vector_store.points == {}
        assert (await index.get_stats()).pending_deletes == 0

    @pytest.mark.asyncio
    async def test_hits_for_deleted_messages_dropped(
        self,
        vector_store: FakeVectorStore,
    ) -> None:
        """Points whose message left the store are filtered and removed."""
        kept = make_message("m1", "close")
        gone = make_message("m2", "closer")
        store = InMemoryMessageStore([kept, gone])
        vectors = {"query": _unit(0), "close": _mix(0, 1, 0.9), "closer": _unit(0)}
        index = self._index(store, vector_store, vectors)
        await index.initialize()
        await index.batch_index([kept, gone])

        await store.delete_message("m2")
        outcome = await index.semantic_search("alice", "query", min_similarity=0.5)

        assert [hit.message.id for hit in outcome.hits] == ["m1"]
        assert [r.payload["messageId"] for r in vector_store.points.values()] == ["m1"]


class TestDeleteMessage:
    """Tests for point removal."""

    @pytest.mark.asyncio
    async def test_delete_indexed_message(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        await index.initialize()
        await index.index_message(make_message("m1", "hello"))

        assert await index.delete_message("m1") == 1
        assert vector_store.points == {}

    @pytest.mark.asyncio
    async def test_delete_unindexed_message(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        """Deleting an id that was never indexed is a no-op."""
        await index.initialize()

        assert await index.delete_message("missing") == 0
        assert "delete" not in vector_store.calls

    @pytest.mark.asyncio
    async def test_delete_failure_returns_zero(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        await index.initialize()
        vector_store.fail = True

        assert await index.delete_message("m1") == 0

    @pytest.mark.asyncio
    async def test_failed_delete_is_retried(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
        clock: FakeClock,
    ) -> None:
        """The point survives a failed delete and is removed once Qdrant is back."""
        await index.initialize()
        await index.index_message(make_message("m1", "hello"))
        vector_store.fail = True

        assert await index.delete_message("m1") == 0
        stats = await index.get_stats()
        assert stats.pending_deletes == 1
        assert stats.tracked_messages == 1

        vector_store.fail = False
        clock.now += 61
        assert await index.initialize() is True

        assert vector_store.points == {}
        stats = await index.get_stats()
        assert stats.pending_deletes == 0
        assert stats.tracked_messages == 0


class TestStats:
    """Tests for index statistics."""

    @pytest.mark.asyncio
    async def test_stats_when_enabled(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        await index.initialize()
        await index.index_message(make_message("m1", "hello"))

        stats = await index.get_stats()

        assert stats.enabled is True
        assert stats.vector_count == 1
        assert stats.dimensions == DIMENSIONS
        assert stats.distance == "cosine"
        assert stats.tracked_messages == 1

    @pytest.mark.asyncio
    async def test_stats_never_raise(
        self,
        index: VectorIndex,
        vector_store: FakeVectorStore,
    ) -> None:
        await index.initialize()
        vector_store.fail = True

        stats = await index.get_stats()

        assert stats.vector_count is None
        assert stats.enabled is False

    @pytest.mark.asyncio
    async def test_close_forwards_to_store(self, index: VectorIndex) -> None:
        index._vector_store.close = AsyncMock()  # type: ignore[union-attr,method-assign]

        await index.close()

        index._vector_store.close.assert_awaited_once()  # type: ignore[union-attr]
