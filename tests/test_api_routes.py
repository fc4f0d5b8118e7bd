"""Tests for search and message API routes."""

from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from chatsearch.api.schemas import MessageOut, SearchResponseOut, SearchResultOut
from chatsearch.container import ServiceContainer
from chatsearch.exceptions import StoreUnavailableError
from chatsearch.messages.memory import InMemoryMessageStore
from chatsearch.search.models import SearchResponse, SearchResult, SearchSource
from tests.conftest import make_message


async def _send(client: AsyncClient, sender: str, receiver: str, text: str) -> dict:
    response = await client.post(
        "/messages",
        json={"senderId": sender, "receiverId": receiver, "message": text},
    )
    assert response.status_code == 201
    return response.json()["data"]


class TestSchemas:
    """Tests for wire conversions."""

    def test_message_out_uses_camel_case(self) -> None:
        out = MessageOut.from_message(make_message("m1", "hello"))

        data = out.model_dump(by_alias=True)
        assert data["_id"] == "m1"
        assert data["senderId"] == "alice"
        assert data["receiverId"] == "bob"
        assert data["hasEmbedding"] is False

    def test_result_preview_truncated(self) -> None:
        result = SearchResult(
            message=make_message("m1", "x" * 150),
            combined_score=0.72,
            rank=1,
            sources=[SearchSource.SEMANTIC],
        )

        out = SearchResultOut.from_result(result)

        assert out.preview == "x" * 100 + "..."
        assert out.score_description == "High Match"
        assert out.sources == ["semantic"]

    def test_top_result_summary(self) -> None:
        response = SearchResponse(
            query="hello",
            results=[
                SearchResult(
                    message=make_message("m1", "hello"),
                    combined_score=0.65,
                    rank=1,
                    sources=[SearchSource.LEXICAL],
                )
            ],
        )

        out = SearchResponseOut.from_response(response)

        assert out.metadata.total == 1
        assert out.metadata.top_result is not None
        assert out.metadata.top_result.description == "Good Match"
        assert out.word_results is None


class TestMessageRoutes:
    """Tests for the message write and read path."""

    async def test_create_message(self, client: AsyncClient, container: ServiceContainer) -> None:
        """New messages are stored and embedded in the background."""
        data = await _send(client, "alice", "bob", "  see you tomorrow ")
        await container.indexer.drain()

        assert data["message"] == "see you tomorrow"
        stored = await container.store.get_message(data["_id"])
        assert stored is not None
        assert stored.has_embedding

    async def test_create_message_validation(self, client: AsyncClient) -> None:
        response = await client.post("/messages", json={"senderId": "alice", "message": "hi"})
        assert response.status_code == 422

    async def test_list_and_conversation(
        self,
        client: AsyncClient,
        container: ServiceContainer,
    ) -> None:
        store = container.store
        assert isinstance(store, InMemoryMessageStore)
        for message in [
            make_message("m1", "hi bob", minutes_ago=3),
            make_message("m2", "hi alice", sender_id="bob", receiver_id="alice", minutes_ago=2),
            make_message("m3", "hi carol", receiver_id="carol", minutes_ago=1),
        ]:
            store.add(message)

        listed = await client.get("/messages", params={"userId": "alice"})
        conversation = await client.get(
            "/messages/conversation",
            params={"userId1": "alice", "userId2": "bob"},
        )

        assert [m["_id"] for m in listed.json()["messages"]] == ["m1", "m2", "m3"]
        assert [m["_id"] for m in conversation.json()["messages"]] == ["m1", "m2"]

    async def test_list_requires_user(self, client: AsyncClient) -> None:
        response = await client.get("/messages")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MSG-1002"

    async def test_delete_message(self, client: AsyncClient) -> None:
        data = await _send(client, "alice", "bob", "delete me")

        response = await client.delete(f"/messages/{data['_id']}")

        assert response.status_code == 200
        assert response.json()["deleted"] is True
        assert response.json()["_id"] == data["_id"]

    async def test_delete_missing_message(self, client: AsyncClient) -> None:
        response = await client.delete("/messages/missing")

        assert response.status_code == 404
        assert response.json()["error"]["details"] == {"message_id": "missing"}


class TestSearchRoutes:
    """Tests for the search endpoints."""

    async def test_search_response_shape(
        self,
        client: AsyncClient,
        container: ServiceContainer,
    ) -> None:
        """Results and metadata use the client's camelCase field names."""
        await _send(client, "alice", "bob", "hello")
        await _send(client, "alice", "bob", "hello there")
        await _send(client, "bob", "alice", "goodbye friend")
        await container.indexer.drain()

        response = await client.get("/search", params={"userId": "alice", "q": "hello", "limit": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "hello"
        assert len(data["results"]) <= 2
        top = data["results"][0]
        assert top["message"] == "hello"
        assert top["rank"] == 1
        assert "lexical" in top["sources"]
        for key in ("_id", "senderId", "receiverId", "similarity", "wordScore", "finalScore"):
            assert key in top
        metadata = data["metadata"]
        assert metadata["searchType"] == "combined"
        assert metadata["semanticBackend"] == "store_fallback"
        assert metadata["weights"] == {"word": 0.4, "semantic": 0.6}
        assert metadata["topResult"]["score"] == top["finalScore"]

    async def test_search_separate_results(self, client: AsyncClient) -> None:
        await _send(client, "alice", "bob", "hello")

        response = await client.get(
            "/search",
            params={"userId": "alice", "q": "hello", "combineResults": "false"},
        )

        data = response.json()
        assert data["results"] == []
        assert data["metadata"]["searchType"] == "separate"
        assert [r["message"] for r in data["wordResults"]] == ["hello"]

    @pytest.mark.parametrize("params", [{"q": "hello"}, {"userId": "alice"}, {"userId": "alice", "q": " "}])
    async def test_search_requires_user_and_query(self, client: AsyncClient, params: dict) -> None:
        response = await client.get("/search", params=params)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MSG-1002"

    async def test_search_store_outage(self, client: AsyncClient, container: ServiceContainer) -> None:
        """Losing both branches is reported as 503."""
        container.store.text_search = AsyncMock(  # type: ignore[method-assign]
            side_effect=StoreUnavailableError("down")
        )
        container.store.recent_with_embeddings = AsyncMock(  # type: ignore[method-assign]
            side_effect=StoreUnavailableError("down")
        )

        response = await client.get("/search", params={"userId": "alice", "q": "hello"})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "MSG-2001"

    async def test_semantic_search(self, client: AsyncClient, container: ServiceContainer) -> None:
        await _send(client, "alice", "bob", "can you send the homework?")
        await container.indexer.drain()

        response = await client.get(
            "/semantic-search",
            params={"userId": "bob", "q": "can you send the homework?"},
        )

        data = response.json()
        assert response.status_code == 200
        assert data["results"][0]["similarity"] == pytest.approx(1.0)
        assert data["metadata"]["searchType"] == "semantic"
        assert data["metadata"]["model"] == "hashing"
        assert data["metadata"]["dimensions"] == 64

    async def test_semantic_search_timeout(
        self,
        client: AsyncClient,
        container: ServiceContainer,
    ) -> None:
        """A semantic-only search past its deadline is a 504."""
        container.index.semantic_search = AsyncMock(  # type: ignore[method-assign]
            side_effect=TimeoutError
        )

        response = await client.get("/semantic-search", params={"userId": "bob", "q": "homework"})

        assert response.status_code == 504
        assert response.json()["error"]["code"] == "MSG-5001"

    async def test_search_stats(self, client: AsyncClient, container: ServiceContainer) -> None:
        await _send(client, "alice", "bob", "hello")
        await container.indexer.drain()

        response = await client.get("/search-stats", params={"userId": "alice"})

        data = response.json()
        assert data["totalMessages"] == 1
        assert data["messagesWithEmbeddings"] == 1
        assert data["embeddingCoverage"] == 100.0
        assert data["searchEnabled"]["vectorSearch"] is False
        assert data["vectorDatabase"]["collection"] == "messages"
        assert data["embeddingProvider"]["primary"] == "hashing"


class TestGenerateEmbeddings:
    """Tests for the backfill endpoint."""

    async def test_backfill_all_users(self, client: AsyncClient, container: ServiceContainer) -> None:
        store = container.store
        assert isinstance(store, InMemoryMessageStore)
        for message in [make_message("m1", "one"), make_message("m2", "two", sender_id="carol")]:
            store.add(message)

        response = await client.post("/generate-embeddings")

        assert response.status_code == 200
        data = response.json()
        assert data["processedCount"] == 2
        assert data["errorCount"] == 0
        assert data["completed"] is True
        assert data["userId"] == "all users"

    async def test_backfill_single_user(self, client: AsyncClient, container: ServiceContainer) -> None:
        store = container.store
        assert isinstance(store, InMemoryMessageStore)
        for message in [
            make_message("m1", "one"),
            make_message("m2", "two", sender_id="carol", receiver_id="dave"),
        ]:
            store.add(message)

        response = await client.post("/generate-embeddings", json={"userId": "alice", "maxBatches": 1})

        data = response.json()
        assert data["processedCount"] == 1
        assert data["batches"] == 1
        assert data["userId"] == "alice"
