"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from chatsearch.api.app import create_app
from chatsearch.config import (
    EmbeddingSettings,
    ProviderKind,
    QdrantSettings,
    Settings,
    StoreBackend,
)
from chatsearch.container import ServiceContainer, build_container
from chatsearch.embeddings.providers import EmbeddingProvider, HashingEmbeddingProvider
from chatsearch.embeddings.service import EmbeddingService
from chatsearch.messages.memory import InMemoryMessageStore
from chatsearch.messages.models import Message

DIMENSIONS = 64


class FixedProvider(EmbeddingProvider):
    """Maps known texts to fixed vectors."""

    name = "fixed"

    def __init__(self, vectors: dict[str, list[float]]) -> None:
        self._vectors = vectors

    async def embed(self, text: str) -> list[float]:
        return self._vectors[text]


def make_message(
    message_id: str,
    text: str,
    sender_id: str = "alice",
    receiver_id: str = "bob",
    embedding: list[float] | None = None,
    minutes_ago: int = 0,
) -> Message:
    """Build a message with a deterministic timestamp."""
    created_at = datetime(2024, 1, 1, 12, 0, tzinfo=UTC) - timedelta(minutes=minutes_ago)
    return Message(
        id=message_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        text=text,
        embedding=embedding,
        created_at=created_at,
    )


@pytest.fixture
def settings() -> Settings:
    """Settings for an in-process stack with the hashing provider only."""
    return Settings(
        store_backend=StoreBackend.MEMORY,
        embedding=EmbeddingSettings(
            provider_order=[ProviderKind.HASHING],
            dimensions=DIMENSIONS,
        ),
        qdrant=QdrantSettings(enabled=False),
    )


@pytest.fixture
def store() -> InMemoryMessageStore:
    """Empty in-memory message store."""
    return InMemoryMessageStore()


@pytest.fixture
def embedding_service() -> EmbeddingService:
    """Embedding service backed by the deterministic hashing provider."""
    return EmbeddingService([HashingEmbeddingProvider(DIMENSIONS)], dimensions=DIMENSIONS)


@pytest.fixture
def container(
    settings: Settings,
    store: InMemoryMessageStore,
    embedding_service: EmbeddingService,
) -> ServiceContainer:
    """Services wired without any remote dependency."""
    return build_container(settings, store=store, embeddings=embedding_service)


@pytest.fixture
async def client(container: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client for FastAPI app.

    Yields:
        AsyncClient configured for testing.
    """
    app = create_app(container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
