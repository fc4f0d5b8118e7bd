"""Service wiring.

Builds every component once from settings so the API, the backfill CLI and
tests share the same construction path.
"""

from chatsearch.backfill.job import BackfillJob
from chatsearch.config import Settings, StoreBackend, get_settings
from chatsearch.embeddings.service import EmbeddingService
from chatsearch.exceptions import StoreUnavailableError
from chatsearch.ingestion.indexer import MessageIndexer
from chatsearch.logging_config import get_logger
from chatsearch.messages.memory import InMemoryMessageStore
from chatsearch.messages.mongo import MongoMessageStore
from chatsearch.messages.store import MessageStore
from chatsearch.search.orchestrator import SearchOrchestrator
from chatsearch.vectorstore.index import VectorIndex

logger = get_logger(__name__)


class ServiceContainer:
    """Holds the wired services for one process."""

    def __init__(
        self,
        settings: Settings,
        store: MessageStore,
        embeddings: EmbeddingService,
        index: VectorIndex,
    ) -> None:
        self.settings = settings
        self.store = store
        self.embeddings = embeddings
        self.index = index
        self.orchestrator = SearchOrchestrator(store, index, embeddings, settings.search)
        self.indexer = MessageIndexer(store, embeddings, index)
        self.backfill = BackfillJob(
            store,
            embeddings,
            index,
            batch_size=settings.backfill.batch_size,
        )

    async def startup(self) -> None:
        """Prepare store indexes and the vector collection."""
        if isinstance(self.store, MongoMessageStore):
            try:
                await self.store.ensure_indexes()
            except StoreUnavailableError as e:
                logger.error(f"Could not prepare message store indexes: {e.message}")
        await self.index.initialize()

    async def shutdown(self) -> None:
        """Finish background work and close clients."""
        await self.indexer.drain()
        await self.index.close()
        await self.embeddings.close()
        await self.store.close()


def build_store(settings: Settings) -> MessageStore:
    """Create the configured message store."""
    if settings.store_backend == StoreBackend.MEMORY:
        return InMemoryMessageStore()
    return MongoMessageStore.from_settings(settings.mongodb)


def build_container(
    settings: Settings | None = None,
    store: MessageStore | None = None,
    embeddings: EmbeddingService | None = None,
    index: VectorIndex | None = None,
) -> ServiceContainer:
    """Wire services, using the given components where provided.

    Args:
        settings: Application settings.
        store: Message store override.
        embeddings: Embedding service override.
        index: Vector index override.

    Returns:
        ServiceContainer ready for ``startup()``.
    """
    settings = settings or get_settings()
    store = store or build_store(settings)
    embeddings = embeddings or EmbeddingService.from_settings(settings.embedding)
    index = index or VectorIndex.from_settings(embeddings, store, settings)
    return ServiceContainer(settings, store, embeddings, index)
