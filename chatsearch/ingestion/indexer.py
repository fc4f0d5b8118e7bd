"""Write-path hook that embeds and indexes new messages in the background."""

import asyncio

from chatsearch.embeddings.service import EmbeddingService
from chatsearch.logging_config import get_logger
from chatsearch.messages.models import Message
from chatsearch.messages.store import MessageStore
from chatsearch.vectorstore.index import VectorIndex

logger = get_logger(__name__)


class MessageIndexer:
    """Schedules embedding and indexing of freshly persisted messages.

    The caller's write returns immediately; failures here are logged and
    left for the backfill job.
    """

    def __init__(
        self,
        store: MessageStore,
        embeddings: EmbeddingService,
        index: VectorIndex,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._index = index
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)

    def on_message_created(self, message: Message) -> asyncio.Task[None]:
        """Start a detached task for the message.

        Args:
            message: The persisted message.

        Returns:
            The scheduled task.
        """
        task = asyncio.create_task(self._process(message), name=f"index-{message.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _process(self, message: Message) -> None:
        try:
            result = await self._embeddings.embed(message.text)
            if result.degraded:
                logger.warning(
                    "Degraded embedding for new message, leaving it for backfill",
                    extra={"message_id": message.id, "stage": "ingest"},
                )
                return

            await self._store.set_embedding(message.id, result.embedding)
            await self._index.index_message(message, result.embedding)
        except Exception as e:
            logger.error(
                f"Background indexing failed: {e}",
                extra={"message_id": message.id, "stage": "ingest"},
            )

    async def drain(self) -> None:
        """Wait for every pending task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
