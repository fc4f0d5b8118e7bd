"""Backfill of missing embeddings and index entries."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from chatsearch.embeddings.service import EmbeddingService
from chatsearch.exceptions import BackfillError, StoreUnavailableError
from chatsearch.logging_config import get_logger
from chatsearch.messages.models import Message
from chatsearch.messages.store import MessageStore
from chatsearch.observability.metrics import track_backfill
from chatsearch.vectorstore.index import VectorIndex

logger = get_logger(__name__)


class BackfillReport(BaseModel):
    """Outcome of a backfill run.

    Attributes:
        processed: Messages whose embedding was stored.
        errors: Messages that could not be updated.
        skipped: Messages left without embedding (degraded provider chain).
        batches: Batches pulled from the store.
        indexed: Messages written to the vector index.
        completed: No message lacking an embedding was left unattempted.
    """

    user_id: str | None = Field(default=None, description="Participant scope")
    processed: int = Field(default=0)
    errors: int = Field(default=0)
    skipped: int = Field(default=0)
    batches: int = Field(default=0)
    indexed: int = Field(default=0)
    completed: bool = Field(default=False)
    started_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    finished_at: str | None = Field(default=None)


class BackfillJob:
    """Embeds and indexes messages that have no embedding yet.

    Usage:
        job = BackfillJob(store, embeddings, index, batch_size=100)
        report = await job.run(user_id="u1", max_batches=5)
    """

    def __init__(
        self,
        store: MessageStore,
        embeddings: EmbeddingService,
        index: VectorIndex,
        batch_size: int = 100,
    ) -> None:
        """Initialize the job.

        Args:
            store: Message store to read from and update.
            embeddings: Embedding service.
            index: Vector index fed with each batch.
            batch_size: Messages per batch.
        """
        self._store = store
        self._embeddings = embeddings
        self._index = index
        self._batch_size = batch_size

    async def run(
        self,
        user_id: str | None = None,
        max_batches: int | None = None,
    ) -> BackfillReport:
        """Process batches until none remain or ``max_batches`` is reached.

        Args:
            user_id: Restrict to one participant's messages.
            max_batches: Upper bound on batches for this run.

        Returns:
            BackfillReport with counts.

        Raises:
            BackfillError: The store could not list messages to process.
        """
        report = BackfillReport(user_id=user_id)
        attempted: set[str] = set()

        logger.info(
            "Starting embedding backfill",
            extra={"user_id": user_id, "batch_size": self._batch_size, "max_batches": max_batches},
        )

        while max_batches is None or report.batches < max_batches:
            try:
                batch = await self._store.find_missing_embeddings(
                    user_id=user_id,
                    limit=self._batch_size,
                    exclude_ids=attempted,
                )
            except StoreUnavailableError as e:
                raise BackfillError(
                    f"Failed to list messages without embeddings: {e.message}",
                    details={"user_id": user_id, "batches": report.batches},
                ) from e

            if not batch:
                report.completed = True
                break

            report.batches += 1
            # Embedded messages drop out of the query on their own.
            attempted.update(await self._process_batch(batch, report))

            logger.debug(
                f"Backfill batch {report.batches} done",
                extra={
                    "processed": report.processed,
                    "errors": report.errors,
                    "skipped": report.skipped,
                },
            )

        report.finished_at = datetime.now(UTC).isoformat()
        track_backfill(report.processed, report.errors, report.skipped)
        logger.info(
            "Embedding backfill finished",
            extra={
                "user_id": user_id,
                "processed": report.processed,
                "errors": report.errors,
                "skipped": report.skipped,
                "batches": report.batches,
                "indexed": report.indexed,
            },
        )
        return report

    async def _process_batch(self, batch: list[Message], report: BackfillReport) -> set[str]:
        """Embed, store and index one batch.

        Returns:
            Ids left without an embedding, to keep out of later batches.
        """
        embedded: list[Message] = []
        vectors: list[list[float]] = []
        unfinished: set[str] = set()

        for message in batch:
            result = await self._embeddings.embed(message.text)
            if result.degraded:
                report.skipped += 1
                unfinished.add(message.id)
                logger.warning(
                    "Degraded embedding not stored, message left for a later run",
                    extra={"message_id": message.id, "stage": "backfill"},
                )
                continue

            try:
                stored = await self._store.set_embedding(message.id, result.embedding)
            except StoreUnavailableError as e:
                report.errors += 1
                unfinished.add(message.id)
                logger.warning(
                    f"Failed to store embedding: {e.message}",
                    extra={"message_id": message.id, "provider": result.provider, "stage": "backfill"},
                )
                continue

            if not stored:
                report.errors += 1
                unfinished.add(message.id)
                logger.warning(
                    "Message disappeared before its embedding was stored",
                    extra={"message_id": message.id, "stage": "backfill"},
                )
                continue

            report.processed += 1
            embedded.append(message)
            vectors.append(result.embedding)

        if embedded:
            report.indexed += await self._index.batch_index(embedded, vectors)
        return unfinished
