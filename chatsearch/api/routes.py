"""API routes for message search and the message write path."""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query, status

from chatsearch.api.dependencies import (
    get_container,
    get_index,
    get_indexer,
    get_orchestrator,
    get_store,
)
from chatsearch.api.schemas import (
    GenerateEmbeddingsRequest,
    GenerateEmbeddingsResponse,
    MessageCreate,
    MessageCreated,
    MessageList,
    MessageOut,
    SearchResponseOut,
    SearchStatsOut,
)
from chatsearch.container import ServiceContainer
from chatsearch.exceptions import MessageNotFoundError, ValidationError
from chatsearch.ingestion.indexer import MessageIndexer
from chatsearch.logging_config import get_logger
from chatsearch.messages.models import NewMessage
from chatsearch.messages.store import MessageStore
from chatsearch.search.models import SearchOptions
from chatsearch.search.orchestrator import SearchOrchestrator
from chatsearch.vectorstore.index import VectorIndex

logger = get_logger(__name__)

router = APIRouter(tags=["Search"])
messages_router = APIRouter(prefix="/messages", tags=["Messages"])

Orchestrator = Annotated[SearchOrchestrator, Depends(get_orchestrator)]
Store = Annotated[MessageStore, Depends(get_store)]

MESSAGE_LIST_LIMIT = 99


@router.get("/search", response_model=SearchResponseOut)
async def combined_search(
    orchestrator: Orchestrator,
    user_id: Annotated[str | None, Query(alias="userId")] = None,
    q: str | None = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
    word_weight: Annotated[float | None, Query(alias="wordWeight", ge=0.0)] = None,
    semantic_weight: Annotated[float | None, Query(alias="semanticWeight", ge=0.0)] = None,
    min_similarity: Annotated[float | None, Query(alias="minSimilarity", ge=-1.0, le=1.0)] = None,
    combine_results: Annotated[bool, Query(alias="combineResults")] = True,
) -> SearchResponseOut:
    """Search a user's messages by words and by meaning."""
    response = await orchestrator.combined_search(
        user_id or "",
        q or "",
        limit=limit,
        options=SearchOptions(
            word_weight=word_weight,
            semantic_weight=semantic_weight,
            min_similarity=min_similarity,
            combine_results=combine_results,
        ),
    )
    return SearchResponseOut.from_response(response)


@router.get("/semantic-search", response_model=SearchResponseOut)
async def semantic_search(
    orchestrator: Orchestrator,
    user_id: Annotated[str | None, Query(alias="userId")] = None,
    q: str | None = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
    min_similarity: Annotated[float | None, Query(alias="minSimilarity", ge=-1.0, le=1.0)] = None,
) -> SearchResponseOut:
    """Search a user's messages by meaning only."""
    response = await orchestrator.semantic_search(
        user_id or "",
        q or "",
        limit=limit,
        min_similarity=min_similarity,
    )
    return SearchResponseOut.from_response(response)


@router.get("/search-stats", response_model=SearchStatsOut)
async def search_stats(
    orchestrator: Orchestrator,
    user_id: Annotated[str | None, Query(alias="userId")] = None,
) -> SearchStatsOut:
    """Embedding coverage and index status."""
    stats = await orchestrator.get_search_stats(user_id or None)
    return SearchStatsOut.from_stats(stats)


@router.post("/generate-embeddings", response_model=GenerateEmbeddingsResponse)
async def generate_embeddings(
    container: Annotated[ServiceContainer, Depends(get_container)],
    request: Annotated[GenerateEmbeddingsRequest | None, Body()] = None,
) -> GenerateEmbeddingsResponse:
    """Embed and index messages that have no embedding yet."""
    request = request or GenerateEmbeddingsRequest()
    max_batches = request.max_batches or container.settings.backfill.max_batches

    logger.info(
        "Backfill requested over HTTP",
        extra={"user_id": request.user_id, "max_batches": max_batches},
    )
    report = await container.backfill.run(user_id=request.user_id, max_batches=max_batches)

    return GenerateEmbeddingsResponse(
        processed_count=report.processed,
        error_count=report.errors,
        skipped_count=report.skipped,
        indexed_count=report.indexed,
        batches=report.batches,
        completed=report.completed,
        user_id=request.user_id or "all users",
    )


@messages_router.post("", response_model=MessageCreated, status_code=status.HTTP_201_CREATED)
async def create_message(
    body: MessageCreate,
    store: Store,
    indexer: Annotated[MessageIndexer, Depends(get_indexer)],
) -> MessageCreated:
    """Persist a message and schedule its embedding and indexing."""
    message = await store.create_message(
        NewMessage(sender_id=body.sender_id, receiver_id=body.receiver_id, text=body.message)
    )
    indexer.on_message_created(message)
    return MessageCreated(data=MessageOut.from_message(message))


@messages_router.get("", response_model=MessageList)
async def list_messages(
    store: Store,
    user_id: Annotated[str | None, Query(alias="userId")] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = MESSAGE_LIST_LIMIT,
) -> MessageList:
    """A user's most recent messages, oldest first."""
    if not user_id:
        raise ValidationError("userId is required")
    messages = await store.list_messages(user_id, limit=limit)
    return MessageList(messages=[MessageOut.from_message(m) for m in reversed(messages)])


@messages_router.get("/conversation", response_model=MessageList)
async def get_conversation(
    store: Store,
    user_id1: Annotated[str | None, Query(alias="userId1")] = None,
    user_id2: Annotated[str | None, Query(alias="userId2")] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = MESSAGE_LIST_LIMIT,
) -> MessageList:
    """Most recent messages between two users, oldest first."""
    if not user_id1 or not user_id2:
        raise ValidationError("Both userId1 and userId2 are required")
    messages = await store.get_conversation(user_id1, user_id2, limit=limit)
    return MessageList(messages=[MessageOut.from_message(m) for m in reversed(messages)])


@messages_router.delete("/{message_id}")
async def delete_message(
    message_id: str,
    store: Store,
    index: Annotated[VectorIndex, Depends(get_index)],
) -> dict[str, Any]:
    """Delete a message and its index entry."""
    if not await store.delete_message(message_id):
        raise MessageNotFoundError(
            f"Message not found: {message_id}",
            details={"message_id": message_id},
        )
    points_removed = await index.delete_message(message_id)
    return {"deleted": True, "_id": message_id, "pointsRemoved": points_removed}
