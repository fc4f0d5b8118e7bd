"""Request and response bodies for the HTTP API.

Field names are snake_case in Python and camelCase on the wire, matching the
chat client's existing contract.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chatsearch.messages.models import Message
from chatsearch.search.models import SearchResponse, SearchResult, SearchStats
from chatsearch.search.ranking import describe_score

PREVIEW_LENGTH = 100


class APIModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _preview(text: str) -> str:
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "..."
    return text


class MessageCreate(APIModel):
    """Body of ``POST /messages``."""

    sender_id: str = Field(min_length=1, description="Sender user id")
    receiver_id: str = Field(min_length=1, description="Receiver user id")
    message: str = Field(min_length=1, description="Message text")


class MessageOut(APIModel):
    """A message as returned by the API."""

    id: str = Field(alias="_id")
    sender_id: str
    receiver_id: str
    message: str
    timestamp: datetime
    has_embedding: bool = False

    @classmethod
    def from_message(cls, message: Message) -> "MessageOut":
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            message=message.text,
            timestamp=message.created_at,
            has_embedding=message.has_embedding,
        )


class MessageCreated(APIModel):
    """Response of ``POST /messages``."""

    message: str = "Message sent successfully"
    data: MessageOut
    indexing: str = Field(default="scheduled", description="Background indexing state")


class MessageList(APIModel):
    """Messages in chronological order."""

    messages: list[MessageOut]


class SearchResultOut(APIModel):
    """One ranked search hit."""

    rank: int
    id: str = Field(alias="_id")
    sender_id: str
    receiver_id: str
    message: str
    timestamp: datetime
    similarity: float
    word_score: float
    final_score: float
    sources: list[str]
    score_description: str
    preview: str

    @classmethod
    def from_result(cls, result: SearchResult) -> "SearchResultOut":
        message = result.message
        return cls(
            rank=result.rank,
            id=message.id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            message=message.text,
            timestamp=message.created_at,
            similarity=result.semantic_score,
            word_score=result.lexical_score,
            final_score=result.combined_score,
            sources=[source.value for source in result.sources],
            score_description=describe_score(result.combined_score),
            preview=_preview(message.text),
        )


class TopResult(APIModel):
    """Summary of the best hit."""

    score: float
    description: str
    message: str
    sources: list[str]


class SearchMetadataOut(APIModel):
    """How a search response was produced."""

    word_count: int
    semantic_count: int
    combined_count: int
    total: int
    search_type: str
    semantic_backend: str
    weights: dict[str, float]
    lexical_boost: float
    min_similarity: float
    limit: int
    search_time: float = Field(description="Milliseconds")
    degraded: bool
    degraded_reasons: list[str]
    model: str | None = None
    dimensions: int | None = None
    top_result: TopResult | None = None


class SearchResponseOut(APIModel):
    """Response of the search endpoints."""

    query: str
    results: list[SearchResultOut]
    metadata: SearchMetadataOut
    word_results: list[SearchResultOut] | None = None
    semantic_results: list[SearchResultOut] | None = None

    @classmethod
    def from_response(cls, response: SearchResponse) -> "SearchResponseOut":
        results = [SearchResultOut.from_result(r) for r in response.results]
        meta = response.metadata

        top_result = None
        if results:
            best = results[0]
            top_result = TopResult(
                score=best.final_score,
                description=best.score_description,
                message=best.preview,
                sources=best.sources,
            )

        def convert(items: list[SearchResult] | None) -> list[SearchResultOut] | None:
            if items is None:
                return None
            return [SearchResultOut.from_result(r) for r in items]

        return cls(
            query=response.query,
            results=results,
            metadata=SearchMetadataOut(
                word_count=meta.lexical_count,
                semantic_count=meta.semantic_count,
                combined_count=meta.combined_count,
                total=len(results),
                search_type=meta.search_type.value,
                semantic_backend=meta.semantic_backend.value,
                weights=meta.weights,
                lexical_boost=meta.lexical_boost,
                min_similarity=meta.min_similarity,
                limit=meta.limit,
                search_time=meta.search_time_ms,
                degraded=meta.degraded,
                degraded_reasons=meta.degraded_reasons,
                model=meta.provider,
                dimensions=meta.dimensions,
                top_result=top_result,
            ),
            word_results=convert(response.lexical_results),
            semantic_results=convert(response.semantic_results),
        )


class SearchStatsOut(APIModel):
    """Response of ``GET /search-stats``."""

    user_id: str | None
    total_messages: int
    messages_with_embeddings: int
    embedding_coverage: float
    vector_database: dict[str, Any]
    embedding_provider: dict[str, Any]
    search_enabled: dict[str, bool]

    @classmethod
    def from_stats(cls, stats: SearchStats) -> "SearchStatsOut":
        return cls(
            user_id=stats.user_id,
            total_messages=stats.total_messages,
            messages_with_embeddings=stats.messages_with_embeddings,
            embedding_coverage=stats.coverage_percent,
            vector_database=stats.index.model_dump(by_alias=False),
            embedding_provider=stats.provider.model_dump(),
            search_enabled={
                "wordSearch": True,
                "semanticSearch": True,
                "vectorSearch": stats.index.enabled,
            },
        )


class GenerateEmbeddingsRequest(APIModel):
    """Body of ``POST /generate-embeddings``."""

    user_id: str | None = Field(default=None, description="Limit to one participant")
    max_batches: int | None = Field(default=None, ge=1, description="Batch limit for this run")


class GenerateEmbeddingsResponse(APIModel):
    """Backfill outcome."""

    message: str = "Embeddings generated successfully"
    processed_count: int
    error_count: int
    skipped_count: int
    indexed_count: int
    batches: int
    completed: bool
    user_id: str
