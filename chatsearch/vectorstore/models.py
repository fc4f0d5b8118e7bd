"""Vector index data models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from chatsearch.messages.models import Message


class SemanticBackend(str, Enum):
    """Which path answered a semantic query."""

    QDRANT = "qdrant"
    STORE_FALLBACK = "store_fallback"
    NONE = "none"


class VectorRecord(BaseModel):
    """A point to store in the vector database.

    Attributes:
        id: Point identifier (UUID string).
        vector: The embedding vector.
        payload: Message metadata stored with the vector.
    """

    id: str = Field(description="Point identifier")
    vector: list[float] = Field(description="Embedding vector")
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Metadata payload",
    )


class ScoredPoint(BaseModel):
    """Result from a vector similarity search.

    Attributes:
        id: Point identifier.
        score: Cosine similarity (higher is more similar).
        payload: Stored metadata.
    """

    id: str = Field(description="Point identifier")
    score: float = Field(description="Similarity score")
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Point metadata",
    )

    @property
    def message_id(self) -> str | None:
        """Message id recorded in the payload."""
        value = self.payload.get("messageId")
        return str(value) if value is not None else None


class SemanticHit(BaseModel):
    """A message that matched a semantic query."""

    message: Message
    similarity: float = Field(description="Cosine similarity to the query")


class SemanticSearchOutcome(BaseModel):
    """Semantic hits plus the backend that produced them."""

    hits: list[SemanticHit] = Field(default_factory=list)
    backend: SemanticBackend = Field(default=SemanticBackend.NONE)
    query_degraded: bool = Field(
        default=False,
        description="The query embedding was the zero vector",
    )


class IndexStats(BaseModel):
    """Vector index status for diagnostics."""

    enabled: bool = Field(description="Whether the remote index serves requests")
    collection: str = Field(description="Collection name")
    vector_count: int | None = Field(
        default=None,
        description="Points in the collection, when known",
    )
    dimensions: int = Field(description="Configured vector dimension")
    distance: str = Field(default="cosine", description="Distance metric")
    tracked_messages: int = Field(
        default=0,
        description="Messages in the in-process point map",
    )
    pending_deletes: int = Field(
        default=0,
        description="Deleted messages whose points are still to be removed",
    )
