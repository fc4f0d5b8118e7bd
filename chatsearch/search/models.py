"""Search data models."""

from enum import Enum

from pydantic import BaseModel, Field

from chatsearch.embeddings.models import ProviderStatus
from chatsearch.messages.models import Message
from chatsearch.vectorstore.models import IndexStats, SemanticBackend


class SearchSource(str, Enum):
    """Branch that contributed to a result."""

    LEXICAL = "lexical"
    SEMANTIC = "semantic"


class SearchType(str, Enum):
    """Shape of a search response."""

    COMBINED = "combined"
    SEPARATE = "separate"
    SEMANTIC = "semantic"


class SearchResult(BaseModel):
    """One ranked message in a search response.

    Attributes:
        message: The matched message.
        lexical_score: Text relevance score, 0 when the lexical branch missed.
        semantic_score: Cosine similarity, 0 when the semantic branch missed.
        combined_score: Weighted sum plus the lexical boost, rounded.
        rank: 1-based position in the response.
        sources: Branches that matched this message.
    """

    message: Message
    lexical_score: float = Field(default=0.0, description="Text relevance score")
    semantic_score: float = Field(default=0.0, description="Cosine similarity")
    combined_score: float = Field(default=0.0, description="Final ranking score")
    rank: int = Field(default=0, ge=0, description="1-based rank")
    sources: list[SearchSource] = Field(default_factory=list)


class SearchOptions(BaseModel):
    """Per-query knobs; unset fields fall back to configured defaults."""

    word_weight: float | None = Field(default=None, ge=0.0)
    semantic_weight: float | None = Field(default=None, ge=0.0)
    min_similarity: float | None = Field(default=None, ge=-1.0, le=1.0)
    combine_results: bool = Field(default=True)


class SearchMetadata(BaseModel):
    """Explains how a response was produced."""

    lexical_count: int = Field(default=0, description="Lexical hits before merging")
    semantic_count: int = Field(default=0, description="Semantic hits before merging")
    combined_count: int = Field(default=0, description="Results returned")
    search_type: SearchType = Field(default=SearchType.COMBINED)
    semantic_backend: SemanticBackend = Field(default=SemanticBackend.NONE)
    weights: dict[str, float] = Field(default_factory=dict)
    lexical_boost: float = Field(default=0.0)
    min_similarity: float = Field(default=0.0)
    limit: int = Field(default=0)
    search_time_ms: float = Field(default=0.0, description="Wall time in milliseconds")
    degraded: bool = Field(default=False)
    degraded_reasons: list[str] = Field(default_factory=list)
    provider: str | None = Field(default=None, description="Embedding provider chain head")
    dimensions: int | None = Field(default=None, description="Embedding dimension")


class SearchResponse(BaseModel):
    """Results of one query.

    ``lexical_results`` and ``semantic_results`` are only set when merging
    was turned off.
    """

    query: str
    results: list[SearchResult] = Field(default_factory=list)
    metadata: SearchMetadata = Field(default_factory=SearchMetadata)
    lexical_results: list[SearchResult] | None = None
    semantic_results: list[SearchResult] | None = None


class SearchStats(BaseModel):
    """Embedding coverage and component status."""

    user_id: str | None = None
    total_messages: int = 0
    messages_with_embeddings: int = 0
    coverage_percent: float = 0.0
    index: IndexStats
    provider: ProviderStatus
