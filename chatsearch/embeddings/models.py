"""Embedding data models."""

from pydantic import BaseModel, Field

ZERO_VECTOR_PROVIDER = "zero-vector"


class EmbeddingResult(BaseModel):
    """Result of an embedding operation.

    Attributes:
        text: The original text that was embedded.
        embedding: The embedding vector (unit norm, or all zeros when degraded).
        provider: Name of the provider that produced the vector.
        dimensions: Number of dimensions in the embedding.
        degraded: True when every provider failed and the zero vector was returned.
    """

    text: str = Field(description="Original text")
    embedding: list[float] = Field(description="Embedding vector")
    provider: str = Field(description="Provider that produced the vector")
    dimensions: int = Field(description="Vector dimensions")
    degraded: bool = Field(default=False, description="Zero-vector fallback was used")

    def model_post_init(self, __context: object) -> None:
        """Validate dimensions match embedding length."""
        if self.dimensions != len(self.embedding):
            raise ValueError(
                f"dimensions ({self.dimensions}) does not match "
                f"embedding length ({len(self.embedding)})"
            )


class ProviderStatus(BaseModel):
    """Introspection view of the provider chain.

    ``primary``, ``chain`` and ``dimensions`` are fixed at startup; the
    remaining fields describe the most recent call.
    """

    primary: str = Field(description="Provider at the head of the chain")
    chain: list[str] = Field(description="Providers in priority order")
    dimensions: int = Field(description="Configured vector dimension")
    last_provider: str | None = Field(
        default=None,
        description="Provider that served the latest request",
    )
    degraded: bool = Field(
        default=False,
        description="Latest request was not served by the primary provider",
    )
    zero_vector_count: int = Field(
        default=0,
        description="Requests answered with the zero vector since startup",
    )
