"""Embedding service module."""

from chatsearch.embeddings.models import EmbeddingResult, ProviderStatus
from chatsearch.embeddings.providers import (
    AnthropicEmbeddingProvider,
    EmbeddingProvider,
    HashingEmbeddingProvider,
    LocalModelProvider,
    OpenAIEmbeddingProvider,
    build_providers,
)
from chatsearch.embeddings.service import EmbeddingService
from chatsearch.embeddings.similarity import cosine_similarity, l2_normalize

__all__ = [
    "AnthropicEmbeddingProvider",
    "EmbeddingProvider",
    "EmbeddingResult",
    "EmbeddingService",
    "HashingEmbeddingProvider",
    "LocalModelProvider",
    "OpenAIEmbeddingProvider",
    "ProviderStatus",
    "build_providers",
    "cosine_similarity",
    "l2_normalize",
]
