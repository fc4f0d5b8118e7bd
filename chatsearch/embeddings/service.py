"""Embedding service: a prioritized provider chain that never raises."""

import asyncio
import math
import time
from collections.abc import Sequence

from chatsearch.config import EmbeddingSettings, get_settings
from chatsearch.embeddings.models import (
    ZERO_VECTOR_PROVIDER,
    EmbeddingResult,
    ProviderStatus,
)
from chatsearch.embeddings.providers import EmbeddingProvider, build_providers
from chatsearch.embeddings.similarity import l2_normalize, vector_norm
from chatsearch.exceptions import DimensionMismatchError, ProviderError
from chatsearch.logging_config import get_logger
from chatsearch.observability.metrics import track_embedding_request, track_zero_vector

logger = get_logger(__name__)


class EmbeddingService:
    """Turns text into fixed-length unit vectors.

    Providers are tried strictly in order, each bounded by a timeout. The
    first one to return a finite, non-zero vector of the configured dimension
    wins. When all fail the zero vector is returned with ``degraded=True``,
    so the write path never fails on embeddings.
    """

    def __init__(
        self,
        providers: Sequence[EmbeddingProvider],
        dimensions: int,
        timeout: float = 12.0,
    ) -> None:
        """Initialize the service.

        Args:
            providers: Provider chain in priority order.
            dimensions: Vector dimension D.
            timeout: Per-provider timeout in seconds.
        """
        self._providers = list(providers)
        self._dimensions = dimensions
        self._timeout = timeout
        self._status = ProviderStatus(
            primary=self._providers[0].name if self._providers else ZERO_VECTOR_PROVIDER,
            chain=[provider.name for provider in self._providers],
            dimensions=dimensions,
        )

    @classmethod
    def from_settings(cls, settings: EmbeddingSettings | None = None) -> "EmbeddingService":
        """Build the service and its provider chain from settings."""
        settings = settings or get_settings().embedding
        service = cls(
            providers=build_providers(settings),
            dimensions=settings.dimensions,
            timeout=settings.timeout,
        )
        logger.info(
            f"Embedding provider chain: {' -> '.join(service._status.chain) or 'none'}",
            extra={"dimensions": settings.dimensions},
        )
        return service

    @property
    def dimensions(self) -> int:
        """Get the embedding dimensions."""
        return self._dimensions

    def get_embedding_dimension(self) -> int:
        """Configured vector dimension D."""
        return self._dimensions

    def get_active_provider(self) -> ProviderStatus:
        """Snapshot of the provider chain and its most recent outcome."""
        return self._status.model_copy()

    async def close(self) -> None:
        """Close every provider."""
        for provider in self._providers:
            await provider.close()

    async def generate_embedding(self, text: str) -> list[float]:
        """Embed text and return only the vector."""
        result = await self.embed(text)
        return result.embedding

    async def embed_batch(self, texts: Sequence[str]) -> list[EmbeddingResult]:
        """Embed several texts, one chain walk each."""
        return [await self.embed(text) for text in texts]

    async def embed(self, text: str) -> EmbeddingResult:
        """Generate an embedding for a single text.

        Args:
            text: Text to embed.

        Returns:
            EmbeddingResult; never raises.
        """
        text = text or ""

        for provider in self._providers:
            start = time.perf_counter()
            try:
                raw = await asyncio.wait_for(provider.embed(text), timeout=self._timeout)
                vector = self._validate(provider, raw)
            except TimeoutError:
                track_embedding_request(provider.name, time.perf_counter() - start, success=False)
                logger.warning(
                    f"Embedding provider {provider.name} timed out, trying next",
                    extra={"provider": provider.name, "timeout": self._timeout},
                )
                continue
            except Exception as e:
                track_embedding_request(provider.name, time.perf_counter() - start, success=False)
                logger.warning(
                    f"Embedding provider {provider.name} failed, trying next: {e}",
                    extra={"provider": provider.name, "stage": "embed"},
                )
                continue

            track_embedding_request(provider.name, time.perf_counter() - start, success=True)
            self._record(provider.name)
            return EmbeddingResult(
                text=text,
                embedding=vector,
                provider=provider.name,
                dimensions=self._dimensions,
            )

        return self._zero_vector(text)

    def _validate(self, provider: EmbeddingProvider, raw: Sequence[float]) -> list[float]:
        """Check shape and values, then normalize.

        Raises:
            DimensionMismatchError: Wrong length.
            ProviderError: Non-finite values or zero norm.
        """
        if raw is None or len(raw) != self._dimensions:
            raise DimensionMismatchError(
                self._dimensions,
                0 if raw is None else len(raw),
                details={"provider": provider.name},
            )

        vector = [float(value) for value in raw]
        if not all(math.isfinite(value) for value in vector):
            raise ProviderError(
                f"{provider.name} returned non-finite values",
                details={"provider": provider.name},
            )
        if vector_norm(vector) == 0.0:
            raise ProviderError(
                f"{provider.name} returned a zero vector",
                details={"provider": provider.name},
            )
        return l2_normalize(vector)

    def _record(self, provider_name: str) -> None:
        self._status.last_provider = provider_name
        self._status.degraded = provider_name != self._status.primary

    def _zero_vector(self, text: str) -> EmbeddingResult:
        track_zero_vector()
        self._status.zero_vector_count += 1
        self._status.last_provider = ZERO_VECTOR_PROVIDER
        self._status.degraded = True
        logger.error(
            "All embedding providers failed, returning zero vector",
            extra={"providers": self._status.chain, "text_length": len(text)},
        )
        return EmbeddingResult(
            text=text,
            embedding=[0.0] * self._dimensions,
            provider=ZERO_VECTOR_PROVIDER,
            dimensions=self._dimensions,
            degraded=True,
        )
