"""Embedding provider strategies.

Each provider turns one text into one raw vector or raises. Shape checks,
normalization, timeouts and fallback ordering belong to EmbeddingService.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx

from chatsearch.config import EmbeddingSettings, ProviderKind
from chatsearch.embeddings.hashing import hashing_embedding
from chatsearch.embeddings.local_model import ModelLoader, get_model_loader
from chatsearch.exceptions import ErrorCode, ProviderError
from chatsearch.logging_config import get_logger

logger = get_logger(__name__)


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    name: str = "provider"

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate a raw embedding for a single text.

        Args:
            text: Text to embed.

        Returns:
            Vector (not necessarily normalized).

        Raises:
            ProviderError: If the provider cannot produce a vector.
        """
        ...

    async def close(self) -> None:
        """Release resources held by the provider."""
        return None


class _HTTPProvider(EmbeddingProvider):
    """Shared HTTP client handling for remote providers."""

    def __init__(
        self,
        timeout: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> Any:
        client = await self._get_client()
        try:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"{self.name} returned {e.response.status_code}",
                details={"provider": self.name, "status_code": e.response.status_code},
            ) from e
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"{self.name} request timed out",
                code=ErrorCode.EMBEDDING_TIMEOUT,
                details={"provider": self.name, "url": url},
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(
                f"Failed to connect to {self.name}: {e}",
                details={"provider": self.name, "url": url},
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.name} returned invalid JSON",
                details={"provider": self.name},
            ) from e


class OpenAIEmbeddingProvider(_HTTPProvider):
    """OpenAI-compatible ``/embeddings`` endpoint.

    ``text-embedding-3`` models are asked for exactly the configured
    dimension; other models must already produce it.
    """

    name = ProviderKind.OPENAI.value

    def __init__(
        self,
        api_key: str,
        dimensions: int,
        base_url: str = "https://api.openai.com/v1",
        model: str = "text-embedding-3-small",
        timeout: float = 12.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._api_key = api_key
        self._dimensions = dimensions
        self._base_url = base_url.rstrip("/")
        self._model = model

    async def embed(self, text: str) -> list[float]:
        payload: dict[str, Any] = {
            "input": text,
            "model": self._model,
            "encoding_format": "float",
        }
        if self._model.startswith("text-embedding-3"):
            payload["dimensions"] = self._dimensions

        data = await self._post(
            f"{self._base_url}/embeddings",
            payload,
            {"Authorization": f"Bearer {self._api_key}"},
        )

        try:
            embedding = data["data"][0]["embedding"]
            return [float(value) for value in embedding]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderError(
                f"Invalid response from {self.name}: {e}",
                details={"provider": self.name},
            ) from e


class AnthropicEmbeddingProvider(_HTTPProvider):
    """Asks a Claude model to rate text on fixed semantic axes.

    The ratings fill the first slots of the vector; the rest stay zero.
    """

    name = ProviderKind.ANTHROPIC.value

    AXES = (
        "Greeting/Farewell (hello, goodbye, etc.)",
        "Gratitude (thanks, appreciate, etc.)",
        "Politeness (please, sorry, etc.)",
        "Questions (what, how, why, etc.)",
        "Answers (yes, no, maybe, etc.)",
        "Positive emotion (happy, excited, etc.)",
        "Negative emotion (sad, angry, etc.)",
        "Communication (chat, message, etc.)",
        "Help/Support (assist, guide, etc.)",
        "Time-related (today, tomorrow, etc.)",
        "Technology (code, app, etc.)",
        "Food/Drink (eat, hungry, etc.)",
        "Weather (rain, sunny, etc.)",
        "Location (here, there, etc.)",
        "Quantity (many, few, etc.)",
        "Intensity (very, extremely, etc.)",
        "Personal pronouns (I, you, we, etc.)",
        "Possessive (my, your, etc.)",
        "Action verbs (work, play, etc.)",
        "Abstract concepts (love, freedom, etc.)",
    )

    _NUMBER = re.compile(r"-?\d+(?:\.\d+)?")

    def __init__(
        self,
        api_key: str,
        dimensions: int,
        base_url: str = "https://api.anthropic.com/v1",
        model: str = "claude-3-haiku-20240307",
        version: str = "2023-06-01",
        timeout: float = 12.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._api_key = api_key
        self._dimensions = dimensions
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._version = version

    def build_prompt(self, text: str) -> str:
        """Prompt asking for one rating per axis."""
        axes = "\n".join(f"{index}. {axis}" for index, axis in enumerate(self.AXES, start=1))
        count = len(self.AXES)
        return (
            f"Analyze the semantic meaning of this text and rate it on {count} "
            f"different dimensions from -1 to 1:\n\n"
            f'Text: "{text}"\n\n'
            f"Please respond with exactly {count} numbers separated by commas, "
            f"representing:\n{axes}\n\n"
            f"Format: number1,number2,...,number{count}"
        )

    def parse_ratings(self, content: str) -> list[float]:
        """Extract and clamp the ratings from the model reply.

        Raises:
            ProviderError: If fewer ratings than axes are present.
        """
        numbers = self._NUMBER.findall(content)
        if len(numbers) < len(self.AXES):
            raise ProviderError(
                f"Expected {len(self.AXES)} ratings from {self.name}, got {len(numbers)}",
                details={"provider": self.name},
            )
        ratings = [max(-1.0, min(1.0, float(n))) for n in numbers[: len(self.AXES)]]
        return (ratings + [0.0] * self._dimensions)[: self._dimensions]

    async def embed(self, text: str) -> list[float]:
        payload = {
            "model": self._model,
            "max_tokens": 500,
            "temperature": 0.1,
            "messages": [{"role": "user", "content": self.build_prompt(text)}],
        }
        data = await self._post(
            f"{self._base_url}/messages",
            payload,
            {"x-api-key": self._api_key, "anthropic-version": self._version},
        )

        try:
            content = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                f"Invalid response from {self.name}: {e}",
                details={"provider": self.name},
            ) from e

        return self.parse_ratings(content)


class LocalModelProvider(EmbeddingProvider):
    """Locally hosted sentence-transformers model."""

    name = ProviderKind.LOCAL.value

    def __init__(
        self,
        model_name: str,
        loader: ModelLoader | None = None,
    ) -> None:
        self._model_name = model_name
        self._loader = loader or get_model_loader()

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._model_name

    async def embed(self, text: str) -> list[float]:
        model = await self._loader.get(self._model_name)
        try:
            output = await asyncio.to_thread(model.encode, text, normalize_embeddings=True)
            return [float(value) for value in output]
        except Exception as e:
            raise ProviderError(
                f"Local model failed to encode: {e}",
                details={"provider": self.name, "model": self._model_name},
            ) from e


class HashingEmbeddingProvider(EmbeddingProvider):
    """Deterministic fallback that needs neither network nor model."""

    name = ProviderKind.HASHING.value

    def __init__(self, dimensions: int) -> None:
        self._dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        return hashing_embedding(text, self._dimensions)


def build_providers(settings: EmbeddingSettings) -> list[EmbeddingProvider]:
    """Build the provider chain from settings.

    Providers that are not configured (no API key, local model disabled)
    are left out; order follows ``settings.provider_order``.
    """
    providers: list[EmbeddingProvider] = []

    for kind in settings.provider_order:
        if kind == ProviderKind.ANTHROPIC:
            if settings.anthropic_api_key is None:
                logger.info("Anthropic embeddings not configured, skipping")
                continue
            providers.append(
                AnthropicEmbeddingProvider(
                    api_key=settings.anthropic_api_key.get_secret_value(),
                    dimensions=settings.dimensions,
                    base_url=settings.anthropic_base_url,
                    model=settings.anthropic_model,
                    version=settings.anthropic_version,
                    timeout=settings.timeout,
                )
            )
        elif kind == ProviderKind.OPENAI:
            if settings.openai_api_key is None:
                logger.info("OpenAI embeddings not configured, skipping")
                continue
            providers.append(
                OpenAIEmbeddingProvider(
                    api_key=settings.openai_api_key.get_secret_value(),
                    dimensions=settings.dimensions,
                    base_url=settings.openai_base_url,
                    model=settings.openai_model,
                    timeout=settings.timeout,
                )
            )
        elif kind == ProviderKind.LOCAL:
            if not settings.local_enabled:
                continue
            providers.append(LocalModelProvider(settings.local_model))
        elif kind == ProviderKind.HASHING:
            providers.append(HashingEmbeddingProvider(settings.dimensions))

    return providers
