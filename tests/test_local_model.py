"""Tests for local model loading."""

import asyncio
import threading
from typing import Any

import pytest

from chatsearch.embeddings.local_model import ModelLoader
from chatsearch.embeddings.providers import LocalModelProvider
from chatsearch.exceptions import ProviderError


class FakeModel:
    """Stands in for a SentenceTransformer."""

    def __init__(self, vector: list[float] | None = None, error: Exception | None = None) -> None:
        self._vector = vector or [0.6, 0.8]
        self._error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def encode(self, text: str, **kwargs: Any) -> list[float]:
        self.calls.append((text, kwargs))
        if self._error is not None:
            raise self._error
        return self._vector


class CountingFactory:
    """Blocking factory that counts calls and can fail on demand."""

    def __init__(self, fail_times: int = 0) -> None:
        self.calls = 0
        self._fail_times = fail_times
        self._lock = threading.Lock()

    def __call__(self, model_name: str) -> FakeModel:
        with self._lock:
            self.calls += 1
            attempt = self.calls
        if attempt <= self._fail_times:
            raise RuntimeError("download failed")
        return FakeModel()


class TestModelLoader:
    """Tests for single-flight loading."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_load(self) -> None:
        """Many first callers trigger a single load."""
        factory = CountingFactory()
        loader = ModelLoader(factory)

        models = await asyncio.gather(*(loader.get("mini") for _ in range(5)))

        assert factory.calls == 1
        assert all(model is models[0] for model in models)
        assert loader.is_loaded("mini")

    @pytest.mark.asyncio
    async def test_failed_load_is_evicted(self) -> None:
        """A failure is not cached; the next call retries."""
        factory = CountingFactory(fail_times=1)
        loader = ModelLoader(factory)

        with pytest.raises(RuntimeError, match="download failed"):
            await loader.get("mini")
        assert not loader.is_loaded("mini")

        model = await loader.get("mini")

        assert isinstance(model, FakeModel)
        assert factory.calls == 2

    def test_not_loaded_initially(self) -> None:
        assert not ModelLoader(CountingFactory()).is_loaded("mini")


class TestLocalModelProvider:
    """Tests for the local provider."""

    @pytest.mark.asyncio
    async def test_embed_uses_loaded_model(self) -> None:
        """Text is encoded with normalization requested."""
        model = FakeModel(vector=[0.6, 0.8])
        loader = ModelLoader(lambda name: model)
        provider = LocalModelProvider("mini", loader=loader)

        vector = await provider.embed("hello")

        assert vector == [0.6, 0.8]
        assert model.calls == [("hello", {"normalize_embeddings": True})]
        assert provider.model_name == "mini"

    @pytest.mark.asyncio
    async def test_encode_failure_raises_provider_error(self) -> None:
        """Encoding errors surface as ProviderError."""
        model = FakeModel(error=RuntimeError("oom"))
        provider = LocalModelProvider("mini", loader=ModelLoader(lambda name: model))

        with pytest.raises(ProviderError, match="oom"):
            await provider.embed("hello")
