"""Lazy, single-flight loading of local sentence-transformers models."""

import asyncio
from collections.abc import Callable
from functools import lru_cache
from typing import Any

from chatsearch.exceptions import ProviderError
from chatsearch.logging_config import get_logger

logger = get_logger(__name__)


def load_sentence_transformer(model_name: str) -> Any:
    """Load a sentence-transformers model (blocking).

    Raises:
        ProviderError: If sentence-transformers is not installed.
    """
    try:
        from sentence_transformers import SentenceTransformer
    except ImportError as e:
        raise ProviderError(
            "sentence-transformers not installed. Install the local extra:\n"
            "  pip install 'chat-semantic-search[local]'",
            details={"provider": "local", "model": model_name},
        ) from e

    return SentenceTransformer(model_name)


class ModelLoader:
    """Caches one in-flight or finished load per model name.

    Concurrent first callers await the same future. A failed load is evicted
    so that a later call starts a fresh attempt.
    """

    def __init__(self, factory: Callable[[str], Any] | None = None) -> None:
        """Initialize the loader.

        Args:
            factory: Blocking model constructor, run in a worker thread.
        """
        self._factory = factory or load_sentence_transformer
        self._loads: dict[str, asyncio.Future[Any]] = {}

    def is_loaded(self, model_name: str) -> bool:
        """Whether a load for the model finished successfully."""
        future = self._loads.get(model_name)
        return (
            future is not None
            and future.done()
            and not future.cancelled()
            and future.exception() is None
        )

    async def get(self, model_name: str) -> Any:
        """Return the model, loading it on first use.

        The shared load is shielded: a caller that times out does not cancel
        it for everyone else.
        """
        future = self._loads.get(model_name)
        if future is None:
            future = asyncio.ensure_future(self._load(model_name))
            self._loads[model_name] = future

        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            raise
        except Exception:
            if self._loads.get(model_name) is future:
                del self._loads[model_name]
            raise

    async def _load(self, model_name: str) -> Any:
        logger.info(f"Loading local embedding model: {model_name}")
        model = await asyncio.to_thread(self._factory, model_name)
        logger.info(f"Local embedding model ready: {model_name}")
        return model


@lru_cache
def get_model_loader() -> ModelLoader:
    """Process-wide model loader."""
    return ModelLoader()
