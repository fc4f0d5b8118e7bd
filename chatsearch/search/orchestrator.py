"""Search orchestrator.

Runs the lexical and semantic branches concurrently and merges them into a
single ranking. A failing branch is contained and reported in the response
metadata; only the loss of both branches is an error.
"""

import asyncio
import time

from chatsearch.config import SearchSettings, get_settings
from chatsearch.embeddings.service import EmbeddingService
from chatsearch.exceptions import (
    ErrorCode,
    SearchError,
    StoreUnavailableError,
    ValidationError,
)
from chatsearch.logging_config import get_logger
from chatsearch.messages.models import LexicalHit
from chatsearch.messages.store import MessageStore
from chatsearch.observability.metrics import track_search_request
from chatsearch.search.models import (
    SearchMetadata,
    SearchOptions,
    SearchResponse,
    SearchResult,
    SearchStats,
    SearchType,
)
from chatsearch.search.ranking import merge_results
from chatsearch.vectorstore.index import VectorIndex
from chatsearch.vectorstore.models import SemanticBackend, SemanticSearchOutcome

logger = get_logger(__name__)


class SearchOrchestrator:
    """Hybrid lexical and semantic search over a user's messages."""

    def __init__(
        self,
        store: MessageStore,
        index: VectorIndex,
        embeddings: EmbeddingService,
        settings: SearchSettings | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Message store providing lexical search and counts.
            index: Vector index providing semantic search.
            embeddings: Embedding service, for provider status.
            settings: Search defaults.
        """
        self._store = store
        self._index = index
        self._embeddings = embeddings
        self._settings = settings or get_settings().search

    def resolve_limit(self, limit: int | None) -> int:
        """Apply the default and the upper bound to a requested limit."""
        if limit is None:
            return self._settings.default_limit
        if limit < 1:
            raise ValidationError("limit must be at least 1", details={"limit": limit})
        return min(limit, self._settings.max_limit)

    def _validate(self, user_id: str, query: str) -> str:
        if not user_id or not user_id.strip():
            raise ValidationError("userId is required")
        if not query or not query.strip():
            raise ValidationError("q (query) is required")
        return query.strip()

    async def word_search(
        self,
        user_id: str,
        query: str,
        limit: int = 20,
    ) -> list[LexicalHit]:
        """Lexical branch: the store's participant-scoped text search."""
        return await self._store.text_search(user_id, query, limit=limit)

    async def _lexical_branch(
        self,
        user_id: str,
        query: str,
        candidates: int,
    ) -> tuple[list[LexicalHit], str | None]:
        try:
            return await self.word_search(user_id, query, candidates), None
        except Exception as e:
            logger.warning(
                f"Lexical search failed: {e}",
                extra={"user_id": user_id, "stage": "lexical"},
            )
            return [], f"lexical search failed: {e}"

    async def _semantic_branch(
        self,
        user_id: str,
        query: str,
        candidates: int,
        min_similarity: float,
    ) -> tuple[SemanticSearchOutcome, str | None]:
        deadline = self._settings.semantic_deadline
        try:
            outcome = await asyncio.wait_for(
                self._index.semantic_search(user_id, query, candidates, min_similarity),
                timeout=deadline,
            )
        except TimeoutError:
            logger.warning(
                "Semantic search exceeded its deadline, returning lexical results only",
                extra={"user_id": user_id, "deadline": deadline, "stage": "semantic"},
            )
            return SemanticSearchOutcome(), f"semantic search timed out after {deadline}s"
        except Exception as e:
            logger.warning(
                f"Semantic search failed: {e}",
                extra={"user_id": user_id, "stage": "semantic"},
            )
            return SemanticSearchOutcome(), f"semantic search failed: {e}"

        if outcome.query_degraded:
            return outcome, "query embedding unavailable"
        return outcome, None

    async def combined_search(
        self,
        user_id: str,
        query: str,
        limit: int | None = None,
        options: SearchOptions | None = None,
    ) -> SearchResponse:
        """Search by words and by meaning and merge the results.

        Args:
            user_id: Participant whose messages are searched.
            query: Query text.
            limit: Maximum results.
            options: Weights, threshold and whether to merge.

        Returns:
            SearchResponse with ranked results and metadata.

        Raises:
            ValidationError: Missing user or query, or a non-positive limit.
            StoreUnavailableError: Both branches failed.
        """
        query = self._validate(user_id, query)
        limit = self.resolve_limit(limit)
        options = options or SearchOptions()
        word_weight = self._pick(options.word_weight, self._settings.word_weight)
        semantic_weight = self._pick(options.semantic_weight, self._settings.semantic_weight)
        min_similarity = self._pick(options.min_similarity, self._settings.min_similarity)
        candidates = limit * 2
        mode = "combined" if options.combine_results else "separate"

        start = time.perf_counter()
        (lexical, lexical_error), (outcome, semantic_error) = await asyncio.gather(
            self._lexical_branch(user_id, query, candidates),
            self._semantic_branch(user_id, query, candidates, min_similarity),
        )
        reasons = [r for r in (lexical_error, semantic_error) if r is not None]

        if lexical_error is not None and semantic_error is not None and not outcome.query_degraded:
            self._track_failure(mode, start)
            raise StoreUnavailableError(
                "Both lexical and semantic search failed",
                details={"reasons": reasons},
            )

        merge_args = {
            "word_weight": word_weight,
            "semantic_weight": semantic_weight,
            "lexical_boost": self._settings.lexical_boost,
            "limit": limit,
            "precision": self._settings.score_precision,
        }
        lexical_results: list[SearchResult] | None = None
        semantic_results: list[SearchResult] | None = None
        if options.combine_results:
            results = merge_results(lexical, outcome.hits, **merge_args)
        else:
            results = []
            lexical_results = merge_results(lexical, [], **merge_args)
            semantic_results = merge_results([], outcome.hits, **merge_args)

        elapsed = time.perf_counter() - start
        metadata = SearchMetadata(
            lexical_count=len(lexical),
            semantic_count=len(outcome.hits),
            combined_count=len(results),
            search_type=SearchType.COMBINED if options.combine_results else SearchType.SEPARATE,
            semantic_backend=outcome.backend,
            weights={"word": word_weight, "semantic": semantic_weight},
            lexical_boost=self._settings.lexical_boost,
            min_similarity=min_similarity,
            limit=limit,
            search_time_ms=round(elapsed * 1000, 2),
            degraded=bool(reasons),
            degraded_reasons=reasons,
        )

        ranked = results or (lexical_results or []) + (semantic_results or [])
        track_search_request(
            mode,
            outcome.backend.value,
            elapsed,
            results_returned=len(ranked),
            top_score=max((r.combined_score for r in ranked), default=0.0),
        )
        logger.info(
            "Combined search completed",
            extra={
                "user_id": user_id,
                "lexical_count": metadata.lexical_count,
                "semantic_count": metadata.semantic_count,
                "combined_count": metadata.combined_count,
                "backend": outcome.backend.value,
                "degraded": metadata.degraded,
                "search_time_ms": metadata.search_time_ms,
            },
        )

        return SearchResponse(
            query=query,
            results=results,
            metadata=metadata,
            lexical_results=lexical_results,
            semantic_results=semantic_results,
        )

    async def semantic_search(
        self,
        user_id: str,
        query: str,
        limit: int | None = None,
        min_similarity: float | None = None,
    ) -> SearchResponse:
        """Search by meaning only.

        Raises:
            ValidationError: Missing user or query, or a non-positive limit.
            StoreUnavailableError: The fallback scan could not read the store.
            SearchError: The search exceeded the semantic deadline
                (``SEARCH_TIMEOUT``) or failed unexpectedly.
        """
        query = self._validate(user_id, query)
        limit = self.resolve_limit(limit)
        min_similarity = self._pick(min_similarity, self._settings.min_similarity)
        deadline = self._settings.semantic_deadline

        start = time.perf_counter()
        try:
            outcome = await asyncio.wait_for(
                self._index.semantic_search(user_id, query, limit, min_similarity),
                timeout=deadline,
            )
        except StoreUnavailableError:
            self._track_failure("semantic", start)
            raise
        except TimeoutError as e:
            self._track_failure("semantic", start)
            raise SearchError(
                f"Semantic search timed out after {deadline}s",
                code=ErrorCode.SEARCH_TIMEOUT,
                details={"user_id": user_id, "deadline": deadline},
            ) from e
        except Exception as e:
            self._track_failure("semantic", start)
            logger.error(f"Semantic search failed: {e}", extra={"user_id": user_id})
            raise SearchError(
                f"Semantic search failed: {e}",
                details={"user_id": user_id, "error": str(e)},
            ) from e

        results = merge_results(
            [],
            outcome.hits,
            word_weight=0.0,
            semantic_weight=1.0,
            lexical_boost=0.0,
            limit=limit,
            precision=self._settings.score_precision,
        )
        elapsed = time.perf_counter() - start
        provider = self._embeddings.get_active_provider()
        reasons = ["query embedding unavailable"] if outcome.query_degraded else []

        track_search_request(
            "semantic",
            outcome.backend.value,
            elapsed,
            results_returned=len(results),
            top_score=results[0].combined_score if results else 0.0,
        )

        return SearchResponse(
            query=query,
            results=results,
            metadata=SearchMetadata(
                semantic_count=len(outcome.hits),
                combined_count=len(results),
                search_type=SearchType.SEMANTIC,
                semantic_backend=outcome.backend,
                weights={"word": 0.0, "semantic": 1.0},
                min_similarity=min_similarity,
                limit=limit,
                search_time_ms=round(elapsed * 1000, 2),
                degraded=bool(reasons),
                degraded_reasons=reasons,
                provider=provider.primary,
                dimensions=provider.dimensions,
            ),
        )

    async def get_search_stats(self, user_id: str | None = None) -> SearchStats:
        """Embedding coverage for one user or everyone, plus component status."""
        total, embedded = await asyncio.gather(
            self._store.count_messages(user_id),
            self._store.count_messages(user_id, with_embeddings=True),
        )
        coverage = round(embedded / total * 100, 2) if total else 0.0

        return SearchStats(
            user_id=user_id,
            total_messages=total,
            messages_with_embeddings=embedded,
            coverage_percent=coverage,
            index=await self._index.get_stats(),
            provider=self._embeddings.get_active_provider(),
        )

    @staticmethod
    def _track_failure(mode: str, start: float) -> None:
        track_search_request(
            mode,
            SemanticBackend.NONE.value,
            time.perf_counter() - start,
            results_returned=0,
            top_score=0.0,
            success=False,
        )

    @staticmethod
    def _pick(value: float | None, default: float) -> float:
        return default if value is None else value
