"""Merging lexical and semantic hits into one ranking."""

from collections.abc import Sequence

from chatsearch.messages.models import LexicalHit
from chatsearch.search.models import SearchResult, SearchSource
from chatsearch.vectorstore.models import SemanticHit

SCORE_BANDS = (
    (0.9, "Nearly Identical"),
    (0.8, "Very High Match"),
    (0.7, "High Match"),
    (0.6, "Good Match"),
    (0.5, "Moderate Match"),
    (0.3, "Weak Match"),
    (0.1, "Low Match"),
)


def describe_score(score: float) -> str:
    """Human-readable band for a score."""
    for threshold, label in SCORE_BANDS:
        if score >= threshold:
            return label
    return "Very Low Match"


def merge_results(
    lexical: Sequence[LexicalHit],
    semantic: Sequence[SemanticHit],
    word_weight: float,
    semantic_weight: float,
    lexical_boost: float = 0.25,
    limit: int = 10,
    precision: int = 4,
) -> list[SearchResult]:
    """Merge both branches into a ranked, deduplicated list.

    Each message contributes at most once per branch. Lexical matches get
    an additive boost. Ties are broken by recency, then by id.

    Args:
        lexical: Lexical hits, best first.
        semantic: Semantic hits, best first.
        word_weight: Weight of the lexical score.
        semantic_weight: Weight of the semantic similarity.
        lexical_boost: Added to every result with a lexical match.
        limit: Maximum results.
        precision: Decimal places kept on scores.

    Returns:
        Results with 1-based ranks, highest score first.
    """
    merged: dict[str, SearchResult] = {}

    for hit in lexical:
        result = merged.setdefault(hit.message.id, SearchResult(message=hit.message))
        if SearchSource.LEXICAL in result.sources:
            continue
        result.lexical_score = hit.score
        result.combined_score += hit.score * word_weight
        result.sources.append(SearchSource.LEXICAL)

    for hit in semantic:
        result = merged.setdefault(hit.message.id, SearchResult(message=hit.message))
        if SearchSource.SEMANTIC in result.sources:
            continue
        result.semantic_score = hit.similarity
        result.combined_score += hit.similarity * semantic_weight
        result.sources.append(SearchSource.SEMANTIC)

    for result in merged.values():
        if SearchSource.LEXICAL in result.sources:
            result.combined_score += lexical_boost
        result.sources.sort(key=list(SearchSource).index)

    ranked = sorted(merged.values(), key=lambda r: r.message.id)
    ranked.sort(key=lambda r: (r.combined_score, r.message.created_at), reverse=True)
    ranked = ranked[:limit]

    # Rounding is for display only; ordering uses the exact scores.
    for position, result in enumerate(ranked, start=1):
        result.rank = position
        result.combined_score = round(result.combined_score, precision)
        result.lexical_score = round(result.lexical_score, precision)
        result.semantic_score = round(result.semantic_score, precision)
    return ranked
