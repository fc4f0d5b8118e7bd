"""Vector math shared by providers, the index fallback and tests."""

import math
from collections.abc import Sequence

from chatsearch.logging_config import get_logger
from chatsearch.observability.metrics import track_dimension_mismatch

logger = get_logger(__name__)


def vector_norm(vector: Sequence[float]) -> float:
    """Euclidean length of a vector."""
    return math.sqrt(math.fsum(value * value for value in vector))


def is_zero_vector(vector: Sequence[float] | None) -> bool:
    """True for a missing, empty or all-zero vector."""
    return not vector or all(value == 0.0 for value in vector)


def l2_normalize(vector: Sequence[float]) -> list[float]:
    """Scale a vector to unit length.

    The zero vector is returned unchanged.
    """
    norm = vector_norm(vector)
    if norm == 0.0:
        return [0.0] * len(vector)
    return [value / norm for value in vector]


def cosine_similarity(
    first: Sequence[float] | None,
    second: Sequence[float] | None,
) -> float:
    """Cosine similarity clamped to [-1, 1].

    Missing vectors, zero vectors and vectors of unequal length all yield 0.
    A length mismatch is counted and logged since it means two embedding
    spaces were mixed.
    """
    if not first or not second:
        return 0.0

    if len(first) != len(second):
        track_dimension_mismatch()
        logger.warning(
            "Cosine similarity on vectors of unequal length",
            extra={"first_dimensions": len(first), "second_dimensions": len(second)},
        )
        return 0.0

    dot = math.fsum(a * b for a, b in zip(first, second, strict=True))
    norm_first = vector_norm(first)
    norm_second = vector_norm(second)
    if norm_first == 0.0 or norm_second == 0.0:
        return 0.0

    similarity = dot / (norm_first * norm_second)
    if math.isnan(similarity):
        return 0.0
    return max(-1.0, min(1.0, similarity))
