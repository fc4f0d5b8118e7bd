"""Tests for vector math helpers."""

import math

import pytest

from chatsearch.embeddings.similarity import (
    cosine_similarity,
    is_zero_vector,
    l2_normalize,
    vector_norm,
)


class TestCosineSimilarity:
    """Tests for cosine similarity."""

    def test_identical_vectors(self) -> None:
        """A non-zero vector is fully similar to itself."""
        vector = [0.3, -1.2, 4.0]
        assert math.isclose(cosine_similarity(vector, vector), 1.0)

    def test_opposite_vectors(self) -> None:
        """Opposite vectors score -1."""
        assert math.isclose(cosine_similarity([1.0, 2.0], [-1.0, -2.0]), -1.0)

    def test_orthogonal_vectors(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_symmetric(self) -> None:
        """Order of arguments does not matter."""
        a = [0.1, 0.7, -0.2, 0.5]
        b = [0.9, -0.1, 0.3, 0.2]
        assert cosine_similarity(a, b) == cosine_similarity(b, a)

    def test_scale_invariant(self) -> None:
        """Magnitude does not affect similarity."""
        a = [1.0, 2.0, 3.0]
        b = [3.0, 1.0, 2.0]
        assert math.isclose(
            cosine_similarity(a, b),
            cosine_similarity([x * 10 for x in a], b),
        )

    @pytest.mark.parametrize(
        ("first", "second"),
        [
            ([0.0, 0.0], [1.0, 1.0]),
            ([], [1.0]),
            (None, [1.0]),
            ([1.0, 2.0], [1.0, 2.0, 3.0]),
        ],
        ids=["zero", "empty", "missing", "length-mismatch"],
    )
    def test_degenerate_inputs_score_zero(
        self,
        first: list[float] | None,
        second: list[float],
    ) -> None:
        """Degenerate inputs yield 0 instead of raising."""
        assert cosine_similarity(first, second) == 0.0

    def test_result_in_range(self) -> None:
        """Rounding never pushes the result out of [-1, 1]."""
        vector = [1e-8, 1e8, 3.0]
        assert -1.0 <= cosine_similarity(vector, vector) <= 1.0


class TestNormalization:
    """Tests for normalization helpers."""

    def test_l2_normalize_unit_norm(self) -> None:
        assert math.isclose(vector_norm(l2_normalize([3.0, 4.0])), 1.0)

    def test_l2_normalize_zero_vector(self) -> None:
        """The zero vector stays zero."""
        assert l2_normalize([0.0, 0.0, 0.0]) == [0.0, 0.0, 0.0]

    def test_is_zero_vector(self) -> None:
        assert is_zero_vector([0.0, 0.0])
        assert is_zero_vector([])
        assert is_zero_vector(None)
        assert not is_zero_vector([0.0, 0.1])
