"""
Unit tests for cosine similarity.
"""
import math

import pytest

from budgetbot.src.utils.similarity import cosine

VECTORS = [
    [1.0, 0.0, 0.0],
    [0.3, -2.5, 7.0],
    [-1.0, -1.0, 4.0],
    [1e-8, 3.0, 1e8],
]


@pytest.mark.parametrize("a", VECTORS)
@pytest.mark.parametrize("b", VECTORS)
def test_symmetric(a, b):
    assert cosine(a, b) == cosine(b, a)


@pytest.mark.parametrize("a", VECTORS)
def test_self_similarity_is_one(a):
    assert cosine(a, a) == pytest.approx(1.0)


@pytest.mark.parametrize("a", VECTORS)
def test_zero_vector_scores_zero(a):
    zero = [0.0] * len(a)

    assert cosine(a, zero) == 0.0
    assert cosine(zero, a) == 0.0
    assert cosine(zero, zero) == 0.0


def test_orthogonal_and_opposite():
    assert cosine([1.0, 0.0], [0.0, 5.0]) == 0.0
    assert cosine([2.0, 2.0], [-1.0, -1.0]) == pytest.approx(-1.0)


def test_known_angle():
    assert cosine([1.0, 0.0], [0.3, math.sqrt(0.91)]) == pytest.approx(0.3)


def test_result_is_clamped():
    score = cosine([0.1, 0.2, 0.3], [0.1, 0.2, 0.3])

    assert -1.0 <= score <= 1.0


def test_dimension_mismatch():
    with pytest.raises(ValueError):
        cosine([1.0, 2.0], [1.0, 2.0, 3.0])
