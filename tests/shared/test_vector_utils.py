import pytest

from src.shared.vector_utils import (
    cosine_distance,
    cosine_similarity,
    mean_vector,
)


def test_cosine_similarity_basic():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
    assert cosine_distance([1, 0], [0, 1]) == pytest.approx(1.0)


def test_zero_vector_similarity_is_zero():
    assert cosine_similarity([0, 0], [1, 2]) == 0.0


def test_dimension_mismatch_raises():
    with pytest.raises(ValueError):
        cosine_similarity([1, 2], [1, 2, 3])
    with pytest.raises(ValueError):
        mean_vector([[1, 2], [1]])


def test_mean_vector():
    assert mean_vector([[1, 2], [3, 4]]) == [2.0, 3.0]
    with pytest.raises(ValueError):
        mean_vector([])

