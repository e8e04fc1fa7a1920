import numpy as np
import pytest

from menu_rec.errors import DimensionMismatchError
from menu_rec.similarity import cosine, rank_by_similarity


@pytest.mark.parametrize("vector", [
    [1, 0, 1, 1],
    [5, 4, 3],
    [0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.1, 1.3, 1.7, 2.3, 0.01, 3.0, 1.0, 0.5, 0.25, 0.125, 7.0],
])
def test_self_similarity_is_exactly_one(vector):
    assert cosine(vector, vector) == 1.0


def test_zero_vector_yields_zero():
    assert cosine([1, 2, 3], [0, 0, 0]) == 0.0
    assert cosine([0, 0, 0], [0, 0, 0]) == 0.0


def test_symmetry():
    rng = np.random.default_rng(7)
    for _ in range(20):
        a = rng.normal(size=25)
        b = rng.normal(size=25)
        assert cosine(a, b) == cosine(b, a)


def test_range_and_known_values():
    assert cosine([1, 0], [0, 1]) == 0.0
    assert cosine([1, 0], [-1, 0]) == -1.0
    assert cosine([1, 1, 1, 1], [1, 1, 0, 0]) == pytest.approx(1 / np.sqrt(2))


def test_dimension_mismatch_raises():
    with pytest.raises(DimensionMismatchError) as exc:
        cosine([1, 2, 3], [1, 2])
    assert exc.value.left == 3
    assert exc.value.right == 2
    # Still a ValueError for callers catching broadly
    assert isinstance(exc.value, ValueError)


def test_rank_by_similarity_orders_and_truncates():
    target = [1, 0, 0]
    candidates = [
        ("far", [0, 1, 0]),
        ("close", [1, 0.1, 0]),
        ("exact", [2, 0, 0]),
    ]

    ranked = rank_by_similarity(target, candidates, top_k=2)

    assert [key for key, _ in ranked] == ["exact", "close"]
    assert ranked[0][1] == 1.0


def test_rank_by_similarity_keeps_input_order_on_ties():
    ranked = rank_by_similarity([1, 1], [("a", [1, 1]), ("b", [2, 2]), ("c", [3, 3])], top_k=None)
    assert [key for key, _ in ranked] == ["a", "b", "c"]
