import pytest

from menu_rec.collaborative import (
    build_item_similarity,
    count_ratings,
    create_rating_matrix,
    predict_rating,
    top_n_recommendations,
    validate_rating,
)
from menu_rec.errors import InvalidRatingError
from menu_rec.models import Rating


@pytest.fixture
def ratings():
    # u1 and u2 agree on items 1/2, u3 only rated item 3
    return [
        Rating("u1", 1, 5),
        Rating("u1", 2, 4),
        Rating("u2", 1, 5),
        Rating("u2", 2, 5),
        Rating("u2", 4, 2),
        Rating("u3", 3, 3),
    ]


def test_create_rating_matrix_accepts_dicts_and_overwrites():
    matrix = create_rating_matrix([
        {"user_id": "u1", "menu_id": 7, "rating": 2},
        {"user_id": "u1", "item_id": 7, "rating": 4},
        Rating("u2", 7, 1),
    ])
    assert matrix == {"u1": {7: 4}, "u2": {7: 1}}
    assert count_ratings(matrix) == 2


@pytest.mark.parametrize("value", [0, 6, 2.5, "abc", None])
def test_validate_rating_rejects_bad_values(value):
    with pytest.raises(InvalidRatingError):
        validate_rating(value)


def test_validate_rating_coerces():
    assert validate_rating("4") == 4
    assert validate_rating(3.0) == 3


def test_similarity_is_symmetric_without_diagonal(ratings):
    sim = build_item_similarity(create_rating_matrix(ratings))

    for item_a, row in sim.items():
        assert item_a not in row
        for item_b, value in row.items():
            assert sim[item_b][item_a] == value
            assert -1.0 <= value <= 1.0


def test_items_without_co_raters_have_no_entry(ratings):
    sim = build_item_similarity(create_rating_matrix(ratings))

    # Item 3 was only rated by u3, who rated nothing else
    assert 3 not in sim
    assert 3 not in sim[1]
    # Item 4 shares only u2 with items 1 and 2
    assert sim[1][4] == pytest.approx(1.0)


def test_similarity_rebuild_is_identical(ratings):
    matrix = create_rating_matrix(ratings)
    assert build_item_similarity(matrix) == build_item_similarity(matrix)


def test_similarity_needs_two_items():
    assert build_item_similarity({}) == {}
    assert build_item_similarity({"u1": {1: 5}, "u2": {1: 3}}) == {}


def test_similarity_trims_to_most_rated_items(caplog):
    matrix = {
        "u1": {1: 5, 2: 4, 3: 1},
        "u2": {1: 4, 2: 5},
        "u3": {1: 3},
    }
    with caplog.at_level("INFO"):
        sim = build_item_similarity(matrix, max_items=2)

    assert set(sim) == {1, 2}
    assert "trimming items from 3 to 2" in caplog.text


def test_predict_existing_rating_passes_through(ratings):
    matrix = create_rating_matrix(ratings)
    sim = build_item_similarity(matrix)
    assert predict_rating("u1", 1, matrix, sim) == 5


def test_predict_from_similar_items():
    # Users rate items 1 and 2 alike; u3 rated item 1 highly and not item 2
    matrix = create_rating_matrix([
        Rating("u1", 1, 5), Rating("u1", 2, 5),
        Rating("u2", 1, 4), Rating("u2", 2, 4),
        Rating("u3", 1, 5),
    ])
    sim = build_item_similarity(matrix)

    predicted = predict_rating("u3", 2, matrix, sim)

    assert predicted == pytest.approx(5.0)


def test_predict_weighted_average_of_neighbors():
    matrix = {"target": {10: 4, 20: 2}}
    sim = {30: {10: 0.9, 20: 0.3}, 10: {30: 0.9}, 20: {30: 0.3}}

    predicted = predict_rating("target", 30, matrix, sim)

    assert predicted == pytest.approx((0.9 * 4 + 0.3 * 2) / 1.2)


def test_predict_uses_top_k_positive_neighbors():
    matrix = {"target": {10: 5, 20: 1, 40: 1}}
    sim = {30: {10: 0.8, 20: 0.5, 40: -0.9}}

    assert predict_rating("target", 30, matrix, sim, k=1) == pytest.approx(5.0)
    assert predict_rating("target", 30, matrix, sim, k=5) == pytest.approx((0.8 * 5 + 0.5) / 1.3)


def test_predict_returns_none_without_data(ratings):
    matrix = create_rating_matrix(ratings)
    sim = build_item_similarity(matrix)

    assert predict_rating("stranger", 2, matrix, sim) is None
    assert predict_rating("u1", 3, matrix, sim) is None
    assert predict_rating("u1", 99, matrix, sim) is None
    # only non-positive neighbours
    assert predict_rating("t", 2, {"t": {1: 4}}, {2: {1: -0.5}}) is None


def test_top_n_excludes_rated_items(ratings):
    matrix = create_rating_matrix(ratings)
    sim = build_item_similarity(matrix)

    top = top_n_recommendations("u1", matrix, sim, [1, 2, 3, 4, 5], n=10)

    assert [item for item, _ in top] == [4]
    assert top[0][1] == pytest.approx((1.0 * 5 + 1.0 * 4) / 2.0)


def test_top_n_orders_and_truncates():
    matrix = {"t": {1: 5, 2: 1}}
    sim = {
        3: {1: 1.0},
        4: {2: 1.0},
        5: {1: 0.5, 2: 0.5},
    }

    top = top_n_recommendations("t", matrix, sim, [1, 2, 3, 4, 5], n=2)

    assert top == [(3, 5.0), (5, 3.0)]
