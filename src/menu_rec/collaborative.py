"""
Item-item collaborative filtering over explicit 1-5 ratings.

Two items are similar when the users who rated both rated them alike:
similarity(i, j) is the cosine between the co-raters' ratings of i and of j.
Items with no co-raters get no entry at all (undefined, not 0.0).

The similarity build is O(items^2 * users). It is meant for catalogs of tens
to a few hundred items; beyond ITEM_SIM_MAX_ITEMS only the most-rated items
are kept.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Hashable, Iterable, Mapping

import numpy as np
from scipy.sparse import csc_matrix

from .config import (
    RATING_MIN,
    RATING_MAX,
    DEFAULT_K_NEIGHBORS,
    DEFAULT_TOP_N,
    ITEM_SIM_MAX_ITEMS,
)
from .errors import InvalidRatingError
from .models import Rating
from .similarity import cosine

logger = logging.getLogger(__name__)

RatingMatrix = dict[Hashable, dict[Hashable, float]]
SimilarityMatrix = dict[Hashable, dict[Hashable, float]]


def _rating_fields(row: Rating | Mapping[str, Any]) -> tuple[Hashable, Hashable, Any]:
    if isinstance(row, Rating):
        return row.user_id, row.item_id, row.rating
    item_id = row.get('item_id', row.get('menu_id'))
    return row['user_id'], item_id, row['rating']


def validate_rating(value: Any) -> int:
    """Coerce to int and check the 1-5 scale."""
    try:
        rating = int(value)
    except (TypeError, ValueError):
        raise InvalidRatingError(f"Rating must be an integer, got {value!r}") from None
    if rating != value and not isinstance(value, str):
        raise InvalidRatingError(f"Rating must be a whole number, got {value!r}")
    if not RATING_MIN <= rating <= RATING_MAX:
        raise InvalidRatingError(f"Rating must be between {RATING_MIN} and {RATING_MAX}, got {rating}")
    return rating


def create_rating_matrix(rows: Iterable[Rating | Mapping[str, Any]]) -> RatingMatrix:
    """
    Build user -> {item -> rating} from rating rows.

    Rows may be Rating objects or dicts with user_id, item_id (or menu_id)
    and rating. A later row for the same (user, item) overwrites an earlier one.
    """
    matrix: RatingMatrix = {}
    for row in rows:
        user_id, item_id, value = _rating_fields(row)
        matrix.setdefault(user_id, {})[item_id] = validate_rating(value)
    return matrix


def count_ratings(matrix: RatingMatrix) -> int:
    return sum(len(ratings) for ratings in matrix.values())


def _select_items(matrix: RatingMatrix, max_items: int) -> list[Hashable]:
    """Rated items in first-seen order, trimmed to the most-rated when over the ceiling."""
    counts: Counter = Counter()
    for ratings in matrix.values():
        counts.update(ratings.keys())

    item_ids = list(counts.keys())
    if len(item_ids) > max_items:
        keep = {item for item, _ in sorted(counts.items(), key=lambda x: -x[1])[:max_items]}
        logger.info(
            f"Item similarity: trimming items from {len(item_ids)} to {max_items} "
            f"(dropped {len(item_ids) - max_items}) to cap computation"
        )
        item_ids = [item for item in item_ids if item in keep]
    return item_ids


def build_item_similarity(matrix: RatingMatrix, max_items: int = ITEM_SIM_MAX_ITEMS) -> SimilarityMatrix:
    """
    Compute the symmetric item-item similarity matrix.

    Each unordered pair is computed once and written to both [i][j] and [j][i].
    The diagonal is never stored. Rebuilding from the same ratings gives
    identical output.
    """
    item_ids = _select_items(matrix, max_items)
    if len(item_ids) < 2:
        return {}

    item_index = {item: idx for idx, item in enumerate(item_ids)}
    user_ids = list(matrix.keys())

    rows, cols, data = [], [], []
    for user_idx, user_id in enumerate(user_ids):
        for item_id, rating in matrix[user_id].items():
            col = item_index.get(item_id)
            if col is not None:
                rows.append(user_idx)
                cols.append(col)
                data.append(rating)

    # Users x items; a CSC column lists the users who rated that item
    R = csc_matrix((data, (rows, cols)), shape=(len(user_ids), len(item_ids)), dtype=np.float64)
    R.sort_indices()
    columns = [
        (R.indices[R.indptr[j]:R.indptr[j + 1]], R.data[R.indptr[j]:R.indptr[j + 1]])
        for j in range(len(item_ids))
    ]

    similarity: SimilarityMatrix = {}
    n_pairs = 0
    for a, item_a in enumerate(item_ids):
        users_a, ratings_a = columns[a]
        for b in range(a + 1, len(item_ids)):
            users_b, ratings_b = columns[b]
            common, idx_a, idx_b = np.intersect1d(
                users_a, users_b, assume_unique=True, return_indices=True
            )
            if common.size == 0:
                continue

            value = cosine(ratings_a[idx_a], ratings_b[idx_b])
            item_b = item_ids[b]
            similarity.setdefault(item_a, {})[item_b] = value
            similarity.setdefault(item_b, {})[item_a] = value
            n_pairs += 1

    logger.debug(
        f"Built item similarity: {len(item_ids)} items, {len(user_ids)} users, "
        f"{len(data)} ratings, {n_pairs} co-rated pairs"
    )
    return similarity


def predict_rating(
    user_id: Hashable,
    item_id: Hashable,
    matrix: RatingMatrix,
    similarity: SimilarityMatrix,
    k: int = DEFAULT_K_NEIGHBORS,
) -> float | None:
    """
    Predict a user's rating for an item from their ratings of similar items.

    An existing rating is returned as-is. Otherwise the k rated items most
    similar to `item_id` (similarity > 0 only) are averaged, weighted by
    similarity. Returns None when there is not enough data.
    """
    user_ratings = matrix.get(user_id)
    if user_ratings and item_id in user_ratings:
        return user_ratings[item_id]

    item_similarities = similarity.get(item_id)
    if not user_ratings or not item_similarities:
        return None

    neighbors = [
        (rated_id, item_similarities[rated_id])
        for rated_id in user_ratings
        if item_similarities.get(rated_id, 0.0) > 0
    ]
    if not neighbors:
        return None

    neighbors.sort(key=lambda x: -x[1])
    neighbors = neighbors[:k]

    similarity_sum = sum(sim for _, sim in neighbors)
    if similarity_sum == 0:
        return None

    weighted_sum = sum(sim * user_ratings[rated_id] for rated_id, sim in neighbors)
    return weighted_sum / similarity_sum


def top_n_recommendations(
    user_id: Hashable,
    matrix: RatingMatrix,
    similarity: SimilarityMatrix,
    all_item_ids: Iterable[Hashable],
    n: int = DEFAULT_TOP_N,
    k: int = DEFAULT_K_NEIGHBORS,
) -> list[tuple[Hashable, float]]:
    """
    Best predicted unrated items for a user as (item_id, predicted_rating).

    Items without a prediction, or with a prediction <= 0, are dropped.
    """
    user_ratings = matrix.get(user_id, {})
    predictions = []
    for item_id in all_item_ids:
        if item_id in user_ratings:
            continue
        predicted = predict_rating(user_id, item_id, matrix, similarity, k)
        if predicted is not None and predicted > 0:
            predictions.append((item_id, predicted))

    predictions.sort(key=lambda x: -x[1])
    return predictions[:n]
