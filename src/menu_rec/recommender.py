from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Hashable, Iterable, Mapping

from .collaborative import (
    RatingMatrix,
    build_item_similarity,
    count_ratings,
    create_rating_matrix,
    predict_rating,
    top_n_recommendations,
)
from .config import (
    CONTENT_WEIGHT,
    COLLAB_MIN_RATINGS,
    DEFAULT_K_NEIGHBORS,
    DEFAULT_TOP_N,
    DEFAULT_SIMILAR_ITEMS,
    ITEM_SIM_MAX_ITEMS,
    RATING_MIN,
    RATING_MAX,
    SPICY_MATCH_TOLERANCE,
)
from .models import (
    InteractionRecord,
    MatchingFactors,
    MenuItem,
    Rating,
    Recommendation,
    RecommendationResult,
    RecommendationType,
    UserPreferences,
)
from .profile import build_preferences, index_catalog
from .similarity import cosine, rank_by_similarity
from .vectorizer import FeatureVectorizer

logger = logging.getLogger(__name__)

MESSAGES = {
    RecommendationType.POPULAR: "Popular items while we learn your taste",
    RecommendationType.CONTENT_BASED: "Recommendations based on your food preferences",
    RecommendationType.COLLABORATIVE: "Recommendations based on your rating patterns and similar users",
    RecommendationType.HYBRID: "Hybrid recommendations based on your preferences and rating patterns",
    RecommendationType.NO_DATA: "No ratings available for collaborative filtering",
    RecommendationType.NO_USER_RATINGS: "User has no ratings yet for collaborative filtering",
    RecommendationType.NO_RECOMMENDATIONS: "Could not generate collaborative recommendations with available data",
    RecommendationType.NO_PREFERENCES: "No user preferences available for recommendations",
}


def normalize_rating(predicted: float) -> float:
    """Rescale a 1-5 rating to 0-1."""
    return (predicted - RATING_MIN) / (RATING_MAX - RATING_MIN)


def matching_factors(item: MenuItem, prefs: UserPreferences) -> MatchingFactors:
    """Human-readable diagnostics; these never feed the score."""
    spicy_match = (
        prefs.spicy_level is not None
        and abs(prefs.spicy_level - item.spicy_level) <= SPICY_MATCH_TOLERANCE
    )
    return MatchingFactors(
        cuisine_match=item.cuisine_id in prefs.preferred_dish_ids,
        category_match=item.category_id in prefs.preferred_category_ids,
        spicy_match=spicy_match,
        dietary_match=bool(prefs.veg_preference) == item.is_veg,
    )


def explain(item: MenuItem, factors: MatchingFactors) -> str:
    reasons = []
    if factors.cuisine_match:
        reasons.append(f"cuisine ({item.cuisine_name or item.cuisine_id})")
    if factors.category_match:
        reasons.append(f"category ({item.category_name or item.category_id})")
    if factors.spicy_match:
        reasons.append(f"spice level ({item.spicy_level})")
    if factors.dietary_match:
        reasons.append("vegetarian preference" if item.is_veg else "non-vegetarian preference")
    return "Recommended based on " + (", ".join(reasons) if reasons else "overall food preferences")


def popular_items(
    catalog: Iterable[MenuItem] | Mapping[Hashable, MenuItem],
    all_interactions: Iterable[InteractionRecord],
    n: int = DEFAULT_TOP_N,
) -> list[Recommendation]:
    """
    Catalog items ranked by total interaction count across all users.

    Score is the count relative to the most popular item (0-1]; content
    score and matching factors stay zeroed.
    """
    items_by_id = index_catalog(catalog)
    counts: Counter = Counter()
    for record in all_interactions:
        if record.item_id in items_by_id:
            counts[record.item_id] += record.total_count

    ranked = [(item_id, counts[item_id]) for item_id in items_by_id if counts[item_id] > 0]
    ranked.sort(key=lambda x: -x[1])
    if not ranked:
        return []

    top_count = ranked[0][1]
    return [
        Recommendation(
            item_id=item_id,
            score=count / top_count,
            type=RecommendationType.POPULAR,
            explanation=f"Popular with other diners ({count} interactions)",
            popularity=count,
        )
        for item_id, count in ranked[:n]
    ]


def _as_rating_matrix(ratings: Iterable[Rating | Mapping[str, Any]] | RatingMatrix | None) -> RatingMatrix:
    if ratings is None:
        return {}
    if isinstance(ratings, Mapping):
        return {user: dict(items) for user, items in ratings.items()}
    return create_rating_matrix(ratings)


class HybridRecommender:
    """
    Blend of content-based (feature cosine) and item-item collaborative scores.

    Nothing is cached between calls: every rank() rebuilds the rating and
    similarity matrices from the rows it is given.
    """

    def __init__(
        self,
        vectorizer: FeatureVectorizer | None = None,
        content_weight: float = CONTENT_WEIGHT,
        min_ratings: int = COLLAB_MIN_RATINGS,
        k: int = DEFAULT_K_NEIGHBORS,
        n: int = DEFAULT_TOP_N,
        max_items: int = ITEM_SIM_MAX_ITEMS,
    ):
        if not 0.0 <= content_weight <= 1.0:
            raise ValueError(f"content_weight must be within 0..1, got {content_weight}")
        self.vectorizer = vectorizer or FeatureVectorizer()
        self.content_weight = content_weight
        self.min_ratings = min_ratings
        self.k = k
        self.n = n
        self.max_items = max_items

    @property
    def collaborative_weight(self) -> float:
        return 1.0 - self.content_weight

    def score_content(
        self,
        prefs: UserPreferences,
        catalog: Iterable[MenuItem] | Mapping[Hashable, MenuItem],
    ) -> list[Recommendation]:
        """Cosine of every catalog item against the preference vector, in catalog order."""
        user_vector = self.vectorizer.preference_vector(prefs)
        results = []
        for item in index_catalog(catalog).values():
            similarity = cosine(self.vectorizer.item_vector(item), user_vector)
            factors = matching_factors(item, prefs)
            results.append(Recommendation(
                item_id=item.id,
                score=similarity,
                type=RecommendationType.CONTENT_BASED,
                explanation=explain(item, factors),
                matching_factors=factors,
                content_score=similarity,
            ))
        return results

    def _blend(self, recs: list[Recommendation], user_id: Hashable, matrix: RatingMatrix) -> None:
        similarity = build_item_similarity(matrix, max_items=self.max_items)
        for rec in recs:
            predicted = predict_rating(user_id, rec.item_id, matrix, similarity, self.k)
            rec.type = RecommendationType.HYBRID
            if predicted is None:
                continue
            rec.predicted_rating = predicted
            rec.score = (
                self.content_weight * rec.content_score
                + self.collaborative_weight * normalize_rating(predicted)
            )
            rec.explanation += f" and your rating patterns (predicted rating: {predicted:.1f}/5)"

    def rank(
        self,
        user_id: Hashable,
        catalog: Iterable[MenuItem] | Mapping[Hashable, MenuItem],
        user_interactions: Iterable[InteractionRecord | Hashable],
        all_ratings: Iterable[Rating | Mapping[str, Any]] | RatingMatrix | None,
        all_interactions: Iterable[InteractionRecord] | None = None,
    ) -> RecommendationResult:
        """
        Rank the catalog for a user.

        Falls through, in order: popular (no history), no_preferences (history
        matches no catalog item), no_data (no ratings anywhere), hybrid (user
        has ratings and the system has at least `min_ratings`), content-based.
        `all_interactions` feeds the popularity fallback.
        """
        catalog = index_catalog(catalog)
        user_interactions = list(user_interactions)

        if not user_interactions:
            logger.debug(f"User {user_id} has no interactions; falling back to popular items")
            return RecommendationResult(
                type=RecommendationType.POPULAR,
                message=MESSAGES[RecommendationType.POPULAR],
                recommendations=popular_items(catalog, all_interactions or [], self.n),
            )

        prefs = build_preferences(user_interactions, catalog)
        if prefs.is_empty():
            return self._empty(RecommendationType.NO_PREFERENCES)

        matrix = _as_rating_matrix(all_ratings)
        total_ratings = count_ratings(matrix)
        if total_ratings == 0:
            return self._empty(RecommendationType.NO_DATA, prefs)

        recs = self.score_content(prefs, catalog)
        user_has_ratings = bool(matrix.get(user_id))

        if user_has_ratings and total_ratings >= self.min_ratings:
            self._blend(recs, user_id, matrix)
            rec_type = RecommendationType.HYBRID
            content_weight = self.content_weight
        else:
            logger.debug(
                f"Content-based only for user {user_id}: user_has_ratings={user_has_ratings}, "
                f"total_ratings={total_ratings} (need {self.min_ratings})"
            )
            rec_type = RecommendationType.CONTENT_BASED
            content_weight = 1.0

        recs.sort(key=lambda r: -r.score)
        return RecommendationResult(
            type=rec_type,
            message=MESSAGES[rec_type],
            recommendations=recs[:self.n],
            preferences=prefs,
            content_weight=content_weight,
            collaborative_weight=1.0 - content_weight,
        )

    def recommend_collaborative(
        self,
        user_id: Hashable,
        catalog: Iterable[MenuItem] | Mapping[Hashable, MenuItem],
        all_ratings: Iterable[Rating | Mapping[str, Any]] | RatingMatrix | None,
    ) -> RecommendationResult:
        """Rating-pattern recommendations only, without item attributes."""
        matrix = _as_rating_matrix(all_ratings)
        if count_ratings(matrix) == 0:
            return self._empty(RecommendationType.NO_DATA)
        if not matrix.get(user_id):
            return self._empty(RecommendationType.NO_USER_RATINGS)

        similarity = build_item_similarity(matrix, max_items=self.max_items)
        predictions = top_n_recommendations(
            user_id, matrix, similarity, list(index_catalog(catalog)), n=self.n, k=self.k
        )
        if not predictions:
            return self._empty(RecommendationType.NO_RECOMMENDATIONS)

        return RecommendationResult(
            type=RecommendationType.COLLABORATIVE,
            message=MESSAGES[RecommendationType.COLLABORATIVE],
            recommendations=[
                Recommendation(
                    item_id=item_id,
                    score=predicted,
                    type=RecommendationType.COLLABORATIVE,
                    explanation="Recommended because it is similar to items you've rated highly",
                    predicted_rating=predicted,
                )
                for item_id, predicted in predictions
            ],
            content_weight=0.0,
            collaborative_weight=1.0,
        )

    def similar_items(
        self,
        item_id: Hashable,
        catalog: Iterable[MenuItem] | Mapping[Hashable, MenuItem],
        top_k: int = DEFAULT_SIMILAR_ITEMS,
        same_restaurant: bool = True,
    ) -> list[Recommendation]:
        """
        Items whose feature vectors are closest to `item_id`.

        With `same_restaurant`, candidates are limited to the anchor's
        restaurant when it has one. Unknown items yield an empty list.
        """
        items_by_id = index_catalog(catalog)
        anchor = items_by_id.get(item_id)
        if anchor is None:
            return []

        candidates = [
            item for other_id, item in items_by_id.items()
            if other_id != item_id
            and not (
                same_restaurant
                and anchor.restaurant_id is not None
                and item.restaurant_id != anchor.restaurant_id
            )
        ]
        ranked = rank_by_similarity(
            self.vectorizer.item_vector(anchor),
            ((item, self.vectorizer.item_vector(item)) for item in candidates),
            top_k=top_k,
        )
        anchor_label = anchor.name or anchor.id
        return [
            Recommendation(
                item_id=item.id,
                score=similarity,
                type=RecommendationType.CONTENT_BASED,
                explanation=f"Similar to {anchor_label}",
                content_score=similarity,
            )
            for item, similarity in ranked
        ]

    def _empty(self, rec_type: RecommendationType, prefs: UserPreferences | None = None) -> RecommendationResult:
        logger.info(f"No recommendations: {rec_type.value}")
        return RecommendationResult(type=rec_type, message=MESSAGES[rec_type], preferences=prefs)
