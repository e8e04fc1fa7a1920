from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Hashable


class RecommendationType(Enum):
    POPULAR = "popular"                        # No user history, popularity fallback
    CONTENT_BASED = "content-based"            # Item features vs. user taste
    COLLABORATIVE = "collaborative"            # Rating patterns only
    HYBRID = "hybrid"                          # Content + collaborative blend
    NO_DATA = "no_data"                        # No ratings in the system
    NO_USER_RATINGS = "no_user_ratings"        # User has never rated anything
    NO_RECOMMENDATIONS = "no_recommendations"  # Data exists but nothing predictable
    NO_PREFERENCES = "no_preferences"          # History does not resolve to taste


class InteractionKind(Enum):
    """
    Interaction kinds tracked by the client.

    Each kind bumps one of the three stored counters; derived kinds
    (restaurant menu view, menu item cart add...) only differ in base weight.
    """
    VIEW = ("view", "view_count")
    CART_ADD = ("cart_add", "cart_add_count")
    SEARCH = ("search", "search_count")
    RESTAURANT_VIEW = ("restaurant_view", "view_count")
    RESTAURANT_MENU_VIEW = ("restaurant_menu_view", "view_count")
    MENU_ITEM_CART_ADD = ("menu_item_cart_add", "cart_add_count")

    def __init__(self, weight_key: str, counter: str):
        self.weight_key = weight_key
        self.counter = counter

    @classmethod
    def parse(cls, value: str | InteractionKind) -> InteractionKind:
        """Accept enum members, weight keys ('cart_add') or counter names ('cartAddCount')."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip()
        aliases = {
            "viewCount": cls.VIEW,
            "cartAddCount": cls.CART_ADD,
            "searchCount": cls.SEARCH,
        }
        if normalized in aliases:
            return aliases[normalized]
        for kind in cls:
            if normalized.lower() in (kind.weight_key, kind.name.lower()):
                return kind
        raise ValueError(f"Unknown interaction kind: {value!r}")


@dataclass(frozen=True)
class MenuItem:
    """A catalog row. Only the four attributes below feed the feature vector."""
    id: Hashable
    cuisine_id: int
    category_id: int
    spicy_level: int
    is_veg: bool
    name: str | None = None
    restaurant_id: Hashable | None = None
    cuisine_name: str | None = None
    category_name: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> MenuItem:
        """Build from a dict using either snake_case or the camelCase column names."""
        def pick(*keys, default=None):
            for key in keys:
                if key in row and row[key] is not None:
                    return row[key]
            return default

        return cls(
            id=pick("id", "menu_id", "menuItemId"),
            cuisine_id=int(pick("cuisine_id", "cuisineId")),
            category_id=int(pick("category_id", "categoryId")),
            spicy_level=int(pick("spicy_level", "spicyLevel", default=0)),
            is_veg=bool(int(pick("is_veg", "isVeg", default=0))),
            name=pick("name"),
            restaurant_id=pick("restaurant_id", "restaurantId"),
            cuisine_name=pick("cuisine_name", "cuisineName"),
            category_name=pick("category_name", "categoryName"),
        )


@dataclass(frozen=True)
class Rating:
    user_id: Hashable
    item_id: Hashable
    rating: int


@dataclass
class InteractionRecord:
    """Running interaction counters for one (user, item) pair."""
    user_id: Hashable
    item_id: Hashable
    view_count: int = 0
    cart_add_count: int = 0
    search_count: int = 0
    last_interaction_at: datetime | None = None
    preference_score: float = 0.0

    @property
    def total_count(self) -> int:
        return self.view_count + self.cart_add_count + self.search_count


@dataclass
class UserPreferences:
    """
    Aggregated taste used for content-based scoring.

    `spicy_level` is an average and may be fractional; `None` means no
    spice preference was recorded. `veg_preference` of `None` encodes the
    same way as `False` in feature vectors.
    """
    preferred_dish_ids: set[int] = field(default_factory=set)
    preferred_category_ids: set[int] = field(default_factory=set)
    spicy_level: float | None = None
    veg_preference: bool | None = None

    def is_empty(self) -> bool:
        return (
            not self.preferred_dish_ids
            and not self.preferred_category_ids
            and self.spicy_level is None
            and self.veg_preference is None
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "preferred_dish_ids": sorted(self.preferred_dish_ids),
            "preferred_category_ids": sorted(self.preferred_category_ids),
            "spicy_level": self.spicy_level,
            "veg_preference": self.veg_preference,
        }


@dataclass(frozen=True)
class MatchingFactors:
    cuisine_match: bool = False
    category_match: bool = False
    spicy_match: bool = False
    dietary_match: bool = False


@dataclass
class Recommendation:
    item_id: Hashable
    score: float
    type: RecommendationType
    explanation: str
    matching_factors: MatchingFactors = field(default_factory=MatchingFactors)
    content_score: float = 0.0
    predicted_rating: float | None = None
    popularity: int = 0

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["type"] = self.type.value
        return payload


@dataclass
class RecommendationResult:
    type: RecommendationType
    message: str
    recommendations: list[Recommendation] = field(default_factory=list)
    preferences: UserPreferences | None = None
    content_weight: float | None = None
    collaborative_weight: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "preferences": self.preferences.to_dict() if self.preferences else None,
            "content_weight": self.content_weight,
            "collaborative_weight": self.collaborative_weight,
        }
