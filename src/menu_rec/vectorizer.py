"""
Feature vectors for menu items and user preferences.

Layout: [dish one-hot (N) | category one-hot (M) | spice one-hot (6) | veg (1)]

Item vectors carry exactly one 1 per block. Preference vectors may set
several dishes/categories, or leave a block all zero when nothing was
recorded for that dimension.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable

import numpy as np

from .config import DISH_COUNT, CATEGORY_COUNT, SPICY_LEVELS, MAX_SPICY_LEVEL
from .errors import InvalidAttributeError
from .models import MenuItem, UserPreferences

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (2.5 -> 3), like SQL ROUND."""
    return int(math.floor(value + 0.5))


class FeatureVectorizer:
    """Encodes items and preferences into comparable fixed-length vectors."""

    def __init__(self, dish_count: int = DISH_COUNT, category_count: int = CATEGORY_COUNT):
        if dish_count < 1 or category_count < 1:
            raise ValueError("dish_count and category_count must be positive")
        self.dish_count = dish_count
        self.category_count = category_count

    @classmethod
    def from_catalog(cls, items: Iterable[MenuItem]) -> "FeatureVectorizer":
        """Size the dish/category blocks from the largest ids present in a catalog."""
        items = list(items)
        if not items:
            return cls()
        dish_count = max(item.cuisine_id for item in items)
        category_count = max(item.category_id for item in items)
        logger.debug(f"Vectorizer sized from catalog: {dish_count} dishes, {category_count} categories")
        return cls(dish_count=dish_count, category_count=category_count)

    @property
    def dimension(self) -> int:
        return self.dish_count + self.category_count + SPICY_LEVELS + 1

    @property
    def _category_offset(self) -> int:
        return self.dish_count

    @property
    def _spicy_offset(self) -> int:
        return self.dish_count + self.category_count

    def _dish_slot(self, dish_id: int) -> int:
        if not 1 <= dish_id <= self.dish_count:
            raise InvalidAttributeError("cuisine_id", dish_id, (1, self.dish_count))
        return dish_id - 1

    def _category_slot(self, category_id: int) -> int:
        if not 1 <= category_id <= self.category_count:
            raise InvalidAttributeError("category_id", category_id, (1, self.category_count))
        return self._category_offset + category_id - 1

    def _spicy_slot(self, level: int) -> int:
        if not 0 <= level <= MAX_SPICY_LEVEL:
            raise InvalidAttributeError("spicy_level", level, (0, MAX_SPICY_LEVEL))
        return self._spicy_offset + level

    def item_vector(self, item: MenuItem) -> np.ndarray:
        """
        Encode a catalog item.

        Raises:
            InvalidAttributeError: if any id or the spice level is out of bounds
        """
        vector = np.zeros(self.dimension, dtype=np.float64)
        vector[self._dish_slot(item.cuisine_id)] = 1.0
        vector[self._category_slot(item.category_id)] = 1.0
        vector[self._spicy_slot(item.spicy_level)] = 1.0
        vector[-1] = 1.0 if item.is_veg else 0.0
        return vector

    def preference_vector(self, prefs: UserPreferences) -> np.ndarray:
        """
        Encode aggregated user preferences in the item layout.

        Fractional spice averages are rounded half-up; an absent spice level
        leaves the spice block empty. An absent veg preference encodes as 0,
        the same as an explicit non-veg preference.

        Raises:
            InvalidAttributeError: if any preferred id or the spice level is out of bounds
        """
        vector = np.zeros(self.dimension, dtype=np.float64)
        for dish_id in prefs.preferred_dish_ids:
            vector[self._dish_slot(dish_id)] = 1.0
        for category_id in prefs.preferred_category_ids:
            vector[self._category_slot(category_id)] = 1.0
        if prefs.spicy_level is not None:
            vector[self._spicy_slot(round_half_up(prefs.spicy_level))] = 1.0
        vector[-1] = 1.0 if prefs.veg_preference else 0.0
        return vector
