"""
Configuration constants for the menu recommender.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


# Database Configuration
DB_PATH = Path(os.environ.get("MENU_REC_DB", "data/menu_rec.db"))

# Catalog shape (feature vector layout)
DISH_COUNT = _get_int_env("MENU_REC_DISH_COUNT", 8)          # Momo .. Biryani
CATEGORY_COUNT = _get_int_env("MENU_REC_CATEGORY_COUNT", 4)  # Nepali, Italian, Chinese, Indian
SPICY_LEVELS = 6  # 0..5 inclusive
MAX_SPICY_LEVEL = SPICY_LEVELS - 1

# Ratings
RATING_MIN = 1
RATING_MAX = 5

# Interaction weights (base weight per interaction kind)
INTERACTION_WEIGHTS = {
    'view': 1.0,
    'cart_add': 3.0,
    'search': 2.0,                  # Appearing in search results
    'restaurant_view': 2.0,         # Viewing restaurant details
    'restaurant_menu_view': 2.5,    # Viewing a restaurant's menu
    'menu_item_cart_add': 4.0,      # Adding a menu item to cart
}

# Exponential decay rate per day: exp(-rate * days)
TIME_DECAY_FACTOR = _get_float_env("MENU_REC_TIME_DECAY", 0.1, min_val=0.0)

# Collaborative filtering
DEFAULT_K_NEIGHBORS = _get_int_env("MENU_REC_K_NEIGHBORS", 5)
DEFAULT_TOP_N = _get_int_env("MENU_REC_TOP_N", 10)
# Above this many rated items only the most-rated ones enter the O(items^2) build
ITEM_SIM_MAX_ITEMS = _get_int_env("MENU_REC_ITEM_SIM_MAX_ITEMS", 500, min_val=2)

# Hybrid blending
CONTENT_WEIGHT = min(_get_float_env("MENU_REC_CONTENT_WEIGHT", 0.6, min_val=0.0), 1.0)
COLLABORATIVE_WEIGHT = 1.0 - CONTENT_WEIGHT
COLLAB_MIN_RATINGS = _get_int_env("MENU_REC_COLLAB_MIN_RATINGS", 10, min_val=0)

# Explanation thresholds
SPICY_MATCH_TOLERANCE = 1

# Similar items
DEFAULT_SIMILAR_ITEMS = 3

# CLI bulk import
IMPORT_CHUNK_SIZE = 500
