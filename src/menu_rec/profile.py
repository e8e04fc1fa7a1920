import logging
from typing import Hashable, Iterable, Mapping

from .models import InteractionRecord, MenuItem, UserPreferences
from .vectorizer import round_half_up

logger = logging.getLogger(__name__)


def index_catalog(catalog: Iterable[MenuItem] | Mapping[Hashable, MenuItem]) -> dict[Hashable, MenuItem]:
    """Return an id -> item mapping, preserving catalog order."""
    if isinstance(catalog, Mapping):
        return dict(catalog)
    return {item.id: item for item in catalog}


def build_preferences(
    interactions: Iterable[InteractionRecord | Hashable],
    catalog: Iterable[MenuItem] | Mapping[Hashable, MenuItem],
) -> UserPreferences:
    """
    Aggregate a user's taste from the items they interacted with.

    - spicy_level: average spice of interacted items, rounded half-up
    - veg_preference: True if any interacted item is vegetarian
    - preferred dish/category ids: union over interacted items

    Interactions may be InteractionRecord objects or bare item ids. Items
    missing from the catalog are skipped; if none resolve, the returned
    preferences are empty.
    """
    items_by_id = index_catalog(catalog)

    seen_items: list[MenuItem] = []
    missing = 0
    for interaction in interactions:
        item_id = interaction.item_id if isinstance(interaction, InteractionRecord) else interaction
        item = items_by_id.get(item_id)
        if item is None:
            missing += 1
            continue
        seen_items.append(item)

    if missing:
        logger.debug(f"{missing} interactions reference items not in the catalog")

    if not seen_items:
        return UserPreferences()

    avg_spicy = sum(item.spicy_level for item in seen_items) / len(seen_items)
    return UserPreferences(
        preferred_dish_ids={item.cuisine_id for item in seen_items},
        preferred_category_ids={item.category_id for item in seen_items},
        spicy_level=round_half_up(avg_spicy),
        veg_preference=any(item.is_veg for item in seen_items),
    )
