from menu_rec.models import InteractionRecord, UserPreferences
from menu_rec.profile import build_preferences, index_catalog


def test_index_catalog_preserves_order(catalog):
    indexed = index_catalog(catalog)
    assert list(indexed) == [1, 2, 3, 4, 5]
    assert index_catalog(indexed) == indexed


def test_build_preferences_aggregates_interacted_items(catalog):
    prefs = build_preferences([1, 3], catalog)

    assert prefs.preferred_dish_ids == {1}
    assert prefs.preferred_category_ids == {1}
    # (2 + 3) / 2 = 2.5 rounds up
    assert prefs.spicy_level == 3
    assert prefs.veg_preference is True


def test_build_preferences_from_records(catalog):
    records = [
        InteractionRecord(user_id="u1", item_id=2, view_count=3),
        InteractionRecord(user_id="u1", item_id=4, cart_add_count=1),
        InteractionRecord(user_id="u1", item_id=4, search_count=2),
    ]

    prefs = build_preferences(records, catalog)

    assert prefs.preferred_dish_ids == {3, 5}
    assert prefs.preferred_category_ids == {2, 3}
    assert prefs.spicy_level == 3  # (1 + 4 + 4) / 3
    assert prefs.veg_preference is False


def test_unknown_items_are_skipped(catalog):
    prefs = build_preferences([5, 404], catalog)
    assert prefs.preferred_dish_ids == {8}
    assert prefs.spicy_level == 2


def test_no_resolvable_items_gives_empty_preferences(catalog):
    prefs = build_preferences([404, 405], catalog)
    assert prefs == UserPreferences()
    assert prefs.is_empty()
    assert build_preferences([], catalog).is_empty()
