import argparse
import atexit
import json
import logging
from pathlib import Path

from tqdm import tqdm

from .config import DEFAULT_TOP_N, DEFAULT_SIMILAR_ITEMS, IMPORT_CHUNK_SIZE
from .database import (
    init_db, close_pool, upsert_menu_items, upsert_rating, record_interaction,
    import_interactions, load_catalog, load_ratings, load_user_interactions,
    load_all_interactions, get_stats, parse_timestamp_naive,
)
from .errors import RecommenderError
from .interactions import InteractionScorer
from .models import InteractionKind, InteractionRecord, MenuItem, RecommendationResult
from .recommender import HybridRecommender
from .vectorizer import FeatureVectorizer

logger = logging.getLogger(__name__)

# Register cleanup on exit
atexit.register(close_pool)


def _chunks(rows: list, size: int):
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


def _interaction_from_row(row: dict) -> InteractionRecord:
    last = row.get('last_interaction_at') or row.get('lastInteractionAt')
    return InteractionRecord(
        user_id=row.get('user_id', row.get('userId')),
        item_id=row.get('item_id', row.get('menuItemId')),
        view_count=int(row.get('view_count', row.get('viewCount', 0))),
        cart_add_count=int(row.get('cart_add_count', row.get('cartAddCount', 0))),
        search_count=int(row.get('search_count', row.get('searchCount', 0))),
        last_interaction_at=parse_timestamp_naive(last) if last else None,
    )


def _build_recommender(catalog: list[MenuItem], limit: int) -> HybridRecommender:
    return HybridRecommender(vectorizer=FeatureVectorizer.from_catalog(catalog), n=limit)


def cmd_init_db(args: argparse.Namespace) -> None:
    """Create tables."""
    init_db()
    logger.info("Database initialized")


def cmd_import(args: argparse.Namespace) -> None:
    """Import menu items, ratings and interaction counters from a JSON file."""
    path = Path(args.file)
    payload = json.loads(path.read_text())
    init_db()

    items = [MenuItem.from_row(row) for row in payload.get('menu_items', [])]
    for chunk in tqdm(list(_chunks(items, IMPORT_CHUNK_SIZE)), desc="Menu items", disable=not items):
        upsert_menu_items(chunk)

    ratings = payload.get('ratings', [])
    skipped = 0
    for row in tqdm(ratings, desc="Ratings", disable=not ratings):
        user_id = row.get('user_id', row.get('userId'))
        item_id = row.get('item_id', row.get('menu_id'))
        if user_id is None or item_id is None or 'rating' not in row:
            skipped += 1
            logger.warning(f"Skipping rating {row}: missing user, item or rating")
            continue
        try:
            upsert_rating(user_id, item_id, row['rating'])
        except RecommenderError as e:
            skipped += 1
            logger.warning(f"Skipping rating {row}: {e}")

    interactions = [_interaction_from_row(row) for row in payload.get('interactions', [])]
    for chunk in tqdm(list(_chunks(interactions, IMPORT_CHUNK_SIZE)), desc="Interactions", disable=not interactions):
        import_interactions(chunk)

    logger.info(
        f"Imported {len(items)} menu items, {len(ratings) - skipped} ratings "
        f"({skipped} skipped), {len(interactions)} interaction rows"
    )


def cmd_rate(args: argparse.Namespace) -> None:
    """Rate a menu item (1-5)."""
    try:
        value = upsert_rating(args.user, args.item, args.rating)
    except RecommenderError as e:
        logger.error(str(e))
        return
    logger.info(f"{args.user} rated item {args.item}: {value}/5")


def cmd_interact(args: argparse.Namespace) -> None:
    """Record an interaction event."""
    record = record_interaction(args.user, args.item, args.kind, weight=args.weight)
    logger.info(
        f"Item {record.item_id}: views={record.view_count} cart_adds={record.cart_add_count} "
        f"searches={record.search_count} preference_score={record.preference_score:.3f}"
    )


def _output_result(result: RecommendationResult, catalog: list[MenuItem], fmt: str) -> None:
    if fmt == 'json':
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return

    names = {item.id: item.name or f"Item {item.id}" for item in catalog}
    logger.info(f"\n[{result.type.value}] {result.message}")
    if result.preferences and not result.preferences.is_empty():
        prefs = result.preferences
        logger.info(
            f"  Taste: dishes={sorted(prefs.preferred_dish_ids)} "
            f"categories={sorted(prefs.preferred_category_ids)} "
            f"spice={prefs.spicy_level} veg={prefs.veg_preference}"
        )
    for i, rec in enumerate(result.recommendations, 1):
        predicted = f" (predicted {rec.predicted_rating:.1f}/5)" if rec.predicted_rating is not None else ""
        logger.info(f"{i}. {names.get(rec.item_id, rec.item_id)} - Score: {rec.score:.3f}{predicted}")
        logger.info(f"   Why: {rec.explanation}")


def cmd_recommend(args: argparse.Namespace) -> None:
    """Generate recommendations for a user."""
    catalog = load_catalog()
    if not catalog:
        logger.error("No menu items in database. Run import first.")
        return

    recommender = _build_recommender(catalog, args.limit)
    ratings = load_ratings()
    try:
        if args.strategy == 'collaborative':
            result = recommender.recommend_collaborative(args.user, catalog, ratings)
        else:
            result = recommender.rank(
                args.user,
                catalog,
                load_user_interactions(args.user),
                ratings,
                all_interactions=load_all_interactions(),
            )
    except RecommenderError as e:
        logger.error(f"Recommendation failed: {e}")
        return

    _output_result(result, catalog, args.format)


def cmd_similar(args: argparse.Namespace) -> None:
    """Find menu items similar to a given one."""
    catalog = load_catalog()
    if not catalog:
        logger.error("No menu items in database. Run import first.")
        return

    names = {item.id: item.name or f"Item {item.id}" for item in catalog}
    if args.item not in names:
        logger.error(f"No menu item found with id {args.item}")
        return

    recommender = _build_recommender(catalog, args.limit)
    recs = recommender.similar_items(
        args.item, catalog, top_k=args.limit, same_restaurant=not args.any_restaurant
    )
    if not recs:
        logger.info(f"No similar items for {names[args.item]}")
        return

    logger.info(f"\nItems similar to {names[args.item]}:")
    for i, rec in enumerate(recs, 1):
        logger.info(f"{i}. {names[rec.item_id]} - Similarity: {rec.score:.3f}")


def cmd_stats(args: argparse.Namespace) -> None:
    """Show database statistics."""
    stats = get_stats()
    logger.info("\nDatabase Statistics:")
    logger.info(f"  Menu items: {stats['menu_items']}")
    logger.info(f"  Ratings: {stats['ratings']} from {stats['rating_users']} users")
    logger.info(f"  Interactions: {stats['interactions']} from {stats['interaction_users']} users")

    if getattr(args, 'verbose', False):
        scorer = InteractionScorer()
        records = load_all_interactions()
        if records:
            top = sorted(records, key=lambda r: -scorer.score_record(r))[:5]
            logger.info("\nStrongest current preferences:")
            for r in top:
                logger.info(f"  user {r.user_id} / item {r.item_id}: {scorer.score_record(r):.3f}")


def main():
    parser = argparse.ArgumentParser(description="Menu Recommender")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    init_parser.set_defaults(func=cmd_init_db)

    import_parser = subparsers.add_parser("import", help="Import menu items, ratings and interactions")
    import_parser.add_argument("file", help="JSON file with menu_items / ratings / interactions arrays")
    import_parser.set_defaults(func=cmd_import)

    rate_parser = subparsers.add_parser("rate", help="Rate a menu item")
    rate_parser.add_argument("user", help="User id")
    rate_parser.add_argument("item", type=int, help="Menu item id")
    rate_parser.add_argument("rating", type=int, help="Rating 1-5")
    rate_parser.set_defaults(func=cmd_rate)

    interact_parser = subparsers.add_parser("interact", help="Record an interaction")
    interact_parser.add_argument("user", help="User id")
    interact_parser.add_argument("item", type=int, help="Menu item id")
    interact_parser.add_argument("--kind", choices=[k.weight_key for k in InteractionKind],
                                 default="view", help="Interaction kind")
    interact_parser.add_argument("--weight", type=float, default=1.0,
                                 help="Extra multiplier for this event")
    interact_parser.set_defaults(func=cmd_interact)

    rec_parser = subparsers.add_parser("recommend", help="Generate recommendations")
    rec_parser.add_argument("user", help="User id")
    rec_parser.add_argument("--strategy", choices=['hybrid', 'collaborative'], default='hybrid',
                            help="Recommendation strategy")
    rec_parser.add_argument("--limit", type=int, default=DEFAULT_TOP_N, help="Number of recommendations")
    rec_parser.add_argument("--format", choices=['text', 'json'], default='text', help="Output format")
    rec_parser.set_defaults(func=cmd_recommend)

    similar_parser = subparsers.add_parser("similar", help="Find similar menu items")
    similar_parser.add_argument("item", type=int, help="Menu item id")
    similar_parser.add_argument("--limit", type=int, default=DEFAULT_SIMILAR_ITEMS, help="Number of items")
    similar_parser.add_argument("--any-restaurant", action="store_true",
                                help="Do not restrict to the item's restaurant")
    similar_parser.set_defaults(func=cmd_similar)

    stats_parser = subparsers.add_parser("stats", help="Show database statistics")
    stats_parser.set_defaults(func=cmd_stats)

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    args.func(args)


if __name__ == "__main__":
    main()
