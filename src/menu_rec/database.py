"""
SQLite store for the raw rows the engine consumes.

Owns menu items, ratings (upserted, one per user and item) and interaction
counters (insert-or-increment, score recomputed from the stored row).
"""
import sqlite3
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Hashable, Iterable

from .collaborative import validate_rating
from .config import DB_PATH
from .interactions import InteractionScorer, to_naive_utc
from .models import InteractionKind, InteractionRecord, MenuItem, Rating

logger = logging.getLogger(__name__)


def parse_timestamp_naive(timestamp_str: str) -> datetime:
    """
    Parse ISO format timestamp string to naive datetime.

    Stored timestamps are naive UTC; aware values are converted to UTC so they can
    be compared against the scorer clock.
    """
    return to_naive_utc(datetime.fromisoformat(timestamp_str))


def format_timestamp(dt: datetime) -> str:
    return to_naive_utc(dt).isoformat(sep=" ")


class ConnectionPool:
    """
    One SQLite connection per thread, with nested transaction tracking so
    only the outermost get_db() scope commits or rolls back.
    """

    def __init__(self, db_path, max_size: int = 20):
        self._db_path = db_path
        self._max_size = max_size
        self._lock = threading.Lock()
        self._connections: dict[int, sqlite3.Connection] = {}
        self._transaction_depth: dict[int, int] = {}

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 5000")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    def get_connection(self) -> sqlite3.Connection:
        thread_id = threading.get_ident()
        with self._lock:
            conn = self._connections.get(thread_id)
            if conn is None:
                if len(self._connections) >= self._max_size:
                    raise RuntimeError(
                        f"Connection pool exhausted ({self._max_size} connections). "
                        f"Possible connection leak or too many threads."
                    )
                conn = self._create_connection()
                self._connections[thread_id] = conn
                self._transaction_depth[thread_id] = 0
                logger.debug(f"Created connection for thread {thread_id} (pool size: {len(self._connections)})")
            return conn

    def get_transaction_depth(self) -> int:
        return self._transaction_depth.get(threading.get_ident(), 0)

    def increment_transaction_depth(self):
        thread_id = threading.get_ident()
        with self._lock:
            self._transaction_depth[thread_id] = self._transaction_depth.get(thread_id, 0) + 1

    def decrement_transaction_depth(self):
        thread_id = threading.get_ident()
        with self._lock:
            depth = self._transaction_depth.get(thread_id, 1)
            self._transaction_depth[thread_id] = max(0, depth - 1)

    def close_all(self):
        with self._lock:
            for thread_id, conn in list(self._connections.items()):
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing connection for thread {thread_id}: {e}")
            self._connections.clear()
            self._transaction_depth.clear()
            logger.debug("Connection pool closed")


_pool: ConnectionPool | None = None
_pool_lock = threading.Lock()


def _get_pool() -> ConnectionPool:
    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                DB_PATH.parent.mkdir(exist_ok=True, parents=True)
                _pool = ConnectionPool(DB_PATH)
    return _pool


@contextmanager
def get_db(read_only: bool = False):
    """
    Get database connection with proper transaction handling.

    Args:
        read_only: If True, skip commit on exit

    Only the outermost context commits or rolls back; inner contexts share
    its transaction.
    """
    pool = _get_pool()
    conn = pool.get_connection()

    is_outermost = pool.get_transaction_depth() == 0
    pool.increment_transaction_depth()

    try:
        yield conn
        if is_outermost and not read_only:
            conn.commit()
    except Exception:
        if is_outermost:
            conn.rollback()
        raise
    finally:
        pool.decrement_transaction_depth()


def close_pool():
    """Close the connection pool. Call on application shutdown."""
    global _pool
    if _pool is not None:
        _pool.close_all()
        _pool = None


def init_db() -> None:
    DB_PATH.parent.mkdir(exist_ok=True, parents=True)
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS menu_items (
                id INTEGER PRIMARY KEY,
                name TEXT,
                restaurant_id INTEGER,
                cuisine_id INTEGER NOT NULL,
                category_id INTEGER NOT NULL,
                spicy_level INTEGER NOT NULL DEFAULT 0,
                is_veg INTEGER NOT NULL DEFAULT 0,
                cuisine_name TEXT,
                category_name TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS user_ratings (
                user_id TEXT NOT NULL,
                item_id INTEGER NOT NULL,
                rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                rated_at TEXT DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (user_id, item_id)
            );

            CREATE TABLE IF NOT EXISTS user_interactions (
                user_id TEXT NOT NULL,
                item_id INTEGER NOT NULL,
                view_count INTEGER NOT NULL DEFAULT 0,
                cart_add_count INTEGER NOT NULL DEFAULT 0,
                search_count INTEGER NOT NULL DEFAULT 0,
                last_interaction_at TEXT NOT NULL,
                preference_score REAL NOT NULL DEFAULT 0,
                PRIMARY KEY (user_id, item_id)
            );

            CREATE INDEX IF NOT EXISTS idx_ratings_item ON user_ratings(item_id);
            CREATE INDEX IF NOT EXISTS idx_interactions_item ON user_interactions(item_id);
        """)
    logger.debug(f"Initialized database at {DB_PATH}")


def _row_to_item(row: sqlite3.Row) -> MenuItem:
    return MenuItem(
        id=row['id'],
        cuisine_id=row['cuisine_id'],
        category_id=row['category_id'],
        spicy_level=row['spicy_level'],
        is_veg=bool(row['is_veg']),
        name=row['name'],
        restaurant_id=row['restaurant_id'],
        cuisine_name=row['cuisine_name'],
        category_name=row['category_name'],
    )


def _row_to_interaction(row: sqlite3.Row) -> InteractionRecord:
    return InteractionRecord(
        user_id=row['user_id'],
        item_id=row['item_id'],
        view_count=row['view_count'],
        cart_add_count=row['cart_add_count'],
        search_count=row['search_count'],
        last_interaction_at=parse_timestamp_naive(row['last_interaction_at']),
        preference_score=row['preference_score'],
    )


def upsert_menu_items(items: Iterable[MenuItem]) -> int:
    """Insert or replace catalog rows. Returns the number written."""
    rows = [
        (
            item.id, item.name, item.restaurant_id, item.cuisine_id, item.category_id,
            item.spicy_level, int(item.is_veg), item.cuisine_name, item.category_name,
        )
        for item in items
    ]
    with get_db() as conn:
        conn.executemany("""
            INSERT OR REPLACE INTO menu_items
                (id, name, restaurant_id, cuisine_id, category_id, spicy_level, is_veg, cuisine_name, category_name)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, rows)
    return len(rows)


def upsert_rating(user_id: Hashable, item_id: Hashable, rating) -> int:
    """
    Insert or overwrite a user's rating for an item.

    Raises:
        InvalidRatingError: if the rating is not a whole number within 1..5
    """
    value = validate_rating(rating)
    with get_db() as conn:
        conn.execute("""
            INSERT INTO user_ratings (user_id, item_id, rating)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id, item_id) DO UPDATE SET
                rating = excluded.rating,
                rated_at = CURRENT_TIMESTAMP
        """, (str(user_id), item_id, value))
    return value


def record_interaction(
    user_id: Hashable,
    item_id: Hashable,
    kind: InteractionKind | str,
    weight: float = 1.0,
    scorer: InteractionScorer | None = None,
    now: datetime | None = None,
) -> InteractionRecord:
    """
    Count one interaction event and refresh the pair's preference score.

    A first interaction inserts the row with the triggering counter at 1 and a
    placeholder score of weight * base weight; a repeat bumps the counter and
    the timestamp. Either way the score is then recomputed from the stored
    counters.
    """
    kind = InteractionKind.parse(kind)
    scorer = scorer or InteractionScorer()
    now = to_naive_utc(now or scorer.clock())
    user_key = str(user_id)
    initial = {counter: 0 for counter in ('view_count', 'cart_add_count', 'search_count')}
    initial[kind.counter] = 1

    with get_db() as conn:
        # kind.counter is one of three fixed column names
        conn.execute(f"""
            INSERT INTO user_interactions
                (user_id, item_id, view_count, cart_add_count, search_count, last_interaction_at, preference_score)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, item_id) DO UPDATE SET
                {kind.counter} = {kind.counter} + 1,
                last_interaction_at = excluded.last_interaction_at
        """, (
            user_key, item_id,
            initial['view_count'], initial['cart_add_count'], initial['search_count'],
            format_timestamp(now), scorer.initial_score(kind, weight),
        ))

        row = conn.execute(
            "SELECT * FROM user_interactions WHERE user_id = ? AND item_id = ?",
            (user_key, item_id),
        ).fetchone()
        record = _row_to_interaction(row)
        record.preference_score = scorer.score_record(record, weight=weight, now=now)

        conn.execute(
            "UPDATE user_interactions SET preference_score = ? WHERE user_id = ? AND item_id = ?",
            (record.preference_score, user_key, item_id),
        )

    logger.debug(
        f"Recorded {kind.weight_key} for user={user_key} item={item_id}: "
        f"views={record.view_count} carts={record.cart_add_count} searches={record.search_count} "
        f"score={record.preference_score:.3f}"
    )
    return record


def import_interactions(records: Iterable[InteractionRecord], scorer: InteractionScorer | None = None) -> int:
    """
    Bulk load counter rows (e.g. from an export), replacing existing pairs.

    Scores are recomputed from each row's counters rather than trusted.
    """
    scorer = scorer or InteractionScorer()
    now = to_naive_utc(scorer.clock())
    rows = []
    for record in records:
        last = record.last_interaction_at or now
        score = scorer.score(record.view_count, record.cart_add_count, record.search_count, last, now=now)
        rows.append((
            str(record.user_id), record.item_id,
            record.view_count, record.cart_add_count, record.search_count,
            format_timestamp(last), score,
        ))
    with get_db() as conn:
        conn.executemany("""
            INSERT OR REPLACE INTO user_interactions
                (user_id, item_id, view_count, cart_add_count, search_count, last_interaction_at, preference_score)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, rows)
    return len(rows)


def load_catalog() -> list[MenuItem]:
    with get_db(read_only=True) as conn:
        rows = conn.execute("SELECT * FROM menu_items ORDER BY id").fetchall()
    return [_row_to_item(row) for row in rows]


def load_ratings() -> list[Rating]:
    with get_db(read_only=True) as conn:
        rows = conn.execute(
            "SELECT user_id, item_id, rating FROM user_ratings ORDER BY user_id, item_id"
        ).fetchall()
    return [Rating(user_id=row['user_id'], item_id=row['item_id'], rating=row['rating']) for row in rows]


def load_user_interactions(user_id: Hashable) -> list[InteractionRecord]:
    with get_db(read_only=True) as conn:
        rows = conn.execute(
            "SELECT * FROM user_interactions WHERE user_id = ? ORDER BY item_id",
            (str(user_id),),
        ).fetchall()
    return [_row_to_interaction(row) for row in rows]


def load_all_interactions() -> list[InteractionRecord]:
    with get_db(read_only=True) as conn:
        rows = conn.execute("SELECT * FROM user_interactions ORDER BY user_id, item_id").fetchall()
    return [_row_to_interaction(row) for row in rows]


def user_has_interactions(user_id: Hashable) -> bool:
    with get_db(read_only=True) as conn:
        count = conn.execute(
            "SELECT COUNT(*) FROM user_interactions WHERE user_id = ?", (str(user_id),)
        ).fetchone()[0]
    return count > 0


def get_stats() -> dict:
    with get_db(read_only=True) as conn:
        return {
            'menu_items': conn.execute("SELECT COUNT(*) FROM menu_items").fetchone()[0],
            'ratings': conn.execute("SELECT COUNT(*) FROM user_ratings").fetchone()[0],
            'rating_users': conn.execute("SELECT COUNT(DISTINCT user_id) FROM user_ratings").fetchone()[0],
            'interactions': conn.execute("SELECT COUNT(*) FROM user_interactions").fetchone()[0],
            'interaction_users': conn.execute(
                "SELECT COUNT(DISTINCT user_id) FROM user_interactions"
            ).fetchone()[0],
        }
