"""
Time-decayed preference scores from interaction counters.

score = (views * W_view + cart_adds * W_cart + searches * W_search)
        * exp(-decay * days_since_last_interaction) * weight

The decay depends on "now", so scores are recomputed at read time rather
than trusted from storage.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Hashable

from .config import INTERACTION_WEIGHTS, TIME_DECAY_FACTOR
from .models import InteractionKind, InteractionRecord

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the store writes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert aware datetimes to naive UTC; naive ones are assumed UTC already."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class InteractionWeights:
    """Base weight per interaction kind. Immutable; build a new one to tune."""
    view: float = INTERACTION_WEIGHTS['view']
    cart_add: float = INTERACTION_WEIGHTS['cart_add']
    search: float = INTERACTION_WEIGHTS['search']
    restaurant_view: float = INTERACTION_WEIGHTS['restaurant_view']
    restaurant_menu_view: float = INTERACTION_WEIGHTS['restaurant_menu_view']
    menu_item_cart_add: float = INTERACTION_WEIGHTS['menu_item_cart_add']

    def for_kind(self, kind: InteractionKind | str) -> float:
        return getattr(self, InteractionKind.parse(kind).weight_key)

    def with_overrides(self, **overrides: float) -> "InteractionWeights":
        return replace(self, **overrides)


DEFAULT_WEIGHTS = InteractionWeights()


class InteractionScorer:
    """
    Computes preference scores for (user, item) interaction counters.

    Args:
        weights: base weights per interaction kind
        decay_rate: exponential decay per day
        clock: returns "now" as a naive UTC datetime (injectable for tests)
    """

    def __init__(
        self,
        weights: InteractionWeights = DEFAULT_WEIGHTS,
        decay_rate: float = TIME_DECAY_FACTOR,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.weights = weights
        self.decay_rate = decay_rate
        self.clock = clock

    def time_decay(self, last_interaction_at: datetime | None, now: datetime | None = None) -> float:
        """exp(-rate * days); fractional days, never above 1.0 for future timestamps."""
        if last_interaction_at is None:
            return 1.0
        now = to_naive_utc(now or self.clock())
        days = (now - to_naive_utc(last_interaction_at)).total_seconds() / SECONDS_PER_DAY
        return math.exp(-self.decay_rate * max(days, 0.0))

    def score(
        self,
        view_count: int,
        cart_add_count: int,
        search_count: int,
        last_interaction_at: datetime | None,
        weight: float = 1.0,
        now: datetime | None = None,
    ) -> float:
        base = (
            view_count * self.weights.view
            + cart_add_count * self.weights.cart_add
            + search_count * self.weights.search
        )
        return base * self.time_decay(last_interaction_at, now) * weight

    def score_record(self, record: InteractionRecord, weight: float = 1.0, now: datetime | None = None) -> float:
        """Current (read-time) score of a stored record."""
        return self.score(
            record.view_count,
            record.cart_add_count,
            record.search_count,
            record.last_interaction_at,
            weight=weight,
            now=now,
        )

    def initial_score(self, kind: InteractionKind | str, weight: float = 1.0) -> float:
        """Placeholder written with a brand new record, before the full recompute."""
        return weight * self.weights.for_kind(kind)

    def time_decayed_weight(
        self,
        count: int,
        kind: InteractionKind | str,
        last_interaction_at: datetime | None,
        now: datetime | None = None,
    ) -> float:
        """Weight of `count` interactions of a single kind: count * base * decay."""
        return count * self.weights.for_kind(kind) * self.time_decay(last_interaction_at, now)


def apply_interaction(
    record: InteractionRecord | None,
    user_id: Hashable,
    item_id: Hashable,
    kind: InteractionKind | str,
    scorer: InteractionScorer,
    weight: float = 1.0,
    now: datetime | None = None,
) -> InteractionRecord:
    """
    Insert-or-increment a record for one interaction event.

    The counter for `kind` goes up by one and the score is recomputed from the
    new counter totals (not added incrementally). Returns a new record; the
    input is left untouched.
    """
    kind = InteractionKind.parse(kind)
    now = to_naive_utc(now or scorer.clock())

    if record is None:
        updated = InteractionRecord(
            user_id=user_id,
            item_id=item_id,
            last_interaction_at=now,
            preference_score=scorer.initial_score(kind, weight),
        )
    else:
        updated = replace(record, last_interaction_at=now)

    setattr(updated, kind.counter, getattr(updated, kind.counter) + 1)
    updated.preference_score = scorer.score_record(updated, weight=weight, now=now)
    logger.debug(
        f"Interaction {kind.weight_key} for user={user_id} item={item_id}: "
        f"score={updated.preference_score:.3f}"
    )
    return updated
