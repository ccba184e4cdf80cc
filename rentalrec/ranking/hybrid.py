"""
Hybrid Ranking.

Merges the collaborative-filtering lists with popularity, trending,
diversity and cold-start policies:

- merge: position-decayed user-based and item-based scores plus a
  popularity fallback for every other candidate
- cold_start: popular plus highly rated items for users without history
- diversify: cap items per category, then add a few random extras
- trending: recent bookings and interactions weighted with rating
- bundle: deduplicated union of several lists with per-source counts

All rankings break ties by ascending item id and skip unavailable items.

Example:
    >>> ranker = HybridRanker()
    >>> ranker.merge(user_based, item_based, catalog, exclude_ids=booked)
    >>> ranker.trending(catalog, recent_bookings={3: 2}, recent_interactions={3: 7})
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set
import logging

import numpy as np

from ..config import HybridWeights, RankingConfig
from ..domain import Item, VehicleCategory

logger = logging.getLogger(__name__)

# Trending score weights
TRENDING_BOOKING_WEIGHT = 2.0
TRENDING_INTERACTION_WEIGHT = 0.5
TRENDING_RATING_WEIGHT = 10.0

# Popularity fallback
POPULARITY_RATING_WEIGHT = 0.6
POPULARITY_REVIEW_WEIGHT = 0.4
POPULARITY_REVIEW_SATURATION = 50.0

# Month (1-12) -> category promoted by seasonal recommendations
SEASONAL_CATEGORIES: Dict[int, VehicleCategory] = {
    **{m: VehicleCategory.SUV for m in (12, 1, 2)},
    **{m: VehicleCategory.CONVERTIBLE for m in (6, 7, 8)},
    **{m: VehicleCategory.SEDAN for m in (3, 4, 5, 9, 10, 11)},
}


def _dedupe(lists: Iterable[Sequence[Item]], limit: int) -> List[Item]:
    """Union of ``lists`` in insertion order, first ``limit`` distinct items."""
    seen: Set[int] = set()
    result: List[Item] = []
    for items in lists:
        for item in items:
            if item.id in seen:
                continue
            seen.add(item.id)
            result.append(item)
            if len(result) >= limit:
                return result
    return result


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class HybridRecommendations:
    """
    Combined recommendation bundle for one user.

    Counts are the sizes of the source lists before deduplication.
    """
    user_id: int
    items: List[Item]
    personalized_count: int
    popular_count: int
    trending_count: int
    diverse_count: int
    generated_at: datetime = field(default_factory=datetime.now)

    def summary(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'itemIds': [item.id for item in self.items],
            'personalizedCount': self.personalized_count,
            'popularCount': self.popular_count,
            'trendingCount': self.trending_count,
            'diverseCount': self.diverse_count,
            'generatedAt': self.generated_at.isoformat(),
        }


# ============================================================================
# HybridRanker
# ============================================================================

class HybridRanker:
    """
    Rank aggregation and fallback policies.

    Attributes:
        weights: Merge weights and position decays
        config: List sizes and thresholds
        rng: Random source for diversity extras
    """

    def __init__(
        self,
        weights: Optional[HybridWeights] = None,
        config: Optional[RankingConfig] = None,
        rng: Optional[np.random.Generator] = None
    ):
        self.weights = weights or HybridWeights()
        self.config = config or RankingConfig()
        self.rng = rng if rng is not None else np.random.default_rng()

    # ------------------------------------------------------------------------
    # Cold start
    # ------------------------------------------------------------------------

    def is_cold_start(self, booking_count: int, interaction_count: int) -> bool:
        """True when a user has too little history for personalization."""
        return (
            booking_count < self.config.cold_start_min_bookings
            and interaction_count < self.config.cold_start_min_interactions
        )

    def popular_items(self, catalog: Sequence[Item], limit: Optional[int] = None) -> List[Item]:
        """Available items by rating, then review count, descending."""
        limit = self.config.top_n if limit is None else limit
        ranked = sorted(
            (item for item in catalog if item.is_available),
            key=lambda item: (-item.rating, -item.review_count, item.id)
        )
        return ranked[:limit]

    def highly_rated(self, catalog: Sequence[Item]) -> List[Item]:
        """Available items rated at or above the threshold, most reviewed first."""
        ranked = sorted(
            (
                item for item in catalog
                if item.is_available and item.rating >= self.config.highly_rated_threshold
            ),
            key=lambda item: (-item.review_count, item.id)
        )
        return ranked[:self.config.highly_rated_limit]

    def cold_start(self, catalog: Sequence[Item]) -> List[Item]:
        """Popular items followed by highly rated ones, deduplicated."""
        results = _dedupe(
            [self.popular_items(catalog), self.highly_rated(catalog)],
            self.config.top_n
        )
        logger.info(f"Cold start list: {len(results)} items")
        return results

    # ------------------------------------------------------------------------
    # Hybrid merge
    # ------------------------------------------------------------------------

    @staticmethod
    def popularity_score(item: Item) -> float:
        """``0.6 * rating/5 + 0.4 * min(1, reviewCount/50)``, in [0, 1]."""
        rating_score = min(1.0, max(0.0, item.rating / 5.0))
        review_score = min(1.0, max(0, item.review_count) / POPULARITY_REVIEW_SATURATION)
        return POPULARITY_RATING_WEIGHT * rating_score + POPULARITY_REVIEW_WEIGHT * review_score

    def merge(
        self,
        user_based: Sequence[Item],
        item_based: Sequence[Item],
        catalog: Sequence[Item],
        exclude_ids: Optional[Set[int]] = None,
        top_n: Optional[int] = None
    ) -> List[Item]:
        """
        Combine the CF lists with a popularity fallback.

        Position ``i`` of the user-based list scores
        ``personalized * (1 - personalized_decay * i)``, the item-based list
        likewise with its own weight and decay; scores of an item present in
        both lists add up. Every other available, non-excluded catalog item
        scores ``popularity * popularity_score(item)``.

        Args:
            user_based: Ranked user-based CF items
            item_based: Ranked item-based CF items
            catalog: Candidate items
            exclude_ids: Item ids never returned (the user's bookings)
            top_n: Output size (defaults to ``config.top_n``)

        Returns:
            Up to ``top_n`` items by descending combined score
        """
        top_n = self.config.top_n if top_n is None else top_n
        exclude_ids = exclude_ids or set()
        w = self.weights

        by_id: Dict[int, Item] = {}
        scores: Dict[int, float] = defaultdict(float)

        for position, item in enumerate(user_based):
            if item.id in exclude_ids or not item.is_available:
                continue
            by_id[item.id] = item
            scores[item.id] += w.personalized * (1.0 - w.personalized_decay * position)

        for position, item in enumerate(item_based):
            if item.id in exclude_ids or not item.is_available:
                continue
            by_id[item.id] = item
            scores[item.id] += w.item_based * (1.0 - w.item_based_decay * position)

        for item in catalog:
            if item.id in scores or item.id in exclude_ids or not item.is_available:
                continue
            by_id[item.id] = item
            scores[item.id] = w.popularity * self.popularity_score(item)

        ranked = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))
        results = [by_id[item_id] for item_id, _ in ranked[:top_n]]

        logger.info(
            f"Hybrid merge: user_based={len(user_based)}, item_based={len(item_based)}, "
            f"candidates={len(scores)}, returned={len(results)}"
        )
        return results

    # ------------------------------------------------------------------------
    # Diversity
    # ------------------------------------------------------------------------

    def diversify(
        self,
        personalized: Sequence[Item],
        catalog: Sequence[Item],
        diversity_factor: Optional[int] = None
    ) -> List[Item]:
        """
        Spread a personalized list across categories.

        Keeps up to ``diversity_factor`` items per category (categories in
        order of first appearance), appends a few random available catalog
        items not in ``personalized`` and returns at most ``top_n`` distinct
        items.
        """
        factor = self.config.diversity_factor if diversity_factor is None else diversity_factor

        groups: Dict[VehicleCategory, List[Item]] = {}
        for item in personalized:
            groups.setdefault(item.category, []).append(item)

        diverse: List[Item] = []
        for items in groups.values():
            diverse.extend(items[:max(0, factor)])

        present = {item.id for item in personalized}
        extras_pool = sorted(
            (item for item in catalog if item.is_available and item.id not in present),
            key=lambda item: item.id
        )
        extra_count = min(self.config.diversity_random_extra, len(extras_pool))
        picks = self.rng.choice(len(extras_pool), size=extra_count, replace=False)
        diverse.extend(extras_pool[int(i)] for i in picks)

        return _dedupe([diverse], self.config.top_n)

    # ------------------------------------------------------------------------
    # Trending & seasonal
    # ------------------------------------------------------------------------

    @staticmethod
    def trending_score(recent_bookings: int, recent_interactions: int, rating: float) -> float:
        """``2 * bookings + 0.5 * interactions + 10 * rating`` over the trending window."""
        return (
            TRENDING_BOOKING_WEIGHT * recent_bookings
            + TRENDING_INTERACTION_WEIGHT * recent_interactions
            + TRENDING_RATING_WEIGHT * rating
        )

    def trending(
        self,
        catalog: Sequence[Item],
        recent_bookings: Dict[int, int],
        recent_interactions: Dict[int, int]
    ) -> List[Item]:
        """
        Available items by trending score.

        Args:
            catalog: Candidate items
            recent_bookings: item id -> bookings inside the window
            recent_interactions: item id -> tracked interactions inside the window
        """
        scored = [
            (
                self.trending_score(
                    recent_bookings.get(item.id, 0),
                    recent_interactions.get(item.id, 0),
                    item.rating
                ),
                item
            )
            for item in catalog
            if item.is_available
        ]
        scored.sort(key=lambda pair: (-pair[0], pair[1].id))
        return [item for _, item in scored[:self.config.top_n]]

    def seasonal(self, catalog: Sequence[Item], month: int) -> List[Item]:
        """Top-rated available items of the category promoted in ``month``."""
        category = SEASONAL_CATEGORIES[month]
        ranked = sorted(
            (item for item in catalog if item.is_available and item.category == category),
            key=lambda item: (-item.rating, item.id)
        )
        return ranked[:self.config.top_n]

    # ------------------------------------------------------------------------
    # Bundle
    # ------------------------------------------------------------------------

    def bundle(
        self,
        user_id: int,
        personalized: Sequence[Item],
        popular: Sequence[Item],
        trending: Sequence[Item],
        diverse: Sequence[Item]
    ) -> HybridRecommendations:
        items = _dedupe(
            [personalized, popular, trending, diverse],
            self.config.hybrid_bundle_size
        )
        return HybridRecommendations(
            user_id=user_id,
            items=items,
            personalized_count=len(personalized),
            popular_count=len(popular),
            trending_count=len(trending),
            diverse_count=len(diverse),
        )
