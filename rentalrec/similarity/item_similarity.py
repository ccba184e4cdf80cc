"""
Item-Item Similarity.

Two modes:
- Rich: attributes, co-booking overlap, rating correlation and price
  closeness, given a booking/review snapshot (``ItemInteractionIndex``)
- Attribute-only: category, seats, transmission, fuel and luggage, for call
  sites without interaction context

Example:
    >>> context = ItemInteractionIndex(bookings, reviews)
    >>> engine = ItemSimilarity()
    >>> engine.similarity_with_context(car_a, car_b, context)
    >>> engine.find_similar_items(car_a, catalog, top_k=5, context=context)
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Set
import logging

from ..config import ItemSimilarityWeights
from ..domain import Booking, Item, ItemSimilarityScore, Review, User
from .measures import (
    jaccard_similarity,
    pearson_correlation,
    ratio_similarity,
    rescale_correlation,
)

logger = logging.getLogger(__name__)

NEUTRAL_SIMILARITY = 0.5


# ============================================================================
# Interaction Index
# ============================================================================

class ItemInteractionIndex:
    """
    Per-item view of a booking/review snapshot.

    Attributes:
        booked_by: item id -> ids of users who booked it
        booking_counts: item id -> number of bookings
        ratings: item id -> {user id -> rating}; a later review by the
            same user replaces the earlier one
    """

    def __init__(self, bookings: Iterable[Booking], reviews: Iterable[Review]):
        self.booked_by: Dict[int, Set[int]] = defaultdict(set)
        self.booking_counts: Dict[int, int] = defaultdict(int)
        self.ratings: Dict[int, Dict[int, int]] = defaultdict(dict)

        for booking in bookings:
            self.booked_by[booking.item_id].add(booking.user_id)
            self.booking_counts[booking.item_id] += 1

        for review in reviews:
            self.ratings[review.item_id][review.user_id] = review.rating

    @classmethod
    def from_users(cls, users: Iterable[User]) -> 'ItemInteractionIndex':
        """Build the index from each user's own booking and review lists."""
        users = list(users)
        return cls(
            bookings=(b for u in users for b in u.bookings),
            reviews=(r for u in users for r in u.reviews),
        )

    def users_who_booked(self, item_id: int) -> Set[int]:
        return self.booked_by.get(item_id, set())

    def ratings_for(self, item_id: int) -> Dict[int, int]:
        return self.ratings.get(item_id, {})

    def booking_count(self, item_id: int) -> int:
        return self.booking_counts.get(item_id, 0)


# ============================================================================
# ItemSimilarity
# ============================================================================

class ItemSimilarity:
    """Weighted multi-signal similarity between two vehicles."""

    def __init__(self, weights: Optional[ItemSimilarityWeights] = None):
        self.weights = weights or ItemSimilarityWeights()

    def overall_similarity(
        self,
        item1: Item,
        item2: Item,
        bookings: Sequence[Booking],
        reviews: Sequence[Review]
    ) -> float:
        """
        Overall similarity in [0, 1] against a booking/review snapshot.

        For repeated comparisons build one ``ItemInteractionIndex`` and call
        ``similarity_with_context`` instead.
        """
        return self.similarity_with_context(item1, item2, ItemInteractionIndex(bookings, reviews))

    def similarity_with_context(
        self,
        item1: Item,
        item2: Item,
        context: ItemInteractionIndex
    ) -> float:
        if item1.id == item2.id:
            return 1.0

        attribute = self.attribute_similarity(item1, item2)
        co_booking = self.co_booking_similarity(item1, item2, context)
        rating = self.rating_correlation_similarity(item1, item2, context)
        price = self.price_similarity(item1, item2)

        overall = (
            self.weights.attribute * attribute
            + self.weights.co_booking * co_booking
            + self.weights.rating * rating
            + self.weights.price * price
        )
        logger.debug(
            f"Item similarity {item1.id} vs {item2.id} = {overall:.4f} "
            f"(attribute={attribute:.3f}, co_booking={co_booking:.3f}, "
            f"rating={rating:.3f}, price={price:.3f})"
        )
        return overall

    def attribute_similarity(self, item1: Item, item2: Item) -> float:
        """Mean of five attribute closeness scores, each in [0, 1]."""
        if item1.id == item2.id:
            return 1.0

        scores = (
            1.0 if item1.category == item2.category else 0.0,
            ratio_similarity(item1.seats, item2.seats),
            1.0 if (item1.transmission or "").casefold() == (item2.transmission or "").casefold() else 0.0,
            1.0 if item1.fuel_type == item2.fuel_type else 0.0,
            ratio_similarity(item1.luggage_capacity, item2.luggage_capacity),
        )
        return sum(scores) / len(scores)

    def co_booking_similarity(
        self,
        item1: Item,
        item2: Item,
        context: ItemInteractionIndex
    ) -> float:
        """Jaccard overlap of the users who booked each item."""
        users1 = context.users_who_booked(item1.id)
        users2 = context.users_who_booked(item2.id)

        if not users1 and not users2:
            return NEUTRAL_SIMILARITY
        if not users1 or not users2:
            return 0.0
        return jaccard_similarity(users1, users2)

    def rating_correlation_similarity(
        self,
        item1: Item,
        item2: Item,
        context: ItemInteractionIndex
    ) -> float:
        """Pearson correlation over common raters, rescaled to [0, 1]."""
        ratings1 = context.ratings_for(item1.id)
        ratings2 = context.ratings_for(item2.id)

        if not ratings1 and not ratings2:
            return NEUTRAL_SIMILARITY
        if not ratings1 or not ratings2:
            return 0.0

        common = sorted(set(ratings1) & set(ratings2))
        if len(common) < 2:
            return 0.0

        correlation = pearson_correlation(
            [ratings1[u] for u in common],
            [ratings2[u] for u in common]
        )
        return rescale_correlation(correlation)

    def price_similarity(self, item1: Item, item2: Item) -> float:
        return ratio_similarity(item1.daily_price, item2.daily_price)

    def find_similar_items(
        self,
        target: Item,
        catalog: Sequence[Item],
        top_k: int,
        context: Optional[ItemInteractionIndex] = None,
        exclude_ids: Optional[Set[int]] = None
    ) -> List[ItemSimilarityScore]:
        """
        Top-K available items most similar to ``target``.

        Args:
            target: Reference item
            catalog: Candidate items
            top_k: Maximum number of results
            context: Interaction snapshot; attribute-only mode when None
            exclude_ids: Item ids never returned

        Returns:
            Scores sorted by descending similarity, ties by ascending item id
        """
        exclude_ids = exclude_ids or set()

        if context is not None:
            score = lambda other: self.similarity_with_context(target, other, context)
        else:
            score = lambda other: self.attribute_similarity(target, other)

        scored = [
            ItemSimilarityScore(item=item, score=score(item))
            for item in catalog
            if item.id != target.id and item.is_available and item.id not in exclude_ids
        ]
        scored.sort(key=lambda s: (-s.score, s.item.id))
        return scored[:max(0, top_k)]
