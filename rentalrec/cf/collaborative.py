"""
Collaborative Filtering over booking history.

Strategies:
- User-based: items booked by the target's nearest neighbours, weighted by
  neighbour similarity and item popularity
- Item-based: items most similar to what the user already booked, with
  similarity summed over every booked source item

Both return at most ``MAX_RESULTS`` items, best first, ties by ascending
item id, and never return booked or unavailable items.
"""

from collections import Counter, defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence
import logging

from ..domain import Item, User
from ..similarity import ItemInteractionIndex, ItemSimilarity, UserSimilarity

logger = logging.getLogger(__name__)

MAX_RESULTS = 10
PREFERRED_FEATURES_LIMIT = 5
EXPLANATION_USER_LIMIT = 3

# Popularity of an item inside user-based CF
BOOKING_COUNT_WEIGHT = 0.6
RATING_WEIGHT = 0.4


def item_popularity(item: Item, all_users: Iterable[User]) -> float:
    """
    ``0.6 * bookingCount + 0.4 * rating / 5``.

    ``bookingCount`` counts every booking of the item across ``all_users``,
    so the score is unbounded above.
    """
    booking_count = sum(
        1 for user in all_users for booking in user.bookings if booking.item_id == item.id
    )
    return BOOKING_COUNT_WEIGHT * booking_count + RATING_WEIGHT * (item.rating / 5.0)


def infer_preferred_features(user: User, limit: int = PREFERRED_FEATURES_LIMIT) -> List[str]:
    """Most frequent features across the user's booked vehicles."""
    counts = Counter(
        feature for booking in user.bookings for feature in booking.item.features
    )
    return [feature for feature, _ in counts.most_common(limit)]


def _top(scores: Dict[int, float], catalog_by_id: Dict[int, Item], limit: int) -> List[Item]:
    ranked = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))
    return [catalog_by_id[item_id] for item_id, _ in ranked[:limit]]


class CollaborativeFiltering:
    """
    User-based and item-based recommenders.

    Example:
        >>> cf = CollaborativeFiltering(UserSimilarity(), ItemSimilarity())
        >>> cf.user_based(alice, all_users, catalog, top_k=5)
        >>> cf.item_based(alice, catalog, top_k=10, context=ItemInteractionIndex.from_users(all_users))
    """

    def __init__(
        self,
        user_similarity: Optional[UserSimilarity] = None,
        item_similarity: Optional[ItemSimilarity] = None
    ):
        self.user_similarity = user_similarity or UserSimilarity()
        self.item_similarity = item_similarity or ItemSimilarity()

    def user_based(
        self,
        target: User,
        all_users: Sequence[User],
        catalog: Sequence[Item],
        top_k: int
    ) -> List[Item]:
        """
        Recommend items booked by the ``top_k`` most similar users.

        Args:
            target: User to recommend for
            all_users: Every known user (neighbour pool and popularity base)
            catalog: Candidate items; unavailable ones are skipped
            top_k: Number of neighbours to use

        Returns:
            Up to 10 items by descending accumulated score
        """
        logger.info(f"User-based CF for user {target.id} (top_k={top_k})")

        neighbours = self.user_similarity.find_similar_users(target, all_users, top_k)
        if not neighbours:
            logger.info(f"No similar users found for user {target.id}")
            return []

        available = {item.id: item for item in catalog if item.is_available}
        booked = target.booked_item_ids()
        popularity_cache: Dict[int, float] = {}
        scores: Dict[int, float] = defaultdict(float)

        for neighbour in neighbours:
            for item_id in neighbour.user.booked_item_ids():
                if item_id in booked or item_id not in available:
                    continue
                if item_id not in popularity_cache:
                    popularity_cache[item_id] = item_popularity(available[item_id], all_users)
                scores[item_id] += neighbour.score * popularity_cache[item_id]

        results = _top(scores, available, MAX_RESULTS)
        logger.info(f"User-based CF produced {len(results)} items for user {target.id}")
        return results

    def item_based(
        self,
        user: User,
        catalog: Sequence[Item],
        top_k: int,
        context: Optional[ItemInteractionIndex] = None
    ) -> List[Item]:
        """
        Recommend items similar to the ones ``user`` booked.

        For each booked item the ``top_k`` most similar candidates are found
        and their similarity is added to the candidate's score. With a
        ``context`` the rich overall similarity is used, otherwise attribute
        similarity only.

        Returns:
            Up to 10 items by descending summed similarity
        """
        logger.info(f"Item-based CF for user {user.id} (top_k={top_k})")

        booked = user.booked_item_ids()
        if not booked:
            logger.info(f"User {user.id} has no booking history for item-based CF")
            return []

        available = {item.id: item for item in catalog if item.is_available}
        # Booked snapshots may no longer be in the catalog
        sources = {b.item_id: available.get(b.item_id, b.item) for b in user.bookings}
        scores: Dict[int, float] = defaultdict(float)

        for source_id in sorted(sources):
            similar = self.item_similarity.find_similar_items(
                sources[source_id],
                list(available.values()),
                top_k,
                context=context,
                exclude_ids=booked
            )
            for match in similar:
                scores[match.item.id] += match.score

        results = _top(scores, available, MAX_RESULTS)
        logger.info(f"Item-based CF produced {len(results)} items for user {user.id}")
        return results

    def explain(
        self,
        target: User,
        item: Item,
        all_users: Sequence[User],
        top_k: int
    ) -> Dict[str, Any]:
        """
        Why ``item`` would be recommended to ``target``.

        Returns:
            Dict with ``popularityScore`` and, when non-empty,
            ``similarUsers`` (names of up to 3 neighbours who booked the
            item) and ``matchingFeatures``
        """
        explanations: Dict[str, Any] = {}

        neighbours = self.user_similarity.find_similar_users(target, all_users, top_k)
        names = [
            n.user.display_name for n in neighbours
            if item.id in n.user.booked_item_ids()
        ][:EXPLANATION_USER_LIMIT]
        if names:
            explanations['similarUsers'] = names

        explanations['popularityScore'] = item_popularity(item, all_users)

        preferred = infer_preferred_features(target)
        matching = [f for f in item.features if f in preferred]
        if matching:
            explanations['matchingFeatures'] = matching

        return explanations
