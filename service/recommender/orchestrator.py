"""
Recommendation Orchestrator.

Transport-agnostic facade over the engine. It:
- reads users, items, bookings and reviews from a CatalogRepository
- routes users to cold-start or personalized (hybrid CF) ranking
- caches results per namespace and clears them on refresh
- tracks interactions and derives CTR/conversion/diversity/coverage metrics
- trains and serves immutable latent factor snapshots

Cached entries hold item ids only; they are resolved against the repository
on every read, so deleted items drop out and a deleted subject raises
NotFoundError.

Example:
    >>> repo = InMemoryCatalogRepository(users, items)
    >>> orchestrator = RecommendationOrchestrator(repo)
    >>> orchestrator.get_recommendations_for_user(7)
    >>> orchestrator.track_interaction(7, 12, "CLICK")
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Union
import threading
import logging

import numpy as np

from rentalrec.cf import CollaborativeFiltering, MatrixFactorization, TrainedModel, infer_preferred_features
from rentalrec.config import EngineConfig
from rentalrec.domain import InteractionEvent, InteractionType, Item, User, VehicleCategory
from rentalrec.errors import NotFoundError, ValidationError
from rentalrec.ranking import HybridRanker, HybridRecommendations
from rentalrec.similarity import ItemInteractionIndex, ItemSimilarity, UserSimilarity
from rentalrec.similarity.user_similarity import most_common_location

from .cache import (
    POPULAR_ITEMS,
    SIMILAR_ITEMS,
    TRENDING_ITEMS,
    USER_RECOMMENDATIONS,
    CacheManager,
)
from .interactions import InteractionStore
from .repository import CatalogRepository

logger = logging.getLogger(__name__)

DEFAULT_FEATURES = ["Air Conditioning", "Bluetooth", "GPS"]
DEFAULT_DAILY_BUDGET = 100.0
BUDGET_TOLERANCE = 1.2
GOOD_RATING_THRESHOLD = 4.0
RECENT_SEARCH_LIMIT = 5

PRICE_REASON = "Within your typical budget"
LOCATION_REASON = "Convenient location based on your history"
RATING_REASON = "Highly rated by other users"


def average_daily_spend(user: User) -> Optional[float]:
    """Mean of ``total_price / duration_days`` over bookings lasting at least a day."""
    per_day = [b.total_price / b.duration_days for b in user.bookings if b.duration_days > 0]
    if not per_day:
        return None
    return float(np.mean(per_day))


def _by_rating(items: Sequence[Item], limit: int) -> List[Item]:
    return sorted(items, key=lambda item: (-item.rating, item.id))[:limit]


class RecommendationOrchestrator:
    """
    Entry point for every recommendation operation.

    Attributes:
        repository: Source of domain snapshots
        config: Engine configuration
        cache: Namespaced response cache
        interactions: Per-user interaction store
    """

    def __init__(
        self,
        repository: CatalogRepository,
        config: Optional[EngineConfig] = None,
        cache: Optional[CacheManager] = None,
        interactions: Optional[InteractionStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[np.random.Generator] = None
    ):
        self.repository = repository
        self.config = config or EngineConfig()
        self.clock = clock or datetime.now

        self.cache = cache or CacheManager(self.config.cache)
        self.interactions = interactions or InteractionStore(
            max_events_per_user=self.config.interactions.max_events_per_user
        )

        self.user_similarity = UserSimilarity(
            weights=self.config.user_similarity,
            booking_weights=self.config.booking_similarity,
            clock=self.clock
        )
        self.item_similarity = ItemSimilarity(self.config.item_similarity)
        self.cf = CollaborativeFiltering(self.user_similarity, self.item_similarity)
        self.ranker = HybridRanker(self.config.hybrid, self.config.ranking, rng=rng)
        self.matrix_factorization = MatrixFactorization(self.config.latent)

        self._model: Optional[TrainedModel] = None
        self._model_lock = threading.Lock()

        logger.info("RecommendationOrchestrator initialized")

    # ========================================================================
    # Lookups
    # ========================================================================

    def _require_user(self, user_id: int) -> User:
        user = self.repository.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def _require_item(self, item_id: int) -> Item:
        item = self.repository.get_item(item_id)
        if item is None:
            raise NotFoundError("Item", item_id)
        return item

    def _catalog(self) -> List[Item]:
        return self.repository.list_items(available_only=True)

    def _hydrate(self, item_ids: Sequence[int]) -> List[Item]:
        """Resolve cached ids, dropping items that vanished or became unavailable."""
        items = []
        for item_id in item_ids:
            item = self.repository.get_item(item_id)
            if item is not None and item.is_available:
                items.append(item)
        return items

    @staticmethod
    def _ids(items: Sequence[Item]) -> List[int]:
        return [item.id for item in items]

    @staticmethod
    def _without_booked(items: Sequence[Item], user: User) -> List[Item]:
        booked = user.booked_item_ids()
        return [item for item in items if item.id not in booked]

    def _interaction_context(self) -> ItemInteractionIndex:
        return ItemInteractionIndex(self.repository.list_bookings(), self.repository.list_reviews())

    # ========================================================================
    # Core recommendations
    # ========================================================================

    def has_sufficient_data_for_personalization(self, user_id: int) -> bool:
        """At least 2 bookings or 5 tracked interactions; False for unknown users."""
        user = self.repository.get_user(user_id)
        if user is None:
            return False
        return not self.ranker.is_cold_start(
            len(user.bookings),
            self.interactions.count_for_user(user_id)
        )

    def get_recommendations_for_user(self, user_id: int) -> List[Item]:
        """
        Personalized recommendations.

        Users without enough history get the cold-start list; everyone else
        gets the hybrid merge of user-based and item-based CF. Latent factor
        scores are served separately by ``get_latent_recommendations``.

        Cached lists are re-filtered against the user's current bookings.

        Raises:
            NotFoundError: If the user does not exist
        """
        user = self._require_user(user_id)

        def compute() -> List[int]:
            logger.info(f"Generating personalized recommendations for user {user_id}")

            if not self.has_sufficient_data_for_personalization(user_id):
                logger.info(f"Insufficient data for user {user_id}, returning cold start recommendations")
                return self._ids(self._without_booked(self.get_cold_start_recommendations(), user))

            ranking = self.config.ranking
            all_users = self.repository.list_users()
            catalog = self._catalog()

            user_based = self.cf.user_based(user, all_users, catalog, ranking.user_neighbours)
            item_based = self.cf.item_based(
                user, catalog, ranking.item_neighbours, context=self._interaction_context()
            )
            merged = self.ranker.merge(
                user_based,
                item_based,
                catalog,
                exclude_ids=user.booked_item_ids(),
                top_n=ranking.top_n
            )
            logger.info(f"Generated {len(merged)} personalized recommendations for user {user_id}")
            return self._ids(merged)

        cached = self.cache.get_or_compute(USER_RECOMMENDATIONS, user_id, compute)
        return self._without_booked(self._hydrate(cached), user)

    def get_popular_items(self) -> List[Item]:
        """Top available items by rating, then review count."""
        def compute() -> List[int]:
            logger.info("Fetching popular items")
            return self._ids(self.ranker.popular_items(self._catalog()))

        return self._hydrate(self.cache.get_or_compute(POPULAR_ITEMS, 'popular', compute))

    def get_similar_items(self, item_id: int) -> List[Item]:
        """
        Most similar available items to ``item_id`` (rich similarity).

        Raises:
            NotFoundError: If the item does not exist
        """
        target = self._require_item(item_id)

        def compute() -> List[int]:
            logger.info(f"Finding similar items for item {item_id}")
            similar = self.item_similarity.find_similar_items(
                target,
                self._catalog(),
                self.config.ranking.similar_items_limit,
                context=self._interaction_context()
            )
            return [s.item.id for s in similar]

        return self._hydrate(self.cache.get_or_compute(SIMILAR_ITEMS, item_id, compute))

    def get_cold_start_recommendations(self) -> List[Item]:
        logger.info("Generating cold start recommendations")
        return self.ranker.cold_start(self.repository.list_items(available_only=True))

    def get_trending_items(self) -> List[Item]:
        """Items with the most bookings and interactions over the trending window."""
        def compute() -> List[int]:
            logger.info("Fetching trending items")
            since = self.clock() - timedelta(days=self.config.ranking.trending_window_days)

            recent_bookings: Dict[int, int] = {}
            for booking in self.repository.list_bookings():
                if booking.start_date > since.date():
                    recent_bookings[booking.item_id] = recent_bookings.get(booking.item_id, 0) + 1

            recent_interactions = self.interactions.item_counts_since(since)
            return self._ids(self.ranker.trending(self._catalog(), recent_bookings, recent_interactions))

        return self._hydrate(self.cache.get_or_compute(TRENDING_ITEMS, 'trending', compute))

    def get_diverse_recommendations(
        self,
        user_id: int,
        diversity_factor: Optional[int] = None
    ) -> List[Item]:
        """Personalized list spread across categories plus random extras."""
        user = self._require_user(user_id)
        logger.info(f"Generating diverse recommendations for user {user_id}")

        base = self.get_recommendations_for_user(user_id)
        if not base:
            return self._without_booked(self.get_cold_start_recommendations(), user)

        candidates = self._without_booked(self._catalog(), user)
        return self.ranker.diversify(base, candidates, diversity_factor)

    def get_hybrid_recommendations(self, user_id: int) -> HybridRecommendations:
        """Deduplicated bundle of personalized, popular, trending and diverse lists."""
        user = self._require_user(user_id)
        logger.info(f"Generating hybrid recommendation bundle for user {user_id}")

        personalized = self.get_recommendations_for_user(user_id)
        popular = self._without_booked(self.get_popular_items(), user)
        trending = self._without_booked(self.get_trending_items(), user)
        diverse = self.get_diverse_recommendations(user_id, self.config.ranking.diversity_factor)

        bundle = self.ranker.bundle(user_id, personalized, popular, trending, diverse)
        logger.info(f"Hybrid bundle for user {user_id}: {len(bundle.items)} items")
        return bundle

    # ========================================================================
    # Explanations
    # ========================================================================

    def get_recommendation_explanations(self, user_id: int, item_id: int) -> Dict[str, Any]:
        """
        Reasons for recommending ``item_id`` to ``user_id``.

        Keys present only when they apply: ``similarUsers``,
        ``matchingFeatures``, ``priceReason``, ``locationReason``,
        ``ratingReason``.

        Raises:
            NotFoundError: If the user or the item does not exist
        """
        user = self._require_user(user_id)
        item = self._require_item(item_id)
        logger.info(f"Generating explanation: user={user_id}, item={item_id}")

        cf_explanation = self.cf.explain(
            user, item, self.repository.list_users(), self.config.ranking.user_neighbours
        )
        explanations: Dict[str, Any] = {
            key: cf_explanation[key]
            for key in ('similarUsers', 'matchingFeatures')
            if key in cf_explanation
        }

        spend = average_daily_spend(user)
        if spend is not None and item.daily_price <= spend * BUDGET_TOLERANCE:
            explanations['priceReason'] = PRICE_REASON

        location = most_common_location(user)
        if location and item.location and location.casefold() in item.location.casefold():
            explanations['locationReason'] = LOCATION_REASON

        if item.rating >= GOOD_RATING_THRESHOLD:
            explanations['ratingReason'] = RATING_REASON

        return explanations

    # ========================================================================
    # Interactions
    # ========================================================================

    def track_interaction(
        self,
        user_id: int,
        item_id: Optional[int],
        interaction_type: Union[InteractionType, str],
        detail: str = ""
    ) -> InteractionEvent:
        """
        Record an impression, click, booking or search.

        ``item_id`` may be None for SEARCH events only. The user's cached
        recommendations are dropped since their history changed.

        Raises:
            ValidationError: Unknown interaction type or missing item id
            NotFoundError: Unknown user or item
        """
        try:
            event_type = InteractionType(str(getattr(interaction_type, 'value', interaction_type)).upper())
        except ValueError:
            raise ValidationError(f"Unknown interaction type: {interaction_type!r}")

        self._require_user(user_id)
        if item_id is not None:
            self._require_item(item_id)
        elif event_type != InteractionType.SEARCH:
            raise ValidationError(f"{event_type.value} interactions require an item id")

        event = InteractionEvent(
            user_id=user_id,
            item_id=item_id,
            type=event_type,
            detail=detail or "",
            timestamp=self.clock()
        )
        self.interactions.record(event)
        self.cache.invalidate(USER_RECOMMENDATIONS, user_id)

        logger.debug(f"Tracked interaction: user={user_id}, item={item_id}, type={event_type.value}")
        return event

    def cleanup_old_interactions(self, now: Optional[datetime] = None) -> int:
        """
        Purge interactions older than the retention window.

        Returns:
            Number of events removed
        """
        now = now or self.clock()
        cutoff = now - timedelta(days=self.config.interactions.retention_days)
        removed = self.interactions.purge_older_than(cutoff)
        logger.info(f"Interaction cleanup: removed {removed} events older than {cutoff:%Y-%m-%d %H:%M}")
        return removed

    # ========================================================================
    # Model lifecycle & metrics
    # ========================================================================

    def refresh_model(self) -> None:
        """Clear every recommendation cache."""
        logger.info("Refreshing recommendation model")
        self.cache.on_model_update()

    def get_metrics(self) -> Dict[str, float]:
        """clickThroughRate, conversionRate, diversityScore and coverage."""
        logger.info("Calculating recommendation metrics")

        counts = self.interactions.type_counts()
        impressions = counts[InteractionType.IMPRESSION]
        clicks = counts[InteractionType.CLICK]
        bookings = counts[InteractionType.BOOKING]

        popular = self.get_popular_items()
        distinct_categories = len({item.category for item in popular})

        users = self.repository.list_users()
        personalizable = sum(
            1 for user in users if self.has_sufficient_data_for_personalization(user.id)
        )

        return {
            'clickThroughRate': clicks / impressions if impressions > 0 else 0.0,
            'conversionRate': bookings / clicks if clicks > 0 else 0.0,
            'diversityScore': distinct_categories / len(VehicleCategory),
            'coverage': personalizable / len(users) if users else 0.0,
        }

    @property
    def model(self) -> Optional[TrainedModel]:
        return self._model

    def train_latent_model(self, seed: Optional[int] = None) -> TrainedModel:
        """
        Train a latent factor snapshot on all bookings and publish it.

        Raises:
            ComputationError: If there is nothing to train on
        """
        users = self.repository.list_users()
        items = self.repository.list_items()
        logger.info(f"Training latent model on {len(users)} users and {len(items)} items")

        model = self.matrix_factorization.factorize(users, items, seed=seed)
        with self._model_lock:
            self._model = model

        logger.info(f"Published latent model {model.version}")
        return model

    def get_latent_recommendations(self, user_id: int, top_n: int = 10) -> List[Item]:
        """
        Top-N items by predicted rating from the published snapshot.

        A snapshot is trained on first use. Users absent from the snapshot
        get the cold-start list.
        """
        user = self._require_user(user_id)

        with self._model_lock:
            model = self._model
        if model is None:
            logger.info("No latent model published yet, training one")
            model = self.train_latent_model()

        if not model.has_user(user_id):
            logger.info(f"User {user_id} not in latent model {model.version}, returning cold start")
            return self._without_booked(self.get_cold_start_recommendations(), user)[:top_n]

        ranked = model.recommend(user_id, top_n=len(model.item_ids), exclude=user.booked_item_ids())
        return self._hydrate([item_id for item_id, _ in ranked])[:top_n]

    # ========================================================================
    # Content policies
    # ========================================================================

    def get_search_based_recommendations(self, user_id: int) -> List[Item]:
        """Items matching the user's last searches; popular items when there are none."""
        user = self._require_user(user_id)
        logger.info(f"Generating search-based recommendations for user {user_id}")

        keywords = {
            e.detail.casefold()
            for e in self.interactions.recent_searches(user_id, RECENT_SEARCH_LIMIT)
            if e.detail
        }
        if not keywords:
            return self._without_booked(self.get_popular_items(), user)

        def matches(item: Item) -> bool:
            text = " ".join(
                [item.make, item.model, item.category.value] + list(item.features)
            ).casefold()
            return any(keyword in text for keyword in keywords)

        candidates = [item for item in self._without_booked(self._catalog(), user) if matches(item)]
        return _by_rating(candidates, self.config.ranking.top_n)

    def get_feature_based_recommendations(
        self,
        user_id: int,
        features: Optional[List[str]] = None
    ) -> List[Item]:
        """Items sharing at least one preferred feature, best rated first."""
        user = self._require_user(user_id)
        logger.info(f"Generating feature-based recommendations for user {user_id}")

        preferred = features or infer_preferred_features(user) or DEFAULT_FEATURES
        wanted: Set[str] = set(preferred)

        candidates = [
            item for item in self._without_booked(self._catalog(), user)
            if wanted.intersection(item.features)
        ]
        return _by_rating(candidates, self.config.ranking.top_n)

    def get_location_based_recommendations(
        self,
        user_id: int,
        location: Optional[str] = None
    ) -> List[Item]:
        """Items at ``location`` (default: the user's usual pickup location)."""
        user = self._require_user(user_id)
        logger.info(f"Generating location-based recommendations for user {user_id}")

        target = location or most_common_location(user)
        if not target:
            logger.info(f"No location known for user {user_id}")
            return []

        needle = target.casefold()
        candidates = [
            item for item in self._without_booked(self._catalog(), user)
            if item.location and needle in item.location.casefold()
        ]
        return _by_rating(candidates, self.config.ranking.top_n)

    def get_budget_based_recommendations(
        self,
        user_id: int,
        max_daily_price: Optional[float] = None
    ) -> List[Item]:
        """Items within a daily budget (default: the user's mean daily spend)."""
        user = self._require_user(user_id)
        logger.info(f"Generating budget-based recommendations for user {user_id}")

        if max_daily_price is None:
            max_daily_price = average_daily_spend(user) or DEFAULT_DAILY_BUDGET

        candidates = [
            item for item in self._without_booked(self._catalog(), user)
            if item.daily_price <= max_daily_price
        ]
        return _by_rating(candidates, self.config.ranking.top_n)

    def get_seasonal_recommendations(self, month: Optional[int] = None) -> List[Item]:
        """Best rated items of the category promoted for ``month`` (default: now)."""
        month = month if month is not None else self.clock().month
        if not 1 <= month <= 12:
            raise ValidationError(f"Month must be in 1..12, got {month}")

        logger.info(f"Generating seasonal recommendations for month {month}")
        return self.ranker.seasonal(self._catalog(), month)

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.get_stats()
