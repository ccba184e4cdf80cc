"""
User-User Similarity.

Scores how alike two renters are from four signals:
- Booking history (vehicle categories, booking shape, spend, duration)
- Rating patterns on commonly reviewed vehicles
- Demographic proxies (account age, home pickup location)
- Behavioral patterns (frequency, seasonality, lead time)

Every sub-score is symmetric and bounded to [0, 1], so the weighted overall
score is as well.

Example:
    >>> from rentalrec.similarity import UserSimilarity
    >>> engine = UserSimilarity()
    >>> engine.overall_similarity(alice, bob)
    0.62
    >>> engine.find_similar_users(alice, all_users, top_n=5)
"""

from collections import Counter
from datetime import datetime
from typing import Callable, List, Optional, Sequence
import logging

import numpy as np
import pandas as pd

from ..config import BookingSimilarityWeights, UserSimilarityWeights
from ..domain import Booking, User, UserSimilarityScore
from .measures import (
    cosine_similarity,
    jaccard_similarity,
    pearson_correlation,
    ratio_similarity,
    rescale_correlation,
)

logger = logging.getLogger(__name__)

# Neutral score when neither user has any history for a signal
NEUTRAL_SIMILARITY = 0.5
ACCOUNT_AGE_HORIZON_DAYS = 365.0

# Booking-shape blend (duration vs. inter-booking interval)
PATTERN_DURATION_WEIGHT = 0.6
PATTERN_INTERVAL_WEIGHT = 0.4

# Behavioral blend
FREQUENCY_WEIGHT = 0.4
SEASONAL_WEIGHT = 0.3
LEAD_TIME_WEIGHT = 0.3


# ============================================================================
# Booking Statistics
# ============================================================================

def average_duration(bookings: Sequence[Booking]) -> float:
    if not bookings:
        return 0.0
    return float(np.mean([b.duration_days for b in bookings]))


def average_price(bookings: Sequence[Booking]) -> float:
    if not bookings:
        return 0.0
    return float(np.mean([b.total_price for b in bookings]))


def average_interval(bookings: Sequence[Booking]) -> float:
    """Mean gap in days between consecutive booking creation dates."""
    if len(bookings) < 2:
        return 0.0
    dates = sorted(b.created_at.date() for b in bookings)
    gaps = [(later - earlier).days for earlier, later in zip(dates, dates[1:])]
    return float(np.mean(gaps))


def average_lead_time(bookings: Sequence[Booking]) -> float:
    """Mean days between placing a booking and its start date."""
    if not bookings:
        return 0.0
    return float(np.mean([(b.start_date - b.created_at.date()).days for b in bookings]))


def month_histogram(bookings: Sequence[Booking]) -> np.ndarray:
    """Booking counts per start month (index 0 = January)."""
    hist = np.zeros(12, dtype=np.float64)
    for b in bookings:
        hist[b.start_date.month - 1] += 1
    return hist


def most_common_location(user: User) -> Optional[str]:
    """Most frequent pickup location; first seen wins ties."""
    locations = [b.pickup_location for b in user.bookings if b.pickup_location]
    if not locations:
        return None
    return Counter(locations).most_common(1)[0][0]


# ============================================================================
# UserSimilarity
# ============================================================================

class UserSimilarity:
    """
    Weighted multi-signal similarity between two users.

    Attributes:
        weights: Weights of booking/rating/demographic/behavioral signals
        booking_weights: Weights inside booking-pattern similarity
        clock: Returns "now"; used by booking-frequency similarity
    """

    def __init__(
        self,
        weights: Optional[UserSimilarityWeights] = None,
        booking_weights: Optional[BookingSimilarityWeights] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.weights = weights or UserSimilarityWeights()
        self.booking_weights = booking_weights or BookingSimilarityWeights()
        self.clock = clock or datetime.now

    # ------------------------------------------------------------------------
    # Overall
    # ------------------------------------------------------------------------

    def overall_similarity(self, user1: User, user2: User) -> float:
        """
        Overall similarity in [0, 1].

        Identical ids short-circuit to 1.0.
        """
        if user1.id == user2.id:
            return 1.0

        booking = self.booking_similarity(user1, user2)
        rating = self.rating_similarity(user1, user2)
        demographic = self.demographic_similarity(user1, user2)
        behavioral = self.behavioral_similarity(user1, user2)

        overall = (
            self.weights.booking * booking
            + self.weights.rating * rating
            + self.weights.demographic * demographic
            + self.weights.behavioral * behavioral
        )

        logger.debug(
            f"User similarity {user1.id} vs {user2.id} = {overall:.4f} "
            f"(booking={booking:.3f}, rating={rating:.3f}, "
            f"demographic={demographic:.3f}, behavioral={behavioral:.3f})"
        )
        return overall

    # ------------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------------

    def booking_similarity(self, user1: User, user2: User) -> float:
        """Category overlap, booking shape, spend and duration closeness."""
        bookings1, bookings2 = user1.bookings, user2.bookings

        if not bookings1 and not bookings2:
            return NEUTRAL_SIMILARITY
        if not bookings1 or not bookings2:
            return 0.0

        categories1 = {b.item.category for b in bookings1}
        categories2 = {b.item.category for b in bookings2}

        category_sim = jaccard_similarity(categories1, categories2)
        pattern_sim = self._booking_pattern_similarity(bookings1, bookings2)
        price_sim = ratio_similarity(average_price(bookings1), average_price(bookings2))
        duration_sim = ratio_similarity(average_duration(bookings1), average_duration(bookings2))

        w = self.booking_weights
        return (
            w.category * category_sim
            + w.pattern * pattern_sim
            + w.price * price_sim
            + w.duration * duration_sim
        )

    def rating_similarity(self, user1: User, user2: User) -> float:
        """Pearson correlation on commonly reviewed items, rescaled to [0, 1]."""
        reviews1, reviews2 = user1.reviews, user2.reviews

        if not reviews1 and not reviews2:
            return NEUTRAL_SIMILARITY
        if not reviews1 or not reviews2:
            return 0.0

        # A later review of the same item replaces the earlier one
        ratings1 = {r.item_id: r.rating for r in reviews1}
        ratings2 = {r.item_id: r.rating for r in reviews2}

        common = sorted(set(ratings1) & set(ratings2))
        if len(common) < 2:
            return 0.0

        correlation = pearson_correlation(
            [ratings1[i] for i in common],
            [ratings2[i] for i in common]
        )
        return rescale_correlation(correlation)

    def demographic_similarity(self, user1: User, user2: User) -> float:
        """Mean of the proxies measurable for both users (0.0 if none)."""
        total = 0.0
        factors = 0

        if user1.created_at is not None and user2.created_at is not None:
            days_diff = abs((user1.created_at.date() - user2.created_at.date()).days)
            total += max(0.0, 1.0 - days_diff / ACCOUNT_AGE_HORIZON_DAYS)
            factors += 1

        if user1.bookings and user2.bookings:
            location1 = most_common_location(user1)
            location2 = most_common_location(user2)
            if location1 is not None and location2 is not None:
                total += 1.0 if location1.casefold() == location2.casefold() else 0.0
                factors += 1

        return total / factors if factors else 0.0

    def behavioral_similarity(self, user1: User, user2: User) -> float:
        """Booking frequency, seasonality and lead-time closeness."""
        bookings1, bookings2 = user1.bookings, user2.bookings
        if not bookings1 or not bookings2:
            return 0.0

        frequency_sim = self._frequency_similarity(bookings1, bookings2)
        seasonal_sim = cosine_similarity(month_histogram(bookings1), month_histogram(bookings2))
        lead_time_sim = ratio_similarity(average_lead_time(bookings1), average_lead_time(bookings2))

        return (
            FREQUENCY_WEIGHT * frequency_sim
            + SEASONAL_WEIGHT * seasonal_sim
            + LEAD_TIME_WEIGHT * lead_time_sim
        )

    def _booking_pattern_similarity(
        self,
        bookings1: Sequence[Booking],
        bookings2: Sequence[Booking]
    ) -> float:
        duration_sim = ratio_similarity(average_duration(bookings1), average_duration(bookings2))

        if len(bookings1) >= 2 and len(bookings2) >= 2:
            interval_sim = ratio_similarity(average_interval(bookings1), average_interval(bookings2))
            return PATTERN_DURATION_WEIGHT * duration_sim + PATTERN_INTERVAL_WEIGHT * interval_sim

        return duration_sim

    def _frequency_similarity(
        self,
        bookings1: Sequence[Booking],
        bookings2: Sequence[Booking]
    ) -> float:
        today = self.clock().date()
        days1 = (today - min(b.created_at for b in bookings1).date()).days
        days2 = (today - min(b.created_at for b in bookings2).date()).days

        # Frequency is undefined until a day has passed since the first booking
        if days1 <= 0 or days2 <= 0:
            return 0.0

        return ratio_similarity(len(bookings1) / days1, len(bookings2) / days2)

    # ------------------------------------------------------------------------
    # Neighbour search
    # ------------------------------------------------------------------------

    def _rank(
        self,
        target: User,
        pool: Sequence[User],
        top_n: int,
        scorer: Callable[[User, User], float]
    ) -> List[UserSimilarityScore]:
        scored = [
            UserSimilarityScore(user=user, score=scorer(target, user))
            for user in pool
            if user.id != target.id
        ]
        # Descending score, ascending id on ties
        scored.sort(key=lambda s: (-s.score, s.user.id))
        return scored[:max(0, top_n)]

    def find_similar_users(
        self,
        target: User,
        pool: Sequence[User],
        top_n: int
    ) -> List[UserSimilarityScore]:
        """
        Top-N most similar users to ``target`` by overall similarity.

        Args:
            target: User to compare against
            pool: Candidate users (the target is skipped if present)
            top_n: Maximum number of neighbours

        Returns:
            Scores sorted by descending similarity, ties by ascending user id
        """
        return self._rank(target, pool, top_n, self.overall_similarity)

    def find_users_with_similar_vehicle_preferences(
        self,
        target: User,
        pool: Sequence[User],
        top_n: int
    ) -> List[UserSimilarityScore]:
        """Neighbours by booking similarity only."""
        return self._rank(target, pool, top_n, self.booking_similarity)

    def find_users_with_similar_rating_patterns(
        self,
        target: User,
        pool: Sequence[User],
        top_n: int
    ) -> List[UserSimilarityScore]:
        """Neighbours by rating similarity only."""
        return self._rank(target, pool, top_n, self.rating_similarity)

    def similarity_matrix(self, users: Sequence[User]) -> pd.DataFrame:
        """
        Pairwise overall similarity for a group of users.

        Each unordered pair is scored once and mirrored, so the result is
        exactly symmetric with 1.0 on the diagonal.

        Returns:
            DataFrame indexed and columned by user id
        """
        ids = [u.id for u in users]
        matrix = np.eye(len(users), dtype=np.float64)

        for i in range(len(users)):
            for j in range(i + 1, len(users)):
                sim = self.overall_similarity(users[i], users[j])
                matrix[i, j] = sim
                matrix[j, i] = sim

        logger.info(f"Computed user similarity matrix for {len(users)} users")
        return pd.DataFrame(matrix, index=ids, columns=ids)
