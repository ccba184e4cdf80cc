"""
Implicit Rating Matrix Construction.

Bookings carry no explicit score, so each one is turned into an implicit
rating from its length:

    rating = clamp(3.0 + min(2.0, duration_days / 7.0), 1, 5)

When a user booked the same vehicle more than once, the most recent booking
(by ``created_at``) supplies the rating.

Usage:
    >>> frame = build_rating_frame(users, bookings)
    >>> matrix, user_ids, item_ids = build_rating_matrix(frame, user_ids, item_ids)
"""

from typing import List, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix

from ..domain import Booking, User
from ..errors import ComputationError

logger = logging.getLogger(__name__)

BASE_RATING = 3.0
MAX_DURATION_BONUS = 2.0
DAYS_PER_BONUS_POINT = 7.0
MIN_RATING = 1.0
MAX_RATING = 5.0

RATING_COLUMNS = ['user_id', 'item_id', 'rating']


def implicit_rating(booking: Booking) -> float:
    """Implicit preference in [1, 5] derived from booking duration."""
    bonus = min(MAX_DURATION_BONUS, booking.duration_days / DAYS_PER_BONUS_POINT)
    return min(MAX_RATING, max(MIN_RATING, BASE_RATING + bonus))


def build_rating_frame(
    users: Sequence[User],
    bookings: Optional[Sequence[Booking]] = None
) -> pd.DataFrame:
    """
    Build the long-format (user_id, item_id, rating) frame.

    Args:
        users: Users to include; bookings of other users are dropped
        bookings: Bookings to rate (defaults to the users' own bookings)

    Returns:
        DataFrame with one row per (user, item) pair, sorted by user then item
    """
    if bookings is None:
        bookings = [b for u in users for b in u.bookings]

    user_ids = {u.id for u in users}
    rows = [
        (b.user_id, b.item_id, implicit_rating(b), b.created_at)
        for b in bookings
        if b.user_id in user_ids
    ]

    if not rows:
        logger.info("No bookings to rate, rating frame is empty")
        return pd.DataFrame(columns=RATING_COLUMNS)

    df = pd.DataFrame(rows, columns=RATING_COLUMNS + ['created_at'])

    # Latest booking per pair wins; stable sort keeps input order on equal timestamps
    df = df.sort_values('created_at', kind='mergesort')
    df = df.drop_duplicates(subset=['user_id', 'item_id'], keep='last')
    df = df.sort_values(['user_id', 'item_id']).reset_index(drop=True)

    logger.info(
        f"Built rating frame: {len(df)} ratings, "
        f"{df['user_id'].nunique()} users, {df['item_id'].nunique()} items"
    )
    return df[RATING_COLUMNS]


def validate_rating_frame(
    frame: pd.DataFrame,
    user_ids: Sequence[int],
    item_ids: Sequence[int]
) -> None:
    """
    Raise ComputationError if the frame cannot be used for training.

    Checks for missing columns, non-finite or out-of-range ratings, ids
    outside the given universes and duplicate (user, item) pairs.
    """
    missing = set(RATING_COLUMNS) - set(frame.columns)
    if missing:
        raise ComputationError(f"Rating frame is missing columns: {sorted(missing)}")

    if frame.empty:
        return

    ratings = pd.to_numeric(frame['rating'], errors='coerce').to_numpy(dtype=np.float64)
    if not np.all(np.isfinite(ratings)):
        raise ComputationError("Rating frame contains NaN or non-numeric ratings")
    if ratings.min() < MIN_RATING or ratings.max() > MAX_RATING:
        raise ComputationError(
            f"Ratings must lie in [{MIN_RATING}, {MAX_RATING}], "
            f"got [{ratings.min()}, {ratings.max()}]"
        )

    unknown_users = set(frame['user_id']) - set(user_ids)
    if unknown_users:
        raise ComputationError(f"Ratings reference unknown users: {sorted(unknown_users)[:10]}")
    unknown_items = set(frame['item_id']) - set(item_ids)
    if unknown_items:
        raise ComputationError(f"Ratings reference unknown items: {sorted(unknown_items)[:10]}")

    if frame.duplicated(subset=['user_id', 'item_id']).any():
        raise ComputationError("Rating frame contains duplicate (user, item) pairs")


def build_rating_matrix(
    frame: pd.DataFrame,
    user_ids: Sequence[int],
    item_ids: Sequence[int]
) -> Tuple[csr_matrix, List[int], List[int]]:
    """
    Build a sparse (num_users, num_items) CSR rating matrix.

    Row ``u`` corresponds to ``user_ids[u]`` and column ``i`` to
    ``item_ids[i]``.

    Raises:
        ComputationError: If the frame fails validation
    """
    user_ids = list(user_ids)
    item_ids = list(item_ids)
    validate_rating_frame(frame, user_ids, item_ids)

    user_index = {uid: idx for idx, uid in enumerate(user_ids)}
    item_index = {iid: idx for idx, iid in enumerate(item_ids)}

    rows = np.array([user_index[u] for u in frame['user_id']], dtype=np.int64)
    cols = np.array([item_index[i] for i in frame['item_id']], dtype=np.int64)
    data = frame['rating'].to_numpy(dtype=np.float64)

    matrix = csr_matrix(
        (data, (rows, cols)),
        shape=(len(user_ids), len(item_ids)),
        dtype=np.float64
    )

    cells = len(user_ids) * len(item_ids)
    sparsity = 1.0 - (matrix.nnz / cells) if cells else 1.0
    logger.info(
        f"Built rating matrix {matrix.shape}: nnz={matrix.nnz:,}, sparsity={sparsity:.4f}"
    )
    return matrix, user_ids, item_ids
