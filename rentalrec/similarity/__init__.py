"""
Similarity engines.

- UserSimilarity: booking/rating/demographic/behavioral similarity of users
- ItemSimilarity: attribute/co-booking/rating/price similarity of vehicles
"""

from .item_similarity import ItemInteractionIndex, ItemSimilarity
from .measures import (
    cosine_similarity,
    jaccard_similarity,
    pearson_correlation,
    ratio_similarity,
    rescale_correlation,
)
from .user_similarity import UserSimilarity

__all__ = [
    'UserSimilarity',
    'ItemSimilarity',
    'ItemInteractionIndex',
    'ratio_similarity',
    'jaccard_similarity',
    'pearson_correlation',
    'rescale_correlation',
    'cosine_similarity',
]
