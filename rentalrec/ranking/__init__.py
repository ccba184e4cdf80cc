"""
Hybrid ranking and fallback policies.
"""

from .hybrid import SEASONAL_CATEGORIES, HybridRanker, HybridRecommendations

__all__ = ['HybridRanker', 'HybridRecommendations', 'SEASONAL_CATEGORIES']
