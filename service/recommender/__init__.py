"""
Recommender Service Package.

Serving layer of the rental recommendation engine.

Main components:
- RecommendationOrchestrator: Entry point for every recommendation operation
- CatalogRepository / InMemoryCatalogRepository: Domain snapshot access
- InteractionStore: Per-user tracked interactions
- CacheManager: Namespaced LRU response cache

Example:
    >>> from service.recommender import InMemoryCatalogRepository, RecommendationOrchestrator
    >>> orchestrator = RecommendationOrchestrator(InMemoryCatalogRepository(users, items))
    >>> orchestrator.get_recommendations_for_user(7)
"""

from .repository import CatalogRepository, InMemoryCatalogRepository
from .interactions import InteractionStore
from .cache import (
    CacheManager,
    LRUCache,
    get_cache_manager,
    reset_cache_manager,
    USER_RECOMMENDATIONS,
    POPULAR_ITEMS,
    SIMILAR_ITEMS,
    TRENDING_ITEMS,
)
from .orchestrator import RecommendationOrchestrator

__all__ = [
    # Core
    'RecommendationOrchestrator',

    # Data access
    'CatalogRepository',
    'InMemoryCatalogRepository',
    'InteractionStore',

    # Caching
    'CacheManager',
    'LRUCache',
    'get_cache_manager',
    'reset_cache_manager',
    'USER_RECOMMENDATIONS',
    'POPULAR_ITEMS',
    'SIMILAR_ITEMS',
    'TRENDING_ITEMS',
]
