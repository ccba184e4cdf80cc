"""
Rental Recommendation Service Package.

Components:
- recommender: Orchestrator, repository port, interaction store, cache

Usage:
    from service import RecommendationOrchestrator, InMemoryCatalogRepository

    orchestrator = RecommendationOrchestrator(InMemoryCatalogRepository(users, items))
    items = orchestrator.get_recommendations_for_user(user_id=7)
"""

from service.recommender import (
    RecommendationOrchestrator,
    CatalogRepository,
    InMemoryCatalogRepository,
    InteractionStore,
    CacheManager,
    get_cache_manager,
)

__all__ = [
    'RecommendationOrchestrator',
    'CatalogRepository',
    'InMemoryCatalogRepository',
    'InteractionStore',
    'CacheManager',
    'get_cache_manager',
]

__version__ = "1.0.0"
