"""
Response Cache for the Recommendation Service.

Read-through LRU caches with per-namespace TTL.

Key Features:
- One LRU cache per namespace (user recommendations, popular, similar,
  trending)
- Single-flight misses: concurrent misses for one key compute once
- Fail open: a broken cache read or write is logged and the value is
  computed directly
- Full invalidation on model refresh

Usage:
    from service.recommender.cache import get_cache_manager
    cache = get_cache_manager()
    ids = cache.get_or_compute(USER_RECOMMENDATIONS, user_id, compute)
"""

from typing import Any, Callable, Dict, Hashable, Optional, Tuple
from collections import OrderedDict
import threading
import logging
import time

from rentalrec.config import CacheConfig

logger = logging.getLogger(__name__)

USER_RECOMMENDATIONS = "user_recommendations"
POPULAR_ITEMS = "popular_items"
SIMILAR_ITEMS = "similar_items"
TRENDING_ITEMS = "trending_items"


# ============================================================================
# LRU Cache Implementation
# ============================================================================

class LRUCache:
    """
    Thread-safe LRU cache with TTL support.

    Features:
    - O(1) get/put operations
    - Optional TTL for entries
    - Max size enforcement
    - Hit/miss statistics
    """

    def __init__(
        self,
        max_size: int = 10000,
        ttl_seconds: Optional[float] = None,
        name: str = "cache",
        timer: Callable[[], float] = time.monotonic
    ):
        """
        Initialize LRU cache.

        Args:
            max_size: Maximum number of entries
            ttl_seconds: Optional time-to-live in seconds
            name: Cache name for logging
            timer: Clock used for TTL checks
        """
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._timer = timer

        self._cache: "OrderedDict[Hashable, Tuple[Any, float]]" = OrderedDict()
        self._lock = threading.Lock()

        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """Cached value, or None if absent or expired."""
        with self._lock:
            if key not in self._cache:
                self.misses += 1
                return None

            value, timestamp = self._cache[key]

            if self.ttl_seconds is not None and self._timer() - timestamp > self.ttl_seconds:
                del self._cache[key]
                self.misses += 1
                return None

            self._cache.move_to_end(key)
            self.hits += 1
            return value

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._cache[key] = (value, self._timer())
            self._cache.move_to_end(key)

            while len(self._cache) > self.max_size:
                self._cache.popitem(last=False)
                self.evictions += 1

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        return len(self._cache)

    def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        hit_rate = self.hits / total if total > 0 else 0

        return {
            'name': self.name,
            'size': len(self._cache),
            'max_size': self.max_size,
            'hits': self.hits,
            'misses': self.misses,
            'hit_rate': hit_rate,
            'evictions': self.evictions
        }


# ============================================================================
# Cache Manager
# ============================================================================

class CacheManager:
    """
    Namespaced read-through cache for recommendation results.

    Example:
        >>> cache = CacheManager(CacheConfig())
        >>> cache.get_or_compute(POPULAR_ITEMS, 'popular', lambda: [1, 2, 3])
        [1, 2, 3]
        >>> cache.clear_all()
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        timer: Callable[[], float] = time.monotonic
    ):
        self.config = config or CacheConfig()

        ttls = {
            USER_RECOMMENDATIONS: self.config.user_recommendations_ttl_seconds,
            POPULAR_ITEMS: self.config.popular_items_ttl_seconds,
            SIMILAR_ITEMS: self.config.similar_items_ttl_seconds,
            TRENDING_ITEMS: self.config.trending_items_ttl_seconds,
        }
        self.caches: Dict[str, LRUCache] = {
            name: LRUCache(
                max_size=self.config.max_size,
                ttl_seconds=ttl,
                name=name,
                timer=timer
            )
            for name, ttl in ttls.items()
        }

        self._inflight: Dict[Tuple[str, Hashable], threading.Lock] = {}
        self._inflight_lock = threading.Lock()

        logger.info(f"CacheManager initialized: namespaces={sorted(self.caches)}")

    def _namespace(self, namespace: str) -> LRUCache:
        if namespace not in self.caches:
            raise KeyError(f"Unknown cache namespace: {namespace}")
        return self.caches[namespace]

    def _safe_get(self, cache: LRUCache, key: Hashable) -> Optional[Any]:
        try:
            return cache.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed ({cache.name}, key={key!r}): {e}")
            return None

    def _safe_put(self, cache: LRUCache, key: Hashable, value: Any) -> None:
        try:
            cache.put(key, value)
        except Exception as e:
            logger.warning(f"Cache write failed ({cache.name}, key={key!r}): {e}")

    def _key_lock(self, namespace: str, key: Hashable) -> threading.Lock:
        with self._inflight_lock:
            lock = self._inflight.get((namespace, key))
            if lock is None:
                lock = threading.Lock()
                self._inflight[(namespace, key)] = lock
            return lock

    def _release_key_lock(self, namespace: str, key: Hashable, lock: threading.Lock) -> None:
        with self._inflight_lock:
            if self._inflight.get((namespace, key)) is lock:
                del self._inflight[(namespace, key)]

    def get_or_compute(
        self,
        namespace: str,
        key: Hashable,
        compute: Callable[[], Any]
    ) -> Any:
        """
        Return the cached value for ``key`` or compute and cache it.

        Concurrent callers missing on the same key wait for the first one
        and reuse its result. Exceptions raised by ``compute`` propagate
        and nothing is cached.
        """
        cache = self._namespace(namespace)

        value = self._safe_get(cache, key)
        if value is not None:
            return value

        lock = self._key_lock(namespace, key)
        with lock:
            try:
                value = self._safe_get(cache, key)
                if value is not None:
                    return value

                value = compute()
                self._safe_put(cache, key, value)
                return value
            finally:
                self._release_key_lock(namespace, key, lock)

    def invalidate(self, namespace: str, key: Hashable) -> bool:
        """
        Drop one entry.

        Waits for an in-flight compute of the same key so its result cannot
        be written back after the deletion.
        """
        cache = self._namespace(namespace)
        lock = self._key_lock(namespace, key)
        with lock:
            try:
                return cache.delete(key)
            finally:
                self._release_key_lock(namespace, key, lock)

    def clear_all(self) -> None:
        """Clear every namespace."""
        for cache in self.caches.values():
            cache.clear()
        logger.info("All caches cleared")

    def on_model_update(self) -> None:
        """Recommendation inputs changed; every cached result is stale."""
        self.clear_all()

    def get_stats(self) -> Dict[str, Any]:
        return {name: cache.stats() for name, cache in self.caches.items()}


# ============================================================================
# Convenience Functions
# ============================================================================

_cache_manager: Optional[CacheManager] = None
_cache_manager_lock = threading.Lock()


def get_cache_manager(config: Optional[CacheConfig] = None) -> CacheManager:
    """Get singleton cache manager."""
    global _cache_manager
    with _cache_manager_lock:
        if _cache_manager is None:
            _cache_manager = CacheManager(config)
        return _cache_manager


def reset_cache_manager() -> None:
    """Reset singleton cache manager."""
    global _cache_manager
    with _cache_manager_lock:
        if _cache_manager is not None:
            _cache_manager.clear_all()
        _cache_manager = None
