import threading
import time

import pytest

from rentalrec.config import CacheConfig
from service.recommender import cache as cache_module
from service.recommender.cache import (
    POPULAR_ITEMS,
    USER_RECOMMENDATIONS,
    CacheManager,
    LRUCache,
    get_cache_manager,
    reset_cache_manager,
)


class FakeTimer:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestLRUCache:

    def test_evicts_least_recently_used(self):
        cache = LRUCache(max_size=2)
        cache.put('a', 1)
        cache.put('b', 2)
        assert cache.get('a') == 1
        cache.put('c', 3)

        assert cache.get('b') is None
        assert cache.get('a') == 1
        assert cache.get('c') == 3
        assert cache.evictions == 1

    def test_ttl_expiry(self):
        timer = FakeTimer()
        cache = LRUCache(max_size=10, ttl_seconds=60, timer=timer)
        cache.put('k', [1, 2])

        timer.now = 59
        assert cache.get('k') == [1, 2]
        timer.now = 121
        assert cache.get('k') is None
        assert cache.size() == 0

    def test_stats(self):
        cache = LRUCache(max_size=5, name='recs')
        cache.put('x', 1)
        cache.get('x')
        cache.get('y')
        stats = cache.stats()
        assert stats['name'] == 'recs'
        assert stats['hits'] == 1
        assert stats['misses'] == 1
        assert stats['hit_rate'] == 0.5


class TestCacheManager:

    @pytest.fixture
    def manager(self):
        return CacheManager(CacheConfig())

    def test_read_through(self, manager):
        calls = []

        def compute():
            calls.append(1)
            return [3, 1, 2]

        assert manager.get_or_compute(POPULAR_ITEMS, 'popular', compute) == [3, 1, 2]
        assert manager.get_or_compute(POPULAR_ITEMS, 'popular', compute) == [3, 1, 2]
        assert len(calls) == 1

    def test_namespaces_are_separate(self, manager):
        manager.get_or_compute(POPULAR_ITEMS, 1, lambda: [1])
        assert manager.get_or_compute(USER_RECOMMENDATIONS, 1, lambda: [2]) == [2]

    def test_unknown_namespace(self, manager):
        with pytest.raises(KeyError):
            manager.get_or_compute('nope', 1, lambda: [])

    def test_single_flight(self, manager):
        calls = []
        barrier = threading.Barrier(8)
        results = []

        def compute():
            calls.append(1)
            time.sleep(0.1)
            return [42]

        def worker():
            barrier.wait()
            results.append(manager.get_or_compute(USER_RECOMMENDATIONS, 7, compute))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(calls) == 1
        assert results == [[42]] * 8

    def test_invalidate_waits_for_inflight_compute(self, manager):
        started = threading.Event()
        release = threading.Event()

        def compute():
            started.set()
            release.wait(timeout=5)
            return [1, 2]

        reader = threading.Thread(
            target=manager.get_or_compute, args=(USER_RECOMMENDATIONS, 7, compute)
        )
        reader.start()
        assert started.wait(timeout=5)

        invalidator = threading.Thread(target=manager.invalidate, args=(USER_RECOMMENDATIONS, 7))
        invalidator.start()
        time.sleep(0.05)
        # blocked behind the running compute
        assert invalidator.is_alive()

        release.set()
        reader.join()
        invalidator.join()

        assert manager.caches[USER_RECOMMENDATIONS].size() == 0
        assert manager._inflight == {}

    def test_fails_open_on_broken_read(self, manager, monkeypatch):
        def broken(key):
            raise RuntimeError("backend down")

        monkeypatch.setattr(manager.caches[POPULAR_ITEMS], 'get', broken)
        assert manager.get_or_compute(POPULAR_ITEMS, 'popular', lambda: [9]) == [9]

    def test_fails_open_on_broken_write(self, manager, monkeypatch):
        def broken(key, value):
            raise RuntimeError("backend down")

        monkeypatch.setattr(manager.caches[POPULAR_ITEMS], 'put', broken)
        assert manager.get_or_compute(POPULAR_ITEMS, 'popular', lambda: [9]) == [9]
        assert manager.caches[POPULAR_ITEMS].size() == 0

    def test_compute_errors_propagate(self, manager):
        def compute():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            manager.get_or_compute(POPULAR_ITEMS, 'popular', compute)
        assert manager.caches[POPULAR_ITEMS].size() == 0

    def test_invalidate_and_clear(self, manager):
        manager.get_or_compute(USER_RECOMMENDATIONS, 1, lambda: [1])
        manager.get_or_compute(USER_RECOMMENDATIONS, 2, lambda: [2])
        manager.get_or_compute(POPULAR_ITEMS, 'popular', lambda: [3])

        assert manager.invalidate(USER_RECOMMENDATIONS, 1)
        assert not manager.invalidate(USER_RECOMMENDATIONS, 1)

        manager.on_model_update()
        assert all(stats['size'] == 0 for stats in manager.get_stats().values())


def test_singleton_reset():
    reset_cache_manager()
    first = get_cache_manager()
    assert get_cache_manager() is first
    reset_cache_manager()
    assert cache_module._cache_manager is None
    assert get_cache_manager() is not first
    reset_cache_manager()
