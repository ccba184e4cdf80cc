import numpy as np
import pytest

from rentalrec.config import RankingConfig
from rentalrec.domain import VehicleCategory
from rentalrec.ranking import HybridRanker, SEASONAL_CATEGORIES

from tests.factories import make_item


@pytest.fixture
def ranker():
    return HybridRanker(rng=np.random.default_rng(3))


@pytest.mark.parametrize("bookings, interactions, expected", [
    (0, 0, True),
    (2, 0, False),
    (1, 4, True),
    (1, 5, False),
])
def test_is_cold_start(ranker, bookings, interactions, expected):
    assert ranker.is_cold_start(bookings, interactions) is expected


def test_trending_score():
    assert HybridRanker.trending_score(3, 10, 4.5) == pytest.approx(56.0)


@pytest.mark.parametrize("rating, reviews", [(0.0, 0), (5.0, 50), (5.0, 500), (7.0, -3)])
def test_popularity_score_bounded(rating, reviews):
    score = HybridRanker.popularity_score(make_item(1, rating=rating, review_count=reviews))
    assert 0.0 <= score <= 1.0


def test_cold_start_list(ranker, catalog):
    assert [item.id for item in ranker.cold_start(catalog)] == [5, 2, 1, 4, 7, 3, 6]


def test_highly_rated(ranker, catalog):
    assert [item.id for item in ranker.highly_rated(catalog)] == [2, 1, 5, 4]


class TestMerge:

    @pytest.fixture
    def items(self):
        return {
            name: make_item(item_id, rating=4.0, review_count=10)
            for name, item_id in (('a', 11), ('b', 12), ('c', 13), ('d', 14), ('e', 15))
        }

    def test_overlap_ranks_first(self, items):
        ranker = HybridRanker(config=RankingConfig(top_n=3))
        merged = ranker.merge(
            [items['a'], items['b']],
            [items['b'], items['c']],
            list(items.values())
        )
        assert [item.id for item in merged] == [12, 11, 13]

    def test_fallback_fills_and_excludes(self, items):
        ranker = HybridRanker()
        merged = ranker.merge([items['a']], [], list(items.values()), exclude_ids={12})
        ids = [item.id for item in merged]
        assert ids[0] == 11
        assert 12 not in ids
        # equal popularity, ascending id
        assert ids[1:] == [13, 14, 15]
        assert len(ids) == len(set(ids))

    def test_respects_top_n_and_availability(self, catalog):
        ranker = HybridRanker(config=RankingConfig(top_n=4))
        merged = ranker.merge(catalog[:3], catalog[3:], catalog)
        assert len(merged) == 4
        assert all(item.is_available for item in merged)


class TestDiversify:

    def test_caps_per_category(self, catalog):
        personalized = [catalog[1], catalog[6], catalog[0], catalog[4]]  # SUV, SUV, SEDAN, SEDAN
        ranker = HybridRanker(rng=np.random.default_rng(1))
        diverse = ranker.diversify(personalized, catalog, diversity_factor=1)

        assert [item.id for item in diverse[:2]] == [2, 1]
        extras = diverse[2:]
        assert len(extras) == 2
        for item in extras:
            assert item.is_available
            assert item.id not in {2, 7, 1, 5}

    def test_seeded_rng_is_reproducible(self, catalog):
        first = HybridRanker(rng=np.random.default_rng(42)).diversify(catalog[:2], catalog)
        second = HybridRanker(rng=np.random.default_rng(42)).diversify(catalog[:2], catalog)
        assert [i.id for i in first] == [i.id for i in second]

    def test_default_rng_is_numpy_generator(self):
        assert isinstance(HybridRanker().rng, np.random.Generator)

    def test_no_extras_when_pool_is_empty(self, catalog):
        available = [item for item in catalog if item.is_available]
        diverse = HybridRanker(rng=np.random.default_rng(0)).diversify(available, available)
        assert {item.id for item in diverse} <= {item.id for item in available}

    def test_output_is_distinct_and_bounded(self, ranker, catalog):
        diverse = ranker.diversify(catalog, catalog)
        ids = [item.id for item in diverse]
        assert len(ids) == len(set(ids))
        assert len(ids) <= ranker.config.top_n


class TestTrendingAndSeasonal:

    def test_trending_by_rating_without_activity(self, ranker, catalog):
        assert [i.id for i in ranker.trending(catalog, {}, {})] == [5, 2, 1, 4, 7, 3, 6]

    def test_trending_counts_activity(self, ranker, catalog):
        trending = ranker.trending(catalog, recent_bookings={3: 10}, recent_interactions={6: 4})
        # 3: 20 + 41, 6: 2 + 39 stays below 7: 42
        assert [i.id for i in trending] == [3, 5, 2, 1, 4, 7, 6]

    def test_seasonal_table_covers_year(self):
        assert sorted(SEASONAL_CATEGORIES) == list(range(1, 13))
        assert SEASONAL_CATEGORIES[1] == VehicleCategory.SUV
        assert SEASONAL_CATEGORIES[7] == VehicleCategory.CONVERTIBLE
        assert SEASONAL_CATEGORIES[10] == VehicleCategory.SEDAN

    @pytest.mark.parametrize("month, expected", [(7, [4]), (1, [2, 7]), (4, [5, 1])])
    def test_seasonal(self, ranker, catalog, month, expected):
        assert [i.id for i in ranker.seasonal(catalog, month)] == expected


def test_bundle_caps_and_counts(catalog):
    ranker = HybridRanker(config=RankingConfig(hybrid_bundle_size=5))
    bundle = ranker.bundle(4, catalog[:3], catalog[2:6], catalog[4:7], catalog[:2])

    assert [item.id for item in bundle.items] == [1, 2, 3, 4, 5]
    assert bundle.personalized_count == 3
    assert bundle.popular_count == 4
    assert bundle.trending_count == 3
    assert bundle.diverse_count == 2

    summary = bundle.summary()
    assert summary['userId'] == 4
    assert summary['itemIds'] == [1, 2, 3, 4, 5]
