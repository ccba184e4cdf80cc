from itertools import combinations

import pytest

from rentalrec.domain import FuelType, Review, VehicleCategory
from rentalrec.similarity import ItemInteractionIndex, ItemSimilarity

from tests.factories import make_item


@pytest.fixture
def engine():
    return ItemSimilarity()


@pytest.fixture
def context(users):
    return ItemInteractionIndex.from_users(users)


def test_self_similarity_is_one(engine, catalog, context):
    for item in catalog:
        assert engine.similarity_with_context(item, item, context) == 1.0
        assert engine.attribute_similarity(item, item) == 1.0


def test_symmetric_and_bounded(engine, catalog, context):
    for a, b in combinations(catalog, 2):
        ab = engine.similarity_with_context(a, b, context)
        assert ab == pytest.approx(engine.similarity_with_context(b, a, context))
        assert 0.0 <= ab <= 1.0


def test_overall_similarity_builds_its_own_index(engine, users, item_map, context):
    bookings = [b for u in users for b in u.bookings]
    reviews = [r for u in users for r in u.reviews]
    direct = engine.overall_similarity(item_map[1], item_map[2], bookings, reviews)
    assert direct == pytest.approx(engine.similarity_with_context(item_map[1], item_map[2], context))


def test_attribute_similarity():
    a = make_item(1, seats=5, luggage_capacity=2, transmission="Automatic")
    b = make_item(2, seats=4, luggage_capacity=2, transmission="automatic")
    # category, transmission, fuel and luggage match; seats 4/5
    assert ItemSimilarity().attribute_similarity(a, b) == pytest.approx((1 + 0.8 + 1 + 1 + 1) / 5)


def test_attribute_similarity_all_different():
    a = make_item(1, VehicleCategory.SUV, FuelType.DIESEL, "Manual", seats=0, luggage_capacity=0)
    b = make_item(2, VehicleCategory.VAN, FuelType.PETROL, "Automatic", seats=8, luggage_capacity=4)
    assert ItemSimilarity().attribute_similarity(a, b) == 0.0


def test_co_booking_similarity(engine, item_map, context):
    # Item 1 booked by users 1 and 2, item 3 by user 2
    assert engine.co_booking_similarity(item_map[1], item_map[3], context) == pytest.approx(0.5)
    # Item 5 never booked, item 6 never booked
    assert engine.co_booking_similarity(item_map[5], item_map[6], context) == 0.5
    assert engine.co_booking_similarity(item_map[1], item_map[5], context) == 0.0


def test_rating_correlation_similarity(item_map):
    context = ItemInteractionIndex(
        bookings=[],
        reviews=[
            Review(1, 1, 5), Review(2, 1, 3), Review(3, 1, 1),
            Review(1, 2, 1), Review(2, 2, 3), Review(3, 2, 5),
            Review(1, 3, 4),
        ],
    )
    engine = ItemSimilarity()
    assert engine.rating_correlation_similarity(item_map[1], item_map[2], context) == pytest.approx(0.0)
    # Only one common rater
    assert engine.rating_correlation_similarity(item_map[1], item_map[3], context) == 0.0
    assert engine.rating_correlation_similarity(item_map[5], item_map[6], context) == 0.5
    assert engine.rating_correlation_similarity(item_map[1], item_map[5], context) == 0.0


def test_later_review_replaces_earlier(item_map):
    context = ItemInteractionIndex(bookings=[], reviews=[Review(1, 1, 2), Review(1, 1, 5)])
    assert context.ratings_for(1) == {1: 5}
    assert context.ratings_for(42) == {}


def test_booking_counts(context):
    assert context.booking_count(1) == 2
    assert context.booking_count(2) == 2
    assert context.booking_count(8) == 0


def test_find_similar_items_excludes_target_and_unavailable(engine, catalog, item_map, context):
    result = engine.find_similar_items(item_map[1], catalog, top_k=10, context=context)
    ids = [s.item.id for s in result]
    assert 1 not in ids
    assert 8 not in ids
    scores = [s.score for s in result]
    assert scores == sorted(scores, reverse=True)


def test_find_similar_items_ties_by_id(engine):
    target = make_item(1)
    catalog = [target, make_item(12), make_item(10), make_item(11, is_available=False)]
    result = engine.find_similar_items(target, catalog, top_k=5)
    assert [s.item.id for s in result] == [10, 12]


def test_find_similar_items_respects_exclusions(engine, catalog, item_map):
    result = engine.find_similar_items(item_map[1], catalog, top_k=3, exclude_ids={5, 7})
    ids = [s.item.id for s in result]
    assert len(ids) == 3
    assert not {1, 5, 7, 8} & set(ids)


def test_index_from_users_matches_bookings(users):
    index = ItemInteractionIndex.from_users(users)
    assert index.users_who_booked(1) == {1, 2}
    assert index.users_who_booked(4) == {3}
    assert index.users_who_booked(99) == set()
