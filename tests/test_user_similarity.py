from datetime import date, datetime
from itertools import combinations

import pytest

from rentalrec.domain import Review, User
from rentalrec.similarity import UserSimilarity
from rentalrec.similarity.user_similarity import (
    average_interval,
    month_histogram,
    most_common_location,
)

from tests.factories import NOW, make_booking


@pytest.fixture
def engine(clock):
    return UserSimilarity(clock=clock)


def test_self_similarity_is_one(engine, users):
    for user in users:
        assert engine.overall_similarity(user, user) == 1.0


def test_symmetric_and_bounded(engine, users):
    for a, b in combinations(users, 2):
        ab = engine.overall_similarity(a, b)
        ba = engine.overall_similarity(b, a)
        assert ab == pytest.approx(ba)
        assert 0.0 <= ab <= 1.0


def test_booking_similarity_without_history(engine, user_map):
    empty = User(id=99)
    other_empty = User(id=98)
    assert engine.booking_similarity(empty, other_empty) == 0.5
    assert engine.booking_similarity(user_map[1], empty) == 0.0


def test_rating_similarity_needs_two_common_items(engine, user_map):
    # Alice and Chandra share only item 2
    assert engine.rating_similarity(user_map[1], user_map[3]) == 0.0
    assert engine.rating_similarity(User(id=50), User(id=51)) == 0.5


def test_rating_similarity_perfect_agreement(engine):
    a = User(id=10, reviews=[Review(10, 1, 5), Review(10, 2, 3), Review(10, 3, 1)])
    b = User(id=11, reviews=[Review(11, 1, 5), Review(11, 2, 3), Review(11, 3, 1)])
    assert engine.rating_similarity(a, b) == pytest.approx(1.0)


def test_demographic_without_measurable_proxies(engine):
    assert engine.demographic_similarity(User(id=1), User(id=2)) == 0.0


def test_behavioral_needs_bookings(engine, user_map):
    assert engine.behavioral_similarity(user_map[1], user_map[4]) == 0.0


def test_identical_behaviour_accounts_far_apart(engine, item_map):
    def twin(user_id, created_at):
        return User(
            id=user_id,
            created_at=created_at,
            bookings=[
                make_booking(user_id, item_map[1], date(2025, 3, 1), days=3, created=date(2025, 2, 20)),
                make_booking(user_id, item_map[2], date(2025, 5, 1), days=5, created=date(2025, 4, 15)),
            ],
            reviews=[Review(user_id, 1, 5), Review(user_id, 2, 3)],
        )

    a = twin(20, datetime(2023, 1, 1))
    b = twin(21, datetime(2024, 2, 5))  # 400 days later

    booking = engine.booking_similarity(a, b)
    rating = engine.rating_similarity(a, b)
    behavioral = engine.behavioral_similarity(a, b)
    overall = engine.overall_similarity(a, b)

    assert overall < 1.0
    assert overall >= 0.4 * booking + 0.3 * rating + 0.1 * behavioral - 1e-9


def test_find_similar_users_excludes_target_and_is_sorted(engine, users, user_map):
    result = engine.find_similar_users(user_map[1], users, top_n=2)
    assert len(result) == 2
    assert all(s.user.id != 1 for s in result)
    assert result[0].score >= result[1].score


def test_find_similar_users_ties_by_id(engine, item_map):
    target = User(id=1, bookings=[make_booking(1, item_map[1], date(2025, 5, 1))])
    clones = [
        User(id=uid, bookings=[make_booking(uid, item_map[3], date(2025, 5, 1))])
        for uid in (9, 5, 7)
    ]
    result = engine.find_similar_users(target, clones, top_n=3)
    assert [s.user.id for s in result] == [5, 7, 9]


def test_single_signal_neighbours(engine, users, user_map):
    by_booking = engine.find_users_with_similar_vehicle_preferences(user_map[1], users, top_n=3)
    by_rating = engine.find_users_with_similar_rating_patterns(user_map[1], users, top_n=3)
    assert len(by_booking) == 3
    assert len(by_rating) == 3
    # Dipa has no bookings at all
    assert by_booking[-1].user.id == 4


def test_similarity_matrix(engine, users):
    matrix = engine.similarity_matrix(users)
    assert list(matrix.index) == [1, 2, 3, 4]
    for uid in matrix.index:
        assert matrix.loc[uid, uid] == 1.0
    assert (matrix.values == matrix.values.T).all()


def test_booking_statistics(user_map):
    alice = user_map[1]
    assert average_interval(alice.bookings) == 20.0
    hist = month_histogram(alice.bookings)
    assert hist[4] == 2.0
    assert hist.sum() == 2.0
    assert most_common_location(alice) == "Downtown Kathmandu"
    assert most_common_location(user_map[4]) is None


def test_frequency_zero_on_first_day(item_map):
    engine = UserSimilarity(clock=lambda: datetime(2025, 4, 20, 18, 0))
    a = User(id=1, bookings=[make_booking(1, item_map[1], date(2025, 5, 1), created=date(2025, 4, 20))])
    b = User(id=2, bookings=[make_booking(2, item_map[1], date(2025, 5, 1), created=date(2025, 4, 10))])
    assert engine._frequency_similarity(a.bookings, b.bookings) == 0.0
