from datetime import date

import numpy as np
import pandas as pd
import pytest

from rentalrec.cf import latent_factor
from rentalrec.cf import MatrixFactorization, build_rating_frame, build_rating_matrix, implicit_rating
from rentalrec.config import LatentFactorConfig
from rentalrec.domain import User
from rentalrec.errors import ComputationError, NotFoundError

from tests.factories import make_booking


@pytest.fixture
def mf():
    return MatrixFactorization(LatentFactorConfig(epochs=30))


@pytest.mark.parametrize("days, expected", [(0, 3.0), (7, 4.0), (3, 3.0 + 3 / 7), (21, 5.0)])
def test_implicit_rating(item_map, days, expected):
    booking = make_booking(1, item_map[1], date(2025, 5, 1), days=days)
    assert implicit_rating(booking) == pytest.approx(expected)


def test_rating_frame_latest_booking_wins(item_map):
    user = User(id=1, bookings=[
        make_booking(1, item_map[1], date(2025, 3, 1), days=14, created=date(2025, 2, 1)),
        make_booking(1, item_map[1], date(2025, 5, 1), days=0, created=date(2025, 4, 1)),
    ])
    frame = build_rating_frame([user])
    assert len(frame) == 1
    assert frame.loc[0, 'rating'] == 3.0


def test_rating_frame_drops_unknown_users(users, item_map):
    stranger = make_booking(77, item_map[5], date(2025, 5, 1))
    frame = build_rating_frame(users, [b for u in users for b in u.bookings] + [stranger])
    assert 77 not in set(frame['user_id'])
    assert len(frame) == 6


def test_empty_rating_frame():
    frame = build_rating_frame([User(id=1)])
    assert frame.empty
    assert list(frame.columns) == ['user_id', 'item_id', 'rating']


def test_rating_matrix(users, catalog):
    frame = build_rating_frame(users)
    matrix, user_ids, item_ids = build_rating_matrix(frame, [u.id for u in users], [i.id for i in catalog])
    assert matrix.shape == (4, 8)
    assert matrix.nnz == 6
    # Alice (row 0) booked item 2 (column 1) for 5 days
    assert matrix[0, 1] == pytest.approx(3.0 + 5 / 7)


def test_seeded_training_is_deterministic(mf, users, catalog):
    first = mf.factorize(users, catalog, seed=11)
    second = mf.factorize(users, catalog, seed=11)
    assert np.array_equal(first.user_vectors, second.user_vectors)
    assert np.array_equal(first.item_vectors, second.item_vectors)


def test_training_reads_sparse_matrix(mf, users, catalog, monkeypatch):
    built = []

    def recording_build(frame, user_ids, item_ids):
        result = build_rating_matrix(frame, user_ids, item_ids)
        built.append(result[0])
        return result

    monkeypatch.setattr(latent_factor, 'build_rating_matrix', recording_build)
    mf.factorize(users, catalog, seed=4)

    assert len(built) == 1
    assert built[0].shape == (4, 8)
    assert built[0].nnz == 6


def test_row_order_does_not_change_training(mf, users, catalog):
    frame = build_rating_frame(users)
    shuffled = frame.sample(frac=1.0, random_state=0).reset_index(drop=True)
    user_ids = [u.id for u in users]
    item_ids = [i.id for i in catalog]

    first = mf.fit(frame, user_ids, item_ids, seed=9)
    second = mf.fit(shuffled, user_ids, item_ids, seed=9)
    assert np.array_equal(first.user_vectors, second.user_vectors)


def test_predictions_clamped(mf, users, catalog):
    model = mf.factorize(users, catalog, seed=3)
    grid = model.predict_all()
    assert grid.shape == (4, 8)
    assert grid.values.min() >= 1.0
    assert grid.values.max() <= 5.0
    assert 1.0 <= model.predict(1, 5) <= 5.0


def test_training_reduces_error(users, catalog):
    model = MatrixFactorization(LatentFactorConfig(epochs=100)).factorize(users, catalog, seed=5)
    losses = model.history.losses
    assert len(losses) == 100
    assert losses[-1] < losses[0]


def test_snapshot_is_read_only(mf, users, catalog):
    model = mf.factorize(users, catalog, seed=1)
    with pytest.raises(ValueError):
        model.user_vectors[0, 0] = 1.0


def test_recommend_excludes_and_orders(mf, users, catalog):
    model = mf.factorize(users, catalog, seed=2)
    ranked = model.recommend(1, top_n=3, exclude={1, 2})
    assert len(ranked) == 3
    assert not {1, 2} & {item_id for item_id, _ in ranked}
    scores = [score for _, score in ranked]
    assert scores == sorted(scores, reverse=True)


def test_unknown_ids_at_prediction(mf, users, catalog):
    model = mf.factorize(users, catalog, seed=2)
    with pytest.raises(NotFoundError):
        model.predict(999, 1)
    with pytest.raises(NotFoundError):
        model.predict(1, 999)
    with pytest.raises(NotFoundError):
        model.recommend(999)


@pytest.mark.parametrize("rows", [
    [(1, 1, float('nan'))],
    [(1, 1, 6.0)],
    [(1, 1, 0.5)],
    [(42, 1, 3.0)],
    [(1, 42, 3.0)],
    [(1, 1, 3.0), (1, 1, 4.0)],
])
def test_malformed_ratings(mf, rows):
    frame = pd.DataFrame(rows, columns=['user_id', 'item_id', 'rating'])
    with pytest.raises(ComputationError):
        mf.fit(frame, [1, 2], [1, 2])


def test_empty_universe(mf):
    with pytest.raises(ComputationError):
        mf.fit(pd.DataFrame(columns=['user_id', 'item_id', 'rating']), [], [1])
