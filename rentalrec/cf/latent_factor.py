"""
Latent Factor Model (SGD Matrix Factorization).

Learns K-dimensional user and item vectors whose dot product approximates the
implicit booking ratings built by ``matrix_construction``.

Update Rules (per observed rating, simultaneous from pre-update values):
    error = r - p @ q
    p    += lr * (error * q - reg * p)
    q    += lr * (error * p - reg * q)

Training produces an immutable ``TrainedModel`` snapshot. The serving side
only reads snapshots; retraining builds a new one.

Example:
    >>> mf = MatrixFactorization(LatentFactorConfig(random_seed=42))
    >>> model = mf.factorize(users, items)
    >>> model.recommend(user_id=7, top_n=10, exclude={3, 5})
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
import logging
import time

import numpy as np
import pandas as pd

from ..config import LatentFactorConfig
from ..domain import Booking, Item, User
from ..errors import ComputationError, NotFoundError
from ..logging_utils import format_params, generate_run_id
from .matrix_construction import MAX_RATING, MIN_RATING, build_rating_frame, build_rating_matrix

logger = logging.getLogger(__name__)

MODEL_TYPE = 'sgd_mf'
LOG_EVERY_EPOCHS = 10


@dataclass
class TrainingHistory:
    """
    Track training metrics across epochs.

    Attributes:
        epochs: Epoch numbers
        losses: Training RMSE after each epoch
        durations: Epoch durations in seconds
    """
    epochs: List[int] = field(default_factory=list)
    losses: List[float] = field(default_factory=list)
    durations: List[float] = field(default_factory=list)

    def add_epoch(self, epoch: int, loss: float, duration: float):
        self.epochs.append(epoch)
        self.losses.append(loss)
        self.durations.append(duration)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'epochs': self.epochs,
            'losses': self.losses,
            'durations': self.durations
        }


@dataclass(frozen=True, eq=False)
class TrainedModel:
    """
    Immutable snapshot of a trained factorization.

    Row ``u`` of ``user_vectors`` belongs to ``user_ids[u]``; row ``i`` of
    ``item_vectors`` belongs to ``item_ids[i]``. Both arrays are read-only.
    """
    version: str
    user_ids: Tuple[int, ...]
    item_ids: Tuple[int, ...]
    user_vectors: np.ndarray
    item_vectors: np.ndarray
    trained_at: datetime
    history: TrainingHistory = field(default_factory=TrainingHistory)

    def __post_init__(self):
        self.user_vectors.setflags(write=False)
        self.item_vectors.setflags(write=False)
        object.__setattr__(self, '_user_index', {uid: i for i, uid in enumerate(self.user_ids)})
        object.__setattr__(self, '_item_index', {iid: i for i, iid in enumerate(self.item_ids)})

    @property
    def factors(self) -> int:
        return self.user_vectors.shape[1]

    def has_user(self, user_id: int) -> bool:
        return user_id in self._user_index

    def _user_row(self, user_id: int) -> int:
        if user_id not in self._user_index:
            raise NotFoundError("User", user_id)
        return self._user_index[user_id]

    def _item_row(self, item_id: int) -> int:
        if item_id not in self._item_index:
            raise NotFoundError("Item", item_id)
        return self._item_index[item_id]

    def predict(self, user_id: int, item_id: int) -> float:
        """Predicted rating clamped to [1, 5]."""
        u = self._user_row(user_id)
        i = self._item_row(item_id)
        score = float(self.user_vectors[u] @ self.item_vectors[i])
        return min(MAX_RATING, max(MIN_RATING, score))

    def predict_all(self) -> pd.DataFrame:
        """Full ``U @ V.T`` prediction grid, clamped, indexed by user and item id."""
        grid = np.clip(self.user_vectors @ self.item_vectors.T, MIN_RATING, MAX_RATING)
        return pd.DataFrame(grid, index=list(self.user_ids), columns=list(self.item_ids))

    def recommend(
        self,
        user_id: int,
        top_n: int = 10,
        exclude: Optional[Set[int]] = None
    ) -> List[Tuple[int, float]]:
        """
        Top-N (item_id, predicted rating) pairs for a user.

        Ties are broken by ascending item id.
        """
        u = self._user_row(user_id)
        exclude = exclude or set()
        scores = np.clip(self.item_vectors @ self.user_vectors[u], MIN_RATING, MAX_RATING)

        ranked = sorted(
            ((iid, float(s)) for iid, s in zip(self.item_ids, scores) if iid not in exclude),
            key=lambda pair: (-pair[1], pair[0])
        )
        return ranked[:max(0, top_n)]


class MatrixFactorization:
    """
    Train a ``TrainedModel`` by plain SGD over observed ratings.

    Attributes:
        config: Factor count, learning rate, regularization, epochs, init scale
    """

    def __init__(self, config: Optional[LatentFactorConfig] = None):
        self.config = config or LatentFactorConfig()

    def _init_vectors(self, num_users: int, num_items: int, seed: Optional[int]) -> Tuple[np.ndarray, np.ndarray]:
        rng = np.random.default_rng(seed)
        k = self.config.factors
        U = rng.random((num_users, k)) * self.config.init_scale
        V = rng.random((num_items, k)) * self.config.init_scale
        return U, V

    def fit(
        self,
        ratings: pd.DataFrame,
        user_ids: Sequence[int],
        item_ids: Sequence[int],
        seed: Optional[int] = None
    ) -> TrainedModel:
        """
        Train on a (user_id, item_id, rating) frame.

        Args:
            ratings: Long-format ratings, one row per (user, item)
            user_ids: User universe (rows of the model)
            item_ids: Item universe (columns of the model)
            seed: Initialization seed; falls back to ``config.random_seed``

        Returns:
            Trained snapshot

        Raises:
            ComputationError: On malformed ratings, empty universes or a
                diverging (non-finite) run
        """
        user_ids = list(user_ids)
        item_ids = list(item_ids)
        if not user_ids or not item_ids:
            raise ComputationError(
                f"Cannot factorize an empty matrix ({len(user_ids)} users, {len(item_ids)} items)"
            )
        if len(set(user_ids)) != len(user_ids) or len(set(item_ids)) != len(item_ids):
            raise ComputationError("User and item ids must be unique")
        matrix, _, _ = build_rating_matrix(ratings, user_ids, item_ids)

        if seed is None:
            seed = self.config.random_seed

        observed = matrix.tocoo()
        rows = observed.row.astype(np.int64)
        cols = observed.col.astype(np.int64)
        values = observed.data.astype(np.float64)

        # Visit observations in (user, item) order
        order = np.lexsort((cols, rows))
        rows, cols, values = rows[order], cols[order], values[order]

        U, V = self._init_vectors(len(user_ids), len(item_ids), seed)
        lr = self.config.learning_rate
        reg = self.config.regularization
        epochs = self.config.epochs

        logger.info(
            f"Training {MODEL_TYPE} | " + format_params({
                'users': len(user_ids),
                'items': len(item_ids),
                'ratings': len(values),
                'factors': self.config.factors,
                'lr': lr,
                'reg': reg,
                'epochs': epochs,
                'seed': seed,
            })
        )

        history = TrainingHistory()
        start_time = time.time()

        for epoch in range(1, epochs + 1):
            epoch_start = time.time()

            for u, i, r in zip(rows, cols, values):
                p = U[u].copy()
                q = V[i].copy()
                error = r - p @ q
                U[u] = p + lr * (error * q - reg * p)
                V[i] = q + lr * (error * p - reg * q)

            if not (np.all(np.isfinite(U)) and np.all(np.isfinite(V))):
                raise ComputationError(f"Latent factors diverged at epoch {epoch}")

            if len(values):
                residuals = values - np.einsum('ij,ij->i', U[rows], V[cols])
                rmse = float(np.sqrt(np.mean(residuals ** 2)))
            else:
                rmse = 0.0
            history.add_epoch(epoch, rmse, time.time() - epoch_start)

            if epoch % LOG_EVERY_EPOCHS == 0 or epoch == epochs:
                logger.debug(f"Epoch {epoch}/{epochs}: rmse={rmse:.4f}")

        model = TrainedModel(
            version=generate_run_id(MODEL_TYPE),
            user_ids=tuple(user_ids),
            item_ids=tuple(item_ids),
            user_vectors=U,
            item_vectors=V,
            trained_at=datetime.now(),
            history=history
        )

        final_rmse = history.losses[-1] if history.losses else 0.0
        logger.info(
            f"Training complete: version={model.version}, rmse={final_rmse:.4f}, "
            f"time={time.time() - start_time:.2f}s"
        )
        return model

    def factorize(
        self,
        users: Sequence[User],
        items: Sequence[Item],
        bookings: Optional[Sequence[Booking]] = None,
        seed: Optional[int] = None
    ) -> TrainedModel:
        """
        Build implicit ratings from bookings and train on them.

        Bookings of items outside ``items`` are ignored.
        """
        item_ids = [item.id for item in items]
        known_items = set(item_ids)
        if bookings is None:
            bookings = [b for u in users for b in u.bookings]
        bookings = [b for b in bookings if b.item_id in known_items]

        frame = build_rating_frame(users, bookings)
        return self.fit(frame, [u.id for u in users], item_ids, seed=seed)
