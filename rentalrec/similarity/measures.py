"""
Bounded similarity measures shared by the user and item engines.

Every function returns a value in [0, 1] except ``pearson_correlation``,
which returns [-1, 1] and is mapped onto [0, 1] by ``rescale_correlation``.
"""

from typing import Hashable, Iterable, Sequence, Set

import numpy as np


def ratio_similarity(a: float, b: float) -> float:
    """
    ``min/max`` closeness of two non-negative quantities.

    Both zero gives 1.0, exactly one zero gives 0.0. Negative inputs are
    floored at zero.
    """
    a = max(0.0, float(a))
    b = max(0.0, float(b))
    if a == 0.0 and b == 0.0:
        return 1.0
    if a == 0.0 or b == 0.0:
        return 0.0
    return min(a, b) / max(a, b)


def jaccard_similarity(set1: Set[Hashable], set2: Set[Hashable]) -> float:
    """Intersection over union; two empty sets are identical (1.0)."""
    if not set1 and not set2:
        return 1.0
    union = set1 | set2
    return len(set1 & set2) / len(union)


def pearson_correlation(xs: Sequence[float], ys: Sequence[float]) -> float:
    """
    Pearson correlation of paired samples.

    Returns 0.0 for fewer than two pairs or when either side has no
    variance.
    """
    if len(xs) != len(ys):
        raise ValueError(f"Paired samples differ in length: {len(xs)} vs {len(ys)}")
    n = len(xs)
    if n < 2:
        return 0.0

    x = np.asarray(xs, dtype=np.float64)
    y = np.asarray(ys, dtype=np.float64)

    num = float(np.dot(x, y) - x.sum() * y.sum() / n)
    den_sq = (float(np.dot(x, x)) - x.sum() ** 2 / n) * (float(np.dot(y, y)) - y.sum() ** 2 / n)
    if den_sq <= 0.0:
        return 0.0

    r = num / np.sqrt(den_sq)
    # float error can push |r| a hair past 1
    return float(min(1.0, max(-1.0, r)))


def rescale_correlation(r: float) -> float:
    """Map a correlation from [-1, 1] onto [0, 1]."""
    return max(0.0, (r + 1.0) / 2.0)


def cosine_similarity(v1: Iterable[float], v2: Iterable[float]) -> float:
    """Cosine of two non-negative count vectors; 0.0 if either is all zeros."""
    a = np.asarray(list(v1), dtype=np.float64)
    b = np.asarray(list(v2), dtype=np.float64)
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0.0:
        return 0.0
    return float(min(1.0, np.dot(a, b) / norm))
