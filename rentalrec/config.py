"""
Engine Configuration.

Dataclass configs for every tunable of the engine, grouped under
``EngineConfig``. Weight groups are validated when constructed, so a bad
YAML file fails at startup rather than on the first request.

Usage:
    >>> from rentalrec.config import load_config
    >>> config = load_config()              # $RENTALREC_CONFIG or config/engine.yaml
    >>> config.hybrid.personalized
    0.4
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar
import logging
import math
import os

import yaml

from .errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/engine.yaml"
CONFIG_ENV_VAR = "RENTALREC_CONFIG"
WEIGHT_TOLERANCE = 1e-3

T = TypeVar("T")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_weights(name: str, weights: Dict[str, float]) -> None:
    """Raise ValidationError unless weights are non-negative and sum to 1.0."""
    for key, value in weights.items():
        if not _is_number(value) or not math.isfinite(value) or value < 0:
            raise ValidationError(f"{name}.{key} must be a non-negative number, got {value!r}")
    total = sum(weights.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ValidationError(f"{name} weights must sum to 1.0, got {total:.4f}")


def _check_positive(name: str, value: float) -> None:
    if not _is_number(value) or not math.isfinite(value) or value <= 0:
        raise ValidationError(f"{name} must be positive, got {value!r}")


# ============================================================================
# Similarity Weights
# ============================================================================

@dataclass(frozen=True)
class UserSimilarityWeights:
    """Weights of the four user-similarity signals."""
    booking: float = 0.4
    rating: float = 0.3
    demographic: float = 0.2
    behavioral: float = 0.1

    def __post_init__(self):
        _check_weights("user_similarity", {
            'booking': self.booking,
            'rating': self.rating,
            'demographic': self.demographic,
            'behavioral': self.behavioral,
        })


@dataclass(frozen=True)
class BookingSimilarityWeights:
    """Weights inside booking-pattern similarity."""
    category: float = 0.4
    pattern: float = 0.3
    price: float = 0.2
    duration: float = 0.1

    def __post_init__(self):
        _check_weights("booking_similarity", {
            'category': self.category,
            'pattern': self.pattern,
            'price': self.price,
            'duration': self.duration,
        })


@dataclass(frozen=True)
class ItemSimilarityWeights:
    """Weights of the four item-similarity signals."""
    attribute: float = 0.4
    co_booking: float = 0.3
    rating: float = 0.2
    price: float = 0.1

    def __post_init__(self):
        _check_weights("item_similarity", {
            'attribute': self.attribute,
            'co_booking': self.co_booking,
            'rating': self.rating,
            'price': self.price,
        })


# ============================================================================
# Ranking
# ============================================================================

@dataclass(frozen=True)
class HybridWeights:
    """
    Weights of the hybrid merge.

    Attributes:
        personalized: Weight of the user-based CF list
        item_based: Weight of the item-based CF list
        popularity: Weight of the popularity fallback
        personalized_decay: Position decay of the user-based list
        item_based_decay: Position decay of the item-based list
    """
    personalized: float = 0.4
    item_based: float = 0.3
    popularity: float = 0.3
    personalized_decay: float = 0.1
    item_based_decay: float = 0.05

    def __post_init__(self):
        _check_weights("hybrid", {
            'personalized': self.personalized,
            'item_based': self.item_based,
            'popularity': self.popularity,
        })


@dataclass(frozen=True)
class RankingConfig:
    """List sizes and thresholds used by the ranker and orchestrator."""
    top_n: int = 10
    hybrid_bundle_size: int = 15
    similar_items_limit: int = 5
    user_neighbours: int = 5
    item_neighbours: int = 10
    cold_start_min_bookings: int = 2
    cold_start_min_interactions: int = 5
    highly_rated_threshold: float = 4.5
    highly_rated_limit: int = 5
    trending_window_days: int = 7
    diversity_factor: int = 3
    diversity_random_extra: int = 2

    def __post_init__(self):
        for f in fields(self):
            if f.name == 'highly_rated_threshold':
                if not _is_number(self.highly_rated_threshold):
                    raise ValidationError(
                        f"ranking.highly_rated_threshold must be a number, got {self.highly_rated_threshold!r}"
                    )
                continue
            _check_positive(f"ranking.{f.name}", getattr(self, f.name))


# ============================================================================
# Latent Factor Model
# ============================================================================

@dataclass(frozen=True)
class LatentFactorConfig:
    """SGD matrix factorization hyperparameters."""
    factors: int = 10
    learning_rate: float = 0.01
    regularization: float = 0.02
    epochs: int = 100
    init_scale: float = 0.1
    random_seed: Optional[int] = None

    def __post_init__(self):
        _check_positive("latent.factors", self.factors)
        _check_positive("latent.learning_rate", self.learning_rate)
        _check_positive("latent.epochs", self.epochs)
        _check_positive("latent.init_scale", self.init_scale)
        if not _is_number(self.regularization) or self.regularization < 0:
            raise ValidationError(f"latent.regularization must be >= 0, got {self.regularization}")


# ============================================================================
# Service
# ============================================================================

@dataclass(frozen=True)
class CacheConfig:
    """Response cache sizing, per namespace."""
    max_size: int = 10000
    user_recommendations_ttl_seconds: float = 1800   # 30 min
    popular_items_ttl_seconds: float = 3600          # 1 hour
    similar_items_ttl_seconds: float = 86400         # 24 hours
    trending_items_ttl_seconds: float = 3600

    def __post_init__(self):
        _check_positive("cache.max_size", self.max_size)


@dataclass(frozen=True)
class InteractionConfig:
    max_events_per_user: int = 100
    retention_days: int = 90

    def __post_init__(self):
        _check_positive("interactions.max_events_per_user", self.max_events_per_user)
        _check_positive("interactions.retention_days", self.retention_days)


@dataclass(frozen=True)
class SchedulerConfig:
    """Cron schedule of the periodic jobs and where their logs go (None = console only)."""
    timezone: str = "UTC"
    cleanup_hour: int = 3
    cleanup_minute: int = 0
    training_enabled: bool = False
    training_day_of_week: str = "sun"
    training_hour: int = 4
    log_dir: Optional[str] = "logs"


@dataclass(frozen=True)
class EngineConfig:
    user_similarity: UserSimilarityWeights = field(default_factory=UserSimilarityWeights)
    booking_similarity: BookingSimilarityWeights = field(default_factory=BookingSimilarityWeights)
    item_similarity: ItemSimilarityWeights = field(default_factory=ItemSimilarityWeights)
    hybrid: HybridWeights = field(default_factory=HybridWeights)
    ranking: RankingConfig = field(default_factory=RankingConfig)
    latent: LatentFactorConfig = field(default_factory=LatentFactorConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    interactions: InteractionConfig = field(default_factory=InteractionConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


# ============================================================================
# Loading
# ============================================================================

def _build_section(cls: Type[T], section: str, data: Optional[Dict[str, Any]]) -> T:
    if not data:
        return cls()
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        logger.warning(f"Ignoring unknown keys in '{section}': {sorted(unknown)}")
    return cls(**{k: v for k, v in data.items() if k in known})


def config_from_dict(data: Dict[str, Any]) -> EngineConfig:
    """Build an EngineConfig from a parsed YAML mapping."""
    data = data or {}
    sections = {f.name: f.default_factory for f in fields(EngineConfig)}
    unknown = set(data) - set(sections)
    if unknown:
        logger.warning(f"Ignoring unknown config sections: {sorted(unknown)}")
    return EngineConfig(**{
        name: _build_section(factory, name, data.get(name))
        for name, factory in sections.items()
    })


def load_config(config_path: Optional[str] = None) -> EngineConfig:
    """
    Load engine configuration from YAML.

    Resolution order: explicit path, ``$RENTALREC_CONFIG``,
    ``config/engine.yaml``, built-in defaults.

    Args:
        config_path: Optional path to a YAML file

    Returns:
        Validated EngineConfig

    Raises:
        ValidationError: If any weight group is invalid
    """
    path_str = config_path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    path = Path(path_str)

    if not path.exists():
        if config_path is not None:
            raise FileNotFoundError(f"Config file not found: {path}")
        logger.info(f"Config not found at {path}, using defaults")
        return EngineConfig()

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}

    config = config_from_dict(data)
    logger.info(f"Loaded engine config from {path}")
    return config
