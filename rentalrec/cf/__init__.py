"""
Collaborative filtering and latent factor models.
"""

from .collaborative import CollaborativeFiltering, infer_preferred_features, item_popularity
from .latent_factor import MatrixFactorization, TrainedModel, TrainingHistory
from .matrix_construction import build_rating_frame, build_rating_matrix, implicit_rating

__all__ = [
    'CollaborativeFiltering',
    'item_popularity',
    'infer_preferred_features',
    'MatrixFactorization',
    'TrainedModel',
    'TrainingHistory',
    'build_rating_frame',
    'build_rating_matrix',
    'implicit_rating',
]
