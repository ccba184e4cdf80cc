"""
Exceptions raised by the recommendation engine.

Callers catch ``RecommendationError`` to handle every engine failure, or one
of the subclasses for a specific policy (404 for ``NotFoundError``, 400 for
``ValidationError``, 500 for ``ComputationError``).
"""

from typing import Any


class RecommendationError(Exception):
    """Base class for engine errors."""


class NotFoundError(RecommendationError):
    """Unknown user or item id."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found with id: {entity_id}")


class ValidationError(RecommendationError, ValueError):
    """Invalid configuration or request parameter."""


class ComputationError(RecommendationError):
    """Training or ranking could not be carried out on the given data."""
