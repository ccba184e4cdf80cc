"""
Rental recommendation engine.

Subpackages:
- similarity: user-user and item-item similarity
- cf: collaborative filtering and SGD matrix factorization
- ranking: hybrid merge, cold start, diversity and trending policies
"""

__version__ = "0.1.0"
