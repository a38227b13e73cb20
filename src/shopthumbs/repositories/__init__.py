"""Repository layer.

Provides data access abstractions for all domain entities.
"""

from shopthumbs.repositories.product import ProductRepository

__all__ = ["ProductRepository"]
