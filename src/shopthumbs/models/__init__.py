"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from shopthumbs.models.product import Product

__all__ = ["Product"]
