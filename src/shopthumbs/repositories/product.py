"""Product repository.

Provides data access methods for Product entities, including the atomic append
used by the image worker to record published thumbnails.
"""

from sqlalchemy import delete, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from shopthumbs.models.product import Product


class ProductRepository:
    """Repository for Product entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, product: Product) -> Product:
        """Persist new product and return it with its generated ID."""
        self.session.add(product)
        await self.session.flush()
        return product

    async def get_by_id(self, product_id: int) -> Product | None:
        result = await self.session.execute(select(Product).where(Product.id == product_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def list_all(self, limit: int = 100, offset: int = 0) -> list[Product]:
        """Retrieve products ordered by ID (oldest first)."""
        result = await self.session.execute(
            select(Product).order_by(Product.id.asc()).limit(limit).offset(offset)  # type: ignore[union-attr]
        )
        return list(result.scalars().all())

    async def delete_by_id(self, product_id: int) -> bool:
        """Delete one product.

        Returns:
            True if the product was deleted, False if it did not exist
        """
        result = await self.session.execute(delete(Product).where(Product.id == product_id))  # type: ignore[arg-type]
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def delete_all(self) -> int:
        """Delete every product and return the number of rows removed."""
        result = await self.session.execute(delete(Product))
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]

    async def append_result_image(self, product_id: int, image_url: str) -> bool:
        """Append a thumbnail URL to a product's result_images in one statement.

        The append happens inside PostgreSQL, so concurrent workers recording
        thumbnails for the same product never overwrite each other. A NULL
        column is treated as the empty array.

        Query explanation:
        - coalesce(result_images, '{}'::text[]): Initialize missing arrays
        - array_append(...): Add the URL at the end
        - RETURNING id: Distinguish "updated" from "no such product"

        Args:
            product_id: Product to update
            image_url: Shared link of the published thumbnail

        Returns:
            True if the product exists and was updated, False otherwise
        """
        result = await self.session.execute(
            text(
                """
                UPDATE products
                SET result_images = array_append(
                    coalesce(result_images, '{}'::text[]), CAST(:image_url AS text)
                )
                WHERE id = :product_id
                RETURNING id
                """
            ),
            {"image_url": image_url, "product_id": product_id},
        )
        return result.first() is not None
