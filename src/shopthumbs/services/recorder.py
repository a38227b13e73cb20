"""Result recorder: attach a published thumbnail link to its product."""

from typing import Callable

import structlog
from sqlalchemy.exc import SQLAlchemyError

from shopthumbs.repositories.product import ProductRepository
from shopthumbs.services.exceptions import PersistenceError, RecordNotFoundError

logger = structlog.get_logger()


class ResultRecorder:
    """Appends shared links to Product.result_images.

    Each call uses its own session so concurrent jobs never share a transaction.
    The append itself is a single UPDATE statement (see
    ProductRepository.append_result_image).
    """

    def __init__(self, session_factory: Callable):
        """Initialize recorder.

        Args:
            session_factory: Factory function that creates database sessions
        """
        self.session_factory = session_factory

    async def record(self, product_id: int, image_url: str) -> None:
        """Append `image_url` to the product's result images.

        Raises:
            RecordNotFoundError: No product with this ID
            PersistenceError: Database unreachable or write rejected
        """
        try:
            async with self.session_factory() as session:
                updated = await ProductRepository(session).append_result_image(
                    product_id, image_url
                )
                if not updated:
                    await session.rollback()
                    raise RecordNotFoundError(product_id)
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to record result image for product {product_id}: {e}"
            ) from e
        except OSError as e:
            raise PersistenceError(f"Database unreachable: {e}") from e

        logger.debug("product.result_image.recorded", product_id=product_id, url=image_url)
