"""Product catalog API endpoints.

This module implements the producer side of the image pipeline:
- POST /products - Create a product and enqueue one image job per source image
- GET /products - List products
- GET /products/{product_id} - Read one product (including processed thumbnails)
- DELETE /products/{product_id} - Delete one product
- DELETE /products - Delete all products

Thumbnails are produced asynchronously; result_images fills in as the image
worker completes jobs.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from shopthumbs.api.dependencies import get_job_queue, get_settings, get_uow_factory
from shopthumbs.core.config import Settings
from shopthumbs.models.product import Product
from shopthumbs.queue.producer import enqueue_image_jobs
from shopthumbs.queue.redis_queue import JobQueue

logger = structlog.get_logger()
router = APIRouter(prefix="/products", tags=["products"])


# Request/Response Models


class CreateProductRequest(BaseModel):
    """Request model for creating a product."""

    owner_id: int = Field(..., description="ID of the user who owns the product")
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=5000)
    source_images: list[str] = Field(
        default_factory=list, description="Public URLs of the original product images"
    )
    price: float = Field(default=0.0, ge=0)

    @field_validator("source_images")
    @classmethod
    def validate_source_images(cls, v: list[str]) -> list[str]:
        """Require absolute http(s) URLs."""
        cleaned = [url.strip() for url in v]
        for url in cleaned:
            if not url.lower().startswith(("http://", "https://")):
                raise ValueError(f"Image URL must be http(s): {url}")
        return cleaned


class ProductDTO(BaseModel):
    """Data Transfer Object for products in API responses."""

    id: int
    owner_id: int
    name: str
    description: str
    source_images: list[str]
    result_images: list[str] = Field(
        default_factory=list,
        description="Shared links of processed thumbnails, in completion order",
    )
    price: float

    @classmethod
    def from_model(cls, product: Product) -> "ProductDTO":
        return cls(
            id=product.id,  # type: ignore[arg-type]
            owner_id=product.owner_id,
            name=product.name,
            description=product.description,
            source_images=list(product.source_images or []),
            result_images=list(product.result_images or []),
            price=product.price,
        )


class MessageResponse(BaseModel):
    message: str


# Routes


@router.post("", response_model=ProductDTO, status_code=status.HTTP_201_CREATED)
async def create_product(
    request: CreateProductRequest,
    uow_factory=Depends(get_uow_factory),
    queue: JobQueue = Depends(get_job_queue),
    settings: Settings = Depends(get_settings),
) -> ProductDTO:
    """Create a product and enqueue thumbnail jobs for its images.

    The product is committed before any job is enqueued, so a worker never
    receives a job for a product it cannot see.

    Raises:
        HTTPException 500: Database or queue failure
    """
    try:
        async with await uow_factory() as uow:
            product = await uow.products.add(
                Product(
                    owner_id=request.owner_id,
                    name=request.name,
                    description=request.description,
                    source_images=request.source_images,
                    price=request.price,
                )
            )
    except Exception as e:
        logger.error("product.create_failed", error=str(e), error_type=type(e).__name__)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create product"
        )

    try:
        await enqueue_image_jobs(queue, product, settings.queue_payload_format)
    except Exception as e:
        logger.error(
            "product.enqueue_failed",
            product_id=product.id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to enqueue image URL",
        )

    return ProductDTO.from_model(product)


@router.get("", response_model=list[ProductDTO])
async def list_products(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    uow_factory=Depends(get_uow_factory),
) -> list[ProductDTO]:
    async with await uow_factory() as uow:
        products = await uow.products.list_all(limit=limit, offset=offset)
    return [ProductDTO.from_model(p) for p in products]


@router.get("/{product_id}", response_model=ProductDTO)
async def get_product(product_id: int, uow_factory=Depends(get_uow_factory)) -> ProductDTO:
    async with await uow_factory() as uow:
        product = await uow.products.get_by_id(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return ProductDTO.from_model(product)


@router.delete("/{product_id}", response_model=MessageResponse)
async def delete_product(product_id: int, uow_factory=Depends(get_uow_factory)) -> MessageResponse:
    """Delete one product. Thumbnails already in storage are left in place."""
    async with await uow_factory() as uow:
        deleted = await uow.products.delete_by_id(product_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    logger.info("product.deleted", product_id=product_id)
    return MessageResponse(message="Product deleted successfully")


@router.delete("", response_model=MessageResponse)
async def delete_all_products(uow_factory=Depends(get_uow_factory)) -> MessageResponse:
    async with await uow_factory() as uow:
        count = await uow.products.delete_all()
    logger.info("product.deleted_all", count=count)
    return MessageResponse(message="All products deleted successfully")
