"""Product entity - catalog item with source images and processed thumbnails."""

from typing import Optional

from sqlalchemy import Column, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlmodel import Field, SQLModel


class Product(SQLModel, table=True):
    """Product owns the source image URLs and the shared links of their thumbnails.

    result_images is append-only and filled by the image worker in completion
    order, so it is not positionally aligned with source_images.
    """

    __tablename__ = "products"  # type: ignore[assignment]

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(index=True)
    name: str = Field(max_length=255)
    description: str = Field(default="")
    source_images: list[str] = Field(
        default_factory=list, sa_column=Column(ARRAY(Text), nullable=False)
    )
    result_images: Optional[list[str]] = Field(default=None, sa_column=Column(ARRAY(Text)))
    price: float = Field(default=0.0, ge=0)
