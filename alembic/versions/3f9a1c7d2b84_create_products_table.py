"""create_products_table

Revision ID: 3f9a1c7d2b84
Revises:
Create Date: 2026-10-19 13:50:02.118406

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c7d2b84"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create products table."""
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("source_images", postgresql.ARRAY(sa.Text()), nullable=False),
        # NULL until the first thumbnail is recorded
        sa.Column("result_images", postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column("price", sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_products_owner_id"), "products", ["owner_id"], unique=False)


def downgrade() -> None:
    """Drop products table."""
    op.drop_index(op.f("ix_products_owner_id"), table_name="products")
    op.drop_table("products")
