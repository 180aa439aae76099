"""Initial schema - products catalog and marketplace connections

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sku', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('brand', sa.String(), nullable=True),
        sa.Column('condition', sa.String(), nullable=False, server_default='new'),
        sa.Column('listing_type', sa.String(), nullable=True),
        sa.Column('price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('sale_price', sa.Float(), nullable=True),
        sa.Column('cost_price', sa.Float(), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('group_id', sa.String(), nullable=True),
        sa.Column('images', sa.JSON(), nullable=True),
        sa.Column('weight', sa.Float(), nullable=True),
        sa.Column('dimensions', sa.JSON(), nullable=True),
        sa.Column('attributes', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('source_marketplace', sa.String(), nullable=True),
        sa.Column('woocommerce_id', sa.String(), nullable=True),
        sa.Column('mercadolibre_id', sa.String(), nullable=True),
        sa.Column('amazon_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_products_sku', 'products', ['sku'], unique=True)
    op.create_index('ix_products_group_id', 'products', ['group_id'])
    op.create_index('ix_products_status', 'products', ['status'])
    op.create_index('ix_products_woocommerce_id', 'products', ['woocommerce_id'])
    op.create_index('ix_products_mercadolibre_id', 'products', ['mercadolibre_id'])
    op.create_index('ix_products_amazon_id', 'products', ['amazon_id'])

    op.create_table(
        'connections',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('marketplace', sa.String(), nullable=False, unique=True),
        sa.Column('api_url', sa.String(), nullable=True),
        sa.Column('api_key', sa.String(), nullable=True),
        sa.Column('api_secret', sa.String(), nullable=True),
        sa.Column('access_token', sa.String(), nullable=True),
        sa.Column('refresh_token', sa.String(), nullable=True),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('is_connected', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )


def downgrade() -> None:
    op.drop_table('connections')

    op.drop_index('ix_products_amazon_id', table_name='products')
    op.drop_index('ix_products_mercadolibre_id', table_name='products')
    op.drop_index('ix_products_woocommerce_id', table_name='products')
    op.drop_index('ix_products_status', table_name='products')
    op.drop_index('ix_products_group_id', table_name='products')
    op.drop_index('ix_products_sku', table_name='products')
    op.drop_table('products')
