"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


FACET_GROUPS = [
    ('brand', 'brand'),
    ('category_lvl0', 'category_lvl0'),
    ('category_lvl1', 'category_lvl1'),
    ('category_lvl2', 'category_lvl2'),
    ('fulfillment', 'fulfillment_type'),
    ('store', 'CAST(store_id AS CHAR)'),
]


def _facets_procedure() -> str:
    inserts = "\n".join(
        f"""    INSERT INTO facet_counts (facet_type, facet_value, facet_count, category_key)
    SELECT '{facet}', {expr}, COUNT(*), 0
    FROM products
    WHERE status = 1 AND visible = 1 AND store_authorized = 1 AND {expr} IS NOT NULL
    GROUP BY {expr};"""
        for facet, expr in FACET_GROUPS
    )
    return f"""
CREATE PROCEDURE UpdateAllFacets()
BEGIN
    DELETE FROM facet_counts;
{inserts}
END
"""


def upgrade() -> None:
    # Products table
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('name', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('short_description', sa.String(length=1000), nullable=True),
        sa.Column('sku', sa.String(length=100), nullable=True),
        sa.Column('brand', sa.String(length=100), nullable=True),
        sa.Column('sales_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('list_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('shipping_cost', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('percentage_discount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.SmallInteger(), nullable=False, server_default='1'),
        sa.Column('visible', sa.SmallInteger(), nullable=False, server_default='1'),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('category_name', sa.String(length=255), nullable=True),
        sa.Column('category_lvl0', sa.String(length=255), nullable=True),
        sa.Column('category_lvl1', sa.String(length=500), nullable=True),
        sa.Column('category_lvl2', sa.String(length=750), nullable=True),
        sa.Column('category_path', sa.Text(), nullable=True),
        sa.Column('store_id', sa.Integer(), nullable=True),
        sa.Column('store_name', sa.String(length=255), nullable=True),
        sa.Column('store_logo', sa.String(length=500), nullable=True),
        sa.Column('store_rating', sa.Numeric(precision=3, scale=2), nullable=True),
        sa.Column('store_authorized', sa.SmallInteger(), nullable=False, server_default='1'),
        sa.Column('digital', sa.SmallInteger(), nullable=False, server_default='0'),
        sa.Column('big_ticket', sa.SmallInteger(), nullable=False, server_default='0'),
        sa.Column('back_order', sa.SmallInteger(), nullable=False, server_default='0'),
        sa.Column('is_store_pickup', sa.SmallInteger(), nullable=False, server_default='0'),
        sa.Column('super_express', sa.SmallInteger(), nullable=False, server_default='0'),
        sa.Column('is_store_only', sa.SmallInteger(), nullable=False, server_default='0'),
        sa.Column('shipping_days', sa.SmallInteger(), nullable=False, server_default='5'),
        sa.Column('review_rating', sa.Numeric(precision=3, scale=2), nullable=True),
        sa.Column('total_reviews', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('main_image', sa.String(length=500), nullable=True),
        sa.Column('thumbnail', sa.String(length=500), nullable=True),
        sa.Column('fulfillment_type', sa.String(length=16), nullable=False, server_default='seller'),
        sa.Column('relevance_score', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_status_visible', 'products', ['status', 'visible'])
    op.create_index('idx_store', 'products', ['store_id', 'store_authorized'])
    op.create_index('idx_category', 'products', ['category_id'])
    op.create_index('idx_brand', 'products', ['brand'])
    op.create_index('idx_updated_at', 'products', ['updated_at'])
    op.create_index('idx_relevance', 'products', ['relevance_score'])

    # Additional images
    op.create_table(
        'product_images',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=True),
        sa.Column('thumbnail_url', sa.String(length=500), nullable=True),
        sa.Column('image_order', sa.SmallInteger(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE')
    )
    op.create_index('ix_product_images_product_id', 'product_images', ['product_id'])

    # Attributes / specifications
    op.create_table(
        'product_attributes',
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('attribute_name', sa.String(length=100), nullable=False),
        sa.Column('attribute_value', sa.String(length=500), nullable=True),
        sa.PrimaryKeyConstraint('product_id', 'attribute_name'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE')
    )

    # Variations (sizes / colors)
    op.create_table(
        'product_variations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('sku', sa.String(length=100), nullable=True),
        sa.Column('size_name', sa.String(length=50), nullable=True),
        sa.Column('color_name', sa.String(length=50), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_modifier', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE')
    )
    op.create_index('ix_product_variations_product_id', 'product_variations', ['product_id'])

    # Pre-computed facets
    op.create_table(
        'facet_counts',
        sa.Column('facet_type', sa.String(length=50), nullable=False),
        sa.Column('facet_value', sa.String(length=255), nullable=False),
        sa.Column('category_key', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('facet_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('facet_type', 'facet_value', 'category_key')
    )

    # Stored aggregator used by the facets maintenance step (MySQL only)
    if op.get_bind().dialect.name == 'mysql':
        op.execute('DROP PROCEDURE IF EXISTS UpdateAllFacets')
        op.execute(_facets_procedure())


def downgrade() -> None:
    if op.get_bind().dialect.name == 'mysql':
        op.execute('DROP PROCEDURE IF EXISTS UpdateAllFacets')
    op.drop_table('facet_counts')
    op.drop_index('ix_product_variations_product_id', table_name='product_variations')
    op.drop_table('product_variations')
    op.drop_table('product_attributes')
    op.drop_index('ix_product_images_product_id', table_name='product_images')
    op.drop_table('product_images')
    op.drop_index('idx_relevance', table_name='products')
    op.drop_index('idx_updated_at', table_name='products')
    op.drop_index('idx_brand', table_name='products')
    op.drop_index('idx_category', table_name='products')
    op.drop_index('idx_store', table_name='products')
    op.drop_index('idx_status_visible', table_name='products')
    op.drop_table('products')
