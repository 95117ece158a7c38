"""Create order sync tables (products, clients, orders, activities, platform settings)

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 09:00:00.000000

WHAT:
    Creates the schema used by the WooCommerce order sync:
    - products: catalog, matched to WooCommerce SKUs through `barcode`
    - clients: customers with cached order aggregates and linked order ids
    - orders: synced and manual orders with JSON item lists
    - activities: append-only activity log
    - platform_settings: WooCommerce credentials (secret encrypted)

WHY:
    (source, external_id) is the natural key of synced orders; the unique
    constraint makes a duplicate insert fail instead of creating a second
    order.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20261018_000001'
down_revision = None
branch_labels = None
depends_on = None


ORDER_STATUSES = (
    'pending', 'processing', 'on-hold', 'completed', 'cancelled', 'refunded',
    'failed', 'draft', 'received', 'prepared', 'shipped', 'refused',
    'unfulfilled', 'packed',
)
ORDER_SOURCES = ('manual', 'woocommerce')
ACTIVITY_TYPES = ('added', 'removed', 'updated', 'deleted')
ACTIVITY_ENTITIES = ('product', 'order', 'client')


def _enum(name, values):
    return postgresql.ENUM(*values, name=name, create_type=False)


def upgrade() -> None:
    # =========================================================================
    # STEP 1: Enums
    # =========================================================================
    # WHAT: Create enum types once; several tables share ordersourceenum
    bind = op.get_bind()
    for name, values in (
        ('orderstatusenum', ORDER_STATUSES),
        ('ordersourceenum', ORDER_SOURCES),
        ('activitytypeenum', ACTIVITY_TYPES),
        ('activityentityenum', ACTIVITY_ENTITIES),
    ):
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # =========================================================================
    # STEP 2: products
    # =========================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('barcode', sa.String(), nullable=True),
        sa.Column('price', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_products_barcode', 'products', ['barcode'])

    # =========================================================================
    # STEP 3: clients
    # =========================================================================
    op.create_table(
        'clients',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('company_name', sa.String(), nullable=True),
        sa.Column('address', sa.JSON(), nullable=True),
        sa.Column('source', _enum('ordersourceenum', ORDER_SOURCES), nullable=False, server_default='manual'),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('total_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spent', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('average_order_value', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('last_order_date', sa.DateTime(), nullable=True),
        sa.Column('order_ids', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('updated_by', sa.String(), nullable=True),
    )
    op.create_index('ix_clients_email', 'clients', ['email'], unique=True)

    # =========================================================================
    # STEP 4: orders
    # =========================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('external_id', sa.Integer(), nullable=True),
        sa.Column('order_number', sa.String(), nullable=False),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=True),
        sa.Column('customer_name', sa.String(), nullable=False, server_default='Unknown Customer'),
        sa.Column('customer_email', sa.String(), nullable=True),
        sa.Column('order_date', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('status', _enum('orderstatusenum', ORDER_STATUSES), nullable=False, server_default='processing'),
        sa.Column('items', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('unidentified_items', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('has_unidentified_items', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('shipping_address', sa.JSON(), nullable=True),
        sa.Column('billing_address', sa.JSON(), nullable=True),
        sa.Column('subtotal', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('shipping_cost', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('tax', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('source', _enum('ordersourceenum', ORDER_SOURCES), nullable=False, server_default='manual'),
        sa.Column('packing_slip_printed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('fulfilled_at', sa.DateTime(), nullable=True),
        sa.Column('fulfilled_by', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('source', 'external_id', name='uq_order_source_external_id'),
    )
    op.create_index('ix_orders_external_id', 'orders', ['external_id'])
    op.create_index('ix_orders_has_unidentified_items', 'orders', ['has_unidentified_items'])

    # =========================================================================
    # STEP 5: activities + platform_settings
    # =========================================================================
    op.create_table(
        'activities',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('type', _enum('activitytypeenum', ACTIVITY_TYPES), nullable=False),
        sa.Column('entity_type', _enum('activityentityenum', ACTIVITY_ENTITIES), nullable=False),
        sa.Column('entity_id', sa.String(), nullable=False),
        sa.Column('entity_name', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('user_name', sa.String(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('date', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'platform_settings',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('store_url', sa.String(), nullable=True),
        sa.Column('consumer_key', sa.String(), nullable=True),
        sa.Column('consumer_secret_enc', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_by', sa.String(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('platform_settings')
    op.drop_table('activities')
    op.drop_index('ix_orders_has_unidentified_items', table_name='orders')
    op.drop_index('ix_orders_external_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_clients_email', table_name='clients')
    op.drop_table('clients')
    op.drop_index('ix_products_barcode', table_name='products')
    op.drop_table('products')

    bind = op.get_bind()
    for name in ('activityentityenum', 'activitytypeenum', 'ordersourceenum', 'orderstatusenum'):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
