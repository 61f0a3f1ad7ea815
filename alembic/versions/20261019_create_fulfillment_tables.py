"""Create warehouse fulfillment tables

Revision ID: fulfillment_001
Revises:
Create Date: 2026-10-19

Tables created:
- warehouses: Nationwide / zonal / division hierarchy
- warehouse_pincodes: Direct pincode assignments of divisions
- delivery_zones, zone_pincodes, warehouse_zones: Zonal coverage
- products, product_variants: Catalog fields used for resolution
- product_warehouse_stock: Per-warehouse stock with reserved quantity
- stock_reservations, stock_movements: Stock ledger
- product_enquiries, enquiry_bids, bid_products, locked_bids: Bid workflow
- cart_items: Cart lines with stock holds
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision = 'fulfillment_001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    ]


def upgrade():
    # Check if tables already exist (for idempotent migrations)
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    # 1. Warehouses
    if 'warehouses' not in existing_tables:
        op.create_table(
            'warehouses',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('code', sa.String(20), nullable=False, unique=True),
            sa.Column('name', sa.String(200), nullable=False),
            sa.Column('warehouse_type', sa.String(20), nullable=False, server_default='zonal'),  # nationwide, zonal, division
            sa.Column('parent_warehouse_id', UUID(as_uuid=True),
                      sa.ForeignKey('warehouses.id', ondelete='SET NULL'), nullable=True),
            sa.Column('city', sa.String(100), nullable=True),
            sa.Column('state', sa.String(100), nullable=True),
            sa.Column('pincode', sa.String(10), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('notes', sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index('ix_warehouses_code', 'warehouses', ['code'])
        op.create_index('ix_warehouses_warehouse_type', 'warehouses', ['warehouse_type'])
        op.create_index('ix_warehouses_parent_warehouse_id', 'warehouses', ['parent_warehouse_id'])

    # 2. Division pincodes
    if 'warehouse_pincodes' not in existing_tables:
        op.create_table(
            'warehouse_pincodes',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('warehouse_id', UUID(as_uuid=True),
                      sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False),
            sa.Column('pincode', sa.String(10), nullable=False),
            sa.Column('city', sa.String(100), nullable=True),
            sa.Column('state', sa.String(100), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
        op.create_index('ix_warehouse_pincodes_warehouse_id', 'warehouse_pincodes', ['warehouse_id'])
        op.create_index('ix_warehouse_pincodes_pincode_active', 'warehouse_pincodes', ['pincode', 'is_active'])
        # One active division per pincode
        op.create_index(
            'uq_warehouse_pincodes_active', 'warehouse_pincodes', ['pincode'],
            unique=True,
            postgresql_where=sa.text('is_active = true'),
        )

    # 3. Delivery zones
    if 'delivery_zones' not in existing_tables:
        op.create_table(
            'delivery_zones',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('code', sa.String(30), nullable=False, unique=True),
            sa.Column('name', sa.String(100), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
        )
        op.create_index('ix_delivery_zones_code', 'delivery_zones', ['code'])

    if 'zone_pincodes' not in existing_tables:
        op.create_table(
            'zone_pincodes',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('zone_id', UUID(as_uuid=True),
                      sa.ForeignKey('delivery_zones.id', ondelete='CASCADE'), nullable=False),
            sa.Column('pincode', sa.String(10), nullable=False),
            sa.Column('city', sa.String(100), nullable=True),
            sa.Column('state', sa.String(100), nullable=True),
            sa.UniqueConstraint('zone_id', 'pincode', name='uq_zone_pincode'),
        )
        op.create_index('ix_zone_pincodes_zone_id', 'zone_pincodes', ['zone_id'])
        op.create_index('ix_zone_pincodes_pincode', 'zone_pincodes', ['pincode'])

    if 'warehouse_zones' not in existing_tables:
        op.create_table(
            'warehouse_zones',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('warehouse_id', UUID(as_uuid=True),
                      sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False),
            sa.Column('zone_id', UUID(as_uuid=True),
                      sa.ForeignKey('delivery_zones.id', ondelete='CASCADE'), nullable=False),
            sa.Column('priority', sa.Integer(), server_default='100'),
            sa.UniqueConstraint('warehouse_id', 'zone_id', name='uq_warehouse_zone'),
        )
        op.create_index('ix_warehouse_zones_warehouse_id', 'warehouse_zones', ['warehouse_id'])
        op.create_index('ix_warehouse_zones_zone_id', 'warehouse_zones', ['zone_id'])

    # 4. Catalog
    if 'products' not in existing_tables:
        op.create_table(
            'products',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('sku', sa.String(50), nullable=False, unique=True),
            sa.Column('name', sa.String(255), nullable=False),
            sa.Column('delivery_type', sa.String(20), nullable=False, server_default='zonal'),
            sa.Column('allowed_zone_ids', JSONB, nullable=True),
            sa.Column('price', sa.Numeric(12, 2), server_default='0'),
            sa.Column('gst_percentage', sa.Numeric(5, 2), server_default='18'),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
        op.create_index('ix_products_sku', 'products', ['sku'])

    if 'product_variants' not in existing_tables:
        op.create_table(
            'product_variants',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('product_id', UUID(as_uuid=True),
                      sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
            sa.Column('sku', sa.String(50), nullable=False, unique=True),
            sa.Column('name', sa.String(255), nullable=False),
            sa.Column('price', sa.Numeric(12, 2), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        )
        op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    # 5. Stock ledger
    if 'product_warehouse_stock' not in existing_tables:
        op.create_table(
            'product_warehouse_stock',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('product_id', UUID(as_uuid=True),
                      sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
            sa.Column('variant_id', UUID(as_uuid=True),
                      sa.ForeignKey('product_variants.id', ondelete='CASCADE'), nullable=True),
            sa.Column('warehouse_id', UUID(as_uuid=True),
                      sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False),
            sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('reserved_quantity', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('minimum_threshold', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.UniqueConstraint('product_id', 'variant_id', 'warehouse_id', name='uq_product_warehouse_stock'),
            sa.CheckConstraint('reserved_quantity >= 0', name='ck_pws_reserved_non_negative'),
            sa.CheckConstraint('reserved_quantity <= stock_quantity', name='ck_pws_reserved_within_stock'),
        )
        op.create_index('ix_product_warehouse_stock_product_id', 'product_warehouse_stock', ['product_id'])
        op.create_index('ix_product_warehouse_stock_warehouse_id', 'product_warehouse_stock', ['warehouse_id'])

    if 'stock_reservations' not in existing_tables:
        op.create_table(
            'stock_reservations',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('reference_type', sa.String(20), nullable=False),  # cart_item, order, locked_bid
            sa.Column('reference_id', sa.String(64), nullable=False),
            sa.Column('product_id', UUID(as_uuid=True),
                      sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
            sa.Column('variant_id', UUID(as_uuid=True),
                      sa.ForeignKey('product_variants.id', ondelete='CASCADE'), nullable=True),
            sa.Column('warehouse_id', UUID(as_uuid=True),
                      sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(20), nullable=False, server_default='ACTIVE'),
            *_timestamps(),
            sa.CheckConstraint('quantity >= 0', name='ck_reservation_quantity_non_negative'),
        )
        op.create_index('ix_stock_reservations_reference', 'stock_reservations',
                        ['reference_type', 'reference_id', 'status'])
        op.create_index('ix_stock_reservations_product_id', 'stock_reservations', ['product_id'])
        op.create_index('ix_stock_reservations_status', 'stock_reservations', ['status'])

    if 'stock_movements' not in existing_tables:
        op.create_table(
            'stock_movements',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('movement_type', sa.String(20), nullable=False),
            sa.Column('product_id', UUID(as_uuid=True),
                      sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
            sa.Column('variant_id', UUID(as_uuid=True),
                      sa.ForeignKey('product_variants.id', ondelete='CASCADE'), nullable=True),
            sa.Column('warehouse_id', UUID(as_uuid=True),
                      sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False),
            sa.Column('stock_after', sa.Integer(), nullable=False),
            sa.Column('reserved_after', sa.Integer(), nullable=False),
            sa.Column('reference_type', sa.String(20), nullable=True),
            sa.Column('reference_id', sa.String(64), nullable=True),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        )
        op.create_index('ix_stock_movements_movement_type', 'stock_movements', ['movement_type'])
        op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
        op.create_index('ix_stock_movements_warehouse_id', 'stock_movements', ['warehouse_id'])

    # 6. Enquiries & bids
    if 'product_enquiries' not in existing_tables:
        op.create_table(
            'product_enquiries',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('user_id', UUID(as_uuid=True), nullable=False),
            sa.Column('delivery_pincode', sa.String(10), nullable=True),
            sa.Column('message', sa.Text(), nullable=True),
            sa.Column('status', sa.String(20), nullable=False, server_default='OPEN'),
            sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
        )
        op.create_index('ix_product_enquiries_user_id', 'product_enquiries', ['user_id'])
        op.create_index('ix_product_enquiries_status', 'product_enquiries', ['status'])

    if 'enquiry_bids' not in existing_tables:
        op.create_table(
            'enquiry_bids',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('enquiry_id', UUID(as_uuid=True),
                      sa.ForeignKey('product_enquiries.id', ondelete='CASCADE'), nullable=False),
            sa.Column('bid_type', sa.String(20), nullable=False, server_default='SINGLE_PRODUCT'),
            sa.Column('status', sa.String(20), nullable=False, server_default='ACTIVE'),
            sa.Column('validity_hours', sa.Integer(), nullable=False, server_default='24'),
            sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('terms', sa.Text(), nullable=True),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('created_by', UUID(as_uuid=True), nullable=True),
            sa.Column('rejection_reason', sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index('ix_enquiry_bids_enquiry_id', 'enquiry_bids', ['enquiry_id'])
        op.create_index('ix_enquiry_bids_status', 'enquiry_bids', ['status'])

    if 'bid_products' not in existing_tables:
        op.create_table(
            'bid_products',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('bid_id', UUID(as_uuid=True),
                      sa.ForeignKey('enquiry_bids.id', ondelete='CASCADE'), nullable=False),
            sa.Column('product_id', UUID(as_uuid=True), sa.ForeignKey('products.id'), nullable=False),
            sa.Column('variant_id', UUID(as_uuid=True), sa.ForeignKey('product_variants.id'), nullable=True),
            sa.Column('product_name', sa.String(255), nullable=True),
            sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
            sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
            sa.Column('gst_percentage', sa.Numeric(5, 2), server_default='18'),
            sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id'), nullable=True),
        )
        op.create_index('ix_bid_products_bid_id', 'bid_products', ['bid_id'])

    if 'locked_bids' not in existing_tables:
        op.create_table(
            'locked_bids',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('bid_id', UUID(as_uuid=True), sa.ForeignKey('enquiry_bids.id'), nullable=False),
            sa.Column('enquiry_id', UUID(as_uuid=True),
                      sa.ForeignKey('product_enquiries.id'), nullable=False, unique=True),
            sa.Column('user_id', UUID(as_uuid=True), nullable=False),
            sa.Column('subtotal', sa.Numeric(12, 2), nullable=False, server_default='0'),
            sa.Column('gst_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
            sa.Column('final_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
            sa.Column('stock_reserved', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('stock_reserved_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('payment_deadline', sa.DateTime(timezone=True), nullable=False),
            sa.Column('status', sa.String(20), nullable=False, server_default='PENDING_PAYMENT'),
            sa.Column('locked_by', UUID(as_uuid=True), nullable=True),
            sa.Column('payment_reference', sa.String(100), nullable=True),
            sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('cancelled_reason', sa.Text(), nullable=True),
            sa.Column('cancelled_by', UUID(as_uuid=True), nullable=True),
            *_timestamps(),
        )
        op.create_index('ix_locked_bids_bid_id', 'locked_bids', ['bid_id'])
        op.create_index('ix_locked_bids_user_id', 'locked_bids', ['user_id'])
        op.create_index('ix_locked_bids_status', 'locked_bids', ['status'])
        # One unpaid lock per user
        op.create_index(
            'uq_locked_bids_user_pending', 'locked_bids', ['user_id'],
            unique=True,
            postgresql_where=sa.text("status = 'PENDING_PAYMENT'"),
        )

    # 7. Cart
    if 'cart_items' not in existing_tables:
        op.create_table(
            'cart_items',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('user_id', UUID(as_uuid=True), nullable=False),
            sa.Column('product_id', UUID(as_uuid=True),
                      sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
            sa.Column('variant_id', UUID(as_uuid=True),
                      sa.ForeignKey('product_variants.id', ondelete='CASCADE'), nullable=True),
            sa.Column('warehouse_id', UUID(as_uuid=True),
                      sa.ForeignKey('warehouses.id', ondelete='SET NULL'), nullable=True),
            sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('is_bid_product', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('locked_bid_id', UUID(as_uuid=True),
                      sa.ForeignKey('locked_bids.id', ondelete='CASCADE'), nullable=True),
            sa.Column('bid_unit_price', sa.Numeric(12, 2), nullable=True),
            sa.Column('checkout_order_id', sa.String(64), nullable=True),
            sa.Column('added_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
        )
        op.create_index('ix_cart_items_user_id', 'cart_items', ['user_id'])
        op.create_index('ix_cart_items_locked_bid_id', 'cart_items', ['locked_bid_id'])
        op.create_index('ix_cart_items_checkout_order_id', 'cart_items', ['checkout_order_id'])


def downgrade():
    for table in (
        'cart_items',
        'locked_bids',
        'bid_products',
        'enquiry_bids',
        'product_enquiries',
        'stock_movements',
        'stock_reservations',
        'product_warehouse_stock',
        'product_variants',
        'products',
        'warehouse_zones',
        'zone_pincodes',
        'delivery_zones',
        'warehouse_pincodes',
        'warehouses',
    ):
        op.drop_table(table)
