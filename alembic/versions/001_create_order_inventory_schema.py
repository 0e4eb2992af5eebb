"""Create order, inventory and transfer tables

Revision ID: 001_order_inventory
Revises:
Create Date: 2026-10-19

Tables:
- customers, customer_addresses
- products (parent/variant hierarchy)
- warehouses, inventory_balance
- price_lists, price_list_items
- orders, order_lines, order_status_history
- transfers, transfer_items
- idempotency_keys
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_order_inventory'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(with_updated: bool = True):
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())]
    if with_updated:
        columns.append(sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()))
    return columns


def upgrade() -> None:
    """Create all tables."""

    # ==================== customers ====================
    op.create_table(
        'customers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_code', sa.String(30), nullable=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('account_status', sa.String(20), nullable=False, server_default='active'),
        *_timestamps(),
    )
    op.create_index('ix_customers_customer_code', 'customers', ['customer_code'], unique=True)

    op.create_table(
        'customer_addresses',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('customers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('label', sa.String(50), nullable=True),
        sa.Column('address_line1', sa.String(255), nullable=False),
        sa.Column('address_line2', sa.String(255), nullable=True),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('is_default', sa.Boolean(), server_default=sa.false()),
        *_timestamps(with_updated=False),
    )
    op.create_index('ix_customer_addresses_customer_id', 'customer_addresses', ['customer_id'])

    # ==================== products ====================
    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('sku', sa.String(50), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('capacity_kg', sa.Numeric(10, 2), nullable=True),
        sa.Column('tare_weight_kg', sa.Numeric(10, 2), nullable=True),
        sa.Column('unit_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('parent_product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=True),
        sa.Column('is_variant', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('variant_name', sa.String(50), nullable=True),
        sa.Column('sku_variant', sa.String(20), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_products_sku', 'products', ['sku'], unique=True)
    op.create_index('ix_product_parent_variant', 'products', ['parent_product_id', 'variant_name'])

    # ==================== warehouses & inventory ====================
    op.create_table(
        'warehouses',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('capacity_kg', sa.Numeric(12, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_warehouses_code', 'warehouses', ['code'], unique=True)

    op.create_table(
        'inventory_balance',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('warehouse_id', sa.Uuid(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('qty_full', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('qty_empty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('qty_reserved', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_level', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('warehouse_id', 'product_id', name='uq_inventory_warehouse_product'),
        sa.CheckConstraint('qty_full >= 0', name='ck_inventory_qty_full'),
        sa.CheckConstraint('qty_empty >= 0', name='ck_inventory_qty_empty'),
        sa.CheckConstraint('qty_reserved >= 0', name='ck_inventory_qty_reserved'),
    )
    op.create_index('ix_inventory_balance_warehouse_id', 'inventory_balance', ['warehouse_id'])
    op.create_index('ix_inventory_balance_product_id', 'inventory_balance', ['product_id'])

    # ==================== pricing ====================
    op.create_table(
        'price_lists',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('currency_code', sa.String(3), server_default='KES'),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('is_default', sa.Boolean(), server_default=sa.false()),
        *_timestamps(with_updated=False),
    )

    op.create_table(
        'price_list_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('price_list_id', sa.Uuid(), sa.ForeignKey('price_lists.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('surcharge_pct', sa.Numeric(5, 2), server_default='0'),
        sa.UniqueConstraint('price_list_id', 'product_id', name='uq_price_list_product'),
    )
    op.create_index('ix_price_list_items_price_list_id', 'price_list_items', ['price_list_id'])
    op.create_index('ix_price_list_items_product_id', 'price_list_items', ['product_id'])

    # ==================== orders ====================
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_number', sa.String(30), nullable=False),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('customers.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('delivery_address_id', sa.Uuid(),
                  sa.ForeignKey('customer_addresses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('source_warehouse_id', sa.Uuid(), sa.ForeignKey('warehouses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('order_type', sa.String(20), nullable=False, server_default='delivery'),
        sa.Column('scheduled_date', sa.Date(), nullable=True),
        sa.Column('subtotal', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('tax_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('price_list_id', sa.Uuid(), sa.ForeignKey('price_lists.id', ondelete='SET NULL'), nullable=True),
        sa.Column('exchange_empty_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('requires_pickup', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        *_timestamps(),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_source_warehouse_id', 'orders', ['source_warehouse_id'])
    op.create_index('ix_order_status_created', 'orders', ['status', 'created_at'])
    op.create_index('ix_order_customer_created', 'orders', ['customer_id', 'created_at'])

    op.create_table(
        'order_lines',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('product_name', sa.String(200), nullable=True),
        sa.Column('product_sku', sa.String(50), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(14, 4), nullable=False),
        sa.Column('subtotal', sa.Numeric(14, 4), nullable=True),
        sa.Column('price_list_id', sa.Uuid(), nullable=True),
    )
    op.create_index('ix_order_lines_order_id', 'order_lines', ['order_id'])

    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_status', sa.String(20), nullable=True),
        sa.Column('to_status', sa.String(20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('changed_by', sa.String(100), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])

    # ==================== transfers ====================
    op.create_table(
        'transfers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('transfer_reference', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), server_default='draft'),
        sa.Column('priority', sa.String(20), server_default='normal'),
        sa.Column('source_warehouse_id', sa.Uuid(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('destination_warehouse_id', sa.Uuid(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('transfer_date', sa.Date(), nullable=False),
        sa.Column('total_items', sa.Integer(), server_default='0'),
        sa.Column('total_quantity', sa.Integer(), server_default='0'),
        sa.Column('total_weight_kg', sa.Numeric(14, 2), server_default='0'),
        sa.Column('total_cost', sa.Numeric(14, 2), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('approved_by', sa.String(100), nullable=True),
        *_timestamps(),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_transfers_transfer_reference', 'transfers', ['transfer_reference'], unique=True)
    op.create_index('ix_transfers_status', 'transfers', ['status'])
    op.create_index('ix_transfers_source_warehouse_id', 'transfers', ['source_warehouse_id'])
    op.create_index('ix_transfers_destination_warehouse_id', 'transfers', ['destination_warehouse_id'])
    op.create_index('ix_transfers_transfer_date', 'transfers', ['transfer_date'])

    op.create_table(
        'transfer_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('transfer_id', sa.Uuid(), sa.ForeignKey('transfers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('product_name', sa.String(200), nullable=True),
        sa.Column('product_sku', sa.String(50), nullable=True),
        sa.Column('variant_name', sa.String(50), nullable=True),
        sa.Column('quantity_to_transfer', sa.Integer(), nullable=False),
        sa.Column('available_stock', sa.Integer(), nullable=True),
        sa.Column('reserved_stock', sa.Integer(), nullable=True),
        sa.Column('unit_weight_kg', sa.Numeric(10, 2), nullable=True),
        sa.Column('total_weight_kg', sa.Numeric(14, 2), nullable=True),
        sa.Column('unit_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('total_cost', sa.Numeric(14, 2), nullable=True),
        sa.Column('is_valid', sa.Boolean(), server_default=sa.true()),
        sa.Column('validation_errors', sa.JSON(), nullable=True),
        sa.Column('validation_warnings', sa.JSON(), nullable=True),
    )
    op.create_index('ix_transfer_items_transfer_id', 'transfer_items', ['transfer_id'])

    # ==================== idempotency ====================
    op.create_table(
        'idempotency_keys',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('key_hash', sa.String(64), nullable=False),
        sa.Column('operation_type', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='processing'),
        sa.Column('request_data', sa.JSON(), nullable=True),
        sa.Column('response_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_idempotency_keys_key_hash', 'idempotency_keys', ['key_hash'], unique=True)


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table('idempotency_keys')
    op.drop_table('transfer_items')
    op.drop_table('transfers')
    op.drop_table('order_status_history')
    op.drop_table('order_lines')
    op.drop_table('orders')
    op.drop_table('price_list_items')
    op.drop_table('price_lists')
    op.drop_table('inventory_balance')
    op.drop_table('warehouses')
    op.drop_table('products')
    op.drop_table('customer_addresses')
    op.drop_table('customers')
