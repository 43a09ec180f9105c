"""initial erp schema

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01 00:00:00.000000

Creates the inventory and order-lifecycle schema:
- products, warehouses, customers, suppliers: catalogue master data
- stock: per-(product, warehouse) counters with CHECK-backed invariants
- stock_audit_entries: append-only stock movement log
- sales_orders / sales_order_lines
- purchase_orders / purchase_order_lines
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade():
    # ============================================================================
    # Catalogue
    # ============================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit_price', sa.Numeric(precision=18, scale=4), nullable=False, server_default='0'),
        sa.Column('cost_price', sa.Numeric(precision=18, scale=4), nullable=False, server_default='0'),
        sa.Column('reorder_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_of_measure', sa.String(length=50), nullable=False, server_default='EACH'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('reorder_level >= 0', name='ck_products_reorder_level_nonneg'),
        sa.CheckConstraint('reorder_quantity >= 0', name='ck_products_reorder_qty_nonneg'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_status', 'products', ['status'], unique=False)

    op.create_table('warehouses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('location', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_warehouses_code'),
        sqlite_autoincrement=True
    )

    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_customers_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_status', 'customers', ['status'], unique=False)

    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('lead_time_days', sa.Integer(), nullable=False, server_default='7'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_suppliers_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_suppliers_status', 'suppliers', ['status'], unique=False)

    # ============================================================================
    # stock: counters (0 <= reserved <= on_hand)
    # ============================================================================
    op.create_table('stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('on_hand', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('on_hand >= 0', name='ck_stock_on_hand_nonneg'),
        sa.CheckConstraint('reserved >= 0', name='ck_stock_reserved_nonneg'),
        sa.CheckConstraint('reserved <= on_hand', name='ck_stock_reserved_le_on_hand'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'warehouse_id', name='uq_stock_product_warehouse'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_product_id', 'stock', ['product_id'], unique=False)
    op.create_index('ix_stock_warehouse_id', 'stock', ['warehouse_id'], unique=False)

    # ============================================================================
    # stock_audit_entries: append-only movement log
    # ============================================================================
    op.create_table('stock_audit_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=20), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('on_hand_before', sa.Integer(), nullable=False),
        sa.Column('on_hand_after', sa.Integer(), nullable=False),
        sa.Column('reference_type', sa.String(length=20), nullable=False),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_by', sa.String(length=100), nullable=False, server_default='SYSTEM'),
        sa.CheckConstraint('quantity_delta <> 0', name='ck_audit_delta_nonzero'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_reference', 'stock_audit_entries', ['reference_type', 'reference_id'], unique=False)
    op.create_index('ix_audit_product_warehouse', 'stock_audit_entries', ['product_id', 'warehouse_id'], unique=False)
    op.create_index('ix_stock_audit_entries_product_id', 'stock_audit_entries', ['product_id'], unique=False)
    op.create_index('ix_stock_audit_entries_warehouse_id', 'stock_audit_entries', ['warehouse_id'], unique=False)
    op.create_index('ix_stock_audit_entries_movement_type', 'stock_audit_entries', ['movement_type'], unique=False)
    op.create_index('ix_stock_audit_entries_created_at', 'stock_audit_entries', ['created_at'], unique=False)

    # ============================================================================
    # Sales orders
    # ============================================================================
    op.create_table('sales_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=50), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='CREATED'),
        sa.Column('total_amount', sa.Numeric(precision=18, scale=4), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('requested_date', sa.Date(), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_sales_orders_order_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_orders_status', 'sales_orders', ['status'], unique=False)
    op.create_index('ix_sales_orders_created_at', 'sales_orders', ['created_at'], unique=False)
    op.create_index('ix_sales_orders_customer_id', 'sales_orders', ['customer_id'], unique=False)
    op.create_index('ix_sales_orders_warehouse_id', 'sales_orders', ['warehouse_id'], unique=False)

    op.create_table('sales_order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sales_order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.CheckConstraint('quantity >= 1', name='ck_sales_order_lines_qty_positive'),
        sa.CheckConstraint('unit_price >= 0', name='ck_sales_order_lines_price_nonneg'),
        sa.ForeignKeyConstraint(['sales_order_id'], ['sales_orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sales_order_id', 'product_id', name='uq_sales_order_lines_order_product'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_order_lines_sales_order_id', 'sales_order_lines', ['sales_order_id'], unique=False)
    op.create_index('ix_sales_order_lines_product_id', 'sales_order_lines', ['product_id'], unique=False)

    # ============================================================================
    # Purchase orders
    # ============================================================================
    op.create_table('purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=50), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='CREATED'),
        sa.Column('total_amount', sa.Numeric(precision=18, scale=4), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('expected_date', sa.Date(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_purchase_orders_order_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'], unique=False)
    op.create_index('ix_purchase_orders_created_at', 'purchase_orders', ['created_at'], unique=False)
    op.create_index('ix_purchase_orders_supplier_id', 'purchase_orders', ['supplier_id'], unique=False)
    op.create_index('ix_purchase_orders_warehouse_id', 'purchase_orders', ['warehouse_id'], unique=False)

    op.create_table('purchase_order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('received_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_cost', sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.CheckConstraint('quantity >= 1', name='ck_purchase_order_lines_qty_positive'),
        sa.CheckConstraint(
            'received_quantity >= 0 AND received_quantity <= quantity',
            name='ck_purchase_order_lines_received_range',
        ),
        sa.CheckConstraint('unit_cost >= 0', name='ck_purchase_order_lines_cost_nonneg'),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('purchase_order_id', 'product_id', name='uq_purchase_order_lines_order_product'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_order_lines_purchase_order_id', 'purchase_order_lines', ['purchase_order_id'], unique=False)
    op.create_index('ix_purchase_order_lines_product_id', 'purchase_order_lines', ['product_id'], unique=False)


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('purchase_order_lines')
    op.drop_table('purchase_orders')
    op.drop_table('sales_order_lines')
    op.drop_table('sales_orders')
    op.drop_table('stock_audit_entries')
    op.drop_table('stock')
    op.drop_table('suppliers')
    op.drop_table('customers')
    op.drop_table('warehouses')
    op.drop_table('products')
