"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete FahamPesa schema:
- branches, products: tenant catalog
- stock_levels, stock_movements: inventory ledger (stock_levels carries version_id)
- low_stock_alerts, expiry_alerts
- branch_transfers (+ items), stock_audits (+ items)
- suppliers, purchase_orders (+ items), document_sequences
- staff_members, subscriptions
- sales (+ lines), debtors
- security_events: append-only audit trail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _money(precision=12):
    return sa.Numeric(precision, 2, asdecimal=False)


def upgrade():
    # ============================================================================
    # Tenant catalog
    # ============================================================================
    op.create_table(
        'branches',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('manager_id', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('is_main', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'code', name='uq_branches_user_code'),
    )
    op.create_index('ix_branches_user_id', 'branches', ['user_id'])
    op.create_index('ix_branches_user_status', 'branches', ['user_id', 'status'])

    op.create_table(
        'products',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('unit', sa.String(length=16), nullable=False),
        sa.Column('cost_price', _money(), nullable=False),
        sa.Column('selling_price', _money(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_user_id', 'products', ['user_id'])
    op.create_index('ix_products_user_sku', 'products', ['user_id', 'sku'])

    # ============================================================================
    # Inventory ledger
    # ============================================================================
    op.create_table(
        'stock_levels',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('branch_id', sa.String(length=36), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False),
        sa.Column('reserved_stock', sa.Integer(), nullable=False),
        sa.Column('reorder_point', sa.Integer(), nullable=False),
        sa.Column('reorder_quantity', sa.Integer(), nullable=False),
        sa.Column('max_stock_level', sa.Integer(), nullable=True),
        sa.Column('average_cost_price', _money(), nullable=False),
        sa.Column('last_count_date', sa.DateTime(), nullable=True),
        sa.Column('last_count_stock', sa.Integer(), nullable=True),
        sa.Column('last_count_user_id', sa.String(length=128), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'product_id', name='uq_stock_levels_branch_product'),
    )
    op.create_index('ix_stock_levels_user_id', 'stock_levels', ['user_id'])
    op.create_index('ix_stock_levels_product_id', 'stock_levels', ['product_id'])
    op.create_index('ix_stock_levels_branch_id', 'stock_levels', ['branch_id'])
    op.create_index('ix_stock_levels_user_branch', 'stock_levels', ['user_id', 'branch_id'])

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('branch_id', sa.String(length=36), nullable=False),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('previous_stock', sa.Integer(), nullable=False),
        sa.Column('new_stock', sa.Integer(), nullable=False),
        sa.Column('unit_cost', _money(), nullable=True),
        sa.Column('reason', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.String(length=36), nullable=True),
        sa.Column('actor_id', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stock_movements_user_id', 'stock_movements', ['user_id'])
    op.create_index('ix_stock_movements_movement_type', 'stock_movements', ['movement_type'])
    op.create_index('ix_stock_movements_user_created', 'stock_movements', ['user_id', 'created_at'])
    op.create_index('ix_stock_movements_branch_product', 'stock_movements', ['branch_id', 'product_id'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference_type', 'reference_id'])

    op.create_table(
        'low_stock_alerts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('branch_id', sa.String(length=36), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False),
        sa.Column('reorder_point', sa.Integer(), nullable=False),
        sa.Column('shortage', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('acknowledged_by', sa.String(length=128), nullable=True),
        sa.Column('acknowledged_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_low_stock_alerts_user_id', 'low_stock_alerts', ['user_id'])
    op.create_index('ix_low_stock_alerts_scope', 'low_stock_alerts', ['user_id', 'branch_id', 'is_active'])
    op.create_index('ix_low_stock_alerts_product_branch', 'low_stock_alerts', ['product_id', 'branch_id'])

    op.create_table(
        'expiry_alerts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('branch_id', sa.String(length=36), nullable=False),
        sa.Column('batch_number', sa.String(length=64), nullable=True),
        sa.Column('expiry_date', sa.DateTime(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('acknowledged_by', sa.String(length=128), nullable=True),
        sa.Column('acknowledged_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_expiry_alerts_user_id', 'expiry_alerts', ['user_id'])

    # ============================================================================
    # Documents
    # ============================================================================
    op.create_table(
        'branch_transfers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('transfer_number', sa.String(length=32), nullable=False),
        sa.Column('from_branch_id', sa.String(length=36), nullable=False),
        sa.Column('to_branch_id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('requested_by', sa.String(length=128), nullable=False),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('approved_by', sa.String(length=128), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_by', sa.String(length=128), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('shipped_by', sa.String(length=128), nullable=True),
        sa.Column('shipped_at', sa.DateTime(), nullable=True),
        sa.Column('tracking_number', sa.String(length=64), nullable=True),
        sa.Column('estimated_arrival', sa.DateTime(), nullable=True),
        sa.Column('shipping_notes', sa.Text(), nullable=True),
        sa.Column('received_by', sa.String(length=128), nullable=True),
        sa.Column('received_at', sa.DateTime(), nullable=True),
        sa.Column('receiving_notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['from_branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['to_branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'transfer_number', name='uq_branch_transfers_user_number'),
    )
    op.create_index('ix_branch_transfers_user_id', 'branch_transfers', ['user_id'])
    op.create_index('ix_branch_transfers_from_branch_id', 'branch_transfers', ['from_branch_id'])
    op.create_index('ix_branch_transfers_to_branch_id', 'branch_transfers', ['to_branch_id'])
    op.create_index('ix_branch_transfers_status', 'branch_transfers', ['status'])
    op.create_index('ix_branch_transfers_user_status', 'branch_transfers', ['user_id', 'status'])

    op.create_table(
        'branch_transfer_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('transfer_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('requested_quantity', sa.Integer(), nullable=False),
        sa.Column('approved_quantity', sa.Integer(), nullable=True),
        sa.Column('shipped_quantity', sa.Integer(), nullable=True),
        sa.Column('received_quantity', sa.Integer(), nullable=True),
        sa.Column('unit_cost', _money(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['transfer_id'], ['branch_transfers.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transfer_id', 'product_id', name='uq_branch_transfer_items_product'),
    )
    op.create_index('ix_branch_transfer_items_transfer_id', 'branch_transfer_items', ['transfer_id'])

    op.create_table(
        'stock_audits',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('branch_id', sa.String(length=36), nullable=False),
        sa.Column('audit_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('planned_by', sa.String(length=128), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_by', sa.String(length=128), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('total_products', sa.Integer(), nullable=False),
        sa.Column('products_with_discrepancy', sa.Integer(), nullable=False),
        sa.Column('total_discrepancy_value', _money(14), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stock_audits_user_id', 'stock_audits', ['user_id'])
    op.create_index('ix_stock_audits_status', 'stock_audits', ['status'])
    op.create_index('ix_stock_audits_user_branch', 'stock_audits', ['user_id', 'branch_id'])

    op.create_table(
        'stock_audit_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('audit_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('system_stock', sa.Integer(), nullable=False),
        sa.Column('physical_stock', sa.Integer(), nullable=True),
        sa.Column('discrepancy', sa.Integer(), nullable=True),
        sa.Column('unit_cost_price', _money(), nullable=False),
        sa.Column('discrepancy_value', _money(14), nullable=True),
        sa.Column('is_reconciled', sa.Boolean(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['audit_id'], ['stock_audits.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('audit_id', 'product_id', name='uq_stock_audit_items_product'),
    )
    op.create_index('ix_stock_audit_items_audit_id', 'stock_audit_items', ['audit_id'])

    op.create_table(
        'suppliers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('contact_person', sa.String(length=120), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('payment_terms', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_suppliers_user_id', 'suppliers', ['user_id'])

    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('po_number', sa.String(length=32), nullable=False),
        sa.Column('supplier_id', sa.String(length=36), nullable=False),
        sa.Column('branch_id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('requested_by', sa.String(length=128), nullable=False),
        sa.Column('approved_by', sa.String(length=128), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approval_notes', sa.Text(), nullable=True),
        sa.Column('rejected_by', sa.String(length=128), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('sent_to_supplier_at', sa.DateTime(), nullable=True),
        sa.Column('supplier_notes', sa.Text(), nullable=True),
        sa.Column('expected_delivery_date', sa.DateTime(), nullable=True),
        sa.Column('received_by', sa.String(length=128), nullable=True),
        sa.Column('received_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('subtotal', _money(14), nullable=False),
        sa.Column('total_amount', _money(14), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'po_number', name='uq_purchase_orders_user_number'),
    )
    op.create_index('ix_purchase_orders_user_id', 'purchase_orders', ['user_id'])
    op.create_index('ix_purchase_orders_supplier_id', 'purchase_orders', ['supplier_id'])
    op.create_index('ix_purchase_orders_branch_id', 'purchase_orders', ['branch_id'])
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])
    op.create_index('ix_purchase_orders_user_status', 'purchase_orders', ['user_id', 'status'])

    op.create_table(
        'purchase_order_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('purchase_order_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('quantity_ordered', sa.Integer(), nullable=False),
        sa.Column('quantity_received', sa.Integer(), nullable=False),
        sa.Column('defective_quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost', _money(), nullable=False),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('purchase_order_id', 'product_id', name='uq_purchase_order_items_product'),
    )
    op.create_index('ix_purchase_order_items_purchase_order_id', 'purchase_order_items', ['purchase_order_id'])

    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'document_type', 'year', name='uq_doc_sequences_user_type_year'),
    )
    op.create_index('ix_document_sequences_user_id', 'document_sequences', ['user_id'])

    # ============================================================================
    # Accounts and billing
    # ============================================================================
    op.create_table(
        'staff_members',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('auth_id', sa.String(length=128), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('full_name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('branch_ids', sa.JSON(), nullable=False),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('two_factor_enabled', sa.Boolean(), nullable=False),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_staff_members_auth_id', 'staff_members', ['auth_id'], unique=True)
    op.create_index('ix_staff_members_user_id', 'staff_members', ['user_id'])
    op.create_index('ix_staff_members_user_status', 'staff_members', ['user_id', 'status'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('plan_type', sa.String(length=16), nullable=False),
        sa.Column('plan_name', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('amount', _money(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('transaction_id', sa.String(length=64), nullable=True),
        sa.Column('checkout_request_id', sa.String(length=128), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('extended_by', sa.String(length=128), nullable=True),
        sa.Column('extended_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_by', sa.String(length=128), nullable=True),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('admin_reason', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])
    op.create_index('ix_subscriptions_checkout_request_id', 'subscriptions', ['checkout_request_id'])
    op.create_index('ix_subscriptions_user_status', 'subscriptions', ['user_id', 'status'])

    # ============================================================================
    # Sales
    # ============================================================================
    op.create_table(
        'debtors',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('amount_owed', _money(14), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_debtors_user_id', 'debtors', ['user_id'])

    op.create_table(
        'sales',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('branch_id', sa.String(length=36), nullable=False),
        sa.Column('total_amount', _money(14), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('debtor_id', sa.String(length=36), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['debtor_id'], ['debtors.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sales_user_id', 'sales', ['user_id'])
    op.create_index('ix_sales_user_created', 'sales', ['user_id', 'created_at'])

    op.create_table(
        'sale_lines',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('sale_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', _money(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sale_lines_sale_id', 'sale_lines', ['sale_id'])

    # ============================================================================
    # Security audit trail
    # ============================================================================
    op.create_table(
        'security_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.String(length=128), nullable=True),
        sa.Column('user_id', sa.String(length=128), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('resource', sa.String(length=128), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_security_events_tenant_id', 'security_events', ['tenant_id'])
    op.create_index('ix_security_events_user_id', 'security_events', ['user_id'])
    op.create_index('ix_security_events_event_type', 'security_events', ['event_type'])
    op.create_index('ix_security_events_success', 'security_events', ['success'])
    op.create_index('ix_security_events_occurred_at', 'security_events', ['occurred_at'])
    op.create_index('ix_security_events_user_type', 'security_events', ['user_id', 'event_type'])
    op.create_index('ix_security_events_tenant_occurred', 'security_events', ['tenant_id', 'occurred_at'])


def downgrade():
    for table in (
        'security_events',
        'sale_lines',
        'sales',
        'debtors',
        'subscriptions',
        'staff_members',
        'document_sequences',
        'purchase_order_items',
        'purchase_orders',
        'suppliers',
        'stock_audit_items',
        'stock_audits',
        'branch_transfer_items',
        'branch_transfers',
        'expiry_alerts',
        'low_stock_alerts',
        'stock_movements',
        'stock_levels',
        'products',
        'branches',
    ):
        op.drop_table(table)
