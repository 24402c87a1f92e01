"""Inventory ledger schema: tenancy, products, receipts, audit, movement logs

1. companies / branches (tenant and sub-tenant)
2. users (tenant, home branch, role)
3. products with live quantity_in_stock (>= 0)
4. receipts, receipt_lines (quantity > 0), receipt_audit_entries
5. sales, sale_lines, returns (written by other workflows, read by the ledger)

Revision ID: sl001_ledger_schema
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'sl001_ledger_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False, server_default=True):
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.func.now() if server_default else None,
    )


def upgrade():
    # ==========================================================================
    # Tenancy
    # ==========================================================================
    op.create_table('companies',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id', name='pk_companies'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_companies_code', 'companies', ['code'], unique=True)
    op.create_index('ix_companies_is_active', 'companies', ['is_active'])

    op.create_table('branches',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], name='fk_branches_company_id_companies'),
        sa.PrimaryKeyConstraint('id', name='pk_branches'),
        sa.UniqueConstraint('company_id', 'name', name='uq_branches_company_name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_branches_company_id', 'branches', ['company_id'])

    op.create_table('users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], name='fk_users_company_id_companies'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_users_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_users_company_id', 'users', ['company_id'])
    op.create_index('ix_users_branch_id', 'users', ['branch_id'])

    # ==========================================================================
    # Products and receiving
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False, server_default='piece'),
        sa.Column('quantity_in_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_level', sa.Integer(), nullable=False, server_default='10'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], name='fk_products_company_id_companies'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_products_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.UniqueConstraint('branch_id', 'sku', name='uq_products_branch_sku'),
        sa.CheckConstraint('quantity_in_stock >= 0', name='ck_products_stock_non_negative'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_company_id', 'products', ['company_id'])
    op.create_index('ix_products_branch_id', 'products', ['branch_id'])
    op.create_index('ix_products_company_branch', 'products', ['company_id', 'branch_id'])

    op.create_table('receipts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        _timestamp('created_at', server_default=False),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        _timestamp('approved_at', nullable=True, server_default=False),
        sa.Column('rejected_by_user_id', sa.Integer(), nullable=True),
        _timestamp('rejected_at', nullable=True, server_default=False),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], name='fk_receipts_company_id_companies'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_receipts_branch_id_branches'),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], name='fk_receipts_created_by_user_id_users'),
        sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id'], name='fk_receipts_approved_by_user_id_users'),
        sa.ForeignKeyConstraint(['rejected_by_user_id'], ['users.id'], name='fk_receipts_rejected_by_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_receipts'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_receipts_company_id', 'receipts', ['company_id'])
    op.create_index('ix_receipts_branch_id', 'receipts', ['branch_id'])
    op.create_index('ix_receipts_status', 'receipts', ['status'])
    op.create_index('ix_receipts_company_branch_status', 'receipts', ['company_id', 'branch_id', 'status'])
    op.create_index('ix_receipts_company_approved_at', 'receipts', ['company_id', 'approved_at'])

    op.create_table('receipt_lines',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('receipt_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['receipt_id'], ['receipts.id'], name='fk_receipt_lines_receipt_id_receipts'),
        sa.PrimaryKeyConstraint('id', name='pk_receipt_lines'),
        sa.CheckConstraint('quantity > 0', name='ck_receipt_lines_quantity_positive'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_receipt_lines_receipt_id', 'receipt_lines', ['receipt_id'])
    op.create_index('ix_receipt_lines_product_id', 'receipt_lines', ['product_id'])

    op.create_table('receipt_audit_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('receipt_id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('from_status', sa.String(length=16), nullable=True),
        sa.Column('to_status', sa.String(length=16), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('note', sa.String(length=500), nullable=True),
        _timestamp('created_at', server_default=False),
        sa.ForeignKeyConstraint(['receipt_id'], ['receipts.id'], name='fk_receipt_audit_entries_receipt_id_receipts'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], name='fk_receipt_audit_entries_company_id_companies'),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], name='fk_receipt_audit_entries_actor_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_receipt_audit_entries'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_receipt_audit_entries_receipt_id', 'receipt_audit_entries', ['receipt_id'])
    op.create_index('ix_receipt_audit_entries_company_id', 'receipt_audit_entries', ['company_id'])
    op.create_index('ix_receipt_audit_receipt_created', 'receipt_audit_entries', ['receipt_id', 'created_at'])

    # ==========================================================================
    # Movement logs (owned by checkout / returns workflows)
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('receipt_number', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('cashier_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], name='fk_sales_company_id_companies'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_sales_branch_id_branches'),
        sa.ForeignKeyConstraint(['cashier_user_id'], ['users.id'], name='fk_sales_cashier_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_sales'),
        sa.UniqueConstraint('receipt_number', name='uq_sales_receipt_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sales_company_id', 'sales', ['company_id'])
    op.create_index('ix_sales_branch_id', 'sales', ['branch_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_company_created', 'sales', ['company_id', 'created_at'])

    op.create_table('sale_lines',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name='fk_sale_lines_sale_id_sales'),
        sa.PrimaryKeyConstraint('id', name='pk_sale_lines'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sale_lines_sale_id', 'sale_lines', ['sale_id'])
    op.create_index('ix_sale_lines_product_id', 'sale_lines', ['product_id'])

    op.create_table('returns',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('sale_line_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('reason', sa.String(length=255), nullable=True),
        _timestamp('created_at'),
        _timestamp('approved_at', nullable=True, server_default=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], name='fk_returns_company_id_companies'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_returns_branch_id_branches'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name='fk_returns_sale_id_sales'),
        sa.ForeignKeyConstraint(['sale_line_id'], ['sale_lines.id'], name='fk_returns_sale_line_id_sale_lines'),
        sa.PrimaryKeyConstraint('id', name='pk_returns'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_returns_company_id', 'returns', ['company_id'])
    op.create_index('ix_returns_branch_id', 'returns', ['branch_id'])
    op.create_index('ix_returns_sale_id', 'returns', ['sale_id'])
    op.create_index('ix_returns_product_id', 'returns', ['product_id'])
    op.create_index('ix_returns_status', 'returns', ['status'])
    op.create_index('ix_returns_company_approved', 'returns', ['company_id', 'approved_at'])


def downgrade():
    for table in (
        'returns', 'sale_lines', 'sales',
        'receipt_audit_entries', 'receipt_lines', 'receipts',
        'products', 'users', 'branches', 'companies',
    ):
        op.drop_table(table)
