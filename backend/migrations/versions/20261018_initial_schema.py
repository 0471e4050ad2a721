"""Initial schema: branches, auth, catalog, invoicing, gold loans, karigars, sync

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration adds:
1. Branch, AppSetting, DocumentSequence (install identity and numbering)
2. User and SessionToken (staff login)
3. Category, MetalType, MetalRate, Product (catalog and daily rates)
4. Customer
5. Invoice, InvoiceItem, Payment, OldGoldTransaction (sales and GST)
6. GoldLoan and LoanPayment
7. Karigar and KarigarOrder (job work)
8. SyncQueue and SyncStatus (cloud outbox)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def _money(name, nullable=False, precision=12):
    return sa.Column(name, sa.Numeric(precision=precision, scale=2), nullable=nullable, server_default='0')


def _weight(name, nullable=False):
    return sa.Column(name, sa.Numeric(precision=10, scale=3), nullable=nullable, server_default='0')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade():
    # ==========================================================================
    # 1. INSTALL IDENTITY
    # ==========================================================================
    op.create_table('branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('state', sa.String(length=64), nullable=True),
        sa.Column('gstin', sa.String(length=15), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('branches', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_branches_code'), ['code'], unique=True)

    op.create_table('app_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('scope_branch_id', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('scope_branch_id', 'key', name='uq_app_settings_branch_key'),
        sqlite_autoincrement=True
    )

    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('period', sa.String(length=8), nullable=False, server_default=''),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'document_type', 'period', name='uq_document_sequences_branch_type_period'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('document_sequences', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_document_sequences_branch_id'), ['branch_id'], unique=False)

    # ==========================================================================
    # 2. AUTH
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='cashier'),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_users_username'), ['username'], unique=False)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_session_tokens_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_token_hash'), ['token_hash'], unique=True)
        batch_op.create_index(batch_op.f('ix_session_tokens_expires_at'), ['expires_at'], unique=False)
        batch_op.create_index('ix_session_tokens_user_active', ['user_id', 'is_revoked'], unique=False)

    # ==========================================================================
    # 3. CATALOG
    # ==========================================================================
    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('hsn_code', sa.String(length=8), nullable=False, server_default='71131900'),
        sa.Column('tax_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='3'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_categories_name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('categories', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_categories_branch_id'), ['branch_id'], unique=False)

    op.create_table('metal_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('metal_code', sa.String(length=20), nullable=False),
        sa.Column('purity_percentage', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('metal_code', name='uq_metal_types_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('metal_types', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_metal_types_branch_id'), ['branch_id'], unique=False)

    op.create_table('metal_rates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('metal_type_id', sa.Integer(), nullable=False),
        sa.Column('rate_per_gram', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('rate_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=False, server_default='manual'),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['metal_type_id'], ['metal_types.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('metal_rates', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_metal_rates_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_metal_rates_metal_type_id'), ['metal_type_id'], unique=False)
        batch_op.create_index('ix_metal_rates_type_date', ['metal_type_id', 'rate_date'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('product_code', sa.String(length=50), nullable=False),
        sa.Column('barcode', sa.String(length=100), nullable=True),
        sa.Column('huid', sa.String(length=6), nullable=True),
        sa.Column('product_name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('metal_type_id', sa.Integer(), nullable=False),
        sa.Column('gross_weight', sa.Numeric(precision=10, scale=3), nullable=False),
        _weight('stone_weight'),
        sa.Column('net_weight', sa.Numeric(precision=10, scale=3), nullable=False),
        sa.Column('fine_weight', sa.Numeric(precision=10, scale=3), nullable=True),
        sa.Column('purity', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('wastage_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('making_charge_type', sa.String(length=16), nullable=False, server_default='per_gram'),
        _money('making_charge', precision=10),
        _money('stone_amount'),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('min_stock_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='in_stock'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.ForeignKeyConstraint(['metal_type_id'], ['metal_types.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_code', name='uq_products_code'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_status'), ['status'], unique=False)
        batch_op.create_index('ix_products_barcode', ['barcode'], unique=False)
        batch_op.create_index('ix_products_category_status', ['category_id', 'status'], unique=False)

    # ==========================================================================
    # 4. CUSTOMERS
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('customer_code', sa.String(length=20), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('mobile', sa.String(length=15), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('state', sa.String(length=100), nullable=True),
        sa.Column('pincode', sa.String(length=6), nullable=True),
        sa.Column('gstin', sa.String(length=15), nullable=True),
        sa.Column('pan_number', sa.String(length=10), nullable=True),
        sa.Column('aadhar_number', sa.String(length=12), nullable=True),
        sa.Column('customer_type', sa.String(length=16), nullable=False, server_default='retail'),
        _money('outstanding_balance'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_code', name='uq_customers_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_customers_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index('ix_customers_mobile', ['mobile'], unique=False)

    # ==========================================================================
    # 5. INVOICING
    # ==========================================================================
    op.create_table('invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=50), nullable=False),
        sa.Column('invoice_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('invoice_type', sa.String(length=16), nullable=False, server_default='sale'),
        sa.Column('customer_name', sa.String(length=200), nullable=False),
        sa.Column('customer_mobile', sa.String(length=15), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_address', sa.Text(), nullable=True),
        sa.Column('customer_gstin', sa.String(length=15), nullable=True),
        sa.Column('customer_pan', sa.String(length=10), nullable=True),
        sa.Column('customer_state', sa.String(length=100), nullable=True),
        _money('subtotal'),
        _money('metal_amount'),
        _money('stone_amount'),
        _money('making_charges'),
        _money('wastage_amount'),
        sa.Column('gst_type', sa.String(length=8), nullable=False, server_default='intra'),
        _money('metal_cgst'),
        _money('metal_sgst'),
        _money('metal_igst'),
        _money('total_metal_gst'),
        _money('making_cgst'),
        _money('making_sgst'),
        _money('making_igst'),
        _money('total_making_gst'),
        _money('cgst_amount'),
        _money('sgst_amount'),
        _money('igst_amount'),
        _money('total_gst'),
        sa.Column('discount_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        _money('discount_amount'),
        _money('round_off', precision=6),
        _money('old_gold_amount'),
        _weight('old_gold_weight'),
        _money('taxable_amount'),
        _money('grand_total'),
        _money('amount_paid'),
        _money('balance_due'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('payment_mode', sa.String(length=16), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_cancelled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_number', name='uq_invoices_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('invoices', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_invoices_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_invoices_payment_status'), ['payment_status'], unique=False)
        batch_op.create_index('ix_invoices_branch_date', ['branch_id', 'invoice_date'], unique=False)
        batch_op.create_index('ix_invoices_customer', ['customer_id'], unique=False)

    op.create_table('invoice_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_code', sa.String(length=50), nullable=False),
        sa.Column('product_name', sa.String(length=200), nullable=False),
        sa.Column('barcode', sa.String(length=100), nullable=True),
        sa.Column('huid', sa.String(length=6), nullable=True),
        sa.Column('category_name', sa.String(length=100), nullable=True),
        sa.Column('metal_type_name', sa.String(length=50), nullable=True),
        _weight('gross_weight'),
        _weight('net_weight'),
        _weight('stone_weight'),
        sa.Column('fine_weight', sa.Numeric(precision=10, scale=3), nullable=True),
        sa.Column('purity', sa.Numeric(precision=5, scale=2), nullable=True),
        _money('metal_rate', precision=10),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('wastage_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        _money('wastage_amount'),
        sa.Column('making_charge_type', sa.String(length=16), nullable=False, server_default='per_gram'),
        _money('making_charge_rate', precision=10),
        _money('making_charge_amount'),
        _money('stone_amount'),
        sa.Column('hsn_code', sa.String(length=8), nullable=False, server_default='71131900'),
        sa.Column('tax_rate', sa.Numeric(precision=5, scale=2), nullable=False, server_default='3'),
        _money('metal_amount'),
        _money('subtotal'),
        _money('metal_cgst'),
        _money('metal_sgst'),
        _money('metal_igst'),
        _money('metal_gst_amount'),
        _money('making_cgst'),
        _money('making_sgst'),
        _money('making_igst'),
        _money('making_gst_amount'),
        _money('total_gst'),
        sa.Column('discount_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        _money('discount_amount'),
        _money('line_total'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('invoice_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_invoice_items_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_invoice_items_invoice_id'), ['invoice_id'], unique=False)

    op.create_table('payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('receipt_number', sa.String(length=50), nullable=True),
        sa.Column('payment_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('payment_mode', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('transaction_ref', sa.String(length=100), nullable=True),
        sa.Column('card_type', sa.String(length=50), nullable=True),
        sa.Column('card_last4', sa.String(length=4), nullable=True),
        sa.Column('upi_id', sa.String(length=100), nullable=True),
        sa.Column('cheque_number', sa.String(length=50), nullable=True),
        sa.Column('cheque_date', sa.Date(), nullable=True),
        sa.Column('bank_name', sa.String(length=100), nullable=True),
        sa.Column('bank_account', sa.String(length=50), nullable=True),
        sa.Column('metal_weight', sa.Numeric(precision=10, scale=3), nullable=True),
        sa.Column('metal_rate', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('metal_type', sa.String(length=50), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('receipt_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payments_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_invoice_id'), ['invoice_id'], unique=False)

    op.create_table('old_gold_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('transaction_number', sa.String(length=50), nullable=True),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('metal_type', sa.String(length=50), nullable=False, server_default='Gold'),
        sa.Column('gross_weight', sa.Numeric(precision=10, scale=3), nullable=False),
        _weight('stone_weight'),
        _weight('net_weight'),
        sa.Column('purity', sa.Numeric(precision=5, scale=2), nullable=False),
        _weight('fine_weight'),
        sa.Column('test_method', sa.String(length=16), nullable=False, server_default='touchstone'),
        sa.Column('tested_purity', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('tested_by', sa.String(length=100), nullable=True),
        sa.Column('current_rate', sa.Numeric(precision=10, scale=2), nullable=False),
        _money('metal_value'),
        sa.Column('melting_loss_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0.5'),
        _weight('melting_loss_weight'),
        _money('melting_loss_amount'),
        _weight('final_weight'),
        _money('final_value'),
        sa.Column('item_description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='accepted'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('old_gold_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_old_gold_transactions_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_old_gold_transactions_invoice_id'), ['invoice_id'], unique=False)

    # ==========================================================================
    # 6. GOLD LOANS
    # ==========================================================================
    op.create_table('gold_loans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('loan_number', sa.String(length=50), nullable=False),
        sa.Column('loan_date', sa.Date(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=200), nullable=False),
        sa.Column('customer_mobile', sa.String(length=15), nullable=False),
        sa.Column('customer_address', sa.Text(), nullable=True),
        sa.Column('customer_aadhar', sa.String(length=12), nullable=True),
        sa.Column('customer_pan', sa.String(length=10), nullable=True),
        sa.Column('item_description', sa.Text(), nullable=False),
        sa.Column('gross_weight', sa.Numeric(precision=10, scale=3), nullable=False),
        _weight('stone_weight'),
        _weight('net_weight'),
        sa.Column('purity_percentage', sa.Numeric(precision=5, scale=2), nullable=False),
        _weight('fine_weight'),
        sa.Column('current_gold_rate', sa.Numeric(precision=10, scale=2), nullable=False),
        _money('appraised_value'),
        sa.Column('ltv_ratio', sa.Numeric(precision=5, scale=2), nullable=False, server_default='75'),
        _money('loan_amount'),
        sa.Column('interest_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('interest_calculation_type', sa.String(length=16), nullable=False, server_default='monthly'),
        sa.Column('tenure_months', sa.Integer(), nullable=False),
        sa.Column('maturity_date', sa.Date(), nullable=False),
        _money('total_interest'),
        _money('processing_fee'),
        _money('total_payable'),
        _money('amount_paid'),
        _money('penalty_paid'),
        _money('balance_due'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='sanctioned'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('requires_approval', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('disbursed_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('defaulted_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_overdue', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('days_overdue', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('risk_level', sa.String(length=8), nullable=False, server_default='low'),
        sa.Column('special_conditions', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('loan_number', name='uq_gold_loans_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('gold_loans', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_gold_loans_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_gold_loans_status'), ['status'], unique=False)
        batch_op.create_index('ix_gold_loans_branch_status', ['branch_id', 'status'], unique=False)
        batch_op.create_index('ix_gold_loans_customer', ['customer_id'], unique=False)

    op.create_table('loan_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('payment_number', sa.String(length=50), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('payment_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('payment_type', sa.String(length=16), nullable=False, server_default='partial'),
        sa.Column('payment_mode', sa.String(length=16), nullable=False, server_default='cash'),
        _money('principal_amount'),
        _money('interest_amount'),
        _money('penalty_amount'),
        _money('total_amount'),
        sa.Column('transaction_reference', sa.String(length=100), nullable=True),
        sa.Column('card_last_4_digits', sa.String(length=4), nullable=True),
        sa.Column('upi_transaction_id', sa.String(length=100), nullable=True),
        sa.Column('bank_name', sa.String(length=100), nullable=True),
        sa.Column('cheque_number', sa.String(length=50), nullable=True),
        sa.Column('cheque_date', sa.Date(), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='verified'),
        sa.Column('loan_balance_before', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('loan_balance_after', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['loan_id'], ['gold_loans.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('loan_payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_loan_payments_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_loan_payments_loan_id'), ['loan_id'], unique=False)

    # ==========================================================================
    # 7. KARIGARS
    # ==========================================================================
    op.create_table('karigars',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('karigar_code', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('mobile', sa.String(length=15), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('specialization', sa.String(length=32), nullable=False, server_default='general'),
        sa.Column('payment_type', sa.String(length=16), nullable=False, server_default='per_gram'),
        _money('payment_rate', precision=10),
        _money('outstanding_balance'),
        sa.Column('total_orders_completed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_orders_pending', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('karigar_code', name='uq_karigars_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('karigars', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_karigars_branch_id'), ['branch_id'], unique=False)

    op.create_table('karigar_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=50), nullable=False),
        sa.Column('karigar_id', sa.Integer(), nullable=False),
        sa.Column('order_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expected_delivery_date', sa.Date(), nullable=False),
        sa.Column('actual_delivery_date', sa.Date(), nullable=True),
        sa.Column('order_type', sa.String(length=16), nullable=False, server_default='new_making'),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('metal_type', sa.String(length=50), nullable=False, server_default='Gold'),
        sa.Column('metal_issued_weight', sa.Numeric(precision=10, scale=3), nullable=False),
        sa.Column('metal_issued_purity', sa.Numeric(precision=5, scale=2), nullable=False),
        _weight('metal_issued_fine_weight'),
        _weight('metal_received_weight'),
        sa.Column('metal_received_purity', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        _weight('metal_received_fine_weight'),
        _weight('wastage_weight'),
        sa.Column('wastage_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        _money('wastage_amount'),
        sa.Column('payment_type', sa.String(length=16), nullable=False, server_default='per_gram'),
        _money('payment_rate', precision=10),
        _money('total_payment'),
        _money('amount_paid'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['karigar_id'], ['karigars.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_karigar_orders_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('karigar_orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_karigar_orders_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_karigar_orders_status'), ['status'], unique=False)
        batch_op.create_index('ix_karigar_orders_karigar_status', ['karigar_id', 'status'], unique=False)

    # ==========================================================================
    # 8. SYNC
    # ==========================================================================
    op.create_table('sync_queue',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('table_name', sa.String(length=100), nullable=False),
        sa.Column('operation', sa.String(length=16), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('sync_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('sync_error', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sync_queue', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sync_queue_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index('ix_sync_queue_branch_status_created', ['branch_id', 'sync_status', 'created_at'], unique=False)

    op.create_table('sync_status',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_push_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_pull_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sync_interval_minutes', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('pending_changes_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed_changes_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_sync_error', sa.Text(), nullable=True),
        sa.Column('is_syncing', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', name='uq_sync_status_branch'),
        sqlite_autoincrement=True
    )


def downgrade():
    # Drop tables in reverse order of creation (respect foreign keys)
    op.drop_table('sync_status')
    op.drop_table('sync_queue')
    op.drop_table('karigar_orders')
    op.drop_table('karigars')
    op.drop_table('loan_payments')
    op.drop_table('gold_loans')
    op.drop_table('old_gold_transactions')
    op.drop_table('payments')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('customers')
    op.drop_table('products')
    op.drop_table('metal_rates')
    op.drop_table('metal_types')
    op.drop_table('categories')
    op.drop_table('session_tokens')
    op.drop_table('users')
    op.drop_table('document_sequences')
    op.drop_table('app_settings')
    op.drop_table('branches')
