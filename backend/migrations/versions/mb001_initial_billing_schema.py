"""initial billing schema

Revision ID: mb001
Revises:
Create Date: 2026-03-01 00:00:00.000000

Creates the complete billing schema:
- companies / stock_locations: tenants and their stock locations
- clients, products and their categories
- taxes / tax_rules: VAT master data and category rules
- stock_movements: append-only stock ledger
- invoices, quotes, proforma_invoices, credit_notes sharing line_items
- payments, credit_note_applications, email_history
- inventories / inventory_items: physical counts
- document_sequences: PREFIX-YEAR-00001 numbering per company
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'mb001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*names):
    return [
        sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP'))
        for name in names
    ]


def _totals():
    return [
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('vat_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
    ]


def upgrade():
    # ============================================================================
    # companies / stock_locations
    # ============================================================================
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('ice', sa.String(length=32), nullable=True),
        sa.Column('tax_id', sa.String(length=32), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='MAD'),
        sa.Column('fiscal_stamp_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_companies_code', 'companies', ['code'], unique=True)
    op.create_index('ix_companies_is_active', 'companies', ['is_active'])

    op.create_table(
        'stock_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='0'),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'name', name='uq_stock_locations_company_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_locations_company_id', 'stock_locations', ['company_id'])

    # ============================================================================
    # clients and categories
    # ============================================================================
    op.create_table(
        'client_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'name', name='uq_client_categories_company_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_client_categories_company_id', 'client_categories', ['company_id'])

    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('ice', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['client_categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_clients_company_id', 'clients', ['company_id'])
    op.create_index('ix_clients_category_id', 'clients', ['category_id'])
    op.create_index('ix_clients_company_name', 'clients', ['company_id', 'name'])

    # ============================================================================
    # products, stock ledger
    # ============================================================================
    op.create_table(
        'product_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'name', name='uq_product_categories_company_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_categories_company_id', 'product_categories', ['company_id'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit', sa.String(length=32), nullable=False, server_default='piece'),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('vat_rate_bps', sa.Integer(), nullable=False, server_default='2000'),
        sa.Column('is_service', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('manage_stock', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_stock', sa.Integer(), nullable=True),
        sa.Column('alert_stock', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['product_categories.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['stock_locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'reference', name='uq_products_company_reference'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_company_id', 'products', ['company_id'])
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_location_id', 'products', ['location_id'])
    op.create_index('ix_products_company_name', 'products', ['company_id', 'name'])

    # Append-only: rows are never updated or deleted
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('previous_stock', sa.Integer(), nullable=False),
        sa.Column('new_stock', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        *_timestamps('occurred_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['stock_locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_company_id', 'stock_movements', ['company_id'])
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_location_id', 'stock_movements', ['location_id'])
    op.create_index('ix_stock_movements_type', 'stock_movements', ['type'])
    op.create_index('ix_stock_movements_occurred_at', 'stock_movements', ['occurred_at'])
    op.create_index('ix_stock_movements_company_product', 'stock_movements', ['company_id', 'product_id', 'id'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference_type', 'reference_id'])

    # ============================================================================
    # taxes
    # ============================================================================
    op.create_table(
        'taxes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('rate_bps', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='vat'),
        sa.Column('applies_to', sa.String(length=16), nullable=False, server_default='all'),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_taxes_company_id', 'taxes', ['company_id'])
    op.create_index('ix_taxes_company_default', 'taxes', ['company_id', 'is_default'])

    op.create_table(
        'tax_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('tax_ids', sa.JSON(), nullable=False),
        sa.Column('product_category_ids', sa.JSON(), nullable=True),
        sa.Column('client_category_ids', sa.JSON(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tax_rules_company_id', 'tax_rules', ['company_id'])
    op.create_index('ix_tax_rules_company_priority', 'tax_rules', ['company_id', 'priority'])

    # ============================================================================
    # numbering
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('updated_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'document_type', 'year', name='uq_doc_sequences_company_type_year'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_document_sequences_company_id', 'document_sequences', ['company_id'])
    op.create_index('ix_document_sequences_document_type', 'document_sequences', ['document_type'])

    # ============================================================================
    # quotes and proformas (invoices reference both)
    # ============================================================================
    op.create_table(
        'quotes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(length=32), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expiry_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False, server_default='draft'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_totals(),
        sa.Column('is_validated', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('validation_note', sa.Text(), nullable=True),
        sa.Column('reminder_enabled', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('reminder_days', sa.Integer(), nullable=True),
        sa.Column('next_reminder_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_reminder_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('converted_invoice_id', sa.Integer(), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'number', name='uq_quotes_company_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_quotes_company_id', 'quotes', ['company_id'])
    op.create_index('ix_quotes_client_id', 'quotes', ['client_id'])
    op.create_index('ix_quotes_status', 'quotes', ['status'])
    op.create_index('ix_quotes_company_status', 'quotes', ['company_id', 'status'])

    op.create_table(
        'proforma_invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(length=32), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='draft'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_totals(),
        sa.Column('converted_invoice_id', sa.Integer(), nullable=True),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'number', name='uq_proforma_invoices_company_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_proforma_invoices_company_id', 'proforma_invoices', ['company_id'])
    op.create_index('ix_proforma_invoices_client_id', 'proforma_invoices', ['client_id'])
    op.create_index('ix_proforma_invoices_status', 'proforma_invoices', ['status'])

    # ============================================================================
    # invoices
    # ============================================================================
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(length=32), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='draft'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('terms', sa.Text(), nullable=True),
        *_totals(),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('has_fiscal_stamp', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('fiscal_stamp_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_deposit', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('deposit_for_invoice_id', sa.Integer(), nullable=True),
        sa.Column('deposit_invoice_id', sa.Integer(), nullable=True),
        sa.Column('deposit_amount_cents', sa.Integer(), nullable=True),
        sa.Column('deposit_percentage_bps', sa.Integer(), nullable=True),
        sa.Column('has_credit_notes', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('credit_note_ids', sa.JSON(), nullable=False),
        sa.Column('credit_note_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quote_id', sa.Integer(), nullable=True),
        sa.Column('proforma_id', sa.Integer(), nullable=True),
        sa.Column('stock_location_id', sa.Integer(), nullable=True),
        sa.Column('stock_consumed', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['deposit_for_invoice_id'], ['invoices.id'], ),
        sa.ForeignKeyConstraint(['deposit_invoice_id'], ['invoices.id'], ),
        sa.ForeignKeyConstraint(['quote_id'], ['quotes.id'], ),
        sa.ForeignKeyConstraint(['proforma_id'], ['proforma_invoices.id'], ),
        sa.ForeignKeyConstraint(['stock_location_id'], ['stock_locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'number', name='uq_invoices_company_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_invoices_company_id', 'invoices', ['company_id'])
    op.create_index('ix_invoices_client_id', 'invoices', ['client_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_company_status', 'invoices', ['company_id', 'status'])
    op.create_index('ix_invoices_company_client', 'invoices', ['company_id', 'client_id'])

    # ============================================================================
    # credit notes
    # ============================================================================
    op.create_table(
        'credit_notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(length=32), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='draft'),
        sa.Column('reason', sa.String(length=16), nullable=False, server_default='return'),
        sa.Column('reason_description', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_totals(),
        sa.Column('affects_stock', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('stock_adjusted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('applied_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('remaining_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_fully_applied', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'number', name='uq_credit_notes_company_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_credit_notes_company_id', 'credit_notes', ['company_id'])
    op.create_index('ix_credit_notes_client_id', 'credit_notes', ['client_id'])
    op.create_index('ix_credit_notes_invoice_id', 'credit_notes', ['invoice_id'])
    op.create_index('ix_credit_notes_status', 'credit_notes', ['status'])

    op.create_table(
        'credit_note_applications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('credit_note_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('target_invoice_id', sa.Integer(), nullable=True),
        sa.Column('is_refund', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('refund_method', sa.String(length=16), nullable=True),
        sa.Column('refund_reference', sa.String(length=128), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['credit_note_id'], ['credit_notes.id'], ),
        sa.ForeignKeyConstraint(['target_invoice_id'], ['invoices.id'], ),
        sa.CheckConstraint(
            '(target_invoice_id IS NOT NULL AND NOT is_refund) OR (target_invoice_id IS NULL AND is_refund)',
            name='ck_credit_note_applications_target_xor_refund',
        ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_credit_note_applications_company_id', 'credit_note_applications', ['company_id'])
    op.create_index('ix_credit_note_applications_credit_note_id', 'credit_note_applications', ['credit_note_id'])
    op.create_index('ix_credit_note_applications_target_invoice_id', 'credit_note_applications',
                    ['target_invoice_id'])

    # ============================================================================
    # line items (exactly one owner FK set)
    # ============================================================================
    op.create_table(
        'line_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('quote_id', sa.Integer(), nullable=True),
        sa.Column('proforma_id', sa.Integer(), nullable=True),
        sa.Column('credit_note_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('vat_rate_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.ForeignKeyConstraint(['quote_id'], ['quotes.id'], ),
        sa.ForeignKeyConstraint(['proforma_id'], ['proforma_invoices.id'], ),
        sa.ForeignKeyConstraint(['credit_note_id'], ['credit_notes.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_line_items_invoice_id', 'line_items', ['invoice_id'])
    op.create_index('ix_line_items_quote_id', 'line_items', ['quote_id'])
    op.create_index('ix_line_items_proforma_id', 'line_items', ['proforma_id'])
    op.create_index('ix_line_items_credit_note_id', 'line_items', ['credit_note_id'])
    op.create_index('ix_line_items_product_id', 'line_items', ['product_id'])

    # ============================================================================
    # payments, email history
    # ============================================================================
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payments_company_id', 'payments', ['company_id'])
    op.create_index('ix_payments_invoice_id', 'payments', ['invoice_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_invoice_status', 'payments', ['invoice_id', 'status'])
    op.create_index('ix_payments_company_date', 'payments', ['company_id', 'date'])

    op.create_table(
        'email_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=16), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False, server_default='sent'),
        sa.Column('recipients', sa.JSON(), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='sent'),
        *_timestamps('sent_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_email_history_company_id', 'email_history', ['company_id'])
    op.create_index('ix_email_history_entity', 'email_history', ['entity_type', 'entity_id'])

    # ============================================================================
    # physical inventory counts
    # ============================================================================
    op.create_table(
        'inventories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('number', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='draft'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('adjustments_applied', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps('created_at', 'updated_at'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['stock_locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'number', name='uq_inventories_company_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventories_company_id', 'inventories', ['company_id'])
    op.create_index('ix_inventories_location_id', 'inventories', ['location_id'])
    op.create_index('ix_inventories_status', 'inventories', ['status'])

    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('expected_quantity', sa.Integer(), nullable=False),
        sa.Column('actual_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_counted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('counted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('movement_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['inventory_id'], ['inventories.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['movement_id'], ['stock_movements.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('inventory_id', 'product_id', name='uq_inventory_items_inventory_product'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_items_inventory_id', 'inventory_items', ['inventory_id'])
    op.create_index('ix_inventory_items_product_id', 'inventory_items', ['product_id'])


def downgrade():
    for table in (
        'inventory_items',
        'inventories',
        'email_history',
        'payments',
        'line_items',
        'credit_note_applications',
        'credit_notes',
        'invoices',
        'proforma_invoices',
        'quotes',
        'document_sequences',
        'tax_rules',
        'taxes',
        'stock_movements',
        'products',
        'product_categories',
        'clients',
        'client_categories',
        'stock_locations',
        'companies',
    ):
        op.drop_table(table)
