"""initial schema

Revision ID: 001
Revises:
Create Date: 2024-03-01 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create companies table
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_companies_id'), 'companies', ['id'], unique=False)

    # Create accounts table
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('parent_account_id', sa.Integer(), nullable=True),
        sa.Column('account_code', sa.String(length=20), nullable=False),
        sa.Column('account_name', sa.String(length=150), nullable=False),
        sa.Column('account_type', sa.Enum('ASSET', 'LIABILITY', 'EQUITY', 'REVENUE', 'EXPENSE', name='accounttype'), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('is_contra', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('opening_balance', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0'),
        sa.Column('current_balance', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0'),
        sa.Column('investor_name', sa.String(length=150), nullable=True),
        sa.Column('ownership_percentage', sa.Numeric(precision=7, scale=4), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['parent_account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'account_code', name='uq_company_account_code')
    )
    op.create_index(op.f('ix_accounts_id'), 'accounts', ['id'], unique=False)
    op.create_index(op.f('ix_accounts_company_id'), 'accounts', ['company_id'], unique=False)
    op.create_index('idx_account_company_type', 'accounts', ['company_id', 'account_type'], unique=False)
    op.create_index('idx_account_investor', 'accounts', ['company_id', 'investor_name'], unique=False)

    # Create accounting_periods table
    op.create_table(
        'accounting_periods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('period_name', sa.String(length=50), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('is_closed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'start_date', 'end_date', name='uq_company_period_range')
    )
    op.create_index(op.f('ix_accounting_periods_id'), 'accounting_periods', ['id'], unique=False)
    op.create_index('idx_period_company_dates', 'accounting_periods', ['company_id', 'start_date', 'end_date'], unique=False)

    # Create transactions table
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('period_id', sa.Integer(), nullable=False),
        sa.Column('transaction_number', sa.String(length=30), nullable=False),
        sa.Column('transaction_kind', sa.Enum(
            'JOURNAL', 'SIMPLE', 'LIABILITY', 'MICRO', 'EXTERNAL_INVESTMENT',
            'INVESTOR_EXIT', 'PROFIT_DISTRIBUTION', 'ASSET_PROTECTION',
            name='transactionkind'), nullable=False),
        sa.Column('status', sa.Enum('DRAFT', 'POSTED', 'VOID', name='transactionstatus'), nullable=False, server_default='DRAFT'),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('external_source', sa.String(length=150), nullable=True),
        sa.Column('replaces_transaction_id', sa.Integer(), nullable=True),
        sa.Column('void_reason', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('posted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['period_id'], ['accounting_periods.id']),
        sa.ForeignKeyConstraint(['replaces_transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'transaction_number', name='uq_company_transaction_number')
    )
    op.create_index(op.f('ix_transactions_id'), 'transactions', ['id'], unique=False)
    op.create_index('idx_transaction_company_date', 'transactions', ['company_id', 'transaction_date'], unique=False)
    op.create_index('idx_transaction_status', 'transactions', ['company_id', 'status'], unique=False)

    # Create transaction_lines table
    op.create_table(
        'transaction_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('debit_amount', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0'),
        sa.Column('credit_amount', sa.Numeric(precision=20, scale=2), nullable=False, server_default='0'),
        sa.CheckConstraint('debit_amount >= 0 AND credit_amount >= 0', name='ck_line_amounts_positive'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_transaction_lines_id'), 'transaction_lines', ['id'], unique=False)
    op.create_index('idx_line_transaction', 'transaction_lines', ['transaction_id'], unique=False)
    op.create_index('idx_line_account', 'transaction_lines', ['account_id'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_line_account', table_name='transaction_lines')
    op.drop_index('idx_line_transaction', table_name='transaction_lines')
    op.drop_index(op.f('ix_transaction_lines_id'), table_name='transaction_lines')
    op.drop_table('transaction_lines')

    op.drop_index('idx_transaction_status', table_name='transactions')
    op.drop_index('idx_transaction_company_date', table_name='transactions')
    op.drop_index(op.f('ix_transactions_id'), table_name='transactions')
    op.drop_table('transactions')

    op.drop_index('idx_period_company_dates', table_name='accounting_periods')
    op.drop_index(op.f('ix_accounting_periods_id'), table_name='accounting_periods')
    op.drop_table('accounting_periods')

    op.drop_index('idx_account_investor', table_name='accounts')
    op.drop_index('idx_account_company_type', table_name='accounts')
    op.drop_index(op.f('ix_accounts_company_id'), table_name='accounts')
    op.drop_index(op.f('ix_accounts_id'), table_name='accounts')
    op.drop_table('accounts')

    op.drop_index(op.f('ix_companies_id'), table_name='companies')
    op.drop_table('companies')

    sa.Enum(name='transactionstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='transactionkind').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='accounttype').drop(op.get_bind(), checkfirst=True)
