"""Create users, wallets, binary_trades, transactions and activity_logs

Revision ID: 001_binary_trade_ledger
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_binary_trade_ledger'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'wallets',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('asset', sa.String(10), nullable=False, server_default='USDT'),
        sa.Column('balance', sa.Numeric(18, 6), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('balance >= 0', name='ck_wallets_balance_non_negative'),
    )

    op.create_table(
        'binary_trades',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('symbol', sa.String(20), nullable=False),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('stake', sa.Numeric(18, 6), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.Column('entry_price', sa.Numeric(24, 8), nullable=False),
        sa.Column('profit_rate', sa.Numeric(8, 4), nullable=False),
        sa.Column('commission_rate', sa.Numeric(8, 4), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('settlement_due_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('outcome', sa.String(10), nullable=True),
        sa.Column('exit_price', sa.Numeric(24, 8), nullable=True),
        sa.Column('commission', sa.Numeric(18, 6), nullable=True),
        sa.Column('payout', sa.Numeric(18, 6), nullable=True),
        sa.Column('net_profit', sa.Numeric(18, 6), nullable=True),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('result_seen', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_binary_trades_user_status', 'binary_trades', ['user_id', 'status'])
    op.create_index('idx_binary_trades_user_created', 'binary_trades', ['user_id', 'created_at'])
    op.create_index('idx_binary_trades_status_due', 'binary_trades', ['status', 'settlement_due_at'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('trade_id', sa.Uuid(), sa.ForeignKey('binary_trades.id', ondelete='SET NULL'), nullable=True),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(18, 6), nullable=False),
        sa.Column('asset', sa.String(10), nullable=False, server_default='USDT'),
        sa.Column('status', sa.String(20), nullable=False, server_default='completed'),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_transactions_user_created', 'transactions', ['user_id', 'created_at'])
    op.create_index('idx_transactions_user_type', 'transactions', ['user_id', 'type'])

    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('level', sa.String(20), nullable=False),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_activity_logs_user_created', 'activity_logs', ['user_id', 'created_at'])
    op.create_index('idx_activity_logs_level', 'activity_logs', ['level'])


def downgrade() -> None:
    op.drop_table('activity_logs')
    op.drop_table('transactions')
    op.drop_table('binary_trades')
    op.drop_table('wallets')
    op.drop_table('users')
