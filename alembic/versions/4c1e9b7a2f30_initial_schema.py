"""initial_schema

Revision ID: 4c1e9b7a2f30
Revises:
Create Date: 2026-10-17 09:12:44.318205
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = '4c1e9b7a2f30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ALL_TABLES = [
    'users', 'savings_goals', 'payment_methods', 'deposits', 'transactions',
    'streaks', 'daily_growth', 'pool_allocations', 'allocation_history',
]

Money = sa.Numeric(18, 6)


def _fk_user():
    return sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)


def upgrade() -> None:
    # 1. Users
    op.create_table('users',
        sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
        sa.Column('wallet_address', sa.Text, unique=True, nullable=False),
        sa.Column('email', sa.Text),
        sa.Column('mode', sa.Text, server_default='lite', nullable=False),
        sa.Column('total_balance', Money, server_default='0', nullable=False),
        sa.Column('total_earnings', Money, server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("mode IN ('lite', 'pro')"),
    )

    # 2. Savings goals
    op.create_table('savings_goals',
        sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
        _fk_user(),
        sa.Column('title', sa.Text, nullable=False),
        sa.Column('target_amount', Money, nullable=False),
        sa.Column('current_amount', Money, server_default='0', nullable=False),
        sa.Column('frequency', sa.Text),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_main_goal', sa.Boolean, server_default=sa.text('false'), nullable=False),
        sa.Column('is_completed', sa.Boolean, server_default=sa.text('false'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("frequency IN ('weekly', 'monthly')"),
    )
    op.create_index('ix_savings_goals_user_id', 'savings_goals', ['user_id'])

    # 3. Payment methods
    op.create_table('payment_methods',
        sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
        _fk_user(),
        sa.Column('type', sa.Text, nullable=False),
        sa.Column('account_name', sa.Text),
        sa.Column('account_number', sa.Text),
        sa.Column('wallet_address', sa.Text),
        sa.Column('is_default', sa.Boolean, server_default=sa.text('false'), nullable=False),
        sa.Column('is_active', sa.Boolean, server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("type IN ('gopay', 'dana', 'ovo', 'bank', 'wallet')"),
    )
    op.create_index('ix_payment_methods_user_id', 'payment_methods', ['user_id'])

    # 4. Deposits
    op.create_table('deposits',
        sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
        _fk_user(),
        sa.Column('goal_id', sa.Integer, sa.ForeignKey('savings_goals.id', ondelete='SET NULL')),
        sa.Column('payment_method_id', sa.Integer, sa.ForeignKey('payment_methods.id', ondelete='SET NULL')),
        sa.Column('amount', Money, nullable=False),
        sa.Column('deposit_date', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('transaction_hash', sa.Text),
        sa.Column('status', sa.Text, server_default='pending', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('pending', 'confirmed', 'failed')"),
    )
    op.create_index('ix_deposits_user_id', 'deposits', ['user_id'])
    op.create_index('ix_deposits_goal_id', 'deposits', ['goal_id'])
    op.create_index('ix_deposits_deposit_date', 'deposits', ['deposit_date'])

    # 5. Transactions
    op.create_table('transactions',
        sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
        _fk_user(),
        sa.Column('type', sa.Text, nullable=False),
        sa.Column('amount', Money, nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('transaction_hash', sa.Text),
        sa.Column('status', sa.Text, server_default='pending', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("type IN ('deposit', 'withdrawal', 'transfer', 'earnings')"),
        sa.CheckConstraint("status IN ('pending', 'confirmed', 'failed')"),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_type', 'transactions', ['type'])
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'])

    # 6. Streaks
    op.create_table('streaks',
        sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('current_streak', sa.Integer, server_default='0', nullable=False),
        sa.Column('longest_streak', sa.Integer, server_default='0', nullable=False),
        sa.Column('last_deposit_date', sa.Date),
        sa.Column('total_deposits', sa.Integer, server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # 7. Daily growth
    op.create_table('daily_growth',
        sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
        _fk_user(),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('growth_percentage', Money, server_default='0', nullable=False),
        sa.Column('earnings', Money, server_default='0', nullable=False),
        sa.Column('has_deposit', sa.Boolean, server_default=sa.text('false'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'date', name='uq_daily_growth_user_date'),
    )

    # 8. Pool allocations
    op.create_table('pool_allocations',
        sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
        _fk_user(),
        sa.Column('pool_type', sa.Text, nullable=False),
        sa.Column('protocol_id', sa.Text, nullable=False),
        sa.Column('protocol_name', sa.Text, nullable=False),
        sa.Column('protocol_address', sa.Text),
        sa.Column('amount_allocated', Money, server_default='0', nullable=False),
        sa.Column('current_apy', sa.Numeric(10, 6), server_default='0', nullable=False),
        sa.Column('total_earnings', Money, server_default='0', nullable=False),
        sa.Column('daily_earnings', Money, server_default='0', nullable=False),
        sa.Column('allocated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'protocol_id', 'pool_type', name='uq_pool_allocations_position'),
        sa.CheckConstraint("pool_type IN ('stablecoin', 'lending', 'dex', 'staking', 'yield_aggregator')"),
    )
    op.create_index('ix_pool_allocations_user_id', 'pool_allocations', ['user_id'])
    op.create_index('ix_pool_allocations_pool_type', 'pool_allocations', ['pool_type'])

    # 9. Allocation history
    op.create_table('allocation_history',
        sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
        _fk_user(),
        sa.Column('deposit_id', sa.Integer, sa.ForeignKey('deposits.id', ondelete='SET NULL')),
        sa.Column('deposit_amount', Money, nullable=False),
        sa.Column('allocations_json', sa.Text, nullable=False),
        sa.Column('user_mode', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("user_mode IN ('lite', 'balanced', 'pro')"),
    )
    op.create_index('ix_allocation_history_user_id', 'allocation_history', ['user_id'])
    op.create_index('ix_allocation_history_deposit_id', 'allocation_history', ['deposit_id'])


def downgrade() -> None:
    for table in reversed(ALL_TABLES):
        op.drop_table(table)
