"""SQLAlchemy Core table definitions for StackSave.

Single source of truth for the database schema. Shared with Alembic for migrations.
"""
import sqlalchemy as sa
from sqlalchemy import func

metadata = sa.MetaData()

# Money columns: 18 digits, 6 fractional (USDC precision)
Money = sa.Numeric(18, 6)

USER_MODES = ('lite', 'pro')
ALLOCATION_MODES = ('lite', 'balanced', 'pro')
GOAL_FREQUENCIES = ('weekly', 'monthly')
STATUSES = ('pending', 'confirmed', 'failed')
TRANSACTION_TYPES = ('deposit', 'withdrawal', 'transfer', 'earnings')
PAYMENT_METHOD_TYPES = ('gopay', 'dana', 'ovo', 'bank', 'wallet')
POOL_TYPES = ('stablecoin', 'lending', 'dex', 'staking', 'yield_aggregator')


def _in(column, values):
    return sa.CheckConstraint(
        f"{column} IN ({', '.join(repr(v) for v in values)})",
    )


# ─── 1. Users ───────────────────────────────────────────────────────────────
users = sa.Table('users', metadata,
    sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
    sa.Column('wallet_address', sa.Text, unique=True, nullable=False),
    sa.Column('email', sa.Text),
    sa.Column('mode', sa.Text, server_default='lite', nullable=False),
    sa.Column('total_balance', Money, server_default='0', nullable=False),
    sa.Column('total_earnings', Money, server_default='0', nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=func.now()),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    _in('mode', USER_MODES),
)

# ─── 2. Savings Goals ───────────────────────────────────────────────────────
savings_goals = sa.Table('savings_goals', metadata,
    sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
    sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
    sa.Column('title', sa.Text, nullable=False),
    sa.Column('target_amount', Money, nullable=False),
    sa.Column('current_amount', Money, server_default='0', nullable=False),
    sa.Column('frequency', sa.Text),
    sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
    sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
    sa.Column('is_main_goal', sa.Boolean, server_default=sa.text('false'), nullable=False),
    sa.Column('is_completed', sa.Boolean, server_default=sa.text('false'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=func.now()),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    _in('frequency', GOAL_FREQUENCIES),
)

# ─── 3. Payment Methods ─────────────────────────────────────────────────────
payment_methods = sa.Table('payment_methods', metadata,
    sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
    sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
    sa.Column('type', sa.Text, nullable=False),
    sa.Column('account_name', sa.Text),
    sa.Column('account_number', sa.Text),
    sa.Column('wallet_address', sa.Text),
    sa.Column('is_default', sa.Boolean, server_default=sa.text('false'), nullable=False),
    sa.Column('is_active', sa.Boolean, server_default=sa.text('true'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=func.now()),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    _in('type', PAYMENT_METHOD_TYPES),
)

# ─── 4. Deposits ────────────────────────────────────────────────────────────
deposits = sa.Table('deposits', metadata,
    sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
    sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
    sa.Column('goal_id', sa.Integer, sa.ForeignKey('savings_goals.id', ondelete='SET NULL'), index=True),
    sa.Column('payment_method_id', sa.Integer, sa.ForeignKey('payment_methods.id', ondelete='SET NULL')),
    sa.Column('amount', Money, nullable=False),
    sa.Column('deposit_date', sa.DateTime(timezone=True), server_default=func.now(), index=True),
    sa.Column('transaction_hash', sa.Text),
    sa.Column('status', sa.Text, server_default='pending', nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=func.now()),
    _in('status', STATUSES),
)

# ─── 5. Transactions (append-only ledger) ───────────────────────────────────
transactions = sa.Table('transactions', metadata,
    sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
    sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
    sa.Column('type', sa.Text, nullable=False, index=True),
    sa.Column('amount', Money, nullable=False),
    sa.Column('description', sa.Text),
    sa.Column('transaction_hash', sa.Text),
    sa.Column('status', sa.Text, server_default='pending', nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=func.now(), index=True),
    _in('type', TRANSACTION_TYPES),
    _in('status', STATUSES),
)

# ─── 6. Streaks ─────────────────────────────────────────────────────────────
streaks = sa.Table('streaks', metadata,
    sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
    sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
    sa.Column('current_streak', sa.Integer, server_default='0', nullable=False),
    sa.Column('longest_streak', sa.Integer, server_default='0', nullable=False),
    sa.Column('last_deposit_date', sa.Date),
    sa.Column('total_deposits', sa.Integer, server_default='0', nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=func.now()),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
)

# ─── 7. Daily Growth ────────────────────────────────────────────────────────
daily_growth = sa.Table('daily_growth', metadata,
    sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
    sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
    sa.Column('date', sa.Date, nullable=False),
    sa.Column('growth_percentage', Money, server_default='0', nullable=False),
    sa.Column('earnings', Money, server_default='0', nullable=False),
    sa.Column('has_deposit', sa.Boolean, server_default=sa.text('false'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=func.now()),
    sa.UniqueConstraint('user_id', 'date', name='uq_daily_growth_user_date'),
)

# ─── 8. Pool Allocations (one position per protocol) ────────────────────────
pool_allocations = sa.Table('pool_allocations', metadata,
    sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
    sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
    sa.Column('pool_type', sa.Text, nullable=False, index=True),
    sa.Column('protocol_id', sa.Text, nullable=False),
    sa.Column('protocol_name', sa.Text, nullable=False),
    sa.Column('protocol_address', sa.Text),
    sa.Column('amount_allocated', Money, server_default='0', nullable=False),
    sa.Column('current_apy', sa.Numeric(10, 6), server_default='0', nullable=False),
    sa.Column('total_earnings', Money, server_default='0', nullable=False),
    sa.Column('daily_earnings', Money, server_default='0', nullable=False),
    sa.Column('allocated_at', sa.DateTime(timezone=True), server_default=func.now()),
    sa.Column('last_updated', sa.DateTime(timezone=True), server_default=func.now()),
    sa.UniqueConstraint('user_id', 'protocol_id', 'pool_type', name='uq_pool_allocations_position'),
    _in('pool_type', POOL_TYPES),
)

# ─── 9. Allocation History (immutable) ──────────────────────────────────────
allocation_history = sa.Table('allocation_history', metadata,
    sa.Column('id', sa.Integer, sa.Identity(), primary_key=True),
    sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
    sa.Column('deposit_id', sa.Integer, sa.ForeignKey('deposits.id', ondelete='SET NULL'), index=True),
    sa.Column('deposit_amount', Money, nullable=False),
    sa.Column('allocations_json', sa.Text, nullable=False),
    sa.Column('user_mode', sa.Text, nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=func.now()),
    _in('user_mode', ALLOCATION_MODES),
)
