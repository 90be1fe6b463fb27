"""LedgerDB: transactional store for StackSave via SQLAlchemy Core.

Holds the connection handling every service goes through plus the plain
CRUD used by the HTTP layer (users, goals, payment methods, listings).
Multi-table financial events live in services/ledger.py and
services/portfolio.py; they borrow a connection from `transaction()`.
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy import exc
from sqlalchemy.dialects import postgresql, sqlite

from stacksave.db_engine import get_engine
from stacksave.errors import (
    StackSaveError, ValidationError, NotFoundError, ConflictError, StoreError,
)
from stacksave.models import (
    metadata, users, savings_goals, payment_methods, deposits, transactions,
    streaks, daily_growth, USER_MODES, GOAL_FREQUENCIES, PAYMENT_METHOD_TYPES,
    TRANSACTION_TYPES,
)
from stacksave.money import to_money, positive_money, quantize, ZERO

logger = logging.getLogger("stacksave.db")

# Postgres SQLSTATEs for serialization failure / deadlock
_RETRYABLE_PGCODES = {'40001', '40P01', '55P03'}


def _to_datetime(value, field):
    """Accept datetimes or ISO-8601 strings (a trailing Z is read as UTC)."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid {field}", field=field)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _is_lock_conflict(error: exc.DBAPIError) -> bool:
    orig = getattr(error, 'orig', None)
    if getattr(orig, 'pgcode', None) in _RETRYABLE_PGCODES:
        return True
    return 'database is locked' in str(orig or error).lower()


def _opt_bool(value, field):
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean", field=field)
    return value


class LedgerDB:
    def __init__(self, engine=None, pool_size=10):
        if engine is not None:
            self.engine = engine
        else:
            self.engine = get_engine(pool_size=pool_size)

    # ─── Connection Handling ───────────────────────────────────────────────

    def create_all(self):
        """Create missing tables (dev / tests; production uses Alembic)."""
        metadata.create_all(self.engine)

    @contextmanager
    def transaction(self):
        """One atomic unit: commit on success, roll back on any exception.

        Store failures are translated into the service error taxonomy so
        callers never see raw SQLAlchemy exceptions.
        """
        try:
            with self.engine.begin() as conn:
                yield conn
        except StackSaveError:
            raise
        except exc.IntegrityError as e:
            logger.warning(f"[DB] Integrity conflict: {e.orig}")
            raise ConflictError("Conflicting write, please retry") from e
        except exc.OperationalError as e:
            if _is_lock_conflict(e):
                logger.warning(f"[DB] Lock conflict: {e.orig}")
                raise ConflictError("Concurrent update in progress, please retry") from e
            logger.error(f"[DB] Operational error: {e}")
            raise StoreError("Database unavailable") from e
        except exc.SQLAlchemyError as e:
            logger.error(f"[DB] Transaction failed: {e}")
            raise StoreError("Database error") from e

    def ping(self):
        """Round-trip to the database, used by /health."""
        with self.transaction() as conn:
            conn.execute(sa.select(sa.literal(1))).scalar()

    def insert_stmt(self, table):
        """Dialect-specific INSERT supporting ON CONFLICT."""
        if self.engine.dialect.name == 'sqlite':
            return sqlite.insert(table)
        return postgresql.insert(table)

    # ─── Users ─────────────────────────────────────────────────────────────

    def lock_user(self, conn, user_id):
        """Fetch a user row FOR UPDATE inside an open transaction."""
        row = conn.execute(
            sa.select(users).where(users.c.id == user_id).with_for_update()
        ).mappings().fetchone()
        if row is None:
            raise NotFoundError("User not found", user_id=user_id)
        return dict(row)

    def _owner_of(self, conn, table, row_id):
        """Unlocked read of a row's user_id, so the user can be locked first."""
        return conn.execute(
            sa.select(table.c.user_id).where(table.c.id == row_id)
        ).scalar()

    def connect_wallet(self, wallet_address):
        """Get or create the user behind a wallet. Returns (user, created)."""
        if not wallet_address or not isinstance(wallet_address, str):
            raise ValidationError("Wallet address is required", field='walletAddress')
        address = wallet_address.strip().lower()

        with self.transaction() as conn:
            row = conn.execute(
                sa.select(users).where(users.c.wallet_address == address)
            ).mappings().fetchone()
            if row is not None:
                logger.info(f"[Users] Reconnected {row['id']} ({address[:10]}...)")
                return dict(row), False

            user_id = conn.execute(
                users.insert().values(
                    wallet_address=address, mode='lite',
                    total_balance=ZERO, total_earnings=ZERO,
                ).returning(users.c.id)
            ).scalar_one()
            conn.execute(streaks.insert().values(
                user_id=user_id, current_streak=0, longest_streak=0, total_deposits=0,
            ))
            row = conn.execute(
                sa.select(users).where(users.c.id == user_id)
            ).mappings().one()
            logger.info(f"[Users] Created {user_id} ({address[:10]}...)")
            return dict(row), True

    def get_user(self, user_id):
        with self.engine.connect() as conn:
            row = conn.execute(
                sa.select(users).where(users.c.id == user_id)
            ).mappings().fetchone()
        if row is None:
            raise NotFoundError("User not found", user_id=user_id)
        return dict(row)

    def get_user_by_wallet(self, wallet_address):
        with self.engine.connect() as conn:
            row = conn.execute(
                sa.select(users).where(users.c.wallet_address == wallet_address.lower())
            ).mappings().fetchone()
            return dict(row) if row else None

    def update_user_mode(self, user_id, mode):
        if mode not in USER_MODES:
            raise ValidationError('Invalid mode. Must be "lite" or "pro"', field='mode')
        with self.transaction() as conn:
            row = conn.execute(
                users.update().where(users.c.id == user_id)
                .values(mode=mode).returning(*users.c)
            ).mappings().fetchone()
            if row is None:
                raise NotFoundError("User not found", user_id=user_id)
            return dict(row)

    def set_user_balance(self, user_id, total_balance, total_earnings=None):
        """Manual override of the denormalised balance columns."""
        values = {'total_balance': to_money(total_balance, 'totalBalance')}
        if total_earnings is not None:
            values['total_earnings'] = to_money(total_earnings, 'totalEarnings')
        with self.transaction() as conn:
            self.lock_user(conn, user_id)
            row = conn.execute(
                users.update().where(users.c.id == user_id)
                .values(**values).returning(*users.c)
            ).mappings().one()
            return dict(row)

    # ─── Daily Growth ──────────────────────────────────────────────────────

    def get_growth(self, user_id, limit=30):
        """Most recent `limit` days, returned oldest to newest."""
        q = sa.select(daily_growth).where(
            daily_growth.c.user_id == user_id
        ).order_by(daily_growth.c.date.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(q).mappings().fetchall()
            return [dict(r) for r in reversed(rows)]

    def add_growth(self, user_id, day, growth_percentage=0, earnings=0, has_deposit=False):
        """Explicitly write a day's growth row (overwrites, not additive)."""
        vals = {
            'user_id': user_id, 'date': day,
            'growth_percentage': to_money(growth_percentage, 'growthPercentage'),
            'earnings': to_money(earnings, 'earnings'),
            'has_deposit': bool(has_deposit),
        }
        with self.transaction() as conn:
            self.lock_user(conn, user_id)
            stmt = self.insert_stmt(daily_growth).values(**vals)
            stmt = stmt.on_conflict_do_update(
                index_elements=['user_id', 'date'],
                set_={k: stmt.excluded[k] for k in ('growth_percentage', 'earnings', 'has_deposit')},
            )
            conn.execute(stmt)
            row = conn.execute(
                sa.select(daily_growth).where(
                    daily_growth.c.user_id == user_id, daily_growth.c.date == day,
                )
            ).mappings().one()
            return dict(row)

    def mark_deposit_day(self, conn, user_id, day):
        """Flag `day` as having a deposit, creating the row if needed."""
        stmt = self.insert_stmt(daily_growth).values(
            user_id=user_id, date=day, has_deposit=True,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=['user_id', 'date'],
            set_={'has_deposit': True},
        )
        conn.execute(stmt)

    def add_day_earnings(self, conn, user_id, day, amount, baseline):
        """Add `amount` to the day's earnings and recompute its growth percentage."""
        baseline = Decimal(str(baseline))
        stmt = self.insert_stmt(daily_growth).values(
            user_id=user_id, date=day, earnings=amount,
            growth_percentage=quantize(amount / baseline * 100),
        )
        new_earnings = daily_growth.c.earnings + stmt.excluded.earnings
        stmt = stmt.on_conflict_do_update(
            index_elements=['user_id', 'date'],
            set_={
                'earnings': new_earnings,
                'growth_percentage': new_earnings / baseline * 100,
            },
        )
        conn.execute(stmt)

    # ─── Streak Rows ───────────────────────────────────────────────────────

    def get_streak_row(self, conn, user_id):
        return conn.execute(
            sa.select(streaks).where(streaks.c.user_id == user_id).with_for_update()
        ).mappings().fetchone()

    def insert_streak_row(self, conn, user_id):
        conn.execute(streaks.insert().values(
            user_id=user_id, current_streak=0, longest_streak=0, total_deposits=0,
        ))
        return self.get_streak_row(conn, user_id)

    def save_streak_row(self, conn, user_id, state):
        conn.execute(
            streaks.update().where(streaks.c.user_id == user_id).values(
                current_streak=state.current_streak,
                longest_streak=state.longest_streak,
                last_deposit_date=state.last_deposit_date,
                total_deposits=state.total_deposits,
            )
        )

    # ─── Savings Goals ─────────────────────────────────────────────────────

    def list_goals(self, user_id):
        q = sa.select(savings_goals).where(
            savings_goals.c.user_id == user_id
        ).order_by(savings_goals.c.created_at.desc(), savings_goals.c.id.desc())
        with self.engine.connect() as conn:
            rows = conn.execute(q).mappings().fetchall()
            return [dict(r) for r in rows]

    def get_main_goal(self, user_id):
        with self.engine.connect() as conn:
            row = conn.execute(
                sa.select(savings_goals).where(
                    savings_goals.c.user_id == user_id,
                    savings_goals.c.is_main_goal == True,  # noqa: E712
                ).limit(1)
            ).mappings().fetchone()
        if row is None:
            raise NotFoundError("No main goal found", user_id=user_id)
        return dict(row)

    def _clear_main_goal(self, conn, user_id, keep_id=None):
        stmt = savings_goals.update().where(
            savings_goals.c.user_id == user_id,
            savings_goals.c.is_main_goal == True,  # noqa: E712
        )
        if keep_id is not None:
            stmt = stmt.where(savings_goals.c.id != keep_id)
        conn.execute(stmt.values(is_main_goal=False))

    def create_goal(self, user_id, title, target_amount, frequency, start_date, end_date,
                    is_main_goal=False):
        """Create a goal. A new main goal demotes the previous one in the same transaction."""
        if not title or target_amount is None or not frequency or not start_date or not end_date:
            raise ValidationError("Missing required fields")
        if frequency not in GOAL_FREQUENCIES:
            raise ValidationError('Frequency must be "weekly" or "monthly"', field='frequency')
        target = positive_money(target_amount, 'targetAmount')
        is_main_goal = bool(_opt_bool(is_main_goal, 'isMainGoal'))

        start_date = _to_datetime(start_date, 'startDate')
        end_date = _to_datetime(end_date, 'endDate')

        with self.transaction() as conn:
            self.lock_user(conn, user_id)
            if is_main_goal:
                self._clear_main_goal(conn, user_id)
            row = conn.execute(
                savings_goals.insert().values(
                    user_id=user_id, title=title, target_amount=target,
                    current_amount=ZERO, frequency=frequency,
                    start_date=start_date, end_date=end_date,
                    is_main_goal=is_main_goal,
                ).returning(*savings_goals.c)
            ).mappings().one()
            return dict(row)

    def update_goal(self, goal_id, title=None, target_amount=None, current_amount=None,
                    frequency=None, end_date=None, is_main_goal=None, is_completed=None):
        """Partial update. Completion stays one-way unless set explicitly."""
        values = {}
        if title is not None:
            values['title'] = title
        if target_amount is not None:
            values['target_amount'] = positive_money(target_amount, 'targetAmount')
        if current_amount is not None:
            values['current_amount'] = to_money(current_amount, 'currentAmount')
        if frequency is not None:
            if frequency not in GOAL_FREQUENCIES:
                raise ValidationError('Frequency must be "weekly" or "monthly"', field='frequency')
            values['frequency'] = frequency
        if end_date is not None:
            values['end_date'] = _to_datetime(end_date, 'endDate')
        if is_main_goal is not None:
            values['is_main_goal'] = _opt_bool(is_main_goal, 'isMainGoal')
        if is_completed is not None:
            values['is_completed'] = _opt_bool(is_completed, 'isCompleted')
        if not values:
            raise ValidationError("No fields to update")

        with self.transaction() as conn:
            # user row before goal row, the same order deposits lock in
            owner = self._owner_of(conn, savings_goals, goal_id)
            if owner is not None:
                self.lock_user(conn, owner)
            goal = conn.execute(
                sa.select(savings_goals).where(savings_goals.c.id == goal_id).with_for_update()
            ).mappings().fetchone()
            if goal is None:
                raise NotFoundError("Goal not found", goal_id=goal_id)

            if values.get('is_main_goal'):
                self._clear_main_goal(conn, goal['user_id'], keep_id=goal_id)

            if 'is_completed' not in values:
                current = values.get('current_amount', goal['current_amount'])
                target = values.get('target_amount', goal['target_amount'])
                if current >= target:
                    values['is_completed'] = True

            row = conn.execute(
                savings_goals.update().where(savings_goals.c.id == goal_id)
                .values(**values).returning(*savings_goals.c)
            ).mappings().one()
            return dict(row)

    def delete_goal(self, goal_id):
        with self.transaction() as conn:
            result = conn.execute(
                savings_goals.delete().where(savings_goals.c.id == goal_id)
            )
            if result.rowcount == 0:
                raise NotFoundError("Goal not found", goal_id=goal_id)

    # ─── Deposits ──────────────────────────────────────────────────────────

    def list_deposits(self, user_id, limit=50, goal_id=None):
        """Deposits newest first, joined with goal title and payment method type."""
        q = sa.select(
            deposits,
            savings_goals.c.title.label('goal_title'),
            payment_methods.c.type.label('payment_method_type'),
        ).select_from(
            deposits
            .outerjoin(savings_goals, deposits.c.goal_id == savings_goals.c.id)
            .outerjoin(payment_methods, deposits.c.payment_method_id == payment_methods.c.id)
        ).where(deposits.c.user_id == user_id)
        if goal_id is not None:
            q = q.where(deposits.c.goal_id == goal_id)
        q = q.order_by(deposits.c.deposit_date.desc(), deposits.c.id.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(q).mappings().fetchall()
            return [dict(r) for r in rows]

    # ─── Transactions ──────────────────────────────────────────────────────

    def list_transactions(self, user_id, limit=50, tx_type=None):
        q = sa.select(transactions).where(transactions.c.user_id == user_id)
        if tx_type is not None:
            if tx_type not in TRANSACTION_TYPES:
                raise ValidationError("Invalid transaction type", field='type')
            q = q.where(transactions.c.type == tx_type)
        q = q.order_by(transactions.c.created_at.desc(), transactions.c.id.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(q).mappings().fetchall()
            return [dict(r) for r in rows]

    def recent_transactions(self, user_id):
        return self.list_transactions(user_id, limit=10)

    # ─── Payment Methods ───────────────────────────────────────────────────

    def list_payment_methods(self, user_id, active_only=False):
        q = sa.select(payment_methods).where(payment_methods.c.user_id == user_id)
        if active_only:
            q = q.where(payment_methods.c.is_active == True)  # noqa: E712
        q = q.order_by(
            payment_methods.c.is_default.desc(),
            payment_methods.c.created_at.desc(),
            payment_methods.c.id.desc(),
        )
        with self.engine.connect() as conn:
            rows = conn.execute(q).mappings().fetchall()
            return [dict(r) for r in rows]

    def get_default_payment_method(self, user_id):
        with self.engine.connect() as conn:
            row = conn.execute(
                sa.select(payment_methods).where(
                    payment_methods.c.user_id == user_id,
                    payment_methods.c.is_default == True,  # noqa: E712
                    payment_methods.c.is_active == True,  # noqa: E712
                ).limit(1)
            ).mappings().fetchone()
        if row is None:
            raise NotFoundError("No default payment method found", user_id=user_id)
        return dict(row)

    def _clear_default_payment_method(self, conn, user_id, keep_id=None):
        stmt = payment_methods.update().where(
            payment_methods.c.user_id == user_id,
            payment_methods.c.is_default == True,  # noqa: E712
        )
        if keep_id is not None:
            stmt = stmt.where(payment_methods.c.id != keep_id)
        conn.execute(stmt.values(is_default=False))

    def create_payment_method(self, user_id, method_type, account_name=None,
                              account_number=None, wallet_address=None, is_default=False):
        if method_type not in PAYMENT_METHOD_TYPES:
            raise ValidationError("Invalid payment method type", field='type')
        if method_type == 'wallet' and not wallet_address:
            raise ValidationError("Wallet address is required for wallet type", field='walletAddress')
        if method_type != 'wallet' and not account_number:
            raise ValidationError("Account number is required", field='accountNumber')
        is_default = bool(_opt_bool(is_default, 'isDefault'))

        with self.transaction() as conn:
            self.lock_user(conn, user_id)
            if is_default:
                self._clear_default_payment_method(conn, user_id)
            row = conn.execute(
                payment_methods.insert().values(
                    user_id=user_id, type=method_type,
                    account_name=account_name or None,
                    account_number=account_number or None,
                    wallet_address=wallet_address or None,
                    is_default=is_default, is_active=True,
                ).returning(*payment_methods.c)
            ).mappings().one()
            return dict(row)

    def update_payment_method(self, payment_method_id, account_name=None, account_number=None,
                              wallet_address=None, is_default=None, is_active=None):
        values = {}
        if account_name is not None:
            values['account_name'] = account_name
        if account_number is not None:
            values['account_number'] = account_number
        if wallet_address is not None:
            values['wallet_address'] = wallet_address
        if is_default is not None:
            values['is_default'] = _opt_bool(is_default, 'isDefault')
        if is_active is not None:
            values['is_active'] = _opt_bool(is_active, 'isActive')
        if not values:
            raise ValidationError("No fields to update")

        with self.transaction() as conn:
            owner = self._owner_of(conn, payment_methods, payment_method_id)
            if owner is not None:
                self.lock_user(conn, owner)
            method = conn.execute(
                sa.select(payment_methods)
                .where(payment_methods.c.id == payment_method_id).with_for_update()
            ).mappings().fetchone()
            if method is None:
                raise NotFoundError("Payment method not found", payment_method_id=payment_method_id)
            if values.get('is_default'):
                self._clear_default_payment_method(conn, method['user_id'], keep_id=payment_method_id)
            row = conn.execute(
                payment_methods.update().where(payment_methods.c.id == payment_method_id)
                .values(**values).returning(*payment_methods.c)
            ).mappings().one()
            return dict(row)

    def delete_payment_method(self, payment_method_id, hard=False):
        """Soft delete (is_active = false) unless `hard` is set."""
        with self.transaction() as conn:
            if hard:
                stmt = payment_methods.delete().where(payment_methods.c.id == payment_method_id)
            else:
                stmt = payment_methods.update().where(
                    payment_methods.c.id == payment_method_id
                ).values(is_active=False)
            if conn.execute(stmt).rowcount == 0:
                raise NotFoundError("Payment method not found", payment_method_id=payment_method_id)
