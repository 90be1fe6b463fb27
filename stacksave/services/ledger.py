#!/usr/bin/env python3
"""
Ledger coordinator.

One financial event (deposit, withdrawal, earnings posting) fans out into
several denormalised aggregates: the user's balance, goal progress, the
streak, today's growth row and the transaction ledger. Each event runs in a
single store transaction with the user row locked first, so concurrent
events for the same user are serialised and a failure at any step rolls
back every write made before it.
"""
import logging
from datetime import date, datetime, timezone
from typing import Optional, Dict, Any, Callable

import sqlalchemy as sa

from stacksave.config import GROWTH_BASELINE
from stacksave.errors import (
    ValidationError, NotFoundError, InsufficientBalanceError,
)
from stacksave.models import (
    users, savings_goals, payment_methods, deposits, transactions, STATUSES,
)
from stacksave.money import positive_money
from stacksave.services.streaks import StreakState, compute_streak_view, advance_streak

logger = logging.getLogger("stacksave.ledger")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerCoordinator:
    """Atomic multi-table updates for deposits, withdrawals and earnings."""

    def __init__(
        self,
        db,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = _utcnow,
        growth_baseline: float = GROWTH_BASELINE,
    ):
        self.db = db
        self.today = today
        self.now = now
        self.growth_baseline = growth_baseline

    # ─── Deposits ──────────────────────────────────────────────────────────

    def record_deposit(
        self,
        user_id,
        amount,
        goal_id=None,
        payment_method_id=None,
        transaction_hash: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Record a confirmed deposit and everything it implies.

        Steps (single transaction):
            1. insert the deposit row (status confirmed)
            2. top up the goal and mark it completed once it reaches target
            3. credit the user's balance
            4. advance the streak if today is a new deposit day
            5. flag today's growth row as having a deposit
            6. append a ledger transaction

        Raises:
            ValidationError: amount is not positive
            NotFoundError: user, goal or payment method does not exist
        """
        amount = positive_money(amount)
        today = self.today()

        with self.db.transaction() as conn:
            self.db.lock_user(conn, user_id)

            goal = None
            if goal_id is not None:
                goal = conn.execute(
                    sa.select(savings_goals).where(
                        savings_goals.c.id == goal_id,
                        savings_goals.c.user_id == user_id,
                    ).with_for_update()
                ).mappings().fetchone()
                if goal is None:
                    raise NotFoundError("Goal not found", goal_id=goal_id)

            if payment_method_id is not None:
                method = conn.execute(
                    sa.select(payment_methods.c.id).where(
                        payment_methods.c.id == payment_method_id,
                        payment_methods.c.user_id == user_id,
                        payment_methods.c.is_active == True,  # noqa: E712
                    )
                ).fetchone()
                if method is None:
                    raise NotFoundError("Payment method not found", payment_method_id=payment_method_id)

            deposit = conn.execute(
                deposits.insert().values(
                    user_id=user_id, goal_id=goal_id, amount=amount,
                    payment_method_id=payment_method_id,
                    transaction_hash=transaction_hash,
                    status='confirmed', deposit_date=self.now(),
                ).returning(*deposits.c)
            ).mappings().one()

            goal_completed = False
            if goal is not None:
                new_amount = goal['current_amount'] + amount
                goal_completed = goal['is_completed'] or new_amount >= goal['target_amount']
                conn.execute(
                    savings_goals.update().where(savings_goals.c.id == goal_id).values(
                        current_amount=savings_goals.c.current_amount + amount,
                        is_completed=goal_completed,
                    )
                )

            conn.execute(
                users.update().where(users.c.id == user_id).values(
                    total_balance=users.c.total_balance + amount,
                )
            )

            streak = self._advance_streak(conn, user_id, today)

            self.db.mark_deposit_day(conn, user_id, today)

            description = f"Deposit to {goal['title']}" if goal is not None else "Deposit"
            conn.execute(transactions.insert().values(
                user_id=user_id, type='deposit', amount=amount,
                description=description, transaction_hash=transaction_hash,
                status='confirmed',
            ))

        logger.info(
            f"[Ledger] Deposit {deposit['id']}: user={user_id} amount={amount}"
            f"{f' goal={goal_id}' if goal_id is not None else ''} streak={streak.current_streak}"
        )
        result = dict(deposit)
        result.update({
            'goal_completed': goal_completed,
            'streak': streak.to_dict(),
            'message': 'Deposit successful',
        })
        return result

    def _advance_streak(self, conn, user_id, today: date) -> StreakState:
        """Streak step for a deposit; writes only when the state changed."""
        row = self.db.get_streak_row(conn, user_id)
        if row is None:
            row = self.db.insert_streak_row(conn, user_id)

        stored = StreakState.from_row(row)
        view = compute_streak_view(stored, today)
        advanced = advance_streak(view, today)
        if advanced is not None:
            self.db.save_streak_row(conn, user_id, advanced)
            return advanced
        if view != stored:
            self.db.save_streak_row(conn, user_id, view)
        return view

    # ─── Withdrawals ───────────────────────────────────────────────────────

    def record_withdrawal(
        self,
        user_id,
        amount,
        description: Optional[str] = None,
        transaction_hash: Optional[str] = None,
        withdrawal_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Debit the user's balance and append a withdrawal to the ledger.

        The balance is read from the locked user row and the decrement is
        guarded by `total_balance >= amount`, so two concurrent withdrawals can
        never both spend the same funds.
        """
        amount = positive_money(amount)

        with self.db.transaction() as conn:
            user = self.db.lock_user(conn, user_id)
            if user['total_balance'] < amount:
                raise InsufficientBalanceError(
                    "Insufficient balance",
                    balance=str(user['total_balance']), requested=str(amount),
                )

            tx = conn.execute(
                transactions.insert().values(
                    user_id=user_id, type='withdrawal', amount=amount,
                    description=description or f"Withdrawal to {withdrawal_address or 'external wallet'}",
                    transaction_hash=transaction_hash, status='confirmed',
                ).returning(*transactions.c)
            ).mappings().one()

            debited = conn.execute(
                users.update().where(
                    users.c.id == user_id,
                    users.c.total_balance >= amount,
                ).values(total_balance=users.c.total_balance - amount)
            )
            if debited.rowcount != 1:
                raise InsufficientBalanceError("Insufficient balance", requested=str(amount))

        logger.info(f"[Ledger] Withdrawal {tx['id']}: user={user_id} amount={amount}")
        result = dict(tx)
        result['message'] = 'Withdrawal successful'
        return result

    # ─── Earnings ──────────────────────────────────────────────────────────

    def record_earnings(self, user_id, amount, description: Optional[str] = None) -> Dict[str, Any]:
        """Post yield earnings: ledger row, balance + lifetime earnings, today's growth."""
        amount = positive_money(amount)
        today = self.today()

        with self.db.transaction() as conn:
            self.db.lock_user(conn, user_id)

            tx = conn.execute(
                transactions.insert().values(
                    user_id=user_id, type='earnings', amount=amount,
                    description=description or 'Daily yield earnings',
                    status='confirmed',
                ).returning(*transactions.c)
            ).mappings().one()

            conn.execute(
                users.update().where(users.c.id == user_id).values(
                    total_balance=users.c.total_balance + amount,
                    total_earnings=users.c.total_earnings + amount,
                )
            )

            self.db.add_day_earnings(conn, user_id, today, amount, self.growth_baseline)

        logger.info(f"[Ledger] Earnings {tx['id']}: user={user_id} amount={amount}")
        result = dict(tx)
        result['message'] = 'Earnings recorded successfully'
        return result

    # ─── Status Transitions ────────────────────────────────────────────────
    # Status is informational after the fact: a later 'failed' does not
    # reverse the balance, goal or streak effects of the original event.

    def update_deposit_status(self, deposit_id, status: str) -> Dict[str, Any]:
        return self._update_status(deposits, deposit_id, status, "Deposit")

    def update_transaction_status(self, transaction_id, status: str) -> Dict[str, Any]:
        return self._update_status(transactions, transaction_id, status, "Transaction")

    def _update_status(self, table, row_id, status, label):
        if status not in STATUSES:
            raise ValidationError("Invalid status", field='status')
        with self.db.transaction() as conn:
            row = conn.execute(
                table.update().where(table.c.id == row_id)
                .values(status=status).returning(table.c.id, table.c.status)
            ).mappings().fetchone()
            if row is None:
                raise NotFoundError(f"{label} not found", id=row_id)
        logger.info(f"[Ledger] {label} {row_id} -> {status}")
        return dict(row)
