#!/usr/bin/env python3
"""
Portfolio allocation across simulated yield pools.

A pool allocation is a *position*: repeated allocations to the same
(user, protocol, pool type) merge into one row whose amount grows and whose
APY tracks the latest quote. The per-deposit split itself is kept as an
immutable allocation_history entry.

Funds move between the user's spendable balance and their positions:
allocating debits total_balance, deallocating credits it back.
"""
import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Any, Callable

import sqlalchemy as sa

from stacksave.errors import ValidationError, NotFoundError, InsufficientBalanceError
from stacksave.models import (
    users, deposits, pool_allocations, allocation_history, ALLOCATION_MODES, POOL_TYPES,
)
from stacksave.money import positive_money, to_money, quantize, daily_yield, ZERO

logger = logging.getLogger("stacksave.portfolio")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AllocationRequest:
    """One leg of a deposit split."""
    pool_type: str
    protocol_id: str
    protocol_name: str
    amount: Decimal
    apy: Decimal
    percentage: Optional[Decimal] = None
    protocol_address: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AllocationRequest':
        if not isinstance(data, dict):
            raise ValidationError("Each allocation must be an object")
        pool_type = data.get('pool_type')
        if pool_type not in POOL_TYPES:
            raise ValidationError(f"Invalid pool type: {pool_type}", field='pool_type')
        protocol_id = data.get('protocol_id')
        protocol_name = data.get('protocol_name')
        if not protocol_id or not protocol_name:
            raise ValidationError("protocol_id and protocol_name are required")

        apy = to_money(data.get('apy'), 'apy')
        if apy < ZERO:
            raise ValidationError("Invalid apy: must not be negative", field='apy')
        percentage = data.get('percentage')

        return cls(
            pool_type=pool_type,
            protocol_id=str(protocol_id),
            protocol_name=str(protocol_name),
            amount=positive_money(data.get('amount'), 'amount'),
            apy=apy,
            percentage=to_money(percentage, 'percentage') if percentage is not None else None,
            protocol_address=data.get('protocol_address') or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # history is stored as JSON text; keep decimals exact
        for key in ('amount', 'apy', 'percentage'):
            if data[key] is not None:
                data[key] = str(data[key])
        return data


class PortfolioAllocator:
    """Allocate, accrue and release pool positions, one transaction per call."""

    def __init__(self, db, now: Callable[[], datetime] = _utcnow):
        self.db = db
        self.now = now

    # ─── Allocation ────────────────────────────────────────────────────────

    def allocate(
        self,
        user_id,
        allocations: List[Dict[str, Any]],
        user_mode: str,
        deposit_amount=None,
        deposit_id=None,
    ) -> List[Dict[str, Any]]:
        """
        Split funds across pools.

        Every leg is merged into its (protocol_id, pool_type) position:
        amount_allocated grows, current_apy takes the latest quote and
        daily_earnings is recomputed from the new total. One history row
        records the split as requested, stored as the validated legs:
        snake_case keys with amount, apy and percentage as exact decimal
        strings (see AllocationRequest.to_dict).

        Args:
            user_id: Owner of the positions
            allocations: Legs with pool_type, protocol_id, protocol_name,
                protocol_address (optional), amount, percentage, apy
            user_mode: 'lite', 'balanced' or 'pro'
            deposit_amount: Amount of the originating deposit (defaults to the
                sum of the legs)
            deposit_id: Originating deposit, if any

        Returns:
            The created/updated pool_allocations rows, in request order
        """
        if not isinstance(allocations, list) or not allocations:
            raise ValidationError("Allocations array is required", field='allocations')
        if user_mode not in ALLOCATION_MODES:
            raise ValidationError("Valid user mode is required", field='userMode')

        legs = [AllocationRequest.from_dict(a) for a in allocations]
        total = quantize(sum((leg.amount for leg in legs), ZERO))
        deposit_amount = positive_money(deposit_amount, 'depositAmount') if deposit_amount is not None else total
        now = self.now()

        with self.db.transaction() as conn:
            user = self.db.lock_user(conn, user_id)

            if deposit_id is not None:
                owned = conn.execute(
                    sa.select(deposits.c.id).where(
                        deposits.c.id == deposit_id, deposits.c.user_id == user_id,
                    )
                ).fetchone()
                if owned is None:
                    raise NotFoundError("Deposit not found", deposit_id=deposit_id)

            if user['total_balance'] < total:
                raise InsufficientBalanceError(
                    "Insufficient balance for allocation",
                    balance=str(user['total_balance']), requested=str(total),
                )
            conn.execute(
                users.update().where(users.c.id == user_id).values(
                    total_balance=users.c.total_balance - total,
                )
            )

            rows = [self._merge_position(conn, user_id, leg, now) for leg in legs]

            conn.execute(allocation_history.insert().values(
                user_id=user_id,
                deposit_id=deposit_id,
                deposit_amount=deposit_amount,
                allocations_json=json.dumps([leg.to_dict() for leg in legs]),
                user_mode=user_mode,
            ))

        logger.info(f"[Portfolio] User {user_id} allocated {total} across {len(legs)} pool(s) ({user_mode})")
        return rows

    def _merge_position(self, conn, user_id, leg: AllocationRequest, now: datetime) -> Dict[str, Any]:
        existing = conn.execute(
            sa.select(pool_allocations).where(
                pool_allocations.c.user_id == user_id,
                pool_allocations.c.protocol_id == leg.protocol_id,
                pool_allocations.c.pool_type == leg.pool_type,
            ).with_for_update()
        ).mappings().fetchone()

        if existing is None:
            stmt = pool_allocations.insert().values(
                user_id=user_id,
                pool_type=leg.pool_type,
                protocol_id=leg.protocol_id,
                protocol_name=leg.protocol_name,
                protocol_address=leg.protocol_address,
                amount_allocated=leg.amount,
                current_apy=leg.apy,
                daily_earnings=daily_yield(leg.amount, leg.apy),
                allocated_at=now,
                last_updated=now,
            )
        else:
            new_total = quantize(existing['amount_allocated'] + leg.amount)
            stmt = pool_allocations.update().where(
                pool_allocations.c.id == existing['id']
            ).values(
                amount_allocated=new_total,
                current_apy=leg.apy,
                daily_earnings=daily_yield(new_total, leg.apy),
                last_updated=now,
            )
        return dict(conn.execute(stmt.returning(*pool_allocations.c)).mappings().one())

    # ─── Earnings Accrual ──────────────────────────────────────────────────

    def update_earnings(self, user_id) -> Dict[str, Any]:
        """Accrue one day of yield on every position of a user.

        All positions and the user's lifetime earnings move together or not
        at all.
        """
        now = self.now()
        total_new = ZERO

        with self.db.transaction() as conn:
            self.db.lock_user(conn, user_id)
            positions = conn.execute(
                sa.select(pool_allocations).where(
                    pool_allocations.c.user_id == user_id
                ).order_by(pool_allocations.c.id).with_for_update()
            ).mappings().fetchall()

            for pos in positions:
                daily = daily_yield(pos['amount_allocated'], pos['current_apy'])
                total_new += daily
                conn.execute(
                    pool_allocations.update().where(pool_allocations.c.id == pos['id']).values(
                        total_earnings=pool_allocations.c.total_earnings + daily,
                        daily_earnings=daily,
                        last_updated=now,
                    )
                )

            conn.execute(
                users.update().where(users.c.id == user_id).values(
                    total_earnings=users.c.total_earnings + total_new,
                )
            )

        logger.info(f"[Portfolio] User {user_id} accrued {total_new} across {len(positions)} position(s)")
        return {
            'total_new_earnings': quantize(total_new),
            'updated_allocations': len(positions),
        }

    def update_all_earnings(self) -> Dict[str, Any]:
        """Accrual pass over every user holding a position.

        Each user is its own transaction; one user's failure is logged and the
        pass moves on.
        """
        with self.db.engine.connect() as conn:
            user_ids = conn.execute(
                sa.select(pool_allocations.c.user_id).distinct().order_by(pool_allocations.c.user_id)
            ).scalars().all()

        processed, failed = 0, []
        total = ZERO
        for user_id in user_ids:
            try:
                result = self.update_earnings(user_id)
            except Exception as e:
                logger.error(f"[Portfolio] Earnings update failed for user {user_id}: {e}")
                failed.append(user_id)
                continue
            processed += 1
            total += result['total_new_earnings']

        return {'users_processed': processed, 'users_failed': failed, 'total_new_earnings': quantize(total)}

    # ─── Deallocation ──────────────────────────────────────────────────────

    def deallocate(self, user_id, allocation_id) -> Dict[str, Any]:
        """Close a position and return its principal to the user's balance."""
        with self.db.transaction() as conn:
            self.db.lock_user(conn, user_id)
            position = conn.execute(
                sa.select(pool_allocations).where(
                    pool_allocations.c.id == allocation_id,
                    pool_allocations.c.user_id == user_id,
                ).with_for_update()
            ).mappings().fetchone()
            if position is None:
                raise NotFoundError("Allocation not found", allocation_id=allocation_id)

            amount = position['amount_allocated']
            conn.execute(pool_allocations.delete().where(pool_allocations.c.id == allocation_id))
            conn.execute(
                users.update().where(users.c.id == user_id).values(
                    total_balance=users.c.total_balance + amount,
                )
            )

        logger.info(f"[Portfolio] User {user_id} withdrew {amount} from {position['protocol_name']}")
        return {
            'withdrawn_amount': amount,
            'pool_type': position['pool_type'],
            'protocol_name': position['protocol_name'],
            'message': 'Allocation removed successfully',
        }

    # ─── Read Side ─────────────────────────────────────────────────────────

    def get_allocations(self, user_id, pool_type: Optional[str] = None) -> List[Dict[str, Any]]:
        q = sa.select(pool_allocations).where(pool_allocations.c.user_id == user_id)
        if pool_type is not None:
            if pool_type not in POOL_TYPES:
                raise ValidationError(f"Invalid pool type: {pool_type}", field='poolType')
            q = q.where(pool_allocations.c.pool_type == pool_type)
        q = q.order_by(pool_allocations.c.amount_allocated.desc(), pool_allocations.c.id)
        with self.db.engine.connect() as conn:
            rows = conn.execute(q).mappings().fetchall()
            return [dict(r) for r in rows]

    def get_portfolio(self, user_id) -> Dict[str, Any]:
        """Positions plus aggregate performance."""
        allocations = self.get_allocations(user_id)

        total_value = sum((a['amount_allocated'] for a in allocations), ZERO)
        total_earnings = sum((a['total_earnings'] for a in allocations), ZERO)
        daily_change = sum((a['daily_earnings'] for a in allocations), ZERO)
        if total_value > 0:
            average_apy = sum(a['amount_allocated'] * a['current_apy'] for a in allocations) / total_value
            daily_change_pct = daily_change / total_value * 100
        else:
            average_apy = daily_change_pct = ZERO

        return {
            'allocations': allocations,
            'performance': {
                'total_value': quantize(total_value),
                'total_earnings': quantize(total_earnings),
                'average_apy': quantize(average_apy),
                'daily_change': quantize(daily_change),
                'daily_change_percentage': quantize(daily_change_pct),
                'weekly_change': quantize(daily_change * 7),
                'monthly_change': quantize(daily_change * 30),
            },
        }

    def get_allocations_by_type(self, user_id, pool_type: str) -> Dict[str, Any]:
        allocations = self.get_allocations(user_id, pool_type)
        return {
            'pool_type': pool_type,
            'allocations': allocations,
            'total_amount': quantize(sum((a['amount_allocated'] for a in allocations), ZERO)),
        }

    def get_allocation_history(self, user_id, limit: int = 20) -> List[Dict[str, Any]]:
        q = sa.select(allocation_history).where(
            allocation_history.c.user_id == user_id
        ).order_by(allocation_history.c.created_at.desc(), allocation_history.c.id.desc()).limit(limit)
        with self.db.engine.connect() as conn:
            rows = conn.execute(q).mappings().fetchall()

        history = []
        for r in rows:
            entry = dict(r)
            entry['allocations'] = json.loads(entry.pop('allocations_json') or '[]')
            history.append(entry)
        return history
