"""
Pytest tests for the ledger coordinator: deposits, withdrawals, earnings and
the all-or-nothing guarantee across balance, goal, streak, growth and ledger.
"""
import threading
from datetime import timedelta
from decimal import Decimal

import pytest
import sqlalchemy as sa

from stacksave.errors import InsufficientBalanceError, NotFoundError, ValidationError
from stacksave.models import daily_growth, deposits, streaks, transactions


def _goal(db, user_id, target='100', **kwargs):
    return db.create_goal(
        user_id, title=kwargs.pop('title', 'Laptop'), target_amount=target, frequency='weekly',
        start_date='2025-03-01T00:00:00Z', end_date='2025-12-31T00:00:00Z', **kwargs,
    )


def _count(db, table, **where):
    with db.engine.connect() as conn:
        q = sa.select(sa.func.count()).select_from(table)
        for col, value in where.items():
            q = q.where(table.c[col] == value)
        return conn.execute(q).scalar_one()


def _streak(db, user_id):
    with db.engine.connect() as conn:
        return conn.execute(streaks.select().where(streaks.c.user_id == user_id)).mappings().one()


# --- Deposits ---


def test_deposit_fans_out_to_every_aggregate(db, user, ledger, clock):
    """One deposit: deposit row, goal progress, balance, streak, growth flag, ledger row."""
    goal = _goal(db, user['id'])

    result = ledger.record_deposit(user['id'], '25.5', goal_id=goal['id'], transaction_hash='0xabc')

    assert result['status'] == 'confirmed'
    assert result['amount'] == Decimal('25.5')
    assert result['streak']['current_streak'] == 1
    assert result['goal_completed'] is False

    assert db.get_user(user['id'])['total_balance'] == Decimal('25.5')
    assert db.list_goals(user['id'])[0]['current_amount'] == Decimal('25.5')

    growth = db.get_growth(user['id'])
    assert len(growth) == 1
    assert growth[0]['date'] == clock.today()
    assert growth[0]['has_deposit'] is True

    txs = db.list_transactions(user['id'])
    assert [(t['type'], t['description'], t['status']) for t in txs] == [
        ('deposit', 'Deposit to Laptop', 'confirmed'),
    ]


def test_deposit_without_goal(db, user, ledger):
    result = ledger.record_deposit(user['id'], 10)
    assert result['goal_id'] is None
    assert db.list_transactions(user['id'])[0]['description'] == 'Deposit'


def test_deposit_completes_goal_one_way(db, user, ledger):
    """Reaching the target marks the goal completed; it never flips back."""
    goal = _goal(db, user['id'], target='50')
    assert ledger.record_deposit(user['id'], 50, goal_id=goal['id'])['goal_completed'] is True

    db.update_goal(goal['id'], target_amount='500')
    stored = db.list_goals(user['id'])[0]
    assert stored['is_completed'] is True
    assert ledger.record_deposit(user['id'], 1, goal_id=goal['id'])['goal_completed'] is True


def test_same_day_deposits_count_streak_once(db, user, ledger, clock):
    ledger.record_deposit(user['id'], 5)
    ledger.record_deposit(user['id'], 5)
    row = _streak(db, user['id'])
    assert row['current_streak'] == 1
    assert row['total_deposits'] == 1

    clock.advance()
    ledger.record_deposit(user['id'], 5)
    row = _streak(db, user['id'])
    assert row['current_streak'] == 2
    assert row['total_deposits'] == 2


def test_deposit_after_gap_restarts_streak(db, user, ledger, clock):
    for _ in range(3):
        ledger.record_deposit(user['id'], 1)
        clock.advance()
    clock.advance(2)

    result = ledger.record_deposit(user['id'], 1)
    assert result['streak']['current_streak'] == 1
    assert result['streak']['longest_streak'] == 3


@pytest.mark.parametrize('amount', [0, -5, 'abc', None, True, 'NaN', 1e30, 1e13, '1000000000000'])
def test_deposit_rejects_bad_amount(db, user, ledger, amount):
    with pytest.raises(ValidationError):
        ledger.record_deposit(user['id'], amount)
    assert _count(db, deposits) == 0


def test_deposit_unknown_user(db, ledger):
    with pytest.raises(NotFoundError):
        ledger.record_deposit(42, 10)
    assert _count(db, deposits) == 0


def test_deposit_into_foreign_goal_rolls_back(db, user, ledger):
    """A goal owned by someone else is not found and nothing is written."""
    other, _ = db.connect_wallet('0x0000000000000000000000000000000000000bad')
    goal = _goal(db, other['id'])

    with pytest.raises(NotFoundError):
        ledger.record_deposit(user['id'], 10, goal_id=goal['id'])

    assert db.get_user(user['id'])['total_balance'] == Decimal('0')
    assert _count(db, deposits) == 0
    assert _count(db, transactions) == 0
    assert _count(db, daily_growth) == 0
    assert _streak(db, user['id'])['total_deposits'] == 0


def test_deposit_with_inactive_payment_method(db, user, ledger):
    method = db.create_payment_method(user['id'], 'bank', account_number='1234')
    db.delete_payment_method(method['id'])
    with pytest.raises(NotFoundError):
        ledger.record_deposit(user['id'], 10, payment_method_id=method['id'])


def test_failure_midway_rolls_back_everything(db, user, ledger, monkeypatch):
    """An error after the balance credit leaves no partial writes behind."""
    goal = _goal(db, user['id'])

    def boom(conn, user_id, day):
        raise RuntimeError("disk full")

    monkeypatch.setattr(db, 'mark_deposit_day', boom)
    with pytest.raises(RuntimeError):
        ledger.record_deposit(user['id'], 30, goal_id=goal['id'])

    assert db.get_user(user['id'])['total_balance'] == Decimal('0')
    assert db.list_goals(user['id'])[0]['current_amount'] == Decimal('0')
    assert _count(db, deposits) == 0
    assert _streak(db, user['id'])['current_streak'] == 0


# --- Withdrawals ---


def test_withdrawal_debits_balance(db, user, ledger):
    ledger.record_deposit(user['id'], 100)
    result = ledger.record_withdrawal(user['id'], '40.25', withdrawal_address='0xdead')

    assert result['type'] == 'withdrawal'
    assert result['description'] == 'Withdrawal to 0xdead'
    assert db.get_user(user['id'])['total_balance'] == Decimal('59.75')


def test_withdrawal_default_description(db, user, ledger):
    ledger.record_deposit(user['id'], 10)
    assert ledger.record_withdrawal(user['id'], 1)['description'] == 'Withdrawal to external wallet'


def test_withdrawal_of_exact_balance(db, user, ledger):
    ledger.record_deposit(user['id'], 10)
    ledger.record_withdrawal(user['id'], 10)
    assert db.get_user(user['id'])['total_balance'] == Decimal('0')


def test_overdraw_is_rejected(db, user, ledger):
    ledger.record_deposit(user['id'], 10)
    with pytest.raises(InsufficientBalanceError):
        ledger.record_withdrawal(user['id'], '10.000001')
    assert db.get_user(user['id'])['total_balance'] == Decimal('10')
    assert _count(db, transactions, type='withdrawal') == 0


def test_concurrent_withdrawals_never_overdraw(db, user, ledger):
    """N withdrawals of the full balance: exactly one succeeds."""
    ledger.record_deposit(user['id'], 50)

    outcomes = []
    lock = threading.Lock()
    start = threading.Barrier(6)

    def withdraw():
        start.wait()
        try:
            ledger.record_withdrawal(user['id'], 50)
            result = 'ok'
        except InsufficientBalanceError:
            result = 'insufficient'
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=withdraw) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count('ok') == 1
    assert outcomes.count('insufficient') == 5
    assert db.get_user(user['id'])['total_balance'] == Decimal('0')
    assert _count(db, transactions, type='withdrawal') == 1


# --- Earnings ---


def test_earnings_update_balance_and_growth(db, user, ledger):
    ledger.record_earnings(user['id'], 2)
    result = ledger.record_earnings(user['id'], 3, description='Aave yield')

    assert result['description'] == 'Aave yield'
    stored = db.get_user(user['id'])
    assert stored['total_balance'] == Decimal('5')
    assert stored['total_earnings'] == Decimal('5')

    growth = db.get_growth(user['id'])[0]
    assert growth['earnings'] == Decimal('5')
    # 5 / 1000 * 100
    assert growth['growth_percentage'] == Decimal('0.5')


def test_large_earnings_fit_growth_column(db, user, ledger):
    """Growth is stored with the same width as the earnings it derives from."""
    ledger.record_earnings(user['id'], 200000)
    growth = db.get_growth(user['id'])[0]
    assert growth['growth_percentage'] == Decimal('20000')

    column = daily_growth.c.growth_percentage.type
    assert (column.precision, column.scale) == (18, 6)


def test_earnings_and_deposit_share_growth_row(db, user, ledger):
    ledger.record_deposit(user['id'], 10)
    ledger.record_earnings(user['id'], 1)
    growth = db.get_growth(user['id'])
    assert len(growth) == 1
    assert growth[0]['has_deposit'] is True
    assert growth[0]['earnings'] == Decimal('1')


def test_growth_history_is_oldest_first(db, user, ledger, clock):
    for _ in range(3):
        ledger.record_earnings(user['id'], 1)
        clock.advance()
    days = [g['date'] for g in db.get_growth(user['id'])]
    assert days == sorted(days)
    assert days[-1] == clock.today() - timedelta(days=1)


# --- Status transitions ---


def test_status_update_has_no_financial_effect(db, user, ledger):
    deposit = ledger.record_deposit(user['id'], 20)
    updated = ledger.update_deposit_status(deposit['id'], 'failed')
    assert updated['status'] == 'failed'
    assert db.get_user(user['id'])['total_balance'] == Decimal('20')


def test_status_update_validation(user, ledger):
    tx = ledger.record_earnings(user['id'], 1)
    with pytest.raises(ValidationError):
        ledger.update_transaction_status(tx['id'], 'reversed')
    with pytest.raises(NotFoundError):
        ledger.update_transaction_status(9999, 'failed')
    assert ledger.update_transaction_status(tx['id'], 'pending')['status'] == 'pending'
