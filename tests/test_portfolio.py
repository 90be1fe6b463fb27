"""
Pytest tests for the portfolio allocator: position merging, history,
earnings accrual and deallocation.
"""
from decimal import Decimal

import pytest

from stacksave.errors import InsufficientBalanceError, NotFoundError, ValidationError


def _leg(amount, apy='5', protocol_id='aave-v3', pool_type='lending', **extra):
    leg = {
        'pool_type': pool_type,
        'protocol_id': protocol_id,
        'protocol_name': extra.pop('protocol_name', 'Aave V3'),
        'amount': amount,
        'apy': apy,
        'percentage': extra.pop('percentage', 100),
    }
    leg.update(extra)
    return leg


@pytest.fixture
def funded_user(db, user, ledger):
    ledger.record_deposit(user['id'], 1000)
    return user


def test_allocate_creates_positions_and_history(db, funded_user, allocator):
    rows = allocator.allocate(funded_user['id'], [
        _leg('600', apy='3.65', percentage=60),
        _leg('400', apy='7.3', protocol_id='curve-3pool', pool_type='stablecoin',
             protocol_name='Curve 3pool', percentage=40),
    ], 'balanced')

    assert [r['protocol_id'] for r in rows] == ['aave-v3', 'curve-3pool']
    # 600 * 3.65 / 365 / 100
    assert rows[0]['daily_earnings'] == Decimal('0.06')
    assert rows[1]['daily_earnings'] == Decimal('0.08')
    assert db.get_user(funded_user['id'])['total_balance'] == Decimal('0')

    history = allocator.get_allocation_history(funded_user['id'])
    assert len(history) == 1
    assert history[0]['deposit_amount'] == Decimal('1000')
    assert history[0]['user_mode'] == 'balanced'
    assert [a['amount'] for a in history[0]['allocations']] == ['600.000000', '400.000000']
    assert history[0]['allocations'][1] == {
        'pool_type': 'stablecoin', 'protocol_id': 'curve-3pool', 'protocol_name': 'Curve 3pool',
        'amount': '400.000000', 'apy': '7.300000', 'percentage': '40.000000', 'protocol_address': None,
    }


def test_repeat_allocation_merges_position(db, funded_user, allocator):
    """Same protocol and pool type: amount adds up, APY takes the latest quote."""
    allocator.allocate(funded_user['id'], [_leg(100, apy='5')], 'lite')
    rows = allocator.allocate(funded_user['id'], [_leg(265, apy='10')], 'lite')

    assert rows[0]['amount_allocated'] == Decimal('365')
    assert rows[0]['current_apy'] == Decimal('10')
    # 365 * 10 / 365 / 100
    assert rows[0]['daily_earnings'] == Decimal('0.1')
    assert len(allocator.get_allocations(funded_user['id'])) == 1
    assert len(allocator.get_allocation_history(funded_user['id'])) == 2


def test_allocate_records_originating_deposit(db, funded_user, allocator):
    deposit = db.list_deposits(funded_user['id'])[0]
    allocator.allocate(funded_user['id'], [_leg(100)], 'pro',
                       deposit_amount=1000, deposit_id=deposit['id'])
    entry = allocator.get_allocation_history(funded_user['id'])[0]
    assert entry['deposit_id'] == deposit['id']
    assert entry['deposit_amount'] == Decimal('1000')


@pytest.mark.parametrize('allocations, mode', [
    ([], 'lite'),
    ([_leg(10)], 'turbo'),
    ([_leg(10, pool_type='casino')], 'lite'),
    ([_leg(0)], 'lite'),
    ([_leg(10, apy='-1')], 'lite'),
    ([_leg(10, protocol_name='')], 'lite'),
])
def test_allocate_validation(db, funded_user, allocator, allocations, mode):
    with pytest.raises(ValidationError):
        allocator.allocate(funded_user['id'], allocations, mode)
    assert allocator.get_allocations(funded_user['id']) == []


def test_allocate_beyond_balance(db, funded_user, allocator):
    with pytest.raises(InsufficientBalanceError):
        allocator.allocate(funded_user['id'], [_leg(600), _leg(600, protocol_id='compound-v3')], 'pro')
    assert allocator.get_allocations(funded_user['id']) == []
    assert db.get_user(funded_user['id'])['total_balance'] == Decimal('1000')


def test_allocate_with_foreign_deposit(db, funded_user, allocator, ledger):
    other, _ = db.connect_wallet('0x00000000000000000000000000000000000000aa')
    foreign = ledger.record_deposit(other['id'], 5)
    with pytest.raises(NotFoundError):
        allocator.allocate(funded_user['id'], [_leg(10)], 'lite', deposit_id=foreign['id'])


def test_update_earnings_accrues_one_day(db, funded_user, allocator):
    allocator.allocate(funded_user['id'], [_leg(365, apy='10')], 'lite')
    allocator.allocate(funded_user['id'], [
        _leg(365, apy='20', protocol_id='lido', pool_type='staking', protocol_name='Lido'),
    ], 'lite')

    result = allocator.update_earnings(funded_user['id'])
    # 0.1 + 0.2
    assert result == {'total_new_earnings': Decimal('0.3'), 'updated_allocations': 2}

    allocator.update_earnings(funded_user['id'])
    positions = {p['protocol_id']: p for p in allocator.get_allocations(funded_user['id'])}
    assert positions['aave-v3']['total_earnings'] == Decimal('0.2')
    assert positions['lido']['total_earnings'] == Decimal('0.4')
    assert db.get_user(funded_user['id'])['total_earnings'] == Decimal('0.6')


def test_update_earnings_without_positions(funded_user, allocator):
    assert allocator.update_earnings(funded_user['id']) == {
        'total_new_earnings': Decimal('0'), 'updated_allocations': 0,
    }


def test_deallocate_returns_principal(db, funded_user, allocator):
    rows = allocator.allocate(funded_user['id'], [_leg(250)], 'lite')
    result = allocator.deallocate(funded_user['id'], rows[0]['id'])

    assert result['withdrawn_amount'] == Decimal('250')
    assert result['protocol_name'] == 'Aave V3'
    assert allocator.get_allocations(funded_user['id']) == []
    assert db.get_user(funded_user['id'])['total_balance'] == Decimal('1000')


def test_deallocate_someone_elses_position(db, funded_user, allocator):
    rows = allocator.allocate(funded_user['id'], [_leg(250)], 'lite')
    other, _ = db.connect_wallet('0x00000000000000000000000000000000000000bb')
    with pytest.raises(NotFoundError):
        allocator.deallocate(other['id'], rows[0]['id'])
    assert len(allocator.get_allocations(funded_user['id'])) == 1


def test_portfolio_performance(funded_user, allocator):
    allocator.allocate(funded_user['id'], [
        _leg(300, apy='10'),
        _leg(100, apy='2', protocol_id='curve-3pool', pool_type='stablecoin', protocol_name='Curve'),
    ], 'balanced')

    portfolio = allocator.get_portfolio(funded_user['id'])
    perf = portfolio['performance']
    assert perf['total_value'] == Decimal('400')
    # (300 * 10 + 100 * 2) / 400
    assert perf['average_apy'] == Decimal('8')
    assert perf['weekly_change'] == perf['daily_change'] * 7
    assert [a['protocol_id'] for a in portfolio['allocations']] == ['aave-v3', 'curve-3pool']


def test_empty_portfolio(funded_user, allocator):
    perf = allocator.get_portfolio(funded_user['id'])['performance']
    assert perf['total_value'] == 0
    assert perf['average_apy'] == 0


def test_allocations_by_type(funded_user, allocator):
    allocator.allocate(funded_user['id'], [
        _leg(100), _leg(50, protocol_id='compound-v3', protocol_name='Compound V3'),
        _leg(25, protocol_id='yearn', pool_type='yield_aggregator', protocol_name='Yearn'),
    ], 'pro')
    lending = allocator.get_allocations_by_type(funded_user['id'], 'lending')
    assert lending['total_amount'] == Decimal('150')
    assert len(lending['allocations']) == 2


def test_update_all_earnings_continues_past_failures(db, funded_user, allocator, ledger, monkeypatch):
    other, _ = db.connect_wallet('0x00000000000000000000000000000000000000cc')
    ledger.record_deposit(other['id'], 365)
    allocator.allocate(funded_user['id'], [_leg(365, apy='10')], 'lite')
    allocator.allocate(other['id'], [_leg(365, apy='10')], 'lite')

    original = allocator.update_earnings

    def flaky(user_id):
        if user_id == funded_user['id']:
            raise RuntimeError("boom")
        return original(user_id)

    monkeypatch.setattr(allocator, 'update_earnings', flaky)
    result = allocator.update_all_earnings()

    assert result['users_processed'] == 1
    assert result['users_failed'] == [funded_user['id']]
    assert db.get_user(other['id'])['total_earnings'] == Decimal('0.1')
