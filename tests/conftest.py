"""
Pytest fixtures for StackSave tests. Every test gets its own temporary SQLite
database, a fixed clock and deterministic APY / chain collaborators.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from stacksave.database import LedgerDB
from stacksave.db_engine import create_engine
from stacksave.services.apy import APYCache
from stacksave.services.ledger import LedgerCoordinator
from stacksave.services.portfolio import PortfolioAllocator
from stacksave.services.streaks import StreakService

WALLET = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"


class FixedClock:
    """Calendar clock a test can move forward."""

    def __init__(self, today):
        self.current = today

    def today(self):
        return self.current

    def advance(self, days=1):
        self.current += timedelta(days=days)


@pytest.fixture
def clock():
    return FixedClock(date(2025, 3, 10))


@pytest.fixture
def db(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'stacksave.db'}")
    ledger_db = LedgerDB(engine=engine)
    ledger_db.create_all()
    yield ledger_db
    engine.dispose()


@pytest.fixture
def user(db):
    created, _ = db.connect_wallet(WALLET)
    return created


@pytest.fixture
def ledger(db, clock):
    return LedgerCoordinator(db, today=clock.today, growth_baseline=1000)


@pytest.fixture
def streak_service(db, clock):
    return StreakService(db, today=clock.today)


@pytest.fixture
def allocator(db):
    return PortfolioAllocator(db)


@pytest.fixture
def apy_cache():
    return APYCache(
        {'aave-v3': lambda: 4.25, 'curve-3pool': lambda: 3.5},
        ttl_seconds=600,
        fallback_apy=5.0,
    )


class FakeChain:
    """Stands in for ChainReader in route tests."""

    def __init__(self):
        self.calls = []

    def get_user_goals(self, address):
        self.calls.append(('goals', address))
        return []

    def get_user_balance(self, address):
        return Decimal('12.5')

    def get_total_balance(self, address):
        return Decimal('13')

    def get_pending_interest(self, address):
        return Decimal('0.5')

    def get_transaction_receipt(self, tx_hash):
        return None

    def contract_info(self):
        return {'network': 'base-sepolia', 'chain_id': '84532'}


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def app(db, apy_cache, chain, clock):
    from stacksave.extensions import create_app

    flask_app = create_app(db=db, apy_cache=apy_cache, chain=chain, today=clock.today)
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()
