"""
Shared fixtures: an in-memory database, a controllable clock and the
trading components wired against a static price feed.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-at-least-32-characters")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PRICE_FEED", "static")

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from binary_ledger.db.database import build_session_factory, init_db
from binary_ledger.services.payout_schedule import PayoutSchedule
from binary_ledger.services.price_source import StaticPriceSource
from binary_ledger.services.settlement_engine import SettlementEngine
from binary_ledger.services.trade_ledger import TradeLedger
from binary_ledger.services.trading_service import TradingService
from binary_ledger.services.user_locks import UserLocks
from tests.factories import FakeClock, create_funded_user


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def db_engine():
    # StaticPool: every session shares one connection, so a rollback in one
    # session undoes uncommitted writes of another. Concurrent writers for a
    # user must share one UserLocks instance, as the app wires them.
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def user(session_factory):
    return await create_funded_user(session_factory, "alice", Decimal("1000"))


@pytest.fixture
def price_source(clock) -> StaticPriceSource:
    return StaticPriceSource(
        {"BTC": Decimal("50000"), "ETH": Decimal("2500"), "LTC": Decimal("300")},
        clock=clock,
    )


@pytest.fixture
def payout_schedule() -> PayoutSchedule:
    return PayoutSchedule(
        buy_profit_rate=Decimal("0.85"),
        sell_tiers=[(60, Decimal("0.08")), (300, Decimal("0.20")), (None, Decimal("0.40"))],
        commission_rate=Decimal("0.01"),
        durations=[60, 100, 200, 300, 600],
    )


@pytest.fixture
def notifier() -> MagicMock:
    sink = MagicMock()
    sink.emit = AsyncMock(return_value=1)
    return sink


@pytest.fixture
def user_locks() -> UserLocks:
    return UserLocks()


@pytest.fixture
def ledger(session_factory, price_source, payout_schedule, user_locks, clock) -> TradeLedger:
    return TradeLedger(
        session_factory,
        price_source,
        payout_schedule,
        user_locks,
        max_active_trades=1,
        clock=clock,
    )


@pytest_asyncio.fixture
async def settlement_engine(session_factory, price_source, notifier, user_locks, clock):
    engine = SettlementEngine(
        session_factory,
        price_source,
        notifier,
        user_locks,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        sweep_interval_seconds=3600,
        clock=clock,
    )
    yield engine
    await engine.stop()


@pytest.fixture
def trading_service(ledger, settlement_engine, price_source, payout_schedule, notifier, clock) -> TradingService:
    return TradingService(
        ledger,
        settlement_engine,
        price_source,
        payout_schedule,
        notifier,
        clock=clock,
    )
