"""
Pytest configuration and fixtures for the S-DCA agent tests
"""
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from shared.chains.base import ExternalChainError
from shared.chains.registry import PluginRegistry
from shared.models.base import Base
from agents.sdca.models.db import User
from agents.sdca.services.executor import PlanScheduler
from agents.sdca.services.ledger import BalanceLedger
from agents.sdca.services.price_analysis import AnalysisResult
from agents.sdca.services.recovery import TransactionRecorder, TransactionRecoveryService


# Test database URL (in-memory SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakePlugin:
    """In-memory chain plugin; flip `fail` to make every chain call raise."""

    name = "injective"
    native_token = "INJ"
    quote_token = "USDT"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.swaps: list[tuple[Decimal, str]] = []
        self.withdrawals: list[tuple[Decimal, str]] = []

    async def send_swap(self, amount, from_address, token_symbol=None):
        if self.fail:
            raise ExternalChainError("rpc unavailable")
        self.swaps.append((Decimal(amount), from_address))
        return f"0xswap{len(self.swaps)}"

    async def withdraw(self, amount, to_address):
        if self.fail:
            raise ExternalChainError("rpc unavailable")
        self.withdrawals.append((Decimal(amount), to_address))
        return f"0xwithdraw{len(self.withdrawals)}"

    async def get_balance(self, address, token=None):
        if self.fail:
            raise ExternalChainError("rpc unavailable")
        return Decimal("3")

    async def convert_to_usd(self, amount):
        return Decimal(amount) * Decimal("20")


class FixedAnalyzer:
    """Analyzer stub returning a fixed result."""

    def __init__(self, price_factor: float = 1.0, going_up: bool = False):
        self.result = AnalysisResult(0.0, 0.0, 0.0, price_factor, going_up)
        self.calls = 0

    async def analyze_token_price(self, chain, token_symbol=None):
        self.calls += 1
        return self.result


async def fixed_price(symbol: str) -> float:
    return 20.0


@pytest.fixture(scope="function")
async def test_db_engine():
    """
    Create test database engine
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def user(session_factory) -> User:
    async with session_factory() as db:
        u = User(name="Test User", email="test@example.com", address="0xabc0000000000000000000000000000000000001")
        db.add(u)
        await db.commit()
        await db.refresh(u)
        return u


@pytest.fixture
def fake_plugin() -> FakePlugin:
    return FakePlugin()


@pytest.fixture
def registry(fake_plugin) -> PluginRegistry:
    reg = PluginRegistry()
    reg.register("injective", lambda: fake_plugin)
    return reg


@pytest.fixture
def analyzer() -> FixedAnalyzer:
    return FixedAnalyzer(price_factor=1.2, going_up=True)


@pytest.fixture
def scheduler() -> AsyncIOScheduler:
    # Never started: jobs stay pending, which is all the scheduler bookkeeping needs
    return AsyncIOScheduler(timezone="UTC")


@pytest.fixture
def ledger(session_factory) -> BalanceLedger:
    return BalanceLedger(session_factory)


@pytest.fixture
def recorder(session_factory) -> TransactionRecorder:
    return TransactionRecorder(session_factory)


@pytest.fixture
def plans(session_factory, scheduler, registry, recorder, ledger, analyzer) -> PlanScheduler:
    return PlanScheduler(
        session_factory, scheduler, registry, recorder, ledger,
        analyzer=analyzer, price_lookup=fixed_price,
    )


@pytest.fixture
def recovery(session_factory, registry, recorder, ledger, scheduler) -> TransactionRecoveryService:
    return TransactionRecoveryService(session_factory, registry, recorder, ledger, scheduler)
