"""
Tests for the mock chain and paper trading
"""
import random
from decimal import Decimal

import pytest

from shared.chains.base import ExternalChainError
from shared.chains.registry import PluginRegistry
from agents.sdca.errors import PlanNotFound, UnsupportedToken
from agents.sdca.models.db import AttemptStatus
from agents.sdca.services.executor import PlanScheduler
from agents.sdca.services.mock_chain import MockPlugin
from agents.sdca.services.mock_trading import MockTradeService
from agents.sdca.services.tracker import PlanAnalyticsService


async def fixed_price(symbol):
    return 20.0


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_plugin(session_factory, ledger, clock) -> MockPlugin:
    return MockPlugin(session_factory, ledger, rng=random.Random(7), clock=clock)


@pytest.fixture
def mock_trades(session_factory, scheduler, registry, recorder, ledger, analyzer, mock_plugin) -> MockTradeService:
    registry.register("mock", lambda: mock_plugin)
    plans = PlanScheduler(
        session_factory, scheduler, registry, recorder, ledger,
        analyzer=analyzer, price_lookup=fixed_price,
    )
    return MockTradeService(plans, PlanAnalyticsService(session_factory, recorder, price_lookup=fixed_price))


def test_prices_walk_once_per_elapsed_minute(mock_plugin, clock):
    assert mock_plugin.token_price("btc") == 50000.0

    clock.now += 59
    assert mock_plugin.token_price("BTC") == 50000.0

    clock.now += 1
    moved = mock_plugin.token_price("BTC")
    assert moved != 50000.0
    assert 50000.0 * 0.95 <= moved <= 50000.0 * 1.05

    assert mock_plugin.token_price("DOGE") == 1000.0


@pytest.mark.asyncio
async def test_swap_without_active_trade_fails(mock_plugin, user):
    with pytest.raises(ExternalChainError):
        await mock_plugin.send_swap(Decimal("10"), user.address)
    with pytest.raises(ExternalChainError):
        await mock_plugin.send_swap(Decimal("10"), "0xnobody")


@pytest.mark.asyncio
async def test_swap_credits_mock_ledger(mock_trades, mock_plugin, ledger, user):
    await mock_trades.create_mock_trade(user.id, "btc", Decimal("100"))

    tx_hash = await mock_plugin.send_swap(Decimal("100"), user.address)

    assert tx_hash.startswith("mock-tx-")
    assert await ledger.available(user.id, "mock", "BTC") == Decimal("0.002")
    assert await mock_plugin.get_balance(user.address) == Decimal("0.002")
    assert await mock_plugin.get_balance(user.address, "BTC") == Decimal("0.002")
    assert await mock_plugin.get_balance(user.address, "USDT") == Decimal("1000")
    assert await mock_plugin.convert_to_usd(Decimal("0.002")) == Decimal("0.2")
    assert (await mock_plugin.withdraw(Decimal("1"), "0xdest")).startswith("mock-withdraw-")


@pytest.mark.asyncio
async def test_mock_trade_tick_end_to_end(mock_trades, ledger, recorder, user):
    plan = await mock_trades.create_mock_trade(user.id, "ETH", Decimal("60"), frequency="test_minute")
    assert plan.chain == "mock"
    assert plan.risk_level == "medium_risk"

    assert await mock_trades.plans.execute_plan(plan.id) == "completed"

    assert await ledger.available(user.id, "mock", "USDT") == Decimal("440")
    assert await ledger.available(user.id, "mock", "ETH") == Decimal("0.02")

    attempts = await recorder.list_for_plan(plan.id)
    assert attempts[0].status == AttemptStatus.COMPLETED
    assert attempts[0].tx_hash.startswith("mock-tx-")

    position = await mock_trades.get_position(plan.id, user.id)
    assert position["token"] == "ETH"
    assert position["balance"] == Decimal("0.02")
    assert position["usd_value"] == Decimal("2")

    trade = await mock_trades.get_mock_trade(plan.id, user.id)
    assert trade["total_transactions"] == 1
    assert [p.id for p in await mock_trades.get_active_mock_trades(user.id)] == [plan.id]

    stopped = await mock_trades.stop_mock_trade(plan.id, user.id)
    assert stopped.is_active is False
    assert await mock_trades.get_active_mock_trades(user.id) == []


@pytest.mark.asyncio
async def test_mock_trade_rejects_unknown_token(mock_trades, user):
    with pytest.raises(UnsupportedToken):
        await mock_trades.create_mock_trade(user.id, "DOGE", Decimal("10"))


@pytest.mark.asyncio
async def test_mock_endpoints_ignore_real_chain_plans(mock_trades, user):
    real = await mock_trades.plans.create_plan(user.id, "injective", "INJ", Decimal("10"))
    with pytest.raises(PlanNotFound):
        await mock_trades.get_mock_trade(real.id, user.id)
    with pytest.raises(PlanNotFound):
        await mock_trades.stop_mock_trade(real.id, user.id)


def test_registry_resolves_mock(mock_plugin):
    registry = PluginRegistry()
    registry.register("mock", lambda: mock_plugin)
    assert registry.get("mock") is mock_plugin


@pytest.mark.asyncio
async def test_tick_credits_the_ticking_plans_token(mock_trades, mock_plugin, ledger, user):
    btc = await mock_trades.create_mock_trade(user.id, "BTC", Decimal("100"), frequency="test_minute")
    await mock_trades.create_mock_trade(user.id, "ETH", Decimal("60"), frequency="test_minute")

    assert await mock_trades.plans.execute_plan(btc.id) == "completed"

    assert await ledger.available(user.id, "mock", "BTC") == Decimal("0.002")
    assert await ledger.available(user.id, "mock", "ETH") == Decimal("0")

    await mock_plugin.send_swap(Decimal("100"), user.address, token_symbol="btc")
    assert await ledger.available(user.id, "mock", "BTC") == Decimal("0.004")
    assert await ledger.available(user.id, "mock", "ETH") == Decimal("0")
