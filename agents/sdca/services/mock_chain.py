"""
Mock chain — simulated swaps for paper trading on the `mock` chain.

Prices drift as a random walk of up to +/-5% per elapsed minute. A swap
credits the bought token to the user's `mock` ledger balance and returns a
`mock-tx-<uuid>` hash; nothing leaves the process.
"""
import random
import time
import uuid
from decimal import Decimal
from typing import Callable
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from shared.chains.base import ExternalChainError
from shared.chains.registry import PluginRegistry
from agents.sdca.config import (
    MOCK_BASE_PRICES, MOCK_CHAIN, MOCK_DEFAULT_PRICE, MOCK_MAX_STEP_PCT,
    MOCK_PRICE_STEP_SECONDS, MOCK_QUOTE_BALANCE, MOCK_USD_RATE,
)
from agents.sdca.errors import SDCAError
from agents.sdca.models.db import InvestmentPlan, User
from agents.sdca.services.ledger import BalanceLedger
import structlog

logger = structlog.get_logger()

MAX_CATCHUP_STEPS = 24 * 60


class MockPlugin:
    name = MOCK_CHAIN
    native_token = "USDT"
    quote_token = "USDT"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: BalanceLedger,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.ledger = ledger
        self.rng = rng or random.Random()
        self.clock = clock
        self.prices = dict(MOCK_BASE_PRICES)
        self._last_step = clock()
        logger.info("mock_plugin_initialized")

    def _advance_prices(self) -> None:
        steps = int((self.clock() - self._last_step) // MOCK_PRICE_STEP_SECONDS)
        if steps <= 0:
            return
        for _ in range(min(steps, MAX_CATCHUP_STEPS)):
            for token in self.prices:
                change = self.rng.uniform(-MOCK_MAX_STEP_PCT, MOCK_MAX_STEP_PCT) / 100
                self.prices[token] = round(self.prices[token] * (1 + change), 2)
        self._last_step += steps * MOCK_PRICE_STEP_SECONDS
        logger.debug("mock_prices_updated", prices=self.prices)

    def token_price(self, symbol: str) -> float:
        self._advance_prices()
        return self.prices.get(symbol.upper(), MOCK_DEFAULT_PRICE)

    async def _active_trade(self, address: str, token_symbol: str | None = None) -> tuple[User, InvestmentPlan] | None:
        """User owning `address` and their newest active mock plan, for `token_symbol` when given."""
        async with self.session_factory() as db:
            user = (await db.execute(select(User).where(User.address == address))).scalars().first()
            if user is None:
                return None
            q = select(InvestmentPlan).where(
                InvestmentPlan.user_id == user.id,
                InvestmentPlan.chain == MOCK_CHAIN,
                InvestmentPlan.is_active == True,
            )
            if token_symbol:
                q = q.where(InvestmentPlan.token_symbol == token_symbol.upper())
            plan = (await db.execute(q.order_by(InvestmentPlan.id.desc()))).scalars().first()
        return (user, plan) if plan else None

    async def send_swap(self, amount: Decimal, from_address: str, token_symbol: str | None = None) -> str:
        trade = await self._active_trade(from_address, token_symbol)
        if trade is None:
            raise ExternalChainError("Mock swap failed: no active mock trade found for this user")
        user, plan = trade
        token = plan.token_symbol

        price = Decimal(str(self.token_price(token)))
        token_amount = Decimal(amount) / price
        try:
            await self.ledger.credit(user.id, MOCK_CHAIN, token, token_amount)
        except SDCAError as e:
            raise ExternalChainError(f"Mock swap failed: {e}") from e

        tx_hash = f"mock-tx-{uuid.uuid4()}"
        logger.info("mock_swap", amount=str(amount), token=token,
                    token_amount=str(token_amount), tx_hash=tx_hash)
        return tx_hash

    async def withdraw(self, amount: Decimal, to_address: str) -> str:
        tx_hash = f"mock-withdraw-{uuid.uuid4()}"
        logger.info("mock_withdraw", amount=str(amount), to=to_address, tx_hash=tx_hash)
        return tx_hash

    async def get_balance(self, address: str, token: str | None = None) -> Decimal:
        if token and token.upper() == self.quote_token:
            return MOCK_QUOTE_BALANCE
        if token is None:
            trade = await self._active_trade(address)
            if trade is None:
                return Decimal(0)
            user, plan = trade
            token = plan.token_symbol
        else:
            async with self.session_factory() as db:
                user = (await db.execute(select(User).where(User.address == address))).scalars().first()
            if user is None:
                return Decimal(0)
        return await self.ledger.available(user.id, MOCK_CHAIN, token)

    async def convert_to_usd(self, amount: Decimal) -> Decimal:
        return Decimal(amount) * MOCK_USD_RATE


def build_registry(session_factory: async_sessionmaker[AsyncSession], ledger: BalanceLedger) -> PluginRegistry:
    registry = PluginRegistry()
    registry.initialize()
    registry.register(MOCK_CHAIN, lambda: MockPlugin(session_factory, ledger))
    return registry
