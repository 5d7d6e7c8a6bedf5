"""
Paper trading on the mock chain, driven by the regular plan scheduler.
"""
from decimal import Decimal
from sqlalchemy import select
from agents.sdca.config import CHAIN_TOKENS, MOCK_CHAIN
from agents.sdca.errors import PlanNotFound, UnsupportedToken, UserNotFound
from agents.sdca.models.db import InvestmentPlan, User
from agents.sdca.services.executor import PlanScheduler
from agents.sdca.services.tracker import PlanAnalyticsService
import structlog

logger = structlog.get_logger()


class MockTradeService:
    def __init__(self, plans: PlanScheduler, analytics: PlanAnalyticsService):
        self.plans = plans
        self.analytics = analytics

    async def create_mock_trade(
        self,
        user_id: int,
        token_symbol: str,
        amount: Decimal,
        strategy_id: str = "SDCA",
        risk_level: str = "medium_risk",
        frequency: str = "daily",
    ) -> InvestmentPlan:
        symbol = token_symbol.upper()
        if symbol not in CHAIN_TOKENS[MOCK_CHAIN]:
            raise UnsupportedToken(MOCK_CHAIN, symbol)

        plan = await self.plans.create_plan(
            user_id=user_id,
            chain=MOCK_CHAIN,
            token_symbol=symbol,
            amount=amount,
            frequency=frequency,
            risk_level=risk_level,
            strategy_id=strategy_id,
        )
        logger.info("mock_trade_created", plan_id=plan.id, user_id=user_id, token=symbol)
        return plan

    async def get_active_mock_trades(self, user_id: int) -> list[InvestmentPlan]:
        return [p for p in await self.plans.get_user_plans(user_id, active_only=True) if p.chain == MOCK_CHAIN]

    async def _mock_plan(self, plan_id: int, user_id: int) -> InvestmentPlan:
        plan = await self.plans.get_plan(plan_id, user_id)
        if plan.chain != MOCK_CHAIN:
            raise PlanNotFound(plan_id)
        return plan

    async def get_mock_trade(self, plan_id: int, user_id: int) -> dict:
        plan = await self._mock_plan(plan_id, user_id)
        return await self.analytics.get_plan_analytics(plan.id)

    async def stop_mock_trade(self, plan_id: int, user_id: int) -> InvestmentPlan:
        plan = await self._mock_plan(plan_id, user_id)
        return await self.plans.stop_plan(plan.id)

    async def get_position(self, plan_id: int, user_id: int) -> dict:
        plan = await self._mock_plan(plan_id, user_id)
        async with self.plans.session_factory() as db:
            user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
        if user is None:
            raise UserNotFound(user_id)

        plugin = self.plans.registry.get(MOCK_CHAIN)
        balance = await plugin.get_balance(user.address or "", plan.token_symbol)
        usd_value = await plugin.convert_to_usd(balance)
        return {"chain": MOCK_CHAIN, "token": plan.token_symbol, "balance": balance, "usd_value": usd_value}
