"""
S-DCA tracker — per-plan P&L analytics and admin summaries.
"""
from collections import defaultdict
from decimal import Decimal
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from shared.price_feed import get_price_by_symbol
from agents.sdca.config import STABLECOINS
from agents.sdca.errors import PlanNotFound
from agents.sdca.models.db import AttemptStatus, AttemptType, InvestmentPlan
from agents.sdca.services.executor import PriceLookup
from agents.sdca.services.recovery import TransactionRecorder
import structlog

logger = structlog.get_logger()

CENT = Decimal("0.01")
PRICE_QUANTUM = Decimal("0.000001")


class PlanAnalyticsService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        recorder: TransactionRecorder,
        price_lookup: PriceLookup = get_price_by_symbol,
    ):
        self.session_factory = session_factory
        self.recorder = recorder
        self.price_lookup = price_lookup

    async def _current_price(self, token_symbol: str, last_price: Decimal) -> Decimal:
        try:
            price = await self.price_lookup(token_symbol)
        except Exception as e:
            logger.warning("analytics_price_failed", token=token_symbol, error=str(e))
            price = None
        if price:
            return Decimal(str(price))
        # Stablecoins fall back to par, everything else to the last fill
        return Decimal("1.0") if token_symbol.upper() in STABLECOINS else last_price

    async def get_plan_analytics(self, plan_id: int, user_id: int | None = None) -> dict:
        async with self.session_factory() as db:
            plan = await db.get(InvestmentPlan, plan_id)
        if plan is None or (user_id is not None and plan.user_id != user_id):
            raise PlanNotFound(plan_id)

        completed = await self.recorder.list_for_plan(plan_id, AttemptStatus.COMPLETED)

        tokens_held = Decimal(0)
        total_invested = Decimal(0)
        for tx in completed:
            total_invested += Decimal(tx.invested)
            if tx.type in (AttemptType.BUY, AttemptType.SWAP):
                tokens_held += Decimal(tx.to_amount)
            elif tx.type == AttemptType.SELL:
                tokens_held -= Decimal(tx.from_amount)

        last_price = Decimal(completed[0].price) if completed else Decimal("1.0")
        current_price = await self._current_price(plan.token_symbol, last_price)

        portfolio_value = (tokens_held * current_price).quantize(CENT)
        profit = (portfolio_value - total_invested).quantize(CENT)
        profit_pct = (profit / total_invested * 100).quantize(CENT) if total_invested else Decimal(0)
        avg_buy_price = (total_invested / tokens_held).quantize(PRICE_QUANTUM) if tokens_held > 0 else Decimal(0)

        amount = Decimal(plan.amount)
        if tokens_held > 0 and amount == 0:
            async with self.session_factory() as db:
                await db.execute(
                    update(InvestmentPlan).where(InvestmentPlan.id == plan.id).values(amount=tokens_held)
                )
                await db.commit()
            amount = tokens_held
            logger.info("plan_amount_reconciled", plan_id=plan.id, amount=str(tokens_held))

        return {
            "plan_id": plan.id,
            "chain": plan.chain,
            "token_symbol": plan.token_symbol,
            "frequency": plan.frequency,
            "active": plan.is_active,
            "amount": amount,
            "initial_amount": Decimal(plan.initial_amount),
            "total_invested": total_invested,
            "tokens_held": tokens_held,
            "average_buy_price": avg_buy_price,
            "current_token_price": current_price,
            "portfolio_value": portfolio_value,
            "profit": profit,
            "profit_percentage": profit_pct,
            "total_transactions": len(completed),
        }


def group_plans_by_chain(plans: list[InvestmentPlan]) -> list[dict]:
    grouped: dict[str, list[InvestmentPlan]] = defaultdict(list)
    for plan in plans:
        grouped[plan.chain].append(plan)
    return [
        {
            "chain": chain,
            "plan_count": len(chain_plans),
            "total_invested": sum((Decimal(p.total_invested) for p in chain_plans), Decimal(0)),
            "plans": chain_plans,
        }
        for chain, chain_plans in sorted(grouped.items())
    ]
