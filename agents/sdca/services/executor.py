"""
S-DCA plan scheduler — one APScheduler cron job per active plan.

Tick: check quote balance -> size -> price -> PENDING attempt -> send_swap ->
COMPLETED (plan bookkeeping + ledger debit) or FAILED (left for recovery).
"""
from decimal import Decimal
from typing import Awaitable, Callable
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from shared.chains.base import ExternalChainError
from shared.chains.registry import PluginNotFound, PluginRegistry
from shared.models.base import utcnow
from shared.price_feed import get_price_by_symbol
from agents.sdca.config import FREQUENCY_CRON, MOCK_CHAIN, QUOTE_TOKEN
from agents.sdca.errors import PlanNotFound, SDCAError, UnknownChain, UserNotFound
from agents.sdca.models.db import InvestmentPlan, User
from agents.sdca.services.ledger import BalanceLedger
from agents.sdca.services.price_analysis import NEUTRAL_ANALYSIS, PriceAnalyzer
from agents.sdca.services.recovery import TransactionRecorder
from agents.sdca.services.sizing import next_tick_amount
import structlog

logger = structlog.get_logger()

PriceLookup = Callable[[str], Awaitable[float | None]]


class PlanState:
    SCHEDULED = "Scheduled"
    EXECUTING = "Executing"
    STOPPED = "Stopped"


def job_id(plan_id: int) -> str:
    return f"plan:{plan_id}"


def trigger_for(frequency: str) -> CronTrigger:
    fields = FREQUENCY_CRON.get(frequency)
    if fields is None:
        raise ValueError(f"Invalid frequency: {frequency}")
    return CronTrigger(timezone="UTC", **fields)


class PlanScheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scheduler: AsyncIOScheduler,
        registry: PluginRegistry,
        recorder: TransactionRecorder,
        ledger: BalanceLedger,
        analyzer: PriceAnalyzer | None = None,
        price_lookup: PriceLookup = get_price_by_symbol,
    ):
        self.session_factory = session_factory
        self.scheduler = scheduler
        self.registry = registry
        self.recorder = recorder
        self.ledger = ledger
        self.analyzer = analyzer or PriceAnalyzer()
        self.price_lookup = price_lookup
        self.jobs: dict[int, str] = {}
        self.states: dict[int, str] = {}

    # -- scheduling ---------------------------------------------------------

    def schedule(self, plan: InvestmentPlan) -> None:
        trigger = trigger_for(plan.frequency)
        job = self.scheduler.add_job(
            self._tick_job, trigger, args=[plan.id], id=job_id(plan.id),
            replace_existing=True, max_instances=1, coalesce=True,
        )
        self.jobs[plan.id] = job.id
        self.states[plan.id] = PlanState.SCHEDULED
        logger.info("plan_scheduled", plan_id=plan.id, frequency=plan.frequency)

    def cancel(self, plan_id: int) -> None:
        """Remove the plan's job. Safe to call for a plan that was never scheduled."""
        jid = self.jobs.pop(plan_id, job_id(plan_id))
        try:
            self.scheduler.remove_job(jid)
        except JobLookupError:
            pass
        self.states[plan_id] = PlanState.STOPPED

    def state(self, plan_id: int) -> str | None:
        return self.states.get(plan_id)

    async def load_active_plans(self) -> int:
        """Re-schedule active non-mock plans at start-up; orphans are deactivated."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(InvestmentPlan).where(InvestmentPlan.is_active == True, InvestmentPlan.chain != MOCK_CHAIN)
            )
            plans = list(result.scalars().all())

        loaded = 0
        for plan in plans:
            async with self.session_factory() as db:
                user = await db.get(User, plan.user_id)
            if user is None:
                await self._deactivate(plan.id)
                logger.warning("orphaned_plan_deactivated", plan_id=plan.id, user_id=plan.user_id)
                continue
            try:
                self.schedule(plan)
                loaded += 1
            except Exception as e:
                logger.error("plan_schedule_failed", plan_id=plan.id, error=str(e))
                await self._deactivate(plan.id)

        logger.info("active_plans_loaded", count=loaded)
        return loaded

    # -- plan lifecycle -----------------------------------------------------

    async def create_plan(
        self,
        user_id: int,
        chain: str,
        token_symbol: str,
        amount: Decimal,
        frequency: str = "daily",
        risk_level: str = "no_risk",
        strategy_id: str = "SDCA",
        user_wallet_address: str | None = None,
    ) -> InvestmentPlan:
        try:
            self.registry.get(chain)
        except PluginNotFound as e:
            raise UnknownChain.from_lookup(e) from e
        trigger_for(frequency)

        async with self.session_factory() as db:
            if await db.get(User, user_id) is None:
                raise UserNotFound(user_id)
            plan = InvestmentPlan(
                user_id=user_id,
                chain=chain,
                token_symbol=token_symbol.upper(),
                strategy_id=strategy_id,
                frequency=frequency,
                risk_level=risk_level,
                amount=Decimal(amount),
                initial_amount=Decimal(0),
                total_invested=Decimal(0),
                execution_count=0,
                user_wallet_address=user_wallet_address,
                is_active=True,
                start_date=utcnow(),
            )
            db.add(plan)
            await db.commit()
            await db.refresh(plan)

        self.schedule(plan)
        logger.info("plan_created", plan_id=plan.id, user_id=user_id, chain=chain,
                    amount=str(amount), frequency=frequency, risk_level=risk_level)
        return plan

    async def _deactivate(self, plan_id: int) -> None:
        async with self.session_factory() as db:
            await db.execute(
                update(InvestmentPlan)
                .where(InvestmentPlan.id == plan_id)
                .values(is_active=False, end_date=utcnow())
            )
            await db.commit()

    async def stop_plan(self, plan_id: int, user_id: int | None = None) -> InvestmentPlan:
        plan = await self.get_plan(plan_id, user_id)
        self.cancel(plan.id)
        if plan.is_active:
            await self._deactivate(plan.id)
        logger.info("plan_stopped", plan_id=plan.id)
        return await self.get_plan(plan.id)

    async def emergency_stop(self, plan_id: int, user_id: int | None = None) -> InvestmentPlan:
        plan = await self.stop_plan(plan_id, user_id)
        logger.warning("plan_emergency_stopped", plan_id=plan.id, user_id=plan.user_id)
        return plan

    async def _stop_where(self, *criteria) -> int:
        async with self.session_factory() as db:
            result = await db.execute(
                select(InvestmentPlan.id).where(InvestmentPlan.is_active == True, *criteria)
            )
            plan_ids = list(result.scalars().all())
            if plan_ids:
                await db.execute(
                    update(InvestmentPlan)
                    .where(InvestmentPlan.id.in_(plan_ids))
                    .values(is_active=False, end_date=utcnow())
                )
                await db.commit()
        for plan_id in plan_ids:
            self.cancel(plan_id)
        return len(plan_ids)

    async def stop_all_user_plans(self, user_id: int) -> int:
        count = await self._stop_where(InvestmentPlan.user_id == user_id)
        logger.info("user_plans_stopped", user_id=user_id, count=count)
        return count

    async def stop_all_plans(self) -> int:
        count = await self._stop_where()
        logger.warning("all_plans_stopped", count=count)
        return count

    # -- tick ---------------------------------------------------------------

    async def _tick_job(self, plan_id: int):
        try:
            await self.execute_plan(plan_id)
        except Exception as e:
            logger.error("plan_tick_failed", plan_id=plan_id, error=str(e))

    async def execute_plan(self, plan_id: int) -> str:
        """Run one tick. Returns 'skipped', 'completed' or 'failed'."""
        if self.states.get(plan_id) == PlanState.STOPPED:
            return "skipped"
        self.states[plan_id] = PlanState.EXECUTING
        try:
            return await self._run_tick(plan_id)
        finally:
            if self.states.get(plan_id) == PlanState.EXECUTING:
                self.states[plan_id] = PlanState.SCHEDULED

    async def _run_tick(self, plan_id: int) -> str:
        async with self.session_factory() as db:
            plan = await db.get(InvestmentPlan, plan_id)
            user = await db.get(User, plan.user_id) if plan else None
        if plan is None or not plan.is_active:
            logger.info("plan_tick_inactive", plan_id=plan_id)
            self.cancel(plan_id)
            return "skipped"
        if user is None:
            logger.warning("plan_tick_no_user", plan_id=plan_id, user_id=plan.user_id)
            return "skipped"

        plugin = self.registry.get(plan.chain)

        if plan.execution_count:
            analysis = await self.analyzer.analyze_token_price(plan.chain, plan.token_symbol)
        else:
            analysis = NEUTRAL_ANALYSIS
        amount = next_tick_amount(plan, analysis)

        available = await self.ledger.available(plan.user_id, plan.chain, QUOTE_TOKEN)
        if available < amount:
            logger.info("insufficient_balance", plan_id=plan.id, chain=plan.chain,
                        available=str(available), required=str(amount))
            return "skipped"

        price = await self.price_lookup(plan.token_symbol)
        price = Decimal(str(price)) if price else Decimal(0)

        attempt = await self.recorder.create_attempt(plan, amount, price)
        from_address = user.address or plan.user_wallet_address or ""
        try:
            tx_hash = await plugin.send_swap(amount, from_address, token_symbol=plan.token_symbol)
        except Exception as e:
            await self.recorder.mark_failed(attempt.id, str(e))
            if isinstance(e, (ExternalChainError, SDCAError)):
                logger.warning("plan_swap_failed", plan_id=plan.id, attempt_id=attempt.id, error=str(e))
            else:
                logger.error("plan_swap_crashed", plan_id=plan.id, attempt_id=attempt.id,
                             error=str(e), error_type=type(e).__name__)
            return "failed"

        await self.recorder.mark_completed(attempt.id, tx_hash)
        await self.recorder.record_plan_execution(plan.id, amount)
        try:
            await self.ledger.debit(plan.user_id, plan.chain, QUOTE_TOKEN, amount)
        except SDCAError as e:
            logger.error("ledger_debit_failed", plan_id=plan.id, attempt_id=attempt.id, error=str(e))

        logger.info("plan_executed", plan_id=plan.id, amount=str(amount),
                    execution=plan.execution_count + 1, tx_hash=tx_hash)
        return "completed"

    # -- queries ------------------------------------------------------------

    async def get_plan(self, plan_id: int, user_id: int | None = None) -> InvestmentPlan:
        async with self.session_factory() as db:
            plan = await db.get(InvestmentPlan, plan_id)
        if plan is None or (user_id is not None and plan.user_id != user_id):
            raise PlanNotFound(plan_id)
        return plan

    async def get_user_plans(self, user_id: int, active_only: bool = False) -> list[InvestmentPlan]:
        q = select(InvestmentPlan).where(InvestmentPlan.user_id == user_id)
        if active_only:
            q = q.where(InvestmentPlan.is_active == True)
        q = q.order_by(InvestmentPlan.created_at.desc(), InvestmentPlan.id.desc())
        async with self.session_factory() as db:
            result = await db.execute(q)
            return list(result.scalars().all())

    async def get_active_plans(self, chain: str | None = None) -> list[InvestmentPlan]:
        q = select(InvestmentPlan).where(InvestmentPlan.is_active == True)
        if chain:
            q = q.where(InvestmentPlan.chain == chain)
        async with self.session_factory() as db:
            result = await db.execute(q.order_by(InvestmentPlan.chain, InvestmentPlan.id))
            return list(result.scalars().all())

    async def get_user_total_investment(self, user_id: int) -> Decimal:
        async with self.session_factory() as db:
            result = await db.execute(
                select(func.coalesce(func.sum(InvestmentPlan.total_invested), 0))
                .where(InvestmentPlan.user_id == user_id)
            )
            return Decimal(str(result.scalar() or 0))

    async def get_current_positions(self, user_id: int) -> list[dict]:
        """Native balance and USD value per chain the user has plans on."""
        async with self.session_factory() as db:
            user = await db.get(User, user_id)
        if user is None:
            raise UserNotFound(user_id)

        plans = await self.get_user_plans(user_id)
        positions = []
        for chain in sorted({p.chain for p in plans}):
            try:
                plugin = self.registry.get(chain)
            except PluginNotFound as e:
                positions.append({"chain": chain, "token": "", "balance": Decimal(0), "error": str(e)})
                continue
            address = user.address or next((p.user_wallet_address for p in plans if p.chain == chain), None)
            try:
                balance = await plugin.get_balance(address or "")
                usd_value = await plugin.convert_to_usd(balance)
            except ExternalChainError as e:
                logger.warning("position_query_failed", user_id=user_id, chain=chain, error=str(e))
                positions.append({"chain": chain, "token": plugin.native_token, "balance": Decimal(0), "error": str(e)})
                continue
            positions.append({"chain": chain, "token": plugin.native_token, "balance": balance, "usd_value": usd_value})
        return positions

    async def withdraw(self, chain: str, amount: Decimal, to_address: str) -> str:
        try:
            plugin = self.registry.get(chain)
        except PluginNotFound as e:
            raise UnknownChain.from_lookup(e) from e
        tx_hash = await plugin.withdraw(Decimal(amount), to_address)
        logger.info("withdrawal_sent", chain=chain, amount=str(amount), to=to_address, tx_hash=tx_hash)
        return tx_hash
