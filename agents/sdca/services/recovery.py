"""
Transaction recorder + recovery sweep.

Every state change on a TransactionAttempt is a conditional UPDATE so a
COMPLETED row is never touched again, and a retry is claimed (-> RETRYING)
before any chain call so a sweep and a concurrent tick cannot both retry the
same attempt.
"""
from datetime import timedelta
from decimal import Decimal
from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from shared.chains.registry import PluginNotFound, PluginRegistry
from shared.models.base import utcnow
from agents.sdca.config import MAX_RETRIES, QUOTE_TOKEN, RECOVERY_INTERVAL, STALE_PENDING_MINUTES
from agents.sdca.errors import InsufficientBalance, SDCAError
from agents.sdca.models.db import AttemptStatus, AttemptType, InvestmentPlan, TransactionAttempt, User
from agents.sdca.services.ledger import BalanceLedger
import structlog

logger = structlog.get_logger()

RECOVERY_JOB_ID = "sdca_recovery"
SWAP_TYPES = (AttemptType.BUY, AttemptType.SWAP)


class TransactionRecorder:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_attempt(
        self,
        plan: InvestmentPlan,
        amount: Decimal,
        price: Decimal,
        attempt_type: str = AttemptType.BUY,
        from_token: str = QUOTE_TOKEN,
    ) -> TransactionAttempt:
        to_amount = amount / price if price > 0 else Decimal(0)
        attempt = TransactionAttempt(
            plan_id=plan.id,
            user_id=plan.user_id,
            chain=plan.chain,
            type=attempt_type,
            from_token=from_token,
            from_amount=amount,
            to_token=plan.token_symbol,
            to_amount=to_amount,
            price=price,
            value=amount,
            invested=amount,
            status=AttemptStatus.PENDING,
            retry_count=0,
            max_retries=MAX_RETRIES,
            last_attempt_time=utcnow(),
        )
        async with self.session_factory() as db:
            db.add(attempt)
            await db.commit()
            await db.refresh(attempt)
        return attempt

    async def mark_completed(self, attempt_id: int, tx_hash: str) -> bool:
        async with self.session_factory() as db:
            result = await db.execute(
                update(TransactionAttempt)
                .where(
                    TransactionAttempt.id == attempt_id,
                    TransactionAttempt.status != AttemptStatus.COMPLETED,
                )
                .values(status=AttemptStatus.COMPLETED, tx_hash=tx_hash, error=None, last_attempt_time=utcnow())
            )
            await db.commit()
        return result.rowcount == 1

    async def mark_failed(self, attempt_id: int, error: str, terminal: bool = False) -> bool:
        values = {"status": AttemptStatus.FAILED, "error": error, "last_attempt_time": utcnow()}
        if terminal:
            values["retry_count"] = TransactionAttempt.max_retries
        async with self.session_factory() as db:
            result = await db.execute(
                update(TransactionAttempt)
                .where(
                    TransactionAttempt.id == attempt_id,
                    TransactionAttempt.status != AttemptStatus.COMPLETED,
                )
                .values(**values)
            )
            await db.commit()
        return result.rowcount == 1

    async def claim_for_retry(self, attempt: TransactionAttempt) -> bool:
        """Move an observed FAILED/PENDING attempt to RETRYING. False if someone else got there first."""
        async with self.session_factory() as db:
            result = await db.execute(
                update(TransactionAttempt)
                .where(
                    TransactionAttempt.id == attempt.id,
                    TransactionAttempt.status == attempt.status,
                    TransactionAttempt.retry_count == attempt.retry_count,
                )
                .values(
                    status=AttemptStatus.RETRYING,
                    retry_count=TransactionAttempt.retry_count + 1,
                    last_attempt_time=utcnow(),
                )
            )
            await db.commit()
        return result.rowcount == 1

    async def record_plan_execution(self, plan_id: int, amount: Decimal) -> None:
        """Plan bookkeeping in one statement; initial_amount is written only on the 0 -> 1 transition."""
        async with self.session_factory() as db:
            await db.execute(
                update(InvestmentPlan)
                .where(InvestmentPlan.id == plan_id)
                .values(
                    total_invested=InvestmentPlan.total_invested + amount,
                    execution_count=InvestmentPlan.execution_count + 1,
                    initial_amount=case(
                        (InvestmentPlan.execution_count == 0, amount),
                        else_=InvestmentPlan.initial_amount,
                    ),
                    last_execution_time=utcnow(),
                )
            )
            await db.commit()

    async def get(self, attempt_id: int) -> TransactionAttempt | None:
        async with self.session_factory() as db:
            return await db.get(TransactionAttempt, attempt_id)

    async def list_for_plan(self, plan_id: int, status: str | None = None) -> list[TransactionAttempt]:
        q = select(TransactionAttempt).where(TransactionAttempt.plan_id == plan_id)
        if status:
            q = q.where(TransactionAttempt.status == status)
        q = q.order_by(TransactionAttempt.created_at.desc(), TransactionAttempt.id.desc())
        async with self.session_factory() as db:
            result = await db.execute(q)
            return list(result.scalars().all())

    async def recovery_candidates(self) -> list[TransactionAttempt]:
        stale_before = utcnow() - timedelta(minutes=STALE_PENDING_MINUTES)
        q = (
            select(TransactionAttempt)
            .where(
                or_(
                    and_(
                        TransactionAttempt.status == AttemptStatus.FAILED,
                        TransactionAttempt.retry_count < TransactionAttempt.max_retries,
                    ),
                    and_(
                        TransactionAttempt.status == AttemptStatus.PENDING,
                        TransactionAttempt.last_attempt_time < stale_before,
                    ),
                )
            )
            .order_by(TransactionAttempt.id)
        )
        async with self.session_factory() as db:
            result = await db.execute(q)
            return list(result.scalars().all())

    async def counts_by_status(self) -> dict[str, int]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(TransactionAttempt.status, func.count()).group_by(TransactionAttempt.status)
            )
            return {status: count for status, count in result.all()}


class TransactionRecoveryService:
    """Periodic sweep that retries FAILED and stale PENDING attempts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: PluginRegistry,
        recorder: TransactionRecorder,
        ledger: BalanceLedger,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.recorder = recorder
        self.ledger = ledger
        self.scheduler = scheduler

    def start(self) -> None:
        if self.scheduler is None:
            raise RuntimeError("Recovery service has no scheduler")
        self.scheduler.add_job(
            self._sweep_job, "interval", seconds=RECOVERY_INTERVAL, id=RECOVERY_JOB_ID, replace_existing=True
        )
        logger.info("recovery_service_started", interval=RECOVERY_INTERVAL)

    def stop(self) -> None:
        if self.scheduler is not None and self.scheduler.get_job(RECOVERY_JOB_ID):
            self.scheduler.remove_job(RECOVERY_JOB_ID)
            logger.info("recovery_service_stopped")

    async def _sweep_job(self):
        try:
            await self.recover_failed_transactions()
        except Exception as e:
            logger.error("recovery_sweep_failed", error=str(e))

    async def recover_failed_transactions(self) -> dict[str, int]:
        candidates = await self.recorder.recovery_candidates()
        summary = {"candidates": len(candidates), "recovered": 0, "failed": 0, "skipped": 0}
        if not candidates:
            return summary

        logger.info("recovery_sweep_started", candidates=len(candidates))
        for attempt in candidates:
            try:
                outcome = await self.recover_attempt(attempt)
            except Exception as e:
                logger.error("recovery_attempt_crashed", attempt_id=attempt.id, error=str(e))
                outcome = "failed"
            summary[outcome] += 1

        logger.info("recovery_sweep_finished", **summary)
        return summary

    async def _fail_permanently(self, attempt: TransactionAttempt, reason: str) -> str:
        await self.recorder.mark_failed(attempt.id, reason, terminal=True)
        logger.warning("recovery_abandoned", attempt_id=attempt.id, reason=reason)
        return "failed"

    async def recover_attempt(self, attempt: TransactionAttempt) -> str:
        if not await self.recorder.claim_for_retry(attempt):
            logger.info("recovery_claim_lost", attempt_id=attempt.id)
            return "skipped"

        async with self.session_factory() as db:
            plan = await db.get(InvestmentPlan, attempt.plan_id)
            user = await db.get(User, attempt.user_id)

        if plan is None:
            return await self._fail_permanently(attempt, f"Investment plan {attempt.plan_id} no longer exists")
        if not plan.is_active:
            return await self._fail_permanently(attempt, f"Investment plan {plan.id} is no longer active")
        if user is None:
            return await self._fail_permanently(attempt, f"User {attempt.user_id} not found")
        try:
            plugin = self.registry.get(attempt.chain)
        except PluginNotFound as e:
            return await self._fail_permanently(attempt, str(e))

        amount = Decimal(attempt.from_amount)
        try:
            if attempt.type in SWAP_TYPES:
                available = await self.ledger.available(attempt.user_id, attempt.chain, attempt.from_token)
                if available < amount:
                    raise InsufficientBalance(attempt.chain, attempt.from_token, available, amount)
                tx_hash = await plugin.send_swap(
                    amount, user.address or plan.user_wallet_address or "", token_symbol=attempt.to_token
                )
            elif attempt.type == AttemptType.SELL:
                tx_hash = await plugin.withdraw(amount, plan.user_wallet_address or user.address or "")
            else:
                return await self._fail_permanently(attempt, f"Unknown transaction type {attempt.type}")
        except Exception as e:
            await self.recorder.mark_failed(attempt.id, str(e))
            logger.warning("recovery_retry_failed", attempt_id=attempt.id, retry=attempt.retry_count + 1, error=str(e))
            return "failed"

        if not await self.recorder.mark_completed(attempt.id, tx_hash):
            logger.warning("recovery_already_completed", attempt_id=attempt.id, tx_hash=tx_hash)
            return "skipped"

        if attempt.type in SWAP_TYPES:
            await self.recorder.record_plan_execution(plan.id, amount)
        try:
            await self.ledger.debit(attempt.user_id, attempt.chain, attempt.from_token, amount)
        except SDCAError as e:
            logger.error("recovery_ledger_debit_failed", attempt_id=attempt.id, error=str(e))

        logger.info("transaction_recovered", attempt_id=attempt.id, plan_id=plan.id, tx_hash=tx_hash)
        return "recovered"

    async def get_recovery_stats(self) -> dict:
        counts = await self.recorder.counts_by_status()
        pending = counts.get(AttemptStatus.PENDING, 0)
        retrying = counts.get(AttemptStatus.RETRYING, 0)
        completed = counts.get(AttemptStatus.COMPLETED, 0)
        failed = counts.get(AttemptStatus.FAILED, 0)
        total = pending + retrying + completed + failed
        return {
            "total": total,
            "pending": pending,
            "retrying": retrying,
            "completed": completed,
            "failed": failed,
            "recovery_rate": completed / total if total else 0.0,
        }
