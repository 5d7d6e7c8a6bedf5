"""
Tests for the transaction recorder and the recovery sweep
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from shared.models.base import utcnow
from agents.sdca.models.db import AttemptStatus, AttemptType, InvestmentPlan, TransactionAttempt
from agents.sdca.services.recovery import RECOVERY_JOB_ID


@pytest.fixture
async def plan(session_factory, user):
    async with session_factory() as db:
        p = InvestmentPlan(
            user_id=user.id, chain="injective", token_symbol="INJ", amount=Decimal("100"),
            frequency="daily", risk_level="no_risk",
        )
        db.add(p)
        await db.commit()
        await db.refresh(p)
        return p


async def _set(session_factory, attempt_id, **values):
    async with session_factory() as db:
        await db.execute(update(TransactionAttempt).where(TransactionAttempt.id == attempt_id).values(**values))
        await db.commit()


async def _failed_attempt(recorder, plan, amount="100", retry_count=0):
    attempt = await recorder.create_attempt(plan, Decimal(amount), Decimal("20"))
    await recorder.mark_failed(attempt.id, "rpc unavailable")
    if retry_count:
        await _set(recorder.session_factory, attempt.id, retry_count=retry_count)
    return await recorder.get(attempt.id)


@pytest.mark.asyncio
async def test_candidate_selection(recorder, plan, session_factory):
    retryable = await _failed_attempt(recorder, plan)
    exhausted = await _failed_attempt(recorder, plan, retry_count=3)

    completed = await recorder.create_attempt(plan, Decimal("10"), Decimal("20"))
    await recorder.mark_completed(completed.id, "0xdone")

    fresh_pending = await recorder.create_attempt(plan, Decimal("10"), Decimal("20"))
    stale_pending = await recorder.create_attempt(plan, Decimal("10"), Decimal("20"))
    await _set(session_factory, stale_pending.id, last_attempt_time=utcnow() - timedelta(minutes=11))

    # an old COMPLETED row is never a candidate
    await _set(session_factory, completed.id, last_attempt_time=utcnow() - timedelta(hours=2))

    ids = [a.id for a in await recorder.recovery_candidates()]
    assert ids == [retryable.id, stale_pending.id]
    assert exhausted.id not in ids and fresh_pending.id not in ids


@pytest.mark.asyncio
async def test_completed_attempt_is_never_regressed(recorder, plan):
    attempt = await recorder.create_attempt(plan, Decimal("10"), Decimal("20"))
    assert await recorder.mark_completed(attempt.id, "0xdone") is True

    assert await recorder.mark_failed(attempt.id, "late failure") is False
    assert await recorder.mark_completed(attempt.id, "0xother") is False
    stored = await recorder.get(attempt.id)
    assert stored.status == AttemptStatus.COMPLETED
    assert stored.tx_hash == "0xdone"


@pytest.mark.asyncio
async def test_claim_is_exclusive(recorder, plan):
    attempt = await _failed_attempt(recorder, plan)
    assert await recorder.claim_for_retry(attempt) is True
    # a second sweep holding the same stale snapshot loses the race
    assert await recorder.claim_for_retry(attempt) is False

    stored = await recorder.get(attempt.id)
    assert stored.status == AttemptStatus.RETRYING
    assert stored.retry_count == 1


@pytest.mark.asyncio
async def test_successful_retry_completes_and_books_plan(recovery, recorder, plan, user, ledger, fake_plugin, session_factory):
    attempt = await _failed_attempt(recorder, plan)

    summary = await recovery.recover_failed_transactions()
    assert summary == {"candidates": 1, "recovered": 1, "failed": 0, "skipped": 0}

    stored = await recorder.get(attempt.id)
    assert stored.status == AttemptStatus.COMPLETED
    assert stored.tx_hash == "0xswap1"
    assert stored.error is None
    assert stored.retry_count == 1
    assert fake_plugin.swaps == [(Decimal("100"), user.address)]

    async with session_factory() as db:
        booked = await db.get(InvestmentPlan, plan.id)
    assert booked.execution_count == 1
    assert booked.initial_amount == Decimal("100")
    assert booked.total_invested == Decimal("100")
    assert await ledger.available(user.id, "injective", "USDT") == Decimal("400")


@pytest.mark.asyncio
async def test_failed_retry_stays_failed_until_retries_run_out(recovery, recorder, plan, fake_plugin):
    fake_plugin.fail = True
    attempt = await _failed_attempt(recorder, plan)

    for expected_retries in (1, 2, 3):
        summary = await recovery.recover_failed_transactions()
        assert summary["failed"] == 1
        stored = await recorder.get(attempt.id)
        assert stored.status == AttemptStatus.FAILED
        assert stored.retry_count == expected_retries

    assert (await recovery.recover_failed_transactions())["candidates"] == 0


@pytest.mark.asyncio
async def test_missing_plan_fails_permanently(recovery, recorder, plan, session_factory):
    attempt = await _failed_attempt(recorder, plan)
    await _set(session_factory, attempt.id, plan_id=9999)

    await recovery.recover_failed_transactions()

    stored = await recorder.get(attempt.id)
    assert stored.status == AttemptStatus.FAILED
    assert stored.retry_count == stored.max_retries
    assert "no longer exists" in stored.error
    assert await recorder.recovery_candidates() == []


@pytest.mark.asyncio
async def test_inactive_plan_fails_permanently(recovery, recorder, plan, session_factory, fake_plugin):
    attempt = await _failed_attempt(recorder, plan)
    async with session_factory() as db:
        await db.execute(update(InvestmentPlan).where(InvestmentPlan.id == plan.id).values(is_active=False))
        await db.commit()

    await recovery.recover_failed_transactions()

    stored = await recorder.get(attempt.id)
    assert stored.status == AttemptStatus.FAILED
    assert stored.retry_count == stored.max_retries
    assert fake_plugin.swaps == []


@pytest.mark.asyncio
async def test_sell_attempt_dispatches_withdraw(recovery, recorder, plan, user, ledger, fake_plugin, session_factory):
    await ledger.credit(user.id, "injective", "INJ", Decimal("2"))
    attempt = await recorder.create_attempt(plan, Decimal("1.5"), Decimal("20"), AttemptType.SELL, from_token="INJ")
    await recorder.mark_failed(attempt.id, "timeout")

    await recovery.recover_failed_transactions()

    assert fake_plugin.withdrawals == [(Decimal("1.5"), user.address)]
    assert fake_plugin.swaps == []
    async with session_factory() as db:
        assert (await db.get(InvestmentPlan, plan.id)).execution_count == 0
    assert await ledger.available(user.id, "injective", "INJ") == Decimal("0.5")


@pytest.mark.asyncio
async def test_retry_with_insufficient_balance_stays_failed(recovery, recorder, plan, user, ledger, fake_plugin):
    await ledger.debit(user.id, "injective", "USDT", Decimal("450"))
    attempt = await _failed_attempt(recorder, plan)

    await recovery.recover_failed_transactions()

    stored = await recorder.get(attempt.id)
    assert stored.status == AttemptStatus.FAILED
    assert "Insufficient" in stored.error
    assert fake_plugin.swaps == []


@pytest.mark.asyncio
async def test_recovery_stats(recovery, recorder, plan):
    empty = await recovery.get_recovery_stats()
    assert empty["total"] == 0
    assert empty["recovery_rate"] == 0

    done = await recorder.create_attempt(plan, Decimal("10"), Decimal("20"))
    await recorder.mark_completed(done.id, "0x1")
    await _failed_attempt(recorder, plan)
    await recorder.create_attempt(plan, Decimal("10"), Decimal("20"))
    retrying = await _failed_attempt(recorder, plan)
    await recorder.claim_for_retry(retrying)

    stats = await recovery.get_recovery_stats()
    assert stats == {
        "total": 4, "pending": 1, "retrying": 1, "completed": 1, "failed": 1, "recovery_rate": 0.25,
    }


def test_start_registers_interval_job(recovery, scheduler):
    recovery.start()
    job = scheduler.get_job(RECOVERY_JOB_ID)
    assert job is not None
    assert job.trigger.interval == timedelta(minutes=5)
    recovery.stop()
    assert scheduler.get_job(RECOVERY_JOB_ID) is None


@pytest.mark.asyncio
async def test_unexpected_retry_exception_returns_attempt_to_failed(recovery, recorder, plan, fake_plugin):
    async def broken_swap(amount, from_address, token_symbol=None):
        raise RuntimeError("nonce too low")

    fake_plugin.send_swap = broken_swap
    attempt = await _failed_attempt(recorder, plan)

    summary = await recovery.recover_failed_transactions()
    assert summary["failed"] == 1

    stored = await recorder.get(attempt.id)
    assert stored.status == AttemptStatus.FAILED
    assert stored.error == "nonce too low"
    assert stored.retry_count == 1
