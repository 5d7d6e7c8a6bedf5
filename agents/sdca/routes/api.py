"""
S-DCA REST API routes.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from shared.database import get_db
from shared.auth import verify_api_key
from agents.sdca.models.db import InvestmentPlan, User
from agents.sdca.models.schemas import (
    PlanCreate, PlanResponse, AttemptResponse, TotalInvestmentResponse,
    PositionResponse, WithdrawRequest, TxResponse, StopResponse,
    PlanAnalytics, RecoveryStats, HealthResponse,
)
from agents.sdca.routes.deps import get_analytics, get_plans, get_recorder, get_recovery, require_user

router = APIRouter(prefix="/api/v1/sdca", tags=["sdca"])


@router.get("/health", response_model=HealthResponse)
async def health(request: Request, db: AsyncSession = Depends(get_db)):
    resp = HealthResponse()
    plans = getattr(request.app.state, "plans", None)
    if plans is not None:
        resp.scheduled_jobs = len(plans.jobs)
        resp.chains = plans.registry.chains
    try:
        active = await db.execute(
            select(func.count()).select_from(InvestmentPlan).where(InvestmentPlan.is_active == True)
        )
        resp.active_plans = active.scalar() or 0
    except Exception:
        resp.status = "ok (no db)"
    return resp


@router.post("/plans", response_model=PlanResponse)
async def create_plan(
    body: PlanCreate,
    user: User = Depends(require_user),
    plans=Depends(get_plans),
    _key: bool = Depends(verify_api_key),
):
    return await plans.create_plan(
        user_id=user.id,
        chain=body.chain,
        token_symbol=body.token_symbol,
        amount=body.amount,
        frequency=body.frequency,
        risk_level=body.risk_level,
        strategy_id=body.strategy_id,
        user_wallet_address=body.user_wallet_address,
    )


@router.get("/plans", response_model=list[PlanResponse])
async def list_plans(
    active_only: bool = False,
    user: User = Depends(require_user),
    plans=Depends(get_plans),
    _key: bool = Depends(verify_api_key),
):
    return await plans.get_user_plans(user.id, active_only=active_only)


@router.get("/plans/{plan_id}", response_model=PlanResponse)
async def get_plan(
    plan_id: int,
    user: User = Depends(require_user),
    plans=Depends(get_plans),
    _key: bool = Depends(verify_api_key),
):
    return await plans.get_plan(plan_id, user.id)


@router.post("/plans/{plan_id}/stop", response_model=PlanResponse)
async def stop_plan(
    plan_id: int,
    user: User = Depends(require_user),
    plans=Depends(get_plans),
    _key: bool = Depends(verify_api_key),
):
    return await plans.stop_plan(plan_id, user.id)


@router.post("/plans/{plan_id}/emergency-stop", response_model=PlanResponse)
async def emergency_stop(
    plan_id: int,
    user: User = Depends(require_user),
    plans=Depends(get_plans),
    _key: bool = Depends(verify_api_key),
):
    return await plans.emergency_stop(plan_id, user.id)


@router.post("/plans/stop-all", response_model=StopResponse)
async def stop_all(
    user: User = Depends(require_user),
    plans=Depends(get_plans),
    _key: bool = Depends(verify_api_key),
):
    return StopResponse(stopped=await plans.stop_all_user_plans(user.id))


@router.get("/plans/{plan_id}/analytics", response_model=PlanAnalytics)
async def plan_analytics(
    plan_id: int,
    user: User = Depends(require_user),
    analytics=Depends(get_analytics),
    _key: bool = Depends(verify_api_key),
):
    return await analytics.get_plan_analytics(plan_id, user.id)


@router.get("/plans/{plan_id}/transactions", response_model=list[AttemptResponse])
async def plan_transactions(
    plan_id: int,
    status: str | None = None,
    user: User = Depends(require_user),
    plans=Depends(get_plans),
    recorder=Depends(get_recorder),
    _key: bool = Depends(verify_api_key),
):
    await plans.get_plan(plan_id, user.id)
    return await recorder.list_for_plan(plan_id, status)


@router.get("/total-investment", response_model=TotalInvestmentResponse)
async def total_investment(
    user: User = Depends(require_user),
    plans=Depends(get_plans),
    _key: bool = Depends(verify_api_key),
):
    total = await plans.get_user_total_investment(user.id)
    return TotalInvestmentResponse(user_id=user.id, total_invested=total)


@router.get("/positions", response_model=list[PositionResponse])
async def current_positions(
    user: User = Depends(require_user),
    plans=Depends(get_plans),
    _key: bool = Depends(verify_api_key),
):
    return await plans.get_current_positions(user.id)


@router.post("/withdraw", response_model=TxResponse)
async def withdraw(
    body: WithdrawRequest,
    user: User = Depends(require_user),
    plans=Depends(get_plans),
    _key: bool = Depends(verify_api_key),
):
    tx_hash = await plans.withdraw(body.chain, body.amount, body.to_address)
    return TxResponse(tx_hash=tx_hash)


@router.get("/recovery/stats", response_model=RecoveryStats)
async def recovery_stats(
    recovery=Depends(get_recovery),
    _key: bool = Depends(verify_api_key),
):
    return await recovery.get_recovery_stats()
