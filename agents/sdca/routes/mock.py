"""
Mock trading routes — paper-trade plans on the simulated chain.
"""
from fastapi import APIRouter, Depends
from shared.auth import verify_api_key
from agents.sdca.models.db import User
from agents.sdca.models.schemas import MockTradeCreate, PlanAnalytics, PlanResponse, PositionResponse
from agents.sdca.routes.deps import get_mock_trades, require_user

router = APIRouter(prefix="/api/v1/mock", tags=["mock"])


@router.post("/trades", response_model=PlanResponse)
async def create_mock_trade(
    body: MockTradeCreate,
    user: User = Depends(require_user),
    mock_trades=Depends(get_mock_trades),
    _key: bool = Depends(verify_api_key),
):
    return await mock_trades.create_mock_trade(
        user_id=user.id,
        token_symbol=body.token_symbol,
        amount=body.amount,
        strategy_id=body.strategy_id,
        risk_level=body.risk_level,
        frequency=body.frequency,
    )


@router.get("/trades", response_model=list[PlanResponse])
async def list_mock_trades(
    user: User = Depends(require_user),
    mock_trades=Depends(get_mock_trades),
    _key: bool = Depends(verify_api_key),
):
    return await mock_trades.get_active_mock_trades(user.id)


@router.get("/trades/{plan_id}", response_model=PlanAnalytics)
async def get_mock_trade(
    plan_id: int,
    user: User = Depends(require_user),
    mock_trades=Depends(get_mock_trades),
    _key: bool = Depends(verify_api_key),
):
    return await mock_trades.get_mock_trade(plan_id, user.id)


@router.post("/trades/{plan_id}/stop", response_model=PlanResponse)
async def stop_mock_trade(
    plan_id: int,
    user: User = Depends(require_user),
    mock_trades=Depends(get_mock_trades),
    _key: bool = Depends(verify_api_key),
):
    return await mock_trades.stop_mock_trade(plan_id, user.id)


@router.get("/trades/{plan_id}/position", response_model=PositionResponse)
async def mock_position(
    plan_id: int,
    user: User = Depends(require_user),
    mock_trades=Depends(get_mock_trades),
    _key: bool = Depends(verify_api_key),
):
    return await mock_trades.get_position(plan_id, user.id)
