"""
Admin routes — guarded by X-Admin-Key instead of the user API key.
"""
from fastapi import APIRouter, Depends
from shared.auth import verify_admin_key
from agents.sdca.models.schemas import ChainPlansSummary, StopResponse
from agents.sdca.routes.deps import get_plans
from agents.sdca.services.tracker import group_plans_by_chain
import structlog

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.post("/plans/stop-all", response_model=StopResponse)
async def stop_all_plans(
    plans=Depends(get_plans),
    _admin: bool = Depends(verify_admin_key),
):
    return StopResponse(stopped=await plans.stop_all_plans())


@router.get("/plans/active", response_model=list[ChainPlansSummary])
async def active_plans_by_chain(
    chain: str | None = None,
    plans=Depends(get_plans),
    _admin: bool = Depends(verify_admin_key),
):
    return group_plans_by_chain(await plans.get_active_plans(chain))
