"""
Service lookups for route handlers. Services are built once in the lifespan
and stored on app.state.
"""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from shared.auth import current_user_id
from shared.database import get_db
from agents.sdca.errors import UserNotFound
from agents.sdca.models.db import User


def get_plans(request: Request):
    return request.app.state.plans


def get_recovery(request: Request):
    return request.app.state.recovery


def get_recorder(request: Request):
    return request.app.state.recorder


def get_ledger(request: Request):
    return request.app.state.ledger


def get_analytics(request: Request):
    return request.app.state.analytics


def get_mock_trades(request: Request):
    return request.app.state.mock_trades


async def require_user(
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user
