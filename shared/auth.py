from fastapi import HTTPException, Header
from shared.config import settings


async def verify_api_key(x_api_key: str = Header(...)) -> bool:
    if x_api_key != settings.API_SECRET_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return True


async def verify_admin_key(x_admin_key: str = Header(...)) -> bool:
    if x_admin_key != settings.ADMIN_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid admin key")
    return True


async def current_user_id(x_user_id: int = Header(...)) -> int:
    """Caller identity, set by the authenticating gateway in front of this service."""
    return x_user_id
