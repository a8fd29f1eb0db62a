"""
Account routes - plan and usage
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..schemas import UsageResponse
from ..auth import get_current_user, CurrentUser
from ..services import quota

router = APIRouter(prefix="/account", tags=["Account"])

@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the caller's plan and how many analyses remain on it"""
    profile = await quota.get_or_create_profile(current_user.id, db)
    limit = quota.free_plan_limit(profile.plan)
    return UsageResponse(
        plan=profile.plan,
        usageCount=profile.usage_count,
        limit=limit,
        remaining=max(limit - profile.usage_count, 0) if limit is not None else None,
    )
