from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import InvalidRequestError, PersistenceError
from ..logger import logger
from ..models import PLAN_FREE, PLAN_PREMIUM, UserProfile


USAGE_LIMIT_EXCEEDED = "USAGE_LIMIT_EXCEEDED"
PLANS = (PLAN_FREE, PLAN_PREMIUM)


@dataclass(frozen=True)
class Admission:
    allowed: bool
    reason: Optional[str] = None
    plan: str = PLAN_FREE
    usage_count: int = 0
    limit: Optional[int] = None


async def get_or_create_profile(owner_id: str, db: AsyncSession) -> UserProfile:
    """
    Returns the usage profile for a user, inserting a free one on first sight.

    Two first requests racing each other may both try the insert; the loser
    re-reads the row the winner committed.
    """
    query = (
        select(UserProfile)
        .where(UserProfile.id == owner_id)
        .execution_options(populate_existing=True)
    )
    try:
        profile = (await db.execute(query)).scalar_one_or_none()
        if profile is not None:
            return profile

        profile = UserProfile(id=owner_id, plan=PLAN_FREE, usage_count=0)
        db.add(profile)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            return (await db.execute(query)).scalar_one()
        await db.refresh(profile)
        logger.info("Usage profile created", extra={"owner_id": owner_id})
        return profile
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to load usage profile: {e}", extra={"owner_id": owner_id})
        raise PersistenceError("Failed to load usage profile") from e


def free_plan_limit(plan: str) -> Optional[int]:
    return settings.FREE_PLAN_USAGE_LIMIT if plan == PLAN_FREE else None


async def admit(owner_id: str, db: AsyncSession) -> Admission:
    """
    Check, not reserve: the counter only moves when a job completes, so two
    submissions racing at the boundary can both be admitted.
    """
    profile = await get_or_create_profile(owner_id, db)
    limit = free_plan_limit(profile.plan)

    if limit is not None and profile.usage_count >= limit:
        logger.info(
            "Admission denied",
            extra={"owner_id": owner_id, "usage_count": profile.usage_count, "limit": limit},
        )
        return Admission(
            allowed=False,
            reason=USAGE_LIMIT_EXCEEDED,
            plan=profile.plan,
            usage_count=profile.usage_count,
            limit=limit,
        )

    return Admission(allowed=True, plan=profile.plan, usage_count=profile.usage_count, limit=limit)


async def increment(owner_id: str, db: AsyncSession, *, commit: bool = True) -> bool:
    """
    Add one use to a free plan profile.

    A single conditional UPDATE, so concurrent callbacks never lose a count.
    Returns False when the owner is not on the free plan (or has no profile).
    """
    stmt = (
        update(UserProfile)
        .where(UserProfile.id == owner_id, UserProfile.plan == PLAN_FREE)
        .values(usage_count=UserProfile.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    try:
        result = await db.execute(stmt)
        if commit:
            await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to increment usage: {e}", extra={"owner_id": owner_id})
        raise PersistenceError("Failed to increment usage count") from e

    incremented = result.rowcount == 1
    logger.info("Usage incremented" if incremented else "Usage increment skipped", extra={"owner_id": owner_id})
    return incremented


async def set_plan(owner_id: str, plan: str, db: AsyncSession) -> UserProfile:
    """Switch a user's plan. Upgrading to premium also clears the counter."""
    if plan not in PLANS:
        raise InvalidRequestError(f"Unknown plan '{plan}'", "INVALID_PLAN")

    profile = await get_or_create_profile(owner_id, db)
    profile.plan = plan
    if plan == PLAN_PREMIUM:
        profile.usage_count = 0
    try:
        await db.commit()
        await db.refresh(profile)
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to update plan") from e

    logger.info("Plan updated", extra={"owner_id": owner_id, "plan": plan})
    return profile
