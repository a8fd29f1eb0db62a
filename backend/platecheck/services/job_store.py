from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import JobNotFoundError, PersistenceError
from ..logger import logger
from ..models import (
    JOB_STATUS_COMPLETE,
    JOB_STATUS_FAILED,
    JOB_STATUS_PROCESSING,
    AnalysisJob,
)
from ..schemas import AnalysisResult


async def create(owner_id: str, db: AsyncSession, *, image_uri: Optional[str] = None) -> AnalysisJob:
    job = AnalysisJob(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        status=JOB_STATUS_PROCESSING,
        image_uri=image_uri,
    )
    db.add(job)
    try:
        await db.commit()
        await db.refresh(job)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to create job: {e}", extra={"owner_id": owner_id})
        raise PersistenceError("Failed to create analysis job") from e

    logger.info(f"Job created: {job.id}", extra={"job_id": job.id, "owner_id": owner_id})
    return job


async def get(job_id: str, requesting_owner_id: str, db: AsyncSession) -> AnalysisJob:
    """
    Jobs owned by someone else are reported exactly like missing ones.
    """
    try:
        result = await db.execute(
            select(AnalysisJob)
            .where(AnalysisJob.id == job_id)
            .execution_options(populate_existing=True)
        )
        job = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Failed to read job: {e}", extra={"job_id": job_id})
        raise PersistenceError("Failed to read analysis job") from e

    if job is None:
        raise JobNotFoundError(job_id)
    if job.owner_id != requesting_owner_id:
        logger.warning(
            "Job requested by non-owner",
            extra={"job_id": job_id, "requesting_owner_id": requesting_owner_id},
        )
        raise JobNotFoundError(job_id)
    return job


async def list_for_owner(owner_id: str, db: AsyncSession, *, limit: int = 20) -> List[AnalysisJob]:
    try:
        result = await db.execute(
            select(AnalysisJob)
            .where(AnalysisJob.owner_id == owner_id)
            .order_by(desc(AnalysisJob.created_at), desc(AnalysisJob.id))
            .limit(limit)
        )
    except SQLAlchemyError as e:
        logger.error(f"Failed to list jobs: {e}", extra={"owner_id": owner_id})
        raise PersistenceError("Failed to list analysis jobs") from e
    return list(result.scalars().all())


async def complete(
    job_id: str,
    result: Union[AnalysisResult, Dict[str, Any]],
    db: AsyncSession,
    *,
    meal_name: Optional[str] = None,
    commit: bool = True,
) -> bool:
    """
    processing -> complete.

    Returns True if this call made the transition and False if the job had
    already reached a terminal state, in which case nothing is written.
    """
    if isinstance(result, AnalysisResult):
        result = result.model_dump(exclude_none=True)
    summary = result.get("summary") or {}

    values = {
        "result": result,
        "meal_name": meal_name,
        "total_calories": summary.get("totalCalories"),
        "total_carbohydrates": _nutrient_value(summary.get("totalCarbohydrates")),
        "total_protein": _nutrient_value(summary.get("totalProtein")),
        "total_fat": _nutrient_value(summary.get("totalFat")),
    }
    return await _transition(job_id, JOB_STATUS_COMPLETE, values, db, commit=commit)


async def fail(job_id: str, reason: str, db: AsyncSession, *, commit: bool = True) -> bool:
    """processing -> failed. Same return contract as complete()."""
    return await _transition(job_id, JOB_STATUS_FAILED, {"failure_reason": reason[:255]}, db, commit=commit)


def _nutrient_value(nutrient: Any) -> Optional[float]:
    if isinstance(nutrient, dict):
        return nutrient.get("value")
    return None


async def _transition(
    job_id: str,
    target: str,
    values: Dict[str, Any],
    db: AsyncSession,
    *,
    commit: bool,
) -> bool:
    # The status filter makes the check-and-set a single statement.
    stmt = (
        update(AnalysisJob)
        .where(AnalysisJob.id == job_id, AnalysisJob.status == JOB_STATUS_PROCESSING)
        .values(status=target, updated_at=func.now(), completed_at=func.now(), **values)
        .execution_options(synchronize_session=False)
    )
    try:
        res = await db.execute(stmt)
        if res.rowcount == 1:
            if commit:
                await db.commit()
            logger.info(f"Job {job_id} -> {target}", extra={"job_id": job_id, "status": target})
            return True

        current = (
            await db.execute(select(AnalysisJob.status).where(AnalysisJob.id == job_id))
        ).scalar_one_or_none()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to update job {job_id}: {e}", extra={"job_id": job_id, "target": target})
        raise PersistenceError("Failed to update analysis job") from e

    if current is None:
        raise JobNotFoundError(job_id)

    logger.info(
        f"Job {job_id} already {current}, ignoring transition to {target}",
        extra={"job_id": job_id, "status": current, "target": target},
    )
    return False
