from __future__ import annotations

import hmac
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import (
    InvalidRequestError,
    JobNotFoundError,
    PersistenceError,
    UnauthorizedError,
    UnknownAnalyzerError,
)
from ..logger import logger
from ..models import JOB_STATUS_FAILED, AnalysisJob
from ..schemas import AnalysisResult, CallbackAck, CallbackRequest, JobStatus
from . import job_store, quota

ANALYZER_FAILURE = "ANALYZER_FAILURE"


def verify_secret(authorization: Optional[str]) -> None:
    expected = f"Bearer {settings.ANALYZER_CALLBACK_SECRET}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise UnauthorizedError("Invalid callback credential")


def parse_result(request: CallbackRequest) -> AnalysisResult:
    """
    Accepts `result` as a full {items, summary} object, as an object missing
    its summary with the summary sent alongside, or as a bare list of items.
    """
    raw = request.result
    if isinstance(raw, list):
        raw = {"items": raw}
    if not isinstance(raw, dict):
        raise UnknownAnalyzerError("Callback is missing the analysis result")
    if "summary" not in raw and request.summary is not None:
        raw = {**raw, "summary": request.summary}
    try:
        return AnalysisResult.model_validate(raw)
    except ValidationError as e:
        raise UnknownAnalyzerError(f"Malformed analysis result: {e.error_count()} validation error(s)") from e


def _failure_reason(request: CallbackRequest) -> str:
    error = request.error
    if isinstance(error, dict):
        return str(error.get("code") or error.get("message") or ANALYZER_FAILURE)
    if isinstance(error, str) and error:
        return error
    return ANALYZER_FAILURE


async def ingest(authorization: Optional[str], payload: Any, db: AsyncSession) -> CallbackAck:
    """
    Finalize a job from an analyzer callback.

    Rejections are raised as exceptions so the analyzer sees a non-2xx status
    and can retry. A replayed callback for a finished job is acknowledged
    without touching the job or the quota.
    """
    verify_secret(authorization)

    if not isinstance(payload, dict):
        raise UnknownAnalyzerError("Callback body must be a JSON object")
    try:
        request = CallbackRequest.model_validate(payload)
    except ValidationError as e:
        raise UnknownAnalyzerError(f"Malformed callback: {e.error_count()} validation error(s)") from e

    if not request.jobId:
        raise InvalidRequestError("jobId is required", "MISSING_PARAMETER")
    job_id = request.jobId

    if request.success is False or request.status == JOB_STATUS_FAILED:
        reason = _failure_reason(request)
        logger.warning(f"Analyzer reported failure for job {job_id}", extra={"job_id": job_id, "reason": reason})
        transitioned = await job_store.fail(job_id, reason, db)
        status = JobStatus.FAILED if transitioned else await _current_status(job_id, db)
        return CallbackAck(jobId=job_id, status=status, transitioned=transitioned)

    result = parse_result(request)

    transitioned = await job_store.complete(job_id, result, db, meal_name=request.mealName, commit=False)
    if transitioned and request.ownerId:
        owner_id = await _owner_of_record(job_id, request.ownerId, db)
        await quota.increment(owner_id, db, commit=False)

    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to commit callback for job {job_id}: {e}", extra={"job_id": job_id})
        raise PersistenceError("Failed to store analysis result") from e

    logger.info(
        f"Callback processed for job {job_id}",
        extra={"job_id": job_id, "transitioned": transitioned, "items": len(result.items)},
    )
    status = JobStatus.COMPLETE if transitioned else await _current_status(job_id, db)
    return CallbackAck(jobId=job_id, status=status, transitioned=transitioned)


async def _owner_of_record(job_id: str, claimed_owner_id: str, db: AsyncSession) -> str:
    job = await db.get(AnalysisJob, job_id)
    if job is None:
        return claimed_owner_id
    if job.owner_id != claimed_owner_id:
        logger.warning(
            "Callback ownerId does not match job owner; charging job owner",
            extra={"job_id": job_id, "owner_id": job.owner_id, "claimed_owner_id": claimed_owner_id},
        )
    return job.owner_id


async def _current_status(job_id: str, db: AsyncSession) -> JobStatus:
    job = await db.get(AnalysisJob, job_id, populate_existing=True)
    if job is None:
        raise JobNotFoundError(job_id)
    return JobStatus(job.status)
