"""
Analysis routes - submit a meal photo and read back the job
"""
from fastapi import APIRouter, Depends, UploadFile, File, Query
from sqlalchemy.ext.asyncio import AsyncSession
import uuid
from typing import Optional

from ..db import get_db
from ..models import AnalysisJob
from ..schemas import AnalysisJobList, AnalysisJobResponse, JobStatus, SubmitResponse
from ..auth import get_current_user, CurrentUser
from ..config import settings
from ..exceptions import InvalidRequestError, PersistenceError, QuotaExceededError, S3StorageError
from ..services import job_store, quota
from ..services.dispatcher import dispatch
from ..storage import delete_image, photo_key, put_image
from ..logger import logger

router = APIRouter(prefix="/analysis", tags=["Analysis"])

ALLOWED_CONTENT_TYPES = ("image/jpeg", "image/png", "image/webp", "image/heic")

def _job_to_response(job: AnalysisJob) -> AnalysisJobResponse:
    """Convert AnalysisJob model to response schema"""
    return AnalysisJobResponse(
        id=job.id,
        status=JobStatus(job.status),
        result=job.result,
        mealName=job.meal_name,
        totalCalories=job.total_calories,
        failureReason=job.failure_reason,
        createdAt=job.created_at,
        updatedAt=job.updated_at,
        completedAt=job.completed_at,
    )

@router.post("", response_model=SubmitResponse, status_code=202)
async def submit_analysis(
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Accept a meal photo and start analysis. Returns before the analyzer has seen it.
    """
    if image is None:
        raise InvalidRequestError("An image file is required", "MISSING_IMAGE")

    logger.info(
        "Analysis request received",
        extra={
            "owner_id": current_user.id,
            "uploaded_file": image.filename,
            "content_type": image.content_type,
        }
    )

    if image.content_type not in ALLOWED_CONTENT_TYPES:
        raise InvalidRequestError(f"Unsupported image type: {image.content_type}", "INVALID_IMAGE")

    data = await image.read()
    if not data:
        raise InvalidRequestError("The uploaded image is empty", "MISSING_IMAGE")
    if len(data) > settings.MAX_IMAGE_BYTES:
        raise InvalidRequestError(
            f"Image exceeds {settings.MAX_IMAGE_BYTES} bytes",
            "INVALID_IMAGE",
        )

    admission = await quota.admit(current_user.id, db)
    if not admission.allowed:
        raise QuotaExceededError(admission.usage_count, admission.limit)

    key = photo_key(current_user.id, uuid.uuid4().hex, image.filename)
    image_uri = put_image(data, key, image.content_type)

    try:
        job = await job_store.create(current_user.id, db, image_uri=image_uri)
    except PersistenceError:
        # no row points at the upload, so drop it
        try:
            delete_image(image_uri)
        except S3StorageError as e:
            logger.warning(f"Orphaned upload left in S3: {image_uri}", extra={"error": e.message})
        raise

    dispatch(
        job.id,
        current_user.id,
        image_uri,
        {"filename": image.filename, "content_type": image.content_type, "size": len(data)},
    )

    return SubmitResponse(jobId=job.id, status=JobStatus.PROCESSING)

@router.get("", response_model=AnalysisJobList)
async def list_analyses(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """List the caller's most recent analyses"""
    jobs = await job_store.list_for_owner(current_user.id, db, limit=limit)
    return AnalysisJobList(data=[_job_to_response(job) for job in jobs])

@router.get("/{job_id}", response_model=AnalysisJobResponse)
async def get_analysis(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Get status (and result, once complete) of one analysis"""
    job = await job_store.get(job_id, current_user.id, db)
    return _job_to_response(job)
