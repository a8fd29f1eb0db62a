import asyncio
import traceback
from typing import Any, Dict
from .workers import celery_app
from .config import settings
from .db import AsyncSessionLocal, engine
from .exceptions import DispatchError, JobNotFoundError, PersistenceError, S3StorageError
from .services import job_store
from .services.analyzer_client import send_to_analyzer
from .storage import read_image
from .logger import logger

DISPATCH_FAILED = "DISPATCH_FAILED"


async def _mark_dispatch_failed(job_id: str) -> bool:
    async with AsyncSessionLocal() as db:
        try:
            return await job_store.fail(job_id, DISPATCH_FAILED, db)
        except (JobNotFoundError, PersistenceError) as e:
            logger.error(f"Could not mark job {job_id} as failed: {e}", extra={"job_id": job_id})
            return False


@celery_app.task(bind=True, acks_late=True, max_retries=None)
def dispatch_analysis_task(self, job_id: str, owner_id: str, image_uri: str, image_meta: Dict[str, Any]):
    """
    Celery task that delivers a meal photo to the external analyzer.
    """
    logger.info(f"Dispatching job: {job_id}", extra={"job_id": job_id, "attempt": self.request.retries + 1})
    try:
        image_bytes = read_image(image_uri)
        send_to_analyzer(job_id, owner_id, image_bytes, image_meta)
    except (DispatchError, S3StorageError) as e:
        if self.request.retries < settings.DISPATCH_MAX_RETRIES:
            logger.warning(
                f"Dispatch of job {job_id} failed, retrying: {e.message}",
                extra={"job_id": job_id, "attempt": self.request.retries + 1},
            )
            raise self.retry(exc=e, countdown=settings.DISPATCH_RETRY_DELAY_SECONDS)

        logger.error(
            f"Dispatch failed for job {job_id}: {e.message}",
            extra={
                "job_id": job_id,
                "owner_id": owner_id,
                "error": e.message,
                "traceback": traceback.format_exc(),
            }
        )
        if settings.DISPATCH_FAILURE_MARKS_JOB_FAILED:
            async def _run():
                try:
                    return await _mark_dispatch_failed(job_id)
                finally:
                    await engine.dispose()

            asyncio.run(_run())
        return {"job_id": job_id, "dispatched": False}

    return {"job_id": job_id, "dispatched": True}
