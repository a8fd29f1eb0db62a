from __future__ import annotations

from typing import Any, Dict

from ..logger import logger
from ..tasks import dispatch_analysis_task
from ..workers import ANALYZER_QUEUE


def dispatch(job_id: str, owner_id: str, image_uri: str, image_meta: Dict[str, Any]) -> None:
    """
    Hand a job to the worker queue and return at once.

    The submitter has been told "accepted" by the time anything here can go
    wrong, so failures are only logged. A job whose dispatch is lost stays
    `processing` until the client's poller gives up.
    """
    args = (job_id, owner_id, image_uri, image_meta)
    try:
        dispatch_analysis_task.apply_async(args=args, queue=ANALYZER_QUEUE)
        logger.info(f"Job {job_id} queued for analysis", extra={"job_id": job_id})
        return
    except Exception as e:
        logger.warning(f"apply_async failed for job {job_id}: {e}", extra={"job_id": job_id})

    try:
        dispatch_analysis_task.delay(*args)
        logger.info(f"Job {job_id} queued for analysis", extra={"job_id": job_id})
    except Exception as e:
        logger.error(
            f"Failed to queue job {job_id} for analysis: {e}",
            extra={"job_id": job_id, "owner_id": owner_id, "error": str(e)},
        )
