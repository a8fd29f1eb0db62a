"""
Outbound calls to the external meal analyzer.

The analyzer only acknowledges receipt here; the analysis itself comes back
later through the callback webhook.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

import requests

from ..config import settings
from ..exceptions import DispatchError
from ..logger import logger

USER_AGENT = "PlateCheck-Backend/1.0"


def build_form_fields(job_id: str, owner_id: str) -> Dict[str, str]:
    return {
        "analysisId": job_id,
        "userId": owner_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source": settings.ANALYZER_SOURCE,
    }


def send_to_analyzer(job_id: str, owner_id: str, image_bytes: bytes, image_meta: Dict[str, Any]) -> None:
    """POST the photo and job id to the analyzer. Raises DispatchError on any failure."""
    filename = image_meta.get("filename") or f"{job_id}.jpg"
    content_type = image_meta.get("content_type") or "image/jpeg"

    logger.info(
        f"Sending job {job_id} to analyzer",
        extra={"job_id": job_id, "owner_id": owner_id, "size": len(image_bytes)},
    )
    try:
        response = requests.post(
            settings.ANALYZER_WEBHOOK_URL,
            files={"image": (filename, image_bytes, content_type)},
            data=build_form_fields(job_id, owner_id),
            headers={"User-Agent": USER_AGENT},
            timeout=settings.DISPATCH_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        raise DispatchError(job_id, f"Analyzer unreachable: {e}") from e

    if not response.ok:
        raise DispatchError(
            job_id,
            f"Analyzer responded {response.status_code}: {response.text[:500]}",
        )

    logger.info(
        f"Analyzer accepted job {job_id}",
        extra={"job_id": job_id, "status_code": response.status_code},
    )
