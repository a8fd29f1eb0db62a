"""
Async HTTP client for the analysis API.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..logger import logger
from .errors import (
    AnalysisClientError,
    JobNotFoundClientError,
    QuotaExceededClientError,
    TransientClientError,
)
from .poller import JobPoller, PollOutcome


def _error_from_response(response: httpx.Response) -> AnalysisClientError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    code = str(body.get("error") or "HTTP_ERROR")
    message = str(body.get("message") or response.reason_phrase or "Request failed")

    if response.status_code >= 500:
        return TransientClientError(message, code, response.status_code)
    if code == "USAGE_LIMIT_EXCEEDED":
        return QuotaExceededClientError(message, code, response.status_code)
    if response.status_code == 404:
        return JobNotFoundClientError(message, code, response.status_code)
    return AnalysisClientError(message, code, response.status_code)


class AnalysisClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "AnalysisClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise TransientClientError(str(e), "NETWORK_ERROR") from e

        if response.is_success:
            return response.json()
        raise _error_from_response(response)

    async def submit(self, image_bytes: bytes, filename: str, content_type: str = "image/jpeg") -> str:
        """Upload a photo and return the new job id"""
        body = await self._request(
            "POST",
            "/analysis",
            files={"image": (filename, image_bytes, content_type)},
        )
        logger.info(f"Submitted {filename} as job {body['jobId']}", extra={"job_id": body["jobId"]})
        return body["jobId"]

    async def get_job(self, job_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/analysis/{job_id}")

    async def usage(self) -> Dict[str, Any]:
        return await self._request("GET", "/account/usage")

    def poller(self, job_id: str, **kwargs: Any) -> JobPoller:
        return JobPoller(job_id, self.get_job, **kwargs)

    async def poll(self, job_id: str, *, interval: Optional[float] = None, timeout: Optional[float] = None) -> PollOutcome:
        return await self.poller(job_id, interval=interval, timeout=timeout).run()

    async def analyze(
        self,
        image_bytes: bytes,
        filename: str,
        content_type: str = "image/jpeg",
        *,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> PollOutcome:
        """Submit a photo, then poll until it resolves or times out"""
        job_id = await self.submit(image_bytes, filename, content_type)
        return await self.poll(job_id, interval=interval, timeout=timeout)
