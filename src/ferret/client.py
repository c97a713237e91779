"""Client for the asynchronous live-search backend.

The backend runs searches as jobs: a query is submitted, its status is polled,
and once it reports ``done`` the results can be fetched. Uses httpx with a
bearer API key. Every method raises a `BackendError` subclass when the backend
gives no usable answer; callers decide how to record that.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ferret.config import DEFAULT_BASE_URL
from ferret.exceptions import JobStatusFailure, JobSubmissionFailure, ResultFetchFailure
from ferret.models import JobStatus

logger = logging.getLogger(__name__)

# Backend wording -> job status
_STATUS_ALIASES: Dict[str, JobStatus] = {
    "submitted": "submitted",
    "queued": "pending",
    "pending": "pending",
    "in progress": "processing",
    "in_progress": "processing",
    "processing": "processing",
    "running": "processing",
    "done": "done",
    "completed": "done",
    "error": "error",
    "failed": "error",
    "timeout": "timeout",
    "timed out": "timeout",
}


def normalize_status(value: Any) -> Optional[JobStatus]:
    """Map a raw backend status to a job status, or None if unrecognized."""
    if not isinstance(value, str):
        return None
    return _STATUS_ALIASES.get(value.strip().lower())


def source_segment(platform: str) -> str:
    """URL segment for a platform type, e.g. "twitter-scraper" -> "twitter"."""
    return platform[: -len("-scraper")] if platform.endswith("-scraper") else platform


class SearchBackendClient:
    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = str(base_url).rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )

    async def submit_job(self, platform: str, query: str, max_results: int) -> str:
        """Submit a search job and return the backend-assigned job id."""
        payload = {
            "type": platform,
            "arguments": {"query": query, "max_results": int(max_results)},
        }
        try:
            async with self._client() as client:
                resp = await client.post(f"/search/live/{source_segment(platform)}", json=payload)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise JobSubmissionFailure(f"submit request failed: {exc}") from exc
        job_id = data.get("uuid") if isinstance(data, dict) else None
        if not job_id:
            error = data.get("error") if isinstance(data, dict) else None
            raise JobSubmissionFailure(f"backend returned no job id ({error or 'empty response'})")
        logger.debug("Submitted %s job %s for query %r", platform, job_id, query)
        return str(job_id)

    async def check_job_status(self, platform: str, job_id: str) -> JobStatus:
        """Poll a job and return its normalized status."""
        path = f"/search/live/{source_segment(platform)}/status/{job_id}"
        try:
            async with self._client() as client:
                resp = await client.get(path)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise JobStatusFailure(f"status request failed: {exc}", job_id=job_id) from exc
        raw = data.get("status") if isinstance(data, dict) else None
        status = normalize_status(raw)
        if status is None:
            raise JobStatusFailure(f"unrecognized job status: {raw!r}", job_id=job_id)
        return status

    async def get_job_results(self, platform: str, job_id: str) -> List[Dict[str, Any]]:
        """Fetch the raw result records of a finished job."""
        path = f"/search/live/{source_segment(platform)}/result/{job_id}"
        try:
            async with self._client() as client:
                resp = await client.get(path)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ResultFetchFailure(f"result request failed: {exc}", job_id=job_id) from exc
        # Some deployments wrap the list as {"results": [...]}
        if isinstance(data, dict):
            data = data.get("results")
        if not isinstance(data, list):
            raise ResultFetchFailure("backend returned no results", job_id=job_id)
        return [r for r in data if isinstance(r, dict)]
