from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import AuthError, JobFetchError, JobNotFoundError, PersistError
from .schemas import JobPosting
from .settings import settings


def _headers(token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }


def _error_body(resp: requests.Response) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class JobsApi:
    """Client for the job endpoints: one read, one full-replacement write."""

    def __init__(self, base_url: Optional[str] = None, timeout_s: Optional[int] = None) -> None:
        self.base_url = (base_url or settings.api["base_url"]).rstrip("/")
        self.timeout_s = timeout_s or int(settings.api.get("request_timeout_s", 15))

    def job_url(self, job_id: str) -> str:
        return f"{self.base_url}/api/jobs/{job_id}"

    @retry(
        reraise=True,
        stop=stop_after_attempt(int(settings.api.get("read_max_attempts", 3))),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    )
    def fetch_job(self, job_id: str, token: str) -> JobPosting:
        resp = requests.get(self.job_url(job_id), headers=_headers(token), timeout=self.timeout_s)
        if resp.status_code == 401:
            raise AuthError("Not authenticated")
        if resp.status_code == 404:
            raise JobNotFoundError(f"Job not found: {job_id}")
        if not resp.ok:
            err = _error_body(resp)
            raise PersistError(err.get("error") or "Failed to fetch job", status_code=resp.status_code, details=err.get("details"))
        return JobPosting.model_validate(resp.json().get("job") or {})

    # Writes are never retried here; the user re-confirms instead.
    def update_job(self, job_id: Optional[str], payload: Dict[str, Any], token: str) -> Dict[str, Any]:
        if not job_id:
            raise PersistError("A job id is required to update a posting")
        try:
            resp = requests.put(
                self.job_url(job_id),
                headers=_headers(token),
                data=json.dumps(payload),
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise PersistError(f"Update failed: {exc}") from exc
        if not resp.ok:
            err = _error_body(resp)
            details = err.get("details")
            message = details or err.get("error") or f"Failed to update job ({resp.status_code})"
            raise PersistError(message, status_code=resp.status_code, details=details)
        body = _error_body(resp)
        return body.get("job") or {}

    async def get_job(self, job_id: str, token: str) -> JobPosting:
        try:
            return await asyncio.to_thread(self.fetch_job, job_id, token)
        except requests.RequestException as exc:
            raise JobFetchError(f"Could not load job {job_id}: {exc}") from exc

    async def put_job(self, job_id: Optional[str], payload: Dict[str, Any], token: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self.update_job, job_id, payload, token)
