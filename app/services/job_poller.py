"""Submit a job to the queue-backed generation service and poll it to completion.

States: SUBMITTED -> QUEUED -> RUNNING -> COMPLETED | FAILED | TIMEOUT | UNKNOWN.
Polling uses a fixed interval and a hard cap on status queries.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx

from app.config import DEFAULT_POLL_INTERVAL_SECONDS, DEFAULT_POLL_MAX_ATTEMPTS
from app.errors import JobFailed, JobTimeout, UnknownJobStatus, UpstreamSubmissionFailed

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: Any) -> "JobStatus":
        if not isinstance(raw, str):
            return cls.UNKNOWN
        return _STATUS_ALIASES.get(raw.strip().upper(), cls.UNKNOWN)


_STATUS_ALIASES = {
    "QUEUED": JobStatus.QUEUED,
    "IN_QUEUE": JobStatus.QUEUED,
    "RUNNING": JobStatus.RUNNING,
    "IN_PROGRESS": JobStatus.RUNNING,
    "COMPLETED": JobStatus.COMPLETED,
    "FAILED": JobStatus.FAILED,
}
_ACTIVE = {JobStatus.QUEUED, JobStatus.RUNNING}


class JobState(str, Enum):
    SUBMITTED = "SUBMITTED"
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class JobHandle:
    job_id: str
    status_endpoint: str


@dataclass(frozen=True)
class JobOutcome:
    job_id: Optional[str]
    payload: dict[str, Any]
    polls: int
    waits: int


def status_base_url(endpoint: str) -> str:
    """``https://api.example/v2/abc/run`` -> ``https://api.example/v2/abc``."""

    base = endpoint.rstrip("/")
    if base.endswith("/run"):
        base = base[: -len("/run")]
    return base


def _preview(text: str, limit: int = 300) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}…(+{len(text) - limit} chars)"


class JobPoller:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        *,
        interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.interval = interval
        self.max_attempts = max(1, max_attempts)
        self._sleep = sleep

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def run(self, endpoint: str, body: dict[str, Any], *, trace_id: str | None = None) -> JobOutcome:
        """Submit ``body`` to ``endpoint`` and return the terminal payload."""

        submit_status, initial = await self._submit(endpoint, body)
        job_id = initial.get("id")
        job_id = str(job_id) if job_id not in (None, "") else None
        status = JobStatus.parse(initial.get("status")) if "status" in initial else None

        logger.info(
            "job submitted",
            extra={"trace": trace_id, "job_id": job_id, "status": initial.get("status")},
        )

        if status is not None and status not in _ACTIVE:
            # the service answered synchronously; nothing to poll
            self._finish(status, initial, job_id, trace_id)
            return JobOutcome(job_id=job_id, payload=initial, polls=0, waits=0)

        if job_id is None:
            raise UpstreamSubmissionFailed(
                submit_status, f"submission response carried no job id: {_preview(str(initial))}"
            )

        handle = JobHandle(
            job_id=job_id,
            status_endpoint=f"{status_base_url(endpoint)}/status/{job_id}",
        )
        return await self._poll(handle, status, trace_id)

    async def _submit(self, endpoint: str, body: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        response = await self.client.post(endpoint, json=body, headers=self.headers)
        if not response.is_success:
            raise UpstreamSubmissionFailed(response.status_code, response.text)
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamSubmissionFailed(response.status_code, response.text) from exc
        if not isinstance(data, dict):
            raise UpstreamSubmissionFailed(response.status_code, response.text)
        return response.status_code, data

    async def _fetch_status(self, handle: JobHandle) -> dict[str, Any]:
        response = await self.client.get(handle.status_endpoint, headers=self.headers)
        if not response.is_success:
            raise JobFailed(
                f"status query returned {response.status_code}: {_preview(response.text)}",
                job_id=handle.job_id,
                payload=response.text,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise UnknownJobStatus(
                f"status query returned non-JSON body: {_preview(response.text)}",
                job_id=handle.job_id,
                payload=response.text,
            ) from exc
        return data if isinstance(data, dict) else {"status": None, "output": data}

    async def _poll(
        self, handle: JobHandle, status: JobStatus | None, trace_id: str | None
    ) -> JobOutcome:
        state = JobState.SUBMITTED if status is None else JobState(status.value)
        payload: dict[str, Any] = {}
        polls = 0
        waits = 0

        while state in (JobState.SUBMITTED, JobState.QUEUED, JobState.RUNNING):
            if polls >= self.max_attempts:
                last_seen, state = state, JobState.TIMEOUT
                logger.warning(
                    "job polling cap reached",
                    extra={
                        "trace": trace_id,
                        "job_id": handle.job_id,
                        "from": last_seen.value,
                        "to": state.value,
                        "polls": polls,
                    },
                )
                raise JobTimeout(
                    f"job {handle.job_id} still {last_seen.value} after {polls} status checks",
                    job_id=handle.job_id,
                    payload=payload or None,
                )
            await self._sleep(self.interval)
            waits += 1
            payload = await self._fetch_status(handle)
            polls += 1
            previous = state
            state = JobState(JobStatus.parse(payload.get("status")).value)
            if state is not previous:
                logger.info(
                    "job state changed",
                    extra={
                        "trace": trace_id,
                        "job_id": handle.job_id,
                        "from": previous.value,
                        "to": state.value,
                        "polls": polls,
                    },
                )

        self._finish(JobStatus(state.value), payload, handle.job_id, trace_id)
        return JobOutcome(job_id=handle.job_id, payload=payload, polls=polls, waits=waits)

    def _finish(
        self, status: JobStatus, payload: dict[str, Any], job_id: str | None, trace_id: str | None
    ) -> None:
        if status is JobStatus.COMPLETED:
            logger.info("job completed", extra={"trace": trace_id, "job_id": job_id})
            return
        if status is JobStatus.FAILED:
            error = payload.get("error") or payload.get("output") or "no error detail"
            raise JobFailed(f"job {job_id} failed: {_preview(str(error))}", job_id=job_id, payload=payload)
        raw = payload.get("status")
        raise UnknownJobStatus(
            f"job {job_id} reported unrecognised status {raw!r}", job_id=job_id, payload=payload
        )


__all__ = [
    "JobHandle",
    "JobOutcome",
    "JobPoller",
    "JobState",
    "JobStatus",
    "status_base_url",
]
