"""Error taxonomy shared by the orchestration, polling and canvas layers."""
from __future__ import annotations

from typing import Any


class PosterAssistantError(Exception):
    """Base error carrying an HTTP status and a structured ``detail`` payload."""

    status_code = 500

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        payload.update(self.detail)
        return payload


class InvalidInput(PosterAssistantError):
    status_code = 400


class ConfigurationMissing(PosterAssistantError):
    status_code = 500

    def __init__(self, missing: list[str]) -> None:
        names = ", ".join(missing) or "job service settings"
        super().__init__(
            f"Job service configuration missing. Please set {names} in your environment."
        )
        self.missing = list(missing)


class UpstreamSubmissionFailed(PosterAssistantError):
    """Submission to the job service returned a non-success response."""

    status_code = 502

    def __init__(self, status: int, details: str) -> None:
        super().__init__(
            "Job service submission failed",
            detail={"status": status, "details": details},
        )
        self.status = status
        self.details = details


class JobPollError(PosterAssistantError):
    """Terminal failure observed while tracking a submitted job."""

    status_code = 502
    reason = "job_failed"

    def __init__(self, message: str, *, job_id: str | None, payload: Any = None) -> None:
        super().__init__(
            "Job service request failed",
            detail={"reason": self.reason, "details": message},
        )
        self.details = message
        self.job_id = job_id
        self.payload = payload


class JobFailed(JobPollError):
    reason = "job_failed"


class UnknownJobStatus(JobPollError):
    reason = "unknown_status"


class JobTimeout(JobPollError):
    reason = "timeout"


class AssetLoadError(PosterAssistantError):
    """The generated image could not be fetched or decoded."""

    status_code = 502

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(
            "Generated image could not be loaded",
            detail={"url": url, "details": reason},
        )
        self.url = url
        self.reason = reason


__all__ = [
    "AssetLoadError",
    "ConfigurationMissing",
    "InvalidInput",
    "JobFailed",
    "JobPollError",
    "JobTimeout",
    "PosterAssistantError",
    "UnknownJobStatus",
    "UpstreamSubmissionFailed",
]
