from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List
from urllib.parse import urlparse

DEFAULT_POLL_INTERVAL_SECONDS = 2.0
DEFAULT_POLL_MAX_ATTEMPTS = 60
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0


def _as_float(value: str | None, default: float, *, minimum: float = 0.0) -> float:
    """Parse a float from the environment, falling back on bad input."""

    if value is None or not value.strip():
        return default
    try:
        return max(float(value), minimum)
    except (TypeError, ValueError):
        return default


def _as_int(value: str | None, default: int, *, minimum: int = 1) -> int:
    if value is None or not value.strip():
        return default
    try:
        return max(int(value), minimum)
    except (TypeError, ValueError):
        return default


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    return text or None


@dataclass(frozen=True)
class JobServiceConfig:
    """Credentials and endpoints for the external generation job service."""

    api_key: str | None = None
    image_endpoint: str | None = None
    text_endpoint: str | None = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.image_endpoint)

    @property
    def missing(self) -> List[str]:
        names: List[str] = []
        if not self.api_key:
            names.append("RUNPOD_API_KEY")
        if not self.image_endpoint:
            names.append("RUNPOD_ENDPOINT_URL")
        return names

    def endpoint_for(self, mode: str) -> str | None:
        if mode == "text":
            return self.text_endpoint or self.image_endpoint
        return self.image_endpoint

    @classmethod
    def from_env(cls) -> "JobServiceConfig":
        return cls(
            api_key=_clean(os.getenv("RUNPOD_API_KEY")),
            image_endpoint=_clean(os.getenv("RUNPOD_ENDPOINT_URL")),
            text_endpoint=_clean(os.getenv("RUNPOD_TEXT_ENDPOINT_URL")),
            request_timeout=_as_float(
                os.getenv("RUNPOD_REQUEST_TIMEOUT_SECONDS"),
                DEFAULT_REQUEST_TIMEOUT_SECONDS,
                minimum=1.0,
            ),
        )


@dataclass(frozen=True)
class PollingConfig:
    interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS

    @classmethod
    def from_env(cls) -> "PollingConfig":
        return cls(
            interval=_as_float(
                os.getenv("POSTER_POLL_INTERVAL_SECONDS"), DEFAULT_POLL_INTERVAL_SECONDS
            ),
            max_attempts=_as_int(
                os.getenv("POSTER_POLL_MAX_ATTEMPTS"), DEFAULT_POLL_MAX_ATTEMPTS
            ),
        )


@dataclass
class Settings:
    environment: str
    allowed_origins: List[str]
    log_level: str


def _parse_allowed_origins(raw: str) -> List[str]:
    """Normalise comma-separated origins into values accepted by CORSMiddleware."""

    if not raw:
        return ["*"]

    cleaned: List[str] = []
    for origin in raw.split(","):
        value = origin.strip()
        if not value:
            continue
        if value == "*":
            return ["*"]

        parsed = urlparse(value)
        if parsed.scheme and parsed.netloc:
            normalised = f"{parsed.scheme}://{parsed.netloc}"
        else:
            normalised = value

        if normalised not in cleaned:
            cleaned.append(normalised)

    return cleaned or ["*"]


@lru_cache()
def get_settings() -> Settings:
    def _get(name: str, default: str | None = None) -> str | None:
        v = os.getenv(name)
        return v if v is not None else default

    return Settings(
        environment=_get("ENVIRONMENT", "development") or "development",
        allowed_origins=_parse_allowed_origins(_get("ALLOWED_ORIGINS", "*") or ""),
        log_level=(_get("LOG_LEVEL", "INFO") or "INFO").upper(),
    )
