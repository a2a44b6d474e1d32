from __future__ import annotations

import base64
import json
from io import BytesIO
from typing import Any

import httpx
import pytest
from PIL import Image

ENDPOINT = "https://api.jobs.example/v2/poster-endpoint/run"
STATUS_PREFIX = "https://api.jobs.example/v2/poster-endpoint/status/"


class FakeJobService:
    """Scripted stand-in for the queue API, served through ``httpx.MockTransport``."""

    def __init__(
        self,
        *,
        submit_status: int = 200,
        submit_body: Any = None,
        statuses: list[Any] | None = None,
    ) -> None:
        self.submit_status = submit_status
        self.submit_body = {"id": "job-1", "status": "IN_QUEUE"} if submit_body is None else submit_body
        self.statuses = list(statuses or [])
        self.submissions: list[dict[str, Any]] = []
        self.status_requests: list[httpx.Request] = []
        self.headers: list[httpx.Headers] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.headers.append(request.headers)
        if request.method == "POST":
            self.submissions.append({"url": str(request.url), "json": json.loads(request.content)})
            if isinstance(self.submit_body, (dict, list)):
                return httpx.Response(self.submit_status, json=self.submit_body)
            return httpx.Response(self.submit_status, text=str(self.submit_body))

        self.status_requests.append(request)
        if not self.statuses:
            return httpx.Response(404, text="no scripted status left")
        entry = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(entry, httpx.Response):
            return entry
        return httpx.Response(200, json=entry)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_png(width: int, height: int, color: tuple[int, int, int] = (20, 40, 200)) -> bytes:
    image = Image.new("RGB", (width, height), color)
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def make_data_url(width: int, height: int) -> str:
    encoded = base64.b64encode(make_png(width, height)).decode("ascii")
    return f"data:image/png;base64,{encoded}"


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def job_env(monkeypatch):
    monkeypatch.setenv("RUNPOD_API_KEY", "rp-test-key")
    monkeypatch.setenv("RUNPOD_ENDPOINT_URL", ENDPOINT)
    monkeypatch.delenv("RUNPOD_TEXT_ENDPOINT_URL", raising=False)
    monkeypatch.setenv("POSTER_POLL_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("POSTER_POLL_MAX_ATTEMPTS", "5")
    yield
