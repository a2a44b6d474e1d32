import asyncio
import logging

import httpx
import pytest

from app.errors import JobFailed, JobTimeout, UnknownJobStatus, UpstreamSubmissionFailed
from app.services.job_poller import JobPoller, JobState, JobStatus, status_base_url
from conftest import ENDPOINT, STATUS_PREFIX, FakeJobService, RecordingSleep


def _run(service: FakeJobService, sleep: RecordingSleep, *, max_attempts: int = 60, body=None):
    async def _go():
        async with service.client() as client:
            poller = JobPoller(client, "rp-test-key", interval=2.0, max_attempts=max_attempts, sleep=sleep)
            return await poller.run(ENDPOINT, body or {"input": {"prompt": "x"}})

    return asyncio.run(_go())


def test_status_base_url_strips_run_suffix() -> None:
    assert status_base_url(ENDPOINT) == "https://api.jobs.example/v2/poster-endpoint"
    assert status_base_url("https://x.example/abc/run/") == "https://x.example/abc"
    assert status_base_url("https://x.example/abc/runsync") == "https://x.example/abc/runsync"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("IN_QUEUE", JobStatus.QUEUED),
        ("queued", JobStatus.QUEUED),
        ("IN_PROGRESS", JobStatus.RUNNING),
        ("RUNNING", JobStatus.RUNNING),
        ("COMPLETED", JobStatus.COMPLETED),
        ("FAILED", JobStatus.FAILED),
        ("CANCELLED", JobStatus.UNKNOWN),
        (None, JobStatus.UNKNOWN),
    ],
)
def test_status_parsing(raw, expected) -> None:
    assert JobStatus.parse(raw) is expected


def test_queued_running_completed_waits_twice_and_returns_payload(recording_sleep) -> None:
    final = {"id": "job-1", "status": "COMPLETED", "output": {"result": "https://cdn.example/p.png"}}
    service = FakeJobService(
        submit_body={"id": "job-1", "status": "QUEUED"},
        statuses=[{"id": "job-1", "status": "RUNNING"}, final],
    )

    outcome = _run(service, recording_sleep)

    assert recording_sleep.calls == [2.0, 2.0]
    assert outcome.payload == final
    assert outcome.job_id == "job-1"
    assert outcome.polls == 2
    assert [str(r.url) for r in service.status_requests] == [f"{STATUS_PREFIX}job-1"] * 2


def test_bearer_header_sent_on_submit_and_status(recording_sleep) -> None:
    service = FakeJobService(statuses=[{"id": "job-1", "status": "COMPLETED", "output": {}}])

    _run(service, recording_sleep)

    assert all(headers["authorization"] == "Bearer rp-test-key" for headers in service.headers)
    assert service.submissions[0]["json"] == {"input": {"prompt": "x"}}


def test_immediate_failed_skips_polling(recording_sleep) -> None:
    service = FakeJobService(submit_body={"id": "job-9", "status": "FAILED", "error": "OOM"})

    with pytest.raises(JobFailed) as excinfo:
        _run(service, recording_sleep)

    assert recording_sleep.calls == []
    assert service.status_requests == []
    assert excinfo.value.payload["error"] == "OOM"
    assert excinfo.value.job_id == "job-9"


def test_immediate_completed_returns_submission_payload(recording_sleep) -> None:
    body = {"id": "job-2", "status": "COMPLETED", "output": {"elements": []}}
    service = FakeJobService(submit_body=body)

    outcome = _run(service, recording_sleep)

    assert outcome.payload == body
    assert outcome.polls == 0 and outcome.waits == 0


def test_failed_after_polling(recording_sleep) -> None:
    service = FakeJobService(statuses=[{"status": "IN_PROGRESS"}, {"status": "FAILED", "error": "boom"}])

    with pytest.raises(JobFailed) as excinfo:
        _run(service, recording_sleep)
    assert "boom" in excinfo.value.details
    assert len(recording_sleep.calls) == 2


def test_unrecognised_status_is_terminal(recording_sleep) -> None:
    service = FakeJobService(statuses=[{"status": "CANCELLED"}])

    with pytest.raises(UnknownJobStatus) as excinfo:
        _run(service, recording_sleep)
    assert "CANCELLED" in excinfo.value.details
    assert len(service.status_requests) == 1


def test_never_terminal_hits_attempt_cap(recording_sleep) -> None:
    service = FakeJobService(statuses=[{"id": "job-1", "status": "IN_QUEUE"}])

    with pytest.raises(JobTimeout) as excinfo:
        _run(service, recording_sleep, max_attempts=60)

    assert len(service.status_requests) == 60
    assert len(recording_sleep.calls) == 60
    assert excinfo.value.reason == "timeout"


def test_submission_without_status_is_polled(recording_sleep) -> None:
    service = FakeJobService(submit_body={"id": "job-3"}, statuses=[{"status": "COMPLETED", "output": {}}])

    outcome = _run(service, recording_sleep)
    assert outcome.polls == 1


def test_submission_http_error_is_not_retried(recording_sleep) -> None:
    service = FakeJobService(submit_status=503, submit_body="worker pool exhausted")

    with pytest.raises(UpstreamSubmissionFailed) as excinfo:
        _run(service, recording_sleep)

    assert excinfo.value.status == 503
    assert excinfo.value.details == "worker pool exhausted"
    assert len(service.submissions) == 1
    assert service.status_requests == []


def test_submission_without_job_id_fails(recording_sleep) -> None:
    service = FakeJobService(submit_body={"status": "IN_QUEUE"})

    with pytest.raises(UpstreamSubmissionFailed, match="Job service submission failed"):
        _run(service, recording_sleep)


def test_status_http_error_is_terminal(recording_sleep) -> None:
    service = FakeJobService(statuses=[httpx.Response(500, text="status backend down")])

    with pytest.raises(JobFailed) as excinfo:
        _run(service, recording_sleep)
    assert "status query returned 500" in excinfo.value.details


def test_attempt_cap_moves_job_into_timeout_state(recording_sleep, caplog) -> None:
    service = FakeJobService(statuses=[{"id": "job-1", "status": "IN_PROGRESS"}])

    with caplog.at_level(logging.WARNING, logger="app.services.job_poller"):
        with pytest.raises(JobTimeout) as excinfo:
            _run(service, recording_sleep, max_attempts=3)

    capped = [record for record in caplog.records if record.getMessage() == "job polling cap reached"]
    assert len(capped) == 1
    assert capped[0].to == JobState.TIMEOUT.value
    assert getattr(capped[0], "from") == JobState.RUNNING.value
    assert "still RUNNING after 3 status checks" in excinfo.value.details
