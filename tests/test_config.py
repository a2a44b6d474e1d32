from app.config import JobServiceConfig, PollingConfig, _parse_allowed_origins


def test_parse_allowed_origins_with_paths() -> None:
    raw = "https://example.com/app, https://demo.com/sub"
    assert _parse_allowed_origins(raw) == [
        "https://example.com",
        "https://demo.com",
    ]


def test_parse_allowed_origins_with_wildcard() -> None:
    assert _parse_allowed_origins("*") == ["*"]


def test_parse_allowed_origins_deduplicates_and_handles_empty() -> None:
    raw = " https://example.com/ , https://example.com ,"
    assert _parse_allowed_origins(raw) == ["https://example.com"]


def test_parse_allowed_origins_defaults_to_wildcard() -> None:
    assert _parse_allowed_origins("") == ["*"]


def test_job_service_config_reads_env(monkeypatch) -> None:
    monkeypatch.setenv("RUNPOD_API_KEY", "  rp-key ")
    monkeypatch.setenv("RUNPOD_ENDPOINT_URL", "https://api.jobs.example/v2/img/run")
    monkeypatch.setenv("RUNPOD_TEXT_ENDPOINT_URL", "https://api.jobs.example/v2/txt/run")
    monkeypatch.setenv("RUNPOD_REQUEST_TIMEOUT_SECONDS", "45")

    config = JobServiceConfig.from_env()

    assert config.api_key == "rp-key"
    assert config.is_configured
    assert config.missing == []
    assert config.request_timeout == 45.0
    assert config.endpoint_for("image") == "https://api.jobs.example/v2/img/run"
    assert config.endpoint_for("text") == "https://api.jobs.example/v2/txt/run"


def test_text_endpoint_falls_back_to_image_endpoint(monkeypatch) -> None:
    monkeypatch.setenv("RUNPOD_API_KEY", "rp-key")
    monkeypatch.setenv("RUNPOD_ENDPOINT_URL", "https://api.jobs.example/v2/img/run")
    monkeypatch.setenv("RUNPOD_TEXT_ENDPOINT_URL", "   ")

    config = JobServiceConfig.from_env()

    assert config.text_endpoint is None
    assert config.endpoint_for("text") == "https://api.jobs.example/v2/img/run"


def test_missing_settings_are_named(monkeypatch) -> None:
    monkeypatch.delenv("RUNPOD_API_KEY", raising=False)
    monkeypatch.setenv("RUNPOD_ENDPOINT_URL", "")
    monkeypatch.setenv("RUNPOD_TEXT_ENDPOINT_URL", "https://api.jobs.example/v2/txt/run")

    config = JobServiceConfig.from_env()

    assert not config.is_configured
    assert config.missing == ["RUNPOD_API_KEY", "RUNPOD_ENDPOINT_URL"]


def test_polling_config_defaults_and_bad_values(monkeypatch) -> None:
    monkeypatch.delenv("POSTER_POLL_INTERVAL_SECONDS", raising=False)
    monkeypatch.delenv("POSTER_POLL_MAX_ATTEMPTS", raising=False)
    assert PollingConfig.from_env() == PollingConfig(interval=2.0, max_attempts=60)

    monkeypatch.setenv("POSTER_POLL_INTERVAL_SECONDS", "soon")
    monkeypatch.setenv("POSTER_POLL_MAX_ATTEMPTS", "0")
    polling = PollingConfig.from_env()
    assert polling.interval == 2.0
    assert polling.max_attempts == 1


def test_polling_config_negative_interval_clamps_to_zero(monkeypatch) -> None:
    monkeypatch.setenv("POSTER_POLL_INTERVAL_SECONDS", "-3")
    monkeypatch.setenv("POSTER_POLL_MAX_ATTEMPTS", "12")

    assert PollingConfig.from_env() == PollingConfig(interval=0.0, max_attempts=12)
