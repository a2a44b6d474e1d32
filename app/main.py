from __future__ import annotations

import json
import logging
import uuid
from typing import Any

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.config import JobServiceConfig, PollingConfig, get_settings
from app.errors import ConfigurationMissing, InvalidInput, JobPollError, PosterAssistantError
from app.schemas import PosterGenRequest, PosterGenResponse
from app.services.orchestrator import PosterOrchestrator

settings = get_settings()
LOG_LEVEL = settings.log_level

# uvicorn 日志级别统一
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("uvicorn").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.error").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.access").setLevel(LOG_LEVEL)
logging.getLogger("poster-assistant").setLevel(LOG_LEVEL)

logger = logging.getLogger("poster-assistant")
app = FastAPI(title="Poster Assistant API", version="1.0.0")

cors_allow_origins = settings.allowed_origins
allow_all = "*" in cors_allow_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allow_origins,
    allow_credentials=not allow_all,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)


@app.get("/", include_in_schema=False)
def root() -> dict[str, Any]:
    return {"service": "poster-assistant", "ok": True, "environment": settings.environment}


@app.head("/", include_in_schema=False)
def root_head() -> Response:
    return Response(status_code=200)


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


def _build_http_client(config: JobServiceConfig) -> httpx.AsyncClient:
    timeout = httpx.Timeout(config.request_timeout, connect=10.0)
    return httpx.AsyncClient(timeout=timeout)


def _ensure_trace_id(request: Request) -> str:
    trace = request.headers.get("X-Request-ID") or getattr(request.state, "trace_id", None)
    if not trace:
        trace = uuid.uuid4().hex[:8]
    request.state.trace_id = trace
    return trace


async def read_json_relaxed(request: Request) -> Any:
    body = await request.body()
    if not body:
        return {}
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise InvalidInput("Request body must be valid JSON.") from exc


def _error_response(exc: PosterAssistantError, trace: str) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_payload()),
        headers={"X-Request-Trace": trace},
    )


@app.post("/api/poster-gen", response_model=PosterGenResponse)
async def poster_gen(request: Request) -> JSONResponse:
    trace = _ensure_trace_id(request)
    config = JobServiceConfig.from_env()

    try:
        if not config.is_configured:
            raise ConfigurationMissing(config.missing)

        raw_payload = await read_json_relaxed(request)
        if not isinstance(raw_payload, dict):
            raise InvalidInput("Request body must be a JSON object.")
        try:
            payload = PosterGenRequest.model_validate(raw_payload)
        except ValidationError as exc:
            logger.warning(
                "poster-gen validation error",
                extra={"trace": trace, "errors": exc.errors(include_url=False)},
            )
            raise InvalidInput("Missing or invalid 'instruction' in request body.") from exc

        async with _build_http_client(config) as client:
            orchestrator = PosterOrchestrator(config, client, polling=PollingConfig.from_env())
            generated = await orchestrator.submit(
                payload.instruction, payload.canvas_context, trace_id=trace
            )
    except JobPollError as exc:
        logger.warning(
            "poster-gen job did not complete",
            extra={"trace": trace, "reason": exc.reason, "job_id": exc.job_id, "details": exc.details},
        )
        return _error_response(exc, trace)
    except PosterAssistantError as exc:
        log = logger.error if exc.status_code >= 500 else logger.info
        log("poster-gen rejected: %s", exc.message, extra={"trace": trace})
        return _error_response(exc, trace)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Error in /api/poster-gen", extra={"trace": trace})
        return JSONResponse(
            status_code=500,
            content={"error": "Unexpected server error", "details": str(exc) or repr(exc)},
            headers={"X-Request-Trace": trace},
        )

    result = generated.result
    response_payload = PosterGenResponse(
        mode=generated.mode,
        job_id=generated.job_id,
        image_url=result.image_url,
        elements=result.elements,
        reasoning=result.reasoning,
        raw_text=result.raw_text,
        empty=result.is_empty,
    )
    return JSONResponse(
        content=jsonable_encoder(response_payload.model_dump(by_alias=True)),
        headers={"X-Request-Trace": trace},
    )


__all__ = ["app"]
