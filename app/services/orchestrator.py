"""Choose a generation mode, build the job input and run it through the poller."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import httpx

from app.config import JobServiceConfig, PollingConfig
from app.errors import ConfigurationMissing, InvalidInput
from app.schemas import GenerationMode, GenerationResult
from app.services.job_poller import JobPoller, Sleep
from app.services.response_parser import normalize

logger = logging.getLogger(__name__)

NO_TEXT_TEMPLATE = (
    "Poster background artwork only. Do not render any text, letters, numbers, "
    "captions, logos or watermarks anywhere in the image. Leave clean space for "
    "typography to be added later. Scene: "
)
IMAGE_SIZE_TOKEN = "1024*1024"
RANDOM_SEED = -1


@dataclass(frozen=True)
class GenerationRequest:
    instruction: str
    canvas_context: Optional[Mapping[str, Any]] = None

    @property
    def existing_image_url(self) -> Optional[str]:
        if not isinstance(self.canvas_context, Mapping):
            return None
        value = self.canvas_context.get("existingImageUrl")
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @property
    def mode(self) -> GenerationMode:
        return "text" if self.existing_image_url else "image"


@dataclass
class OrchestrationResult:
    mode: GenerationMode
    job_id: Optional[str]
    result: GenerationResult = field(default_factory=GenerationResult)


def build_request(instruction: Any, canvas_context: Any = None) -> GenerationRequest:
    if not isinstance(instruction, str) or not instruction.strip():
        raise InvalidInput("Missing or invalid 'instruction' in request body.")
    context = canvas_context if isinstance(canvas_context, Mapping) else None
    return GenerationRequest(instruction=instruction.strip(), canvas_context=context)


def build_job_input(request: GenerationRequest) -> dict[str, Any]:
    if request.mode == "text":
        return {
            "input": {
                "instruction": request.instruction,
                "canvasContext": dict(request.canvas_context or {}),
            }
        }
    return {
        "input": {
            "prompt": f"{NO_TEXT_TEMPLATE}{request.instruction}",
            "size": IMAGE_SIZE_TOKEN,
            "enable_safety_checker": True,
            "negative_prompt": "",
            "seed": RANDOM_SEED,
        }
    }


class PosterOrchestrator:
    """Stateless across calls; every ``submit`` builds its own job handle."""

    def __init__(
        self,
        config: JobServiceConfig,
        client: httpx.AsyncClient,
        *,
        polling: PollingConfig | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.polling = polling or PollingConfig()
        self._sleep = sleep

    def _poller(self) -> JobPoller:
        kwargs: dict[str, Any] = {
            "interval": self.polling.interval,
            "max_attempts": self.polling.max_attempts,
        }
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        return JobPoller(self.client, self.config.api_key or "", **kwargs)

    async def submit(
        self,
        instruction: Any,
        canvas_context: Any = None,
        *,
        trace_id: str | None = None,
    ) -> OrchestrationResult:
        request = build_request(instruction, canvas_context)
        if not self.config.is_configured:
            raise ConfigurationMissing(self.config.missing)

        mode = request.mode
        endpoint = self.config.endpoint_for(mode) or ""

        logger.info(
            "poster generation requested",
            extra={
                "trace": trace_id,
                "mode": mode,
                "instruction_len": len(request.instruction),
                "has_context": request.canvas_context is not None,
            },
        )
        outcome = await self._poller().run(endpoint, build_job_input(request), trace_id=trace_id)
        result = normalize(outcome.payload)
        logger.info(
            "poster generation finished",
            extra={
                "trace": trace_id,
                "mode": mode,
                "job_id": outcome.job_id,
                "polls": outcome.polls,
                "has_image": result.has_image,
                "element_count": len(result.elements),
            },
        )
        return OrchestrationResult(mode=mode, job_id=outcome.job_id, result=result)


__all__ = [
    "GenerationRequest",
    "IMAGE_SIZE_TOKEN",
    "NO_TEXT_TEMPLATE",
    "OrchestrationResult",
    "PosterOrchestrator",
    "build_job_input",
    "build_request",
]
