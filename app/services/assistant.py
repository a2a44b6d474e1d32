"""One assistant turn: instruction -> job service -> canvas -> chat log."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from app.errors import JobPollError, PosterAssistantError, UpstreamSubmissionFailed
from app.services.canvas import ApplicationOutcome, CanvasReconciler
from app.services.orchestrator import PosterOrchestrator
from app.services.surface import DrawingSurface
from app.state import AssistantState

logger = logging.getLogger(__name__)

_DETAIL_LIMIT = 240


def _excerpt(text: Any) -> str:
    value = str(text or "").strip()
    if len(value) <= _DETAIL_LIMIT:
        return value
    return f"{value[:_DETAIL_LIMIT]}…"


def format_error(exc: Exception) -> str:
    """Short, user-facing message with enough raw detail to diagnose."""

    if isinstance(exc, UpstreamSubmissionFailed):
        return f"{exc.message} (status {exc.status}): {_excerpt(exc.details)}"
    if isinstance(exc, JobPollError):
        return f"{exc.message} [{exc.reason}]: {_excerpt(exc.detail.get('details'))}"
    if isinstance(exc, PosterAssistantError):
        details = exc.detail.get("details")
        return f"{exc.message}: {_excerpt(details)}" if details else exc.message
    return f"Request failed: {_excerpt(exc) or exc.__class__.__name__}"


class PosterAssistant:
    def __init__(
        self,
        state: AssistantState,
        surface: DrawingSurface,
        orchestrator: PosterOrchestrator,
        reconciler: CanvasReconciler | None = None,
    ) -> None:
        self.state = state
        self.surface = surface
        self.orchestrator = orchestrator
        self.reconciler = reconciler or CanvasReconciler()

    async def run_turn(
        self,
        instruction: Optional[str] = None,
        *,
        canvas_context: Optional[Mapping[str, Any]] = None,
    ) -> Optional[ApplicationOutcome]:
        """Returns ``None`` when the turn was refused or failed."""

        text = instruction if instruction is not None else self.state.snapshot.instruction
        if self.state.snapshot.is_thinking:
            logger.info("turn refused while another request is in flight")
            return None
        if not text or not text.strip():
            return None

        text = text.strip()
        self.state.add_message("user", text)
        self.state.start_thinking()
        try:
            generated = await self.orchestrator.submit(text, canvas_context)
            outcome = await self.reconciler.apply(self.surface, generated.result)
        except (PosterAssistantError, httpx.HTTPError) as exc:
            message = format_error(exc)
            logger.warning("assistant turn failed: %s", message)
            self.state.add_message("assistant", message, error=True)
            self.state.set_error(message)
            return None
        finally:
            if self.state.snapshot.is_thinking:
                self.state.finish_thinking()

        self.state.add_message("assistant", outcome.message)
        self.state.set_last_result(text, outcome.message, outcome.shape_ids)
        return outcome


__all__ = ["PosterAssistant", "format_error"]
