"""Observable state for the assistant panel: prompt text, busy flag and chat log.

The container is passed explicitly to whoever needs it; the orchestration and
canvas services never import it.
"""
from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, List, Literal, Optional, Sequence

logger = logging.getLogger(__name__)

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str
    error: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))


@dataclass(frozen=True)
class AssistantSnapshot:
    instruction: str = ""
    is_thinking: bool = False
    messages: tuple[ChatMessage, ...] = ()
    last_instruction: Optional[str] = None
    last_error: Optional[str] = None
    last_summary: Optional[str] = None
    last_operations: Optional[tuple[str, ...]] = None


Listener = Callable[[AssistantSnapshot], None]


class AssistantState:
    def __init__(self) -> None:
        self._snapshot = AssistantSnapshot()
        self._listeners: List[Listener] = []

    @property
    def snapshot(self) -> AssistantSnapshot:
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that removes it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set(self, **changes) -> None:
        self._snapshot = replace(self._snapshot, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("assistant state listener failed")

    # ---- actions ----
    def set_instruction(self, value: str) -> None:
        self._set(instruction=value)

    def start_thinking(self) -> None:
        self._set(is_thinking=True, last_error=None)

    def finish_thinking(self) -> None:
        self._set(is_thinking=False)

    def set_error(self, message: Optional[str]) -> None:
        self._set(last_error=message, is_thinking=False)

    def set_last_result(
        self, instruction: str, summary: str, operations: Sequence[str] = ()
    ) -> None:
        """Record a successful turn; ``operations`` are the ids of the shapes it created."""

        self._set(
            last_instruction=instruction,
            last_summary=summary,
            last_operations=tuple(operations),
            is_thinking=False,
            last_error=None,
            instruction="",
        )

    def add_message(self, role: Role, content: str, *, error: bool = False) -> ChatMessage:
        message = ChatMessage(role=role, content=content, error=error)
        self._set(messages=self._snapshot.messages + (message,))
        return message

    def clear_messages(self) -> None:
        self._set(messages=())

    def reset(self) -> None:
        self._set(
            instruction="",
            is_thinking=False,
            messages=(),
            last_instruction=None,
            last_error=None,
            last_summary=None,
            last_operations=None,
        )


__all__ = ["AssistantSnapshot", "AssistantState", "ChatMessage"]
