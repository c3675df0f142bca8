"""
Dialogue engine contract.

Purpose:
- Hold the conversation history the session consumes.
- Accept user messages and produce assistant replies.
- Tell listeners about every change (including streaming deltas).

Rules:
- No knowledge of capture, playback, or the session state machine.
- Listeners are plain sync callables invoked on the event loop.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Literal

from observability.logger import log_component

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class Message:
    """One conversation message."""
    id: str
    role: Role
    content: str


class DialogueEngine(ABC):
    """
    Abstract dialogue engine.

    Observable surface:
    - messages: full history, oldest first
    - is_loading: True while a reply is being produced
    - subscribe(listener): called after every change
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[[], None]] = []

    @property
    @abstractmethod
    def messages(self) -> tuple[Message, ...]:
        raise NotImplementedError

    @property
    @abstractmethod
    def is_loading(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def append(self, role: Role, content: str) -> None:
        """
        Append a message. A user message triggers an assistant reply.

        Raises:
            DialogueError if the reply could not be produced.
        """
        raise NotImplementedError

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in tuple(self._listeners):
            try:
                listener()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_component(
                    "dialogue",
                    "LISTENER_FAILED",
                    exception=type(exc).__name__,
                    message=str(exc),
                )
