"""
Voice session facade.

Responsibilities:
- Own one Runtime plus its capture / playback / dialogue components
- Expose the user operations (start, end, toggle mute)
- Publish a combined read-only snapshot to subscribers
- Forward consumer notifications (errors, saved memories, completion)

Non-responsibilities:
- No orchestration decisions (the reducer owns those)
- No transport (server.routes pushes snapshots over HTTP / WebSocket)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from uuid import uuid4

from adapters.llm.base import DialogueEngine
from capture.controller import SpeechCaptureController
from observability.logger import log_event
from orchestrator.enums.state import SessionState
from orchestrator.events import (
    EventType,
    MuteToggled,
    SessionEndRequested,
    SessionStartRequested,
)
from orchestrator.runtime import Runtime
from orchestrator.state_dataclass import OrchestratorState
from playback.queue import SynthesisPlaybackQueue


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


# ---------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------


@dataclass
class SessionComponents:
    """Side-effectful collaborators driven by the runtime."""

    capture: SpeechCaptureController
    playback: SynthesisPlaybackQueue
    dialogue: DialogueEngine


# Builds components whose callbacks point at the given runtime.
ComponentBuilder = Callable[[Runtime], SessionComponents]


# ---------------------------------------------------------------------
# VoiceSession
# ---------------------------------------------------------------------


class VoiceSession:
    """
    Hands-free voice conversation for a single user.

    Components are built on first use so a session can be created
    before credentials or devices are checked.
    """

    def __init__(
        self,
        *,
        build_components: ComponentBuilder,
        session_id: str | None = None,
        on_error: Callable[[str, bool], None] | None = None,
        on_memory_saved: Callable[[str], None] | None = None,
        on_complete: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self.session_id = session_id or str(uuid4())

        self._build_components = build_components
        self._components: SessionComponents | None = None

        self._on_error = on_error
        self._on_memory_saved = on_memory_saved
        self._on_complete = on_complete

        self._last_error: str | None = None
        self._listeners: list[Callable[[dict[str, Any]], None]] = []

        self.runtime = Runtime(
            session_id=self.session_id,
            on_error=self._handle_error,
            on_memory_saved=self._handle_memory_saved,
            on_conversation_complete=self._handle_complete,
        )
        self.runtime.subscribe(self._publish)

    # ------------------------------------------------------------------
    # Read-only surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> OrchestratorState:
        return self.runtime.state

    @property
    def agent_state(self) -> SessionState:
        return self.runtime.state.state

    @property
    def components(self) -> SessionComponents:
        if self._components is None:
            components = self._build_components(self.runtime)
            self.runtime.attach_capture(components.capture)
            self.runtime.attach_playback(components.playback)
            self.runtime.attach_dialogue(components.dialogue)
            self._components = components
        return self._components

    def snapshot(self) -> dict[str, Any]:
        """Combined session view for consumers (JSON-serializable)."""
        state = self.runtime.state

        live_transcript = ""
        history: list[dict[str, str]] = []
        if self._components is not None:
            live_transcript = self._components.capture.live_transcript
            history = [
                {"id": m.id, "role": m.role, "content": m.content}
                for m in self._components.dialogue.messages
            ]

        return {
            "session_id": self.session_id,
            "agent_state": state.state.value,
            "is_active": state.active,
            "is_muted": state.muted,
            "live_transcript": live_transcript,
            "conversation_history": history,
            "error": state.last_error or self._last_error,
        }

    def subscribe(self, listener: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        """Listener receives a fresh snapshot after every observable change."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    async def start_session(self) -> None:
        """
        Start the conversation.

        Returns once the microphone preflight has settled; a failed
        preflight leaves the session in ERROR with the reason in
        snapshot()["error"].
        """
        _ = self.components
        self._last_error = None
        await self.runtime.handle_event(
            SessionStartRequested(event_type=EventType.SESSION_START_REQUESTED, ts_ms=_now_ms())
        )

    async def end_session(self) -> None:
        if self._components is None:
            return
        await self.runtime.handle_event(
            SessionEndRequested(event_type=EventType.SESSION_END_REQUESTED, ts_ms=_now_ms())
        )

    async def toggle_mute(self) -> None:
        """Flip speech output; muting silences any reply in progress."""
        _ = self.components
        await self.runtime.handle_event(
            MuteToggled(event_type=EventType.MUTE_TOGGLED, ts_ms=_now_ms())
        )

    async def close(self) -> None:
        """End the session and release every component."""
        await self.end_session()
        await self.runtime.shutdown()

        if self._components is not None:
            self._components.capture.close()
            await self._components.playback.close()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_CLOSED",
            "session_id": self.session_id,
        })

    # ------------------------------------------------------------------
    # Runtime hooks
    # ------------------------------------------------------------------

    def _handle_error(self, reason: str, fatal: bool) -> None:
        self._last_error = reason
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_ERROR",
            "session_id": self.session_id,
            "reason": reason,
            "fatal": fatal,
        })
        if self._on_error is not None:
            self._on_error(reason, fatal)
        self._publish()

    def _handle_memory_saved(self, event_id: str) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "MEMORY_SAVED_DETECTED",
            "session_id": self.session_id,
            "memory_event_id": event_id or None,
        })
        if self._on_memory_saved is not None:
            self._on_memory_saved(event_id)

    async def _handle_complete(self) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "CONVERSATION_COMPLETE",
            "session_id": self.session_id,
        })
        await self.end_session()
        if self._on_complete is not None:
            await self._on_complete()

    def _publish(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in tuple(self._listeners):
            listener(snap)
