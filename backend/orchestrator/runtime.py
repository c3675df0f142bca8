"""
Runtime execution shell for a single voice session.

Responsibilities:
- Own orchestrator state
- Call pure reducer
- Execute commands with side effects (capture, playback, dialogue)
- Convert component callbacks into events
- Track fire-and-forget event tasks so tests and teardown can await them
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from adapters.llm.base import DialogueEngine
from capture.controller import SpeechCaptureController
from errors import AudioOutputError, CaptureError, DialogueError, PlaybackError
from observability.logger import log_event
from orchestrator.commands import (
    Command,
    CancelDialogue,
    EnqueueSpeech,
    LogEvent,
    NotifyConversationComplete,
    NotifyMemorySaved,
    ReportError,
    ResetTranscript,
    RunPreflight,
    SendToDialogue,
    StartCapture,
    StopCapture,
    StopPlayback,
)
from orchestrator.enums.state import CaptureState
from orchestrator.events import (
    CaptureFailed,
    CaptureStarted,
    CaptureStartFailed,
    DialogueFailed,
    DialogueReplyFinalized,
    Event,
    EventType,
    PlaybackEnded,
    PlaybackFailed,
    PlaybackStarted,
    PreflightFailed,
    PreflightSucceeded,
    UtteranceFinished,
    WelcomeRequested,
)
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import OrchestratorState
from playback.queue import SynthesisPlaybackQueue


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class Runtime:
    """
    Runtime execution boundary for a single voice session.

    Responsibilities:
    - Own the authoritative orchestrator state
    - Act as the universal event sink for the session
      (user operations, capture, playback, dialogue)
    - Invoke the pure reducer deterministically
    - Execute emitted commands with side effects

    Guarantees:
    - Reducer is always called exactly once per incoming event
    - State is swapped in before any side effect executes
    - Every handler reads the current snapshot at call time, never a
      copy captured earlier
    - Playback is stopped before capture starts; capture is stopped
      before audio plays

    Components are attached after construction because their callbacks
    point back at this runtime.
    """

    def __init__(
        self,
        *,
        session_id: str,
        initial_state: OrchestratorState | None = None,
        on_error: Callable[[str, bool], None] | None = None,
        on_memory_saved: Callable[[str], None] | None = None,
        on_conversation_complete: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._session_id = session_id
        self._state = initial_state or OrchestratorState()

        self._on_error = on_error
        self._on_memory_saved = on_memory_saved
        self._on_conversation_complete = on_conversation_complete

        self._capture: SpeechCaptureController | None = None
        self._playback: SynthesisPlaybackQueue | None = None
        self._dialogue: DialogueEngine | None = None
        self._unsubscribe_dialogue: Callable[[], None] | None = None

        self._listeners: list[Callable[[], None]] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._dialogue_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def attach_capture(self, capture: SpeechCaptureController) -> None:
        self._capture = capture

    def attach_playback(self, playback: SynthesisPlaybackQueue) -> None:
        self._playback = playback

    def attach_dialogue(self, dialogue: DialogueEngine) -> None:
        if self._unsubscribe_dialogue is not None:
            self._unsubscribe_dialogue()
        self._dialogue = dialogue
        self._unsubscribe_dialogue = dialogue.subscribe(self.on_dialogue_change)

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Listener is called after every observable change."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @property
    def state(self) -> OrchestratorState:
        """
        Return the current immutable orchestrator state.

        Consumers must never modify this state directly.
        """
        return self._state

    @property
    def session_id(self) -> str:
        return self._session_id

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the orchestration pipeline.

        Processing steps:
        1. Pass the current state and event to the pure reducer
        2. Atomically swap in the new orchestrator state
        3. Notify subscribers if the state changed
        4. Execute all emitted commands sequentially

        This method is the *only* entry point for events affecting
        orchestrator state.
        """
        prev = self._state
        new_state, commands = reduce(self._state, event)
        self._state = new_state

        if new_state != prev:
            self._publish()

        for cmd in commands:
            await self._execute_command(cmd)

    def emit(self, event: Event) -> None:
        """Fire-and-forget handle_event, tracked for settle()/shutdown()."""
        self._spawn(self.handle_event(event))

    async def settle(self) -> None:
        """Wait until no event or command task is outstanding."""
        while self._tasks:
            await asyncio.gather(*tuple(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """
        Cancel all outstanding tasks and detach from the dialogue engine.
        """
        if self._unsubscribe_dialogue is not None:
            self._unsubscribe_dialogue()
            self._unsubscribe_dialogue = None

        tasks = tuple(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Component callbacks
    # ------------------------------------------------------------------

    def on_utterance_end(self, text: str) -> None:
        self.emit(self._event(UtteranceFinished, EventType.UTTERANCE_FINISHED, text=text))

    def on_capture_error(self, exc: CaptureError) -> None:
        self.emit(self._event(CaptureFailed, EventType.CAPTURE_FAILED, reason=str(exc)))

    def on_transcript(self, text: str, is_final: bool) -> None:  # pylint: disable=unused-argument
        self._publish()

    def on_component_state_change(self, _state: object) -> None:
        self._publish()

    async def on_play_start(self) -> None:
        """Playback hook: release the microphone before audio starts."""
        capture = self._capture
        if capture is not None and capture.state in (CaptureState.LISTENING, CaptureState.CONNECTING):
            capture.stop_listening()
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CAPTURE_STOPPED_FOR_PLAYBACK",
                "session_id": self._session_id,
            })
        await self.handle_event(self._event(PlaybackStarted, EventType.PLAYBACK_STARTED))

    def on_play_end(self) -> None:
        self.emit(self._event(PlaybackEnded, EventType.PLAYBACK_ENDED))

    def on_playback_error(self, exc: PlaybackError) -> None:
        self.emit(
            self._event(
                PlaybackFailed,
                EventType.PLAYBACK_FAILED,
                reason=str(exc),
                fatal=isinstance(exc, AudioOutputError),
            )
        )

    def on_dialogue_change(self) -> None:
        self._publish()

        dialogue = self._dialogue
        if dialogue is None or dialogue.is_loading:
            return

        messages = dialogue.messages
        if not messages or messages[-1].role != "assistant":
            return

        last = messages[-1]
        self.emit(
            self._event(
                DialogueReplyFinalized,
                EventType.DIALOGUE_REPLY_FINALIZED,
                message_id=last.id,
                text=last.content,
            )
        )

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._session_id,
            })

        elif isinstance(cmd, RunPreflight):
            await self._run_preflight()

        elif isinstance(cmd, StartCapture):
            await self._start_capture()

        elif isinstance(cmd, StopCapture):
            assert self._capture is not None, "capture controller missing"
            self._capture.stop_listening()

        elif isinstance(cmd, ResetTranscript):
            assert self._capture is not None, "capture controller missing"
            self._capture.reset_transcript()

        elif isinstance(cmd, SendToDialogue):
            self._dialogue_task = self._spawn(self._send_to_dialogue(cmd.text))

        elif isinstance(cmd, CancelDialogue):
            self._cancel_dialogue()

        elif isinstance(cmd, EnqueueSpeech):
            assert self._playback is not None, "playback queue missing"
            self._playback.enqueue(cmd.text)
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SPEECH_ENQUEUED",
                "session_id": self._session_id,
                "message_id": cmd.message_id,
                "queue_length": self._playback.queue_length,
            })

        elif isinstance(cmd, StopPlayback):
            assert self._playback is not None, "playback queue missing"
            self._playback.stop()

        elif isinstance(cmd, ReportError):
            if self._on_error is not None:
                self._on_error(cmd.reason, cmd.fatal)

        elif isinstance(cmd, NotifyMemorySaved):
            if self._on_memory_saved is not None:
                self._on_memory_saved(cmd.event_id)

        elif isinstance(cmd, NotifyConversationComplete):
            if self._on_conversation_complete is not None:
                self._spawn(self._on_conversation_complete())

        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "UNKNOWN_COMMAND",
                "session_id": self._session_id,
                "command": type(cmd).__name__,
            })

    async def _run_preflight(self) -> None:
        assert self._capture is not None, "capture controller missing"

        try:
            started = await self._capture.start_listening()
        except CaptureError as exc:
            await self.handle_event(
                self._event(PreflightFailed, EventType.PREFLIGHT_FAILED, reason=str(exc))
            )
            return

        if not started:
            await self.handle_event(
                self._event(
                    PreflightFailed,
                    EventType.PREFLIGHT_FAILED,
                    reason="capture start superseded",
                )
            )
            return

        await self.handle_event(self._event(PreflightSucceeded, EventType.PREFLIGHT_SUCCEEDED))

        message_id, text = "", None
        if self._dialogue is not None and self._dialogue.messages:
            first = self._dialogue.messages[0]
            if first.role == "assistant":
                message_id, text = first.id, first.content

        await self.handle_event(
            self._event(
                WelcomeRequested,
                EventType.WELCOME_REQUESTED,
                message_id=message_id,
                text=text,
            )
        )

    async def _start_capture(self) -> None:
        assert self._capture is not None, "capture controller missing"

        playback = self._playback
        if playback is not None and (playback.is_playing or playback.is_busy):
            playback.stop()

        try:
            await self._capture.start_listening()
        except CaptureError as exc:
            await self.handle_event(
                self._event(CaptureStartFailed, EventType.CAPTURE_START_FAILED, reason=str(exc))
            )
            return

        # Also sent when the start was superseded; the reducer releases
        # capture if the session has moved on.
        await self.handle_event(self._event(CaptureStarted, EventType.CAPTURE_STARTED))

    async def _send_to_dialogue(self, text: str) -> None:
        assert self._dialogue is not None, "dialogue engine missing"

        try:
            await self._dialogue.append("user", text)
        except DialogueError as exc:
            await self.handle_event(
                self._event(DialogueFailed, EventType.DIALOGUE_FAILED, reason=str(exc))
            )

    def _cancel_dialogue(self) -> None:
        task, self._dialogue_task = self._dialogue_task, None
        if task is None or task.done() or task is asyncio.current_task():
            return

        task.cancel()
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "DIALOGUE_CANCELLED",
            "session_id": self._session_id,
        })

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _event(event_cls: type[Event], event_type: EventType, **fields: object) -> Event:
        return event_cls(event_type=event_type, ts_ms=_now_ms(), **fields)  # type: ignore[arg-type]

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task[None]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "RUNTIME_TASK_FAILED",
                "session_id": self._session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    def _publish(self) -> None:
        for listener in tuple(self._listeners):
            listener()
