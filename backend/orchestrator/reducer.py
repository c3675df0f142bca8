"""
Pure orchestrator reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from orchestrator.commands import (
    CancelDialogue,
    Command,
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
from orchestrator.detection import (
    detect_conversation_complete,
    detect_memory_saved,
    strip_control_markers,
)
from orchestrator.enums.state import SessionState
from orchestrator.events import (
    CaptureFailed,
    CaptureStarted,
    CaptureStartFailed,
    DialogueFailed,
    DialogueReplyFinalized,
    Event,
    MuteToggled,
    PlaybackEnded,
    PlaybackFailed,
    PlaybackStarted,
    PreflightFailed,
    PreflightSucceeded,
    SessionEndRequested,
    SessionStartRequested,
    UtteranceFinished,
    WelcomeRequested,
)
from orchestrator.state_dataclass import OrchestratorState

Result = tuple[OrchestratorState, tuple[Command, ...]]


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: OrchestratorState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "state": state.state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "active": state.active,
            "muted": state.muted,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(state: OrchestratorState, event: Event, reason: str) -> Result:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _emit(
    prev: OrchestratorState,
    new_state: OrchestratorState,
    event: Event,
    decision: str,
    commands: tuple[Command, ...] = (),
    details: dict[str, Any] | None = None,
) -> Result:
    """
    Bundle commands with the decision log, plus a state_changed log when
    the visible state moved.
    """
    logs: tuple[Command, ...] = (_log(new_state, event, decision, details),)
    if prev.state is not new_state.state:
        logs += (
            _log(
                new_state,
                event,
                "state_changed",
                {
                    "from_state": prev.state.value,
                    "to_state": new_state.state.value,
                    "source": decision,
                },
            ),
        )
    return new_state, _logs_last(commands + logs)


def _begin_listening(state: OrchestratorState) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """
    Enter LISTENING and request capture unless a request is already
    outstanding.

    A CaptureStarted that arrives after the state has moved on to
    THINKING or SPEAKING is stale and releases the microphone again.
    """
    state = replace(state, state=SessionState.LISTENING)
    if state.capture_requested:
        return state, ()
    return replace(state, capture_requested=True), (StartCapture(),)


def _enter_error(
    state: OrchestratorState,
    event: Event,
    reason: str,
    source: str,
) -> Result:
    """Fatal path: stop both devices, deactivate, surface the error."""
    new_state = replace(
        state,
        state=SessionState.ERROR,
        active=False,
        starting=False,
        capture_requested=False,
        last_error=reason,
    )
    return _emit(
        state,
        new_state,
        event,
        source,
        (
            StopCapture(),
            StopPlayback(),
            CancelDialogue(),
            ReportError(reason=reason, fatal=True),
        ),
        {"reason": reason},
    )


# =============================================================================
# Reducer
# =============================================================================

def reduce(state: OrchestratorState, event: Event) -> Result:
    """
    Pure reducer for the voice session state machine.

    Given the current orchestrator state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (state, event) pair is handled or explicitly ignored
    - Mutual exclusion: every command sequence that enqueues speech stops
      capture first, and every path into LISTENING other than preflight
      goes through StartCapture (which the runtime executes after
      stopping playback)
    """

    # ------------------------------------------------------------------
    # Session lifecycle (any state)
    # ------------------------------------------------------------------
    if isinstance(event, SessionEndRequested):
        if (
            state.state is SessionState.IDLE
            and not state.active
            and not state.starting
            and not state.capture_requested
        ):
            return _ignore(state, event, "session_not_running")

        new_state = replace(
            state,
            state=SessionState.IDLE,
            active=False,
            starting=False,
            capture_requested=False,
            last_error=None,
        )
        return _emit(
            state,
            new_state,
            event,
            "session_end",
            (StopCapture(), StopPlayback(), CancelDialogue(), ResetTranscript()),
        )

    if isinstance(event, SessionStartRequested):
        if state.active or state.starting:
            return _ignore(state, event, "session_already_running")

        new_state = replace(
            state,
            state=SessionState.IDLE,
            starting=True,
            capture_requested=False,
            last_dispatched_message_id=None,
            completion_handled=False,
            last_error=None,
        )
        return _emit(
            state,
            new_state,
            event,
            "session_start",
            (ResetTranscript(), RunPreflight()),
        )

    if isinstance(event, MuteToggled):
        muted = not state.muted
        new_state = replace(state, muted=muted)

        if not muted:
            return _emit(state, new_state, event, "unmuted")

        cmds: tuple[Command, ...] = (StopPlayback(),)
        if new_state.active and new_state.state is SessionState.SPEAKING:
            new_state, more = _begin_listening(new_state)
            cmds += more
        return _emit(state, new_state, event, "muted", cmds)

    # ------------------------------------------------------------------
    # Preflight
    # ------------------------------------------------------------------
    if isinstance(event, PreflightFailed):
        if not state.starting:
            return _ignore(state, event, "preflight_not_pending")
        return _enter_error(state, event, event.reason, "preflight_failed")

    if isinstance(event, PreflightSucceeded):
        if not state.starting:
            # Session ended while the microphone was starting
            return _emit(state, state, event, "preflight_after_end", (StopCapture(),))

        new_state = replace(
            state,
            state=SessionState.LISTENING,
            starting=False,
            active=True,
        )
        return _emit(state, new_state, event, "preflight_succeeded")

    if isinstance(event, WelcomeRequested):
        if not state.active or state.state is not SessionState.LISTENING:
            return _ignore(state, event, "welcome_not_applicable")

        text = strip_control_markers(event.text or "")
        if state.muted or not text:
            new_state = state
            if text:
                new_state = replace(state, last_dispatched_message_id=event.message_id)
            return _emit(
                state,
                new_state,
                event,
                "welcome_skipped",
                details={"muted": state.muted, "has_welcome": bool(text)},
            )

        new_state = replace(
            state,
            state=SessionState.SPEAKING,
            last_dispatched_message_id=event.message_id,
        )
        return _emit(
            state,
            new_state,
            event,
            "welcome_enqueued",
            (StopCapture(), EnqueueSpeech(text=text, message_id=event.message_id)),
            {"message_id": event.message_id, "chars": len(text)},
        )

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------
    if isinstance(event, CaptureStarted):
        new_state = replace(state, capture_requested=False)

        if not new_state.active or new_state.state is SessionState.ERROR:
            return _emit(state, new_state, event, "capture_started_inactive", (StopCapture(),))

        if new_state.state in (SessionState.THINKING, SessionState.SPEAKING):
            return _emit(
                state,
                new_state,
                event,
                "capture_started_while_busy",
                (StopCapture(),),
            )

        new_state = replace(new_state, state=SessionState.LISTENING)
        return _emit(state, new_state, event, "capture_started")

    if isinstance(event, CaptureStartFailed):
        if not state.active:
            return _ignore(replace(state, capture_requested=False), event, "capture_start_failed_inactive")
        return _enter_error(state, event, event.reason, "capture_start_failed")

    if isinstance(event, CaptureFailed):
        if not state.active and not state.starting:
            return _ignore(state, event, "capture_failed_inactive")
        return _enter_error(state, event, event.reason, "capture_failed")

    # ------------------------------------------------------------------
    # ERROR gating
    # ------------------------------------------------------------------
    if state.state is SessionState.ERROR:
        return _ignore(state, event, "in_error_state")

    if isinstance(event, UtteranceFinished):
        if not state.active:
            return _ignore(state, event, "inactive")
        if state.state is not SessionState.LISTENING:
            return _ignore(state, event, f"utterance_in_{state.state.value}")

        text = event.text.strip()
        if not text:
            return _ignore(state, event, "blank_utterance")

        new_state = replace(state, state=SessionState.THINKING)
        return _emit(
            state,
            new_state,
            event,
            "utterance_to_dialogue",
            (StopCapture(), SendToDialogue(text=text)),
            {"chars": len(text)},
        )

    # ------------------------------------------------------------------
    # Dialogue
    # ------------------------------------------------------------------
    if isinstance(event, DialogueReplyFinalized):
        return _reduce_reply(state, event)

    if isinstance(event, DialogueFailed):
        if not state.active:
            return _ignore(state, event, "inactive")
        if state.state is not SessionState.THINKING:
            return _ignore(state, event, f"dialogue_failed_in_{state.state.value}")

        new_state, cmds = _begin_listening(state)
        return _emit(
            state,
            new_state,
            event,
            "dialogue_failed",
            (ReportError(reason=event.reason, fatal=False),) + cmds,
            {"reason": event.reason},
        )

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    if isinstance(event, PlaybackStarted):
        if state.state is not SessionState.SPEAKING:
            return _ignore(state, event, f"playback_started_in_{state.state.value}")
        return _emit(state, state, event, "playback_started")

    if isinstance(event, PlaybackEnded):
        if state.state is not SessionState.SPEAKING:
            return _ignore(state, event, f"playback_ended_in_{state.state.value}")

        if not state.active:
            new_state = replace(state, state=SessionState.IDLE)
            return _emit(state, new_state, event, "playback_ended_inactive")

        new_state, cmds = _begin_listening(state)
        return _emit(state, new_state, event, "playback_ended", cmds)

    if isinstance(event, PlaybackFailed):
        if event.fatal:
            if not state.active:
                return _ignore(state, event, "playback_failed_inactive")
            return _enter_error(state, event, event.reason, "playback_failed")

        return _emit(
            state,
            state,
            event,
            "playback_entry_failed",
            (ReportError(reason=event.reason, fatal=False),),
            {"reason": event.reason},
        )

    return _ignore(state, event, "unhandled_event")


def _reduce_reply(state: OrchestratorState, event: DialogueReplyFinalized) -> Result:
    if not state.active:
        return _ignore(state, event, "inactive")

    if event.message_id == state.last_dispatched_message_id:
        return _ignore(state, event, "reply_already_dispatched")

    # Only the reply to the outstanding utterance may be spoken
    if state.state is not SessionState.THINKING:
        return _ignore(state, event, f"reply_in_{state.state.value}")

    spoken = strip_control_markers(event.text)

    new_state = replace(state, last_dispatched_message_id=event.message_id)
    cmds: tuple[Command, ...] = ()

    # Reply inspection runs whether or not the reply is spoken
    if not new_state.completion_handled and detect_conversation_complete(event.text):
        new_state = replace(new_state, completion_handled=True)
        cmds += (NotifyConversationComplete(),)

    event_id = detect_memory_saved(event.text)
    if event_id is not None:
        cmds += (NotifyMemorySaved(event_id=event_id),)

    details = {"message_id": event.message_id, "chars": len(spoken)}

    if new_state.muted or not spoken:
        new_state, more = _begin_listening(new_state)
        decision = "reply_muted" if new_state.muted else "reply_not_spoken"
        return _emit(state, new_state, event, decision, cmds + more, details)

    new_state = replace(new_state, state=SessionState.SPEAKING)
    return _emit(
        state,
        new_state,
        event,
        "reply_enqueued",
        (StopCapture(), EnqueueSpeech(text=spoken, message_id=event.message_id)) + cmds,
        details,
    )
