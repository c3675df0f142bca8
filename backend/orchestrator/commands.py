"""
Side-effect command definitions for the orchestrator.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Capture
    RUN_PREFLIGHT = "RUN_PREFLIGHT"
    START_CAPTURE = "START_CAPTURE"
    STOP_CAPTURE = "STOP_CAPTURE"
    RESET_TRANSCRIPT = "RESET_TRANSCRIPT"

    # Dialogue
    SEND_TO_DIALOGUE = "SEND_TO_DIALOGUE"
    CANCEL_DIALOGUE = "CANCEL_DIALOGUE"

    # Playback
    ENQUEUE_SPEECH = "ENQUEUE_SPEECH"
    STOP_PLAYBACK = "STOP_PLAYBACK"

    # Consumer notifications
    REPORT_ERROR = "REPORT_ERROR"
    NOTIFY_MEMORY_SAVED = "NOTIFY_MEMORY_SAVED"
    NOTIFY_CONVERSATION_COMPLETE = "NOTIFY_CONVERSATION_COMPLETE"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Capture Commands
# =============================================================================

@dataclass(frozen=True)
class RunPreflight(Command):
    """
    Start capture for a new session.

    The runtime reports the outcome as PreflightSucceeded (followed by
    WelcomeRequested) or PreflightFailed.
    """
    command_type: CommandType = CommandType.RUN_PREFLIGHT


@dataclass(frozen=True)
class StartCapture(Command):
    """
    Begin listening.

    The runtime stops playback first if it is playing, then reports
    CaptureStarted or CaptureStartFailed.
    """
    command_type: CommandType = CommandType.START_CAPTURE


@dataclass(frozen=True)
class StopCapture(Command):
    """Stop listening and release the microphone."""
    command_type: CommandType = CommandType.STOP_CAPTURE


@dataclass(frozen=True)
class ResetTranscript(Command):
    """Clear the live transcript without touching capture."""
    command_type: CommandType = CommandType.RESET_TRANSCRIPT


# =============================================================================
# Dialogue Commands
# =============================================================================

@dataclass(frozen=True)
class SendToDialogue(Command):
    """Append a user message to the dialogue engine."""
    text: str
    command_type: CommandType = CommandType.SEND_TO_DIALOGUE


@dataclass(frozen=True)
class CancelDialogue(Command):
    """Abandon an outstanding dialogue request; its reply is never delivered."""
    command_type: CommandType = CommandType.CANCEL_DIALOGUE


# =============================================================================
# Playback Commands
# =============================================================================

@dataclass(frozen=True)
class EnqueueSpeech(Command):
    """Hand a complete text segment to the playback queue."""
    text: str
    message_id: str
    command_type: CommandType = CommandType.ENQUEUE_SPEECH


@dataclass(frozen=True)
class StopPlayback(Command):
    """Hard-stop the playback queue."""
    command_type: CommandType = CommandType.STOP_PLAYBACK


# =============================================================================
# Consumer Notification Commands
# =============================================================================

@dataclass(frozen=True)
class ReportError(Command):
    """Surface an error message to downstream consumers."""
    reason: str
    fatal: bool
    command_type: CommandType = CommandType.REPORT_ERROR


@dataclass(frozen=True)
class NotifyMemorySaved(Command):
    """
    An assistant reply announced that a memory was saved.

    event_id is empty when the reply carried no identifier.
    """
    event_id: str
    command_type: CommandType = CommandType.NOTIFY_MEMORY_SAVED


@dataclass(frozen=True)
class NotifyConversationComplete(Command):
    """The assistant declared the conversation complete."""
    command_type: CommandType = CommandType.NOTIFY_CONVERSATION_COMPLETE


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
