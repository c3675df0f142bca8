"""
Unified event definitions for the orchestrator reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # User control
    # ------------------------------------------------------------------
    SESSION_START_REQUESTED = "SESSION_START_REQUESTED"
    SESSION_END_REQUESTED = "SESSION_END_REQUESTED"
    MUTE_TOGGLED = "MUTE_TOGGLED"

    # ------------------------------------------------------------------
    # Preflight / welcome
    # ------------------------------------------------------------------
    PREFLIGHT_SUCCEEDED = "PREFLIGHT_SUCCEEDED"
    PREFLIGHT_FAILED = "PREFLIGHT_FAILED"
    WELCOME_REQUESTED = "WELCOME_REQUESTED"

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------
    CAPTURE_STARTED = "CAPTURE_STARTED"
    CAPTURE_START_FAILED = "CAPTURE_START_FAILED"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    UTTERANCE_FINISHED = "UTTERANCE_FINISHED"

    # ------------------------------------------------------------------
    # Dialogue
    # ------------------------------------------------------------------
    DIALOGUE_REPLY_FINALIZED = "DIALOGUE_REPLY_FINALIZED"
    DIALOGUE_FAILED = "DIALOGUE_FAILED"

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    PLAYBACK_STARTED = "PLAYBACK_STARTED"
    PLAYBACK_ENDED = "PLAYBACK_ENDED"
    PLAYBACK_FAILED = "PLAYBACK_FAILED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# User Control Events
# =============================================================================

@dataclass(frozen=True)
class SessionStartRequested(Event):
    """User asked to start the voice session."""


@dataclass(frozen=True)
class SessionEndRequested(Event):
    """User asked to end the voice session."""


@dataclass(frozen=True)
class MuteToggled(Event):
    """User flipped the mute switch (speech output only)."""


# =============================================================================
# Preflight / Welcome Events
# =============================================================================

@dataclass(frozen=True)
class PreflightSucceeded(Event):
    """Microphone and recognition confirmed; capture is live."""


@dataclass(frozen=True)
class PreflightFailed(Event):
    """Microphone or recognition could not be started."""
    reason: str


@dataclass(frozen=True)
class WelcomeRequested(Event):
    """
    Runtime looked up the welcome message after a successful preflight.

    text is None when the dialogue history has no welcome message.
    """
    message_id: str
    text: str | None


# =============================================================================
# Capture Events
# =============================================================================

@dataclass(frozen=True)
class CaptureStarted(Event):
    """Capture controller confirmed it is listening."""


@dataclass(frozen=True)
class CaptureStartFailed(Event):
    """A requested capture start raised."""
    reason: str


@dataclass(frozen=True)
class CaptureFailed(Event):
    """Capture controller hit a fatal error while running."""
    reason: str


@dataclass(frozen=True)
class UtteranceFinished(Event):
    """
    The user finished a speaking turn.

    Text is the accumulated final transcript for the turn.
    """
    text: str


# =============================================================================
# Dialogue Events
# =============================================================================

@dataclass(frozen=True)
class DialogueReplyFinalized(Event):
    """
    The dialogue engine is idle and its last message is from the assistant.

    May be emitted more than once for the same message_id.
    """
    message_id: str
    text: str


@dataclass(frozen=True)
class DialogueFailed(Event):
    """The dialogue engine failed to produce a reply."""
    reason: str


# =============================================================================
# Playback Events
# =============================================================================

@dataclass(frozen=True)
class PlaybackStarted(Event):
    """Audio for a queue entry started playing."""


@dataclass(frozen=True)
class PlaybackEnded(Event):
    """The playback queue drained."""


@dataclass(frozen=True)
class PlaybackFailed(Event):
    """
    A playback queue entry failed.

    fatal is True when the audio output device itself is unavailable.
    """
    reason: str
    fatal: bool = False
