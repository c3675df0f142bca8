"""
Authoritative state enumerations.

Rules:
- These enums define ONLY the observable states.
- No behavior, no helper methods, no side effects.
- Session transitions are defined exclusively in the reducer; capture and
  playback transitions are owned by their components.
"""

from __future__ import annotations

from enum import Enum


class SessionState(str, Enum):
    """
    High-level conversation states for a single voice session.

    These states represent orchestration intent, NOT device status
    and NOT adapter lifecycles.
    """

    IDLE = "idle"
    LISTENING = "listening"
    THINKING = "thinking"
    SPEAKING = "speaking"
    ERROR = "error"


class CaptureState(str, Enum):
    """Speech capture controller state."""

    IDLE = "idle"
    CONNECTING = "connecting"
    LISTENING = "listening"
    ERROR = "error"


class PlaybackState(str, Enum):
    """Synthesis playback queue state."""

    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    ERROR = "error"
