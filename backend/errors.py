"""
Exception hierarchy for the voice engine.

Rules:
- Components raise these at their boundaries; provider-specific
  exceptions never leak past an adapter.
- Whether an error is fatal is decided by the component that classifies
  it (capture controller, playback queue), not by the exception type alone.
"""

from __future__ import annotations


class VoiceEngineError(Exception):
    """Base class for all voice engine errors."""


# =============================================================================
# Capture
# =============================================================================

class CaptureError(VoiceEngineError):
    """Speech capture failed."""


class RecognitionUnsupportedError(CaptureError):
    """No speech recognition provider is configured."""


class CapturePermissionError(CaptureError):
    """Microphone or recognition service access was denied."""


class CaptureDeviceError(CaptureError):
    """Microphone is missing, busy, or could not be opened."""


class CaptureStartTimeout(CaptureError):
    """The recognition provider never confirmed that it started listening."""


class CaptureNetworkError(CaptureError):
    """Repeated network failures from the recognition provider."""


class CaptureRestartExhausted(CaptureError):
    """The recognition provider kept ending; auto-restart gave up."""


# =============================================================================
# Playback
# =============================================================================

class PlaybackError(VoiceEngineError):
    """Speech playback failed."""


class SynthesisError(PlaybackError):
    """
    The synthesis endpoint rejected the request or could not be reached.

    status is the provider status code when one was returned.
    body is the provider error body (truncated) when one was returned.
    """

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class AudioDecodeError(PlaybackError):
    """Synthesized bytes could not be decoded into a playable buffer."""


class AudioOutputError(PlaybackError):
    """The audio output device is unavailable."""


# =============================================================================
# Dialogue
# =============================================================================

class DialogueError(VoiceEngineError):
    """The dialogue engine failed to produce a reply."""
