"""
Recognition error classification.

Maps provider error codes onto how the capture controller reacts.
Pure functions only.
"""

from __future__ import annotations

from enum import Enum

from adapters.asr.base import RecognitionError, RecognitionErrorCode
from errors import CaptureDeviceError, CaptureError, CapturePermissionError


class ErrorCategory(str, Enum):
    """
    FATAL:
        Stop auto-restart, enter ERROR, surface to the user.
    IGNORABLE:
        Expected during normal operation; log only.
    NETWORK:
        Transient until it repeats network_error_threshold times in a row.
    OTHER:
        Unknown provider code; log only.
    """

    FATAL = "fatal"
    IGNORABLE = "ignorable"
    NETWORK = "network"
    OTHER = "other"


_FATAL_CODES = frozenset({
    RecognitionErrorCode.NOT_ALLOWED,
    RecognitionErrorCode.AUDIO_CAPTURE,
    RecognitionErrorCode.SERVICE_NOT_ALLOWED,
})

_IGNORABLE_CODES = frozenset({
    RecognitionErrorCode.NO_SPEECH,
    RecognitionErrorCode.ABORTED,
})


def classify(code: RecognitionErrorCode) -> ErrorCategory:
    if code in _FATAL_CODES:
        return ErrorCategory.FATAL
    if code in _IGNORABLE_CODES:
        return ErrorCategory.IGNORABLE
    if code is RecognitionErrorCode.NETWORK:
        return ErrorCategory.NETWORK
    return ErrorCategory.OTHER


def to_capture_error(error: RecognitionError) -> CaptureError:
    """Exception surfaced for a FATAL provider error."""
    detail = f" ({error.message})" if error.message else ""

    if error.code is RecognitionErrorCode.AUDIO_CAPTURE:
        return CaptureDeviceError(f"microphone capture failed{detail}")

    if error.code is RecognitionErrorCode.SERVICE_NOT_ALLOWED:
        return CapturePermissionError(f"speech recognition service not allowed{detail}")

    if error.code is RecognitionErrorCode.NOT_ALLOWED:
        return CapturePermissionError(f"microphone permission denied{detail}")

    return CaptureError(f"speech recognition failed: {error.code.value}{detail}")
