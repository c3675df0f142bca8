"""
Speech-recognition provider contract.

This module defines the *interface only*. No silence timers, restart
policy, or error classification live here; those belong to the capture
controller.

Key invariants:
- A provider instance serves exactly one recognition run. The capture
  controller builds a fresh instance for every (re)start.
- Providers report through the four callbacks and never raise out of
  start() / stop() / abort().
- Callbacks are invoked on the event loop thread.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable


class RecognitionErrorCode(str, Enum):
    """
    Provider error codes understood by the capture controller.

    Providers map their native failures onto these codes.
    """

    NOT_ALLOWED = "not-allowed"
    SERVICE_NOT_ALLOWED = "service-not-allowed"
    AUDIO_CAPTURE = "audio-capture"
    NO_SPEECH = "no-speech"
    ABORTED = "aborted"
    NETWORK = "network"
    OTHER = "other"


@dataclass(frozen=True)
class RecognitionAlternative:
    """One recognized fragment."""
    transcript: str
    is_final: bool


@dataclass(frozen=True)
class RecognitionResultBatch:
    """
    A batch of fragments delivered together.

    Final and interim pieces may be mixed; the controller concatenates
    each kind separately.
    """
    results: tuple[RecognitionAlternative, ...]


@dataclass(frozen=True)
class RecognitionError:
    """Provider error notification."""
    code: RecognitionErrorCode
    message: str = ""


class RecognitionProvider(ABC):
    """
    Abstract continuous speech-recognition provider.

    Configuration attributes are set by the controller before start():
    - continuous: keep recognizing across pauses
    - interim_results: deliver non-final fragments
    - language: BCP-47 language tag

    Callbacks (all optional until start()):
    - on_start(): recognition is live
    - on_result(batch): fragments arrived
    - on_error(error): provider failure, see RecognitionErrorCode
    - on_end(): the run ended (always the last callback of a run)
    """

    def __init__(self) -> None:
        self.continuous: bool = True
        self.interim_results: bool = True
        self.language: str = "en"

        self.on_start: Callable[[], None] | None = None
        self.on_result: Callable[[RecognitionResultBatch], None] | None = None
        self.on_error: Callable[[RecognitionError], None] | None = None
        self.on_end: Callable[[], None] | None = None

    @abstractmethod
    def start(self) -> None:
        """
        Begin recognition.

        Returns immediately; on_start fires once the provider is live, or
        on_error/on_end fire if it never gets there.
        """
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """
        Graceful stop: flush pending results, then on_end.
        """
        raise NotImplementedError

    @abstractmethod
    def abort(self) -> None:
        """
        Immediate stop: drop pending results, then on_end.

        Must be idempotent and safe to call before start().
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Callback helpers for implementations
    # ------------------------------------------------------------------

    def _fire_start(self) -> None:
        if self.on_start is not None:
            self.on_start()

    def _fire_result(self, batch: RecognitionResultBatch) -> None:
        if self.on_result is not None:
            self.on_result(batch)

    def _fire_error(self, code: RecognitionErrorCode, message: str = "") -> None:
        if self.on_error is not None:
            self.on_error(RecognitionError(code=code, message=message))

    def _fire_end(self) -> None:
        if self.on_end is not None:
            self.on_end()
