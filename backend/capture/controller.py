"""
Speech capture controller.

Wraps a continuous recognition provider and turns its fragment stream
into utterances.

Responsibilities:
- Own the microphone/provider lifecycle (preflight, start, stop, abort)
- Accumulate final fragments into the current utterance
- Emit exactly one utterance-finished notification per speaking turn
  (silence timer, or explicit stop)
- Restart a provider that ends unexpectedly, with bounded backoff
- Classify provider errors as fatal / ignorable / network-transient

Non-responsibilities:
- Deciding WHEN to listen (the orchestrator decides)
- Anything about playback or the dialogue engine

Callbacks are plain sync callables invoked on the event loop:
- on_transcript(text, is_final)
- on_utterance_end(text)
- on_error(exc)            asynchronous fatal errors only
- on_state_change(state)

Errors that happen while start_listening() is pending are raised from
start_listening() instead of being passed to on_error.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable

from adapters.asr.base import (
    RecognitionError,
    RecognitionProvider,
    RecognitionResultBatch,
)
from audio.devices import Microphone
from capture.classification import ErrorCategory, classify, to_capture_error
from capture.retry import (
    RetryAttempt,
    get_retry_delay_ms,
    next_attempt,
    reset_attempt,
    should_retry,
)
from config import CaptureOptions
from constants import CAPTURE_STABLE_RUN_MS, MIC_PREFLIGHT_RETRY_DELAY_MS
from errors import (
    CaptureDeviceError,
    CaptureError,
    CaptureNetworkError,
    CaptureRestartExhausted,
    CaptureStartTimeout,
    RecognitionUnsupportedError,
)
from observability.logger import log_component
from orchestrator.enums.state import CaptureState

ProviderFactory = Callable[[], RecognitionProvider]


def _log(event_type: str, **fields: object) -> None:
    log_component("capture", event_type, **fields)


class SpeechCaptureController:
    """
    Continuous speech capture with utterance segmentation.

    Invariants:
    - At most one provider instance is live; callbacks from any other
      instance are dropped.
    - The utterance is flushed at most once per speaking turn.
    - stop_listening() never raises and never waits.
    """

    def __init__(
        self,
        *,
        provider_factory: ProviderFactory | None,
        microphone: Microphone,
        options: CaptureOptions | None = None,
        on_transcript: Callable[[str, bool], None] | None = None,
        on_utterance_end: Callable[[str], None] | None = None,
        on_error: Callable[[CaptureError], None] | None = None,
        on_state_change: Callable[[CaptureState], None] | None = None,
    ) -> None:
        self._provider_factory = provider_factory
        self._microphone = microphone
        self._options = options or CaptureOptions()

        self._on_transcript = on_transcript
        self._on_utterance_end = on_utterance_end
        self._on_error = on_error
        self._on_state_change = on_state_change

        self._state = CaptureState.IDLE
        self._error: CaptureError | None = None

        self._provider: RecognitionProvider | None = None
        self._should_listen = False
        self._start_seq = 0
        self._start_waiter: asyncio.Future[None] | None = None

        # Utterance
        self._transcript = ""
        self._interim = ""
        self._silence_task: asyncio.Task[None] | None = None

        # Error / restart bookkeeping
        self._network_errors = 0
        self._restart_attempt: RetryAttempt = reset_attempt()
        self._restart_task: asyncio.Task[None] | None = None
        self._run_started_at: float | None = None

    # ------------------------------------------------------------------
    # Read-only surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state is CaptureState.LISTENING

    @property
    def transcript(self) -> str:
        return self._transcript

    @property
    def interim_transcript(self) -> str:
        return self._interim

    @property
    def live_transcript(self) -> str:
        """Final text followed by the current interim fragment."""
        return " ".join(part for part in (self._transcript, self._interim) if part)

    @property
    def error(self) -> CaptureError | None:
        return self._error

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def start_listening(self) -> bool:
        """
        Begin capturing.

        Returns True once the provider confirmed it is listening, False if
        the call was superseded by stop_listening() or a newer start.
        Ignored (returns the current listening status) while already
        connecting or listening.

        Raises:
            RecognitionUnsupportedError, CapturePermissionError,
            CaptureDeviceError, CaptureStartTimeout, CaptureNetworkError
        """
        if self._state in (CaptureState.LISTENING, CaptureState.CONNECTING):
            _log("START_IGNORED", state=self._state.value)
            return self.is_listening

        if self._provider_factory is None:
            exc = RecognitionUnsupportedError("no speech recognition provider configured")
            self._fail_start(exc)
            raise exc

        self._start_seq += 1
        seq = self._start_seq

        self._error = None
        self._network_errors = 0
        self._restart_attempt = reset_attempt()
        self._clear_utterance()
        self._set_state(CaptureState.CONNECTING)

        try:
            await self._preflight()
        except CaptureError as exc:
            if seq == self._start_seq:
                self._fail_start(exc)
            raise

        if seq != self._start_seq or self._state is not CaptureState.CONNECTING:
            _log("START_SUPERSEDED", phase="preflight")
            return False

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._start_waiter = waiter
        self._should_listen = True

        try:
            self._launch_provider()
            await asyncio.wait_for(
                waiter,
                timeout=self._options.capture_start_timeout_ms / 1000,
            )
        except asyncio.TimeoutError as exc:
            timeout = CaptureStartTimeout(
                f"recognition did not start within {self._options.capture_start_timeout_ms} ms"
            )
            if seq == self._start_seq:
                self._abort_provider()
                self._should_listen = False
                self._fail_start(timeout)
            raise timeout from exc
        finally:
            if self._start_waiter is waiter:
                self._start_waiter = None

        if seq != self._start_seq:
            return False
        return self.is_listening

    def stop_listening(self) -> None:
        """
        Stop capturing. Never raises, never waits.

        Any unflushed utterance text is emitted first.
        """
        self._start_seq += 1
        self._should_listen = False
        self._network_errors = 0

        self._cancel_silence_timer()
        self._cancel_restart()

        pending = self._transcript.strip()
        self._clear_utterance()
        if pending and self._on_utterance_end is not None:
            self._on_utterance_end(pending)

        self._abort_provider()

        waiter = self._start_waiter
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

        if self._state is not CaptureState.IDLE:
            self._set_state(CaptureState.IDLE)

    def reset_transcript(self) -> None:
        """Clear final and interim text without stopping capture."""
        self._cancel_silence_timer()
        self._clear_utterance()

    def close(self) -> None:
        """Teardown: stop and drop the provider instance."""
        self.stop_listening()
        self._provider = None
        _log("CLOSED")

    # ------------------------------------------------------------------
    # Provider lifecycle
    # ------------------------------------------------------------------

    async def _preflight(self) -> None:
        """Open and release the microphone once, with one retry."""
        try:
            await self._microphone.probe()
            return
        except CaptureDeviceError as exc:
            _log("PREFLIGHT_RETRY", error=str(exc))

        await asyncio.sleep(MIC_PREFLIGHT_RETRY_DELAY_MS / 1000)
        await self._microphone.probe()

    def _launch_provider(self) -> None:
        assert self._provider_factory is not None

        provider = self._provider_factory()
        provider.continuous = True
        provider.interim_results = True
        provider.language = self._options.language

        provider.on_start = lambda: self._handle_start(provider)
        provider.on_result = lambda batch: self._handle_result(provider, batch)
        provider.on_error = lambda error: self._handle_error(provider, error)
        provider.on_end = lambda: self._handle_end(provider)

        self._provider = provider
        self._run_started_at = None
        provider.start()
        _log("PROVIDER_STARTED", restart_attempt=self._restart_attempt.attempt)

    def _abort_provider(self) -> None:
        provider = self._provider
        self._provider = None
        if provider is not None:
            provider.abort()

    # ------------------------------------------------------------------
    # Provider callbacks
    # ------------------------------------------------------------------

    def _handle_start(self, provider: RecognitionProvider) -> None:
        if provider is not self._provider:
            return

        self._run_started_at = time.monotonic()

        if self._state is not CaptureState.LISTENING:
            self._set_state(CaptureState.LISTENING)

        waiter = self._start_waiter
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

    def _handle_result(self, provider: RecognitionProvider, batch: RecognitionResultBatch) -> None:
        if provider is not self._provider:
            return

        self._cancel_silence_timer()

        final_text = " ".join(
            r.transcript.strip() for r in batch.results if r.is_final and r.transcript.strip()
        )
        interim_text = " ".join(
            r.transcript.strip() for r in batch.results if not r.is_final and r.transcript.strip()
        )

        if final_text or interim_text:
            self._network_errors = 0
            self._restart_attempt = reset_attempt()

        if final_text:
            self._transcript = f"{self._transcript} {final_text}".strip()
            self._interim = interim_text
            if self._on_transcript is not None:
                self._on_transcript(final_text, True)
            self._arm_silence_timer()
        elif interim_text:
            self._interim = interim_text
            if self._on_transcript is not None:
                self._on_transcript(interim_text, False)

    def _handle_error(self, provider: RecognitionProvider, error: RecognitionError) -> None:
        if provider is not self._provider:
            return

        category = classify(error.code)

        if category is ErrorCategory.FATAL:
            self._fatal(to_capture_error(error))
            return

        if category is ErrorCategory.NETWORK:
            self._network_errors += 1
            _log(
                "NETWORK_ERROR",
                count=self._network_errors,
                threshold=self._options.network_error_threshold,
                message=error.message,
            )
            if self._network_errors >= self._options.network_error_threshold:
                self._fatal(
                    CaptureNetworkError(
                        f"{self._network_errors} consecutive network errors from recognition"
                    )
                )
            return

        _log("ERROR_IGNORED", code=error.code.value, category=category.value, message=error.message)

    def _handle_end(self, provider: RecognitionProvider) -> None:
        if provider is not self._provider:
            return
        self._provider = None

        if not self._should_listen:
            return

        if (
            self._run_started_at is not None
            and (time.monotonic() - self._run_started_at) * 1000 >= CAPTURE_STABLE_RUN_MS
        ):
            self._restart_attempt = reset_attempt()

        if not should_retry(attempt=self._restart_attempt):
            self._fatal(
                CaptureRestartExhausted(
                    f"recognition ended {self._restart_attempt.attempt + 1} times in a row"
                )
            )
            return

        delay_ms = get_retry_delay_ms(attempt=self._restart_attempt)
        self._restart_attempt = next_attempt(self._restart_attempt)
        _log("RESTART_SCHEDULED", delay_ms=delay_ms, attempt=self._restart_attempt.attempt)

        self._cancel_restart()
        self._restart_task = asyncio.create_task(self._restart_after(delay_ms))

    async def _restart_after(self, delay_ms: int) -> None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)

        if not self._should_listen or self._provider is not None:
            return

        try:
            self._launch_provider()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._fatal(CaptureRestartExhausted(f"recognition restart failed: {exc}"))

    # ------------------------------------------------------------------
    # Silence timer
    # ------------------------------------------------------------------

    def _arm_silence_timer(self) -> None:
        self._cancel_silence_timer()
        self._silence_task = asyncio.create_task(self._silence_countdown())

    def _cancel_silence_timer(self) -> None:
        task = self._silence_task
        self._silence_task = None
        if task is not None and not task.done():
            task.cancel()

    async def _silence_countdown(self) -> None:
        await asyncio.sleep(self._options.silence_timeout_ms / 1000)
        self._silence_task = None

        text = self._transcript.strip()
        if not text or not self._should_listen:
            return

        self._clear_utterance()
        _log("UTTERANCE_END", chars=len(text))
        if self._on_utterance_end is not None:
            self._on_utterance_end(text)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _cancel_restart(self) -> None:
        task = self._restart_task
        self._restart_task = None
        if task is not None and not task.done():
            task.cancel()

    def _clear_utterance(self) -> None:
        self._transcript = ""
        self._interim = ""

    def _fatal(self, exc: CaptureError) -> None:
        _log("FATAL", exception=type(exc).__name__, message=str(exc))

        self._should_listen = False
        self._cancel_silence_timer()
        self._cancel_restart()
        self._abort_provider()

        self._error = exc
        self._set_state(CaptureState.ERROR)

        waiter = self._start_waiter
        if waiter is not None and not waiter.done():
            waiter.set_exception(exc)
            return

        if self._on_error is not None:
            self._on_error(exc)

    def _fail_start(self, exc: CaptureError) -> None:
        _log("START_FAILED", exception=type(exc).__name__, message=str(exc))
        self._error = exc
        self._set_state(CaptureState.ERROR)

    def _set_state(self, state: CaptureState) -> None:
        if state is self._state:
            return
        prev = self._state
        self._state = state
        _log("STATE_CHANGED", from_state=prev.value, to_state=state.value)
        if self._on_state_change is not None:
            self._on_state_change(state)
