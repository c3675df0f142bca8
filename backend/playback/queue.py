"""
Synthesis playback queue.

FIFO of text segments, processed by a single-flight loop:
synthesize -> decode -> play -> next.

Responsibilities:
- Strict FIFO; never two entries synthesizing or playing at once
- Hard stop: cancel the in-flight synthesis request, cut active
  playback, drop pending entries
- Report per-entry failures and keep going with the next entry
- Fire on_play_end exactly once each time the queue drains

Non-responsibilities:
- Deciding WHEN to speak (the orchestrator decides)
- Anything about capture

Hooks:
- on_play_start(): awaited right before audio starts; the runtime uses it
  to release the microphone
- on_play_end(): sync, queue drained after processing at least one entry
- on_error(exc): sync, a single entry failed
- on_state_change(state): sync
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Awaitable, Callable

from adapters.tts.base import SpeechSynthesizer
from audio.decode import decode_audio
from audio.devices import AudioOutput
from errors import AudioOutputError, PlaybackError, SynthesisError
from observability.logger import log_component
from orchestrator.enums.state import PlaybackState


def _log(event_type: str, **fields: object) -> None:
    log_component("playback", event_type, **fields)


class SynthesisPlaybackQueue:
    """
    Single-flight synthesis and playback.

    A generation counter is bumped by stop(); a loop that observes a
    different generation after any suspension point exits without
    touching the queue or the state.
    """

    def __init__(
        self,
        *,
        synthesizer: SpeechSynthesizer,
        output: AudioOutput,
        voice: str,
        on_play_start: Callable[[], Awaitable[None]] | None = None,
        on_play_end: Callable[[], None] | None = None,
        on_error: Callable[[PlaybackError], None] | None = None,
        on_state_change: Callable[[PlaybackState], None] | None = None,
    ) -> None:
        self._synthesizer = synthesizer
        self._output = output
        self._voice = voice

        self._on_play_start = on_play_start
        self._on_play_end = on_play_end
        self._on_error = on_error
        self._on_state_change = on_state_change

        self._queue: deque[str] = deque()
        self._state = PlaybackState.IDLE
        self._error: PlaybackError | None = None

        self._task: asyncio.Task[None] | None = None
        self._generation = 0
        self._processed_since_idle = False

    # ------------------------------------------------------------------
    # Read-only surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state is PlaybackState.PLAYING

    @property
    def is_loading(self) -> bool:
        return self._state is PlaybackState.LOADING

    @property
    def error(self) -> PlaybackError | None:
        return self._error

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def is_busy(self) -> bool:
        """True while the processing loop is running."""
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def enqueue(self, text: str) -> None:
        """Append a segment; blank text is ignored."""
        if not text or not text.strip():
            _log("ENQUEUE_IGNORED_BLANK")
            return

        self._queue.append(text)
        _log("ENQUEUED", chars=len(text), queue_length=len(self._queue))
        self._kick()

    async def resume(self) -> None:
        """Activate the output device if it is suspended."""
        await self._output.resume()

    def stop(self) -> None:
        """
        Hard stop. Idempotent, never raises, does not fire on_play_end.
        """
        self._generation += 1
        self._queue.clear()
        self._processed_since_idle = False

        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

        self._output.stop()

        if self._state is not PlaybackState.IDLE:
            _log("STOPPED")
            self._set_state(PlaybackState.IDLE)

    def clear_queue(self) -> None:
        """Drop pending entries; the current entry keeps going."""
        dropped = len(self._queue)
        self._queue.clear()
        if dropped:
            _log("QUEUE_CLEARED", dropped=dropped)

    async def close(self) -> None:
        self.stop()
        await self._output.close()

    # ------------------------------------------------------------------
    # Processing loop
    # ------------------------------------------------------------------

    def _kick(self) -> None:
        if self.is_busy:
            return
        generation = self._generation
        self._task = asyncio.create_task(self._process(generation))

    async def _process(self, generation: int) -> None:
        while self._queue and generation == self._generation:
            text = self._queue.popleft()
            await self._play_entry(text, generation)

            if generation != self._generation:
                return

        if generation != self._generation:
            return

        self._task = None
        fire_end = self._processed_since_idle
        self._processed_since_idle = False

        if self._state is not PlaybackState.ERROR:
            self._set_state(PlaybackState.IDLE)

        if fire_end:
            _log("QUEUE_DRAINED")
            if self._on_play_end is not None:
                self._on_play_end()

    async def _play_entry(self, text: str, generation: int) -> None:
        self._processed_since_idle = True
        self._set_state(PlaybackState.LOADING)

        try:
            audio = await self._synthesizer.synthesize(text=text, voice=self._voice)
            if generation != self._generation:
                return

            await self._output.resume()
            decoded = decode_audio(audio, target_rate=self._output.sample_rate)

            if self._on_play_start is not None:
                await self._on_play_start()
            if generation != self._generation:
                return

            self._error = None
            self._set_state(PlaybackState.PLAYING)
            _log("PLAY_START", chars=len(text), duration_s=round(decoded.duration_s, 3))

            completed = await self._output.play(decoded)
            _log("PLAY_FINISHED", completed=completed)

        except asyncio.CancelledError:
            _log("ENTRY_CANCELLED")
            raise

        except PlaybackError as exc:
            self._report(exc, generation)

        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._report(
                PlaybackError(f"{type(exc).__name__}: {exc}"),
                generation,
            )

    def _report(self, exc: PlaybackError, generation: int) -> None:
        if generation != self._generation:
            return

        details: dict[str, object] = {
            "exception": type(exc).__name__,
            "message": str(exc),
        }
        if isinstance(exc, SynthesisError):
            details["status"] = exc.status
            details["body"] = exc.body
        _log("ENTRY_FAILED", fatal=isinstance(exc, AudioOutputError), **details)

        self._error = exc
        self._set_state(PlaybackState.ERROR)
        if self._on_error is not None:
            self._on_error(exc)

    def _set_state(self, state: PlaybackState) -> None:
        if state is self._state:
            return
        prev = self._state
        self._state = state
        _log("STATE_CHANGED", from_state=prev.value, to_state=state.value)
        if self._on_state_change is not None:
            self._on_state_change(state)
