# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring
"""
In-memory stand-ins for the engine's device, provider and network seams.

Nothing here touches audio hardware or the network; every fake records
what it was asked to do so tests can assert on it.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import numpy as np

from adapters.asr.base import (
    RecognitionAlternative,
    RecognitionErrorCode,
    RecognitionProvider,
    RecognitionResultBatch,
)
from adapters.llm.base import DialogueEngine, Message, Role
from adapters.tts.base import SpeechSynthesizer
from audio.devices import AudioOutput, Microphone, MicrophoneStream, OutputDeviceState
from audio.frames import DecodedAudio, SynthesizedAudio
from audio.pcm import float32_to_pcm16le
from errors import AudioOutputError, CaptureError, DialogueError, SynthesisError


# ---------------------------------------------------------------------
# Recognition
# ---------------------------------------------------------------------

class FakeProvider(RecognitionProvider):
    def __init__(self, *, auto_start: bool = True, start_error: RecognitionErrorCode | None = None) -> None:
        super().__init__()
        self.auto_start = auto_start
        self.start_error = start_error
        self.started = False
        self.stopped = False
        self.aborted = False
        self.ended = False

    def start(self) -> None:
        self.started = True
        loop = asyncio.get_running_loop()
        if self.start_error is not None:
            loop.call_soon(self.fail, self.start_error)
        elif self.auto_start:
            loop.call_soon(self._fire_start)

    def stop(self) -> None:
        self.stopped = True
        self.end()

    def abort(self) -> None:
        self.aborted = True
        self.end()

    # Test drivers

    def say(self, final: str = "", interim: str = "") -> None:
        results: list[RecognitionAlternative] = []
        if final:
            results.append(RecognitionAlternative(transcript=final, is_final=True))
        if interim:
            results.append(RecognitionAlternative(transcript=interim, is_final=False))
        self._fire_result(RecognitionResultBatch(results=tuple(results)))

    def fail(self, code: RecognitionErrorCode, *, end: bool = True) -> None:
        self._fire_error(code, "fake")
        if end:
            self.end()

    def end(self) -> None:
        if self.ended:
            return
        self.ended = True
        self._fire_end()


class FakeProviderFactory:
    """Callable provider factory; one FakeProvider per capture (re)start."""

    def __init__(self, **provider_kwargs: object) -> None:
        self.provider_kwargs = provider_kwargs
        self.instances: list[FakeProvider] = []
        self.on_create: Callable[[FakeProvider], None] | None = None

    def __call__(self) -> FakeProvider:
        provider = FakeProvider(**self.provider_kwargs)  # type: ignore[arg-type]
        self.instances.append(provider)
        if self.on_create is not None:
            self.on_create(provider)
        return provider

    @property
    def current(self) -> FakeProvider:
        return self.instances[-1]


class _NullStream(MicrophoneStream):
    def close(self) -> None:
        pass


class FakeMicrophone(Microphone):
    def __init__(self, failures: list[CaptureError] | None = None) -> None:
        self.failures = list(failures or [])
        self.probes = 0

    async def probe(self) -> None:
        self.probes += 1
        if self.failures:
            raise self.failures.pop(0)

    def open_stream(self, on_frame: Callable[[bytes], None]) -> MicrophoneStream:
        return _NullStream()


# ---------------------------------------------------------------------
# Synthesis / output
# ---------------------------------------------------------------------

def pcm_tone(samples: int = 160) -> bytes:
    t = np.arange(samples, dtype=np.float32) / 16_000
    return float32_to_pcm16le(0.25 * np.sin(2 * np.pi * 440 * t).astype(np.float32))


class FakeSynthesizer(SpeechSynthesizer):
    def __init__(self, *, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.requests: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate: asyncio.Event | None = None

    async def synthesize(self, *, text: str, voice: str) -> SynthesizedAudio:
        self.requests.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if text in self.fail_on:
                raise SynthesisError("synthesis rejected", status=500, body="boom")
            return SynthesizedAudio(data=pcm_tone(), media_type="audio/pcm", sample_rate=16_000)
        finally:
            self.in_flight -= 1


class FakeOutput(AudioOutput):
    def __init__(self, *, unavailable: bool = False) -> None:
        self.unavailable = unavailable
        self._state = OutputDeviceState.SUSPENDED
        self.played: list[DecodedAudio] = []
        self.stops = 0
        self.resumes = 0
        self.hold: asyncio.Event | None = None
        self.on_play: Callable[[], None] | None = None
        self.playing = False

    @property
    def state(self) -> OutputDeviceState:
        return self._state

    @property
    def sample_rate(self) -> int:
        return 16_000

    async def resume(self) -> None:
        self.resumes += 1
        if self.unavailable:
            raise AudioOutputError("no output device")
        self._state = OutputDeviceState.RUNNING

    async def play(self, audio: DecodedAudio) -> bool:
        if self.on_play is not None:
            self.on_play()
        self.played.append(audio)
        self.playing = True
        try:
            if self.hold is not None:
                await self.hold.wait()
            else:
                await asyncio.sleep(0)
        finally:
            self.playing = False
        return True

    def stop(self) -> None:
        # Real devices cut audio synchronously on stop()
        self.stops += 1
        self.playing = False

    async def close(self) -> None:
        self._state = OutputDeviceState.CLOSED


# ---------------------------------------------------------------------
# Dialogue
# ---------------------------------------------------------------------

class FakeDialogueEngine(DialogueEngine):
    """Replies from a script; each reply gets a fresh message id."""

    def __init__(self, *, welcome: str | None = "Welcome!", replies: list[str] | None = None) -> None:
        super().__init__()
        self._messages: list[Message] = []
        if welcome:
            self._messages.append(Message(id="welcome", role="assistant", content=welcome))
        self.replies = list(replies or [])
        self.fail_next = False
        self.gate: asyncio.Event | None = None
        self.user_messages: list[str] = []
        self._loading = False
        self._counter = 0

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def is_loading(self) -> bool:
        return self._loading

    async def append(self, role: Role, content: str) -> None:
        if role == "assistant":
            self._add("assistant", content)
            self._notify()
            return

        self.user_messages.append(content)
        self._loading = True
        self._add("user", content)
        self._notify()
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(0)
            if self.fail_next:
                self.fail_next = False
                raise DialogueError("llm unavailable")
            self._add("assistant", self.replies.pop(0) if self.replies else "Tell me more.")
        finally:
            self._loading = False
            self._notify()

    def renotify(self) -> None:
        self._notify()

    def _add(self, role: Role, content: str) -> None:
        self._counter += 1
        self._messages.append(Message(id=f"m{self._counter}", role=role, content=content))
