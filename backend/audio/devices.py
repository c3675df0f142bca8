"""
Local audio devices (microphone in, speaker out) via sounddevice.

Threading model:
- PortAudio invokes input callbacks on its own thread; frames are
  marshalled onto the event loop with loop.call_soon_threadsafe.
- Blocking output writes run in a worker thread (asyncio.to_thread) and
  poll a threading.Event between blocks so stop() cuts playback within
  one block.
"""

from __future__ import annotations

import asyncio
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable

import sounddevice as sd

from audio.frames import DecodedAudio
from constants import (
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_RATE_HZ,
    AUDIO_SAMPLES_PER_FRAME,
    OUTPUT_BLOCK_FRAMES,
)
from errors import AudioOutputError, CaptureDeviceError, CapturePermissionError
from observability.logger import log_component


def _parse_device(device: str | None) -> int | str | None:
    """sounddevice accepts an index or a name substring."""
    if device is None:
        return None
    return int(device) if device.isdigit() else device


def _capture_error(exc: Exception) -> CaptureDeviceError | CapturePermissionError:
    message = str(exc)
    lowered = message.lower()
    if "permission" in lowered or "denied" in lowered:
        return CapturePermissionError(f"microphone access denied: {message}")
    return CaptureDeviceError(f"microphone unavailable: {message}")


# =============================================================================
# Input
# =============================================================================

class MicrophoneStream(ABC):
    """An open, running input stream."""

    @abstractmethod
    def close(self) -> None:
        """Stop the stream and release the device. Idempotent."""
        raise NotImplementedError


class Microphone(ABC):
    """Microphone contract used by the capture controller and providers."""

    @abstractmethod
    async def probe(self) -> None:
        """
        Open and immediately release the input device.

        Raises:
            CapturePermissionError / CaptureDeviceError
        """
        raise NotImplementedError

    @abstractmethod
    def open_stream(self, on_frame: Callable[[bytes], None]) -> MicrophoneStream:
        """
        Start delivering PCM16LE mono frames to on_frame on the event loop.

        Must be called from the event loop thread.

        Raises:
            CapturePermissionError / CaptureDeviceError
        """
        raise NotImplementedError


class _SoundDeviceStream(MicrophoneStream):
    def __init__(self, stream: sd.RawInputStream) -> None:
        self._stream: sd.RawInputStream | None = stream

    def close(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except sd.PortAudioError as exc:
            log_component("microphone", "MIC_CLOSE_FAILED", error=str(exc))


class SoundDeviceMicrophone(Microphone):
    """PCM16 mono microphone at AUDIO_SAMPLE_RATE_HZ."""

    def __init__(
        self,
        *,
        device: str | None = None,
        sample_rate: int = AUDIO_SAMPLE_RATE_HZ,
        block_frames: int = AUDIO_SAMPLES_PER_FRAME,
    ) -> None:
        self._device = _parse_device(device)
        self._sample_rate = sample_rate
        self._block_frames = block_frames

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    async def probe(self) -> None:
        await asyncio.to_thread(self._probe_blocking)

    def _probe_blocking(self) -> None:
        try:
            stream = sd.RawInputStream(
                samplerate=self._sample_rate,
                blocksize=self._block_frames,
                dtype="int16",
                channels=AUDIO_CHANNELS,
                device=self._device,
            )
            stream.close()
        except (sd.PortAudioError, ValueError) as exc:
            raise _capture_error(exc) from exc

    def open_stream(self, on_frame: Callable[[bytes], None]) -> MicrophoneStream:
        loop = asyncio.get_running_loop()

        def callback(indata: Any, frames: int, time: Any, status: sd.CallbackFlags) -> None:  # pylint: disable=unused-argument
            if status:
                loop.call_soon_threadsafe(
                    log_component, "microphone", "MIC_STATUS", status=str(status)
                )
            loop.call_soon_threadsafe(on_frame, bytes(indata))

        try:
            stream = sd.RawInputStream(
                samplerate=self._sample_rate,
                blocksize=self._block_frames,
                dtype="int16",
                channels=AUDIO_CHANNELS,
                callback=callback,
                device=self._device,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as exc:
            raise _capture_error(exc) from exc

        return _SoundDeviceStream(stream)


# =============================================================================
# Output
# =============================================================================

class OutputDeviceState(str, Enum):
    """Activation state of the audio output device."""

    SUSPENDED = "suspended"
    RUNNING = "running"
    CLOSED = "closed"


class AudioOutput(ABC):
    """Audio output contract used by the playback queue."""

    @property
    @abstractmethod
    def state(self) -> OutputDeviceState:
        raise NotImplementedError

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """Rate decoded audio should be delivered at."""
        raise NotImplementedError

    @abstractmethod
    async def resume(self) -> None:
        """
        Activate the device if suspended. No-op when running.

        Raises:
            AudioOutputError if the device is closed or unavailable.
        """
        raise NotImplementedError

    @abstractmethod
    async def play(self, audio: DecodedAudio) -> bool:
        """
        Play a buffer to completion.

        Returns False if playback was cut short by stop().

        Raises:
            AudioOutputError
        """
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """Cut active playback immediately. Idempotent."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError


class SoundDeviceOutput(AudioOutput):
    """
    Speaker output through a per-buffer sd.OutputStream.

    Starts SUSPENDED; resume() validates the device and resolves its
    sample rate.
    """

    def __init__(
        self,
        *,
        device: str | None = None,
        sample_rate: int | None = None,
        block_frames: int = OUTPUT_BLOCK_FRAMES,
    ) -> None:
        self._device = _parse_device(device)
        self._sample_rate = sample_rate
        self._block_frames = block_frames
        self._state = OutputDeviceState.SUSPENDED
        self._stop_event: threading.Event | None = None

    @property
    def state(self) -> OutputDeviceState:
        return self._state

    @property
    def sample_rate(self) -> int:
        return self._sample_rate or AUDIO_SAMPLE_RATE_HZ

    async def resume(self) -> None:
        if self._state is OutputDeviceState.CLOSED:
            raise AudioOutputError("audio output is closed")
        if self._state is OutputDeviceState.RUNNING:
            return

        await asyncio.to_thread(self._activate_blocking)
        self._state = OutputDeviceState.RUNNING
        log_component(
            "audio_output",
            "OUTPUT_RESUMED",
            device=self._device,
            sample_rate=self.sample_rate,
        )

    def _activate_blocking(self) -> None:
        try:
            if self._sample_rate is None:
                info = sd.query_devices(self._device, "output")
                self._sample_rate = int(info["default_samplerate"])
            sd.check_output_settings(
                device=self._device,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                samplerate=self._sample_rate,
            )
        except (sd.PortAudioError, ValueError) as exc:
            raise AudioOutputError(f"audio output unavailable: {exc}") from exc

    async def play(self, audio: DecodedAudio) -> bool:
        if self._state is not OutputDeviceState.RUNNING:
            raise AudioOutputError(f"audio output is {self._state.value}")

        stop_event = threading.Event()
        self._stop_event = stop_event
        try:
            return await asyncio.to_thread(self._play_blocking, audio, stop_event)
        finally:
            if self._stop_event is stop_event:
                self._stop_event = None

    def _play_blocking(self, audio: DecodedAudio, stop_event: threading.Event) -> bool:
        samples = audio.samples.reshape(-1, 1)
        total = samples.shape[0]

        try:
            with sd.OutputStream(
                samplerate=audio.sample_rate,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                device=self._device,
            ) as stream:
                cursor = 0
                while cursor < total:
                    if stop_event.is_set():
                        stream.abort()
                        return False
                    end = min(cursor + self._block_frames, total)
                    stream.write(samples[cursor:end])
                    cursor = end
        except sd.PortAudioError as exc:
            raise AudioOutputError(f"audio output failed: {exc}") from exc

        return True

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def close(self) -> None:
        self.stop()
        self._state = OutputDeviceState.CLOSED
