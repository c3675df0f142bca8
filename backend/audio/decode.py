"""
Decode synthesized audio into a playable buffer.

- Headerless PCM16 is converted directly
- Containers (wav, flac, ogg, mp3 where libsndfile supports it) go
  through soundfile
- Output is float32 mono, optionally resampled to the device rate
"""

from __future__ import annotations

import io

import numpy as np
import soundfile as sf

from audio.frames import DecodedAudio, SynthesizedAudio
from audio.pcm import pcm16le_to_float32, resample, to_mono
from errors import AudioDecodeError

PCM_MEDIA_TYPES = frozenset({"audio/pcm", "audio/l16", "audio/raw"})


def decode_audio(audio: SynthesizedAudio, *, target_rate: int | None = None) -> DecodedAudio:
    """
    Decode provider bytes to float32 mono.

    Raises:
        AudioDecodeError if the bytes are empty or cannot be parsed.
    """
    if not audio.data:
        raise AudioDecodeError("synthesized audio is empty")

    if audio.media_type in PCM_MEDIA_TYPES:
        if not audio.sample_rate:
            raise AudioDecodeError("raw PCM audio requires a sample rate")
        samples = pcm16le_to_float32(audio.data)
        rate = audio.sample_rate
    else:
        try:
            data, rate = sf.read(io.BytesIO(audio.data), dtype="float32", always_2d=False)
        except (sf.LibsndfileError, RuntimeError, TypeError) as exc:
            raise AudioDecodeError(
                f"cannot decode {audio.media_type}: {exc}"
            ) from exc
        samples = to_mono(np.asarray(data, dtype=np.float32))

    if samples.size == 0:
        raise AudioDecodeError("decoded audio has no samples")

    if target_rate is not None and target_rate != rate:
        samples = resample(samples, rate, target_rate)
        rate = target_rate

    return DecodedAudio(samples=samples, sample_rate=int(rate))
