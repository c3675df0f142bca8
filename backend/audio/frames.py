"""
Audio buffer primitives.

Pure data containers only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class SynthesizedAudio:
    """
    Raw bytes returned by a synthesis provider.

    media_type:
        "audio/pcm" for headerless PCM16LE mono, otherwise a container
        type (audio/wav, audio/mpeg, ...) decodable by soundfile.

    sample_rate:
        Required for "audio/pcm"; ignored for containers (read from header).
    """
    data: bytes
    media_type: str = "audio/pcm"
    sample_rate: int | None = None


@dataclass(frozen=True)
class DecodedAudio:
    """
    Playable buffer: float32 mono samples at sample_rate.

    Produced by audio.decode.decode_audio, consumed by the output device.
    """
    samples: np.ndarray
    sample_rate: int

    @property
    def duration_s(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return float(self.samples.shape[0]) / float(self.sample_rate)
