"""PCM conversion utilities."""
import numpy as np
from scipy import signal


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0).

    No resampling. No channel mixing.
    """
    if len(pcm_bytes) % 2 != 0:
        # Truncated trailing sample; drop it
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")
    return audio_i16.astype(np.float32) / 32768.0


def float32_to_pcm16le(samples: np.ndarray) -> bytes:
    """Convert float32 samples in [-1.0, 1.0] to PCM16 little-endian bytes."""
    clipped = np.clip(samples, -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def to_mono(samples: np.ndarray) -> np.ndarray:
    """Average all channels of a (frames, channels) array into one."""
    if samples.ndim == 1:
        return samples
    return samples.mean(axis=1).astype(np.float32)


def resample(samples: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    """
    Polyphase resampling between integer sample rates.

    Returns the input unchanged when the rates already match.
    """
    if src_rate == dst_rate or samples.size == 0:
        return samples

    g = np.gcd(src_rate, dst_rate)
    out = signal.resample_poly(samples, dst_rate // g, src_rate // g)
    return np.clip(out, -1.0, 1.0).astype(np.float32)
