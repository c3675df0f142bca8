"""
Speech synthesizer contract.

This module defines the interface plus the one text rule every provider
shares (length clipping). No queueing, playback, or retries live here.

Key invariants:
- One synthesize() call = one provider request = one audio buffer.
- Cancellation is the caller's job: synthesize() is a plain coroutine and
  cancelling the awaiting task cancels the network request.
- Provider failures surface as SynthesisError carrying the provider
  status and error body when available.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from audio.frames import SynthesizedAudio
from constants import TTS_MAX_TEXT_CHARS


def clip_text(text: str, limit: int = TTS_MAX_TEXT_CHARS) -> str:
    """Trim and clip text to the provider request limit."""
    return text.strip()[:limit]


class SpeechSynthesizer(ABC):
    """
    Abstract text-to-speech provider.

    Implementations are responsible for:
    - Calling the provider with clipped text and the requested voice
    - Returning the complete audio with its media type
    - Translating provider exceptions into SynthesisError

    Non-responsibilities:
    - No decoding (the playback queue decodes)
    - No chunking policy
    - No state machine logic
    """

    @abstractmethod
    async def synthesize(self, *, text: str, voice: str) -> SynthesizedAudio:
        """
        Synthesize one text segment.

        Raises:
            SynthesisError on any provider failure.
            asyncio.CancelledError if the awaiting task is cancelled.
        """
        raise NotImplementedError
