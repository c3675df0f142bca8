"""
Speechmatics TTS adapter.

Role in the system:
- Receives one complete text segment from the playback queue.
- Performs one synthesis call per segment.
- Returns raw PCM16 16kHz mono with its media type.

Architectural constraints:
- No retries, timers, or playback logic live in this adapter.
- Cancellation propagates: cancelling the awaiting task closes the
  HTTP response mid-stream.
"""
from __future__ import annotations

import asyncio

from speechmatics.tts import AsyncClient, OutputFormat, Voice # pyright: ignore[reportMissingTypeStubs] # pylint: disable=no-name-in-module, import-error

from adapters.tts.base import SpeechSynthesizer, clip_text
from audio.frames import SynthesizedAudio
from constants import AUDIO_SAMPLE_RATE_HZ, PROVIDER_CHUNK_SIZE
from errors import SynthesisError
from observability.metrics import timed


class SpeechmaticsSynthesizer(SpeechSynthesizer):
    """
    Speechmatics non-streaming synthesizer.

    Design:
    - A fresh AsyncClient per request (no shared connection state)
    - Chunks are accumulated and returned as one buffer
    """

    _VOICE_MAP: dict[str, Voice] = {
        "sarah": Voice.SARAH,
        "theo": Voice.THEO,
        "megan": Voice.MEGAN,
    }

    def __init__(self, *, api_key: str) -> None:
        self._api_key = api_key

    async def synthesize(self, *, text: str, voice: str) -> SynthesizedAudio:
        clipped = clip_text(text)
        resolved_voice = self._resolve_voice(voice)

        try:
            with timed(
                "tts_synthesis",
                details={"provider": "speechmatics", "chars": len(clipped)},
            ):
                pcm = await self._fetch(clipped, resolved_voice)
        except asyncio.CancelledError:
            raise
        except SynthesisError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            status = getattr(exc, "status", None)
            raise SynthesisError(
                f"speechmatics synthesis failed: {type(exc).__name__}: {exc}",
                status=status if isinstance(status, int) else None,
                body=str(getattr(exc, "message", ""))[:500],
            ) from exc

        return SynthesizedAudio(
            data=pcm,
            media_type="audio/pcm",
            sample_rate=AUDIO_SAMPLE_RATE_HZ,
        )

    async def _fetch(self, text: str, voice: Voice) -> bytes:
        chunks: list[bytes] = []

        async with AsyncClient(api_key=self._api_key) as client:
            async with await client.generate(
                text=text,
                voice=voice,
                output_format=OutputFormat.RAW_PCM_16000,
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise SynthesisError(
                        f"speechmatics returned {response.status}",
                        status=response.status,
                        body=body[:500],
                    )

                async for chunk in response.content.iter_chunked(PROVIDER_CHUNK_SIZE):
                    chunks.append(chunk)

        return b"".join(chunks)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @classmethod
    def _resolve_voice(cls, voice: str) -> Voice:
        """
        Convert user-facing voice string to Speechmatics Voice enum.

        Defaults to SARAH if unknown.
        """
        return cls._VOICE_MAP.get(voice.lower(), Voice.SARAH)
