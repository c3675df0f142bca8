"""
ElevenLabs TTS adapter.

Streams raw PCM16 16kHz from the ElevenLabs text-to-speech endpoint and
returns it as a single buffer. output_format travels as a query
parameter; the voice id is part of the path.
"""
from __future__ import annotations

import asyncio

import httpx

from adapters.tts.base import SpeechSynthesizer, clip_text
from audio.frames import SynthesizedAudio
from constants import AUDIO_SAMPLE_RATE_HZ, TTS_CONNECT_TIMEOUT_S, TTS_READ_TIMEOUT_S
from errors import SynthesisError
from observability.metrics import timed

ELEVENLABS_TTS_URL = "https://api.elevenlabs.io/v1/text-to-speech"
ELEVENLABS_OUTPUT_FORMAT = "pcm_16000"
ELEVENLABS_TIMEOUT = httpx.Timeout(TTS_READ_TIMEOUT_S, connect=TTS_CONNECT_TIMEOUT_S)


class ElevenLabsSynthesizer(SpeechSynthesizer):
    """ElevenLabs streaming endpoint, accumulated into one buffer."""

    def __init__(
        self,
        *,
        api_key: str,
        model_id: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model_id = model_id
        self._client = client

    async def synthesize(self, *, text: str, voice: str) -> SynthesizedAudio:
        clipped = clip_text(text)

        try:
            with timed(
                "tts_synthesis",
                details={"provider": "elevenlabs", "chars": len(clipped)},
            ):
                pcm = await self._fetch(clipped, voice)
        except asyncio.CancelledError:
            raise
        except SynthesisError:
            raise
        except httpx.HTTPError as exc:
            raise SynthesisError(
                f"elevenlabs request failed: {type(exc).__name__}: {exc}"
            ) from exc

        return SynthesizedAudio(
            data=pcm,
            media_type="audio/pcm",
            sample_rate=AUDIO_SAMPLE_RATE_HZ,
        )

    async def _fetch(self, text: str, voice_id: str) -> bytes:
        url = f"{ELEVENLABS_TTS_URL}/{voice_id}/stream"
        headers = {
            "xi-api-key": self._api_key,
            "Content-Type": "application/json",
            "Accept": "audio/pcm",
        }
        payload = {
            "text": text,
            "model_id": self._model_id,
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
        }

        if self._client is not None:
            return await self._stream(self._client, url, headers, payload)

        async with httpx.AsyncClient(timeout=ELEVENLABS_TIMEOUT) as client:
            return await self._stream(client, url, headers, payload)

    @staticmethod
    async def _stream(
        client: httpx.AsyncClient,
        url: str,
        headers: dict[str, str],
        payload: dict[str, object],
    ) -> bytes:
        chunks: list[bytes] = []

        async with client.stream(
            "POST",
            url,
            headers=headers,
            params={"output_format": ELEVENLABS_OUTPUT_FORMAT},
            json=payload,
            timeout=ELEVENLABS_TIMEOUT,
        ) as resp:
            if resp.status_code >= 400:
                body = (await resp.aread()).decode("utf-8", errors="replace")
                raise SynthesisError(
                    f"elevenlabs returned {resp.status_code}",
                    status=resp.status_code,
                    body=body[:500],
                )

            async for chunk in resp.aiter_bytes():
                if chunk:
                    chunks.append(chunk)

        return b"".join(chunks)
