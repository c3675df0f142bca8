"""
Session bootstrap.

Builds the concrete capture / playback / dialogue components for a
VoiceSession from AppConfig, wiring every component callback to the
session runtime.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from adapters.asr.base import RecognitionProvider
from adapters.asr.deepgram_live import DeepgramRecognitionProvider
from adapters.llm.streaming import OpenAIDialogueEngine
from adapters.tts.base import SpeechSynthesizer
from adapters.tts.elevenlabs import ElevenLabsSynthesizer
from adapters.tts.speechmatics import SpeechmaticsSynthesizer
from audio.devices import SoundDeviceMicrophone, SoundDeviceOutput
from capture.controller import ProviderFactory, SpeechCaptureController
from config import AppConfig
from orchestrator.runtime import Runtime
from playback.queue import SynthesisPlaybackQueue
from session.voice_session import ComponentBuilder, SessionComponents, VoiceSession


def build_synthesizer(config: AppConfig) -> SpeechSynthesizer:
    """Select the TTS provider named by TTS_PROVIDER."""
    if config.tts_provider == "speechmatics":
        if not config.speechmatics_api_key:
            raise RuntimeError("SPEECHMATICS_API_KEY environment variable not set")
        return SpeechmaticsSynthesizer(api_key=config.speechmatics_api_key)

    if config.tts_provider == "elevenlabs":
        if not config.elevenlabs_api_key:
            raise RuntimeError("ELEVENLABS_API_KEY environment variable not set")
        if not config.elevenlabs_model_id:
            raise RuntimeError("ELEVENLABS_MODEL_ID environment variable not set")
        return ElevenLabsSynthesizer(
            api_key=config.elevenlabs_api_key,
            model_id=config.elevenlabs_model_id,
        )

    raise RuntimeError(f"Unknown TTS_PROVIDER: {config.tts_provider}")


def build_provider_factory(
    config: AppConfig,
    microphone: SoundDeviceMicrophone,
) -> ProviderFactory | None:
    """
    Fresh Deepgram provider per capture start.

    None when no API key is configured; the controller then reports
    recognition as unsupported.
    """
    api_key = config.deepgram_api_key
    if not api_key:
        return None

    def _factory() -> RecognitionProvider:
        return DeepgramRecognitionProvider(
            api_key=api_key,
            microphone=microphone,
            model=config.deepgram_model,
        )

    return _factory


def component_builder(config: AppConfig, openai_client: Any) -> ComponentBuilder:
    """Return a builder that wires concrete components to a runtime."""

    def _build(runtime: Runtime) -> SessionComponents:
        microphone = SoundDeviceMicrophone(device=config.input_device)

        capture = SpeechCaptureController(
            provider_factory=build_provider_factory(config, microphone),
            microphone=microphone,
            options=config.capture_options(),
            on_transcript=runtime.on_transcript,
            on_utterance_end=runtime.on_utterance_end,
            on_error=runtime.on_capture_error,
            on_state_change=runtime.on_component_state_change,
        )

        playback = SynthesisPlaybackQueue(
            synthesizer=build_synthesizer(config),
            output=SoundDeviceOutput(device=config.output_device),
            voice=config.tts_voice(),
            on_play_start=runtime.on_play_start,
            on_play_end=runtime.on_play_end,
            on_error=runtime.on_playback_error,
            on_state_change=runtime.on_component_state_change,
        )

        dialogue = OpenAIDialogueEngine(
            client=openai_client,
            model=config.llm_model,
            provider=config.llm_provider,
            welcome_message=config.welcome_message,
        )

        return SessionComponents(capture=capture, playback=playback, dialogue=dialogue)

    return _build


def build_voice_session(
    config: AppConfig,
    openai_client: Any,
    *,
    on_error: Callable[[str, bool], None] | None = None,
    on_memory_saved: Callable[[str], None] | None = None,
    on_complete: Callable[[], Awaitable[None]] | None = None,
) -> VoiceSession:
    return VoiceSession(
        build_components=component_builder(config, openai_client),
        on_error=on_error,
        on_memory_saved=on_memory_saved,
        on_complete=on_complete,
    )
