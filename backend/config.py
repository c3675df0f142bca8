"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide typed, immutable config objects

Non-responsibilities:
- No orchestration logic
- No behavioral defaults (those live in constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import (
    CAPTURE_START_TIMEOUT_MS,
    DEFAULT_DEEPGRAM_MODEL,
    DEFAULT_STT_LANGUAGE,
    DEFAULT_TTS_VOICE,
    DEFAULT_WELCOME_MESSAGE,
    NETWORK_ERROR_THRESHOLD,
    SILENCE_TIMEOUT_MS,
)


@dataclass(frozen=True)
class CaptureOptions:
    """
    Tunables recognized by the speech capture controller.

    silence_timeout_ms:
        Silence after the last final fragment that ends an utterance.
    network_error_threshold:
        Consecutive provider "network" errors tolerated before the
        controller gives up and enters ERROR.
    """

    silence_timeout_ms: int = SILENCE_TIMEOUT_MS
    network_error_threshold: int = NETWORK_ERROR_THRESHOLD
    capture_start_timeout_ms: int = CAPTURE_START_TIMEOUT_MS
    language: str = DEFAULT_STT_LANGUAGE


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed down to the
    session factory.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Speech recognition
    # ------------------------------------------------------------------

    deepgram_api_key: str | None
    deepgram_model: str
    stt_language: str

    # ------------------------------------------------------------------
    # Dialogue engine
    # ------------------------------------------------------------------

    llm_provider: str
    llm_model: str
    openai_api_key: str | None
    groq_api_key: str | None
    welcome_message: str

    # ------------------------------------------------------------------
    # TTS
    # ------------------------------------------------------------------
    tts_provider: str
    speechmatics_api_key: str | None
    speechmatics_voice: str
    elevenlabs_api_key: str | None
    elevenlabs_voice_id: str | None
    elevenlabs_model_id: str | None

    # ------------------------------------------------------------------
    # Capture tuning
    # ------------------------------------------------------------------

    silence_timeout_ms: int
    network_error_threshold: int
    capture_start_timeout_ms: int

    # ------------------------------------------------------------------
    # Devices (sounddevice index or name; None = system default)
    # ------------------------------------------------------------------

    input_device: str | None
    output_device: str | None

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def capture_options(self) -> CaptureOptions:
        """Options handed to the speech capture controller."""
        return CaptureOptions(
            silence_timeout_ms=self.silence_timeout_ms,
            network_error_threshold=self.network_error_threshold,
            capture_start_timeout_ms=self.capture_start_timeout_ms,
            language=self.stt_language,
        )

    def tts_voice(self) -> str:
        """Voice identifier for the configured TTS provider."""
        if self.tts_provider == "elevenlabs":
            return self.elevenlabs_voice_id or "default"
        return self.speechmatics_voice

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable is malformed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            deepgram_api_key=os.environ.get("DEEPGRAM_API_KEY"),
            deepgram_model=os.environ.get("DEEPGRAM_MODEL", DEFAULT_DEEPGRAM_MODEL),
            stt_language=os.environ.get("STT_LANGUAGE", DEFAULT_STT_LANGUAGE),

            llm_provider=os.environ.get("LLM_PROVIDER", "openai"),
            llm_model=os.environ.get("LLM_MODEL", "gpt-4o-mini"),
            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            groq_api_key=os.environ.get("GROQ_API_KEY"),
            welcome_message=os.environ.get("WELCOME_MESSAGE", DEFAULT_WELCOME_MESSAGE),

            tts_provider=os.environ.get("TTS_PROVIDER", "speechmatics"),
            speechmatics_api_key=os.environ.get("SPEECHMATICS_API_KEY"),
            speechmatics_voice=os.environ.get("SPEECHMATICS_VOICE", DEFAULT_TTS_VOICE),
            elevenlabs_api_key=os.environ.get("ELEVENLABS_API_KEY"),
            elevenlabs_voice_id=os.environ.get("ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM"),
            elevenlabs_model_id=os.environ.get("ELEVENLABS_MODEL_ID", "eleven_turbo_v2"),

            silence_timeout_ms=int(os.environ.get("SILENCE_TIMEOUT_MS", SILENCE_TIMEOUT_MS)),
            network_error_threshold=int(
                os.environ.get("NETWORK_ERROR_THRESHOLD", NETWORK_ERROR_THRESHOLD)
            ),
            capture_start_timeout_ms=int(
                os.environ.get("CAPTURE_START_TIMEOUT_MS", CAPTURE_START_TIMEOUT_MS)
            ),

            input_device=os.environ.get("INPUT_DEVICE") or None,
            output_device=os.environ.get("OUTPUT_DEVICE") or None,
        )
