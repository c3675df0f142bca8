"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for the tunable behavior of the voice engine.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific overrides come from config.AppConfig.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Audio Format (PCM16 mono @ 16kHz)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_FRAME_MS: Final[int] = 20

AUDIO_SAMPLES_PER_FRAME: Final[int] = (AUDIO_SAMPLE_RATE_HZ * AUDIO_FRAME_MS) // 1000

# Output device block size when writing decoded audio (~100ms @ 16kHz)
OUTPUT_BLOCK_FRAMES: Final[int] = 1_600

# =============================================================================
# Speech Capture
# =============================================================================

# Silence after the last final fragment that ends an utterance
SILENCE_TIMEOUT_MS: Final[int] = 1_500

# Provider must confirm "listening" within this window
CAPTURE_START_TIMEOUT_MS: Final[int] = 5_000

# Consecutive "network" provider errors before escalating to fatal
NETWORK_ERROR_THRESHOLD: Final[int] = 3

# Microphone preflight: one retry after a short delay
MIC_PREFLIGHT_RETRY_DELAY_MS: Final[int] = 400

# Auto-restart after unexpected provider end
CAPTURE_RESTART_DELAYS_MS: Final[Tuple[int, ...]] = (0, 250, 500, 1_000, 2_000)
CAPTURE_MAX_RESTARTS: Final[int] = 5

# A provider run that stays up this long resets the restart counter
CAPTURE_STABLE_RUN_MS: Final[int] = 5_000

DEFAULT_STT_LANGUAGE: Final[str] = "de"
DEFAULT_DEEPGRAM_MODEL: Final[str] = "nova-2"

# =============================================================================
# Speech Synthesis
# =============================================================================

# Upper bound on text sent to a synthesis provider per entry
TTS_MAX_TEXT_CHARS: Final[int] = 2_000
PROVIDER_CHUNK_SIZE: Final[int] = 4096

DEFAULT_TTS_VOICE: Final[str] = "sarah"

# Synthesis HTTP bounds; a stalled provider surfaces as a failed entry
TTS_CONNECT_TIMEOUT_S: Final[float] = 5.0
TTS_READ_TIMEOUT_S: Final[float] = 30.0

# =============================================================================
# Dialogue
# =============================================================================

WELCOME_MESSAGE_ID: Final[str] = "voice-welcome"

DEFAULT_WELCOME_MESSAGE: Final[str] = (
    "Hallo! Ich helfe dir, deine Erinnerungen festzuhalten. "
    "Woran möchtest du dich heute erinnern?"
)

# =============================================================================
# Reply Detection
# =============================================================================

MEMORY_SAVED_PATTERNS: Final[Tuple[str, ...]] = (
    r"\[SAVE_MEMORY\]",
    r"memory saved",
    r"added to your timeline",
    r"i've saved",
)

MEMORY_EVENT_ID_PATTERN: Final[str] = r"event[_-]?id[:\s]+([a-z0-9-]+)"

CONVERSATION_COMPLETE_MARKERS: Final[Tuple[str, ...]] = (
    "[onboarding_complete]",
    "grunddaten sind vollständig",
    "basisdaten sind jetzt vollständig",
    "basisdaten sind erfasst",
    "deine basisdaten sind erfasst",
    "basic data is complete",
    "onboarding is complete",
    "all mandatory fields",
    "profile is complete",
    "ready to explore",
    "weiterführende biografiearbeit",
)
